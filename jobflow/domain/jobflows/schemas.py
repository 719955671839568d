"""Job flow instance schemas - Pydantic models for resolution results and progress"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FlowSource = Literal["marketplace", "job_override", "home", "client", "default", "none"]
ItemStatus = Optional[Literal["completed", "na"]]


class FlowResolution(BaseModel):
    """Which template applies to an appointment, and why"""

    model_config = ConfigDict(frozen=True)

    uses_platform_flow: bool = False
    custom_job_flow_id: Optional[int] = None
    photo_requirement: str = "optional"
    source: FlowSource = "none"


class SectionProgress(BaseModel):
    """Progress of one checklist section; absent lists read as empty"""

    total: list[str] = Field(default_factory=list)
    completed: list[str] = Field(default_factory=list)
    na: list[str] = Field(default_factory=list)

    @field_validator("total", "completed", "na", mode="before")
    @classmethod
    def coerce_ids(cls, value):
        if value is None:
            return []
        return [str(item_id) for item_id in value]


class ItemStatusUpdate(BaseModel):
    """One record of a bulk update: {item_id, status} or legacy {item_id, completed}"""

    item_id: str
    status: Union[bool, str, None] = None
    completed: Optional[bool] = None

    @field_validator("item_id", mode="before")
    @classmethod
    def coerce_item_id(cls, value):
        return str(value) if isinstance(value, int) else value

    @model_validator(mode="after")
    def legacy_completed_flag(self):
        if "status" not in self.model_fields_set and self.completed is not None:
            self.status = self.completed
        return self
