"""Job flow template schemas - Pydantic models for validation"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PhotoRequirement = Literal["optional", "required", "hidden"]


class ChecklistItem(BaseModel):
    """Single checklist line; extra keys (icons, hints) are preserved"""

    model_config = ConfigDict(extra="allow")

    id: str
    label: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value


class ChecklistSection(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    items: list[ChecklistItem] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value

    @field_validator("items")
    @classmethod
    def unique_item_ids(cls, items):
        ids = [item.id for item in items]
        if len(ids) != len(set(ids)):
            raise ValueError("Checklist item ids must be unique within a section")
        return items


class ChecklistData(BaseModel):
    """Checklist structure: {"sections": [{"id", "name", "items": [{"id", ...}]}]}"""

    model_config = ConfigDict(extra="allow")

    sections: list[ChecklistSection] = Field(default_factory=list)

    @field_validator("sections")
    @classmethod
    def unique_section_ids(cls, sections):
        ids = [section.id for section in sections]
        if len(ids) != len(set(ids)):
            raise ValueError("Checklist section ids must be unique")
        return sections


class JobFlowCreate(BaseModel):
    """Schema for creating a new job flow template"""

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    photo_requirement: PhotoRequirement = "optional"
    job_notes: Optional[str] = None
    is_default: bool = False


class JobFlowUpdate(BaseModel):
    """Schema for updating an existing job flow template"""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    photo_requirement: Optional[PhotoRequirement] = None
    job_notes: Optional[str] = None

    @field_validator("name", "photo_requirement")
    @classmethod
    def not_clearable(cls, value):
        # description and job_notes may be cleared with an explicit null, these may not
        if value is None:
            raise ValueError("Field cannot be cleared")
        return value
