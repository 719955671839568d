"""Assignment schemas - Pydantic models for validation"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class GpsLocation(BaseModel):
    """Device position reported when a job is started"""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class PayUpdate(BaseModel):
    new_pay_amount: int = Field(ge=0)  # cents
    reason: Optional[str] = None


class CompletionResult(BaseModel):
    """Outcome of completing one assignment on a possibly multi-cleaner job"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    assignment: Any
    all_completed: bool
    total_assigned: int
    completed_count: int
