"""
Domain exception hierarchy.

Every service raises one of these types so the consuming layer can map
them once (e.g. NotFound → 404, AlreadyExists/CapacityExceeded → 409,
InvalidState → 409, CompletionValidation → 422) without importing
service modules.

Usage:
    from jobflow.exceptions import NotFoundError, CompletionValidationError

    raise NotFoundError(resource="Assignment", resource_id=42)
    raise CompletionValidationError(["before_photos", "checklist"])
"""

from typing import Optional, Union


class JobFlowError(Exception):
    """Base class for all domain errors raised by the engine"""


class NotFoundError(JobFlowError):
    """Raised when a record does not exist within the caller's scope.

    Used for BOTH genuinely missing records AND records owned by another
    business, so callers cannot test whether foreign ids exist.
    """

    def __init__(self, resource: str, resource_id: Union[int, str, None] = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class AlreadyExistsError(JobFlowError):
    """Raised on a duplicate job flow instance or duplicate active assignment"""

    def __init__(self, resource: str, detail: Optional[str] = None) -> None:
        self.resource = resource
        self.detail = detail
        msg = f"{resource} already exists"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class CapacityExceededError(JobFlowError):
    """Raised when a multi-cleaner appointment has no open cleaner slots"""

    def __init__(self, appointment_id: int, required: int) -> None:
        self.appointment_id = appointment_id
        self.required = required
        super().__init__(
            f"Appointment {appointment_id} already has {required} cleaner(s) assigned"
        )


class InvalidStateError(JobFlowError):
    """Raised when an operation is not legal from the record's current status"""

    def __init__(self, message: str, current_status: Optional[str] = None) -> None:
        self.current_status = current_status
        super().__init__(message)


class InvalidInputError(JobFlowError):
    """Raised when well-typed input violates a structural rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.details = details or {}
        super().__init__(message)


REQUIREMENT_MESSAGES = {
    "before_photos": "Upload before photos",
    "after_photos": "Upload after photos",
    "checklist": "Complete the cleaning checklist",
    "legacy_checklist": "Complete the marketplace checklist",
}


class CompletionValidationError(JobFlowError):
    """Raised when a job cannot be completed yet.

    Always carries the full list of unmet requirement codes, never just
    the first one found.
    """

    def __init__(self, requirements: list[str]) -> None:
        self.requirements = list(requirements)
        super().__init__(f"Cannot complete job: {', '.join(self.messages)}")

    @property
    def messages(self) -> list[str]:
        return [REQUIREMENT_MESSAGES.get(code, code) for code in self.requirements]
