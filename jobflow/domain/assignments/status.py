"""
Assignment status rules.

    assigned → started → completed | no_show
    assigned → cancelled | no_show

completed, no_show and cancelled are terminal.
"""

from ...exceptions import InvalidStateError

VALID_TRANSITIONS = {
    "assigned": ("started", "cancelled", "no_show"),
    "started": ("completed", "no_show"),
    "completed": (),  # Terminal state
    "no_show": (),  # Terminal state
    "cancelled": (),  # Terminal state
}


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in VALID_TRANSITIONS.get(current_status, ())


def validate_status_transition(current_status: str, new_status: str) -> None:
    """Raise InvalidStateError unless current → new is an allowed move"""
    if not can_transition(current_status, new_status):
        raise InvalidStateError(
            f"Cannot move assignment from '{current_status}' to '{new_status}'",
            current_status=current_status,
        )
