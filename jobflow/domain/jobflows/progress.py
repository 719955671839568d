"""
Checklist progress rules.

Progress is stored per section as {"total": [...], "completed": [...], "na": [...]}.
An item is pending when it is in neither completed nor na, and is never in both.
These helpers are pure: they take plain dicts and return new dicts.
"""

import copy
from typing import Optional, Union

from ...exceptions import InvalidInputError
from .schemas import SectionProgress

STATUS_COMPLETED = "completed"
STATUS_NA = "na"


def normalize_status(status: Union[bool, str, None]) -> Optional[str]:
    """Map an incoming item status to "completed", "na" or None (pending).

    Legacy clients send booleans: True means completed, False means pending.
    """
    if status is True:
        return STATUS_COMPLETED
    if status is False or status is None:
        return None
    if status in (STATUS_COMPLETED, STATUS_NA):
        return status
    raise InvalidInputError(
        f"Invalid checklist item status: {status!r}",
        details={"allowed": [STATUS_COMPLETED, STATUS_NA, None]},
    )


def initialize_progress(snapshot: Optional[dict]) -> dict:
    """Every item of every section starts pending"""
    progress = {}
    for section in (snapshot or {}).get("sections") or []:
        item_ids = [str(item.get("id")) for item in section.get("items") or []]
        progress[str(section.get("id"))] = {"total": item_ids, "completed": [], "na": []}
    return progress


def apply_item_status(
    progress: Optional[dict], section_id: str, item_id: str, status: Optional[str]
) -> dict:
    """Return a copy of progress with one item moved to its new status.

    The item is removed from both sets first and reinserted into at most one.
    A section missing from progress is created with an empty total.
    """
    updated = copy.deepcopy(progress or {})
    section_id = str(section_id)
    item_id = str(item_id)

    section = SectionProgress.model_validate(updated.get(section_id) or {})
    section.completed = [i for i in section.completed if i != item_id]
    section.na = [i for i in section.na if i != item_id]

    if status == STATUS_COMPLETED:
        section.completed.append(item_id)
    elif status == STATUS_NA:
        section.na.append(item_id)

    updated[section_id] = section.model_dump()
    return updated


def _is_section_complete(section) -> bool:
    if not isinstance(section, dict):
        return False

    total = section.get("total")
    completed = section.get("completed")
    if total is None or completed is None:
        return False
    na = section.get("na") or []

    total_ids = [str(i) for i in total]
    done_ids = [str(i) for i in completed]
    na_ids = [str(i) for i in na]

    # duplicate-free and disjoint
    if len(set(total_ids)) != len(total_ids):
        return False
    if len(set(done_ids)) != len(done_ids) or len(set(na_ids)) != len(na_ids):
        return False
    if set(done_ids) & set(na_ids):
        return False

    return set(done_ids) | set(na_ids) == set(total_ids)


def is_checklist_complete(progress: Optional[dict]) -> bool:
    """
    True when every section's completed ∪ na exactly covers its total.

    A section without "total" or "completed" is incomplete; malformed input
    never raises. An empty progress map is vacuously complete, so callers
    must check whether the job has a checklist at all before relying on this.
    """
    if not isinstance(progress, dict):
        return False
    return all(_is_section_complete(section) for section in progress.values())


def count_items(progress: Optional[dict]) -> tuple[int, int]:
    """(total items, items that are completed or marked not applicable)"""
    total = 0
    done = 0
    for section in (progress or {}).values():
        if not isinstance(section, dict):
            continue
        total_ids = set(map(str, section.get("total") or []))
        total += len(total_ids)
        done += len(total_ids & set(map(str, (section.get("completed") or []) + (section.get("na") or []))))
    return total, done


def completion_percentage(progress: Optional[dict]) -> int:
    total, done = count_items(progress)
    if total == 0:
        return 0
    return round(done * 100 / total)


def carry_over_progress(old_progress: Optional[dict], new_progress: dict) -> dict:
    """Keep statuses of items that exist in both the old and new checklist"""
    merged = copy.deepcopy(new_progress)
    for section_id, section in merged.items():
        previous = (old_progress or {}).get(section_id)
        if not isinstance(previous, dict):
            continue
        total_ids = set(section["total"])
        section["completed"] = [i for i in map(str, previous.get("completed") or []) if i in total_ids]
        section["na"] = [
            i for i in map(str, previous.get("na") or []) if i in total_ids and i not in section["completed"]
        ]
    return merged
