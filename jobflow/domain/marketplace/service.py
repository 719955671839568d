"""
Marketplace classification.

A job is a marketplace pickup unless the client already belongs to the
business (active CleanerClient) or the business booked it directly. The
answer is re-derived on every call; client relationships change over time.
"""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Appointment, BusinessEmployee, CleanerClient, JobPhoto
from ...models_assignment import EmployeeJobAssignment
from ..jobflows.progress import is_checklist_complete

logger = logging.getLogger(__name__)


def is_marketplace_job(db: Session, appointment: Appointment, business_owner_id: int) -> bool:
    """True when the business picked this job up from the marketplace"""
    if appointment.booked_by_business_owner_id == business_owner_id:
        return False

    existing_client = (
        db.query(CleanerClient.id)
        .filter(
            CleanerClient.cleaner_id == business_owner_id,
            CleanerClient.client_id == appointment.user_id,
            CleanerClient.status == "active",
        )
        .first()
    )
    return existing_client is None


def assignee_user_id(db: Session, assignment: EmployeeJobAssignment):
    """User account doing the job: the employee's login, or the owner for self-assignments"""
    if assignment.is_self_assignment or not assignment.business_employee_id:
        return assignment.business_owner_id
    employee = db.query(BusinessEmployee).filter(BusinessEmployee.id == assignment.business_employee_id).first()
    return employee.user_id if employee else None


def get_legacy_missing_requirements(db: Session, assignment: EmployeeJobAssignment) -> list[str]:
    """
    Completion rule for marketplace assignments created before job flows existed:
    before and after photos uploaded by the assignee, and the checklist stored on
    the assignment row fully done.
    """
    uploader_id = assignee_user_id(db, assignment)
    counts = dict(
        db.query(JobPhoto.photo_type, func.count(JobPhoto.id))
        .filter(JobPhoto.appointment_id == assignment.appointment_id, JobPhoto.cleaner_id == uploader_id)
        .group_by(JobPhoto.photo_type)
        .all()
    )

    missing = []
    if not counts.get("before"):
        missing.append("before_photos")
    if not counts.get("after"):
        missing.append("after_photos")
    if not assignment.checklist_progress or not is_checklist_complete(assignment.checklist_progress):
        missing.append("legacy_checklist")

    if missing:
        logger.debug(f"⚠️ Legacy marketplace assignment {assignment.id} missing {missing}")
    return missing
