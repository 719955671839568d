"""
Employee job list with per-job information hiding.

Two independent rules, applied in order:

a. Employees without can_view_client_details see the home as beds/baths
   only and the client as first name only.
b. Marketplace pickups more than ADDRESS_REVEAL_HOURS away that have not
   started hide the address and entry details, showing a general area
   instead. This rule only ever removes information.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session, joinedload

from ...config import ADDRESS_REVEAL_HOURS
from ...exceptions import NotFoundError
from ...models import Appointment, BusinessEmployee
from ...models_assignment import EmployeeJobAssignment
from ...utils.time import utcnow

logger = logging.getLogger(__name__)

HIDDEN_STATUSES = ("cancelled", "no_show")
REVEALED_STATUSES = ("started", "completed")
ADDRESS_FIELDS = ("address", "key_pad_code", "key_location")


def extract_general_area(address: Optional[str]) -> str:
    """
    Rough area of an address for planning, e.g. "Springfield area".

    "123 Main St, Springfield, IL 62701" → "Springfield area"
    None → "Location pending"
    "123 Main St" → "Location confirmed"
    """
    if not address:
        return "Location pending"

    parts = address.split(",")
    if len(parts) >= 2:
        # City is usually the second-to-last part, otherwise the second
        city_part = parts[-2].strip() or parts[1].strip()
        tokens = city_part.split()
        if tokens:
            return f"{tokens[0]} area"

    return "Location confirmed"


class EmployeeJobsService:
    """Read model of an employee's own jobs"""

    def __init__(self, db: Session):
        self.db = db

    def _get_employees(self, employee_user_id: int) -> list[BusinessEmployee]:
        employees = (
            self.db.query(BusinessEmployee)
            .filter(BusinessEmployee.user_id == employee_user_id, BusinessEmployee.status == "active")
            .all()
        )
        if not employees:
            raise NotFoundError("BusinessEmployee")
        return employees

    def get_my_jobs(
        self,
        employee_user_id: int,
        status: Union[str, list[str], None] = None,
        upcoming_only: bool = False,
        now: Optional[datetime] = None,
    ) -> list[dict]:
        """
        Get the employee's open jobs, ordered by date, with visibility rules applied

        Args:
            employee_user_id: User ID of the employee
            status: Only include assignments in this status (or statuses)
            upcoming_only: Skip jobs scheduled before today
            now: Reference time for the address reveal window

        Returns:
            List of job dicts
        """
        now = now or utcnow()
        employees = {employee.id: employee for employee in self._get_employees(employee_user_id)}

        query = (
            self.db.query(EmployeeJobAssignment)
            .join(Appointment, EmployeeJobAssignment.appointment_id == Appointment.id)
            .options(
                joinedload(EmployeeJobAssignment.appointment).joinedload(Appointment.home),
                joinedload(EmployeeJobAssignment.appointment).joinedload(Appointment.user),
            )
            .filter(
                EmployeeJobAssignment.business_employee_id.in_(list(employees)),
                EmployeeJobAssignment.status.notin_(HIDDEN_STATUSES),
                Appointment.completed == False,  # noqa: E712
            )
        )
        if status:
            statuses = [status] if isinstance(status, str) else list(status)
            query = query.filter(EmployeeJobAssignment.status.in_(statuses))
        if upcoming_only:
            start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
            query = query.filter(Appointment.scheduled_date >= start_of_today)

        assignments = query.order_by(Appointment.scheduled_date.asc(), EmployeeJobAssignment.id.asc()).all()
        return [
            self._to_job(assignment, employees[assignment.business_employee_id], now)
            for assignment in assignments
        ]

    def _to_job(self, assignment: EmployeeJobAssignment, employee: BusinessEmployee, now: datetime) -> dict:
        appointment = assignment.appointment
        home = appointment.home
        client = appointment.user
        can_view_details = bool(employee.can_view_client_details)

        job = {
            "assignment_id": assignment.id,
            "appointment_id": appointment.id,
            "scheduled_date": appointment.scheduled_date,
            "status": assignment.status,
            "pay_type": assignment.pay_type,
            "pay_amount": assignment.pay_amount if employee.can_view_job_earnings else None,
            "is_marketplace_pickup": assignment.is_marketplace_pickup,
            "is_multi_cleaner_job": appointment.is_multi_cleaner_job,
            "appointment_job_flow_id": assignment.appointment_job_flow_id,
            "started_at": assignment.started_at,
            "address_restricted": False,
        }

        # Rule (a): client details permission
        if can_view_details:
            job["home"] = (
                {
                    "id": home.id,
                    "address": home.address,
                    "num_beds": home.num_beds,
                    "num_baths": home.num_baths,
                    "key_pad_code": home.key_pad_code,
                    "key_location": home.key_location,
                }
                if home
                else None
            )
            job["client"] = (
                {
                    "id": client.id,
                    "first_name": client.first_name,
                    "last_name": client.last_name,
                    "phone": client.phone,
                }
                if client
                else None
            )
        else:
            job["home"] = {"id": home.id, "num_beds": home.num_beds, "num_baths": home.num_baths} if home else None
            job["client"] = {"id": client.id, "first_name": client.first_name} if client else None

        # Rule (b): marketplace address window
        within_window = appointment.scheduled_date - now <= timedelta(hours=ADDRESS_REVEAL_HOURS)
        has_started = assignment.status in REVEALED_STATUSES
        if assignment.is_marketplace_pickup and not within_window and not has_started:
            job["address_restricted"] = True
            if job["home"] is not None:
                for field in ADDRESS_FIELDS:
                    job["home"].pop(field, None)
                if can_view_details:
                    job["general_area"] = extract_general_area(home.address)

        return job
