"""Assignment service - Assigning crews, job start/complete, pay and multi-cleaner completion"""

import logging
from datetime import datetime
from typing import Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import atomic
from ...exceptions import (
    AlreadyExistsError,
    CapacityExceededError,
    CompletionValidationError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from ...models import Appointment, BusinessEmployee
from ...models_assignment import (
    PAID_PAYOUT_STATUSES,
    PAY_TYPES,
    EmployeeJobAssignment,
    EmployeePayChangeLog,
    assignee_key_for,
)
from ...security_utils import decrypt_coordinate
from ...services.notification_service import (
    AnalyticsTracker,
    LoggingAnalyticsTracker,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    send_notification,
    track_event,
)
from ...utils.geo import calculate_distance
from ...utils.time import utcnow
from ..jobflows.resolution import resolve_flow
from ..jobflows.service import JobFlowInstanceService
from ..marketplace.service import get_legacy_missing_requirements
from .pay import compute_pay, elapsed_hours, round_hours_up
from .repository import AssignmentRepository
from .schemas import CompletionResult, GpsLocation, PayUpdate
from .status import validate_status_transition

logger = logging.getLogger(__name__)


class AssignmentService:
    """Service layer for employee job assignments"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        analytics: Optional[AnalyticsTracker] = None,
        flow_service: Optional[JobFlowInstanceService] = None,
    ):
        self.db = db
        self.repo = AssignmentRepository()
        self.flows = flow_service or JobFlowInstanceService(db)
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.analytics = analytics or LoggingAnalyticsTracker()

    # ========== Assigning ==========

    def _check_capacity(self, appointment: Appointment) -> None:
        """Caller holds the appointment row lock, so concurrent assigns count one after another"""
        if not appointment.is_multi_cleaner_job or not appointment.cleaners_required:
            return
        active = self.repo.count_active_for_appointment(self.db, appointment.id)
        if active >= appointment.cleaners_required:
            raise CapacityExceededError(appointment.id, appointment.cleaners_required)

    def _create_assignment(
        self,
        business_owner_id: int,
        appointment: Appointment,
        employee: Optional[BusinessEmployee],
        pay_amount: int,
        pay_type: str,
        override_template_id: Optional[int] = None,
        replaces: Optional[EmployeeJobAssignment] = None,
        assigned_by: Optional[int] = None,
    ) -> EmployeeJobAssignment:
        """Checks, job flow link and the new row; caller owns the transaction"""
        assignee_key = assignee_key_for(employee.id if employee else None, business_owner_id)

        if self.repo.find_active_assignment(self.db, appointment.id, assignee_key):
            raise AlreadyExistsError(
                "EmployeeJobAssignment", f"{assignee_key} is already assigned to appointment {appointment.id}"
            )
        self._check_capacity(appointment)

        if replaces is not None:
            # Reassignment keeps the job's existing flow and marketplace status
            job_flow_id = replaces.appointment_job_flow_id
            is_marketplace_pickup = replaces.is_marketplace_pickup
        else:
            resolution = resolve_flow(self.db, appointment, business_owner_id, override_template_id)
            job_flow_id = self.flows.get_or_create(appointment.id, resolution).id
            is_marketplace_pickup = resolution.uses_platform_flow

        assignment = EmployeeJobAssignment(
            business_employee_id=employee.id if employee else None,
            appointment_id=appointment.id,
            business_owner_id=business_owner_id,
            assignee_key=assignee_key,
            assigned_at=utcnow(),
            assigned_by=assigned_by or business_owner_id,
            status="assigned",
            pay_amount=pay_amount,
            pay_type=pay_type,
            payout_status="pending",
            is_self_assignment=employee is None,
            is_marketplace_pickup=is_marketplace_pickup,
            appointment_job_flow_id=job_flow_id,
        )
        try:
            self.repo.add(self.db, assignment)
        except IntegrityError as e:
            # Lost a race with a concurrent assign() for the same pair
            raise AlreadyExistsError(
                "EmployeeJobAssignment", f"{assignee_key} is already assigned to appointment {appointment.id}"
            ) from e

        appointment.has_been_assigned = True
        appointment.assigned_to_business_employee = True
        appointment.business_employee_assignment_id = assignment.id
        self.db.flush()
        return assignment

    def _notify_assigned(self, employee: Optional[BusinessEmployee], assignment: EmployeeJobAssignment) -> None:
        if employee is None:
            return
        send_notification(
            self.notifier,
            employee.user_id,
            "job_assigned",
            {
                "assignment_id": assignment.id,
                "appointment_id": assignment.appointment_id,
                "scheduled_date": assignment.appointment.scheduled_date.isoformat()
                if assignment.appointment and assignment.appointment.scheduled_date
                else None,
            },
        )

    def assign(
        self,
        business_owner_id: int,
        employee_id: int,
        appointment_id: int,
        pay_amount: int,
        pay_type: str = "flat_rate",
        override_template_id: Optional[int] = None,
        assigned_by: Optional[int] = None,
    ) -> EmployeeJobAssignment:
        """
        Assign an employee to an appointment

        Args:
            business_owner_id: Business the employee works for
            employee_id: BusinessEmployee ID
            appointment_id: Appointment to work
            pay_amount: Agreed pay in cents
            pay_type: flat_rate, per_job, hourly or percentage
            override_template_id: Job flow to use for this job instead of the usual one

        Returns:
            The new assignment
        """
        if pay_type not in PAY_TYPES:
            raise InvalidInputError(f"Invalid pay type: {pay_type}", details={"allowed": list(PAY_TYPES)})

        with atomic(self.db):
            employee = self.repo.get_active_employee(self.db, employee_id, business_owner_id)
            if not employee:
                raise NotFoundError("BusinessEmployee", employee_id)

            appointment = self.repo.get_appointment(self.db, appointment_id, for_update=True)
            if not appointment:
                raise NotFoundError("Appointment", appointment_id)

            assignment = self._create_assignment(
                business_owner_id,
                appointment,
                employee,
                pay_amount,
                pay_type,
                override_template_id=override_template_id,
                assigned_by=assigned_by,
            )

        logger.info(f"👷 Assigned employee {employee_id} to appointment {appointment_id} (assignment {assignment.id})")
        self._notify_assigned(employee, assignment)
        return assignment

    def self_assign(
        self, business_owner_id: int, appointment_id: int, override_template_id: Optional[int] = None
    ) -> EmployeeJobAssignment:
        """Owner takes the job themself; no pay is owed"""
        with atomic(self.db):
            appointment = self.repo.get_appointment(self.db, appointment_id, for_update=True)
            if not appointment:
                raise NotFoundError("Appointment", appointment_id)

            assignment = self._create_assignment(
                business_owner_id,
                appointment,
                None,
                0,
                "flat_rate",
                override_template_id=override_template_id,
            )

        logger.info(f"🧹 Business owner {business_owner_id} self-assigned appointment {appointment_id}")
        return assignment

    def reassign(self, assignment_id: int, new_employee_id: int, business_owner_id: int) -> EmployeeJobAssignment:
        """Hand a not-yet-started job to another employee on the same pay terms"""
        with atomic(self.db):
            current = self.repo.get_owned_assignment(self.db, assignment_id, business_owner_id)
            if not current:
                raise NotFoundError("EmployeeJobAssignment", assignment_id)
            validate_status_transition(current.status, "cancelled")

            new_employee = self.repo.get_active_employee(self.db, new_employee_id, business_owner_id)
            if not new_employee:
                raise NotFoundError("BusinessEmployee", new_employee_id)
            if new_employee.id == current.business_employee_id:
                raise InvalidInputError("Assignment already belongs to this employee")

            appointment = self.repo.get_appointment(self.db, current.appointment_id, for_update=True)
            previous_employee = current.employee
            current.status = "cancelled"
            self.db.flush()

            assignment = self._create_assignment(
                business_owner_id,
                appointment,
                new_employee,
                current.pay_amount,
                current.pay_type,
                replaces=current,
            )

        logger.info(f"🔁 Reassigned assignment {assignment_id} to employee {new_employee_id} (new {assignment.id})")
        if previous_employee is not None:
            send_notification(
                self.notifier,
                previous_employee.user_id,
                "job_unassigned",
                {"assignment_id": current.id, "appointment_id": current.appointment_id},
            )
        self._notify_assigned(new_employee, assignment)
        return assignment

    def _release_appointment(self, assignment: EmployeeJobAssignment) -> None:
        """Recompute the appointment's assigned flags after a row left the active set"""
        self.db.flush()
        appointment = assignment.appointment
        remaining = self.repo.count_active_for_appointment(self.db, appointment.id)
        if appointment.business_employee_assignment_id == assignment.id:
            appointment.business_employee_assignment_id = None
        appointment.assigned_to_business_employee = remaining > 0
        appointment.has_been_assigned = remaining > 0

    def unassign(self, assignment_id: int, business_owner_id: int) -> EmployeeJobAssignment:
        with atomic(self.db):
            assignment = self.repo.get_owned_assignment(self.db, assignment_id, business_owner_id)
            if not assignment:
                raise NotFoundError("EmployeeJobAssignment", assignment_id)
            validate_status_transition(assignment.status, "cancelled")

            assignment.status = "cancelled"
            self._release_appointment(assignment)

        logger.info(f"❌ Unassigned assignment {assignment_id}")
        if assignment.employee is not None:
            send_notification(
                self.notifier,
                assignment.employee.user_id,
                "job_unassigned",
                {"assignment_id": assignment.id, "appointment_id": assignment.appointment_id},
            )
        return assignment

    def mark_no_show(self, assignment_id: int, business_owner_id: int) -> EmployeeJobAssignment:
        """Employee never did the job; pay is zeroed"""
        with atomic(self.db):
            assignment = self.repo.get_owned_assignment(self.db, assignment_id, business_owner_id)
            if not assignment:
                raise NotFoundError("EmployeeJobAssignment", assignment_id)
            validate_status_transition(assignment.status, "no_show")

            assignment.status = "no_show"
            assignment.pay_amount = 0
            self._release_appointment(assignment)

        logger.info(f"🚫 Assignment {assignment_id} marked no-show")
        return assignment

    # ========== Doing the job ==========

    def _get_actor_assignment(self, assignment_id: int, user_id: int) -> EmployeeJobAssignment:
        """Assignment the user is allowed to act on; anyone else gets NotFound"""
        assignment = self.repo.get_assignment(self.db, assignment_id)
        if not assignment:
            raise NotFoundError("EmployeeJobAssignment", assignment_id)

        if assignment.is_self_assignment:
            if assignment.business_owner_id == user_id:
                return assignment
        else:
            employee = assignment.employee
            if employee and employee.user_id == user_id and employee.status == "active":
                return assignment

        raise NotFoundError("EmployeeJobAssignment", assignment_id)

    def start(
        self,
        assignment_id: int,
        employee_user_id: int,
        gps: Union[GpsLocation, dict, None] = None,
        now: Optional[datetime] = None,
    ) -> EmployeeJobAssignment:
        """
        Start a job (employee action)

        When both the device position and the home's coordinates are known the
        distance is recorded and the location marked verified; otherwise
        location_verified stays None (unknown, not failed).
        """
        if isinstance(gps, dict):
            try:
                gps = GpsLocation.model_validate(gps)
            except ValidationError as e:
                raise InvalidInputError("Invalid GPS location", details={"errors": e.errors()}) from e

        with atomic(self.db):
            assignment = self._get_actor_assignment(assignment_id, employee_user_id)
            validate_status_transition(assignment.status, "started")

            assignment.status = "started"
            assignment.started_at = now or utcnow()
            assignment.started_by_user_id = employee_user_id
            assignment.guest_not_left_reported = False

            if gps is not None:
                assignment.start_latitude = gps.latitude
                assignment.start_longitude = gps.longitude

                home = assignment.appointment.home if assignment.appointment else None
                home_lat = decrypt_coordinate(home.latitude) if home else None
                home_lon = decrypt_coordinate(home.longitude) if home else None
                if home_lat is not None and home_lon is not None:
                    assignment.start_distance_from_home = calculate_distance(
                        gps.latitude, gps.longitude, home_lat, home_lon
                    )
                    assignment.location_verified = True

        logger.info(f"▶️ Assignment {assignment_id} started by user {employee_user_id}")
        return assignment

    def report_guest_not_left(self, assignment_id: int, employee_user_id: int) -> EmployeeJobAssignment:
        """Cleaner arrived but the guest is still home; cleared again when the job starts"""
        with atomic(self.db):
            assignment = self._get_actor_assignment(assignment_id, employee_user_id)
            if assignment.status != "assigned":
                raise InvalidStateError("Guest-not-left can only be reported before the job starts", assignment.status)
            assignment.guest_not_left_reported = True

        send_notification(
            self.notifier,
            assignment.business_owner_id,
            "guest_not_left",
            {"assignment_id": assignment.id, "appointment_id": assignment.appointment_id},
        )
        return assignment

    def _validate_completion(self, assignment: EmployeeJobAssignment) -> None:
        if assignment.appointment_job_flow_id:
            self.flows.validate_completion(assignment.appointment_job_flow_id)
        elif assignment.is_marketplace_pickup:
            missing = get_legacy_missing_requirements(self.db, assignment)
            if missing:
                raise CompletionValidationError(missing)
        # Legacy non-marketplace assignments have nothing to validate

    def complete(
        self,
        assignment_id: int,
        employee_user_id: int,
        hours_worked: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> CompletionResult:
        """
        Complete a job (employee action)

        Validates completion requirements, computes final pay and, once every
        remaining cleaner on the appointment is done, marks the appointment
        completed.
        """
        if hours_worked is not None and hours_worked < 0:
            raise InvalidInputError("hours_worked cannot be negative")
        now = now or utcnow()

        with atomic(self.db):
            assignment = self._get_actor_assignment(assignment_id, employee_user_id)
            validate_status_transition(assignment.status, "completed")
            if assignment.started_by_user_id is not None and assignment.started_by_user_id != employee_user_id:
                raise InvalidStateError("Only the person who started this job can complete it", assignment.status)

            self._validate_completion(assignment)

            elapsed = elapsed_hours(assignment.started_at, now)
            if assignment.pay_type == "hourly":
                hours = round_hours_up(hours_worked if hours_worked is not None else elapsed)
            else:
                hours = hours_worked if hours_worked is not None else round(elapsed, 2)

            assignment.pay_amount = compute_pay(
                assignment.pay_type,
                assignment.employee,
                assignment.appointment,
                hours,
                fallback=assignment.pay_amount or 0,
            )
            assignment.hours_worked = hours
            assignment.status = "completed"
            assignment.completed_at = now
            self.db.flush()

            siblings = [
                sibling
                for sibling in self.repo.list_for_appointment(self.db, assignment.appointment_id)
                if sibling.status not in ("cancelled", "no_show")
            ]
            completed_count = sum(1 for sibling in siblings if sibling.status == "completed")
            all_completed = completed_count == len(siblings)
            if all_completed:
                assignment.appointment.completed = True

        logger.info(
            f"✅ Assignment {assignment_id} completed ({completed_count}/{len(siblings)} cleaners done, "
            f"pay {assignment.pay_amount}¢)"
        )
        if all_completed:
            send_notification(
                self.notifier,
                assignment.business_owner_id,
                "job_completed",
                {"appointment_id": assignment.appointment_id},
            )
        return CompletionResult(
            assignment=assignment,
            all_completed=all_completed,
            total_assigned=len(siblings),
            completed_count=completed_count,
        )

    # ========== Pay ==========

    def update_pay(
        self,
        assignment_id: int,
        business_owner_id: int,
        new_pay_amount: int,
        reason: Optional[str] = None,
        changed_by: Optional[int] = None,
    ) -> EmployeeJobAssignment:
        """Adjust pay before it is paid out, keeping an audit trail"""
        try:
            update = PayUpdate(new_pay_amount=new_pay_amount, reason=reason)
        except ValidationError as e:
            raise InvalidInputError("Invalid pay amount", details={"errors": e.errors()}) from e

        with atomic(self.db):
            assignment = self.repo.get_owned_assignment(self.db, assignment_id, business_owner_id)
            if not assignment:
                raise NotFoundError("EmployeeJobAssignment", assignment_id)
            if assignment.payout_status in PAID_PAYOUT_STATUSES:
                raise InvalidStateError("Cannot change pay after it has been paid", assignment.payout_status)

            previous_amount = assignment.pay_amount
            self.repo.add(
                self.db,
                EmployeePayChangeLog(
                    employee_job_assignment_id=assignment.id,
                    business_owner_id=business_owner_id,
                    previous_pay_amount=previous_amount,
                    new_pay_amount=update.new_pay_amount,
                    reason=update.reason,
                    changed_at=utcnow(),
                    changed_by=changed_by or business_owner_id,
                ),
            )
            assignment.pay_amount = update.new_pay_amount
            assignment.pay_adjustment_reason = update.reason

        logger.info(f"💵 Pay for assignment {assignment_id} changed {previous_amount} → {update.new_pay_amount}")
        track_event(
            self.analytics,
            "employee_pay_adjusted",
            {
                "assignment_id": assignment.id,
                "business_owner_id": business_owner_id,
                "previous_pay_amount": previous_amount,
                "new_pay_amount": update.new_pay_amount,
            },
        )
        return assignment

    def get_pay_change_history(self, assignment_id: int, business_owner_id: int) -> list[EmployeePayChangeLog]:
        if not self.repo.get_owned_assignment(self.db, assignment_id, business_owner_id):
            raise NotFoundError("EmployeeJobAssignment", assignment_id)
        return self.repo.list_pay_changes(self.db, assignment_id)

    # ========== Queries ==========

    def get_assignments_by_employee(
        self,
        employee_id: int,
        statuses: Optional[list[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[EmployeeJobAssignment]:
        return self.repo.list_by_employee(self.db, employee_id, statuses, start, end)

    def get_upcoming_assignments(
        self, business_owner_id: int, start: datetime, end: datetime
    ) -> list[EmployeeJobAssignment]:
        return self.repo.list_upcoming(self.db, business_owner_id, start, end)

    def get_unpaid_assignments(
        self, business_owner_id: int, employee_id: Optional[int] = None
    ) -> list[EmployeeJobAssignment]:
        return self.repo.list_unpaid(self.db, business_owner_id, employee_id)
