"""Assignment repository - Database operations for employee job assignments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, BusinessEmployee
from ...models_assignment import (
    ACTIVE_STATUSES,
    EmployeeJobAssignment,
    EmployeePayChangeLog,
)


class AssignmentRepository:
    """Repository for assignment database operations"""

    @staticmethod
    def add(db: Session, obj):
        db.add(obj)
        db.flush()
        return obj

    # Employees / appointments
    @staticmethod
    def get_active_employee(db: Session, employee_id: int, business_owner_id: int) -> Optional[BusinessEmployee]:
        return (
            db.query(BusinessEmployee)
            .filter(
                BusinessEmployee.id == employee_id,
                BusinessEmployee.business_owner_id == business_owner_id,
                BusinessEmployee.status == "active",
            )
            .first()
        )

    @staticmethod
    def get_active_employees_for_user(db: Session, user_id: int) -> list[BusinessEmployee]:
        """A user may work for more than one business"""
        return (
            db.query(BusinessEmployee)
            .filter(BusinessEmployee.user_id == user_id, BusinessEmployee.status == "active")
            .all()
        )

    @staticmethod
    def get_appointment(db: Session, appointment_id: int, for_update: bool = False) -> Optional[Appointment]:
        """With for_update the row stays locked until commit, serialising capacity checks"""
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    # Assignments
    @staticmethod
    def get_assignment(db: Session, assignment_id: int) -> Optional[EmployeeJobAssignment]:
        return db.query(EmployeeJobAssignment).filter(EmployeeJobAssignment.id == assignment_id).first()

    @staticmethod
    def get_owned_assignment(
        db: Session, assignment_id: int, business_owner_id: int
    ) -> Optional[EmployeeJobAssignment]:
        return (
            db.query(EmployeeJobAssignment)
            .filter(
                EmployeeJobAssignment.id == assignment_id,
                EmployeeJobAssignment.business_owner_id == business_owner_id,
            )
            .first()
        )

    @staticmethod
    def find_active_assignment(db: Session, appointment_id: int, assignee_key: str) -> Optional[EmployeeJobAssignment]:
        return (
            db.query(EmployeeJobAssignment)
            .filter(
                EmployeeJobAssignment.appointment_id == appointment_id,
                EmployeeJobAssignment.assignee_key == assignee_key,
                EmployeeJobAssignment.status.in_(ACTIVE_STATUSES),
            )
            .first()
        )

    @staticmethod
    def count_active_for_appointment(db: Session, appointment_id: int) -> int:
        return (
            db.query(func.count(EmployeeJobAssignment.id))
            .filter(
                EmployeeJobAssignment.appointment_id == appointment_id,
                EmployeeJobAssignment.status.in_(ACTIVE_STATUSES),
            )
            .scalar()
        )

    @staticmethod
    def list_for_appointment(db: Session, appointment_id: int) -> list[EmployeeJobAssignment]:
        return (
            db.query(EmployeeJobAssignment)
            .filter(EmployeeJobAssignment.appointment_id == appointment_id)
            .order_by(EmployeeJobAssignment.id.asc())
            .all()
        )

    @staticmethod
    def list_by_employee(
        db: Session,
        employee_id: int,
        statuses: Optional[list[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[EmployeeJobAssignment]:
        query = (
            db.query(EmployeeJobAssignment)
            .join(Appointment, EmployeeJobAssignment.appointment_id == Appointment.id)
            .options(joinedload(EmployeeJobAssignment.appointment).joinedload(Appointment.home))
            .filter(EmployeeJobAssignment.business_employee_id == employee_id)
        )
        if statuses:
            query = query.filter(EmployeeJobAssignment.status.in_(statuses))
        if start:
            query = query.filter(Appointment.scheduled_date >= start)
        if end:
            query = query.filter(Appointment.scheduled_date <= end)
        return query.order_by(Appointment.scheduled_date.asc()).all()

    @staticmethod
    def list_upcoming(
        db: Session, business_owner_id: int, start: datetime, end: datetime
    ) -> list[EmployeeJobAssignment]:
        return (
            db.query(EmployeeJobAssignment)
            .join(Appointment, EmployeeJobAssignment.appointment_id == Appointment.id)
            .options(
                joinedload(EmployeeJobAssignment.appointment),
                joinedload(EmployeeJobAssignment.employee),
            )
            .filter(
                EmployeeJobAssignment.business_owner_id == business_owner_id,
                EmployeeJobAssignment.status.in_(ACTIVE_STATUSES),
                Appointment.scheduled_date >= start,
                Appointment.scheduled_date <= end,
            )
            .order_by(Appointment.scheduled_date.asc())
            .all()
        )

    @staticmethod
    def list_unpaid(
        db: Session, business_owner_id: int, employee_id: Optional[int] = None
    ) -> list[EmployeeJobAssignment]:
        """Completed employee jobs with pay still owed; self-assignments and zero-pay rows are skipped"""
        query = db.query(EmployeeJobAssignment).filter(
            EmployeeJobAssignment.business_owner_id == business_owner_id,
            EmployeeJobAssignment.status == "completed",
            EmployeeJobAssignment.payout_status == "pending",
            EmployeeJobAssignment.is_self_assignment == False,  # noqa: E712
            EmployeeJobAssignment.pay_amount > 0,
        )
        if employee_id:
            query = query.filter(EmployeeJobAssignment.business_employee_id == employee_id)
        return query.order_by(EmployeeJobAssignment.completed_at.asc()).all()

    # Pay audit
    @staticmethod
    def list_pay_changes(db: Session, assignment_id: int) -> list[EmployeePayChangeLog]:
        return (
            db.query(EmployeePayChangeLog)
            .filter(EmployeePayChangeLog.employee_job_assignment_id == assignment_id)
            .order_by(EmployeePayChangeLog.changed_at.desc(), EmployeePayChangeLog.id.desc())
            .all()
        )
