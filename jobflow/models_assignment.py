"""
Employee Job Assignment Models for crew scheduling and pay tracking
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

ACTIVE_STATUSES = ("assigned", "started")
TERMINAL_STATUSES = ("completed", "no_show", "cancelled")
PAY_TYPES = ("flat_rate", "per_job", "hourly", "percentage")
PAID_PAYOUT_STATUSES = ("paid", "paid_outside_platform")

_ACTIVE_ROW = text("status IN ('assigned', 'started')")


def assignee_key_for(employee_id=None, business_owner_id=None) -> str:
    """Stable identity of whoever does the job: an employee or the owner themself"""
    if employee_id is not None:
        return f"employee:{employee_id}"
    return f"owner:{business_owner_id}"


class EmployeeJobAssignment(Base):
    """One employee (or the owner) working one appointment"""

    __tablename__ = "employee_job_assignments"
    __table_args__ = (
        # Store-level guard against two concurrent assign() calls for the same pair
        Index(
            "uq_active_assignment_per_assignee",
            "appointment_id",
            "assignee_key",
            unique=True,
            sqlite_where=_ACTIVE_ROW,
            postgresql_where=_ACTIVE_ROW,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_employee_id = Column(
        Integer, ForeignKey("business_employees.id"), nullable=True, index=True
    )  # null for self-assignment
    appointment_id = Column(Integer, ForeignKey("user_appointments.id"), nullable=False, index=True)
    business_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assignee_key = Column(String(50), nullable=False)

    assigned_at = Column(DateTime, nullable=True)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Status workflow: assigned → started → completed | no_show; assigned → cancelled
    status = Column(String(20), default="assigned", nullable=False, index=True)

    # Pay (cents)
    pay_amount = Column(Integer, default=0, nullable=False)
    pay_type = Column(String(20), default="flat_rate", nullable=False)
    pay_adjustment_reason = Column(Text, nullable=True)
    payout_status = Column(String(30), default="pending", nullable=False)  # pending, paid, paid_outside_platform

    is_self_assignment = Column(Boolean, default=False, nullable=False)
    is_marketplace_pickup = Column(Boolean, default=False, nullable=False)

    appointment_job_flow_id = Column(
        Integer, ForeignKey("appointment_job_flows.id"), nullable=True, index=True
    )
    # Legacy per-assignment checklist progress from before job flows existed
    checklist_progress = Column(JSON, nullable=True)

    # Execution
    started_at = Column(DateTime, nullable=True)
    started_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    hours_worked = Column(Float, nullable=True)

    # Start location check; location_verified stays null when it could not be evaluated
    start_latitude = Column(Float, nullable=True)
    start_longitude = Column(Float, nullable=True)
    start_distance_from_home = Column(Float, nullable=True)  # miles
    location_verified = Column(Boolean, nullable=True)

    guest_not_left_reported = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    employee = relationship("BusinessEmployee")
    appointment = relationship("Appointment")
    job_flow = relationship("AppointmentJobFlow")

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class EmployeePayChangeLog(Base):
    """Audit trail for manual pay adjustments"""

    __tablename__ = "employee_pay_change_logs"

    id = Column(Integer, primary_key=True, index=True)
    employee_job_assignment_id = Column(
        Integer, ForeignKey("employee_job_assignments.id"), nullable=False, index=True
    )
    business_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    previous_pay_amount = Column(Integer, nullable=True)
    new_pay_amount = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime, nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    changed_by_user = relationship("User", foreign_keys=[changed_by])
