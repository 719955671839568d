"""Report service - Timesheets, hours, workload distribution and employee earnings"""

from collections import defaultdict
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, BusinessEmployee
from ...models_assignment import ACTIVE_STATUSES, PAID_PAYOUT_STATUSES, EmployeeJobAssignment


class ReportService:
    """Aggregates over assignments for owner and employee dashboards"""

    def __init__(self, db: Session):
        self.db = db

    def _assignments_in_range(
        self,
        start: datetime,
        end: datetime,
        business_owner_id: Optional[int] = None,
        employee_ids: Optional[list[int]] = None,
        statuses: Optional[tuple] = None,
    ) -> list[EmployeeJobAssignment]:
        query = (
            self.db.query(EmployeeJobAssignment)
            .join(Appointment, EmployeeJobAssignment.appointment_id == Appointment.id)
            .options(
                joinedload(EmployeeJobAssignment.appointment),
                joinedload(EmployeeJobAssignment.employee),
            )
            .filter(Appointment.scheduled_date >= start, Appointment.scheduled_date <= end)
        )
        if business_owner_id is not None:
            query = query.filter(EmployeeJobAssignment.business_owner_id == business_owner_id)
        if employee_ids is not None:
            query = query.filter(EmployeeJobAssignment.business_employee_id.in_(employee_ids))
        if statuses:
            query = query.filter(EmployeeJobAssignment.status.in_(statuses))
        return query.order_by(Appointment.scheduled_date.asc(), EmployeeJobAssignment.id.asc()).all()

    @staticmethod
    def _employee_label(assignment: EmployeeJobAssignment) -> str:
        if assignment.employee:
            return assignment.employee.full_name or f"Employee {assignment.employee.id}"
        return "Owner"

    def get_timesheet(
        self,
        business_owner_id: int,
        start: datetime,
        end: datetime,
        employee_id: Optional[int] = None,
    ) -> list[dict]:
        """Completed jobs in range with start/finish times, hours and pay"""
        assignments = self._assignments_in_range(
            start,
            end,
            business_owner_id=business_owner_id,
            employee_ids=[employee_id] if employee_id else None,
            statuses=("completed",),
        )
        return [
            {
                "assignment_id": assignment.id,
                "appointment_id": assignment.appointment_id,
                "employee_id": assignment.business_employee_id,
                "employee_name": self._employee_label(assignment),
                "scheduled_date": assignment.appointment.scheduled_date,
                "started_at": assignment.started_at,
                "completed_at": assignment.completed_at,
                "hours_worked": assignment.hours_worked or 0,
                "pay_type": assignment.pay_type,
                "pay_amount": assignment.pay_amount,
                "payout_status": assignment.payout_status,
            }
            for assignment in assignments
        ]

    def get_employee_hours(self, business_owner_id: int, start: datetime, end: datetime) -> list[dict]:
        """Per-employee totals of completed jobs, hours and pay, busiest first"""
        totals = defaultdict(lambda: {"job_count": 0, "total_hours": 0.0, "total_pay": 0})
        names = {}
        for assignment in self._assignments_in_range(
            start, end, business_owner_id=business_owner_id, statuses=("completed",)
        ):
            row = totals[assignment.business_employee_id]
            row["job_count"] += 1
            row["total_hours"] += assignment.hours_worked or 0
            row["total_pay"] += assignment.pay_amount or 0
            names[assignment.business_employee_id] = self._employee_label(assignment)

        result = [
            {
                "employee_id": employee_id,
                "employee_name": names[employee_id],
                "job_count": row["job_count"],
                "total_hours": round(row["total_hours"], 2),
                "total_pay": row["total_pay"],
            }
            for employee_id, row in totals.items()
        ]
        return sorted(result, key=lambda row: (-row["total_hours"], row["employee_name"]))

    def get_workload_distribution(self, business_owner_id: int, start: datetime, end: datetime) -> dict:
        """How the business's jobs are spread across the team"""
        counts = defaultdict(lambda: {"active_jobs": 0, "completed_jobs": 0})
        names = {}
        for assignment in self._assignments_in_range(
            start,
            end,
            business_owner_id=business_owner_id,
            statuses=ACTIVE_STATUSES + ("completed",),
        ):
            row = counts[assignment.business_employee_id]
            if assignment.status == "completed":
                row["completed_jobs"] += 1
            else:
                row["active_jobs"] += 1
            names[assignment.business_employee_id] = self._employee_label(assignment)

        total_jobs = sum(row["active_jobs"] + row["completed_jobs"] for row in counts.values())
        employees = []
        for employee_id, row in counts.items():
            job_count = row["active_jobs"] + row["completed_jobs"]
            employees.append(
                {
                    "employee_id": employee_id,
                    "employee_name": names[employee_id],
                    "active_jobs": row["active_jobs"],
                    "completed_jobs": row["completed_jobs"],
                    "total_jobs": job_count,
                    "share_percent": round(job_count * 100 / total_jobs, 1) if total_jobs else 0.0,
                }
            )
        employees.sort(key=lambda row: (-row["total_jobs"], row["employee_name"]))
        return {"total_jobs": total_jobs, "employees": employees}

    def get_employee_earnings(self, employee_user_id: int, start: datetime, end: datetime) -> dict:
        """Earnings summary for the employee's own completed jobs, across all their businesses"""
        employee_ids = [
            employee.id
            for employee in self.db.query(BusinessEmployee).filter(BusinessEmployee.user_id == employee_user_id).all()
        ]
        if not employee_ids:
            return {
                "total_earnings": 0,
                "job_count": 0,
                "paid_count": 0,
                "pending_count": 0,
                "pending_amount": 0,
            }

        assignments = self._assignments_in_range(start, end, employee_ids=employee_ids, statuses=("completed",))
        paid = [a for a in assignments if a.payout_status in PAID_PAYOUT_STATUSES]
        pending = [a for a in assignments if a.payout_status not in PAID_PAYOUT_STATUSES]
        return {
            "total_earnings": sum(a.pay_amount or 0 for a in assignments),
            "job_count": len(assignments),
            "paid_count": len(paid),
            "pending_count": len(pending),
            "pending_amount": sum(a.pay_amount or 0 for a in pending),
        }
