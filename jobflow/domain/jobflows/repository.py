"""Job flow instance repository - Database operations for per-appointment job flows"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Appointment, BusinessEmployee, JobPhoto
from ...models_assignment import EmployeeJobAssignment
from ...models_jobflow import AppointmentJobFlow, CustomJobFlow, CustomJobFlowChecklist


class JobFlowInstanceRepository:
    """Repository for appointment job flow database operations"""

    @staticmethod
    def get_by_id(db: Session, instance_id: int) -> Optional[AppointmentJobFlow]:
        return db.query(AppointmentJobFlow).filter(AppointmentJobFlow.id == instance_id).first()

    @staticmethod
    def get_by_appointment(db: Session, appointment_id: int) -> Optional[AppointmentJobFlow]:
        return db.query(AppointmentJobFlow).filter(AppointmentJobFlow.appointment_id == appointment_id).first()

    @staticmethod
    def add(db: Session, instance: AppointmentJobFlow) -> AppointmentJobFlow:
        db.add(instance)
        db.flush()
        return instance

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_assignment(db: Session, assignment_id: int) -> Optional[EmployeeJobAssignment]:
        return db.query(EmployeeJobAssignment).filter(EmployeeJobAssignment.id == assignment_id).first()

    @staticmethod
    def get_employee(db: Session, employee_id: int) -> Optional[BusinessEmployee]:
        return db.query(BusinessEmployee).filter(BusinessEmployee.id == employee_id).first()

    @staticmethod
    def get_flow(db: Session, flow_id: int) -> Optional[CustomJobFlow]:
        """Template by ID regardless of status (instances keep archived templates alive)"""
        return db.query(CustomJobFlow).filter(CustomJobFlow.id == flow_id).first()

    @staticmethod
    def get_flow_checklist(db: Session, flow_id: int) -> Optional[CustomJobFlowChecklist]:
        return (
            db.query(CustomJobFlowChecklist)
            .filter(CustomJobFlowChecklist.custom_job_flow_id == flow_id)
            .first()
        )

    @staticmethod
    def count_photos(db: Session, appointment_id: int, uploader_id: int) -> dict[str, int]:
        """Photo counts by type for one appointment and uploader, in one query"""
        rows = (
            db.query(JobPhoto.photo_type, func.count(JobPhoto.id))
            .filter(JobPhoto.appointment_id == appointment_id, JobPhoto.cleaner_id == uploader_id)
            .group_by(JobPhoto.photo_type)
            .all()
        )
        return {photo_type: count for photo_type, count in rows}
