"""Job flow template repository - Database operations for templates and checklists"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import CleanerClient, Home
from ...models_jobflow import (
    AppointmentJobFlow,
    ChecklistVersion,
    ClientJobFlowAssignment,
    CustomJobFlow,
    CustomJobFlowChecklist,
)


class JobFlowTemplateRepository:
    """Repository for job flow template database operations"""

    @staticmethod
    def get_flow(db: Session, flow_id: int, business_owner_id: int) -> Optional[CustomJobFlow]:
        """Get a template by ID, scoped to its owner"""
        return (
            db.query(CustomJobFlow)
            .filter(CustomJobFlow.id == flow_id, CustomJobFlow.business_owner_id == business_owner_id)
            .first()
        )

    @staticmethod
    def get_active_flow(db: Session, flow_id: int, business_owner_id: int) -> Optional[CustomJobFlow]:
        return (
            db.query(CustomJobFlow)
            .filter(
                CustomJobFlow.id == flow_id,
                CustomJobFlow.business_owner_id == business_owner_id,
                CustomJobFlow.status == "active",
            )
            .first()
        )

    @staticmethod
    def list_flows(db: Session, business_owner_id: int, status: str = "active") -> list[CustomJobFlow]:
        """Default template first, then alphabetical"""
        return (
            db.query(CustomJobFlow)
            .filter(CustomJobFlow.business_owner_id == business_owner_id, CustomJobFlow.status == status)
            .order_by(CustomJobFlow.is_default.desc(), CustomJobFlow.name.asc())
            .all()
        )

    @staticmethod
    def get_default_flow(db: Session, business_owner_id: int) -> Optional[CustomJobFlow]:
        return (
            db.query(CustomJobFlow)
            .filter(
                CustomJobFlow.business_owner_id == business_owner_id,
                CustomJobFlow.is_default == True,  # noqa: E712
                CustomJobFlow.status == "active",
            )
            .first()
        )

    @staticmethod
    def unset_defaults(db: Session, business_owner_id: int) -> None:
        db.query(CustomJobFlow).filter(
            CustomJobFlow.business_owner_id == business_owner_id,
            CustomJobFlow.is_default == True,  # noqa: E712
        ).update({"is_default": False}, synchronize_session="fetch")

    @staticmethod
    def add(db: Session, obj):
        db.add(obj)
        db.flush()
        return obj

    @staticmethod
    def count_instances_using(db: Session, flow_id: int) -> int:
        return (
            db.query(func.count(AppointmentJobFlow.id))
            .filter(AppointmentJobFlow.custom_job_flow_id == flow_id)
            .scalar()
        )

    # Checklists
    @staticmethod
    def get_checklist(db: Session, flow_id: int) -> Optional[CustomJobFlowChecklist]:
        return (
            db.query(CustomJobFlowChecklist)
            .filter(CustomJobFlowChecklist.custom_job_flow_id == flow_id)
            .first()
        )

    @staticmethod
    def delete_checklist(db: Session, flow_id: int) -> int:
        return (
            db.query(CustomJobFlowChecklist)
            .filter(CustomJobFlowChecklist.custom_job_flow_id == flow_id)
            .delete(synchronize_session="fetch")
        )

    # Client / home flow assignments
    @staticmethod
    def get_active_client_relation(
        db: Session, business_owner_id: int, client_user_id: int
    ) -> Optional[CleanerClient]:
        return (
            db.query(CleanerClient)
            .filter(
                CleanerClient.cleaner_id == business_owner_id,
                CleanerClient.client_id == client_user_id,
                CleanerClient.status == "active",
            )
            .first()
        )

    @staticmethod
    def get_active_client_relation_by_id(
        db: Session, business_owner_id: int, cleaner_client_id: int
    ) -> Optional[CleanerClient]:
        return (
            db.query(CleanerClient)
            .filter(
                CleanerClient.id == cleaner_client_id,
                CleanerClient.cleaner_id == business_owner_id,
                CleanerClient.status == "active",
            )
            .first()
        )

    @staticmethod
    def get_home(db: Session, home_id: int) -> Optional[Home]:
        return db.query(Home).filter(Home.id == home_id).first()

    @staticmethod
    def get_home_assignment(
        db: Session, business_owner_id: int, home_id: int
    ) -> Optional[ClientJobFlowAssignment]:
        return (
            db.query(ClientJobFlowAssignment)
            .filter(
                ClientJobFlowAssignment.business_owner_id == business_owner_id,
                ClientJobFlowAssignment.home_id == home_id,
            )
            .first()
        )

    @staticmethod
    def get_client_assignment(
        db: Session, business_owner_id: int, cleaner_client_id: int
    ) -> Optional[ClientJobFlowAssignment]:
        """Client-level row (not pinned to a home)"""
        return (
            db.query(ClientJobFlowAssignment)
            .filter(
                ClientJobFlowAssignment.business_owner_id == business_owner_id,
                ClientJobFlowAssignment.cleaner_client_id == cleaner_client_id,
                ClientJobFlowAssignment.home_id.is_(None),
            )
            .first()
        )

    @staticmethod
    def get_flow_assignment(
        db: Session, assignment_id: int, business_owner_id: int
    ) -> Optional[ClientJobFlowAssignment]:
        return (
            db.query(ClientJobFlowAssignment)
            .filter(
                ClientJobFlowAssignment.id == assignment_id,
                ClientJobFlowAssignment.business_owner_id == business_owner_id,
            )
            .first()
        )

    @staticmethod
    def list_flow_assignments(db: Session, business_owner_id: int) -> list[ClientJobFlowAssignment]:
        return (
            db.query(ClientJobFlowAssignment)
            .filter(ClientJobFlowAssignment.business_owner_id == business_owner_id)
            .order_by(ClientJobFlowAssignment.id.desc())
            .all()
        )

    @staticmethod
    def delete_flow_assignments_for_flow(db: Session, flow_id: int) -> int:
        return (
            db.query(ClientJobFlowAssignment)
            .filter(ClientJobFlowAssignment.custom_job_flow_id == flow_id)
            .delete(synchronize_session="fetch")
        )

    # Platform checklist versions
    @staticmethod
    def get_active_platform_checklist(db: Session) -> Optional[ChecklistVersion]:
        return (
            db.query(ChecklistVersion)
            .filter(ChecklistVersion.is_active == True)  # noqa: E712
            .order_by(ChecklistVersion.version.desc())
            .first()
        )

    @staticmethod
    def get_platform_checklist(db: Session, version_id: int) -> Optional[ChecklistVersion]:
        return db.query(ChecklistVersion).filter(ChecklistVersion.id == version_id).first()

    @staticmethod
    def latest_platform_version_number(db: Session) -> int:
        return db.query(func.max(ChecklistVersion.version)).scalar() or 0

    @staticmethod
    def deactivate_platform_checklists(db: Session) -> None:
        db.query(ChecklistVersion).filter(
            ChecklistVersion.is_active == True  # noqa: E712
        ).update({"is_active": False}, synchronize_session="fetch")
