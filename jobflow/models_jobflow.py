"""
Job Flow Models for per-business workflow templates and per-job snapshots
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

PHOTO_REQUIREMENTS = ("optional", "required", "hidden")
PLATFORM_PHOTO_REQUIREMENT = "platform_required"


class CustomJobFlow(Base):
    """Named workflow template owned by a business (checklist + photo rule + notes)"""

    __tablename__ = "custom_job_flows"

    id = Column(Integer, primary_key=True, index=True)
    business_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    photo_requirement = Column(String(20), default="optional", nullable=False)  # optional, required, hidden
    job_notes = Column(Text, nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default="active", nullable=False, index=True)  # active, archived

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    checklist = relationship("CustomJobFlowChecklist", back_populates="flow", uselist=False)

    def is_active(self) -> bool:
        return self.status == "active"


class CustomJobFlowChecklist(Base):
    __tablename__ = "custom_job_flow_checklists"

    id = Column(Integer, primary_key=True, index=True)
    custom_job_flow_id = Column(
        Integer, ForeignKey("custom_job_flows.id"), nullable=False, unique=True, index=True
    )
    forked_from_platform_version = Column(Integer, nullable=True)
    snapshot_data = Column(JSON, nullable=True)  # {"sections": [{"id", "name", "items": [...]}]}

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    flow = relationship("CustomJobFlow", back_populates="checklist")


class ClientJobFlowAssignment(Base):
    """Pins a template to a client (home_id null) or to one of their homes"""

    __tablename__ = "client_job_flow_assignments"
    __table_args__ = (
        UniqueConstraint(
            "business_owner_id", "cleaner_client_id", "home_id", name="uq_flow_assignment_target"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    cleaner_client_id = Column(Integer, ForeignKey("cleaner_clients.id"), nullable=True, index=True)
    home_id = Column(Integer, ForeignKey("user_homes.id"), nullable=True, index=True)
    custom_job_flow_id = Column(Integer, ForeignKey("custom_job_flows.id"), nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    flow = relationship("CustomJobFlow")
    cleaner_client = relationship("CleanerClient")
    home = relationship("Home")


class ChecklistVersion(Base):
    """Append-only published platform checklist; exactly one row is active"""

    __tablename__ = "checklist_versions"

    id = Column(Integer, primary_key=True, index=True)
    version = Column(Integer, unique=True, nullable=False)
    snapshot_data = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False, index=True)
    published_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    published_at = Column(DateTime, server_default=func.now())


class AppointmentJobFlow(Base):
    """Frozen per-appointment copy of the resolved workflow plus progress"""

    __tablename__ = "appointment_job_flows"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(
        Integer, ForeignKey("user_appointments.id"), nullable=False, unique=True, index=True
    )
    custom_job_flow_id = Column(Integer, ForeignKey("custom_job_flows.id"), nullable=True)
    uses_platform_flow = Column(Boolean, default=False, nullable=False)
    platform_checklist_version = Column(Integer, nullable=True)

    # Checklist snapshot and progress ({section_id: {"total", "completed", "na"}})
    checklist_snapshot_data = Column(JSON, nullable=True)
    checklist_progress = Column(JSON, nullable=True)
    checklist_completed = Column(Boolean, default=False, nullable=False)

    # Photos: optional, required, hidden, platform_required
    photo_requirement = Column(String(20), default="optional", nullable=False)
    before_photo_count = Column(Integer, default=0, nullable=False)
    after_photo_count = Column(Integer, default=0, nullable=False)
    photos_completed = Column(Boolean, default=False, nullable=False)

    employee_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    custom_flow = relationship("CustomJobFlow")
    appointment = relationship("Appointment")

    def has_checklist(self) -> bool:
        return bool(self.checklist_snapshot_data and self.checklist_snapshot_data.get("sections"))

    def requires_photos(self) -> bool:
        return self.photo_requirement in ("required", PLATFORM_PHOTO_REQUIREMENT)

    def photos_hidden(self) -> bool:
        return self.photo_requirement == "hidden"

    def is_marketplace_flow(self) -> bool:
        return bool(self.uses_platform_flow)
