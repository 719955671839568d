"""Job flow template service - Business logic for templates, checklists and flow assignment"""

import copy
import logging
from typing import Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...database import atomic
from ...exceptions import AlreadyExistsError, InvalidInputError, InvalidStateError, NotFoundError
from ...models_jobflow import (
    ChecklistVersion,
    ClientJobFlowAssignment,
    CustomJobFlow,
    CustomJobFlowChecklist,
)
from .repository import JobFlowTemplateRepository
from .schemas import ChecklistData, JobFlowCreate, JobFlowUpdate

logger = logging.getLogger(__name__)


def parse_checklist(data: Union[ChecklistData, dict]) -> dict:
    """Validate checklist structure and return the JSON that gets stored"""
    if isinstance(data, ChecklistData):
        checklist = data
    else:
        try:
            checklist = ChecklistData.model_validate(data)
        except ValidationError as e:
            raise InvalidInputError("Invalid checklist structure", details={"errors": e.errors()}) from e
    return checklist.model_dump(exclude_none=True)


class JobFlowTemplateService:
    """Service layer for the workflow template store"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = JobFlowTemplateRepository()

    # ========== Templates ==========

    def create_flow(self, business_owner_id: int, data: JobFlowCreate) -> CustomJobFlow:
        """Create a template, optionally taking over as the business default"""
        with atomic(self.db):
            if data.is_default:
                self.repo.unset_defaults(self.db, business_owner_id)

            flow = self.repo.add(
                self.db,
                CustomJobFlow(
                    business_owner_id=business_owner_id,
                    name=data.name,
                    description=data.description,
                    photo_requirement=data.photo_requirement,
                    job_notes=data.job_notes,
                    is_default=data.is_default,
                    status="active",
                ),
            )

        logger.info(f"📝 Created job flow {flow.id} for business owner {business_owner_id}")
        return flow

    def get_flow(self, flow_id: int, business_owner_id: int) -> CustomJobFlow:
        """Get a template owned by this business"""
        flow = self.repo.get_flow(self.db, flow_id, business_owner_id)
        if not flow:
            raise NotFoundError("CustomJobFlow", flow_id)
        return flow

    def _get_active_flow(self, flow_id: int, business_owner_id: int) -> CustomJobFlow:
        flow = self.repo.get_active_flow(self.db, flow_id, business_owner_id)
        if not flow:
            raise NotFoundError("CustomJobFlow", flow_id)
        return flow

    def list_flows(self, business_owner_id: int, status: Optional[str] = None) -> list[CustomJobFlow]:
        return self.repo.list_flows(self.db, business_owner_id, status or "active")

    def update_flow(self, flow_id: int, business_owner_id: int, data: JobFlowUpdate) -> CustomJobFlow:
        """Update name, description, photo requirement and notes.

        In-flight jobs keep their own frozen copy, so edits only affect
        appointments assigned afterwards.
        """
        with atomic(self.db):
            flow = self.get_flow(flow_id, business_owner_id)
            for key, value in data.model_dump(exclude_unset=True).items():
                setattr(flow, key, value)
        return flow

    def archive_flow(self, flow_id: int, business_owner_id: int) -> CustomJobFlow:
        """Soft delete; an archived template can no longer be the default"""
        with atomic(self.db):
            flow = self.get_flow(flow_id, business_owner_id)
            flow.status = "archived"
            flow.is_default = False
        logger.info(f"🗄️ Archived job flow {flow_id}")
        return flow

    def delete_flow(self, flow_id: int, business_owner_id: int) -> None:
        """Permanently delete a template nobody's job is using"""
        with atomic(self.db):
            flow = self.get_flow(flow_id, business_owner_id)

            in_use_count = self.repo.count_instances_using(self.db, flow_id)
            if in_use_count > 0:
                raise InvalidStateError(
                    f"Cannot delete flow: {in_use_count} appointment(s) are using this flow. "
                    "Archive it instead."
                )

            self.repo.delete_flow_assignments_for_flow(self.db, flow_id)
            self.repo.delete_checklist(self.db, flow_id)
            self.db.delete(flow)
        logger.info(f"🗑️ Deleted job flow {flow_id}")

    def set_default_flow(self, business_owner_id: int, flow_id: Optional[int]) -> Optional[CustomJobFlow]:
        """Make a template the business default (None clears the default)"""
        with atomic(self.db):
            flow = None
            if flow_id:
                flow = self.get_flow(flow_id, business_owner_id)
                if not flow.is_active():
                    raise InvalidStateError("Archived flows cannot be the default", flow.status)

            self.repo.unset_defaults(self.db, business_owner_id)
            if flow:
                flow.is_default = True
        return flow

    def clear_default_flow(self, business_owner_id: int) -> None:
        with atomic(self.db):
            self.repo.unset_defaults(self.db, business_owner_id)

    # ========== Checklist Management ==========

    def create_checklist(
        self, flow_id: int, business_owner_id: int, data: Union[ChecklistData, dict]
    ) -> CustomJobFlowChecklist:
        """Create a checklist from scratch"""
        snapshot = parse_checklist(data)
        with atomic(self.db):
            self.get_flow(flow_id, business_owner_id)
            if self.repo.get_checklist(self.db, flow_id):
                raise AlreadyExistsError("Checklist", "use update instead")

            checklist = self.repo.add(
                self.db,
                CustomJobFlowChecklist(
                    custom_job_flow_id=flow_id,
                    forked_from_platform_version=None,
                    snapshot_data=snapshot,
                ),
            )
        return checklist

    def fork_platform_checklist(
        self, flow_id: int, business_owner_id: int, version_id: Optional[int] = None
    ) -> CustomJobFlowChecklist:
        """Copy a platform checklist (active one by default) into this template"""
        with atomic(self.db):
            self.get_flow(flow_id, business_owner_id)
            if self.repo.get_checklist(self.db, flow_id):
                raise AlreadyExistsError("Checklist", "delete it first to fork again")

            if version_id:
                platform_checklist = self.repo.get_platform_checklist(self.db, version_id)
            else:
                platform_checklist = self.repo.get_active_platform_checklist(self.db)

            if not platform_checklist:
                raise NotFoundError("ChecklistVersion", version_id)

            checklist = self.repo.add(
                self.db,
                CustomJobFlowChecklist(
                    custom_job_flow_id=flow_id,
                    forked_from_platform_version=platform_checklist.version,
                    snapshot_data=copy.deepcopy(platform_checklist.snapshot_data),
                ),
            )
        return checklist

    def get_checklist(self, flow_id: int, business_owner_id: int) -> Optional[CustomJobFlowChecklist]:
        self.get_flow(flow_id, business_owner_id)
        return self.repo.get_checklist(self.db, flow_id)

    def update_checklist(
        self, flow_id: int, business_owner_id: int, data: Union[ChecklistData, dict]
    ) -> CustomJobFlowChecklist:
        snapshot = parse_checklist(data)
        with atomic(self.db):
            self.get_flow(flow_id, business_owner_id)
            checklist = self.repo.get_checklist(self.db, flow_id)
            if not checklist:
                raise NotFoundError("Checklist")
            checklist.snapshot_data = snapshot
        return checklist

    def delete_checklist(self, flow_id: int, business_owner_id: int) -> None:
        with atomic(self.db):
            self.get_flow(flow_id, business_owner_id)
            self.repo.delete_checklist(self.db, flow_id)

    def add_item_notes(
        self, flow_id: int, business_owner_id: int, item_id: str, notes: Optional[str]
    ) -> CustomJobFlowChecklist:
        """Attach owner notes to a single checklist item"""
        with atomic(self.db):
            self.get_flow(flow_id, business_owner_id)
            checklist = self.repo.get_checklist(self.db, flow_id)
            if not checklist or not checklist.snapshot_data:
                raise NotFoundError("Checklist")

            data = copy.deepcopy(checklist.snapshot_data)
            item = next(
                (
                    item
                    for section in data.get("sections") or []
                    for item in section.get("items") or []
                    if item.get("id") == item_id
                ),
                None,
            )
            if item is None:
                raise NotFoundError("ChecklistItem", item_id)

            item["notes"] = notes
            checklist.snapshot_data = data
        return checklist

    # ========== Flow Assignment ==========

    def assign_flow_to_client(
        self, business_owner_id: int, cleaner_client_id: int, flow_id: int
    ) -> ClientJobFlowAssignment:
        """Use a template for every job of one of this business's clients"""
        with atomic(self.db):
            self._get_active_flow(flow_id, business_owner_id)

            relation = self.repo.get_active_client_relation_by_id(
                self.db, business_owner_id, cleaner_client_id
            )
            if not relation:
                raise NotFoundError("CleanerClient", cleaner_client_id)

            assignment = self.repo.get_client_assignment(self.db, business_owner_id, cleaner_client_id)
            if assignment:
                assignment.custom_job_flow_id = flow_id
            else:
                assignment = self.repo.add(
                    self.db,
                    ClientJobFlowAssignment(
                        business_owner_id=business_owner_id,
                        cleaner_client_id=cleaner_client_id,
                        home_id=None,
                        custom_job_flow_id=flow_id,
                    ),
                )
        return assignment

    def assign_flow_to_home(self, business_owner_id: int, home_id: int, flow_id: int) -> ClientJobFlowAssignment:
        """Use a template for every job at one home (outranks the client-level flow)"""
        with atomic(self.db):
            self._get_active_flow(flow_id, business_owner_id)

            home = self.repo.get_home(self.db, home_id)
            if not home:
                raise NotFoundError("Home", home_id)

            relation = self.repo.get_active_client_relation(self.db, business_owner_id, home.user_id)
            if not relation:
                # Homes of other businesses' clients are indistinguishable from missing ones
                raise NotFoundError("Home", home_id)

            assignment = self.repo.get_home_assignment(self.db, business_owner_id, home_id)
            if assignment:
                assignment.custom_job_flow_id = flow_id
            else:
                assignment = self.repo.add(
                    self.db,
                    ClientJobFlowAssignment(
                        business_owner_id=business_owner_id,
                        cleaner_client_id=relation.id,
                        home_id=home_id,
                        custom_job_flow_id=flow_id,
                    ),
                )
        return assignment

    def remove_flow_assignment(self, assignment_id: int, business_owner_id: int) -> None:
        with atomic(self.db):
            assignment = self.repo.get_flow_assignment(self.db, assignment_id, business_owner_id)
            if not assignment:
                raise NotFoundError("ClientJobFlowAssignment", assignment_id)
            self.db.delete(assignment)

    def get_flow_assignments(self, business_owner_id: int) -> list[ClientJobFlowAssignment]:
        return self.repo.list_flow_assignments(self.db, business_owner_id)

    # ========== Platform Checklist ==========

    def publish_platform_checklist(
        self, data: Union[ChecklistData, dict], published_by: Optional[int] = None
    ) -> ChecklistVersion:
        """Append a new platform checklist version and make it the only active one"""
        snapshot = parse_checklist(data)
        with atomic(self.db):
            next_version = self.repo.latest_platform_version_number(self.db) + 1
            self.repo.deactivate_platform_checklists(self.db)
            version = self.repo.add(
                self.db,
                ChecklistVersion(
                    version=next_version,
                    snapshot_data=snapshot,
                    is_active=True,
                    published_by=published_by,
                ),
            )
        logger.info(f"📋 Published platform checklist v{next_version}")
        return version

    def get_active_platform_checklist(self) -> Optional[ChecklistVersion]:
        return self.repo.get_active_platform_checklist(self.db)

    def get_platform_checklist(self, version_id: int) -> ChecklistVersion:
        version = self.repo.get_platform_checklist(self.db, version_id)
        if not version:
            raise NotFoundError("ChecklistVersion", version_id)
        return version
