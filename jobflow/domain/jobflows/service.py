"""Job flow instance service - Frozen per-job checklists, progress, photos and completion gating"""

import copy
import logging
from typing import Callable, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import atomic
from ...exceptions import (
    REQUIREMENT_MESSAGES,
    AlreadyExistsError,
    CompletionValidationError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from ...models_jobflow import PLATFORM_PHOTO_REQUIREMENT, AppointmentJobFlow, ChecklistVersion
from ..templates.repository import JobFlowTemplateRepository
from . import progress as checklist_progress
from .repository import JobFlowInstanceRepository
from .schemas import FlowResolution, ItemStatusUpdate

logger = logging.getLogger(__name__)

PlatformChecklistSource = Callable[[Session], Optional[ChecklistVersion]]


class JobFlowInstanceService:
    """Service layer for per-appointment job flows"""

    def __init__(self, db: Session, platform_checklist_source: Optional[PlatformChecklistSource] = None):
        self.db = db
        self.repo = JobFlowInstanceRepository()
        self.platform_checklist_source = (
            platform_checklist_source or JobFlowTemplateRepository.get_active_platform_checklist
        )

    # ========== Lifecycle ==========

    def _source_checklist(self, resolution: FlowResolution) -> tuple[Optional[dict], Optional[int]]:
        """(checklist structure, platform version) the new snapshot is copied from"""
        if resolution.uses_platform_flow:
            platform = self.platform_checklist_source(self.db)
            if not platform:
                logger.warning("⚠️ No active platform checklist; marketplace job gets photo gating only")
                return None, None
            return platform.snapshot_data, platform.version

        if resolution.custom_job_flow_id:
            checklist = self.repo.get_flow_checklist(self.db, resolution.custom_job_flow_id)
            if checklist:
                return checklist.snapshot_data, None

        return None, None

    @staticmethod
    def _freeze(snapshot: Optional[dict]) -> tuple[Optional[dict], Optional[dict]]:
        """Deep copy a checklist and build its all-pending progress; (None, None) without sections"""
        if not snapshot or not snapshot.get("sections"):
            return None, None
        frozen = copy.deepcopy(snapshot)
        return frozen, checklist_progress.initialize_progress(frozen)

    def _build_instance(self, appointment_id: int, resolution: FlowResolution) -> AppointmentJobFlow:
        source, platform_version = self._source_checklist(resolution)
        snapshot, progress = self._freeze(source)

        return AppointmentJobFlow(
            appointment_id=appointment_id,
            custom_job_flow_id=resolution.custom_job_flow_id,
            uses_platform_flow=resolution.uses_platform_flow,
            platform_checklist_version=platform_version,
            checklist_snapshot_data=snapshot,
            checklist_progress=progress,
            checklist_completed=bool(snapshot) and checklist_progress.is_checklist_complete(progress),
            photo_requirement=resolution.photo_requirement,
            before_photo_count=0,
            after_photo_count=0,
            photos_completed=False,
        )

    def _insert_instance(self, instance: AppointmentJobFlow) -> bool:
        """
        Insert under a savepoint.

        Returns False when the appointment already has a job flow (the unique
        index fired); the enclosing transaction stays usable either way.
        """
        try:
            with self.db.begin_nested():
                self.repo.add(self.db, instance)
        except IntegrityError:
            return False
        return True

    def create_instance(self, appointment_id: int, resolution: FlowResolution) -> AppointmentJobFlow:
        """Create the job flow for an appointment; one per appointment"""
        with atomic(self.db):
            if self.repo.get_by_appointment(self.db, appointment_id):
                raise AlreadyExistsError("AppointmentJobFlow", f"appointment {appointment_id} already has one")

            instance = self._build_instance(appointment_id, resolution)
            if not self._insert_instance(instance):
                raise AlreadyExistsError("AppointmentJobFlow", f"appointment {appointment_id} already has one")

        logger.info(
            f"📋 Created job flow {instance.id} for appointment {appointment_id} (source: {resolution.source})"
        )
        return instance

    def get_or_create(self, appointment_id: int, resolution: FlowResolution) -> AppointmentJobFlow:
        """Job flow for the appointment, creating it on first use; safe under concurrent first assignments"""
        with atomic(self.db):
            existing = self.repo.get_by_appointment(self.db, appointment_id)
            if existing:
                return existing

            instance = self._build_instance(appointment_id, resolution)
            if not self._insert_instance(instance):
                # Another request created it between our lookup and insert
                logger.info(f"🔁 Job flow for appointment {appointment_id} created concurrently, reusing it")
                return self.repo.get_by_appointment(self.db, appointment_id)

        logger.info(
            f"📋 Created job flow {instance.id} for appointment {appointment_id} (source: {resolution.source})"
        )
        return instance

    def get_by_appointment(self, appointment_id: int) -> Optional[AppointmentJobFlow]:
        return self.repo.get_by_appointment(self.db, appointment_id)

    def get_instance(self, instance_id: int) -> AppointmentJobFlow:
        instance = self.repo.get_by_id(self.db, instance_id)
        if not instance:
            raise NotFoundError("AppointmentJobFlow", instance_id)
        return instance

    def get_for_assignment(self, assignment_id: int) -> Optional[AppointmentJobFlow]:
        """Job flow linked to an assignment; None for legacy assignments"""
        assignment = self.repo.get_assignment(self.db, assignment_id)
        if not assignment:
            raise NotFoundError("EmployeeJobAssignment", assignment_id)
        if not assignment.appointment_job_flow_id:
            return None
        return self.repo.get_by_id(self.db, assignment.appointment_job_flow_id)

    def enforce_platform_template(self, appointment_id: int) -> AppointmentJobFlow:
        """
        Switch a job over to the platform checklist with platform photo rules.

        Used when a job is reclassified as marketplace after its flow was
        created. Items present in both checklists keep their status. Running
        it again against the same platform version changes nothing.
        """
        with atomic(self.db):
            instance = self.repo.get_by_appointment(self.db, appointment_id)
            if not instance:
                return self.create_instance(
                    appointment_id,
                    FlowResolution(
                        uses_platform_flow=True,
                        photo_requirement=PLATFORM_PHOTO_REQUIREMENT,
                        source="marketplace",
                    ),
                )

            platform = self.platform_checklist_source(self.db)
            platform_version = platform.version if platform else None

            if (
                instance.uses_platform_flow
                and instance.photo_requirement == PLATFORM_PHOTO_REQUIREMENT
                and instance.platform_checklist_version == platform_version
            ):
                return instance

            snapshot, progress = self._freeze(platform.snapshot_data if platform else None)
            if progress is not None:
                progress = checklist_progress.carry_over_progress(instance.checklist_progress, progress)

            instance.uses_platform_flow = True
            instance.custom_job_flow_id = None
            instance.custom_flow = None
            instance.photo_requirement = PLATFORM_PHOTO_REQUIREMENT
            instance.platform_checklist_version = platform_version
            instance.checklist_snapshot_data = snapshot
            instance.checklist_progress = progress
            instance.checklist_completed = bool(snapshot) and checklist_progress.is_checklist_complete(progress)

        logger.info(f"🔒 Enforced platform checklist v{platform_version} on appointment {appointment_id}")
        return instance

    # ========== Checklist ==========

    @staticmethod
    def is_checklist_complete(progress: Optional[dict]) -> bool:
        return checklist_progress.is_checklist_complete(progress)

    def get_checklist(self, instance_id: int) -> dict:
        instance = self.get_instance(instance_id)
        total_items, done_items = checklist_progress.count_items(instance.checklist_progress)
        return {
            "instance_id": instance.id,
            "appointment_id": instance.appointment_id,
            "has_checklist": instance.has_checklist(),
            "snapshot": instance.checklist_snapshot_data,
            "progress": instance.checklist_progress,
            "checklist_completed": instance.checklist_completed,
            "total_items": total_items,
            "completed_items": done_items,
            "completion_percentage": checklist_progress.completion_percentage(instance.checklist_progress),
            "job_notes": instance.custom_flow.job_notes if instance.custom_flow else None,
            "employee_notes": instance.employee_notes,
        }

    def _require_checklist(self, instance: AppointmentJobFlow) -> None:
        if not instance.has_checklist():
            raise InvalidStateError(f"Job flow {instance.id} has no checklist")

    def _store_progress(self, instance: AppointmentJobFlow, progress: dict) -> None:
        instance.checklist_progress = progress
        instance.checklist_completed = checklist_progress.is_checklist_complete(progress)

    def update_item_status(
        self,
        instance_id: int,
        section_id: str,
        item_id: str,
        status: Union[bool, str, None],
    ) -> AppointmentJobFlow:
        """Mark one item completed, not applicable, or pending (None)"""
        normalized = checklist_progress.normalize_status(status)
        with atomic(self.db):
            instance = self.get_instance(instance_id)
            self._require_checklist(instance)
            progress = checklist_progress.apply_item_status(
                instance.checklist_progress, section_id, item_id, normalized
            )
            self._store_progress(instance, progress)
        return instance

    def bulk_update(self, instance_id: int, updates: dict) -> AppointmentJobFlow:
        """
        Apply many item updates at once.

        Args:
            updates: {section_id: [{"item_id", "status"} | {"item_id", "completed": bool}]}

        Every record is validated before anything is written.
        """
        if not isinstance(updates, dict):
            raise InvalidInputError("Bulk updates must map section ids to item updates")

        parsed = []
        for section_id, records in updates.items():
            if not isinstance(records, list):
                raise InvalidInputError(f"Updates for section {section_id} must be a list")
            for record in records:
                try:
                    update = ItemStatusUpdate.model_validate(record)
                except ValidationError as e:
                    raise InvalidInputError(
                        f"Invalid checklist update in section {section_id}", details={"errors": e.errors()}
                    ) from e
                parsed.append((section_id, update.item_id, checklist_progress.normalize_status(update.status)))

        with atomic(self.db):
            instance = self.get_instance(instance_id)
            self._require_checklist(instance)
            progress = instance.checklist_progress
            for section_id, item_id, status in parsed:
                progress = checklist_progress.apply_item_status(progress, section_id, item_id, status)
            self._store_progress(instance, progress)

        logger.info(f"✅ Applied {len(parsed)} checklist updates to job flow {instance_id}")
        return instance

    def update_employee_notes(self, instance_id: int, notes: Optional[str]) -> AppointmentJobFlow:
        with atomic(self.db):
            instance = self.get_instance(instance_id)
            instance.employee_notes = notes
        return instance

    # ========== Photos ==========

    def update_photo_counts(self, instance_id: int, employee_user_id: int) -> AppointmentJobFlow:
        """Recount before/after photos uploaded by this employee for the job"""
        with atomic(self.db):
            instance = self.get_instance(instance_id)
            counts = self.repo.count_photos(self.db, instance.appointment_id, employee_user_id)
            instance.before_photo_count = counts.get("before", 0)
            instance.after_photo_count = counts.get("after", 0)
            instance.photos_completed = instance.before_photo_count > 0 and instance.after_photo_count > 0
        return instance

    def can_skip_photos(self, instance_id: int) -> bool:
        return not self.get_instance(instance_id).requires_photos()

    # ========== Completion ==========

    @staticmethod
    def get_missing_requirements(instance: AppointmentJobFlow) -> list[str]:
        """Every unmet completion requirement, in a stable order"""
        missing = []
        if instance.requires_photos():
            if not instance.before_photo_count:
                missing.append("before_photos")
            if not instance.after_photo_count:
                missing.append("after_photos")

        if (
            instance.photo_requirement == PLATFORM_PHOTO_REQUIREMENT
            and instance.has_checklist()
            and not checklist_progress.is_checklist_complete(instance.checklist_progress)
        ):
            missing.append("checklist")
        return missing

    def validate_completion(self, instance_id: int) -> bool:
        """Raise CompletionValidationError listing everything still missing"""
        instance = self.get_instance(instance_id)
        missing = self.get_missing_requirements(instance)
        if missing:
            raise CompletionValidationError(missing)
        return True

    def get_completion_status(self, instance_id: int) -> dict:
        instance = self.get_instance(instance_id)
        missing = self.get_missing_requirements(instance)
        return {
            "instance_id": instance.id,
            "has_job_flow": True,
            "is_marketplace_flow": instance.is_marketplace_flow(),
            "photo_requirement": instance.photo_requirement,
            "before_photo_count": instance.before_photo_count,
            "after_photo_count": instance.after_photo_count,
            "photos_completed": instance.photos_completed,
            "has_checklist": instance.has_checklist(),
            "checklist_completed": instance.checklist_completed,
            "checklist_completion_percentage": checklist_progress.completion_percentage(
                instance.checklist_progress
            ),
            "can_complete": not missing,
            "missing_requirements": missing,
            "messages": [REQUIREMENT_MESSAGES.get(code, code) for code in missing],
            "job_notes": instance.custom_flow.job_notes if instance.custom_flow else None,
            "employee_notes": instance.employee_notes,
        }

    def get_flow_details_for_assignment(self, assignment_id: int) -> dict:
        """Everything the employee app shows for a job's flow"""
        assignment = self.repo.get_assignment(self.db, assignment_id)
        if not assignment:
            raise NotFoundError("EmployeeJobAssignment", assignment_id)

        instance = (
            self.repo.get_by_id(self.db, assignment.appointment_job_flow_id)
            if assignment.appointment_job_flow_id
            else None
        )
        if not instance:
            # Legacy or flexible job: nothing gates completion here
            return {
                "assignment_id": assignment.id,
                "has_job_flow": False,
                "can_complete": True,
                "missing_requirements": [],
            }

        details = self.get_completion_status(instance.id)
        details.update(
            {
                "assignment_id": assignment.id,
                "flow_name": instance.custom_flow.name if instance.custom_flow else None,
                "uses_platform_flow": instance.uses_platform_flow,
                "checklist": instance.checklist_snapshot_data,
                "checklist_progress": instance.checklist_progress,
                "can_skip_photos": not instance.requires_photos(),
                "photos_hidden": instance.photos_hidden(),
            }
        )
        return details
