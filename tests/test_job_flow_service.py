"""Tests for per-appointment job flows: snapshots, progress, photos and completion gating."""

import pytest

from jobflow.domain.jobflows.repository import JobFlowInstanceRepository
from jobflow.domain.jobflows.schemas import FlowResolution
from jobflow.domain.jobflows.service import JobFlowInstanceService
from jobflow.domain.templates.service import JobFlowTemplateService
from jobflow.exceptions import (
    AlreadyExistsError,
    CompletionValidationError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from jobflow.models_jobflow import AppointmentJobFlow

MARKETPLACE = FlowResolution(uses_platform_flow=True, photo_requirement="platform_required", source="marketplace")


@pytest.fixture()
def service(db):
    return JobFlowInstanceService(db)


def _custom(flow):
    return FlowResolution(custom_job_flow_id=flow.id, photo_requirement=flow.photo_requirement, source="default")


def _complete_all(service, instance):
    service.bulk_update(
        instance.id,
        {
            "kitchen": [{"item_id": "k1", "status": "completed"}, {"item_id": "k2", "status": "na"}],
            "bath": [{"item_id": "b1", "status": "completed"}],
        },
    )


# ── Lifecycle ────────────────────────────────────────────────────────────


def test_create_instance_freezes_template_checklist(db, service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data)
    appointment = factory.own_client_job(owner)

    instance = service.create_instance(appointment.id, _custom(flow))
    JobFlowTemplateService(db).update_checklist(
        flow.id, owner.id, {"sections": [{"id": "garage", "items": [{"id": "g1"}]}]}
    )

    refreshed = service.get_instance(instance.id)
    assert [s["id"] for s in refreshed.checklist_snapshot_data["sections"]] == ["kitchen", "bath"]
    assert refreshed.checklist_progress["kitchen"] == {"total": ["k1", "k2"], "completed": [], "na": []}
    assert refreshed.checklist_completed is False


def test_create_instance_twice_already_exists(service, factory) -> None:
    owner = factory.owner()
    appointment = factory.own_client_job(owner)
    service.create_instance(appointment.id, FlowResolution())

    with pytest.raises(AlreadyExistsError):
        service.create_instance(appointment.id, FlowResolution())


def test_get_or_create_is_idempotent(service, factory) -> None:
    owner = factory.owner()
    appointment = factory.own_client_job(owner)

    first = service.get_or_create(appointment.id, FlowResolution())
    second = service.get_or_create(appointment.id, MARKETPLACE)

    assert first.id == second.id
    assert second.uses_platform_flow is False


def test_get_or_create_reuses_instance_created_concurrently(db, service, factory, monkeypatch) -> None:
    appointment = factory.own_client_job(factory.owner())
    existing = service.create_instance(appointment.id, FlowResolution())
    real_lookup = JobFlowInstanceRepository.get_by_appointment
    lookups = []

    def stale_first_lookup(session, appointment_id):
        lookups.append(appointment_id)
        return None if len(lookups) == 1 else real_lookup(session, appointment_id)

    monkeypatch.setattr(JobFlowInstanceRepository, "get_by_appointment", staticmethod(stale_first_lookup))

    assert service.get_or_create(appointment.id, FlowResolution()).id == existing.id
    # The losing insert only rolled back its savepoint
    service.update_employee_notes(existing.id, "Side gate code 1234")
    assert db.query(AppointmentJobFlow).count() == 1


def test_marketplace_instance_uses_active_platform_checklist(service, factory, checklist_data) -> None:
    factory.platform_checklist(checklist_data, version=3)
    appointment = factory.marketplace_job()

    instance = service.create_instance(appointment.id, MARKETPLACE)

    assert instance.platform_checklist_version == 3
    assert instance.has_checklist() is True
    assert instance.photo_requirement == "platform_required"


def test_platform_checklist_source_is_injectable(db, factory, checklist_data) -> None:
    version = factory.platform_checklist(checklist_data, version=7, is_active=False)
    service = JobFlowInstanceService(db, platform_checklist_source=lambda _db: version)

    instance = service.create_instance(factory.marketplace_job().id, MARKETPLACE)

    assert instance.platform_checklist_version == 7


def test_get_instance_missing_is_not_found(service) -> None:
    with pytest.raises(NotFoundError):
        service.get_instance(12345)


# ── Checklist progress ───────────────────────────────────────────────────


def test_instance_without_checklist_rejects_item_updates(service, factory) -> None:
    owner = factory.owner()
    instance = service.create_instance(factory.own_client_job(owner).id, FlowResolution())

    assert instance.has_checklist() is False
    with pytest.raises(InvalidStateError):
        service.update_item_status(instance.id, "kitchen", "k1", "completed")


def test_update_item_status_recomputes_completion(service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data)
    instance = service.create_instance(factory.own_client_job(owner).id, _custom(flow))

    service.update_item_status(instance.id, "kitchen", "k1", True)
    service.update_item_status(instance.id, "kitchen", "k2", "na")
    assert service.get_instance(instance.id).checklist_completed is False

    service.update_item_status(instance.id, "bath", "b1", "completed")
    assert service.get_instance(instance.id).checklist_completed is True

    service.update_item_status(instance.id, "bath", "b1", False)
    assert service.get_instance(instance.id).checklist_completed is False


def test_update_item_status_rejects_unknown_status(service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data)
    instance = service.create_instance(factory.own_client_job(owner).id, _custom(flow))

    with pytest.raises(InvalidInputError):
        service.update_item_status(instance.id, "kitchen", "k1", "finished")


def test_bulk_update_applies_all_records(service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data)
    instance = service.create_instance(factory.own_client_job(owner).id, _custom(flow))

    _complete_all(service, instance)

    refreshed = service.get_instance(instance.id)
    assert refreshed.checklist_completed is True
    assert refreshed.checklist_progress["kitchen"]["na"] == ["k2"]


def test_bulk_update_accepts_legacy_completed_flag(service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data)
    instance = service.create_instance(factory.own_client_job(owner).id, _custom(flow))

    service.bulk_update(instance.id, {"kitchen": [{"item_id": "k1", "completed": True}]})

    assert service.get_instance(instance.id).checklist_progress["kitchen"]["completed"] == ["k1"]


def test_bulk_update_with_one_bad_record_writes_nothing(service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data)
    instance = service.create_instance(factory.own_client_job(owner).id, _custom(flow))

    with pytest.raises(InvalidInputError):
        service.bulk_update(
            instance.id,
            {
                "kitchen": [{"item_id": "k1", "status": "completed"}],
                "bath": [{"item_id": "b1", "status": "sparkling"}],
            },
        )

    assert service.get_instance(instance.id).checklist_progress["kitchen"]["completed"] == []


def test_template_with_only_empty_sections_is_vacuously_complete(service, factory) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist={"sections": [{"id": "misc", "name": "Misc", "items": []}]})

    instance = service.create_instance(factory.own_client_job(owner).id, _custom(flow))

    assert instance.has_checklist() is True
    assert instance.checklist_completed is True


def test_get_checklist_reports_counts_and_notes(service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data, job_notes="Alarm code is on the fridge")
    instance = service.create_instance(factory.own_client_job(owner).id, _custom(flow))
    service.update_item_status(instance.id, "kitchen", "k1", "completed")
    service.update_employee_notes(instance.id, "Dog was friendly")

    checklist = service.get_checklist(instance.id)

    assert checklist["total_items"] == 3
    assert checklist["completed_items"] == 1
    assert checklist["completion_percentage"] == 33
    assert checklist["job_notes"] == "Alarm code is on the fridge"
    assert checklist["employee_notes"] == "Dog was friendly"


# ── Photos & completion ──────────────────────────────────────────────────


def test_update_photo_counts_recounts_uploader_photos(service, factory) -> None:
    owner = factory.owner()
    employee = factory.employee(owner)
    appointment = factory.own_client_job(owner)
    instance = service.create_instance(appointment.id, FlowResolution(photo_requirement="required"))
    factory.photo(appointment, employee.user_id, "before")
    factory.photo(appointment, employee.user_id, "before")
    factory.photo(appointment, owner.id, "after")  # someone else's upload

    instance = service.update_photo_counts(instance.id, employee.user_id)
    assert (instance.before_photo_count, instance.after_photo_count, instance.photos_completed) == (2, 0, False)

    factory.photo(appointment, employee.user_id, "after")
    instance = service.update_photo_counts(instance.id, employee.user_id)
    instance = service.update_photo_counts(instance.id, employee.user_id)
    assert (instance.before_photo_count, instance.after_photo_count, instance.photos_completed) == (2, 1, True)


@pytest.mark.parametrize("requirement", ["optional", "hidden"])
def test_optional_and_hidden_photos_never_block(service, factory, requirement) -> None:
    owner = factory.owner()
    instance = service.create_instance(factory.own_client_job(owner).id, FlowResolution(photo_requirement=requirement))

    assert service.can_skip_photos(instance.id) is True
    assert service.validate_completion(instance.id) is True


def test_platform_required_reports_every_missing_requirement(service, factory, checklist_data) -> None:
    factory.platform_checklist(checklist_data)
    instance = service.create_instance(factory.marketplace_job().id, MARKETPLACE)

    with pytest.raises(CompletionValidationError) as exc:
        service.validate_completion(instance.id)

    assert exc.value.requirements == ["before_photos", "after_photos", "checklist"]
    assert "Complete the cleaning checklist" in exc.value.messages
    assert service.can_skip_photos(instance.id) is False


def test_required_photos_do_not_gate_custom_checklist(service, factory, checklist_data) -> None:
    owner = factory.owner()
    employee = factory.employee(owner)
    flow = factory.flow(owner, checklist=checklist_data, photo_requirement="required")
    appointment = factory.own_client_job(owner)
    instance = service.create_instance(appointment.id, _custom(flow))
    factory.photo(appointment, employee.user_id, "before")
    factory.photo(appointment, employee.user_id, "after")
    service.update_photo_counts(instance.id, employee.user_id)

    assert service.validate_completion(instance.id) is True


def test_platform_flow_without_checklist_gates_photos_only(service, factory) -> None:
    appointment = factory.marketplace_job()
    instance = service.create_instance(appointment.id, MARKETPLACE)

    status = service.get_completion_status(instance.id)

    assert status["has_checklist"] is False
    assert status["missing_requirements"] == ["before_photos", "after_photos"]
    assert status["can_complete"] is False


def test_completion_status_once_everything_is_done(service, factory, checklist_data) -> None:
    factory.platform_checklist(checklist_data)
    owner = factory.owner()
    employee = factory.employee(owner)
    appointment = factory.marketplace_job()
    instance = service.create_instance(appointment.id, MARKETPLACE)
    factory.photo(appointment, employee.user_id, "before")
    factory.photo(appointment, employee.user_id, "after")
    service.update_photo_counts(instance.id, employee.user_id)
    _complete_all(service, instance)

    status = service.get_completion_status(instance.id)

    assert status["can_complete"] is True
    assert status["missing_requirements"] == []
    assert status["checklist_completion_percentage"] == 100


def test_flow_details_for_assignment_without_flow_is_flexible(service, factory) -> None:
    owner = factory.owner()
    employee = factory.employee(owner)
    assignment = factory.assignment(owner, employee, factory.own_client_job(owner))

    details = service.get_flow_details_for_assignment(assignment.id)

    assert details == {
        "assignment_id": assignment.id,
        "has_job_flow": False,
        "can_complete": True,
        "missing_requirements": [],
    }
    assert service.get_for_assignment(assignment.id) is None


def test_flow_details_for_assignment_with_flow(service, factory, checklist_data) -> None:
    owner = factory.owner()
    employee = factory.employee(owner)
    flow = factory.flow(owner, checklist=checklist_data, name="Standard clean")
    appointment = factory.own_client_job(owner)
    instance = service.create_instance(appointment.id, _custom(flow))
    assignment = factory.assignment(owner, employee, appointment, appointment_job_flow_id=instance.id)

    details = service.get_flow_details_for_assignment(assignment.id)

    assert details["has_job_flow"] is True
    assert details["flow_name"] == "Standard clean"
    assert details["can_complete"] is True
    assert service.get_for_assignment(assignment.id).id == instance.id


# ── Platform enforcement ─────────────────────────────────────────────────


def test_enforce_platform_template_upgrades_and_is_idempotent(db, service, factory, checklist_data) -> None:
    owner = factory.owner()
    flow = factory.flow(owner, checklist=checklist_data, job_notes="Custom notes")
    appointment = factory.own_client_job(owner)
    instance = service.create_instance(appointment.id, _custom(flow))
    service.update_item_status(instance.id, "kitchen", "k1", "completed")
    platform = {"sections": [{"id": "kitchen", "items": [{"id": "k1"}, {"id": "k9"}]}]}
    factory.platform_checklist(platform, version=4)

    upgraded = service.enforce_platform_template(appointment.id)
    again = service.enforce_platform_template(appointment.id)

    assert again.id == upgraded.id == instance.id
    assert upgraded.uses_platform_flow is True
    assert upgraded.photo_requirement == "platform_required"
    assert upgraded.platform_checklist_version == 4
    assert upgraded.checklist_progress == {"kitchen": {"total": ["k1", "k9"], "completed": ["k1"], "na": []}}

    # The job no longer follows the business template
    assert upgraded.custom_job_flow_id is None
    assert service.get_checklist(instance.id)["job_notes"] is None
    JobFlowTemplateService(db).delete_flow(flow.id, owner.id)


def test_enforce_platform_template_creates_missing_instance(service, factory, checklist_data) -> None:
    factory.platform_checklist(checklist_data)
    appointment = factory.marketplace_job()

    instance = service.enforce_platform_template(appointment.id)

    assert instance.appointment_id == appointment.id
    assert instance.photo_requirement == "platform_required"
    assert instance.has_checklist() is True
