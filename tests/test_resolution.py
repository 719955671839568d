"""Tests for marketplace classification and flow resolution precedence."""

from jobflow.domain.jobflows.resolution import FLOW_STRATEGIES, resolve_flow
from jobflow.domain.marketplace.service import get_legacy_missing_requirements, is_marketplace_job
from jobflow.models_assignment import EmployeeJobAssignment
from jobflow.models_jobflow import ClientJobFlowAssignment


def _pin(db, owner, flow, relation=None, home=None):
    db.add(
        ClientJobFlowAssignment(
            business_owner_id=owner.id,
            cleaner_client_id=relation.id if relation else None,
            home_id=home.id if home else None,
            custom_job_flow_id=flow.id,
        )
    )
    db.commit()


# ── Marketplace classifier ───────────────────────────────────────────────


def test_active_client_job_is_not_marketplace(db, factory) -> None:
    owner = factory.owner()
    appointment = factory.own_client_job(owner)

    assert is_marketplace_job(db, appointment, owner.id) is False


def test_directly_booked_job_is_not_marketplace(db, factory) -> None:
    owner = factory.owner()
    appointment = factory.marketplace_job(booked_by_business_owner_id=owner.id)

    assert is_marketplace_job(db, appointment, owner.id) is False


def test_stranger_or_inactive_client_job_is_marketplace(db, factory) -> None:
    owner = factory.owner()
    client = factory.client()
    factory.relation(owner, client, status="inactive")
    appointment = factory.appointment(client, factory.home(client))

    assert is_marketplace_job(db, appointment, owner.id) is True
    assert is_marketplace_job(db, factory.marketplace_job(), owner.id) is True


def test_classification_is_rederived_on_every_call(db, factory) -> None:
    owner = factory.owner()
    client = factory.client()
    appointment = factory.appointment(client, factory.home(client))
    assert is_marketplace_job(db, appointment, owner.id) is True

    factory.relation(owner, client)

    assert is_marketplace_job(db, appointment, owner.id) is False


def test_legacy_marketplace_rule_lists_photos_and_checklist(db, factory) -> None:
    owner = factory.owner()
    employee = factory.employee(owner)
    appointment = factory.marketplace_job()
    assignment = factory.assignment(owner, employee, appointment, status="started", is_marketplace_pickup=True)

    assert get_legacy_missing_requirements(db, assignment) == ["before_photos", "after_photos", "legacy_checklist"]

    factory.photo(appointment, employee.user_id, "before")
    factory.photo(appointment, employee.user_id, "after")
    assignment.checklist_progress = {"kitchen": {"total": ["k1"], "completed": ["k1"], "na": []}}
    db.commit()

    assert get_legacy_missing_requirements(db, db.get(EmployeeJobAssignment, assignment.id)) == []


# ── Resolution precedence ────────────────────────────────────────────────


def test_strategies_run_in_documented_order() -> None:
    assert [strategy.__name__ for strategy in FLOW_STRATEGIES] == [
        "resolve_marketplace",
        "resolve_job_override",
        "resolve_home",
        "resolve_client",
        "resolve_default",
    ]


def test_no_template_resolves_to_none(db, factory) -> None:
    owner = factory.owner()
    appointment = factory.own_client_job(owner)

    resolution = resolve_flow(db, appointment, owner.id)

    assert resolution.source == "none"
    assert resolution.custom_job_flow_id is None
    assert resolution.photo_requirement == "optional"
    assert resolution.uses_platform_flow is False


def test_business_default_applies(db, factory) -> None:
    owner = factory.owner()
    default_flow = factory.flow(owner, is_default=True, photo_requirement="required")
    appointment = factory.own_client_job(owner)

    resolution = resolve_flow(db, appointment, owner.id)

    assert resolution.source == "default"
    assert resolution.custom_job_flow_id == default_flow.id
    assert resolution.photo_requirement == "required"


def test_client_assignment_beats_default(db, factory) -> None:
    owner = factory.owner()
    factory.flow(owner, is_default=True)
    client_flow = factory.flow(owner)
    client = factory.client()
    relation = factory.relation(owner, client)
    appointment = factory.appointment(client, factory.home(client))
    _pin(db, owner, client_flow, relation=relation)

    resolution = resolve_flow(db, appointment, owner.id)

    assert resolution.source == "client"
    assert resolution.custom_job_flow_id == client_flow.id


def test_home_assignment_beats_client_assignment(db, factory) -> None:
    owner = factory.owner()
    client_flow = factory.flow(owner)
    home_flow = factory.flow(owner)
    client = factory.client()
    relation = factory.relation(owner, client)
    home = factory.home(client)
    appointment = factory.appointment(client, home)
    _pin(db, owner, client_flow, relation=relation)
    _pin(db, owner, home_flow, relation=relation, home=home)

    resolution = resolve_flow(db, appointment, owner.id)

    assert resolution.source == "home"
    assert resolution.custom_job_flow_id == home_flow.id


def test_archived_home_flow_falls_through_to_client(db, factory) -> None:
    owner = factory.owner()
    client_flow = factory.flow(owner)
    home_flow = factory.flow(owner, status="archived")
    client = factory.client()
    relation = factory.relation(owner, client)
    home = factory.home(client)
    appointment = factory.appointment(client, home)
    _pin(db, owner, client_flow, relation=relation)
    _pin(db, owner, home_flow, relation=relation, home=home)

    assert resolve_flow(db, appointment, owner.id).source == "client"


def test_job_override_beats_home(db, factory) -> None:
    owner = factory.owner()
    home_flow = factory.flow(owner)
    override = factory.flow(owner, photo_requirement="hidden")
    client = factory.client()
    relation = factory.relation(owner, client)
    home = factory.home(client)
    appointment = factory.appointment(client, home)
    _pin(db, owner, home_flow, relation=relation, home=home)

    resolution = resolve_flow(db, appointment, owner.id, override_template_id=override.id)

    assert resolution.source == "job_override"
    assert resolution.custom_job_flow_id == override.id
    assert resolution.photo_requirement == "hidden"


def test_foreign_or_archived_override_is_silently_ignored(db, factory) -> None:
    owner = factory.owner()
    other_owner = factory.owner()
    default_flow = factory.flow(owner, is_default=True)
    foreign = factory.flow(other_owner)
    archived = factory.flow(owner, status="archived")
    appointment = factory.own_client_job(owner)

    for override_id in (foreign.id, archived.id, 99999):
        resolution = resolve_flow(db, appointment, owner.id, override_template_id=override_id)
        assert resolution.source == "default"
        assert resolution.custom_job_flow_id == default_flow.id


def test_marketplace_beats_explicit_override(db, factory) -> None:
    owner = factory.owner()
    override = factory.flow(owner)
    appointment = factory.marketplace_job()

    resolution = resolve_flow(db, appointment, owner.id, override_template_id=override.id)

    assert resolution.source == "marketplace"
    assert resolution.uses_platform_flow is True
    assert resolution.custom_job_flow_id is None
    assert resolution.photo_requirement == "platform_required"
