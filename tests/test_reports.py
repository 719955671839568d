"""Tests for owner and employee reports."""

from datetime import timedelta

import pytest

from jobflow.domain.reports.service import ReportService
from jobflow.utils.time import utcnow


@pytest.fixture()
def service(db):
    return ReportService(db)


@pytest.fixture()
def window():
    now = utcnow()
    return now - timedelta(days=7), now + timedelta(days=7)


@pytest.fixture()
def team(factory):
    owner = factory.owner()
    alice = factory.employee(owner, first_name="Alice")
    bob = factory.employee(owner, first_name="Bob")

    def done(employee, hours, pay, **kwargs):
        return factory.assignment(
            owner,
            employee,
            factory.own_client_job(owner, hours_ahead=-24),
            status="completed",
            started_at=utcnow() - timedelta(hours=hours + 24),
            completed_at=utcnow() - timedelta(hours=24),
            hours_worked=hours,
            pay_amount=pay,
            **kwargs,
        )

    done(alice, 2.5, 5000)
    done(alice, 1.0, 3000, payout_status="paid")
    done(bob, 4.0, 8000)
    factory.assignment(owner, bob, factory.own_client_job(owner, hours_ahead=24))
    factory.assignment(owner, None, factory.own_client_job(owner, hours_ahead=24))
    factory.assignment(owner, alice, factory.own_client_job(owner, hours_ahead=24), status="cancelled")
    return {"owner": owner, "alice": alice, "bob": bob}


def test_timesheet_lists_completed_jobs_only(service, team, window) -> None:
    rows = service.get_timesheet(team["owner"].id, *window)

    assert len(rows) == 3
    assert {row["employee_name"] for row in rows} == {"Alice Cleaner", "Bob Cleaner"}
    assert all(row["completed_at"] is not None for row in rows)


def test_timesheet_for_one_employee(service, team, window) -> None:
    rows = service.get_timesheet(team["owner"].id, *window, employee_id=team["bob"].id)

    assert [(row["hours_worked"], row["pay_amount"]) for row in rows] == [(4.0, 8000)]


def test_employee_hours_busiest_first(service, team, window) -> None:
    rows = service.get_employee_hours(team["owner"].id, *window)

    assert [(row["employee_name"], row["job_count"], row["total_hours"], row["total_pay"]) for row in rows] == [
        ("Bob Cleaner", 1, 4.0, 8000),
        ("Alice Cleaner", 2, 3.5, 8000),
    ]


def test_workload_distribution_counts_active_and_completed(service, team, window) -> None:
    report = service.get_workload_distribution(team["owner"].id, *window)

    assert report["total_jobs"] == 5
    by_name = {row["employee_name"]: row for row in report["employees"]}
    assert (by_name["Bob Cleaner"]["active_jobs"], by_name["Bob Cleaner"]["completed_jobs"]) == (1, 1)
    assert by_name["Alice Cleaner"]["share_percent"] == 40.0
    assert by_name["Owner"]["total_jobs"] == 1


def test_workload_distribution_of_empty_range(service, factory, window) -> None:
    assert service.get_workload_distribution(factory.owner().id, *window) == {"total_jobs": 0, "employees": []}


def test_employee_earnings(service, team, window) -> None:
    earnings = service.get_employee_earnings(team["alice"].user_id, *window)

    assert earnings == {
        "total_earnings": 8000,
        "job_count": 2,
        "paid_count": 1,
        "pending_count": 1,
        "pending_amount": 5000,
    }


def test_earnings_for_non_employee_are_zero(service, factory, window) -> None:
    assert service.get_employee_earnings(factory.user().id, *window)["job_count"] == 0
