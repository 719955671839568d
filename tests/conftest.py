"""
Shared pytest fixtures for the job flow engine test suite.

Provides:
    - db: Fresh in-memory SQLite session per test
    - factory: ORM helpers that create and commit users, homes, appointments, ...
    - checklist_data: Two-section checklist structure
    - notifier / analytics: Recording side-channel fakes
"""

import copy
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from jobflow.database import Base, enable_sqlite_savepoints  # noqa: E402
from jobflow.models import (  # noqa: E402
    Appointment,
    BusinessEmployee,
    CleanerClient,
    Home,
    JobPhoto,
    User,
)
from jobflow.models_assignment import EmployeeJobAssignment, assignee_key_for  # noqa: E402
from jobflow.models_jobflow import (  # noqa: E402
    ChecklistVersion,
    CustomJobFlow,
    CustomJobFlowChecklist,
)
from jobflow.security_utils import encrypt_coordinate  # noqa: E402
from jobflow.services.notification_service import AnalyticsTracker, NotificationDispatcher  # noqa: E402
from jobflow.utils.time import utcnow  # noqa: E402

CHECKLIST = {
    "sections": [
        {
            "id": "kitchen",
            "name": "Kitchen",
            "items": [
                {"id": "k1", "label": "Wipe counters"},
                {"id": "k2", "label": "Clean sink"},
            ],
        },
        {
            "id": "bath",
            "name": "Bathroom",
            "items": [{"id": "b1", "label": "Scrub tub"}],
        },
    ]
}


# ── DB fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def db():
    """Per-test: new in-memory database with all tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def checklist_data():
    return copy.deepcopy(CHECKLIST)


# ── Side-channel fakes ───────────────────────────────────────────────────


class RecordingNotifier(NotificationDispatcher):
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send(self, user_id, notification_type, payload):
        if self.fail:
            raise ConnectionError("push service unavailable")
        self.sent.append((user_id, notification_type, payload))

    def types_for(self, user_id):
        return [notification_type for uid, notification_type, _ in self.sent if uid == user_id]


class RecordingTracker(AnalyticsTracker):
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    def track(self, event, properties):
        if self.fail:
            raise ConnectionError("analytics unavailable")
        self.events.append((event, properties))


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def analytics():
    return RecordingTracker()


# ── ORM factory ──────────────────────────────────────────────────────────


class Factory:
    """Creates committed rows with sensible defaults; keyword arguments override them."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(self, **kwargs):
        self._seq += 1
        defaults = {
            "first_name": f"User{self._seq}",
            "last_name": "Tester",
            "email": f"user{self._seq}@example.com",
            "phone": "555-0100",
        }
        defaults.update(kwargs)
        return self._save(User(**defaults))

    def owner(self, **kwargs):
        return self.user(is_business_owner=True, **kwargs)

    def employee(self, owner, user=None, **kwargs):
        user = user or self.user()
        defaults = {
            "business_owner_id": owner.id,
            "user_id": user.id,
            "first_name": user.first_name,
            "last_name": "Cleaner",
            "status": "active",
            "pay_type": "per_job",
            "default_job_rate": 8000,
            "default_hourly_rate": 2000,
            "pay_rate": 33.5,
            "can_view_client_details": True,
        }
        defaults.update(kwargs)
        return self._save(BusinessEmployee(**defaults))

    def client(self, **kwargs):
        return self.user(first_name=kwargs.pop("first_name", "Jane"), last_name=kwargs.pop("last_name", "Client"), **kwargs)

    def relation(self, owner, client, status="active"):
        return self._save(CleanerClient(cleaner_id=owner.id, client_id=client.id, status=status))

    def home(self, client, latitude=None, longitude=None, **kwargs):
        defaults = {
            "user_id": client.id,
            "address": "123 Main St, Springfield, IL 62701",
            "num_beds": 3,
            "num_baths": 2.0,
            "key_pad_code": "4321",
            "key_location": "Under the mat",
            "latitude": encrypt_coordinate(latitude),
            "longitude": encrypt_coordinate(longitude),
        }
        defaults.update(kwargs)
        return self._save(Home(**defaults))

    def appointment(self, client, home=None, hours_ahead=48, **kwargs):
        defaults = {
            "user_id": client.id,
            "home_id": home.id if home else None,
            "scheduled_date": utcnow() + timedelta(hours=hours_ahead),
            "price": 20000,
        }
        defaults.update(kwargs)
        return self._save(Appointment(**defaults))

    def own_client_job(self, owner, **kwargs):
        """Appointment for an active client of the owner (never marketplace)"""
        client = self.client()
        self.relation(owner, client)
        home = self.home(client)
        return self.appointment(client, home, **kwargs)

    def marketplace_job(self, **kwargs):
        """Appointment for a client with no relationship to any business"""
        client = self.client()
        home = self.home(client)
        return self.appointment(client, home, **kwargs)

    def photo(self, appointment, uploader_id, photo_type):
        return self._save(
            JobPhoto(
                appointment_id=appointment.id,
                cleaner_id=uploader_id,
                photo_type=photo_type,
                photo_url=f"https://photos.example.com/{appointment.id}/{photo_type}.jpg",
            )
        )

    def flow(self, owner, checklist=None, **kwargs):
        defaults = {
            "business_owner_id": owner.id,
            "name": f"Flow {self._seq}",
            "photo_requirement": "optional",
            "status": "active",
            "is_default": False,
        }
        defaults.update(kwargs)
        self._seq += 1
        flow = self._save(CustomJobFlow(**defaults))
        if checklist is not None:
            self._save(CustomJobFlowChecklist(custom_job_flow_id=flow.id, snapshot_data=copy.deepcopy(checklist)))
        return flow

    def platform_checklist(self, snapshot=None, version=1, is_active=True):
        return self._save(
            ChecklistVersion(
                version=version,
                snapshot_data=copy.deepcopy(snapshot if snapshot is not None else CHECKLIST),
                is_active=is_active,
            )
        )

    def assignment(self, owner, employee, appointment, status="assigned", **kwargs):
        """Raw assignment row, bypassing the service (for read-model tests)"""
        defaults = {
            "business_employee_id": employee.id if employee else None,
            "appointment_id": appointment.id,
            "business_owner_id": owner.id,
            "assignee_key": assignee_key_for(employee.id if employee else None, owner.id),
            "assigned_at": utcnow(),
            "status": status,
            "pay_amount": 8000,
            "pay_type": "per_job",
            "payout_status": "pending",
            "is_self_assignment": employee is None,
        }
        defaults.update(kwargs)
        return self._save(EmployeeJobAssignment(**defaults))


@pytest.fixture()
def factory(db):
    return Factory(db)
