"""
Core marketplace models: people, homes, appointments and photos.

Job workflow models live in models_jobflow.py and assignment/pay models
in models_assignment.py.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone = Column(String(50), nullable=True)
    is_business_owner = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    homes = relationship("Home", back_populates="user")


class CleanerClient(Base):
    """Relationship between a business owner and one of their own clients"""

    __tablename__ = "cleaner_clients"

    id = Column(Integer, primary_key=True, index=True)
    cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # business owner
    client_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    # Status: pending → active → inactive
    status = Column(String(20), default="active", nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    client = relationship("User", foreign_keys=[client_id])


class Home(Base):
    __tablename__ = "user_homes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    address = Column(String(500), nullable=True)
    num_beds = Column(Integer, nullable=True)
    num_baths = Column(Float, nullable=True)
    key_pad_code = Column(String(50), nullable=True)
    key_location = Column(Text, nullable=True)
    # Fernet-encrypted decimal strings, see security_utils.decrypt_coordinate
    latitude = Column(Text, nullable=True)
    longitude = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="homes")


class Appointment(Base):
    __tablename__ = "user_appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # client
    home_id = Column(Integer, ForeignKey("user_homes.id"), nullable=True, index=True)

    scheduled_date = Column(DateTime, nullable=False, index=True)
    price = Column(Integer, nullable=True)  # cents

    # Set when a business owner booked this job directly for their client
    booked_by_business_owner_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    completed = Column(Boolean, default=False, nullable=False)
    has_been_assigned = Column(Boolean, default=False, nullable=False)
    assigned_to_business_employee = Column(Boolean, default=False, nullable=False)
    business_employee_assignment_id = Column(Integer, nullable=True)

    # Multi-cleaner jobs cap concurrent assignments at cleaners_required
    is_multi_cleaner_job = Column(Boolean, default=False, nullable=False)
    cleaners_required = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])
    home = relationship("Home")


class BusinessEmployee(Base):
    __tablename__ = "business_employees"

    id = Column(Integer, primary_key=True, index=True)
    business_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # null until invite accepted

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)

    # Status: pending_invite → active → inactive/terminated
    status = Column(String(30), default="pending_invite", nullable=False, index=True)

    # Pay configuration (all money in cents)
    pay_type = Column(String(20), default="per_job", nullable=False)
    default_hourly_rate = Column(Integer, nullable=True)
    default_job_rate = Column(Integer, nullable=True)
    pay_rate = Column(Float, nullable=True)  # percentage of the job price

    # Permissions
    can_view_client_details = Column(Boolean, default=False, nullable=False)
    can_view_job_earnings = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class JobPhoto(Base):
    """Before/after photo uploaded by a cleaner for an appointment"""

    __tablename__ = "job_photos"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("user_appointments.id"), nullable=False, index=True)
    cleaner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # uploader
    photo_type = Column(String(10), nullable=False)  # before, after
    photo_url = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())


# Register the remaining mappers so string relationships resolve
from . import models_assignment, models_jobflow  # noqa: E402,F401
