# occupancy_engine/models.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base

TENANT_ACTIVE = "Active"
REQUEST_APPROVED = "Approved"
BOOKING_CANCELLED = "Cancelled"
PROPERTY_AVAILABLE = "Available"


# -----------------------------
# Users
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


# -----------------------------
# Properties
# -----------------------------
class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # monthly rent
    status: Mapped[str] = mapped_column(String(40), nullable=False, default=PROPERTY_AVAILABLE)

    # Daily | Monthly | Both (case-insensitive); NULL means no rental capability configured
    renting_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    owner: Mapped["AppUser"] = relationship()
    tenants: Mapped[List["Tenant"]] = relationship(back_populates="property")
    bookings: Mapped[List["Booking"]] = relationship(back_populates="property", cascade="all, delete-orphan")
    blocked_periods: Mapped[List["BlockedPeriod"]] = relationship(
        back_populates="property", cascade="all, delete-orphan"
    )


# -----------------------------
# Long-term occupancy
# -----------------------------
class Tenant(Base):
    __tablename__ = "tenants"
    __table_args__ = (Index("ix_tenants_status_property", "tenant_status", "property_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)
    property_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="SET NULL"), nullable=True, index=True
    )

    lease_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    # explicit override; when NULL the end date is inferred from the approved rental request
    lease_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    tenant_status: Mapped[str] = mapped_column(String(40), nullable=False, default=TENANT_ACTIVE)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    user: Mapped["AppUser"] = relationship()
    property: Mapped[Optional["Property"]] = relationship(back_populates="tenants")


class RentalRequest(Base):
    __tablename__ = "rental_requests"
    __table_args__ = (Index("ix_rental_requests_user_property_status", "user_id", "property_id", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )

    proposed_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    proposed_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    lease_duration_months: Mapped[int] = mapped_column(Integer, nullable=False, default=12)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")  # Pending|Approved|Rejected
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    user: Mapped["AppUser"] = relationship()


# -----------------------------
# Short-term occupancy / owner blocks
# -----------------------------
class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # NULL = open-ended

    status: Mapped[str] = mapped_column(String(40), nullable=False, default="Upcoming")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    property: Mapped["Property"] = relationship(back_populates="bookings")
    user: Mapped["AppUser"] = relationship()


class BlockedPeriod(Base):
    __tablename__ = "blocked_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # NULL = indefinite
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    property: Mapped["Property"] = relationship(back_populates="blocked_periods")


# -----------------------------
# Notifications
# -----------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    reference_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
