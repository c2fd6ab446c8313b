"""Core HR ORM models: Employee directory and regional Holiday calendar.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
Leave balances and requests bind to ``Employee.employee_id`` (the stable
business key), never to the surrogate ``id``.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_ledger.common.constants import EmploymentType, Gender, Region, UserRole
from leave_ledger.database import Base


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee directory record consumed by the leave engine."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_id: Mapped[str] = mapped_column(
        sa.String(50), unique=True, nullable=False,
    )

    # ── Name / contact ──────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )

    # ── Eligibility attributes ──────────────────────────────────────
    gender: Mapped[Optional[Gender]] = mapped_column(
        sa.Enum(Gender, name="gender_type"),
    )
    region: Mapped[Optional[Region]] = mapped_column(
        sa.Enum(Region, name="region_type"),
    )
    employment_type: Mapped[Optional[EmploymentType]] = mapped_column(
        sa.Enum(EmploymentType, name="employment_type"),
    )

    # ── Employment ──────────────────────────────────────────────────
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
    )
    date_of_joining: Mapped[Optional[date]] = mapped_column(sa.Date)
    manager_employee_id: Mapped[Optional[str]] = mapped_column(
        sa.String(50), sa.ForeignKey("employees.employee_id"),
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Employee {self.employee_id} {self.full_name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Holiday
# ═════════════════════════════════════════════════════════════════════


class Holiday(Base):
    """A non-working date for one region."""

    __tablename__ = "holidays"
    __table_args__ = (
        sa.UniqueConstraint("date", "region", name="uq_holiday_date_region"),
        sa.Index("ix_holidays_region_year", "region", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    holiday_date: Mapped[date] = mapped_column("date", sa.Date, nullable=False)
    region: Mapped[Region] = mapped_column(
        sa.Enum(Region, name="region_type"), nullable=False,
    )
    description: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Holiday {self.region.value} {self.holiday_date} {self.description!r}>"
