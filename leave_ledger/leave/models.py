"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest, Approval, PolicyProcessHistory."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_ledger.common.constants import (
    AccrualFrequency,
    ApprovalStatus,
    DayType,
    EmploymentType,
    GenderRestriction,
    LeaveStatus,
    Region,
    RegionRestriction,
)
from leave_ledger.database import Base

ZERO = Decimal("0")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(sa.String(50))
    is_paid: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    allow_half_day: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    # Eligibility
    gender_restriction: Mapped[GenderRestriction] = mapped_column(
        sa.Enum(GenderRestriction, name="gender_restriction"),
        nullable=False,
        default=GenderRestriction.NONE,
    )
    region_restriction: Mapped[RegionRestriction] = mapped_column(
        sa.Enum(RegionRestriction, name="region_restriction"),
        nullable=False,
        default=RegionRestriction.ALL,
    )

    # Entitlement policy
    carry_forward_allowed: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    max_carry_forward_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), default=ZERO
    )
    accrual_frequency: Mapped[AccrualFrequency] = mapped_column(
        sa.Enum(AccrualFrequency, name="accrual_frequency"),
        nullable=False,
        default=AccrualFrequency.NONE,
    )
    annual_allocation: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), default=ZERO
    )
    allow_negative_balance: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    max_consecutive_days: Mapped[Optional[int]] = mapped_column(sa.Integer)

    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<LeaveType {self.code}>"


class LeaveBalance(Base):
    """Ledger row for one (employee_id, leave_type_code, year).

    Mutated only through ``leave_ledger.leave.ledger.BalanceLedger``.
    """

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_code", "year", name="uq_leave_balance"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(
        sa.String(50), sa.ForeignKey("employees.employee_id"), nullable=False
    )
    leave_type_code: Mapped[str] = mapped_column(
        sa.String(10), sa.ForeignKey("leave_types.code"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    allocated: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    used: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    pending: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    available: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    carried_forward: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    expired: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    encashed: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    # days moved into the next year's carried_forward
    carried_out: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=ZERO)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def snapshot(self) -> dict[str, Decimal]:
        return {
            "allocated": self.allocated,
            "used": self.used,
            "pending": self.pending,
            "available": self.available,
            "carried_forward": self.carried_forward,
            "expired": self.expired,
            "encashed": self.encashed,
            "carried_out": self.carried_out,
        }


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_req_emp_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_req_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(
        sa.String(50), sa.ForeignKey("employees.employee_id"), nullable=False
    )
    leave_type_code: Mapped[str] = mapped_column(
        sa.String(10), sa.ForeignKey("leave_types.code"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    start_day_type: Mapped[DayType] = mapped_column(
        sa.Enum(DayType, name="day_type"), nullable=False, default=DayType.FULL
    )
    end_day_type: Mapped[DayType] = mapped_column(
        sa.Enum(DayType, name="day_type"), nullable=False, default=DayType.FULL
    )
    total_days: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.PENDING,
    )
    applied_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    rejected_by: Mapped[Optional[str]] = mapped_column(sa.String(50))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_by: Mapped[Optional[str]] = mapped_column(sa.String(50))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    @property
    def balance_year(self) -> int:
        return self.start_date.year


class Approval(Base):
    """Append-only decision trail; the latest row is authoritative for display."""

    __tablename__ = "approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_requests.id"), nullable=False
    )
    approver_id: Mapped[str] = mapped_column(
        sa.String(50), sa.ForeignKey("employees.employee_id"), nullable=False
    )
    level: Mapped[int] = mapped_column(sa.Integer, default=1)
    status: Mapped[ApprovalStatus] = mapped_column(
        sa.Enum(ApprovalStatus, name="approval_status"), nullable=False
    )
    comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    decided_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )


class PolicyProcessHistory(Base):
    """One row per processed (region, employment_type, month, year) cohort."""

    __tablename__ = "policy_process_history"
    __table_args__ = (
        sa.UniqueConstraint(
            "region", "employment_type", "month", "year",
            name="uq_policy_process_period",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    region: Mapped[Region] = mapped_column(
        sa.Enum(Region, name="region_type"), nullable=False
    )
    employment_type: Mapped[EmploymentType] = mapped_column(
        sa.Enum(EmploymentType, name="employment_type"), nullable=False
    )
    month: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    leave_type_amounts: Mapped[dict] = mapped_column(JSONB, nullable=False)
    employees_count: Mapped[int] = mapped_column(sa.Integer, default=0)
    run_count: Mapped[int] = mapped_column(sa.Integer, default=1)
    processed_by: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )
