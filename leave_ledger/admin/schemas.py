"""Admin Pydantic schemas — leave types, special actions, bulk runs, policy processing."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leave_ledger.common.constants import (
    AccrualFrequency,
    BalanceAction,
    EmploymentType,
    GenderRestriction,
    Region,
    RegionRestriction,
)
from leave_ledger.leave.schemas import HalfDays, LeaveBalanceOut


# ── Leave Type Schemas ──────────────────────────────────────────────

class LeaveTypeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    category: Optional[str] = Field(default=None, max_length=50)
    is_paid: bool = True
    allow_half_day: bool = True
    gender_restriction: GenderRestriction = GenderRestriction.NONE
    region_restriction: RegionRestriction = RegionRestriction.ALL
    carry_forward_allowed: bool = False
    max_carry_forward_days: HalfDays = Field(default=Decimal("0"), ge=0)
    accrual_frequency: AccrualFrequency = AccrualFrequency.NONE
    annual_allocation: HalfDays = Field(default=Decimal("0"), ge=0)
    allow_negative_balance: bool = False
    max_consecutive_days: Optional[int] = Field(default=None, ge=1)


class LeaveTypeUpdate(BaseModel):
    """Administrative correction; ``code`` is immutable and rows are deactivated, never deleted."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category: Optional[str] = Field(default=None, max_length=50)
    is_paid: Optional[bool] = None
    allow_half_day: Optional[bool] = None
    gender_restriction: Optional[GenderRestriction] = None
    region_restriction: Optional[RegionRestriction] = None
    carry_forward_allowed: Optional[bool] = None
    max_carry_forward_days: Optional[HalfDays] = Field(default=None, ge=0)
    accrual_frequency: Optional[AccrualFrequency] = None
    annual_allocation: Optional[HalfDays] = Field(default=None, ge=0)
    allow_negative_balance: Optional[bool] = None
    max_consecutive_days: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


# ── Special Action Schemas ──────────────────────────────────────────

class SpecialActionRequest(BaseModel):
    """Credit or debit one employee's entitlement."""

    employee_id: str = Field(..., min_length=1, max_length=50)
    leave_type_code: str = Field(..., min_length=1, max_length=10)
    days: HalfDays = Field(..., gt=0)
    action: BalanceAction
    comments: str = Field(..., max_length=500)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)

    @field_validator("leave_type_code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()


class SpecialActionResult(BaseModel):
    employee_id: str
    leave_type_code: str
    action: BalanceAction
    days: Decimal
    year: int
    message: str
    balance: LeaveBalanceOut


class BulkSpecialActionRequest(BaseModel):
    """Same credit/debit applied to many employees, each isolated."""

    employee_ids: list[str] = Field(..., max_length=1000)
    leave_type_code: str = Field(..., min_length=1, max_length=10)
    days: HalfDays = Field(..., gt=0)
    action: BalanceAction
    comments: str = Field(..., max_length=500)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)

    @field_validator("leave_type_code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()


class BulkDetails(BaseModel):
    processed_employees: list[str] = []
    error_messages: list[str] = []
    warning_messages: list[str] = []


class BulkSpecialActionResult(BaseModel):
    processed: int
    errors: int
    warnings: int
    details: BulkDetails


# ── Policy Processing Schemas ───────────────────────────────────────

class PolicyProcessRequest(BaseModel):
    region: Region
    employment_type: EmploymentType
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    leave_type_amounts: dict[str, HalfDays] = Field(
        ..., description="Leave type code → days to credit for this period",
    )

    @field_validator("leave_type_amounts")
    @classmethod
    def validate_amounts(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        amounts = {code.strip().upper(): days for code, days in v.items() if days != 0}
        if not amounts:
            raise ValueError("At least one leave type with a non-zero amount is required.")
        if any(days < 0 for days in amounts.values()):
            raise ValueError("Policy amounts must be positive.")
        return amounts


class PolicyHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    region: Region
    employment_type: EmploymentType
    month: int
    year: int
    leave_type_amounts: dict[str, str]
    employees_count: int
    run_count: int
    processed_by: str
    processed_at: datetime


class PolicyProcessResult(BaseModel):
    already_processed: bool
    applied_to: int
    skipped: int
    history: PolicyHistoryOut


class PolicyExistsOut(BaseModel):
    exists: bool
    history: Optional[PolicyHistoryOut] = None


# ── Carry Forward Schemas ───────────────────────────────────────────

class CarryForwardRequest(BaseModel):
    leave_type_code: str = Field(..., min_length=1, max_length=10)
    from_year: int = Field(..., ge=2000, le=2099)
    employee_ids: Optional[list[str]] = Field(
        default=None,
        description="Defaults to every employee with a balance row in from_year",
    )

    @field_validator("leave_type_code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()


class CarryForwardItem(BaseModel):
    employee_id: str
    carried: Decimal
    expired: Decimal


class CarryForwardResult(BaseModel):
    leave_type_code: str
    from_year: int
    to_year: int
    results: list[CarryForwardItem]
    errors: list[str] = []
