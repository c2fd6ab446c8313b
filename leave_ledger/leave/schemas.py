"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from leave_ledger.common.constants import (
    HALF_DAY,
    AccrualFrequency,
    ApprovalStatus,
    DayType,
    GenderRestriction,
    LeaveStatus,
    Region,
    RegionRestriction,
)
from leave_ledger.common.pagination import PaginatedResponse


def _half_day_multiple(value: Decimal) -> Decimal:
    if value % HALF_DAY != 0:
        raise ValueError("Must be a multiple of 0.5 days.")
    return value


# Leave amounts come in 0.5-day steps
HalfDays = Annotated[Decimal, AfterValidator(_half_day_multiple)]


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    category: Optional[str] = None
    is_paid: bool = True
    allow_half_day: bool = True
    gender_restriction: GenderRestriction
    region_restriction: RegionRestriction
    carry_forward_allowed: bool = False
    max_carry_forward_days: Decimal
    accrual_frequency: AccrualFrequency
    annual_allocation: Decimal
    allow_negative_balance: bool = False
    max_consecutive_days: Optional[int] = None
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """One ledger row."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    leave_type_code: str
    year: int
    allocated: Decimal
    used: Decimal
    pending: Decimal
    available: Decimal
    carried_forward: Decimal
    expired: Decimal
    encashed: Decimal
    carried_out: Decimal


# ═════════════════════════════════════════════════════════════════════
# Working-day calculation
# ═════════════════════════════════════════════════════════════════════


class DaysCalculationRequest(BaseModel):
    """Preview the chargeable days of a span."""

    start_date: date
    end_date: date
    start_day_type: DayType = DayType.FULL
    end_day_type: DayType = DayType.FULL
    region: Optional[Region] = Field(
        None, description="Holiday calendar to use; defaults to the caller's region",
    )


class DaysCalculationOut(BaseModel):
    start_date: date
    end_date: date
    region: Optional[Region] = None
    total_days: Decimal
    day_details: dict[str, str]


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    leave_type_code: str = Field(..., min_length=1, max_length=10)
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    start_day_type: DayType = DayType.FULL
    end_day_type: DayType = DayType.FULL
    reason: Optional[str] = Field(None, max_length=1000)
    expected_total_days: Optional[HalfDays] = Field(
        None,
        ge=0,
        description=(
            "Chargeable days shown to the user at preview time. When supplied and "
            "the server computes a different value, the submission is rejected as stale."
        ),
    )

    @field_validator("leave_type_code")
    @classmethod
    def normalise_code(cls, v: str) -> str:
        return v.strip().upper()


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class ApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    approver_id: str
    level: int
    status: ApprovalStatus
    comments: Optional[str] = None
    decided_at: datetime


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: str
    leave_type_code: str
    start_date: date
    end_date: date
    start_day_type: DayType
    end_day_type: DayType
    total_days: Decimal
    reason: Optional[str] = None
    status: LeaveStatus
    applied_date: date
    rejection_reason: Optional[str] = None
    rejected_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class LeaveRequestDetail(LeaveRequestOut):
    """Request plus its decision trail (oldest first)."""

    approvals: list[ApprovalOut] = []


class LeaveRequestListOut(PaginatedResponse[LeaveRequestOut]):
    """Paginated request list."""


class ApprovalHistoryItem(ApprovalOut):
    """A decision together with the request it was made on."""

    leave_request: LeaveRequestOut


class ApprovalHistoryListOut(PaginatedResponse[ApprovalHistoryItem]):
    """Paginated decisions made by one approver, newest first."""


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    """Payload for approving a leave request."""

    comments: Optional[str] = Field(None, max_length=500)


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    reason: str = Field(..., max_length=500)


class LeaveCancelRequest(BaseModel):
    """Payload for cancelling a leave request."""

    reason: str = Field(..., max_length=500)
