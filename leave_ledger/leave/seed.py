"""Default leave-type catalogue."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import (
    AccrualFrequency,
    GenderRestriction,
    RegionRestriction,
)
from leave_ledger.leave.models import LeaveType

logger = logging.getLogger(__name__)


DEFAULT_LEAVE_TYPES: list[dict] = [
    {
        "code": "CL",
        "name": "Casual Leave",
        "category": "general",
        "region_restriction": RegionRestriction.IND,
        "accrual_frequency": AccrualFrequency.MONTHLY,
        "annual_allocation": Decimal("12"),
    },
    {
        "code": "PL",
        "name": "Privilege Leave",
        "category": "general",
        "region_restriction": RegionRestriction.IND,
        "accrual_frequency": AccrualFrequency.MONTHLY,
        "annual_allocation": Decimal("18"),
        "carry_forward_allowed": True,
        "max_carry_forward_days": Decimal("15"),
    },
    {
        "code": "PTO",
        "name": "Paid Time Off",
        "category": "general",
        "region_restriction": RegionRestriction.US,
        "accrual_frequency": AccrualFrequency.YEARLY,
        "annual_allocation": Decimal("15"),
    },
    {
        "code": "BL",
        "name": "Bereavement Leave",
        "category": "special",
        "region_restriction": RegionRestriction.US,
        "accrual_frequency": AccrualFrequency.YEARLY,
        "annual_allocation": Decimal("5"),
        "max_consecutive_days": 5,
    },
    {
        "code": "LWP",
        "name": "Leave Without Pay",
        "category": "unpaid",
        "is_paid": False,
        "allow_negative_balance": True,
    },
    {
        "code": "COMP",
        "name": "Compensatory Off",
        "category": "special",
    },
    {
        "code": "ML",
        "name": "Maternity Leave",
        "category": "special",
        "allow_half_day": False,
        "gender_restriction": GenderRestriction.FEMALE_ONLY,
        "accrual_frequency": AccrualFrequency.YEARLY,
        "annual_allocation": Decimal("180"),
    },
    {
        "code": "PTL",
        "name": "Paternity Leave",
        "category": "special",
        "allow_half_day": False,
        "gender_restriction": GenderRestriction.MALE_ONLY,
    },
]


async def seed_leave_types(db: AsyncSession) -> int:
    """Insert missing default leave types. Returns count of newly created rows."""
    result = await db.execute(select(LeaveType.code))
    existing = set(result.scalars().all())

    created = 0
    for data in DEFAULT_LEAVE_TYPES:
        if data["code"] in existing:
            continue
        db.add(LeaveType(**data))
        created += 1

    await db.flush()
    logger.info("seeded %d leave types", created)
    return created
