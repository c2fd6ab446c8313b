"""Admin router — leave types, special actions, policy runs, carry forward, holidays.

All endpoints require system_admin or hr_admin role.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.admin.schemas import (
    BulkSpecialActionRequest,
    BulkSpecialActionResult,
    CarryForwardRequest,
    CarryForwardResult,
    LeaveTypeCreate,
    LeaveTypeUpdate,
    PolicyExistsOut,
    PolicyHistoryOut,
    PolicyProcessRequest,
    PolicyProcessResult,
    SpecialActionRequest,
    SpecialActionResult,
)
from leave_ledger.admin.service import AdminLeaveService
from leave_ledger.auth.dependencies import require_role
from leave_ledger.common.constants import EmploymentType, Region, UserRole
from leave_ledger.common.rate_limit import limiter
from leave_ledger.config import settings
from leave_ledger.core_hr.models import Employee
from leave_ledger.core_hr.schemas import HolidayCreate, HolidayOut
from leave_ledger.core_hr.service import HolidayService
from leave_ledger.database import get_db
from leave_ledger.leave.schemas import LeaveTypeOut
from leave_ledger.leave.seed import seed_leave_types
from leave_ledger.leave.service import LeaveService

router = APIRouter(prefix="", tags=["admin"])

_admin_dep = require_role(UserRole.system_admin, UserRole.hr_admin)


# ═══════════════════════════════════════════════════════════════════
# LEAVE TYPES
# ═══════════════════════════════════════════════════════════════════

@router.get("/leave-types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    _user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """List all leave types (active + inactive)."""
    return await LeaveService.list_leave_types(db, include_inactive=True)


@router.post("/leave-types", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    _user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Create a new leave type."""
    return await AdminLeaveService.create_leave_type(db, body)


@router.put("/leave-types/{code}", response_model=LeaveTypeOut)
async def update_leave_type(
    code: str,
    body: LeaveTypeUpdate,
    _user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Update a leave type. Send ``is_active=false`` to retire it."""
    return await AdminLeaveService.update_leave_type(db, code, body)


@router.post("/leave-types/seed", status_code=201)
async def seed_default_leave_types(
    _user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Insert the default leave catalogue (existing codes are left untouched)."""
    count = await seed_leave_types(db)
    return {"message": f"Seeded {count} new leave types.", "created": count}


# ═══════════════════════════════════════════════════════════════════
# SPECIAL ACTIONS
# ═══════════════════════════════════════════════════════════════════

@router.post("/leave/special-action", response_model=SpecialActionResult)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
async def special_action(
    request: Request,
    body: SpecialActionRequest,
    user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Add or remove entitlement days for one employee."""
    return await AdminLeaveService.apply_special_action(
        db,
        body.employee_id,
        body.leave_type_code,
        body.days,
        body.action,
        user.employee_id,
        body.comments,
        year=body.year,
    )


@router.post("/leave/special-action/bulk", response_model=BulkSpecialActionResult)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
async def special_action_bulk(
    request: Request,
    body: BulkSpecialActionRequest,
    user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Apply one special action to many employees; failures are reported per employee."""
    return await AdminLeaveService.apply_special_action_bulk(
        db,
        body.employee_ids,
        body.leave_type_code,
        body.days,
        body.action,
        user.employee_id,
        body.comments,
        year=body.year,
    )


# ═══════════════════════════════════════════════════════════════════
# POLICY PROCESSING
# ═══════════════════════════════════════════════════════════════════

@router.post("/leave-policy/process", response_model=PolicyProcessResult)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
async def process_policy(
    request: Request,
    body: PolicyProcessRequest,
    user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Credit a period's entitlement to a region / employment-type cohort."""
    return await AdminLeaveService.process_policy(
        db,
        body.region,
        body.employment_type,
        body.month,
        body.year,
        body.leave_type_amounts,
        user.employee_id,
    )


@router.get("/leave-policy/history", response_model=list[PolicyHistoryOut])
async def policy_history(
    region: Optional[Region] = Query(None),
    employment_type: Optional[EmploymentType] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    _user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Previous policy runs, newest period first."""
    return await AdminLeaveService.get_process_history(
        db, region=region, employment_type=employment_type, year=year,
    )


@router.get("/leave-policy/check-exists", response_model=PolicyExistsOut)
async def policy_check_exists(
    region: Region = Query(...),
    employment_type: EmploymentType = Query(...),
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    _user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Whether the period was already processed for the cohort."""
    return await AdminLeaveService.check_processing_exists(
        db, region, employment_type, month, year,
    )


# ═══════════════════════════════════════════════════════════════════
# YEAR-END
# ═══════════════════════════════════════════════════════════════════

@router.post("/leave/carry-forward", response_model=CarryForwardResult)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
async def carry_forward(
    request: Request,
    body: CarryForwardRequest,
    user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Close ``from_year`` for a leave type: carry the capped remainder, expire the rest."""
    return await AdminLeaveService.carry_forward(
        db,
        body.leave_type_code,
        body.from_year,
        user.employee_id,
        employee_ids=body.employee_ids,
    )


# ═══════════════════════════════════════════════════════════════════
# HOLIDAYS
# ═══════════════════════════════════════════════════════════════════

@router.post("/holidays", response_model=HolidayOut, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Add a regional holiday. Existing requests keep their charged days."""
    return await HolidayService.create_holiday(db, body, actor_id=user.employee_id)


@router.delete("/holidays/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: uuid.UUID,
    user: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Delete a holiday."""
    await HolidayService.delete_holiday(db, holiday_id, actor_id=user.employee_id)
