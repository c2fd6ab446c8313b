"""Leave router: day preview, submit, approve/reject/cancel, approval history, balances, leave types, holidays.

All endpoints require authentication; the acting employee is always the
authenticated principal.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.dependencies import get_current_user, is_admin, require_role
from leave_ledger.common.constants import LeaveStatus, Region, UserRole
from leave_ledger.common.pagination import PaginationParams
from leave_ledger.common.tz import local_today
from leave_ledger.core_hr.models import Employee
from leave_ledger.core_hr.schemas import HolidayOut
from leave_ledger.core_hr.service import HolidayService
from leave_ledger.database import get_db
from leave_ledger.leave.schemas import (
    ApprovalHistoryListOut,
    DaysCalculationOut,
    DaysCalculationRequest,
    LeaveApproveRequest,
    LeaveBalanceOut,
    LeaveCancelRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestDetail,
    LeaveRequestListOut,
    LeaveRequestOut,
    LeaveTypeOut,
)
from leave_ledger.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    include_inactive: bool = Query(False),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave types the caller may apply for.

    Administrators passing ``include_inactive`` get the whole catalogue.
    """
    if include_inactive and is_admin(employee):
        return await LeaveService.list_leave_types(db, include_inactive=True)
    return await LeaveService.list_leave_types_for(db, employee)


# ── POST /calculate-days ────────────────────────────────────────────

@router.post("/calculate-days", response_model=DaysCalculationOut)
async def calculate_days(
    body: DaysCalculationRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Preview chargeable days. Defaults to the caller's regional holiday calendar."""
    return await LeaveService.calculate_days(
        db,
        body.start_date,
        body.end_date,
        body.region or employee.region,
        body.start_day_type,
        body.end_day_type,
    )


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def submit_leave(
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Validates eligibility, days, overlap and balance, then reserves."""
    return await LeaveService.submit_leave(db, employee.employee_id, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=LeaveRequestListOut)
async def list_requests(
    scope: str = Query("my", pattern="^(my|team|all)$"),
    employee_id: Optional[str] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type_code: Optional[str] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Own, team or (administrators) all leave requests, paginated."""
    rows, meta = await LeaveService.list_requests(
        db,
        employee,
        pagination,
        scope=scope,
        employee_id=employee_id,
        status=status,
        leave_type_code=leave_type_code,
        from_date=from_date,
        to_date=to_date,
    )
    return LeaveRequestListOut(
        data=[LeaveRequestOut.model_validate(r) for r in rows],
        meta=meta,
    )


# ── GET /pending-approvals ──────────────────────────────────────────

@router.get("/pending-approvals", response_model=list[LeaveRequestOut])
async def pending_approvals(
    employee: Employee = Depends(
        require_role(UserRole.manager, UserRole.hr_admin, UserRole.system_admin)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests the caller may approve or reject."""
    return await LeaveService.get_pending_approvals(db, employee)


# ── GET /approvals/history ────────────────────────────────────────

@router.get("/approvals/history", response_model=ApprovalHistoryListOut)
async def approval_history(
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(
        require_role(UserRole.manager, UserRole.hr_admin, UserRole.system_admin)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Decisions the caller has made, newest first."""
    items, meta = await LeaveService.get_approval_history(db, employee, pagination)
    return ApprovalHistoryListOut(data=items, meta=meta)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestDetail)
async def get_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """One request with its approval trail."""
    return await LeaveService.get_request_detail(db, request_id, employee)


# ── PUT /requests/{id}/approve ──────────────────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    employee: Employee = Depends(
        require_role(UserRole.manager, UserRole.hr_admin, UserRole.system_admin)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending leave request. Reserved days become used."""
    return await LeaveService.approve_leave(
        db, request_id, employee.employee_id, comments=body.comments,
    )


# ── PUT /requests/{id}/reject ───────────────────────────────────────

@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    employee: Employee = Depends(
        require_role(UserRole.manager, UserRole.hr_admin, UserRole.system_admin)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending leave request. Reserved days return to available."""
    return await LeaveService.reject_leave(
        db, request_id, employee.employee_id, body.reason,
    )


# ── PUT /requests/{id}/cancel ───────────────────────────────────────

@router.put("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a pending or approved request whose start date has not passed."""
    return await LeaveService.cancel_leave(
        db, request_id, employee.employee_id, body.reason,
    )


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[str] = Query(None, description="Defaults to the caller"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Ledger rows for an employee and year (defaults: caller, current year)."""
    return await LeaveService.get_balances(
        db,
        employee_id or employee.employee_id,
        year or local_today().year,
        viewer=employee,
    )


# ── GET /holidays ───────────────────────────────────────────────────

@router.get("/holidays", response_model=list[HolidayOut])
async def list_holidays(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    region: Optional[Region] = Query(None, description="Defaults to the caller's region"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Regional holiday calendar."""
    return await HolidayService.list_holidays(
        db,
        year=year or local_today().year,
        region=region or employee.region,
    )
