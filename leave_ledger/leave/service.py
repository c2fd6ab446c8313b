"""Leave service layer — request lifecycle on top of the balance ledger.

Business logic:
  - Chargeable-day preview against the regional holiday calendar
  - Submission: eligibility, day calculation, half-day/overlap/consecutive rules, reserve
  - Approve / reject / cancel as compare-and-swap transitions paired with the
    matching ledger verb inside one savepoint
  - Request, approval-queue, approval-history and balance read views
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.dependencies import is_admin
from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import (
    ApprovalStatus,
    AuditAction,
    DayType,
    LeaveStatus,
    Region,
)
from leave_ledger.common.exceptions import (
    ForbiddenException,
    NotCancellable,
    NotFoundException,
    ValidationException,
)
from leave_ledger.common.pagination import PaginationMeta, PaginationParams, paginate
from leave_ledger.common.tz import local_today
from leave_ledger.core_hr.models import Employee
from leave_ledger.core_hr.service import EmployeeService, HolidayService
from leave_ledger.leave.calculator import (
    classify_days,
    compute_chargeable_days,
    is_working_day,
)
from leave_ledger.leave.eligibility import Ok, ensure_eligible, validate
from leave_ledger.leave.ledger import BalanceLedger
from leave_ledger.leave.models import Approval, LeaveBalance, LeaveRequest, LeaveType
from leave_ledger.leave.schemas import (
    ApprovalHistoryItem,
    ApprovalOut,
    DaysCalculationOut,
    LeaveRequestCreate,
    LeaveRequestDetail,
    LeaveRequestOut,
)
from leave_ledger.leave.state_machine import LeaveRequestStateMachine

logger = logging.getLogger(__name__)


def _request_summary(leave_req: LeaveRequest) -> dict:
    return {
        "employee_id": leave_req.employee_id,
        "leave_type_code": leave_req.leave_type_code,
        "start_date": leave_req.start_date,
        "end_date": leave_req.end_date,
        "total_days": leave_req.total_days,
        "status": leave_req.status,
    }


def _require_text(value: Optional[str], field: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValidationException({field: [message]})
    return value.strip()


class LeaveService:
    """Async leave request lifecycle operations."""

    # ── Lookups ─────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_type(db: AsyncSession, code: str) -> LeaveType:
        result = await db.execute(select(LeaveType).where(LeaveType.code == code))
        leave_type = result.scalar_one_or_none()
        if leave_type is None:
            raise NotFoundException("LeaveType", code)
        return leave_type

    @staticmethod
    async def list_leave_types(
        db: AsyncSession, *, include_inactive: bool = False,
    ) -> list[LeaveType]:
        query = select(LeaveType).order_by(LeaveType.code)
        if not include_inactive:
            query = query.where(LeaveType.is_active.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def list_leave_types_for(db: AsyncSession, employee: Employee) -> list[LeaveType]:
        """Active leave types *employee* may apply for."""
        catalogue = await LeaveService.list_leave_types(db)
        return [lt for lt in catalogue if isinstance(validate(employee, lt), Ok)]

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        leave_req = await db.get(LeaveRequest, request_id)
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    def _can_review(actor: Employee, owner: Employee) -> bool:
        if actor.employee_id == owner.employee_id:
            return False
        return is_admin(actor) or owner.manager_employee_id == actor.employee_id

    @staticmethod
    def _can_view(viewer: Employee, owner: Employee) -> bool:
        return (
            viewer.employee_id == owner.employee_id
            or is_admin(viewer)
            or owner.manager_employee_id == viewer.employee_id
        )

    # ── Working-day preview ─────────────────────────────────────────

    @staticmethod
    async def calculate_days(
        db: AsyncSession,
        start_date: date,
        end_date: date,
        region: Optional[Region],
        start_day_type: DayType = DayType.FULL,
        end_day_type: DayType = DayType.FULL,
    ) -> DaysCalculationOut:
        """Chargeable days for a span using *region*'s holiday calendar."""
        holidays = await HolidayService.calendar_snapshot(db, region, start_date, end_date)
        total = compute_chargeable_days(
            start_date, end_date, holidays, start_day_type, end_day_type,
        )
        return DaysCalculationOut(
            start_date=start_date,
            end_date=end_date,
            region=region,
            total_days=total,
            day_details=classify_days(
                start_date, end_date, holidays, start_day_type, end_day_type,
            ),
        )

    # ── Submit ──────────────────────────────────────────────────────

    @staticmethod
    async def submit_leave(
        db: AsyncSession,
        employee_id: str,
        data: LeaveRequestCreate,
        *,
        today: Optional[date] = None,
    ) -> LeaveRequest:
        """Create a PENDING request and reserve its days, all or nothing."""
        today = today or local_today()

        employee = await EmployeeService.get(db, employee_id)
        if not employee.is_active:
            raise ValidationException({"employee_id": ["Employee is not active."]})

        leave_type = await LeaveService.get_leave_type(db, data.leave_type_code)
        ensure_eligible(employee, leave_type)

        # ── Day calculation ─────────────────────────────────────────
        holidays = await HolidayService.calendar_snapshot(
            db, employee.region, data.start_date, data.end_date,
        )
        total_days = compute_chargeable_days(
            data.start_date,
            data.end_date,
            holidays,
            data.start_day_type,
            data.end_day_type,
        )

        if data.start_date.year != data.end_date.year:
            raise ValidationException(
                {"end_date": ["A leave request cannot span two calendar years; "
                              "submit one request per year."]}
            )

        # ── Half-day rules ──────────────────────────────────────────
        half_day_ends = [
            (day, day_type)
            for day, day_type in (
                (data.start_date, data.start_day_type),
                (data.end_date, data.end_day_type),
            )
            if day_type != DayType.FULL
        ]
        if half_day_ends and not leave_type.allow_half_day:
            raise ValidationException(
                {"start_day_type": [f"{leave_type.code} cannot be taken as a half day."]}
            )
        for day, _ in half_day_ends:
            if not is_working_day(day, holidays):
                raise ValidationException(
                    {"start_day_type": [f"{day} is a weekend or holiday; "
                                        "a half day cannot be taken on it."]}
                )

        if total_days <= 0:
            raise ValidationException(
                {"dates": ["No leave days found in the selected range "
                           "(all days may be weekends or holidays)."]}
            )

        # ── Max consecutive days check ──────────────────────────────
        if leave_type.max_consecutive_days and total_days > leave_type.max_consecutive_days:
            raise ValidationException(
                {"dates": [f"{leave_type.code} allows at most "
                           f"{leave_type.max_consecutive_days} consecutive days; "
                           f"requested {total_days}."]}
            )

        # ── Stale preview ───────────────────────────────────────────
        if data.expected_total_days is not None and data.expected_total_days != total_days:
            raise ValidationException(
                {"expected_total_days": [
                    f"Chargeable days changed from {data.expected_total_days} to "
                    f"{total_days}; review the request and submit again."
                ]},
                error_type="stale-preview",
                title="Stale Preview",
                detail="The holiday calendar changed since the preview was calculated.",
            )

        # ── Overlap check ───────────────────────────────────────────
        overlap = await db.execute(
            select(LeaveRequest.id).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(list(LeaveRequestStateMachine.ACTIVE)),
                LeaveRequest.start_date <= data.end_date,
                LeaveRequest.end_date >= data.start_date,
            )
        )
        if overlap.first() is not None:
            raise ValidationException(
                {"dates": ["Overlaps with an existing pending or approved leave request."]}
            )

        # ── Reserve + create ────────────────────────────────────────
        ledger = BalanceLedger(db, actor_id=employee_id)
        async with db.begin_nested():
            await ledger.reserve(
                employee_id, leave_type.code, data.start_date.year, total_days,
            )
            leave_req = LeaveRequest(
                employee_id=employee_id,
                leave_type_code=leave_type.code,
                start_date=data.start_date,
                end_date=data.end_date,
                start_day_type=data.start_day_type,
                end_day_type=data.end_day_type,
                total_days=total_days,
                reason=data.reason.strip() if data.reason else None,
                status=LeaveStatus.PENDING,
                applied_date=today,
            )
            db.add(leave_req)
            await db.flush()

            await create_audit_entry(
                db,
                action=AuditAction.LEAVE_APPLIED,
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=employee_id,
                new_values=_request_summary(leave_req),
            )

        logger.info(
            "leave %s submitted by %s: %s %s..%s (%s days)",
            leave_req.id, employee_id, leave_type.code,
            data.start_date, data.end_date, total_days,
        )
        return leave_req

    # ── Approve ─────────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: str,
        *,
        comments: Optional[str] = None,
    ) -> LeaveRequest:
        """PENDING → APPROVED; reserved days become used."""
        actor = await EmployeeService.get(db, actor_id)
        leave_req = await LeaveService._get_request(db, request_id)
        owner = await EmployeeService.get(db, leave_req.employee_id)

        if not LeaveService._can_review(actor, owner):
            raise ForbiddenException(
                "You are not authorized to approve this leave request."
            )
        LeaveRequestStateMachine.validate_transition(leave_req.status, LeaveStatus.APPROVED)

        ledger = BalanceLedger(db, actor_id=actor_id)
        async with db.begin_nested():
            await LeaveRequestStateMachine.compare_and_swap(
                db, leave_req, LeaveStatus.PENDING, LeaveStatus.APPROVED,
            )
            await ledger.commit(
                leave_req.employee_id,
                leave_req.leave_type_code,
                leave_req.balance_year,
                leave_req.total_days,
            )
            db.add(Approval(
                leave_request_id=leave_req.id,
                approver_id=actor_id,
                status=ApprovalStatus.APPROVED,
                comments=comments,
            ))
            await create_audit_entry(
                db,
                action=AuditAction.LEAVE_APPROVED,
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=actor_id,
                old_values={"status": LeaveStatus.PENDING},
                new_values={"status": LeaveStatus.APPROVED, "comments": comments},
            )

        logger.info("leave %s approved by %s", leave_req.id, actor_id)
        return leave_req

    # ── Reject ──────────────────────────────────────────────────────

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: str,
        reason: Optional[str],
    ) -> LeaveRequest:
        """PENDING → REJECTED; the reservation returns to available."""
        reason = _require_text(reason, "reason", "A rejection reason is required.")

        actor = await EmployeeService.get(db, actor_id)
        leave_req = await LeaveService._get_request(db, request_id)
        owner = await EmployeeService.get(db, leave_req.employee_id)

        if not LeaveService._can_review(actor, owner):
            raise ForbiddenException(
                "You are not authorized to reject this leave request."
            )
        LeaveRequestStateMachine.validate_transition(leave_req.status, LeaveStatus.REJECTED)

        ledger = BalanceLedger(db, actor_id=actor_id)
        async with db.begin_nested():
            await LeaveRequestStateMachine.compare_and_swap(
                db, leave_req, LeaveStatus.PENDING, LeaveStatus.REJECTED,
                rejection_reason=reason,
                rejected_by=actor_id,
            )
            await ledger.release(
                leave_req.employee_id,
                leave_req.leave_type_code,
                leave_req.balance_year,
                leave_req.total_days,
            )
            db.add(Approval(
                leave_request_id=leave_req.id,
                approver_id=actor_id,
                status=ApprovalStatus.REJECTED,
                comments=reason,
            ))
            await create_audit_entry(
                db,
                action=AuditAction.LEAVE_REJECTED,
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=actor_id,
                old_values={"status": LeaveStatus.PENDING},
                new_values={"status": LeaveStatus.REJECTED, "reason": reason},
            )

        logger.info("leave %s rejected by %s", leave_req.id, actor_id)
        return leave_req

    # ── Cancel ──────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: str,
        reason: Optional[str],
        *,
        today: Optional[date] = None,
    ) -> LeaveRequest:
        """PENDING|APPROVED → CANCELLED while the start date has not elapsed.

        A pending request releases its reservation; an approved one
        reverses the used days.
        """
        today = today or local_today()
        reason = _require_text(reason, "reason", "A cancellation reason is required.")

        actor = await EmployeeService.get(db, actor_id)
        leave_req = await LeaveService._get_request(db, request_id)

        if leave_req.employee_id != actor_id and not is_admin(actor):
            raise ForbiddenException("You can only cancel your own leave requests.")

        if LeaveRequestStateMachine.is_terminal(leave_req.status):
            raise NotCancellable(
                f"Leave request is already {leave_req.status.value.lower()}."
            )
        if leave_req.start_date < today:
            raise NotCancellable(
                f"Leave starting {leave_req.start_date} has already begun.",
                field="start_date",
            )

        prior = leave_req.status
        ledger = BalanceLedger(db, actor_id=actor_id)
        async with db.begin_nested():
            await LeaveRequestStateMachine.compare_and_swap(
                db, leave_req, prior, LeaveStatus.CANCELLED,
                cancellation_reason=reason,
                cancelled_by=actor_id,
                cancelled_at=datetime.now(timezone.utc),
            )
            if prior == LeaveStatus.PENDING:
                await ledger.release(
                    leave_req.employee_id,
                    leave_req.leave_type_code,
                    leave_req.balance_year,
                    leave_req.total_days,
                )
            else:
                await ledger.reverse(
                    leave_req.employee_id,
                    leave_req.leave_type_code,
                    leave_req.balance_year,
                    leave_req.total_days,
                    start_date=leave_req.start_date,
                    today=today,
                )
            await create_audit_entry(
                db,
                action=AuditAction.LEAVE_CANCELLED,
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=actor_id,
                old_values={"status": prior},
                new_values={"status": LeaveStatus.CANCELLED, "reason": reason},
            )

        logger.info("leave %s cancelled by %s (was %s)", leave_req.id, actor_id, prior.value)
        return leave_req

    # ── Read views ──────────────────────────────────────────────────

    @staticmethod
    async def get_request_detail(
        db: AsyncSession,
        request_id: uuid.UUID,
        viewer: Employee,
    ) -> LeaveRequestDetail:
        leave_req = await LeaveService._get_request(db, request_id)
        owner = await EmployeeService.get(db, leave_req.employee_id)
        if not LeaveService._can_view(viewer, owner):
            raise ForbiddenException("You cannot view this leave request.")

        approvals = await db.execute(
            select(Approval)
            .where(Approval.leave_request_id == leave_req.id)
            .order_by(Approval.decided_at)
        )
        return LeaveRequestDetail(
            **LeaveRequestOut.model_validate(leave_req).model_dump(),
            approvals=[ApprovalOut.model_validate(a) for a in approvals.scalars().all()],
        )

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        viewer: Employee,
        pagination: PaginationParams,
        *,
        scope: str = "my",
        employee_id: Optional[str] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_code: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> tuple[list[LeaveRequest], PaginationMeta]:
        """Paginated requests.

        ``scope``: ``my`` = own, ``team`` = direct reports, ``all`` = everyone
        (administrators only).
        """
        query = select(LeaveRequest).order_by(LeaveRequest.start_date.desc())

        if scope == "my":
            query = query.where(LeaveRequest.employee_id == viewer.employee_id)
        elif scope == "team":
            reports = await EmployeeService.list_direct_reports(db, viewer.employee_id)
            query = query.where(LeaveRequest.employee_id.in_(reports))
        elif scope == "all":
            if not is_admin(viewer):
                raise ForbiddenException("Only administrators can list all leave requests.")
        else:
            raise ValidationException({"scope": ["Must be one of: my, team, all."]})

        if employee_id:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status:
            query = query.where(LeaveRequest.status == status)
        if leave_type_code:
            query = query.where(LeaveRequest.leave_type_code == leave_type_code.upper())
        if from_date:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date:
            query = query.where(LeaveRequest.start_date <= to_date)

        return await paginate(db, query, pagination, model=LeaveRequest)

    @staticmethod
    async def get_approval_history(
        db: AsyncSession,
        approver: Employee,
        pagination: PaginationParams,
    ) -> tuple[list[ApprovalHistoryItem], PaginationMeta]:
        """Approve and reject decisions made by *approver*, newest first."""
        query = (
            select(Approval)
            .where(
                Approval.approver_id == approver.employee_id,
                Approval.status.in_([ApprovalStatus.APPROVED, ApprovalStatus.REJECTED]),
            )
            .order_by(Approval.decided_at.desc())
        )
        approvals, meta = await paginate(db, query, pagination, model=Approval)
        if not approvals:
            return [], meta

        result = await db.execute(
            select(LeaveRequest).where(
                LeaveRequest.id.in_({a.leave_request_id for a in approvals})
            )
        )
        requests = {r.id: r for r in result.scalars().all()}
        items = [
            ApprovalHistoryItem(
                **ApprovalOut.model_validate(a).model_dump(),
                leave_request=LeaveRequestOut.model_validate(requests[a.leave_request_id]),
            )
            for a in approvals
        ]
        return items, meta

    @staticmethod
    async def get_pending_approvals(
        db: AsyncSession, actor: Employee,
    ) -> list[LeaveRequest]:
        """PENDING requests the actor may decide on, oldest first."""
        query = (
            select(LeaveRequest)
            .where(
                LeaveRequest.status == LeaveStatus.PENDING,
                LeaveRequest.employee_id != actor.employee_id,
            )
            .order_by(LeaveRequest.applied_date, LeaveRequest.created_at)
        )
        if not is_admin(actor):
            reports = await EmployeeService.list_direct_reports(db, actor.employee_id)
            query = query.where(LeaveRequest.employee_id.in_(reports))
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: str,
        year: int,
        viewer: Optional[Employee] = None,
    ) -> list[LeaveBalance]:
        """Ledger rows for one employee and year (read-only, no lazy creation)."""
        if viewer is not None and viewer.employee_id != employee_id:
            owner = await EmployeeService.get(db, employee_id)
            if not LeaveService._can_view(viewer, owner):
                raise ForbiddenException("You cannot view this employee's balances.")
        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
            .order_by(LeaveBalance.leave_type_code)
        )
        return list(result.scalars().all())
