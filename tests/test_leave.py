"""Leave request lifecycle tests — submit, approve, reject, cancel, read views.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import (
    ApprovalStatus,
    DayType,
    Gender,
    GenderRestriction,
    LeaveStatus,
    Region,
    RegionRestriction,
    UserRole,
)
from leave_ledger.common.exceptions import (
    ForbiddenException,
    IneligibleLeaveType,
    InsufficientBalance,
    InvalidTransition,
    NotCancellable,
    NotFoundException,
    ValidationException,
)
from leave_ledger.common.pagination import PaginationParams
from leave_ledger.core_hr.service import EmployeeService
from leave_ledger.leave.models import Approval, LeaveBalance, LeaveRequest
from leave_ledger.leave.schemas import LeaveRequestCreate
from leave_ledger.leave.service import LeaveService
from leave_ledger.leave.state_machine import LeaveRequestStateMachine
from tests.conftest import (
    _seed_balance,
    _seed_employee,
    _seed_holiday,
    _seed_leave_type,
)

YEAR = 2030
MON = date(2030, 3, 4)
WED = date(2030, 3, 6)
FRI = date(2030, 3, 8)
SAT = date(2030, 3, 9)
TODAY = date(2030, 3, 1)


# ═════════════════════════════════════════════════════════════════════
# Helpers — seed data for leave tests
# ═════════════════════════════════════════════════════════════════════


async def _seed_team(db: AsyncSession, *, allocated: Decimal = Decimal("12")) -> None:
    """EMP001 reports to MGR001; HR001 is an HR administrator; CL balance seeded."""
    await _seed_employee(db, "MGR001", first_name="Maya", role=UserRole.manager)
    await _seed_employee(db, "HR001", first_name="Hari", role=UserRole.hr_admin)
    await _seed_employee(db, "EMP001", first_name="Esha", gender=Gender.F,
                         manager_employee_id="MGR001")
    await _seed_leave_type(db, "CL", region_restriction=RegionRestriction.IND)
    await _seed_balance(db, "EMP001", "CL", year=YEAR, allocated=allocated)


async def _balance(db: AsyncSession, employee_id: str = "EMP001", code: str = "CL") -> LeaveBalance:
    result = await db.execute(
        select(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_code == code,
            LeaveBalance.year == YEAR,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def _request(
    start: date = MON,
    end: date = WED,
    code: str = "CL",
    **kwargs,
) -> LeaveRequestCreate:
    return LeaveRequestCreate(
        leave_type_code=code, start_date=start, end_date=end, reason="Family", **kwargs,
    )


async def _submit(db: AsyncSession, data: LeaveRequestCreate = None) -> LeaveRequest:
    return await LeaveService.submit_leave(db, "EMP001", data or _request(), today=TODAY)


# ═════════════════════════════════════════════════════════════════════
# 1. Submission
# ═════════════════════════════════════════════════════════════════════


class TestSubmitLeave:

    async def test_submit_reserves_days(self, db: AsyncSession):
        await _seed_team(db)

        leave_req = await _submit(db)

        assert leave_req.status == LeaveStatus.PENDING
        assert leave_req.total_days == Decimal("3")
        assert leave_req.applied_date == TODAY
        bal = await _balance(db)
        assert bal.pending == Decimal("3")
        assert bal.available == Decimal("9")

    async def test_submit_skips_regional_holiday(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_holiday(db, date(2030, 3, 5), region=Region.IND)
        await _seed_holiday(db, date(2030, 3, 6), region=Region.US)

        leave_req = await _submit(db)

        assert leave_req.total_days == Decimal("2")

    async def test_submit_half_day(self, db: AsyncSession):
        await _seed_team(db)

        leave_req = await _submit(db, _request(MON, MON, start_day_type=DayType.FIRST_HALF))

        assert leave_req.total_days == Decimal("0.5")
        assert (await _balance(db)).available == Decimal("11.5")

    async def test_half_day_on_weekend_rejected(self, db: AsyncSession):
        await _seed_team(db)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, _request(SAT, SAT, start_day_type=DayType.SECOND_HALF))
        assert "start_day_type" in exc_info.value.errors

    async def test_half_day_not_allowed_for_type(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_leave_type(db, "PTL", allow_half_day=False)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, _request(MON, MON, "PTL", end_day_type=DayType.FIRST_HALF))
        assert "start_day_type" in exc_info.value.errors

    async def test_weekend_only_range_rejected(self, db: AsyncSession):
        await _seed_team(db)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, _request(SAT, SAT + timedelta(days=1)))
        assert "dates" in exc_info.value.errors

    async def test_insufficient_balance_creates_nothing(self, db: AsyncSession):
        await _seed_team(db, allocated=Decimal("2"))

        with pytest.raises(InsufficientBalance):
            await _submit(db)

        rows = (await db.execute(select(LeaveRequest))).scalars().all()
        assert rows == []
        bal = await _balance(db)
        assert bal.pending == Decimal("0")
        assert bal.available == Decimal("2")

    async def test_ineligible_region(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_employee(db, "US001", region=Region.US, manager_employee_id="MGR001")

        with pytest.raises(IneligibleLeaveType):
            await LeaveService.submit_leave(db, "US001", _request(), today=TODAY)

    async def test_ineligible_gender(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_leave_type(db, "PTL", gender_restriction=GenderRestriction.MALE_ONLY)

        with pytest.raises(IneligibleLeaveType):
            await _submit(db, _request(code="PTL"))

    async def test_overlap_rejected(self, db: AsyncSession):
        await _seed_team(db)
        await _submit(db)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, _request(WED, FRI))
        assert "dates" in exc_info.value.errors

    async def test_overlap_ignores_cancelled(self, db: AsyncSession):
        await _seed_team(db)
        first = await _submit(db)
        await LeaveService.cancel_leave(db, first.id, "EMP001", "Plans changed", today=TODAY)

        second = await _submit(db)
        assert second.status == LeaveStatus.PENDING

    async def test_max_consecutive_days(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_leave_type(db, "BL", max_consecutive_days=2, allow_negative_balance=True)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, _request(code="BL"))
        assert "dates" in exc_info.value.errors

    async def test_cross_year_rejected(self, db: AsyncSession):
        await _seed_team(db)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, _request(date(2030, 12, 30), date(2031, 1, 2)))
        assert "end_date" in exc_info.value.errors

    async def test_stale_preview_rejected(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_holiday(db, date(2030, 3, 5))

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, _request(expected_total_days=Decimal("3")))
        assert exc_info.value.error_type == "stale-preview"
        assert (await _balance(db)).pending == Decimal("0")

    async def test_matching_preview_accepted(self, db: AsyncSession):
        await _seed_team(db)

        leave_req = await _submit(db, _request(expected_total_days=Decimal("3")))
        assert leave_req.total_days == Decimal("3")

    async def test_inactive_employee(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_employee(db, "GONE01", is_active=False)

        with pytest.raises(ValidationException):
            await LeaveService.submit_leave(db, "GONE01", _request(), today=TODAY)

    async def test_unknown_leave_type(self, db: AsyncSession):
        await _seed_team(db)

        with pytest.raises(NotFoundException):
            await _submit(db, _request(code="NOPE"))


# ═════════════════════════════════════════════════════════════════════
# 2. Approval workflow
# ═════════════════════════════════════════════════════════════════════


class TestApprovalWorkflow:

    async def test_manager_approves(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        result = await LeaveService.approve_leave(db, leave_req.id, "MGR001", comments="Enjoy")

        assert result.status == LeaveStatus.APPROVED
        bal = await _balance(db)
        assert bal.pending == Decimal("0")
        assert bal.used == Decimal("3")
        assert bal.available == Decimal("9")
        approvals = (await db.execute(select(Approval))).scalars().all()
        assert len(approvals) == 1
        assert approvals[0].status == ApprovalStatus.APPROVED
        assert approvals[0].approver_id == "MGR001"

    async def test_hr_admin_approves_any(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        result = await LeaveService.approve_leave(db, leave_req.id, "HR001")
        assert result.status == LeaveStatus.APPROVED

    async def test_unrelated_manager_forbidden(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_employee(db, "MGR002", role=UserRole.manager)
        leave_req = await _submit(db)

        with pytest.raises(ForbiddenException):
            await LeaveService.approve_leave(db, leave_req.id, "MGR002")

    async def test_self_approval_forbidden(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_balance(db, "HR001", "CL", year=YEAR)
        leave_req = await LeaveService.submit_leave(db, "HR001", _request(), today=TODAY)

        with pytest.raises(ForbiddenException):
            await LeaveService.approve_leave(db, leave_req.id, "HR001")

    async def test_approve_twice_is_invalid_transition(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)
        await LeaveService.approve_leave(db, leave_req.id, "MGR001")

        with pytest.raises(InvalidTransition):
            await LeaveService.approve_leave(db, leave_req.id, "HR001")
        assert (await _balance(db)).used == Decimal("3")

    async def test_lost_race_leaves_ledger_untouched(self, db: AsyncSession):
        """A concurrent cancel that already won makes the approve CAS fail."""
        await _seed_team(db)
        leave_req = await _submit(db)
        await db.execute(
            update(LeaveRequest)
            .where(LeaveRequest.id == leave_req.id)
            .values(status=LeaveStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(InvalidTransition):
            await LeaveRequestStateMachine.compare_and_swap(
                db, leave_req, LeaveStatus.PENDING, LeaveStatus.APPROVED,
            )
        assert leave_req.status == LeaveStatus.CANCELLED
        assert (await _balance(db)).used == Decimal("0")

    async def test_reject_then_resubmit_restores_available(self, db: AsyncSession):
        await _seed_team(db)
        before = (await _balance(db)).available
        leave_req = await _submit(db)

        result = await LeaveService.reject_leave(db, leave_req.id, "MGR001", "Busy week")

        assert result.status == LeaveStatus.REJECTED
        assert result.rejection_reason == "Busy week"
        assert result.rejected_by == "MGR001"
        bal = await _balance(db)
        assert bal.available == before
        assert bal.pending == Decimal("0")

        again = await _submit(db)
        assert again.status == LeaveStatus.PENDING

    async def test_reject_requires_reason(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.reject_leave(db, leave_req.id, "MGR001", "   ")
        assert "reason" in exc_info.value.errors

    async def test_reject_approved_is_invalid_transition(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)
        await LeaveService.approve_leave(db, leave_req.id, "MGR001")

        with pytest.raises(InvalidTransition):
            await LeaveService.reject_leave(db, leave_req.id, "MGR001", "Too late")

    async def test_approve_nonexistent(self, db: AsyncSession):
        await _seed_team(db)
        with pytest.raises(NotFoundException):
            await LeaveService.approve_leave(db, uuid.uuid4(), "MGR001")


# ═════════════════════════════════════════════════════════════════════
# 3. Cancellation
# ═════════════════════════════════════════════════════════════════════


class TestCancelLeave:

    async def test_cancel_pending_releases(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        result = await LeaveService.cancel_leave(db, leave_req.id, "EMP001", "No longer needed", today=TODAY)

        assert result.status == LeaveStatus.CANCELLED
        assert result.cancelled_by == "EMP001"
        bal = await _balance(db)
        assert bal.pending == Decimal("0")
        assert bal.available == Decimal("12")

    async def test_cancel_approved_reverses(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)
        await LeaveService.approve_leave(db, leave_req.id, "MGR001")

        await LeaveService.cancel_leave(db, leave_req.id, "EMP001", "Trip cancelled", today=TODAY)

        bal = await _balance(db)
        assert bal.used == Decimal("0")
        assert bal.available == Decimal("12")

    async def test_cancel_on_start_date_allowed(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)
        await LeaveService.approve_leave(db, leave_req.id, "MGR001")

        result = await LeaveService.cancel_leave(db, leave_req.id, "EMP001", "Sick child", today=MON)
        assert result.status == LeaveStatus.CANCELLED

    async def test_cancel_after_start_date_refused(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        with pytest.raises(NotCancellable) as exc_info:
            await LeaveService.cancel_leave(
                db, leave_req.id, "EMP001", "Too late", today=MON + timedelta(days=1),
            )
        assert "start_date" in exc_info.value.errors
        assert (await _balance(db)).pending == Decimal("3")

    async def test_cancel_terminal_refused(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)
        await LeaveService.reject_leave(db, leave_req.id, "MGR001", "No")

        with pytest.raises(NotCancellable):
            await LeaveService.cancel_leave(db, leave_req.id, "EMP001", "Anyway", today=TODAY)

    async def test_cancel_requires_reason(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        with pytest.raises(ValidationException):
            await LeaveService.cancel_leave(db, leave_req.id, "EMP001", "", today=TODAY)

    async def test_cancel_others_request_forbidden(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        with pytest.raises(ForbiddenException):
            await LeaveService.cancel_leave(db, leave_req.id, "MGR001", "Not yours", today=TODAY)

    async def test_admin_may_cancel(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        result = await LeaveService.cancel_leave(db, leave_req.id, "HR001", "Data fix", today=TODAY)
        assert result.cancelled_by == "HR001"


# ═════════════════════════════════════════════════════════════════════
# 4. Read views
# ═════════════════════════════════════════════════════════════════════


class TestReadViews:

    async def test_pending_approvals_for_manager(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)

        queue = await LeaveService.get_pending_approvals(db, await EmployeeService.get(db, "MGR001"))
        assert [r.id for r in queue] == [leave_req.id]

        own_queue = await LeaveService.get_pending_approvals(db, await EmployeeService.get(db, "EMP001"))
        assert own_queue == []

    async def test_list_requests_scopes(self, db: AsyncSession):
        await _seed_team(db)
        await _submit(db)
        params = PaginationParams(page=1, page_size=10, sort=None)

        employee = await EmployeeService.get(db, "EMP001")
        rows, meta = await LeaveService.list_requests(db, employee, params, scope="my")
        assert len(rows) == 1
        assert meta.total == 1

        manager = await EmployeeService.get(db, "MGR001")
        rows, _ = await LeaveService.list_requests(db, manager, params, scope="team")
        assert len(rows) == 1

        with pytest.raises(ForbiddenException):
            await LeaveService.list_requests(db, manager, params, scope="all")

        admin = await EmployeeService.get(db, "HR001")
        rows, _ = await LeaveService.list_requests(
            db, admin, params, scope="all", status=LeaveStatus.APPROVED,
        )
        assert rows == []

    async def test_request_detail_includes_approvals(self, db: AsyncSession):
        await _seed_team(db)
        leave_req = await _submit(db)
        await LeaveService.approve_leave(db, leave_req.id, "MGR001", comments="ok")

        detail = await LeaveService.get_request_detail(
            db, leave_req.id, await EmployeeService.get(db, "EMP001"),
        )
        assert detail.status == LeaveStatus.APPROVED
        assert [a.comments for a in detail.approvals] == ["ok"]

    async def test_balances_visible_to_manager_not_peer(self, db: AsyncSession):
        await _seed_team(db)
        await _seed_employee(db, "EMP002", manager_employee_id="MGR001")

        rows = await LeaveService.get_balances(
            db, "EMP001", YEAR, viewer=await EmployeeService.get(db, "MGR001"),
        )
        assert [r.leave_type_code for r in rows] == ["CL"]

        with pytest.raises(ForbiddenException):
            await LeaveService.get_balances(
                db, "EMP001", YEAR, viewer=await EmployeeService.get(db, "EMP002"),
            )

    async def test_calculate_days_preview(self, db: AsyncSession):
        await _seed_holiday(db, date(2030, 3, 5))

        preview = await LeaveService.calculate_days(db, MON, WED, Region.IND)

        assert preview.total_days == Decimal("2")
        assert preview.day_details["2030-03-05"] == "HOLIDAY"

        us_preview = await LeaveService.calculate_days(db, MON, WED, Region.US)
        assert us_preview.total_days == Decimal("3")

    async def test_approval_history_per_approver(self, db: AsyncSession):
        await _seed_team(db)
        approved = await _submit(db)
        rejected = await _submit(db, _request(FRI, FRI))
        await LeaveService.approve_leave(db, approved.id, "MGR001", comments="ok")
        await LeaveService.reject_leave(db, rejected.id, "HR001", "Quarter close")
        params = PaginationParams(page=1, page_size=10, sort=None)

        items, meta = await LeaveService.get_approval_history(
            db, await EmployeeService.get(db, "MGR001"), params,
        )
        assert meta.total == 1
        assert items[0].status == ApprovalStatus.APPROVED
        assert items[0].leave_request.id == approved.id
        assert items[0].leave_request.status == LeaveStatus.APPROVED

        items, _ = await LeaveService.get_approval_history(
            db, await EmployeeService.get(db, "HR001"), params,
        )
        assert [(i.status, i.leave_request.id) for i in items] == [
            (ApprovalStatus.REJECTED, rejected.id),
        ]

        items, meta = await LeaveService.get_approval_history(
            db, await EmployeeService.get(db, "EMP001"), params,
        )
        assert items == []
        assert meta.total == 0

    async def test_leave_types_filtered_by_eligibility(self, db: AsyncSession):
        await _seed_employee(db, "US001", region=Region.US, gender=Gender.F)
        await _seed_employee(db, "IN001", region=Region.IND, gender=Gender.M)
        await _seed_leave_type(db, "CL", region_restriction=RegionRestriction.IND)
        await _seed_leave_type(db, "PTO", region_restriction=RegionRestriction.US)
        await _seed_leave_type(db, "ML", gender_restriction=GenderRestriction.FEMALE_ONLY)
        await _seed_leave_type(db, "LWP")
        await _seed_leave_type(db, "OLD", is_active=False)

        us_codes = [
            lt.code for lt in
            await LeaveService.list_leave_types_for(db, await EmployeeService.get(db, "US001"))
        ]
        in_codes = [
            lt.code for lt in
            await LeaveService.list_leave_types_for(db, await EmployeeService.get(db, "IN001"))
        ]

        assert us_codes == ["LWP", "ML", "PTO"]
        assert in_codes == ["CL", "LWP"]
        everything = await LeaveService.list_leave_types(db, include_inactive=True)
        assert [lt.code for lt in everything] == ["CL", "LWP", "ML", "OLD", "PTO"]
