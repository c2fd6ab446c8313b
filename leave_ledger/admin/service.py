"""Admin service — leave catalogue, special actions, bulk adjustments, policy runs.

Every balance change goes through ``BalanceLedger.allocate`` (or
``carry_forward``) after the eligibility check; nothing here writes
``leave_balances`` directly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.admin.schemas import (
    BulkDetails,
    BulkSpecialActionResult,
    CarryForwardItem,
    CarryForwardResult,
    LeaveTypeCreate,
    LeaveTypeUpdate,
    PolicyExistsOut,
    PolicyHistoryOut,
    PolicyProcessResult,
    SpecialActionResult,
)
from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import (
    AuditAction,
    BalanceAction,
    EmploymentType,
    Region,
)
from leave_ledger.common.exceptions import (
    AppException,
    ConflictError,
    EmptyBatch,
    IneligibleLeaveType,
    NotFoundException,
    ValidationException,
)
from leave_ledger.common.tz import local_today
from leave_ledger.core_hr.models import Employee
from leave_ledger.core_hr.service import EmployeeService
from leave_ledger.leave.eligibility import Reject, ensure_eligible, validate
from leave_ledger.leave.ledger import BalanceLedger
from leave_ledger.leave.models import LeaveBalance, LeaveType, PolicyProcessHistory
from leave_ledger.leave.schemas import LeaveBalanceOut
from leave_ledger.leave.service import LeaveService

logger = logging.getLogger(__name__)


def _error_message(exc: AppException) -> str:
    """First field message of a validation error, else its detail."""
    if isinstance(exc, IneligibleLeaveType):
        return exc.reason
    if exc.errors:
        for messages in exc.errors.values():
            if messages:
                return messages[0]
    return exc.detail


def _require_comments(comments: Optional[str]) -> str:
    if comments is None or not comments.strip():
        raise ValidationException({"comments": ["Comments are required for balance adjustments."]})
    return comments.strip()


def _signed(days: Decimal, action: BalanceAction) -> Decimal:
    return days if action == BalanceAction.ADD else -days


class AdminLeaveService:

    # ═══════════════════════════════════════════════════════════════
    # LEAVE TYPES
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    async def create_leave_type(db: AsyncSession, data: LeaveTypeCreate) -> LeaveType:
        code = data.code.strip().upper()
        existing = await db.execute(select(LeaveType.id).where(LeaveType.code == code))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("code", code)

        leave_type = LeaveType(**{**data.model_dump(), "code": code})
        db.add(leave_type)
        await db.flush()
        logger.info("leave type %s created", code)
        return leave_type

    @staticmethod
    async def update_leave_type(
        db: AsyncSession, code: str, data: LeaveTypeUpdate,
    ) -> LeaveType:
        leave_type = await LeaveService.get_leave_type(db, code.upper())
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(leave_type, field, value)
        await db.flush()
        await db.refresh(leave_type)
        return leave_type

    # ═══════════════════════════════════════════════════════════════
    # SPECIAL ACTIONS
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    async def apply_special_action(
        db: AsyncSession,
        employee_id: str,
        leave_type_code: str,
        days: Decimal,
        action: BalanceAction,
        actor_id: str,
        comments: Optional[str],
        *,
        year: Optional[int] = None,
    ) -> SpecialActionResult:
        """ADD or REMOVE *days* of entitlement for one employee."""
        comments = _require_comments(comments)
        year = year or local_today().year

        employee = await EmployeeService.get(db, employee_id)
        if not employee.is_active:
            raise ValidationException({"employee_id": [f"Employee {employee_id} is not active."]})
        leave_type = await LeaveService.get_leave_type(db, leave_type_code)
        ensure_eligible(employee, leave_type)

        ledger = BalanceLedger(db, actor_id=actor_id)
        balance = await ledger.allocate(
            employee_id, leave_type.code, year, _signed(Decimal(days), action),
        )
        await create_audit_entry(
            db,
            action=AuditAction.SPECIAL_ACTION,
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor_id,
            new_values={
                "employee_id": employee_id,
                "leave_type_code": leave_type.code,
                "year": year,
                "action": action,
                "days": days,
                "comments": comments,
            },
        )

        verb, preposition = ("added", "to") if action == BalanceAction.ADD else ("removed", "from")
        return SpecialActionResult(
            employee_id=employee_id,
            leave_type_code=leave_type.code,
            action=action,
            days=days,
            year=year,
            message=(
                f"Successfully {verb} {days} days of {leave_type.code} "
                f"{preposition} {employee.full_name}"
            ),
            balance=LeaveBalanceOut.model_validate(balance),
        )

    @staticmethod
    async def apply_special_action_bulk(
        db: AsyncSession,
        employee_ids: Sequence[str],
        leave_type_code: str,
        days: Decimal,
        action: BalanceAction,
        actor_id: str,
        comments: Optional[str],
        *,
        year: Optional[int] = None,
    ) -> BulkSpecialActionResult:
        """Apply one special action to each employee in order.

        Each employee runs in its own savepoint; a failure is recorded in
        ``error_messages`` and processing continues with the next one.
        """
        if not employee_ids:
            raise EmptyBatch()
        comments = _require_comments(comments)
        year = year or local_today().year
        leave_type = await LeaveService.get_leave_type(db, leave_type_code)
        delta = _signed(Decimal(days), action)

        ledger = BalanceLedger(db, actor_id=actor_id)
        directory = await EmployeeService.get_many(db, employee_ids)
        details = BulkDetails()
        seen: set[str] = set()

        for employee_id in employee_ids:
            if employee_id in seen:
                details.warning_messages.append(
                    f"{employee_id}: listed more than once; processed only the first entry"
                )
                continue
            seen.add(employee_id)

            employee: Optional[Employee] = directory.get(employee_id)
            label = f"{employee.full_name} ({employee_id})" if employee else employee_id
            try:
                if employee is None:
                    raise NotFoundException("Employee", employee_id)
                if not employee.is_active:
                    raise ValidationException({"employee_id": ["Employee is not active."]})
                async with db.begin_nested():
                    ensure_eligible(employee, leave_type)
                    await ledger.allocate(employee_id, leave_type.code, year, delta)
            except (ValidationException, NotFoundException) as exc:
                details.error_messages.append(f"{label}: {_error_message(exc)}")
                logger.info("bulk %s %s skipped %s: %s", action.value, leave_type.code, employee_id, exc.detail)
                continue
            details.processed_employees.append(label)

        await create_audit_entry(
            db,
            action=AuditAction.BULK_SPECIAL_ACTION,
            entity_type="leave_type",
            entity_id=leave_type.code,
            actor_id=actor_id,
            new_values={
                "action": action,
                "days": days,
                "year": year,
                "comments": comments,
                "processed": details.processed_employees,
                "errors": details.error_messages,
            },
        )
        logger.info(
            "bulk %s %s %s days: %d processed, %d errors",
            action.value, leave_type.code, days,
            len(details.processed_employees), len(details.error_messages),
        )
        return BulkSpecialActionResult(
            processed=len(details.processed_employees),
            errors=len(details.error_messages),
            warnings=len(details.warning_messages),
            details=details,
        )

    # ═══════════════════════════════════════════════════════════════
    # POLICY PROCESSING
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    async def _find_history(
        db: AsyncSession,
        region: Region,
        employment_type: EmploymentType,
        month: int,
        year: int,
        *,
        for_update: bool = False,
    ) -> Optional[PolicyProcessHistory]:
        query = select(PolicyProcessHistory).where(
            PolicyProcessHistory.region == region,
            PolicyProcessHistory.employment_type == employment_type,
            PolicyProcessHistory.month == month,
            PolicyProcessHistory.year == year,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def process_policy(
        db: AsyncSession,
        region: Region,
        employment_type: EmploymentType,
        month: int,
        year: int,
        leave_type_amounts: dict[str, Decimal],
        actor_id: str,
    ) -> PolicyProcessResult:
        """Credit a period's entitlement to every active employee of a cohort.

        A period that was already processed is processed again and reported
        with ``already_processed=True``. Ineligible (employee, leave type)
        pairs are skipped silently. Allocations and the history row share the
        caller's transaction.
        """
        if not leave_type_amounts:
            raise ValidationException({"leave_type_amounts": ["At least one leave type is required."]})

        history = await AdminLeaveService._find_history(
            db, region, employment_type, month, year, for_update=True,
        )
        already_processed = history is not None
        if already_processed:
            logger.warning(
                "policy %s/%s %02d-%d already processed %d time(s); re-running",
                region.value, employment_type.value, month, year, history.run_count,
            )

        employees = await EmployeeService.list_active_cohort(db, region, employment_type)
        if not employees:
            raise ValidationException(
                {"employees": [f"No active {employment_type.value} employees found in {region.value}."]}
            )

        leave_types = {
            code: await LeaveService.get_leave_type(db, code) for code in leave_type_amounts
        }

        ledger = BalanceLedger(db, actor_id=actor_id)
        applied: set[str] = set()
        skipped = 0
        for employee in employees:
            for code, days in leave_type_amounts.items():
                if isinstance(validate(employee, leave_types[code]), Reject):
                    skipped += 1
                    continue
                await ledger.allocate(employee.employee_id, code, year, Decimal(days))
                applied.add(employee.employee_id)

        amounts = {code: str(days) for code, days in leave_type_amounts.items()}
        now = datetime.now(timezone.utc)
        if history is None:
            history = PolicyProcessHistory(
                region=region,
                employment_type=employment_type,
                month=month,
                year=year,
                leave_type_amounts=amounts,
                employees_count=len(applied),
                run_count=1,
                processed_by=actor_id,
                processed_at=now,
            )
            try:
                async with db.begin_nested():
                    db.add(history)
            except IntegrityError:
                # a concurrent first run recorded the period after our lookup
                logger.warning(
                    "policy %s/%s %02d-%d recorded concurrently; aborting this run",
                    region.value, employment_type.value, month, year,
                )
                raise ConflictError(
                    "period", f"{region.value}/{employment_type.value} {month:02d}-{year}",
                )
        else:
            history.leave_type_amounts = amounts
            history.employees_count = len(applied)
            history.run_count += 1
            history.processed_by = actor_id
            history.processed_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action=AuditAction.POLICY_PROCESSED,
            entity_type="policy_process_history",
            entity_id=history.id,
            actor_id=actor_id,
            new_values={
                "region": region,
                "employment_type": employment_type,
                "month": month,
                "year": year,
                "amounts": amounts,
                "applied_to": len(applied),
                "already_processed": already_processed,
            },
        )
        logger.info(
            "policy %s/%s %02d-%d applied to %d employees (%d skipped pairs)",
            region.value, employment_type.value, month, year, len(applied), skipped,
        )
        return PolicyProcessResult(
            already_processed=already_processed,
            applied_to=len(applied),
            skipped=skipped,
            history=PolicyHistoryOut.model_validate(history),
        )

    @staticmethod
    async def check_processing_exists(
        db: AsyncSession,
        region: Region,
        employment_type: EmploymentType,
        month: int,
        year: int,
    ) -> PolicyExistsOut:
        history = await AdminLeaveService._find_history(db, region, employment_type, month, year)
        return PolicyExistsOut(
            exists=history is not None,
            history=PolicyHistoryOut.model_validate(history) if history else None,
        )

    @staticmethod
    async def get_process_history(
        db: AsyncSession,
        *,
        region: Optional[Region] = None,
        employment_type: Optional[EmploymentType] = None,
        year: Optional[int] = None,
    ) -> list[PolicyProcessHistory]:
        query = select(PolicyProcessHistory).order_by(
            PolicyProcessHistory.year.desc(),
            PolicyProcessHistory.month.desc(),
            PolicyProcessHistory.region,
            PolicyProcessHistory.employment_type,
        )
        if region is not None:
            query = query.where(PolicyProcessHistory.region == region)
        if employment_type is not None:
            query = query.where(PolicyProcessHistory.employment_type == employment_type)
        if year is not None:
            query = query.where(PolicyProcessHistory.year == year)
        result = await db.execute(query)
        return list(result.scalars().all())

    # ═══════════════════════════════════════════════════════════════
    # YEAR-END CARRY FORWARD
    # ═══════════════════════════════════════════════════════════════

    @staticmethod
    async def carry_forward(
        db: AsyncSession,
        leave_type_code: str,
        from_year: int,
        actor_id: str,
        *,
        employee_ids: Optional[Sequence[str]] = None,
    ) -> CarryForwardResult:
        """Close *from_year* for one leave type, employee by employee."""
        leave_type = await LeaveService.get_leave_type(db, leave_type_code)
        to_year = from_year + 1

        if employee_ids is None:
            rows = await db.execute(
                select(LeaveBalance.employee_id)
                .where(
                    LeaveBalance.leave_type_code == leave_type.code,
                    LeaveBalance.year == from_year,
                )
                .order_by(LeaveBalance.employee_id)
            )
            employee_ids = list(rows.scalars().all())

        ledger = BalanceLedger(db, actor_id=actor_id)
        results: list[CarryForwardItem] = []
        errors: list[str] = []
        for employee_id in employee_ids:
            try:
                async with db.begin_nested():
                    carried, expired = await ledger.carry_forward(
                        employee_id, leave_type.code, from_year, to_year,
                    )
            except (ValidationException, NotFoundException) as exc:
                errors.append(f"{employee_id}: {_error_message(exc)}")
                continue
            results.append(
                CarryForwardItem(employee_id=employee_id, carried=carried, expired=expired)
            )

        logger.info(
            "carry forward %s %d->%d: %d employees, %d errors",
            leave_type.code, from_year, to_year, len(results), len(errors),
        )
        return CarryForwardResult(
            leave_type_code=leave_type.code,
            from_year=from_year,
            to_year=to_year,
            results=results,
            errors=errors,
        )
