"""Balance ledger — the only code path that mutates ``leave_balances`` rows.

Every operation locks the (employee_id, leave_type_code, year) row with
``SELECT ... FOR UPDATE``, checks the balance invariant before and after the
change, and writes an audit entry. The caller owns the transaction: a raised
error means the session must be rolled back (``get_db`` does this per request,
bulk paths do it per savepoint).

Invariant for every row::

    available = allocated + carried_forward - used - pending
                - expired - encashed - carried_out
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import HALF_DAY, AuditAction
from leave_ledger.common.exceptions import (
    InsufficientBalance,
    LedgerCorruption,
    NotCancellable,
    NotFoundException,
    ValidationException,
)
from leave_ledger.leave.models import ZERO, LeaveBalance, LeaveType

logger = logging.getLogger(__name__)

_NON_NEGATIVE_FIELDS = (
    "allocated",
    "used",
    "pending",
    "carried_forward",
    "expired",
    "encashed",
    "carried_out",
)


def expected_available(row: LeaveBalance) -> Decimal:
    return (
        row.allocated
        + row.carried_forward
        - row.used
        - row.pending
        - row.expired
        - row.encashed
        - row.carried_out
    )


def invariant_violations(row: LeaveBalance, allow_negative: bool) -> list[str]:
    """Return a description of every broken rule on *row* (empty when healthy)."""
    problems: list[str] = []
    expected = expected_available(row)
    if row.available != expected:
        problems.append(f"available={row.available} but components give {expected}")
    for field in _NON_NEGATIVE_FIELDS:
        if getattr(row, field) < ZERO:
            problems.append(f"{field}={getattr(row, field)} is negative")
    if not allow_negative and row.available < ZERO:
        problems.append(f"available={row.available} is negative")
    return problems


def _check_days(days: Decimal, field: str = "days") -> Decimal:
    days = Decimal(days)
    if days <= ZERO:
        raise ValidationException({field: ["Must be greater than zero."]})
    if days % HALF_DAY != ZERO:
        raise ValidationException({field: ["Must be a multiple of 0.5 days."]})
    return days


class BalanceLedger:
    """Row-locked debit/credit operations on leave balances.

    Bound to one session (one transaction). ``actor_id`` is recorded on
    every audit entry the ledger writes.
    """

    def __init__(self, db: AsyncSession, actor_id: Optional[str] = None) -> None:
        self.db = db
        self.actor_id = actor_id
        self._leave_types: dict[str, LeaveType] = {}

    # ── Row access ──────────────────────────────────────────────────

    async def _leave_type(self, leave_type_code: str) -> LeaveType:
        if leave_type_code not in self._leave_types:
            result = await self.db.execute(
                select(LeaveType).where(LeaveType.code == leave_type_code)
            )
            leave_type = result.scalar_one_or_none()
            if leave_type is None:
                raise NotFoundException("LeaveType", leave_type_code)
            self._leave_types[leave_type_code] = leave_type
        return self._leave_types[leave_type_code]

    async def _select_locked(
        self, employee_id: str, leave_type_code: str, year: int,
    ) -> Optional[LeaveBalance]:
        result = await self.db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_code == leave_type_code,
                LeaveBalance.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock(
        self,
        employee_id: str,
        leave_type_code: str,
        year: int,
        *,
        create: bool = True,
    ) -> Optional[LeaveBalance]:
        """Lock and re-read the ledger row, creating a zeroed row if missing."""
        row = await self._select_locked(employee_id, leave_type_code, year)
        if row is not None or not create:
            return row

        row = LeaveBalance(
            employee_id=employee_id,
            leave_type_code=leave_type_code,
            year=year,
            allocated=ZERO,
            used=ZERO,
            pending=ZERO,
            available=ZERO,
            carried_forward=ZERO,
            expired=ZERO,
            encashed=ZERO,
            carried_out=ZERO,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            # another transaction created it first
            row = await self._select_locked(employee_id, leave_type_code, year)
            if row is None:
                raise
        return row

    async def get_or_create(
        self, employee_id: str, leave_type_code: str, year: int,
    ) -> LeaveBalance:
        await self._leave_type(leave_type_code)
        return await self.lock(employee_id, leave_type_code, year)

    # ── Invariant enforcement ───────────────────────────────────────

    def _assert_healthy(
        self, row: LeaveBalance, leave_type: LeaveType, stage: str, operation: str,
    ) -> None:
        problems = invariant_violations(row, leave_type.allow_negative_balance)
        if problems:
            logger.error(
                "Ledger invariant broken %s %s on %s/%s/%s: %s (row=%s)",
                stage, operation, row.employee_id, row.leave_type_code, row.year,
                "; ".join(problems), row.snapshot(),
            )
            raise LedgerCorruption(
                f"Balance invariant violated {stage} {operation} for "
                f"{row.employee_id}/{row.leave_type_code}/{row.year}: "
                + "; ".join(problems),
                snapshot={k: str(v) for k, v in row.snapshot().items()},
            )

    async def _mutate(
        self,
        operation: str,
        action: AuditAction,
        employee_id: str,
        leave_type_code: str,
        year: int,
        deltas: dict[str, Decimal],
        *,
        require_available: Optional[Decimal] = None,
    ) -> LeaveBalance:
        leave_type = await self._leave_type(leave_type_code)
        row = await self.lock(employee_id, leave_type_code, year)
        self._assert_healthy(row, leave_type, "before", operation)

        if (
            require_available is not None
            and not leave_type.allow_negative_balance
            and row.available < require_available
        ):
            raise InsufficientBalance(leave_type_code, row.available, require_available)

        before = row.snapshot()
        for field, delta in deltas.items():
            setattr(row, field, getattr(row, field) + delta)
        self._assert_healthy(row, leave_type, "after", operation)
        await self.db.flush()

        logger.info(
            "ledger %s %s/%s/%s %s",
            operation, employee_id, leave_type_code, year,
            {k: str(v) for k, v in deltas.items()},
        )
        await create_audit_entry(
            self.db,
            action=action,
            entity_type="leave_balance",
            entity_id=row.id,
            actor_id=self.actor_id,
            old_values=before,
            new_values={
                **row.snapshot(),
                "employee_id": employee_id,
                "leave_type_code": leave_type_code,
                "year": year,
            },
        )
        return row

    # ── Request lifecycle verbs ─────────────────────────────────────

    async def reserve(
        self, employee_id: str, leave_type_code: str, year: int, days: Decimal,
    ) -> LeaveBalance:
        """Hold *days* for a newly submitted request."""
        days = _check_days(days)
        return await self._mutate(
            "reserve", AuditAction.BALANCE_RESERVED,
            employee_id, leave_type_code, year,
            {"pending": days, "available": -days},
            require_available=days,
        )

    async def commit(
        self, employee_id: str, leave_type_code: str, year: int, days: Decimal,
    ) -> LeaveBalance:
        """Turn a reservation into consumption on approval."""
        days = _check_days(days)
        return await self._mutate(
            "commit", AuditAction.BALANCE_COMMITTED,
            employee_id, leave_type_code, year,
            {"pending": -days, "used": days},
        )

    async def release(
        self, employee_id: str, leave_type_code: str, year: int, days: Decimal,
    ) -> LeaveBalance:
        """Return a reservation to ``available`` (reject / cancel while pending)."""
        days = _check_days(days)
        return await self._mutate(
            "release", AuditAction.BALANCE_RELEASED,
            employee_id, leave_type_code, year,
            {"pending": -days, "available": days},
        )

    async def reverse(
        self,
        employee_id: str,
        leave_type_code: str,
        year: int,
        days: Decimal,
        *,
        start_date: date,
        today: date,
    ) -> LeaveBalance:
        """Give back consumed days when an approved request is cancelled."""
        if start_date < today:
            raise NotCancellable(
                f"Leave starting {start_date} has already begun.", field="start_date",
            )
        days = _check_days(days)
        return await self._mutate(
            "reverse", AuditAction.BALANCE_REVERSED,
            employee_id, leave_type_code, year,
            {"used": -days, "available": days},
        )

    # ── Administrative verbs ────────────────────────────────────────

    async def allocate(
        self, employee_id: str, leave_type_code: str, year: int, delta: Decimal,
    ) -> LeaveBalance:
        """Credit (delta > 0) or debit (delta < 0) the entitlement."""
        delta = Decimal(delta)
        if delta == ZERO:
            raise ValidationException({"days": ["Must not be zero."]})
        _check_days(abs(delta))

        if delta < ZERO:
            leave_type = await self._leave_type(leave_type_code)
            row = await self.lock(employee_id, leave_type_code, year)
            if not leave_type.allow_negative_balance and row.available + delta < ZERO:
                raise InsufficientBalance(leave_type_code, row.available, -delta)
            if row.allocated + delta < ZERO:
                raise InsufficientBalance(
                    leave_type_code, row.allocated, -delta,
                    message=(
                        f"Cannot remove {-delta} {leave_type_code} days: "
                        f"only {row.allocated} allocated."
                    ),
                )

        return await self._mutate(
            "allocate", AuditAction.BALANCE_ALLOCATED,
            employee_id, leave_type_code, year,
            {"allocated": delta, "available": delta},
        )

    async def carry_forward(
        self, employee_id: str, leave_type_code: str, from_year: int, to_year: int,
    ) -> tuple[Decimal, Decimal]:
        """Move unused days from *from_year* into *to_year*.

        Up to ``max_carry_forward_days`` lands in the new year's
        ``carried_forward``; the rest of the positive ``available`` expires.
        Returns ``(carried, expired)``.
        """
        if to_year <= from_year:
            raise ValidationException({"to_year": ["Must be after from_year."]})

        leave_type = await self._leave_type(leave_type_code)
        source = await self.lock(employee_id, leave_type_code, from_year, create=False)
        if source is None:
            return ZERO, ZERO
        self._assert_healthy(source, leave_type, "before", "carry_forward")

        unused = max(source.available, ZERO)
        cap = leave_type.max_carry_forward_days if leave_type.carry_forward_allowed else ZERO
        carried = min(unused, cap)
        excess = unused - carried
        if unused == ZERO:
            return ZERO, ZERO

        target = await self.lock(employee_id, leave_type_code, to_year)
        self._assert_healthy(target, leave_type, "before", "carry_forward")
        source_before, target_before = source.snapshot(), target.snapshot()

        source.carried_out += carried
        source.expired += excess
        source.available -= unused
        target.carried_forward += carried
        target.available += carried

        self._assert_healthy(source, leave_type, "after", "carry_forward")
        self._assert_healthy(target, leave_type, "after", "carry_forward")
        await self.db.flush()

        logger.info(
            "ledger carry_forward %s/%s %s->%s carried=%s expired=%s",
            employee_id, leave_type_code, from_year, to_year, carried, excess,
        )
        await create_audit_entry(
            self.db,
            action=AuditAction.BALANCE_CARRIED_FORWARD,
            entity_type="leave_balance",
            entity_id=source.id,
            actor_id=self.actor_id,
            old_values={"from": source_before, "to": target_before},
            new_values={
                "from": source.snapshot(),
                "to": target.snapshot(),
                "carried": carried,
                "expired": excess,
            },
        )
        return carried, excess
