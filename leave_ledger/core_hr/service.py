"""Core HR service layer — employee directory lookups and the holiday calendar.

Uses:
  - ``create_audit_entry`` from leave_ledger.common.audit
  - ``NotFoundException / ConflictError`` from leave_ledger.common.exceptions
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.audit import create_audit_entry
from leave_ledger.common.constants import AuditAction, EmploymentType, Region
from leave_ledger.common.exceptions import ConflictError, NotFoundException
from leave_ledger.core_hr.models import Employee, Holiday
from leave_ledger.core_hr.schemas import HolidayCreate

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Read-only employee directory used by the leave engine."""

    @staticmethod
    async def find(db: AsyncSession, employee_id: str) -> Optional[Employee]:
        result = await db.execute(
            select(Employee).where(Employee.employee_id == employee_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get(db: AsyncSession, employee_id: str) -> Employee:
        """Fetch an employee by business key or raise 404."""
        employee = await EmployeeService.find(db, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return employee

    @staticmethod
    async def get_many(
        db: AsyncSession, employee_ids: Sequence[str],
    ) -> dict[str, Employee]:
        if not employee_ids:
            return {}
        result = await db.execute(
            select(Employee).where(Employee.employee_id.in_(list(employee_ids)))
        )
        return {emp.employee_id: emp for emp in result.scalars().all()}

    @staticmethod
    async def list_active_cohort(
        db: AsyncSession,
        region: Region,
        employment_type: EmploymentType,
    ) -> list[Employee]:
        """Active employees in one (region, employment_type) cohort."""
        result = await db.execute(
            select(Employee)
            .where(
                Employee.region == region,
                Employee.employment_type == employment_type,
                Employee.is_active.is_(True),
            )
            .order_by(Employee.employee_id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_direct_reports(db: AsyncSession, manager_employee_id: str) -> list[str]:
        result = await db.execute(
            select(Employee.employee_id).where(
                Employee.manager_employee_id == manager_employee_id,
            )
        )
        return list(result.scalars().all())


# ═════════════════════════════════════════════════════════════════════
# HolidayService
# ═════════════════════════════════════════════════════════════════════


class HolidayService:
    """Regional holiday calendar."""

    @staticmethod
    async def list_holidays(
        db: AsyncSession,
        *,
        year: Optional[int] = None,
        region: Optional[Region] = None,
    ) -> list[Holiday]:
        query = select(Holiday).order_by(Holiday.holiday_date)
        if year is not None:
            query = query.where(Holiday.year == year)
        if region is not None:
            query = query.where(Holiday.region == region)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def calendar_snapshot(
        db: AsyncSession,
        region: Optional[Region],
        start_date: date,
        end_date: date,
    ) -> frozenset[date]:
        """Holiday dates for *region* within the span, as an immutable set.

        An employee with no region has no regional holidays.
        """
        if region is None:
            return frozenset()
        result = await db.execute(
            select(Holiday.holiday_date).where(
                Holiday.region == region,
                Holiday.holiday_date >= start_date,
                Holiday.holiday_date <= end_date,
            )
        )
        return frozenset(result.scalars().all())

    @staticmethod
    async def create_holiday(
        db: AsyncSession,
        data: HolidayCreate,
        *,
        actor_id: Optional[str] = None,
    ) -> Holiday:
        existing = await db.execute(
            select(Holiday.id).where(
                Holiday.holiday_date == data.date,
                Holiday.region == data.region,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("date", f"{data.date} ({data.region.value})")

        holiday = Holiday(
            holiday_date=data.date,
            region=data.region,
            description=data.description.strip(),
            year=data.year,
        )
        try:
            async with db.begin_nested():
                db.add(holiday)
        except IntegrityError:
            raise ConflictError("date", f"{data.date} ({data.region.value})")

        await create_audit_entry(
            db,
            action=AuditAction.HOLIDAY_CREATED,
            entity_type="holiday",
            entity_id=holiday.id,
            actor_id=actor_id,
            new_values={
                "date": holiday.holiday_date,
                "region": holiday.region,
                "description": holiday.description,
            },
        )
        logger.info("holiday created %s %s", holiday.region.value, holiday.holiday_date)
        return holiday

    @staticmethod
    async def delete_holiday(
        db: AsyncSession,
        holiday_id: uuid.UUID,
        *,
        actor_id: Optional[str] = None,
    ) -> None:
        holiday = await db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundException("Holiday", holiday_id)

        await create_audit_entry(
            db,
            action=AuditAction.HOLIDAY_DELETED,
            entity_type="holiday",
            entity_id=holiday.id,
            actor_id=actor_id,
            old_values={
                "date": holiday.holiday_date,
                "region": holiday.region,
                "description": holiday.description,
            },
        )
        await db.delete(holiday)
        await db.flush()
        logger.info("holiday deleted %s %s", holiday.region.value, holiday.holiday_date)
