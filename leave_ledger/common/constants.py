"""Enums and constants for the leave ledger — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Employee directory ──────────────────────────────────────────────

class Gender(str, enum.Enum):
    M = "M"
    F = "F"


class Region(str, enum.Enum):
    IND = "IND"
    US = "US"


class EmploymentType(str, enum.Enum):
    FTE = "FTE"
    FTDC = "FTDC"
    CONSULTANT = "CONSULTANT"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


ADMIN_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.hr_admin, UserRole.system_admin}
)


# ── Leave types ─────────────────────────────────────────────────────

class GenderRestriction(str, enum.Enum):
    NONE = "NONE"
    MALE_ONLY = "MALE_ONLY"
    FEMALE_ONLY = "FEMALE_ONLY"


class RegionRestriction(str, enum.Enum):
    ALL = "ALL"
    IND = "IND"
    US = "US"


class AccrualFrequency(str, enum.Enum):
    NONE = "NONE"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


# ── Leave requests ──────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class DayType(str, enum.Enum):
    FULL = "FULL"
    FIRST_HALF = "FIRST_HALF"
    SECOND_HALF = "SECOND_HALF"


class ApprovalStatus(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# ── Administrative actions ──────────────────────────────────────────

class BalanceAction(str, enum.Enum):
    ADD = "ADD"
    REMOVE = "REMOVE"


# ── Audit actions ───────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    LEAVE_APPLIED = "LEAVE_APPLIED"
    LEAVE_APPROVED = "LEAVE_APPROVED"
    LEAVE_REJECTED = "LEAVE_REJECTED"
    LEAVE_CANCELLED = "LEAVE_CANCELLED"
    BALANCE_RESERVED = "BALANCE_RESERVED"
    BALANCE_COMMITTED = "BALANCE_COMMITTED"
    BALANCE_RELEASED = "BALANCE_RELEASED"
    BALANCE_REVERSED = "BALANCE_REVERSED"
    BALANCE_ALLOCATED = "BALANCE_ALLOCATED"
    BALANCE_CARRIED_FORWARD = "BALANCE_CARRIED_FORWARD"
    SPECIAL_ACTION = "SPECIAL_ACTION"
    BULK_SPECIAL_ACTION = "BULK_SPECIAL_ACTION"
    POLICY_PROCESSED = "POLICY_PROCESSED"
    HOLIDAY_CREATED = "HOLIDAY_CREATED"
    HOLIDAY_DELETED = "HOLIDAY_DELETED"


# ── General ─────────────────────────────────────────────────────────

HALF_DAY = Decimal("0.5")
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
