"""Common module — shared utilities for the leave ledger."""

from leave_ledger.common.audit import AuditTrail, create_audit_entry
from leave_ledger.common.constants import (
    ADMIN_ROLES,
    DEFAULT_PAGE_SIZE,
    HALF_DAY,
    MAX_PAGE_SIZE,
    AuditAction,
    BalanceAction,
    DayType,
    LeaveStatus,
    UserRole,
)
from leave_ledger.common.exceptions import (
    AppException,
    ConflictError,
    EmptyBatch,
    ForbiddenException,
    IneligibleLeaveType,
    InsufficientBalance,
    InvalidRange,
    InvalidTransition,
    LedgerCorruption,
    NotCancellable,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leave_ledger.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "AuditAction",
    "BalanceAction",
    "DayType",
    "LeaveStatus",
    "UserRole",
    "ADMIN_ROLES",
    "HALF_DAY",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "EmptyBatch",
    "ForbiddenException",
    "IneligibleLeaveType",
    "InsufficientBalance",
    "InvalidRange",
    "InvalidTransition",
    "LedgerCorruption",
    "NotCancellable",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
