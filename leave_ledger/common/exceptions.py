"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://leave-ledger.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(
        self,
        errors: dict[str, list[str]],
        *,
        error_type: str = "validation-error",
        title: str = "Validation Error",
        detail: str = "One or more fields failed validation.",
    ) -> None:
        super().__init__(
            status_code=422,
            error_type=error_type,
            title=title,
            detail=detail,
            errors=errors,
        )


# ── Leave ledger errors ─────────────────────────────────────────────

class InvalidRange(ValidationException):
    """End date precedes start date."""

    def __init__(self, start_date: Any, end_date: Any) -> None:
        super().__init__(
            {"end_date": [f"End date {end_date} is before start date {start_date}."]},
            error_type="invalid-range",
            title="Invalid Date Range",
            detail="The requested date span is empty.",
        )


class IneligibleLeaveType(ValidationException):
    """Gender / region restriction mismatch."""

    def __init__(self, leave_type_code: str, reason: str) -> None:
        self.reason = reason
        super().__init__(
            {"leave_type_code": [reason]},
            error_type="ineligible-leave-type",
            title="Ineligible Leave Type",
            detail=f"Leave type '{leave_type_code}' cannot be applied: {reason}",
        )


class InsufficientBalance(ValidationException):
    """Reserve / remove would take the balance below zero."""

    def __init__(
        self,
        leave_type_code: str,
        available: Decimal,
        requested: Decimal,
        message: Optional[str] = None,
    ) -> None:
        self.available = available
        self.requested = requested
        super().__init__(
            {
                "balance": [
                    message
                    or f"Insufficient {leave_type_code} balance. "
                    f"Available: {available}, requested: {requested}."
                ],
            },
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=f"Not enough {leave_type_code} balance for this operation.",
        )


class NotCancellable(ValidationException):
    """Start date elapsed or request already terminal."""

    def __init__(self, reason: str, field: str = "status") -> None:
        super().__init__(
            {field: [reason]},
            error_type="not-cancellable",
            title="Not Cancellable",
            detail=reason,
        )


class EmptyBatch(ValidationException):
    """Bulk call with no target employees."""

    def __init__(self) -> None:
        super().__init__(
            {"employee_ids": ["At least one employee ID is required."]},
            error_type="empty-batch",
            title="Empty Batch",
            detail="Bulk operation received no employees.",
        )


class InvalidTransition(AppException):
    """409 — request is not in the source state required by the transition."""

    def __init__(
        self,
        from_status: Any,
        to_status: Any,
        reason: Optional[str] = None,
    ) -> None:
        self.from_status = from_status
        self.to_status = to_status
        detail = f"Cannot move leave request from {from_status} to {to_status}."
        if reason:
            detail = f"{detail} {reason}"
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid Transition",
            detail=detail,
            errors={"status": [f"Current status is {from_status}."]},
        )


class LedgerCorruption(AppException):
    """500 — balance invariant violated after a mutation (a bug, never bad input)."""

    def __init__(self, detail: str, snapshot: Optional[dict[str, Any]] = None) -> None:
        self.snapshot = snapshot or {}
        super().__init__(
            status_code=500,
            error_type="ledger-corruption",
            title="Internal Ledger Error",
            detail=detail,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    if isinstance(exc, LedgerCorruption):
        logger.error(
            "Ledger corruption on %s %s: %s %s",
            request.method, request.url.path, exc.detail, exc.snapshot,
        )
        # internal state is never echoed back to the client
        body = _build_problem_detail(exc, request)
        body["detail"] = "An internal ledger error occurred."
        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            media_type="application/problem+json",
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
