"""Core HR module — Employee directory and Holiday calendar models, schemas and services."""

from leave_ledger.core_hr.models import Employee, Holiday

__all__ = ["Employee", "Holiday"]
