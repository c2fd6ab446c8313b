"""Eligibility validator — may this leave type be applied to this employee?

One pure decision function over the closed restriction variants on
``LeaveType``. No I/O; callers pass already-loaded rows (or any object
with the same attributes).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from leave_ledger.common.constants import (
    Gender,
    GenderRestriction,
    RegionRestriction,
)
from leave_ledger.common.exceptions import IneligibleLeaveType


@dataclass(frozen=True)
class Ok:
    pass


@dataclass(frozen=True)
class Reject:
    reason: str


Decision = Union[Ok, Reject]

_REQUIRED_GENDER: dict[GenderRestriction, Gender] = {
    GenderRestriction.MALE_ONLY: Gender.M,
    GenderRestriction.FEMALE_ONLY: Gender.F,
}

_GENDER_LABEL = {Gender.M: "male", Gender.F: "female"}


def _value(enum_or_str: Any) -> Optional[str]:
    if enum_or_str is None:
        return None
    return getattr(enum_or_str, "value", enum_or_str)


def validate(employee: Any, leave_type: Any) -> Decision:
    """Return ``Ok()`` or ``Reject(reason)`` for *employee* × *leave_type*."""
    code = leave_type.code
    who = getattr(employee, "employee_id", "employee")

    if not leave_type.is_active:
        return Reject(f"{code} is not an active leave type.")

    # ── Gender ──────────────────────────────────────────────────────
    restriction = GenderRestriction(_value(leave_type.gender_restriction))
    required = _REQUIRED_GENDER.get(restriction)
    if required is not None:
        gender = _value(employee.gender)
        if gender is None:
            return Reject(
                f"{code} is restricted to {_GENDER_LABEL[required]} employees "
                f"and {who} has no gender on record."
            )
        if gender != required.value:
            return Reject(
                f"{code} can only be assigned to {_GENDER_LABEL[required]} employees."
            )

    # ── Region ──────────────────────────────────────────────────────
    region_rule = RegionRestriction(_value(leave_type.region_restriction))
    if region_rule != RegionRestriction.ALL:
        region = _value(employee.region)
        if region != region_rule.value:
            return Reject(
                f"{code} can only be assigned to {region_rule.value}-based employees; "
                f"{who} is in {region or 'no region'}."
            )

    return Ok()


def ensure_eligible(employee: Any, leave_type: Any) -> None:
    """Raise ``IneligibleLeaveType`` unless ``validate`` returns ``Ok``."""
    decision = validate(employee, leave_type)
    if isinstance(decision, Reject):
        raise IneligibleLeaveType(leave_type.code, decision.reason)
