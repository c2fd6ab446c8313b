"""Leave request state machine with compare-and-swap transitions."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveStatus
from leave_ledger.common.exceptions import InvalidTransition
from leave_ledger.leave.models import LeaveRequest

logger = logging.getLogger(__name__)


class LeaveRequestStateMachine:
    """Status transitions for a leave request.

    Allowed transitions:
    - PENDING → APPROVED
    - PENDING → REJECTED
    - PENDING → CANCELLED
    - APPROVED → CANCELLED (until the start date elapses)
    """

    VALID_TRANSITIONS: dict[LeaveStatus, list[LeaveStatus]] = {
        LeaveStatus.PENDING: [
            LeaveStatus.APPROVED,
            LeaveStatus.REJECTED,
            LeaveStatus.CANCELLED,
        ],
        LeaveStatus.APPROVED: [LeaveStatus.CANCELLED],
        LeaveStatus.REJECTED: [],  # Terminal state
        LeaveStatus.CANCELLED: [],  # Terminal state
    }

    TERMINAL = {LeaveStatus.REJECTED, LeaveStatus.CANCELLED}

    # Statuses that hold a balance reservation or consumption
    ACTIVE = {LeaveStatus.PENDING, LeaveStatus.APPROVED}

    @classmethod
    def can_transition(cls, from_status: LeaveStatus, to_status: LeaveStatus) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, from_status: LeaveStatus, to_status: LeaveStatus) -> None:
        """Raise ``InvalidTransition`` unless *from_status* → *to_status* is allowed."""
        if not cls.can_transition(from_status, to_status):
            logger.debug("rejected transition %s -> %s", from_status, to_status)
            raise InvalidTransition(from_status.value, to_status.value)

    @classmethod
    def is_terminal(cls, status: LeaveStatus) -> bool:
        return status in cls.TERMINAL

    @classmethod
    async def compare_and_swap(
        cls,
        db: AsyncSession,
        request: LeaveRequest,
        expected: LeaveStatus,
        to_status: LeaveStatus,
        **values: Any,
    ) -> LeaveRequest:
        """Move *request* from *expected* to *to_status* atomically.

        The UPDATE only matches while the stored status still equals
        *expected*; a concurrent transition that got there first leaves
        rowcount at 0 and this call raises ``InvalidTransition`` before any
        ledger work happens. Extra column *values* are written in the same
        statement.
        """
        cls.validate_transition(expected, to_status)

        result = await db.execute(
            update(LeaveRequest)
            .where(LeaveRequest.id == request.id, LeaveRequest.status == expected)
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(request)
        if result.rowcount != 1:
            logger.debug(
                "lost status race on %s: expected %s, found %s",
                request.id, expected.value, request.status.value,
            )
            raise InvalidTransition(
                request.status.value,
                to_status.value,
                reason="The request was modified concurrently.",
            )
        return request
