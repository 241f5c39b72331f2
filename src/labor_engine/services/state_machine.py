"""Status state machines with transition validation."""

from __future__ import annotations

from labor_engine.compliance.violations import ViolationStatus
from labor_engine.tips.disputes import DisputeStatus
from labor_engine.tips.distributor import TipSplitStatus


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class StatusStateMachine:
    """Table-driven transition checks shared by the concrete machines."""

    # {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)


class ViolationStateMachine(StatusStateMachine):
    """Violation lifecycle.

    Allowed transitions:
    - active → overridden (manager override, permanent)
    - active → resolved (condition no longer holds on a later run)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        ViolationStatus.ACTIVE: [ViolationStatus.OVERRIDDEN, ViolationStatus.RESOLVED],
        ViolationStatus.OVERRIDDEN: [],
        ViolationStatus.RESOLVED: [],
    }


class TipSplitStateMachine(StatusStateMachine):
    """Tip split lifecycle.

    Allowed transitions:
    - draft → locked (irreversible)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TipSplitStatus.DRAFT: [TipSplitStatus.LOCKED],
        TipSplitStatus.LOCKED: [],
    }

    @classmethod
    def can_recompute(cls, status: str) -> bool:
        """Check if shares may be recomputed or edited in this status."""
        return status == TipSplitStatus.DRAFT


class DisputeStateMachine(StatusStateMachine):
    """Dispute lifecycle.

    Allowed transitions:
    - open → resolved
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        DisputeStatus.OPEN: [DisputeStatus.RESOLVED],
        DisputeStatus.RESOLVED: [],
    }
