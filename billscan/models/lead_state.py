from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

logger = logging.getLogger("billscan.lead_state")


class LeadStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class IllegalTransition(RuntimeError):
    def __init__(self, src: LeadStatus, dst: LeadStatus):
        super().__init__(f"illegal lead transition {src.value} -> {dst.value}")
        self.src = src
        self.dst = dst


class InvariantViolation(ValueError):
    pass


# The only edges: a lead leaves `processing` exactly once and never comes back.
TRANSITIONS: Dict[LeadStatus, FrozenSet[LeadStatus]] = {
    LeadStatus.PROCESSING: frozenset({LeadStatus.COMPLETED, LeadStatus.FAILED}),
    LeadStatus.COMPLETED: frozenset(),
    LeadStatus.FAILED: frozenset(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def coerce(status: Any) -> LeadStatus:
    if isinstance(status, LeadStatus):
        return status
    try:
        return LeadStatus(str(status))
    except ValueError:
        raise InvariantViolation(f"unknown lead status {status!r}")


def is_terminal(status: Any) -> bool:
    return coerce(status) in TERMINAL


def can_transition(src: Any, dst: Any) -> bool:
    return coerce(dst) in TRANSITIONS[coerce(src)]


def ensure_transition(src: Any, dst: Any) -> None:
    s, d = coerce(src), coerce(dst)
    if d not in TRANSITIONS[s]:
        logger.warning("rejected transition %s -> %s", s.value, d.value)
        raise IllegalTransition(s, d)


def check_invariant(status: Any, analysis: Optional[dict]) -> None:
    """analysis is present iff the lead is completed."""
    s = coerce(status)
    if s is LeadStatus.COMPLETED and analysis is None:
        raise InvariantViolation("completed lead without analysis")
    if s is not LeadStatus.COMPLETED and analysis is not None:
        raise InvariantViolation(f"{s.value} lead must not carry an analysis")
