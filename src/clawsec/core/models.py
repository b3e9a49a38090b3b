"""
Clawsec Core Data Models

All shared types used across the enforcement layer. This module is the
foundation that every other component imports from; it must have zero
internal dependencies beyond pydantic.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Enums ───────────────────────────────────────────────────

class Severity(str, Enum):
    """Severity of a detection or classification."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class Action(str, Enum):
    """Recommended action carried by a classification.

    Closed set. Anything the analyzer sends that is not one of the five
    known actions maps to UNKNOWN, which the router handles explicitly.
    """
    ALLOW = "allow"
    BLOCK = "block"
    CONFIRM = "confirm"
    WARN = "warn"
    LOG = "log"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | Action) -> Action:
        if isinstance(value, Action):
            return value
        try:
            action = cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN
        return action


class ApprovalMethod(str, Enum):
    """Channel through which a pending approval can be answered."""
    NATIVE = "native"
    AGENT_CONFIRM = "agent-confirm"
    WEBHOOK = "webhook"


class ApprovalStatus(str, Enum):
    """Lifecycle state of a pending approval.

    pending -> approved | denied | timed_out, never out of a terminal state.
    """
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return self is not ApprovalStatus.PENDING


class Decision(str, Enum):
    """Answer carried by a resolution signal."""
    APPROVED = "approved"
    DENIED = "denied"


# ─── Classification ─────────────────────────────────────────

class Detection(BaseModel):
    """A single finding reported by the analyzer."""
    model_config = ConfigDict(frozen=True)

    category: str
    severity: Severity
    reason: str = ""


class Classification(BaseModel):
    """Verdict produced once per tool call by the external analyzer.

    ``recommended_action`` keeps the raw text so an unrecognized value
    survives into the audit trail; use ``action`` for dispatch.
    """
    model_config = ConfigDict(frozen=True)

    primary_category: str = "none"
    severity: Severity = Severity.LOW
    recommended_action: str = Action.ALLOW.value
    reason: str = ""
    all_detections: tuple[Detection, ...] = ()

    @property
    def action(self) -> Action:
        return Action.parse(self.recommended_action)

    def primary_detection(self) -> Detection:
        """Highest-severity detection; ties go to the first in input order.

        Falls back to the top-level fields when there are no detections.
        """
        primary: Detection | None = None
        for detection in self.all_detections:
            if primary is None or detection.severity.rank > primary.severity.rank:
                primary = detection
        if primary is None:
            return Detection(
                category=self.primary_category,
                severity=self.severity,
                reason=self.reason,
            )
        return primary

    @classmethod
    def allow(cls) -> Classification:
        return cls(recommended_action=Action.ALLOW.value)


# ─── Tool Call ───────────────────────────────────────────────

class ToolCallContext(BaseModel):
    """Identifies the tool call being judged."""
    model_config = ConfigDict(frozen=True)

    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    request_id: str = Field(default_factory=lambda: f"req-{uuid.uuid4().hex}")


# ─── Approval ───────────────────────────────────────────────

class PendingApproval(BaseModel):
    """A confirm decision awaiting an answer from one of its methods."""
    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime = Field(default_factory=_utcnow)
    timeout_seconds: int = Field(gt=0)
    methods: tuple[ApprovalMethod, ...] = Field(min_length=1)
    request_id: str = ""
    tool_name: str = ""

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.timeout_seconds)

    def remaining_seconds(self, now: datetime | None = None) -> int:
        now = now or _utcnow()
        return max(0, int((self.expires_at - now).total_seconds()))


class ApprovalResolution(BaseModel):
    """Terminal outcome of a pending approval."""
    model_config = ConfigDict(frozen=True)

    approval_id: str
    status: ApprovalStatus
    via: ApprovalMethod | None = None
    decided_by: str | None = None
    reason: str = ""
    resolved_at: datetime = Field(default_factory=_utcnow)

    @property
    def allowed(self) -> bool:
        return self.status == ApprovalStatus.APPROVED


# ─── Enforcement Outcome ────────────────────────────────────

class EnforcementOutcome(BaseModel):
    """What the caller is told about a tool call.

    ``arguments`` is set only when the caller must run the tool with
    rewritten arguments (an accepted agent confirmation is stripped).
    """
    allowed: bool
    message: str | None = None
    logged: bool = False
    pending_approval: PendingApproval | None = None
    arguments: dict[str, Any] | None = None


# ─── Audit ──────────────────────────────────────────────────

class AuditEntry(BaseModel):
    """An append-only record of an enforcement outcome.

    ``sequence`` and ``hash`` are assigned by the sink on append.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"audit-{uuid.uuid4().hex[:12]}")
    sequence: int = -1
    timestamp: datetime = Field(default_factory=_utcnow)
    tool_name: str
    category: str
    severity: Severity
    action: str
    reason: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    hash: str = ""
    previous_hash: str = ""


class AuditQueryResult(BaseModel):
    """Result of an audit query: newest first, total is unfiltered."""
    entries: list[AuditEntry] = Field(default_factory=list)
    total_entries: int = 0
