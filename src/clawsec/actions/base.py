"""
Clawsec Action Handler Base

Shared context passed to every decision handler, the handler protocol,
and the helper that turns a handled call into an AuditEntry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from clawsec.config.schema import ClawsecConfig
from clawsec.core.models import (
    AuditEntry,
    Classification,
    Detection,
    EnforcementOutcome,
    ToolCallContext,
)


@dataclass(frozen=True)
class ActionContext:
    """Everything a handler needs to enforce one decision."""
    classification: Classification
    tool_call: ToolCallContext
    config: ClawsecConfig

    @property
    def primary(self) -> Detection:
        return self.classification.primary_detection()

    @property
    def detection_count(self) -> int:
        return max(1, len(self.classification.all_detections))


class ActionHandler(Protocol):
    """A strategy enforcing one recommended action."""

    async def execute(self, context: ActionContext) -> EnforcementOutcome: ...


def build_audit_entry(
    context: ActionContext,
    action: str,
    reason: str | None = None,
    detection: Detection | None = None,
    **metadata: Any,
) -> AuditEntry:
    """Audit entry for ``context`` keyed on its primary (or given) detection."""
    detection = detection or context.primary
    return AuditEntry(
        tool_name=context.tool_call.tool_name,
        category=detection.category,
        severity=detection.severity,
        action=action,
        reason=detection.reason if reason is None else reason,
        metadata={"request_id": context.tool_call.request_id, **metadata},
    )
