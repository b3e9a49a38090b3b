"""
Log Action Handler

Silent audit trail for tool calls that should be allowed but tracked.
The caller gets no message; the audit entry carries every detection,
not just the primary one.
"""

from __future__ import annotations

from clawsec.actions.base import ActionContext, build_audit_entry
from clawsec.actions.messages import format_category
from clawsec.audit.sink import AuditSink
from clawsec.core.models import Action, EnforcementOutcome
from clawsec.logging import get_logger

logger = get_logger("clawsec.actions.log")


class LogHandler:
    def __init__(self, audit: AuditSink):
        self._audit = audit

    async def execute(self, context: ActionContext) -> EnforcementOutcome:
        tool_call = context.tool_call
        detections = context.classification.all_detections

        if detections:
            entry = build_audit_entry(
                context,
                Action.LOG.value,
                detection_count=len(detections),
                detections=[
                    {
                        "category": d.category,
                        "category_name": format_category(d.category),
                        "severity": d.severity.value,
                        "reason": d.reason,
                    }
                    for d in detections
                ],
            )
            logger.info(
                "Action logged for audit",
                extra={
                    "request_id": tool_call.request_id,
                    "tool_name": tool_call.tool_name,
                    "category": entry.category,
                    "severity": entry.severity.value,
                    "action": Action.LOG.value,
                },
            )
        else:
            entry = build_audit_entry(context, Action.LOG.value, detection_count=0)
            logger.debug(
                "Action logged for audit (no detections)",
                extra={"request_id": tool_call.request_id, "tool_name": tool_call.tool_name},
            )

        self._audit.append(entry)
        return EnforcementOutcome(allowed=True, logged=True)
