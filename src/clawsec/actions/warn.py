"""Warn handler: allow, but attach a visible warning."""

from __future__ import annotations

from clawsec.actions.base import ActionContext, build_audit_entry
from clawsec.actions.messages import warn_message
from clawsec.audit.sink import AuditSink
from clawsec.core.models import Action, EnforcementOutcome
from clawsec.logging import get_logger

logger = get_logger("clawsec.actions.warn")


class WarnHandler:
    def __init__(self, audit: AuditSink):
        self._audit = audit

    async def execute(self, context: ActionContext) -> EnforcementOutcome:
        detection = context.primary
        message = warn_message(detection, context.tool_call.tool_name, context.detection_count)

        self._audit.append(build_audit_entry(context, Action.WARN.value))
        logger.info(
            "Tool call allowed with warning",
            extra={
                "request_id": context.tool_call.request_id,
                "tool_name": context.tool_call.tool_name,
                "category": detection.category,
                "severity": detection.severity.value,
                "action": Action.WARN.value,
            },
        )
        return EnforcementOutcome(allowed=True, logged=True, message=message)
