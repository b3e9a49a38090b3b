"""Block handler: always deny, tell the caller why, record it."""

from __future__ import annotations

from clawsec.actions.base import ActionContext, build_audit_entry
from clawsec.actions.messages import block_message
from clawsec.audit.sink import AuditSink
from clawsec.core.models import Action, EnforcementOutcome
from clawsec.logging import get_logger

logger = get_logger("clawsec.actions.block")


class BlockHandler:
    def __init__(self, audit: AuditSink):
        self._audit = audit

    async def execute(self, context: ActionContext) -> EnforcementOutcome:
        detection = context.primary
        message = block_message(detection, context.tool_call.tool_name, context.detection_count)

        self._audit.append(build_audit_entry(context, Action.BLOCK.value))
        logger.warning(
            "Tool call blocked",
            extra={
                "request_id": context.tool_call.request_id,
                "tool_name": context.tool_call.tool_name,
                "category": detection.category,
                "severity": detection.severity.value,
                "action": Action.BLOCK.value,
            },
        )
        return EnforcementOutcome(allowed=False, logged=True, message=message)
