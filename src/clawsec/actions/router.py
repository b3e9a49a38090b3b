"""
Clawsec Decision Router

Turns a Classification into an EnforcementOutcome by dispatching on its
recommended action.

Dispatch table:
  kill-switch off -> allowed, nothing audited, no handler runs
  allow           -> allowed, nothing audited
  block           -> BlockHandler   (denied, audited)
  confirm         -> ConfirmHandler (denied + pending approval, audited)
  warn            -> WarnHandler    (allowed with message, audited)
  log             -> LogHandler     (allowed silently, audited)
  unknown         -> allowed, diagnostic audit entry, message names the value
"""

from __future__ import annotations

from clawsec.actions.base import ActionContext, ActionHandler, build_audit_entry
from clawsec.actions.block import BlockHandler
from clawsec.actions.confirm import ConfirmHandler
from clawsec.actions.log import LogHandler
from clawsec.actions.warn import WarnHandler
from clawsec.approval.coordinator import ApprovalCoordinator
from clawsec.audit.sink import AuditSink
from clawsec.config.schema import ClawsecConfig
from clawsec.core.models import (
    Action,
    Classification,
    EnforcementOutcome,
    ToolCallContext,
)
from clawsec.exceptions import UnknownActionError
from clawsec.logging import get_logger

logger = get_logger("clawsec.router")


class DecisionRouter:
    """Dispatches classifications to decision handlers.

    Handlers default to the built-in ones; pass any of them to replace it.
    A confirm handler is required unless a coordinator is given to build
    the default one.
    """

    def __init__(
        self,
        audit: AuditSink,
        coordinator: ApprovalCoordinator | None = None,
        *,
        block: ActionHandler | None = None,
        confirm: ActionHandler | None = None,
        warn: ActionHandler | None = None,
        log: ActionHandler | None = None,
    ):
        if confirm is None:
            if coordinator is None:
                raise ValueError("DecisionRouter needs a coordinator or a confirm handler")
            confirm = ConfirmHandler(coordinator, audit)

        self._audit = audit
        self._handlers: dict[Action, ActionHandler] = {
            Action.BLOCK: block or BlockHandler(audit),
            Action.CONFIRM: confirm,
            Action.WARN: warn or WarnHandler(audit),
            Action.LOG: log or LogHandler(audit),
        }

    def handler_for(self, action: Action) -> ActionHandler | None:
        return self._handlers.get(action)

    async def route(
        self,
        classification: Classification,
        tool_call: ToolCallContext,
        config: ClawsecConfig,
    ) -> EnforcementOutcome:
        if not config.global_enabled:
            logger.debug(
                "Clawsec globally disabled, allowing",
                extra={"request_id": tool_call.request_id, "tool_name": tool_call.tool_name},
            )
            return EnforcementOutcome(allowed=True, logged=False)

        action = classification.action
        if action == Action.ALLOW:
            return EnforcementOutcome(allowed=True, logged=False)

        context = ActionContext(classification=classification, tool_call=tool_call, config=config)

        if action == Action.UNKNOWN:
            return self._unknown(context)

        return await self._handlers[action].execute(context)

    def _unknown(self, context: ActionContext) -> EnforcementOutcome:
        raw = context.classification.recommended_action
        error = UnknownActionError(raw)
        self._audit.append(
            build_audit_entry(
                context,
                Action.UNKNOWN.value,
                reason=str(error),
                recommended_action=raw,
                detection_reason=context.primary.reason,
            )
        )
        logger.warning(
            "Unrecognized action, allowing: %s",
            error,
            extra={
                "request_id": context.tool_call.request_id,
                "tool_name": context.tool_call.tool_name,
                "action": Action.UNKNOWN.value,
            },
        )
        return EnforcementOutcome(allowed=True, logged=True, message=str(error))
