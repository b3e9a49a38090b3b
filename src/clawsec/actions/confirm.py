"""
Confirm Action Handler

Holds a tool call until someone approves it. The handler creates a
PendingApproval, registers it with the ApprovalCoordinator (which owns the
timeout and the single terminal resolution), audits the request to ask,
and returns a denied outcome carrying the pending marker. The caller only
proceeds after it separately observes an "approved" resolution.

Webhook notifications are sent from background tasks; the handler never
waits on a transport.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable

import httpx

from clawsec.actions.base import ActionContext, build_audit_entry
from clawsec.actions.messages import confirm_message, method_list
from clawsec.approval.coordinator import ApprovalCoordinator
from clawsec.approval.webhook import WebhookApprovalClient
from clawsec.audit.sink import AuditSink
from clawsec.config.schema import DEFAULT_APPROVAL_TIMEOUT_SECONDS, ApprovalConfig
from clawsec.core.models import (
    Action,
    ApprovalMethod,
    Detection,
    EnforcementOutcome,
    PendingApproval,
)
from clawsec.exceptions import CapacityExceededError, ClawsecError, ConfigurationError
from clawsec.logging import get_logger

logger = get_logger("clawsec.actions.confirm")

ErrorReporter = Callable[[ClawsecError], None]


def resolve_methods(approval: ApprovalConfig) -> tuple[ApprovalMethod, ...]:
    """Enabled approval methods that can actually deliver an answer.

    Raises:
        ConfigurationError: nothing could ever resolve the approval.
    """
    methods = approval.configured_methods
    if not methods:
        raise ConfigurationError(
            "No usable approval method: enable native or agent-confirm approval, "
            "or configure a webhook URL",
            details={"enabled_methods": [m.value for m in approval.enabled_methods]},
        )
    return methods


def new_approval_id() -> str:
    return f"approval-{uuid.uuid4().hex}"


class ConfirmHandler:
    """Creates pending approvals for confirm decisions.

    Args:
        coordinator: Owner of the live approval table.
        audit: Sink for the initial confirm entry.
        http_client: Shared client for webhook notifications.
        callback_url_template: Announced to webhook endpoints, ``{id}``
            is replaced with the approval id.
        error_reporter: Receives configuration errors so the status
            surface can show them.
    """

    def __init__(
        self,
        coordinator: ApprovalCoordinator,
        audit: AuditSink,
        http_client: httpx.AsyncClient | None = None,
        callback_url_template: str | None = None,
        error_reporter: ErrorReporter | None = None,
    ):
        self._coordinator = coordinator
        self._audit = audit
        self._http_client = http_client
        self._callback_url_template = callback_url_template
        self._error_reporter = error_reporter
        self._tasks: set[asyncio.Task] = set()

    async def execute(self, context: ActionContext) -> EnforcementOutcome:
        approval = context.config.approval
        detection = context.primary

        try:
            methods = resolve_methods(approval)
        except ConfigurationError as exc:
            return self._deny_misconfigured(context, exc)

        pending = PendingApproval(
            id=new_approval_id(),
            timeout_seconds=approval.timeout_seconds or DEFAULT_APPROVAL_TIMEOUT_SECONDS,
            methods=methods,
            request_id=context.tool_call.request_id,
            tool_name=context.tool_call.tool_name,
        )
        entry = build_audit_entry(
            context,
            Action.CONFIRM.value,
            approval_id=pending.id,
            methods=[m.value for m in methods],
            timeout_seconds=pending.timeout_seconds,
            outcome="pending",
        )

        try:
            self._coordinator.register(
                pending,
                detection=detection,
                initial_entry_id=entry.id,
                max_pending=approval.max_pending,
            )
        except CapacityExceededError as exc:
            return self._deny_over_capacity(context, exc)

        try:
            self._audit.append(entry)
        except Exception:
            return self._deny_unaudited(context, pending)

        logger.info(
            "Approval requested via %s",
            method_list(methods),
            extra={
                "request_id": pending.request_id,
                "approval_id": pending.id,
                "tool_name": pending.tool_name,
                "category": detection.category,
                "severity": detection.severity.value,
                "action": Action.CONFIRM.value,
            },
        )

        if ApprovalMethod.WEBHOOK in methods:
            self._notify_webhook(context, pending, detection)

        message = confirm_message(
            detection,
            context.tool_call.tool_name,
            pending,
            approval.agent_confirm.parameter_name,
            context.detection_count,
        )
        return EnforcementOutcome(
            allowed=False,
            logged=True,
            message=message,
            pending_approval=pending,
        )

    async def aclose(self) -> None:
        """Cancel outstanding notification tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ─── Internal ───────────────────────────────────────────

    def _notify_webhook(
        self, context: ActionContext, pending: PendingApproval, detection: Detection
    ) -> None:
        client = WebhookApprovalClient(
            context.config.approval.webhook,
            self._coordinator,
            http_client=self._http_client,
            callback_url_template=self._callback_url_template,
        )
        task = asyncio.create_task(
            client.notify(pending, context.tool_call, detection),
            name=f"webhook-{pending.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _deny_misconfigured(self, context: ActionContext, error: ConfigurationError) -> EnforcementOutcome:
        self._audit.append(
            build_audit_entry(
                context,
                Action.CONFIRM.value,
                outcome="denied — configuration error",
                error=str(error),
                **error.details,
            )
        )
        logger.error(
            "Confirm decision denied: %s",
            error,
            extra={
                "request_id": context.tool_call.request_id,
                "tool_name": context.tool_call.tool_name,
                "action": Action.CONFIRM.value,
            },
        )
        if self._error_reporter is not None:
            self._error_reporter(error)
        return EnforcementOutcome(
            allowed=False,
            logged=True,
            message=(
                f"[clawsec] Approval required for tool \"{context.tool_call.tool_name}\" "
                f"but no approval method is available; the action was denied. ({error})"
            ),
        )

    def _deny_unaudited(self, context: ActionContext, pending: PendingApproval) -> EnforcementOutcome:
        logger.exception(
            "Failed to write initial audit entry, cancelling approval",
            extra={
                "request_id": pending.request_id,
                "approval_id": pending.id,
                "tool_name": pending.tool_name,
                "action": Action.CONFIRM.value,
            },
        )
        self._coordinator.cancel(pending.id, reason="initial audit entry could not be written")
        return EnforcementOutcome(
            allowed=False,
            logged=False,
            message=(
                f"[clawsec] Approval required for tool \"{context.tool_call.tool_name}\" "
                "but the request could not be recorded; the action was denied."
            ),
        )

    def _deny_over_capacity(self, context: ActionContext, error: CapacityExceededError) -> EnforcementOutcome:
        self._audit.append(
            build_audit_entry(
                context,
                Action.CONFIRM.value,
                outcome="denied — capacity exceeded",
                error=str(error),
                max_pending=error.max_pending,
            )
        )
        logger.warning(
            "Confirm decision denied: %s",
            error,
            extra={
                "request_id": context.tool_call.request_id,
                "tool_name": context.tool_call.tool_name,
                "action": Action.CONFIRM.value,
            },
        )
        return EnforcementOutcome(
            allowed=False,
            logged=True,
            message=(
                f"[clawsec] Too many actions are awaiting approval (max {error.max_pending}); "
                f"the tool call \"{context.tool_call.tool_name}\" was denied. Try again later."
            ),
        )
