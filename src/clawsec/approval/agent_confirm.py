"""
Clawsec Agent-Confirm Approval

The agent answers a pending approval by retrying the same tool call with
an extra argument, ``_clawsec_confirm: "<approval id>"`` by default. A
valid confirmation approves the pending entry and lets the retried call
through with the parameter stripped; anything else denies the retry.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from clawsec.approval.coordinator import ApprovalCoordinator, ResolutionResult
from clawsec.config.schema import DEFAULT_CONFIRM_PARAMETER
from clawsec.core.models import ApprovalMethod, Decision, ToolCallContext
from clawsec.logging import get_logger

logger = get_logger("clawsec.approval.agent_confirm")


class AgentConfirmResult(BaseModel):
    """Result of processing a retried tool call that carries a confirmation."""
    approval_id: str
    valid: bool
    error: str | None = None
    arguments: dict[str, Any] = {}
    resolution: ResolutionResult | None = None


class AgentConfirmHandler:
    def __init__(
        self,
        coordinator: ApprovalCoordinator,
        parameter_name: str = DEFAULT_CONFIRM_PARAMETER,
        enabled: bool = True,
    ):
        self._coordinator = coordinator
        self.parameter_name = parameter_name
        self.enabled = enabled

    def check(self, arguments: dict[str, Any]) -> str | None:
        """Approval id carried by ``arguments``, or None."""
        if not self.enabled:
            return None
        value = arguments.get(self.parameter_name)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def strip(self, arguments: dict[str, Any]) -> dict[str, Any]:
        return {k: v for k, v in arguments.items() if k != self.parameter_name}

    def process(self, tool_call: ToolCallContext) -> AgentConfirmResult | None:
        """Approve the referenced approval if it is live and for this tool.

        Returns None when the call carries no confirmation at all.
        """
        approval_id = self.check(tool_call.arguments)
        if approval_id is None:
            return None

        pending = self._coordinator.get_pending(approval_id)
        if pending is None:
            previous = self._coordinator.get_resolution(approval_id)
            error = (
                f"Approval {approval_id} is already {previous.status.value}"
                if previous
                else f"Approval not found: {approval_id}"
            )
            return self._invalid(tool_call, approval_id, error)

        if pending.tool_name and pending.tool_name != tool_call.tool_name:
            return self._invalid(
                tool_call,
                approval_id,
                f"Approval {approval_id} was issued for tool \"{pending.tool_name}\"",
            )

        resolution = self._coordinator.resolve(
            approval_id,
            Decision.APPROVED,
            ApprovalMethod.AGENT_CONFIRM,
            decided_by="agent",
            reason="confirmed by retried tool call",
        )
        if not resolution.resolved:
            return self._invalid(tool_call, approval_id, resolution.message)

        return AgentConfirmResult(
            approval_id=approval_id,
            valid=True,
            arguments=self.strip(tool_call.arguments),
            resolution=resolution,
        )

    def _invalid(self, tool_call: ToolCallContext, approval_id: str, error: str) -> AgentConfirmResult:
        logger.warning(
            "Invalid agent confirmation: %s",
            error,
            extra={
                "request_id": tool_call.request_id,
                "approval_id": approval_id,
                "tool_name": tool_call.tool_name,
                "method": ApprovalMethod.AGENT_CONFIRM.value,
            },
        )
        return AgentConfirmResult(approval_id=approval_id, valid=False, error=error)
