"""Pending-approval coordination and the transports that answer approvals."""

from clawsec.approval.agent_confirm import AgentConfirmHandler, AgentConfirmResult
from clawsec.approval.coordinator import ApprovalCoordinator, ResolutionResult
from clawsec.approval.webhook import (
    WebhookApprovalClient,
    WebhookApprovalResponse,
    WebhookApprovalResult,
    build_webhook_payload,
)

__all__ = [
    "AgentConfirmHandler",
    "AgentConfirmResult",
    "ApprovalCoordinator",
    "ResolutionResult",
    "WebhookApprovalClient",
    "WebhookApprovalResponse",
    "WebhookApprovalResult",
    "build_webhook_payload",
]
