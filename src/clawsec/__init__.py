"""
Clawsec — Enforcement and Approval Coordination for Agent Tool Calls

Usage:
    from clawsec import ApprovalCoordinator, DecisionRouter, InMemoryAuditSink

    audit = InMemoryAuditSink()
    router = DecisionRouter(audit, ApprovalCoordinator(audit))
    outcome = await router.route(classification, tool_call, config)

    # As a service:
    uvicorn clawsec.api.server:app
"""

__version__ = "1.0.0a1"

from clawsec.actions import DecisionRouter  # noqa: E402
from clawsec.approval import ApprovalCoordinator  # noqa: E402
from clawsec.audit.sink import AuditSink, InMemoryAuditSink  # noqa: E402
from clawsec.config import ClawsecConfig, load_config  # noqa: E402
from clawsec.core.models import (  # noqa: E402
    Action,
    ApprovalMethod,
    ApprovalStatus,
    AuditEntry,
    Classification,
    Detection,
    EnforcementOutcome,
    PendingApproval,
    Severity,
    ToolCallContext,
)

__all__ = [
    "__version__",
    # Enforcement
    "DecisionRouter",
    "ApprovalCoordinator",
    # Audit
    "AuditSink",
    "InMemoryAuditSink",
    # Config
    "ClawsecConfig",
    "load_config",
    # Models
    "Action",
    "ApprovalMethod",
    "ApprovalStatus",
    "AuditEntry",
    "Classification",
    "Detection",
    "EnforcementOutcome",
    "PendingApproval",
    "Severity",
    "ToolCallContext",
]
