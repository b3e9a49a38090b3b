"""Shared test fixtures for the Clawsec test suite."""

import pytest

from clawsec.approval.coordinator import ApprovalCoordinator
from clawsec.audit.sink import InMemoryAuditSink
from clawsec.config.schema import ClawsecConfig
from clawsec.core.models import (
    Classification,
    Detection,
    Severity,
    ToolCallContext,
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep a developer's environment from leaking config into tests."""
    for var in ("CLAWSEC_CONFIG", "CLAWSEC_CLASSIFIER", "CLAWSEC_CALLBACK_URL_TEMPLATE", "CLAWSEC_URL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def audit():
    return InMemoryAuditSink()


@pytest.fixture
def coordinator(audit):
    return ApprovalCoordinator(audit)


@pytest.fixture
def config():
    return ClawsecConfig()


@pytest.fixture
def native_only_config():
    return ClawsecConfig.model_validate(
        {"approval": {"agentConfirm": {"enabled": False}, "timeoutSeconds": 60}}
    )


@pytest.fixture
def webhook_config():
    return ClawsecConfig.model_validate(
        {
            "approval": {
                "timeoutSeconds": 30,
                "native": {"enabled": False},
                "agentConfirm": {"enabled": False},
                "webhook": {"enabled": True, "url": "https://approvals.example.com/hook"},
            }
        }
    )


@pytest.fixture
def rm_rf_call():
    return ToolCallContext(
        tool_name="bash",
        arguments={"command": "rm -rf /var/lib/app"},
        request_id="req-rm-rf",
    )


@pytest.fixture
def destructive_block():
    return Classification(
        primary_category="destructive",
        severity=Severity.CRITICAL,
        recommended_action="block",
        reason="rm -rf",
        all_detections=(
            Detection(category="destructive", severity=Severity.CRITICAL, reason="rm -rf"),
        ),
    )


@pytest.fixture
def purchase_confirm():
    return Classification(
        primary_category="purchase",
        severity=Severity.HIGH,
        recommended_action="confirm",
        reason="Checkout on stripe.com",
        all_detections=(
            Detection(category="purchase", severity=Severity.HIGH, reason="Checkout on stripe.com"),
        ),
    )
