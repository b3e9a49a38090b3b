"""
Clawsec Configuration Schema

Pydantic models for the effective configuration. Models are frozen: a
config object is a read-only snapshot, and derived snapshots (for
example a per-call timeout override) are new objects.

YAML files use camelCase keys (``logLevel``, ``agentConfirm``); the
snake_case field names are accepted too.
"""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clawsec.core.models import ApprovalMethod, Severity

RuleAction = Literal["allow", "block", "confirm", "warn", "log"]
LogLevel = Literal["debug", "info", "warn", "error"]

DEFAULT_APPROVAL_TIMEOUT_SECONDS = 300
DEFAULT_MAX_PENDING_APPROVALS = 1000
DEFAULT_CONFIRM_PARAMETER = "_clawsec_confirm"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ─── Global ──────────────────────────────────────────────────

class GlobalConfig(_ConfigModel):
    """Master switch and log level."""
    enabled: bool = True
    log_level: LogLevel = "info"


# ─── Rules ───────────────────────────────────────────────────

class RuleConfig(_ConfigModel):
    """Settings shared by every rule: whether it runs and what it recommends."""
    enabled: bool = True
    severity: Severity = Severity.HIGH
    action: RuleAction = "block"


class SpendLimits(_ConfigModel):
    per_transaction: float = Field(100, ge=0)
    daily: float = Field(500, ge=0)


class PurchaseRule(RuleConfig):
    severity: Severity = Severity.CRITICAL
    spend_limits: SpendLimits = Field(default_factory=SpendLimits)
    domains: list[str] = Field(
        default_factory=lambda: [
            "amazon.com",
            "stripe.com",
            "paypal.com",
            "checkout.stripe.com",
            "buy.stripe.com",
            "billing.stripe.com",
        ]
    )


class WebsiteRule(RuleConfig):
    mode: Literal["blocklist", "allowlist"] = "blocklist"
    blocklist: list[str] = Field(
        default_factory=lambda: ["*.malware.com", "phishing-*.com", "*.darkweb.*"]
    )
    allowlist: list[str] = Field(
        default_factory=lambda: [
            "docs.openclaw.ai",
            "github.com",
            "stackoverflow.com",
            "developer.mozilla.org",
        ]
    )


class DestructiveRule(RuleConfig):
    severity: Severity = Severity.CRITICAL
    action: RuleAction = "confirm"
    shell: bool = True
    cloud: bool = True
    code: bool = True


class SecretsRule(RuleConfig):
    severity: Severity = Severity.CRITICAL


class ExfiltrationRule(RuleConfig):
    pass


class RulesConfig(_ConfigModel):
    purchase: PurchaseRule = Field(default_factory=PurchaseRule)
    website: WebsiteRule = Field(default_factory=WebsiteRule)
    destructive: DestructiveRule = Field(default_factory=DestructiveRule)
    secrets: SecretsRule = Field(default_factory=SecretsRule)
    exfiltration: ExfiltrationRule = Field(default_factory=ExfiltrationRule)

    RULE_NAMES: ClassVar[tuple[str, ...]] = ("purchase", "website", "destructive", "secrets", "exfiltration")

    def items(self) -> list[tuple[str, RuleConfig]]:
        return [(name, getattr(self, name)) for name in self.RULE_NAMES]


# ─── Approval ────────────────────────────────────────────────

class NativeApproval(_ConfigModel):
    enabled: bool = True


class AgentConfirmApproval(_ConfigModel):
    enabled: bool = True
    parameter_name: str = DEFAULT_CONFIRM_PARAMETER


class WebhookApproval(_ConfigModel):
    enabled: bool = False
    url: str | None = None
    timeout: float = Field(30, gt=0, description="Per-request HTTP timeout in seconds")
    headers: dict[str, str] = Field(default_factory=dict)


class ApprovalConfig(_ConfigModel):
    """How pending approvals are answered and how long they may wait."""
    timeout_seconds: int | None = Field(DEFAULT_APPROVAL_TIMEOUT_SECONDS, gt=0)
    max_pending: int = Field(DEFAULT_MAX_PENDING_APPROVALS, gt=0)
    native: NativeApproval = Field(default_factory=NativeApproval)
    agent_confirm: AgentConfirmApproval = Field(default_factory=AgentConfirmApproval)
    webhook: WebhookApproval = Field(default_factory=WebhookApproval)

    @property
    def enabled_methods(self) -> tuple[ApprovalMethod, ...]:
        """Methods switched on, whether or not they can actually be reached."""
        methods = []
        if self.native.enabled:
            methods.append(ApprovalMethod.NATIVE)
        if self.agent_confirm.enabled:
            methods.append(ApprovalMethod.AGENT_CONFIRM)
        if self.webhook.enabled:
            methods.append(ApprovalMethod.WEBHOOK)
        return tuple(methods)

    @property
    def configured_methods(self) -> tuple[ApprovalMethod, ...]:
        """Enabled methods that have what they need to deliver an answer."""
        return tuple(
            m
            for m in self.enabled_methods
            if m != ApprovalMethod.WEBHOOK or (self.webhook_url or "").strip()
        )

    @property
    def webhook_url(self) -> str | None:
        return self.webhook.url


# ─── Root ────────────────────────────────────────────────────

class ClawsecConfig(_ConfigModel):
    """Root configuration object."""
    version: str = "1.0"
    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    rules: RulesConfig = Field(default_factory=RulesConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)

    @property
    def global_enabled(self) -> bool:
        return self.global_.enabled

    def with_approval_timeout(self, timeout_seconds: int | None) -> ClawsecConfig:
        """Return a snapshot whose approval timeout is overridden."""
        if timeout_seconds is None:
            return self
        approval = self.approval.model_copy(update={"timeout_seconds": timeout_seconds})
        return self.model_copy(update={"approval": approval})


def default_config() -> ClawsecConfig:
    return ClawsecConfig()
