"""Clawsec configuration: schema, loading and validation."""

from clawsec.config.loader import (
    ConfigIssue,
    ConfigProvider,
    FileConfigProvider,
    StaticConfigProvider,
    ValidationResult,
    find_config_file,
    load_config,
    load_config_from_string,
    validate,
    validate_config,
)
from clawsec.config.schema import (
    DEFAULT_APPROVAL_TIMEOUT_SECONDS,
    DEFAULT_CONFIRM_PARAMETER,
    DEFAULT_MAX_PENDING_APPROVALS,
    AgentConfirmApproval,
    ApprovalConfig,
    ClawsecConfig,
    GlobalConfig,
    NativeApproval,
    RuleConfig,
    RulesConfig,
    WebhookApproval,
    default_config,
)

__all__ = [
    "DEFAULT_APPROVAL_TIMEOUT_SECONDS",
    "DEFAULT_CONFIRM_PARAMETER",
    "DEFAULT_MAX_PENDING_APPROVALS",
    "AgentConfirmApproval",
    "ApprovalConfig",
    "ClawsecConfig",
    "ConfigIssue",
    "ConfigProvider",
    "FileConfigProvider",
    "GlobalConfig",
    "NativeApproval",
    "RuleConfig",
    "RulesConfig",
    "StaticConfigProvider",
    "ValidationResult",
    "WebhookApproval",
    "default_config",
    "find_config_file",
    "load_config",
    "load_config_from_string",
    "validate",
    "validate_config",
]
