"""Tests for configuration schema, loading and validation."""

import pytest
from pydantic import ValidationError

from clawsec.config import (
    ClawsecConfig,
    FileConfigProvider,
    StaticConfigProvider,
    default_config,
    find_config_file,
    load_config,
    load_config_from_string,
    validate,
    validate_config,
)
from clawsec.core.models import ApprovalMethod, Severity
from clawsec.exceptions import ConfigLoadError, ConfigValidationError

FULL_YAML = """
version: "1.0"
global:
  enabled: true
  logLevel: debug
rules:
  purchase:
    enabled: true
    severity: critical
    action: confirm
    spendLimits:
      perTransaction: 50
      daily: 200
  website:
    mode: blocklist
  destructive:
    action: block
approval:
  timeoutSeconds: 120
  native:
    enabled: true
  agentConfirm:
    enabled: true
    parameterName: _confirm_me
  webhook:
    enabled: true
    url: https://hooks.example.com/approve
    timeout: 10
    headers:
      Authorization: Bearer token
"""


class TestDefaults:
    def test_default_rules(self):
        config = default_config()
        assert config.global_enabled
        assert config.rules.destructive.action == "confirm"
        assert config.rules.purchase.action == "block"
        assert config.rules.purchase.severity == Severity.CRITICAL
        assert config.rules.website.mode == "blocklist"

    def test_default_approval(self):
        approval = default_config().approval
        assert approval.timeout_seconds == 300
        assert approval.max_pending == 1000
        assert approval.agent_confirm.parameter_name == "_clawsec_confirm"
        assert approval.enabled_methods == (ApprovalMethod.NATIVE, ApprovalMethod.AGENT_CONFIRM)

    def test_default_config_is_valid(self):
        assert validate(default_config()).valid


class TestSchema:
    def test_camel_case_yaml(self):
        config = load_config_from_string(FULL_YAML)
        assert config.global_.log_level == "debug"
        assert config.rules.purchase.spend_limits.per_transaction == 50
        assert config.approval.timeout_seconds == 120
        assert config.approval.agent_confirm.parameter_name == "_confirm_me"
        assert config.approval.webhook.headers == {"Authorization": "Bearer token"}

    def test_snake_case_accepted(self):
        config = ClawsecConfig.model_validate({"approval": {"timeout_seconds": 45}})
        assert config.approval.timeout_seconds == 45

    def test_partial_config_merges_defaults(self):
        config = load_config_from_string("rules:\n  secrets:\n    enabled: false\n")
        assert config.rules.secrets.enabled is False
        assert config.rules.destructive.enabled is True

    def test_empty_document_is_defaults(self):
        assert load_config_from_string("") == default_config()

    def test_config_is_frozen(self):
        config = default_config()
        with pytest.raises(ValidationError):
            config.approval.timeout_seconds = 5

    def test_with_approval_timeout_returns_new_snapshot(self):
        config = default_config()
        derived = config.with_approval_timeout(1)
        assert derived.approval.timeout_seconds == 1
        assert config.approval.timeout_seconds == 300
        assert config.with_approval_timeout(None) is config


class TestApprovalMethods:
    def test_webhook_needs_url(self):
        config = ClawsecConfig.model_validate(
            {"approval": {"webhook": {"enabled": True}}}
        )
        assert ApprovalMethod.WEBHOOK in config.approval.enabled_methods
        assert ApprovalMethod.WEBHOOK not in config.approval.configured_methods

    def test_webhook_with_url(self, webhook_config):
        assert webhook_config.approval.configured_methods == (ApprovalMethod.WEBHOOK,)
        assert webhook_config.approval.webhook_url == "https://approvals.example.com/hook"


class TestValidation:
    def test_bad_action_rejected(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config({"rules": {"purchase": {"action": "explode"}}})
        assert exc_info.value.errors[0]["path"] == "rules.purchase.action"

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ConfigValidationError):
            validate_config({"approval": {"timeoutSeconds": 0}})

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigValidationError):
            validate_config(["not", "a", "mapping"])

    def test_invalid_yaml(self):
        with pytest.raises(ConfigLoadError):
            load_config_from_string("rules: [unclosed")

    def test_webhook_without_url_reported(self):
        config = ClawsecConfig.model_validate({"approval": {"webhook": {"enabled": True}}})
        result = validate(config)
        assert not result.valid
        assert result.errors[0].path == "approval.webhook.url"

    def test_confirm_rule_without_method_reported(self):
        config = ClawsecConfig.model_validate(
            {"approval": {"native": {"enabled": False}, "agentConfirm": {"enabled": False}}}
        )
        result = validate(config)
        assert not result.valid
        assert any("destructive" in e.message for e in result.errors)

    def test_empty_allowlist_reported(self):
        config = ClawsecConfig.model_validate(
            {"rules": {"website": {"mode": "allowlist", "allowlist": []}}}
        )
        result = validate(config)
        assert any(e.path == "rules.website.allowlist" for e in result.errors)


class TestLoading:
    def test_find_config_file_in_directory(self, tmp_path):
        (tmp_path / "clawsec.yaml").write_text("version: '1.0'\n")
        assert find_config_file(tmp_path) == tmp_path / "clawsec.yaml"

    def test_find_config_file_env(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        monkeypatch.setenv("CLAWSEC_CONFIG", str(path))
        assert find_config_file(tmp_path) == path

    def test_no_config_file(self, tmp_path):
        assert find_config_file(tmp_path) is None

    def test_load_config_file(self, tmp_path):
        path = tmp_path / "clawsec.yaml"
        path.write_text(FULL_YAML)
        assert load_config(path).approval.timeout_seconds == 120

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(tmp_path / "missing.yaml")
        assert exc_info.value.file_path.endswith("missing.yaml")


class TestProviders:
    def test_file_provider_caches_and_reloads(self, tmp_path):
        path = tmp_path / "clawsec.yaml"
        path.write_text("approval:\n  timeoutSeconds: 10\n")
        provider = FileConfigProvider(path)
        assert provider.load_config().approval.timeout_seconds == 10

        path.write_text("approval:\n  timeoutSeconds: 20\n")
        assert provider.load_config().approval.timeout_seconds == 10
        assert provider.reload().approval.timeout_seconds == 20

    def test_file_provider_falls_back_on_error(self, tmp_path):
        path = tmp_path / "clawsec.yaml"
        path.write_text("approval:\n  timeoutSeconds: -1\n")
        provider = FileConfigProvider(path)
        config = provider.load_config()

        assert config == default_config()
        assert provider.load_error is not None
        result = provider.validate(config)
        assert not result.valid
        assert result.errors[0].path == "(file)"

    def test_static_provider(self, webhook_config):
        provider = StaticConfigProvider(webhook_config)
        assert provider.load_config() is webhook_config
        assert provider.validate(webhook_config).valid
