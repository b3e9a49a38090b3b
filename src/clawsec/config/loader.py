"""
Clawsec Configuration Loader

YAML file loading, validation and the file-backed config provider.

Validation happens in two layers: the pydantic schema rejects malformed
values, and ``validate`` adds the semantic checks that only make sense on
a complete config (for example a confirm rule with no way to answer it).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, Field, ValidationError

from clawsec.config.schema import ClawsecConfig, default_config
from clawsec.exceptions import ConfigLoadError, ConfigValidationError
from clawsec.logging import get_logger

logger = get_logger("clawsec.config")

CONFIG_ENV_VAR = "CLAWSEC_CONFIG"
CONFIG_FILE_NAMES = ("clawsec.yaml", "clawsec.yml", ".clawsec.yaml", ".clawsec.yml")


class ConfigIssue(BaseModel):
    path: str = ""
    message: str


class ValidationResult(BaseModel):
    valid: bool
    errors: list[ConfigIssue] = Field(default_factory=list)


class ConfigProvider(Protocol):
    """Where the enforcement boundary gets its config snapshot from."""

    def load_config(self) -> ClawsecConfig: ...

    def validate(self, config: ClawsecConfig) -> ValidationResult: ...


# ─── Validation ──────────────────────────────────────────────

def _issues_from_pydantic(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


def validate_config(raw: Any) -> ClawsecConfig:
    """Validate raw (parsed YAML/JSON) data into a config object.

    Missing sections take their defaults.

    Raises:
        ConfigValidationError: if the data does not match the schema.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigValidationError(
            "Configuration validation failed:\n  - (root): expected a mapping",
            errors=[{"path": "", "message": "expected a mapping"}],
        )
    try:
        return ClawsecConfig.model_validate(raw)
    except ValidationError as exc:
        errors = _issues_from_pydantic(exc)
        message = "Configuration validation failed:\n" + "\n".join(
            f"  - {e['path'] or '(root)'}: {e['message']}" for e in errors
        )
        raise ConfigValidationError(message, errors=errors) from exc


def validate(config: ClawsecConfig) -> ValidationResult:
    """Semantic checks over a schema-valid config."""
    errors: list[ConfigIssue] = []
    approval = config.approval

    if approval.webhook.enabled and not (approval.webhook.url or "").strip():
        errors.append(
            ConfigIssue(
                path="approval.webhook.url",
                message="Webhook approval is enabled but no URL is configured",
            )
        )

    confirm_rules = [
        name for name, rule in config.rules.items() if rule.enabled and rule.action == "confirm"
    ]
    if confirm_rules and not approval.configured_methods:
        errors.append(
            ConfigIssue(
                path="approval",
                message=(
                    "Rules "
                    + ", ".join(confirm_rules)
                    + " require confirmation but no approval method is usable"
                ),
            )
        )

    website = config.rules.website
    if website.enabled and website.mode == "allowlist" and not website.allowlist:
        errors.append(
            ConfigIssue(
                path="rules.website.allowlist",
                message="Website rule is in allowlist mode but allowlist is empty (blocks all sites)",
            )
        )

    return ValidationResult(valid=not errors, errors=errors)


# ─── File Loading ───────────────────────────────────────────

def find_config_file(start: str | Path | None = None) -> Path | None:
    """Locate a config file: $CLAWSEC_CONFIG first, then well-known names in ``start``."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    directory = Path(start) if start else Path.cwd()
    for name in CONFIG_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config_from_string(text: str, source: str = "<string>") -> ClawsecConfig:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in {source}: {exc}", file_path=source) from exc
    return validate_config(raw)


def load_config(path: str | Path | None = None) -> ClawsecConfig:
    """Load a config file, or the defaults when there is none.

    Raises:
        ConfigLoadError: the file is missing, unreadable or not YAML.
        ConfigValidationError: the file does not match the schema.
    """
    config_path = Path(path) if path else find_config_file()
    if config_path is None:
        logger.debug("No config file found, using defaults")
        return default_config()

    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"Config file not found: {config_path}", file_path=str(config_path)) from exc
    except OSError as exc:
        raise ConfigLoadError(
            f"Cannot read config file {config_path}: {exc}", file_path=str(config_path)
        ) from exc

    config = load_config_from_string(text, source=str(config_path))
    logger.info("Loaded config", extra={"status": str(config_path)})
    return config


class FileConfigProvider:
    """Config provider backed by a YAML file.

    The config is loaded once and cached; ``reload`` re-reads the file.
    A file that fails to load leaves the defaults in place and is reported
    through ``load_error`` so the status surface can show it.
    """

    def __init__(self, path: str | Path | None = None):
        self._explicit_path = Path(path) if path else None
        self._config: ClawsecConfig | None = None
        self.load_error: str | None = None

    @property
    def path(self) -> Path | None:
        return self._explicit_path or find_config_file()

    def reload(self) -> ClawsecConfig:
        try:
            self._config = load_config(self._explicit_path)
            self.load_error = None
        except (ConfigLoadError, ConfigValidationError) as exc:
            logger.error("Failed to load config, falling back to defaults: %s", exc)
            self.load_error = str(exc)
            self._config = default_config()
        return self._config

    def load_config(self) -> ClawsecConfig:
        if self._config is None:
            return self.reload()
        return self._config

    def validate(self, config: ClawsecConfig) -> ValidationResult:
        result = validate(config)
        if self.load_error:
            result = ValidationResult(
                valid=False,
                errors=[ConfigIssue(path="(file)", message=self.load_error), *result.errors],
            )
        return result


class StaticConfigProvider:
    """Provider over a fixed config object. Used for embedding and tests."""

    def __init__(self, config: ClawsecConfig | None = None):
        self._config = config or default_config()

    @property
    def path(self) -> Path | None:
        return None

    def load_config(self) -> ClawsecConfig:
        return self._config

    def validate(self, config: ClawsecConfig) -> ValidationResult:
        return validate(config)
