"""
Clawsec Classifier Interface

The threat analyzer lives outside this package. Anything with a
``classify(tool_call, config)`` method returning a Classification (directly
or as an awaitable) can be plugged into the enforcement boundary, either
by passing an instance or by naming it as ``"package.module:attribute"``.
"""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Awaitable, Mapping
from typing import Protocol, runtime_checkable

from clawsec.config.schema import ClawsecConfig
from clawsec.core.models import Classification, ToolCallContext
from clawsec.exceptions import ConfigurationError


@runtime_checkable
class Classifier(Protocol):
    def classify(
        self, tool_call: ToolCallContext, config: ClawsecConfig
    ) -> Classification | Awaitable[Classification]: ...


class AllowAllClassifier:
    """Classifies every call as allow. Default when no analyzer is configured."""

    def classify(self, tool_call: ToolCallContext, config: ClawsecConfig) -> Classification:
        return Classification.allow()


class StaticClassifier:
    """Fixed verdicts, optionally per tool name. Useful in tests and demos."""

    def __init__(
        self,
        default: Classification | None = None,
        by_tool: Mapping[str, Classification] | None = None,
    ):
        self.default = default or Classification.allow()
        self.by_tool = dict(by_tool or {})

    def classify(self, tool_call: ToolCallContext, config: ClawsecConfig) -> Classification:
        return self.by_tool.get(tool_call.tool_name, self.default)


async def run_classifier(
    classifier: Classifier, tool_call: ToolCallContext, config: ClawsecConfig
) -> Classification:
    result = classifier.classify(tool_call, config)
    if inspect.isawaitable(result):
        result = await result
    if not isinstance(result, Classification):
        result = Classification.model_validate(result)
    return result


def load_classifier(spec: str) -> Classifier:
    """Import ``"module:attribute"``; classes and factories are called with no arguments.

    Raises:
        ConfigurationError: the target cannot be imported or is not a classifier.
    """
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(
            f"Classifier must be given as 'module:attribute', got {spec!r}",
            details={"classifier": spec},
        )
    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(
            f"Cannot load classifier {spec!r}: {exc}", details={"classifier": spec}
        ) from exc

    if inspect.isclass(target) or (callable(target) and not hasattr(target, "classify")):
        try:
            target = target()
        except TypeError as exc:
            raise ConfigurationError(
                f"Cannot instantiate classifier {spec!r}: {exc}", details={"classifier": spec}
            ) from exc
    if not isinstance(target, Classifier):
        raise ConfigurationError(
            f"{spec!r} does not provide a classify(tool_call, config) method",
            details={"classifier": spec},
        )
    return target
