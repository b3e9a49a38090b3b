"""User-facing messages for block, warn and confirm decisions."""

from __future__ import annotations

from collections.abc import Sequence

from clawsec.core.models import ApprovalMethod, Detection, PendingApproval

CATEGORY_NAMES = {
    "purchase": "Purchase/Payment",
    "website": "Website Access",
    "destructive": "Destructive Command",
    "secrets": "Secrets/PII",
    "exfiltration": "Data Transfer",
}

METHOD_HINTS = {
    ApprovalMethod.NATIVE: "run /approve {id} (or /deny {id})",
    ApprovalMethod.AGENT_CONFIRM: "retry the tool call with {param}: \"{id}\"",
    ApprovalMethod.WEBHOOK: "wait for the external approver",
}


def format_category(category: str) -> str:
    return CATEGORY_NAMES.get(category, category)


def _detail_lines(detection: Detection, extra_count: int) -> list[str]:
    lines = [
        f"Category: {format_category(detection.category)}",
        f"Severity: {detection.severity.value.upper()}",
        f"Reason: {detection.reason}" if detection.reason else "Reason: (none given)",
    ]
    if extra_count > 0:
        lines.append(f"Additional detections: {extra_count}")
    return lines


def block_message(detection: Detection, tool_name: str, detection_count: int = 1) -> str:
    lines = [f"[clawsec] Blocked {format_category(detection.category)} in tool \"{tool_name}\""]
    lines += _detail_lines(detection, detection_count - 1)
    lines.append("This action was blocked by security policy.")
    return "\n".join(lines)


def warn_message(detection: Detection, tool_name: str, detection_count: int = 1) -> str:
    lines = [f"[clawsec] Warning: possible {format_category(detection.category)} in tool \"{tool_name}\""]
    lines += _detail_lines(detection, detection_count - 1)
    lines.append("The action is allowed to proceed.")
    return "\n".join(lines)


def confirm_message(
    detection: Detection,
    tool_name: str,
    pending: PendingApproval,
    confirm_parameter: str,
    detection_count: int = 1,
) -> str:
    lines = [
        f"[clawsec] Approval required for {format_category(detection.category)} in tool \"{tool_name}\""
    ]
    lines += _detail_lines(detection, detection_count - 1)
    lines.append(f"Approval ID: {pending.id}")
    lines.append("To answer:")
    for method in pending.methods:
        hint = METHOD_HINTS[method].format(id=pending.id, param=confirm_parameter)
        lines.append(f"  - {method.value}: {hint}")
    lines.append(
        f"Expires in {_format_duration(pending.remaining_seconds())}; "
        "the action is denied if nobody answers."
    )
    return "\n".join(lines)


def method_list(methods: Sequence[ApprovalMethod]) -> str:
    return ", ".join(m.value for m in methods)


def _format_duration(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s"
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}m {rest}s" if rest else f"{minutes}m"
