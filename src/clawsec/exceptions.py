"""
Clawsec Custom Exceptions

Structured exception hierarchy for the enforcement layer.
All Clawsec-specific exceptions inherit from ClawsecError.

Exception hierarchy:
    ClawsecError
    +-- ConfigurationError          (no usable approval method, malformed config)
    |   +-- ConfigLoadError         (config file missing/unreadable/not YAML)
    |   +-- ConfigValidationError   (config failed schema validation)
    +-- CapacityExceededError       (pending-approval table is full)
    +-- UnknownActionError          (classification carried an unknown action)
    +-- ResolutionRaceError         (late or duplicate approval signal)
    +-- ApprovalNotFoundError       (no approval with the given id)
    +-- ClawsecAPIError             (enforcement boundary error)

Only ConfigurationError and CapacityExceededError cross module seams;
the router and handlers turn every error into a safe EnforcementOutcome.
"""

from __future__ import annotations


class ClawsecError(Exception):
    """Base exception for all Clawsec errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ClawsecError):
    """Raised when the effective configuration cannot support a decision.

    For the confirm path this means no approval method is usable, so a
    pending approval could never be resolved by anything but its timeout.
    """


class ConfigLoadError(ConfigurationError):
    """Raised when a configuration file cannot be read or parsed."""

    def __init__(self, message: str, file_path: str, details: dict | None = None):
        super().__init__(
            message,
            details={"file_path": file_path, **(details or {})},
        )
        self.file_path = file_path


class ConfigValidationError(ConfigurationError):
    """Raised when configuration data fails schema validation.

    Carries the individual issues as ``{"path": ..., "message": ...}`` dicts.
    """

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None):
        super().__init__(message, details={"errors": errors or []})
        self.errors = errors or []


class CapacityExceededError(ClawsecError):
    """Raised when a new approval would exceed the live-table bound."""

    def __init__(self, max_pending: int, details: dict | None = None):
        super().__init__(
            f"Pending approval capacity exceeded (max {max_pending})",
            details={"max_pending": max_pending, **(details or {})},
        )
        self.max_pending = max_pending


class UnknownActionError(ClawsecError):
    """Describes a classification whose recommended action is not recognized.

    Never raised out of the router; used to build the diagnostic audit entry.
    """

    def __init__(self, action: str, details: dict | None = None):
        super().__init__(
            f"Unknown action type: {action}",
            details={"action": action, **(details or {})},
        )
        self.action = action


class ResolutionRaceError(ClawsecError):
    """Describes a resolution signal that arrived after the approval settled."""

    def __init__(self, approval_id: str, status: str, details: dict | None = None):
        super().__init__(
            f"Approval '{approval_id}' already {status}",
            details={"approval_id": approval_id, "status": status, **(details or {})},
        )
        self.approval_id = approval_id
        self.status = status


class ApprovalNotFoundError(ClawsecError):
    """Raised when an approval id is neither pending nor recently resolved."""

    def __init__(self, approval_id: str, details: dict | None = None):
        super().__init__(
            f"Approval not found: {approval_id}",
            details={"approval_id": approval_id, **(details or {})},
        )
        self.approval_id = approval_id


class ClawsecAPIError(ClawsecError):
    """Raised for enforcement boundary errors (FastAPI endpoints)."""

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        super().__init__(
            message,
            details={"status_code": status_code, **(details or {})},
        )
        self.status_code = status_code
