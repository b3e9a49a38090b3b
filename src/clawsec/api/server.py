"""
Clawsec Enforcement Boundary

FastAPI service in front of the decision router. An agent runtime posts
each tool call to ``/analyze`` and proceeds only on ``allowed: true``.
Confirm decisions come back as ``202`` with an approval id; the call is
held until a resolution is observed through ``/approvals/{id}`` (poll),
``/approvals/{id}/wait`` (long-poll) or ``/analyze?wait=true``.

Resolution side channels:
  POST /approvals/{id}/resolve   any method, explicit ``via``
  POST /approve/{id}             native
  POST /deny/{id}                native
  POST /webhook/callback/{id}    webhook
  retry with ``_clawsec_confirm`` agent-confirm (inside /analyze)

Usage:
    uvicorn clawsec.api.server:app
"""

from __future__ import annotations

import os
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clawsec import __version__
from clawsec.actions.confirm import ConfirmHandler
from clawsec.actions.router import DecisionRouter
from clawsec.analysis import AllowAllClassifier, Classifier, load_classifier, run_classifier
from clawsec.approval.agent_confirm import AgentConfirmHandler
from clawsec.approval.coordinator import ApprovalCoordinator, ResolutionResult
from clawsec.approval.webhook import WebhookApprovalClient, WebhookApprovalResponse
from clawsec.audit.sink import DEFAULT_QUERY_LIMIT, AuditSink, InMemoryAuditSink
from clawsec.config.loader import ConfigProvider, FileConfigProvider
from clawsec.config.schema import ClawsecConfig
from clawsec.core.models import (
    Action,
    ApprovalMethod,
    ApprovalResolution,
    ApprovalStatus,
    AuditEntry,
    Decision,
    EnforcementOutcome,
    PendingApproval,
    Severity,
    ToolCallContext,
)
from clawsec.exceptions import ApprovalNotFoundError, ClawsecAPIError, ClawsecError
from clawsec.logging import get_logger

logger = get_logger("clawsec.api")

MAX_RUNTIME_ERRORS = 20


# ─── Request/Response Models ────────────────────────────────

class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(_ApiModel):
    tool_name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    request_id: str | None = None
    timeout_seconds: int | None = Field(None, gt=0)


class AnalyzeResponse(_ApiModel):
    allowed: bool
    logged: bool
    message: str | None = None
    request_id: str
    arguments: dict[str, Any] | None = None
    approval_id: str | None = None
    timeout_seconds: int | None = None
    methods: list[ApprovalMethod] | None = None
    expires_at: datetime | None = None
    status: str | None = None


class ResolveRequest(_ApiModel):
    decision: Decision
    via: ApprovalMethod = ApprovalMethod.NATIVE
    decided_by: str | None = None
    reason: str = ""


class NativeDecisionRequest(_ApiModel):
    decided_by: str | None = None
    reason: str = ""


class ResolutionResponse(_ApiModel):
    approval_id: str
    resolved: bool
    status: str
    message: str
    via: ApprovalMethod | None = None
    decided_by: str | None = None


class ApprovalView(_ApiModel):
    approval_id: str
    status: str
    tool_name: str | None = None
    request_id: str | None = None
    methods: list[ApprovalMethod] | None = None
    timeout_seconds: int | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    remaining_seconds: int | None = None
    via: ApprovalMethod | None = None
    decided_by: str | None = None
    reason: str | None = None
    resolved_at: datetime | None = None


class ApprovalListResponse(_ApiModel):
    approvals: list[ApprovalView]
    total: int
    max_pending: int


class AuditResponse(_ApiModel):
    entries: list[AuditEntry]
    total_entries: int


class StatusResponse(_ApiModel):
    version: str = __version__
    valid: bool
    errors: list[dict[str, str]] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    global_enabled: bool
    config_path: str | None = None
    enabled_rules: list[str] = Field(default_factory=list)
    disabled_rules: list[str] = Field(default_factory=list)
    approval_methods: list[ApprovalMethod] = Field(default_factory=list)
    approval_timeout_seconds: int | None = None
    pending_approvals: int = 0
    max_pending: int = 0
    audit_entries: int = 0
    runtime_errors: list[dict[str, Any]] = Field(default_factory=list)


# ─── Gateway ────────────────────────────────────────────────

class EnforcementGateway:
    """Wires the config provider, classifier, router and approval machinery.

    Args:
        config_provider: Source of config snapshots; a FileConfigProvider
            over the usual locations by default.
        classifier: External analyzer; ``$CLAWSEC_CLASSIFIER`` or allow-all.
        audit: Audit sink shared by every handler and the coordinator.
        coordinator: Approval coordinator; built from the config when omitted.
        http_client: Shared client for webhook notifications.
        callback_url_template: Webhook callback URL with ``{id}``;
            ``$CLAWSEC_CALLBACK_URL_TEMPLATE`` by default.
        timeout_decision: Resolution applied when an approval expires.
    """

    def __init__(
        self,
        config_provider: ConfigProvider | None = None,
        classifier: Classifier | None = None,
        audit: AuditSink | None = None,
        coordinator: ApprovalCoordinator | None = None,
        http_client: httpx.AsyncClient | None = None,
        callback_url_template: str | None = None,
        timeout_decision: Decision = Decision.DENIED,
    ):
        self.config_provider = config_provider or FileConfigProvider()
        config = self.config_provider.load_config()

        if classifier is None:
            classifier_spec = os.environ.get("CLAWSEC_CLASSIFIER")
            classifier = load_classifier(classifier_spec) if classifier_spec else AllowAllClassifier()
        self.classifier = classifier

        self.audit = audit if audit is not None else InMemoryAuditSink()
        self.coordinator = coordinator if coordinator is not None else ApprovalCoordinator(
            self.audit,
            max_pending=config.approval.max_pending,
            timeout_decision=timeout_decision,
        )
        self.callback_url_template = callback_url_template or os.environ.get(
            "CLAWSEC_CALLBACK_URL_TEMPLATE"
        )
        self._runtime_errors: deque[dict[str, Any]] = deque(maxlen=MAX_RUNTIME_ERRORS)

        self.confirm = ConfirmHandler(
            self.coordinator,
            self.audit,
            http_client=http_client,
            callback_url_template=self.callback_url_template,
            error_reporter=self.report_error,
        )
        self.router = DecisionRouter(self.audit, confirm=self.confirm)

    # ─── Tool calls ─────────────────────────────────────────

    async def analyze(
        self, tool_call: ToolCallContext, timeout_seconds: int | None = None
    ) -> EnforcementOutcome:
        """Enforce one tool call. Never raises for a malformed or failing call."""
        config = self.config_provider.load_config().with_approval_timeout(timeout_seconds)

        if config.global_enabled:
            confirmed = self._agent_confirm(tool_call, config)
            if confirmed is not None:
                return confirmed

        try:
            classification = await run_classifier(self.classifier, tool_call, config)
        except Exception as exc:
            return self._classifier_failed(tool_call, exc)

        return await self.router.route(classification, tool_call, config)

    def _agent_confirm(
        self, tool_call: ToolCallContext, config: ClawsecConfig
    ) -> EnforcementOutcome | None:
        settings = config.approval.agent_confirm
        handler = AgentConfirmHandler(
            self.coordinator, settings.parameter_name, enabled=settings.enabled
        )
        result = handler.process(tool_call)
        if result is None:
            return None

        if result.valid:
            return EnforcementOutcome(
                allowed=True,
                logged=True,
                message=f"[clawsec] Approval {result.approval_id} confirmed; proceeding.",
                arguments=result.arguments,
            )

        self.audit.append(
            AuditEntry(
                tool_name=tool_call.tool_name,
                category="agent-confirm",
                severity=Severity.HIGH,
                action=Action.BLOCK.value,
                reason="Agent confirmation parameter was present but invalid",
                metadata={
                    "request_id": tool_call.request_id,
                    "approval_id": result.approval_id,
                    "error": result.error,
                },
            )
        )
        return EnforcementOutcome(
            allowed=False,
            logged=True,
            message=f"[clawsec] {result.error or 'Invalid or expired approval confirmation'}",
        )

    def _classifier_failed(self, tool_call: ToolCallContext, exc: Exception) -> EnforcementOutcome:
        logger.exception(
            "Classifier failed, denying tool call",
            extra={"request_id": tool_call.request_id, "tool_name": tool_call.tool_name},
        )
        self.audit.append(
            AuditEntry(
                tool_name=tool_call.tool_name,
                category="none",
                severity=Severity.HIGH,
                action=Action.BLOCK.value,
                reason=f"Classifier failed: {exc}",
                metadata={"request_id": tool_call.request_id, "error": type(exc).__name__},
            )
        )
        return EnforcementOutcome(
            allowed=False,
            logged=True,
            message="[clawsec] The tool call could not be analyzed and was denied.",
        )

    # ─── Approvals ──────────────────────────────────────────

    def resolve(
        self,
        approval_id: str,
        decision: Decision,
        via: ApprovalMethod,
        decided_by: str | None = None,
        reason: str = "",
    ) -> ResolutionResult:
        return self.coordinator.resolve(
            approval_id, decision, via, decided_by=decided_by, reason=reason
        )

    def webhook_callback(self, approval_id: str, answer: WebhookApprovalResponse) -> ResolutionResult:
        config = self.config_provider.load_config()
        client = WebhookApprovalClient(
            config.approval.webhook,
            self.coordinator,
            callback_url_template=self.callback_url_template,
        )
        return client.handle_callback(approval_id, answer)

    def approval_view(self, approval_id: str) -> ApprovalView:
        pending = self.coordinator.get_pending(approval_id)
        if pending is not None:
            return _pending_view(pending)
        resolution = self.coordinator.get_resolution(approval_id)
        if resolution is not None:
            return _resolution_view(resolution)
        raise ApprovalNotFoundError(approval_id)

    # ─── Status ─────────────────────────────────────────────

    def report_error(self, error: ClawsecError) -> None:
        self._runtime_errors.append(
            {
                "type": type(error).__name__,
                "message": str(error),
                "details": error.details,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    def status(self) -> StatusResponse:
        config = self.config_provider.load_config()
        result = self.config_provider.validate(config)

        enabled = [name for name, rule in config.rules.items() if rule.enabled]
        disabled = [name for name, rule in config.rules.items() if not rule.enabled]

        issues = [f"{issue.path}: {issue.message}" for issue in result.errors]
        if not config.global_enabled:
            issues.append("Plugin is globally disabled")

        path = getattr(self.config_provider, "path", None)
        return StatusResponse(
            valid=result.valid,
            errors=[issue.model_dump() for issue in result.errors],
            issues=issues,
            global_enabled=config.global_enabled,
            config_path=str(path) if path else None,
            enabled_rules=enabled,
            disabled_rules=disabled,
            approval_methods=list(config.approval.configured_methods),
            approval_timeout_seconds=config.approval.timeout_seconds,
            pending_approvals=len(self.coordinator),
            max_pending=config.approval.max_pending,
            audit_entries=len(self.audit),
            runtime_errors=list(self._runtime_errors),
        )

    async def aclose(self) -> None:
        self.coordinator.close()
        await self.confirm.aclose()


def _pending_view(pending: PendingApproval) -> ApprovalView:
    return ApprovalView(
        approval_id=pending.id,
        status="pending",
        tool_name=pending.tool_name,
        request_id=pending.request_id,
        methods=list(pending.methods),
        timeout_seconds=pending.timeout_seconds,
        created_at=pending.created_at,
        expires_at=pending.expires_at,
        remaining_seconds=pending.remaining_seconds(),
    )


def _resolution_view(resolution: ApprovalResolution) -> ApprovalView:
    return ApprovalView(
        approval_id=resolution.approval_id,
        status=resolution.status.value,
        via=resolution.via,
        decided_by=resolution.decided_by,
        reason=resolution.reason,
        resolved_at=resolution.resolved_at,
    )


def _analyze_response(outcome: EnforcementOutcome, request_id: str) -> AnalyzeResponse:
    response = AnalyzeResponse(
        allowed=outcome.allowed,
        logged=outcome.logged,
        message=outcome.message,
        request_id=request_id,
        arguments=outcome.arguments,
    )
    pending = outcome.pending_approval
    if pending is not None:
        response = response.model_copy(
            update={
                "approval_id": pending.id,
                "timeout_seconds": pending.timeout_seconds,
                "methods": list(pending.methods),
                "expires_at": pending.expires_at,
                "status": "pending",
            }
        )
    return response


def _resolution_response(result: ResolutionResult) -> ResolutionResponse:
    resolution = result.resolution
    return ResolutionResponse(
        approval_id=result.approval_id,
        resolved=result.resolved,
        status=result.status.value,
        message=result.message,
        via=resolution.via if resolution else None,
        decided_by=resolution.decided_by if resolution else None,
    )


def _resolution_message(resolution: ApprovalResolution) -> str:
    by = f" by {resolution.decided_by}" if resolution.decided_by else ""
    if resolution.allowed:
        return f"[clawsec] Approval {resolution.approval_id} approved{by}; proceeding."
    if resolution.status == ApprovalStatus.TIMED_OUT:
        return f"[clawsec] Approval {resolution.approval_id} timed out; the action was denied."
    return f"[clawsec] Approval {resolution.approval_id} denied{by}; the action was denied."


def _json(model: BaseModel, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _error_body(message: str, status_code: int) -> dict[str, Any]:
    return {"error": True, "message": message, "statusCode": status_code}


# ─── App ─────────────────────────────────────────────────────

def create_app(gateway: EnforcementGateway | None = None) -> FastAPI:
    """Build the FastAPI app around ``gateway`` (a default one if omitted)."""
    gateway = gateway or EnforcementGateway()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await gateway.aclose()

    app = FastAPI(
        title="Clawsec",
        description="Enforcement and approval coordination for agent tool calls",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}"
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_error_body("; ".join(messages), 400))

    @app.exception_handler(ApprovalNotFoundError)
    async def not_found(request: Request, exc: ApprovalNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_error_body(str(exc), 404))

    @app.exception_handler(ClawsecAPIError)
    async def api_error(request: Request, exc: ClawsecAPIError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc), exc.status_code))

    # ─── Tool calls ─────────────────────────────────────────

    @app.post("/analyze")
    async def analyze(body: AnalyzeRequest, wait: bool = False) -> JSONResponse:
        """Enforce a tool call. 200 when final, 202 when an approval is pending."""
        tool_call = ToolCallContext(
            tool_name=body.tool_name,
            arguments=body.arguments,
            **({"request_id": body.request_id} if body.request_id else {}),
        )
        outcome = await gateway.analyze(tool_call, timeout_seconds=body.timeout_seconds)
        pending = outcome.pending_approval

        if pending is None:
            return _json(_analyze_response(outcome, tool_call.request_id))

        if not wait:
            return _json(_analyze_response(outcome, tool_call.request_id), status_code=202)

        resolution = await gateway.coordinator.wait(pending.id, cancel_on_abandon=True)
        response = _analyze_response(outcome, tool_call.request_id)
        if resolution is not None:
            response = response.model_copy(
                update={
                    "allowed": resolution.allowed,
                    "status": resolution.status.value,
                    "message": _resolution_message(resolution),
                }
            )
        return _json(response)

    # ─── Approvals ──────────────────────────────────────────

    @app.get("/approvals")
    async def list_approvals() -> ApprovalListResponse:
        approvals = [_pending_view(p) for p in gateway.coordinator.pending]
        return ApprovalListResponse(
            approvals=approvals,
            total=len(approvals),
            max_pending=gateway.config_provider.load_config().approval.max_pending,
        )

    @app.get("/approvals/{approval_id}", response_model_exclude_none=True)
    async def get_approval(approval_id: str) -> ApprovalView:
        return gateway.approval_view(approval_id)

    @app.get("/approvals/{approval_id}/wait", response_model_exclude_none=True)
    async def wait_for_approval(
        approval_id: str, timeout: float = Query(30.0, gt=0, le=3600)
    ) -> ApprovalView:
        """Long-poll until the approval settles or ``timeout`` elapses."""
        await gateway.coordinator.wait(approval_id, timeout=timeout)
        return gateway.approval_view(approval_id)

    @app.post("/approvals/{approval_id}/resolve")
    async def resolve_approval(approval_id: str, body: ResolveRequest) -> ResolutionResponse:
        return _resolve(approval_id, body.decision, body.via, body.decided_by, body.reason)

    @app.post("/approve/{approval_id}")
    async def approve(approval_id: str, body: NativeDecisionRequest | None = None) -> ResolutionResponse:
        body = body or NativeDecisionRequest()
        return _resolve(approval_id, Decision.APPROVED, ApprovalMethod.NATIVE, body.decided_by, body.reason)

    @app.post("/deny/{approval_id}")
    async def deny(approval_id: str, body: NativeDecisionRequest | None = None) -> ResolutionResponse:
        body = body or NativeDecisionRequest()
        return _resolve(approval_id, Decision.DENIED, ApprovalMethod.NATIVE, body.decided_by, body.reason)

    @app.post("/webhook/callback/{approval_id}")
    async def webhook_callback(approval_id: str, body: WebhookApprovalResponse) -> ResolutionResponse:
        return _checked(gateway.webhook_callback(approval_id, body))

    def _resolve(
        approval_id: str,
        decision: Decision,
        via: ApprovalMethod,
        decided_by: str | None,
        reason: str,
    ) -> ResolutionResponse:
        return _checked(gateway.resolve(approval_id, decision, via, decided_by, reason))

    def _checked(result: ResolutionResult) -> ResolutionResponse:
        if result.status is None:
            raise ApprovalNotFoundError(result.approval_id)
        if not result.resolved and result.resolution is None:
            raise ClawsecAPIError(result.message, status_code=409)
        return _resolution_response(result)

    # ─── Status & Audit ─────────────────────────────────────

    @app.get("/status")
    async def get_status() -> StatusResponse:
        return gateway.status()

    @app.get("/audit")
    async def get_audit(
        category: str | None = None,
        limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=1000),
    ) -> AuditResponse:
        result = gateway.audit.query(category=category, limit=limit)
        return AuditResponse(entries=result.entries, total_entries=result.total_entries)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app


app = create_app()
