"""
Clawsec Webhook Approval Client

Sends approval requests to an external system (Slack bot, Discord bot,
custom API) and feeds its answers back into the coordinator.

The endpoint may answer synchronously with ``{"approved": bool}`` (200)
or accept the request for later (202) and call back through
``POST /webhook/callback/{id}`` on the enforcement boundary. Any other
response, or a transport failure, means this method contributes no
signal; the approval timeout still governs.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from clawsec.approval.coordinator import ApprovalCoordinator, ResolutionResult
from clawsec.config.schema import WebhookApproval
from clawsec.core.models import (
    ApprovalMethod,
    Decision,
    Detection,
    PendingApproval,
    ToolCallContext,
)
from clawsec.logging import get_logger

logger = get_logger("clawsec.approval.webhook")


class WebhookApprovalResponse(BaseModel):
    """Answer from the webhook endpoint, or the body of its callback."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    approved: bool
    approved_by: str | None = None
    reason: str | None = None


class WebhookApprovalResult(BaseModel):
    """Outcome of one webhook request."""
    success: bool
    waiting_for_callback: bool = False
    response: WebhookApprovalResponse | None = None
    error: str | None = None
    resolution: ResolutionResult | None = None


def build_webhook_payload(
    pending: PendingApproval,
    tool_call: ToolCallContext,
    detection: Detection,
    callback_url: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": pending.id,
        "detection": detection.model_dump(mode="json"),
        "toolCall": {"name": tool_call.tool_name, "input": tool_call.arguments},
        "timestamp": int(pending.created_at.timestamp() * 1000),
        "expiresAt": int(pending.expires_at.timestamp() * 1000),
    }
    if callback_url:
        payload["callbackUrl"] = callback_url
    return payload


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or "No error details provided"
    if isinstance(body, dict):
        for key in ("error", "message"):
            if isinstance(body.get(key), str):
                return body[key]
    return "Unknown error"


class WebhookApprovalClient:
    """Webhook transport for pending approvals.

    Args:
        config: Webhook section of the approval config.
        coordinator: Where answers are delivered.
        http_client: Optional shared ``httpx.AsyncClient`` (tests pass one
            with a MockTransport). Without it a client is opened per request.
        callback_url_template: URL with an ``{id}`` placeholder announced to
            the endpoint for asynchronous answers.
    """

    def __init__(
        self,
        config: WebhookApproval,
        coordinator: ApprovalCoordinator,
        http_client: httpx.AsyncClient | None = None,
        callback_url_template: str | None = None,
    ):
        self._config = config
        self._coordinator = coordinator
        self._http_client = http_client
        self._callback_url_template = callback_url_template

    def is_enabled(self) -> bool:
        return self._config.enabled and bool((self._config.url or "").strip())

    def callback_url(self, approval_id: str) -> str | None:
        if not self._callback_url_template:
            return None
        return self._callback_url_template.replace("{id}", approval_id)

    async def notify(
        self,
        pending: PendingApproval,
        tool_call: ToolCallContext,
        detection: Detection,
    ) -> WebhookApprovalResult:
        """Send the approval request; resolve right away on a synchronous answer."""
        if not self.is_enabled():
            return WebhookApprovalResult(
                success=False,
                error="Webhook approval is not enabled or URL is not configured",
            )

        payload = build_webhook_payload(
            pending, tool_call, detection, self.callback_url(pending.id)
        )
        try:
            response = await self._post(payload)
        except httpx.TimeoutException:
            return self._failed(
                pending,
                f"Request timeout: webhook did not respond within {self._config.timeout} seconds",
            )
        except httpx.HTTPError as exc:
            return self._failed(pending, f"Network error: {exc}")

        if response.status_code == 202:
            logger.info(
                "Webhook accepted approval request, waiting for callback",
                extra={"approval_id": pending.id, "method": ApprovalMethod.WEBHOOK.value},
            )
            return WebhookApprovalResult(success=True, waiting_for_callback=True)

        if response.status_code == 200:
            try:
                answer = WebhookApprovalResponse.model_validate(response.json())
            except (ValueError, ValidationError):
                return self._failed(pending, "Invalid response format: expected { approved: boolean }")
            resolution = self.handle_callback(pending.id, answer)
            return WebhookApprovalResult(success=True, response=answer, resolution=resolution)

        if 400 <= response.status_code < 500:
            return self._failed(pending, f"Client error ({response.status_code}): {_error_detail(response)}")
        if response.status_code >= 500:
            return self._failed(pending, f"Server error ({response.status_code}): {_error_detail(response)}")
        return self._failed(pending, f"Unexpected status code: {response.status_code}")

    def handle_callback(self, approval_id: str, answer: WebhookApprovalResponse) -> ResolutionResult:
        """Deliver a webhook answer (synchronous or via callback) to the coordinator."""
        return self._coordinator.resolve(
            approval_id.strip(),
            Decision.APPROVED if answer.approved else Decision.DENIED,
            ApprovalMethod.WEBHOOK,
            decided_by=answer.approved_by or "webhook",
            reason=answer.reason or "",
        )

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json", **self._config.headers}
        if self._http_client is not None:
            return await self._http_client.post(
                self._config.url, json=payload, headers=headers, timeout=self._config.timeout
            )
        async with httpx.AsyncClient(timeout=self._config.timeout) as client:
            return await client.post(self._config.url, json=payload, headers=headers)

    def _failed(self, pending: PendingApproval, error: str) -> WebhookApprovalResult:
        logger.warning(
            "Webhook approval request failed: %s",
            error,
            extra={"approval_id": pending.id, "method": ApprovalMethod.WEBHOOK.value},
        )
        return WebhookApprovalResult(success=False, error=error)
