"""
Clawsec Approval Coordinator

Owns every pending approval from creation until its single terminal
resolution. Three sources race for each approval: an "approved" signal,
a "denied" signal (both through any method enabled for that approval),
and the timeout timer. The first one settles it; everything after that
is a no-op.

Concurrency model: the coordinator is a single-owner actor on the event
loop where approvals are registered. Registration, resolution, expiry
and cancellation all run on that loop and never await in between, so the
live table needs no lock. Other threads go through ``resolve_threadsafe``.

Lifecycle of one approval:
  register -> [initial audit entry written by the caller]
           -> resolve / timeout / cancel (first wins)
           -> entry removed from the live table, terminal audit entry
              written referencing the initial one, waiters woken
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from collections import OrderedDict
from dataclasses import dataclass, field

from pydantic import BaseModel

from clawsec.audit.sink import AuditSink
from clawsec.config.schema import DEFAULT_MAX_PENDING_APPROVALS
from clawsec.core.models import (
    ApprovalMethod,
    ApprovalResolution,
    ApprovalStatus,
    AuditEntry,
    Decision,
    Detection,
    PendingApproval,
)
from clawsec.exceptions import (
    ApprovalNotFoundError,
    CapacityExceededError,
    ClawsecError,
    ResolutionRaceError,
)
from clawsec.logging import get_logger

logger = get_logger("clawsec.approval")

DEFAULT_HISTORY_SIZE = 1024

OUTCOME_APPROVED = "approved"
OUTCOME_DENIED = "denied"
OUTCOME_TIMED_OUT = "timed out — denied"
OUTCOME_TIMED_OUT_APPROVED = "timed out — approved"
OUTCOME_CANCELLED = "cancelled — denied"


class ResolutionResult(BaseModel):
    """What a resolution signal achieved."""
    approval_id: str
    resolved: bool
    status: ApprovalStatus | None = None
    message: str
    resolution: ApprovalResolution | None = None


@dataclass
class _LiveApproval:
    pending: PendingApproval
    detection: Detection
    initial_entry_id: str
    loop: asyncio.AbstractEventLoop
    future: asyncio.Future
    timer: asyncio.TimerHandle | None = field(default=None)


class ApprovalCoordinator:
    """State machine and timer owner for pending approvals.

    Args:
        audit: Sink receiving the terminal entry of every approval.
        max_pending: Live-table bound; registrations past it fail with
            CapacityExceededError.
        history_size: How many settled approvals are remembered so late
            signals can be answered with the recorded outcome.
        timeout_decision: Policy on expiry. DENIED (fail-closed) unless
            explicitly configured otherwise.
    """

    def __init__(
        self,
        audit: AuditSink,
        max_pending: int = DEFAULT_MAX_PENDING_APPROVALS,
        history_size: int = DEFAULT_HISTORY_SIZE,
        timeout_decision: Decision = Decision.DENIED,
    ):
        self._audit = audit
        self._max_pending = max_pending
        self._history_size = history_size
        self._timeout_decision = timeout_decision
        self._live: dict[str, _LiveApproval] = {}
        self._history: OrderedDict[str, ApprovalResolution] = OrderedDict()
        self._loop: asyncio.AbstractEventLoop | None = None

    # ─── Registration ───────────────────────────────────────

    def register(
        self,
        pending: PendingApproval,
        *,
        detection: Detection,
        initial_entry_id: str,
        max_pending: int | None = None,
    ) -> asyncio.Future:
        """Add ``pending`` to the live table and start its timeout.

        Must be called from a running event loop. The timer starts now,
        so every waiter sees the same deadline.

        Raises:
            CapacityExceededError: the live table is full.
            ClawsecError: the id is already known.
        """
        loop = asyncio.get_running_loop()
        limit = max_pending or self._max_pending

        if len(self._live) >= limit:
            raise CapacityExceededError(limit, details={"pending": len(self._live)})
        if pending.id in self._live or pending.id in self._history:
            raise ClawsecError(
                f"Duplicate approval id: {pending.id}", details={"approval_id": pending.id}
            )

        live = _LiveApproval(
            pending=pending,
            detection=detection,
            initial_entry_id=initial_entry_id,
            loop=loop,
            future=loop.create_future(),
        )
        live.timer = loop.call_later(pending.timeout_seconds, self._expire, pending.id)
        self._live[pending.id] = live
        self._loop = loop

        logger.info(
            "Approval registered",
            extra={
                "approval_id": pending.id,
                "request_id": pending.request_id,
                "tool_name": pending.tool_name,
                "method": ",".join(m.value for m in pending.methods),
            },
        )
        return live.future

    # ─── Resolution ─────────────────────────────────────────

    def resolve(
        self,
        approval_id: str,
        decision: Decision | str,
        via: ApprovalMethod | str,
        *,
        decided_by: str | None = None,
        reason: str = "",
    ) -> ResolutionResult:
        """Apply an approve/deny signal. The first signal for an id wins.

        Late or duplicate signals never change the recorded outcome; they
        come back with ``resolved=False`` and the existing status. Ids the
        coordinator has never seen (or has forgotten) have no status.
        """
        decision = Decision(decision)
        via = ApprovalMethod(via)

        live = self._live.get(approval_id)
        if live is None:
            return self._late_signal(approval_id, decision, via)

        if via not in live.pending.methods:
            logger.warning(
                "Resolution via a method not enabled for this approval",
                extra={"approval_id": approval_id, "method": via.value},
            )
            return ResolutionResult(
                approval_id=approval_id,
                resolved=False,
                status=ApprovalStatus.PENDING,
                message=f"Method {via.value} is not enabled for approval {approval_id}",
            )

        if decision == Decision.APPROVED:
            return self._settle(live, ApprovalStatus.APPROVED, OUTCOME_APPROVED, via, decided_by, reason)
        return self._settle(live, ApprovalStatus.DENIED, OUTCOME_DENIED, via, decided_by, reason)

    def resolve_threadsafe(
        self,
        approval_id: str,
        decision: Decision | str,
        via: ApprovalMethod | str,
        *,
        decided_by: str | None = None,
        reason: str = "",
    ) -> concurrent.futures.Future:
        """Schedule ``resolve`` on the owning loop from another thread."""
        live = self._live.get(approval_id)
        loop = live.loop if live is not None else self._loop
        result: concurrent.futures.Future = concurrent.futures.Future()

        def _run() -> None:
            try:
                result.set_result(
                    self.resolve(approval_id, decision, via, decided_by=decided_by, reason=reason)
                )
            except Exception as exc:
                result.set_exception(exc)

        if loop is None or loop.is_closed():
            _run()
        else:
            loop.call_soon_threadsafe(_run)
        return result

    def cancel(self, approval_id: str, reason: str = "cancelled") -> ResolutionResult:
        """Deny an approval whose caller went away. Never leaves it in the table."""
        live = self._live.get(approval_id)
        if live is None:
            return self._late_signal(approval_id, Decision.DENIED, None)
        return self._settle(live, ApprovalStatus.DENIED, OUTCOME_CANCELLED, None, None, reason)

    def close(self) -> None:
        """Deny every live approval. Called on shutdown."""
        for approval_id in list(self._live):
            self.cancel(approval_id, reason="coordinator shutting down")

    def _expire(self, approval_id: str) -> None:
        live = self._live.get(approval_id)
        if live is None:
            return
        live.timer = None
        if self._timeout_decision == Decision.APPROVED:
            self._settle(live, ApprovalStatus.APPROVED, OUTCOME_TIMED_OUT_APPROVED, None, None, "timeout")
        else:
            self._settle(live, ApprovalStatus.TIMED_OUT, OUTCOME_TIMED_OUT, None, None, "timeout")

    def _settle(
        self,
        live: _LiveApproval,
        status: ApprovalStatus,
        outcome: str,
        via: ApprovalMethod | None,
        decided_by: str | None,
        reason: str,
    ) -> ResolutionResult:
        pending = live.pending
        del self._live[pending.id]
        if live.timer is not None:
            live.timer.cancel()
            live.timer = None

        resolution = ApprovalResolution(
            approval_id=pending.id,
            status=status,
            via=via,
            decided_by=decided_by,
            reason=reason,
        )
        self._remember(resolution)

        try:
            self._audit.append(
                AuditEntry(
                    tool_name=pending.tool_name,
                    category=live.detection.category,
                    severity=live.detection.severity,
                    action="confirm",
                    reason=live.detection.reason,
                    metadata={
                        "request_id": pending.request_id,
                        "approval_id": pending.id,
                        "initial_entry_id": live.initial_entry_id,
                        "terminal": True,
                        "outcome": outcome,
                        "via": via.value if via else None,
                        "decided_by": decided_by,
                        "resolution_reason": reason,
                    },
                )
            )
        except Exception:
            # resolution stands without its terminal entry
            logger.exception(
                "Failed to write terminal audit entry",
                extra={
                    "approval_id": pending.id,
                    "request_id": pending.request_id,
                    "tool_name": pending.tool_name,
                    "status": status.value,
                },
            )
        finally:
            if not live.future.done():
                live.future.set_result(resolution)

        logger.info(
            f"Approval {outcome}",
            extra={
                "approval_id": pending.id,
                "request_id": pending.request_id,
                "tool_name": pending.tool_name,
                "status": status.value,
                "method": via.value if via else None,
            },
        )
        return ResolutionResult(
            approval_id=pending.id,
            resolved=True,
            status=status,
            message=f"Approval {pending.id} {outcome}",
            resolution=resolution,
        )

    def _late_signal(
        self, approval_id: str, decision: Decision, via: ApprovalMethod | None
    ) -> ResolutionResult:
        previous = self._history.get(approval_id)
        if previous is None:
            return ResolutionResult(
                approval_id=approval_id,
                resolved=False,
                message=ApprovalNotFoundError(approval_id).args[0],
            )

        race = ResolutionRaceError(approval_id, previous.status.value)
        logger.debug(
            "Ignoring late resolution signal: %s",
            race,
            extra={
                "approval_id": approval_id,
                "method": via.value if via else None,
                "status": decision.value,
            },
        )
        return ResolutionResult(
            approval_id=approval_id,
            resolved=False,
            status=previous.status,
            message=str(race),
            resolution=previous,
        )

    def _remember(self, resolution: ApprovalResolution) -> None:
        self._history[resolution.approval_id] = resolution
        while len(self._history) > self._history_size:
            self._history.popitem(last=False)

    # ─── Queries ────────────────────────────────────────────

    async def wait(
        self,
        approval_id: str,
        timeout: float | None = None,
        cancel_on_abandon: bool = False,
    ) -> ApprovalResolution | None:
        """Wait for an approval to settle.

        Returns the resolution, or None if ``timeout`` elapsed first (the
        approval itself is untouched by that). With ``cancel_on_abandon``
        a waiter that is cancelled takes the approval down with it, denied.

        Raises:
            ApprovalNotFoundError: the id is neither live nor remembered.
        """
        previous = self._history.get(approval_id)
        if previous is not None:
            return previous

        live = self._live.get(approval_id)
        if live is None:
            raise ApprovalNotFoundError(approval_id)

        try:
            return await asyncio.wait_for(asyncio.shield(live.future), timeout)
        except TimeoutError:
            return None
        except asyncio.CancelledError:
            if cancel_on_abandon:
                self.cancel(approval_id, reason="caller abandoned the request")
            raise

    def get_pending(self, approval_id: str) -> PendingApproval | None:
        live = self._live.get(approval_id)
        return live.pending if live else None

    def get_resolution(self, approval_id: str) -> ApprovalResolution | None:
        return self._history.get(approval_id)

    @property
    def pending(self) -> list[PendingApproval]:
        return [live.pending for live in self._live.values()]

    @property
    def max_pending(self) -> int:
        return self._max_pending

    def __contains__(self, approval_id: object) -> bool:
        return approval_id in self._live

    def __len__(self) -> int:
        return len(self._live)
