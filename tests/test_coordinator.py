"""
Tests for the approval coordinator.

Verifies:
- Register / resolve lifecycle and terminal audit entries
- Timeout fails closed and clears the live table
- First signal wins; late and duplicate signals are no-ops
- Methods not enabled for an approval cannot resolve it
- Capacity bound, cancellation, shutdown, cross-thread resolution
- Waiters share the deadline set at registration
"""

import asyncio
import threading

import pytest

from clawsec.approval.coordinator import (
    OUTCOME_APPROVED,
    OUTCOME_CANCELLED,
    OUTCOME_DENIED,
    OUTCOME_TIMED_OUT,
    OUTCOME_TIMED_OUT_APPROVED,
    ApprovalCoordinator,
)
from clawsec.audit.sink import InMemoryAuditSink
from clawsec.core.models import (
    ApprovalMethod,
    ApprovalStatus,
    AuditEntry,
    Decision,
    Detection,
    PendingApproval,
    Severity,
)
from clawsec.exceptions import ApprovalNotFoundError, CapacityExceededError, ClawsecError

DETECTION = Detection(category="purchase", severity=Severity.HIGH, reason="checkout on stripe.com")

# ─── Helpers ────────────────────────────────────────────────


def make_pending(approval_id="approval-1", timeout=60, methods=None) -> PendingApproval:
    return PendingApproval(
        id=approval_id,
        timeout_seconds=timeout,
        methods=methods or (ApprovalMethod.NATIVE, ApprovalMethod.WEBHOOK),
        request_id=f"req-{approval_id}",
        tool_name="browser",
    )


def register(coordinator, audit, pending) -> tuple[asyncio.Future, AuditEntry]:
    """Register ``pending`` the way the confirm handler does."""
    initial = AuditEntry(
        tool_name=pending.tool_name,
        category=DETECTION.category,
        severity=DETECTION.severity,
        action="confirm",
        metadata={"request_id": pending.request_id, "approval_id": pending.id, "outcome": "pending"},
    )
    future = coordinator.register(pending, detection=DETECTION, initial_entry_id=initial.id)
    audit.append(initial)
    return future, initial


def terminal_entries(audit, approval_id):
    return [e for e in audit.entries_for_approval(approval_id) if e.metadata.get("terminal")]


# ─── Lifecycle ──────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_approve(self, coordinator, audit):
        future, initial = register(coordinator, audit, make_pending())
        assert "approval-1" in coordinator
        assert len(coordinator) == 1

        result = coordinator.resolve("approval-1", Decision.APPROVED, ApprovalMethod.NATIVE, decided_by="alice")

        assert result.resolved
        assert result.status == ApprovalStatus.APPROVED
        assert "approval-1" not in coordinator
        resolution = await future
        assert resolution.allowed
        assert resolution.via == ApprovalMethod.NATIVE
        assert resolution.decided_by == "alice"

        lifecycle = audit.entries_for_approval("approval-1")
        assert [e.metadata.get("outcome") for e in lifecycle] == ["pending", OUTCOME_APPROVED]
        assert lifecycle[1].metadata["initial_entry_id"] == initial.id
        assert lifecycle[1].metadata["via"] == "native"
        assert lifecycle[0].sequence < lifecycle[1].sequence

    @pytest.mark.asyncio
    async def test_deny(self, coordinator, audit):
        future, _ = register(coordinator, audit, make_pending())
        result = coordinator.resolve("approval-1", "denied", "webhook", reason="not in budget")
        assert result.status == ApprovalStatus.DENIED
        resolution = await future
        assert not resolution.allowed
        assert resolution.reason == "not in budget"
        assert terminal_entries(audit, "approval-1")[0].metadata["outcome"] == OUTCOME_DENIED

    @pytest.mark.asyncio
    async def test_register_requires_unique_id(self, coordinator, audit):
        register(coordinator, audit, make_pending())
        with pytest.raises(ClawsecError):
            coordinator.register(make_pending(), detection=DETECTION, initial_entry_id="x")
        coordinator.close()

    @pytest.mark.asyncio
    async def test_queries(self, coordinator, audit):
        register(coordinator, audit, make_pending("approval-a"))
        register(coordinator, audit, make_pending("approval-b"))
        assert {p.id for p in coordinator.pending} == {"approval-a", "approval-b"}
        assert coordinator.get_pending("approval-a").tool_name == "browser"
        assert coordinator.get_resolution("approval-a") is None

        coordinator.resolve("approval-a", Decision.DENIED, ApprovalMethod.NATIVE)
        assert coordinator.get_pending("approval-a") is None
        assert coordinator.get_resolution("approval-a").status == ApprovalStatus.DENIED
        coordinator.close()


# ─── Timeout ────────────────────────────────────────────────


class TestTimeout:
    @pytest.mark.asyncio
    async def test_one_second_timeout_denies(self, coordinator, audit):
        future, initial = register(coordinator, audit, make_pending(timeout=1))

        resolution = await asyncio.wait_for(future, timeout=3)

        assert resolution.status == ApprovalStatus.TIMED_OUT
        assert not resolution.allowed
        assert "approval-1" not in coordinator
        terminal = terminal_entries(audit, "approval-1")
        assert len(terminal) == 1
        assert terminal[0].metadata["outcome"] == OUTCOME_TIMED_OUT
        assert terminal[0].metadata["initial_entry_id"] == initial.id

    @pytest.mark.asyncio
    async def test_signal_after_timeout_is_noop(self, coordinator, audit):
        future, _ = register(coordinator, audit, make_pending(timeout=1))
        await asyncio.wait_for(future, timeout=3)

        result = coordinator.resolve("approval-1", Decision.APPROVED, ApprovalMethod.NATIVE)

        assert not result.resolved
        assert result.status == ApprovalStatus.TIMED_OUT
        assert len(terminal_entries(audit, "approval-1")) == 1

    @pytest.mark.asyncio
    async def test_timeout_policy_is_configurable(self, audit):
        coordinator = ApprovalCoordinator(audit, timeout_decision=Decision.APPROVED)
        future, _ = register(coordinator, audit, make_pending(timeout=1))
        resolution = await asyncio.wait_for(future, timeout=3)
        assert resolution.allowed
        assert terminal_entries(audit, "approval-1")[0].metadata["outcome"] == OUTCOME_TIMED_OUT_APPROVED

    @pytest.mark.asyncio
    async def test_resolving_cancels_timer(self, coordinator, audit):
        register(coordinator, audit, make_pending(timeout=1))
        coordinator.resolve("approval-1", Decision.APPROVED, ApprovalMethod.NATIVE)
        await asyncio.sleep(1.2)
        assert len(terminal_entries(audit, "approval-1")) == 1
        assert coordinator.get_resolution("approval-1").status == ApprovalStatus.APPROVED


# ─── Races & Idempotence ────────────────────────────────────


@pytest.mark.adversarial
class TestRaces:
    @pytest.mark.asyncio
    async def test_approve_native_deny_webhook_race(self, coordinator, audit):
        future, _ = register(coordinator, audit, make_pending())

        async def signal(decision, via):
            await asyncio.sleep(0)
            return coordinator.resolve("approval-1", decision, via)

        results = await asyncio.gather(
            signal(Decision.APPROVED, ApprovalMethod.NATIVE),
            signal(Decision.DENIED, ApprovalMethod.WEBHOOK),
        )

        assert sum(r.resolved for r in results) == 1
        assert len(terminal_entries(audit, "approval-1")) == 1
        assert "approval-1" not in coordinator
        winner = next(r for r in results if r.resolved)
        assert (await future).status == winner.status

    @pytest.mark.asyncio
    async def test_threads_racing(self, coordinator, audit):
        register(coordinator, audit, make_pending())
        barrier = threading.Barrier(8)
        futures = []

        def worker(i):
            barrier.wait()
            decision = Decision.APPROVED if i % 2 else Decision.DENIED
            futures.append(coordinator.resolve_threadsafe("approval-1", decision, ApprovalMethod.NATIVE))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        results = await asyncio.gather(*(asyncio.wrap_future(f) for f in futures))
        assert sum(r.resolved for r in results) == 1
        assert len(terminal_entries(audit, "approval-1")) == 1

    @pytest.mark.asyncio
    async def test_second_resolve_never_changes_outcome(self, coordinator, audit):
        register(coordinator, audit, make_pending())
        first = coordinator.resolve("approval-1", Decision.DENIED, ApprovalMethod.NATIVE)
        second = coordinator.resolve("approval-1", Decision.APPROVED, ApprovalMethod.NATIVE)

        assert first.resolved
        assert not second.resolved
        assert second.status == ApprovalStatus.DENIED
        assert "already denied" in second.message
        assert coordinator.get_resolution("approval-1").status == ApprovalStatus.DENIED

    @pytest.mark.asyncio
    async def test_unknown_id(self, coordinator):
        result = coordinator.resolve("approval-missing", Decision.APPROVED, ApprovalMethod.NATIVE)
        assert not result.resolved
        assert result.resolution is None
        assert result.status is None
        assert "not found" in result.message

    @pytest.mark.asyncio
    async def test_method_not_enabled_rejected(self, coordinator, audit):
        register(coordinator, audit, make_pending(methods=(ApprovalMethod.WEBHOOK,)))
        result = coordinator.resolve("approval-1", Decision.APPROVED, ApprovalMethod.NATIVE)
        assert not result.resolved
        assert result.status == ApprovalStatus.PENDING
        assert "approval-1" in coordinator
        coordinator.close()

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, audit):
        coordinator = ApprovalCoordinator(audit, history_size=2)
        for i in range(3):
            register(coordinator, audit, make_pending(f"approval-{i}"))
            coordinator.resolve(f"approval-{i}", Decision.DENIED, ApprovalMethod.NATIVE)
        assert coordinator.get_resolution("approval-0") is None
        assert coordinator.get_resolution("approval-2") is not None


# ─── Capacity, Cancel, Shutdown ─────────────────────────────


class TestBounds:
    @pytest.mark.asyncio
    async def test_capacity_exceeded(self, audit):
        coordinator = ApprovalCoordinator(audit, max_pending=2)
        register(coordinator, audit, make_pending("approval-a"))
        register(coordinator, audit, make_pending("approval-b"))
        with pytest.raises(CapacityExceededError) as exc_info:
            register(coordinator, audit, make_pending("approval-c"))
        assert exc_info.value.max_pending == 2
        assert len(coordinator) == 2

        coordinator.resolve("approval-a", Decision.DENIED, ApprovalMethod.NATIVE)
        register(coordinator, audit, make_pending("approval-c"))
        coordinator.close()

    @pytest.mark.asyncio
    async def test_per_call_capacity(self, coordinator, audit):
        coordinator.register(make_pending("approval-a"), detection=DETECTION, initial_entry_id="x", max_pending=1)
        with pytest.raises(CapacityExceededError):
            coordinator.register(make_pending("approval-b"), detection=DETECTION, initial_entry_id="y", max_pending=1)
        coordinator.close()

    @pytest.mark.asyncio
    async def test_cancel_denies(self, coordinator, audit):
        future, _ = register(coordinator, audit, make_pending())
        result = coordinator.cancel("approval-1", reason="session ended")
        assert result.resolved
        assert (await future).status == ApprovalStatus.DENIED
        assert "approval-1" not in coordinator
        assert terminal_entries(audit, "approval-1")[0].metadata["outcome"] == OUTCOME_CANCELLED

    @pytest.mark.asyncio
    async def test_close_denies_everything(self, coordinator, audit):
        futures = [register(coordinator, audit, make_pending(f"approval-{i}"))[0] for i in range(3)]
        coordinator.close()
        assert len(coordinator) == 0
        for future in futures:
            assert (await future).status == ApprovalStatus.DENIED


# ─── Waiting ────────────────────────────────────────────────


class TestWait:
    @pytest.mark.asyncio
    async def test_wait_returns_resolution(self, coordinator, audit):
        register(coordinator, audit, make_pending())
        waiter = asyncio.create_task(coordinator.wait("approval-1"))
        await asyncio.sleep(0)
        coordinator.resolve("approval-1", Decision.APPROVED, ApprovalMethod.NATIVE)
        assert (await waiter).allowed

    @pytest.mark.asyncio
    async def test_wait_timeout_leaves_approval_pending(self, coordinator, audit):
        register(coordinator, audit, make_pending())
        assert await coordinator.wait("approval-1", timeout=0.05) is None
        assert "approval-1" in coordinator
        coordinator.close()

    @pytest.mark.asyncio
    async def test_waiters_share_deadline(self, coordinator, audit):
        register(coordinator, audit, make_pending(timeout=1))
        await asyncio.sleep(0.5)
        late_waiter = asyncio.create_task(coordinator.wait("approval-1"))
        resolution = await asyncio.wait_for(late_waiter, timeout=0.9)
        assert resolution.status == ApprovalStatus.TIMED_OUT

    @pytest.mark.asyncio
    async def test_wait_after_resolution(self, coordinator, audit):
        register(coordinator, audit, make_pending())
        coordinator.resolve("approval-1", Decision.DENIED, ApprovalMethod.NATIVE)
        assert (await coordinator.wait("approval-1")).status == ApprovalStatus.DENIED

    @pytest.mark.asyncio
    async def test_wait_unknown(self, coordinator):
        with pytest.raises(ApprovalNotFoundError):
            await coordinator.wait("approval-missing")

    @pytest.mark.asyncio
    async def test_abandoned_waiter_cancels(self, coordinator, audit):
        register(coordinator, audit, make_pending())
        waiter = asyncio.create_task(coordinator.wait("approval-1", cancel_on_abandon=True))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert "approval-1" not in coordinator
        assert coordinator.get_resolution("approval-1").status == ApprovalStatus.DENIED


# ─── Audit Sink Failures ────────────────────────────────────


class FailingAuditSink(InMemoryAuditSink):
    """Sink whose writes fail, like a durable store with a full disk."""

    def append(self, entry):
        raise OSError("disk full")


class TestAuditFailure:
    @pytest.mark.asyncio
    async def test_timeout_still_wakes_waiters(self):
        coordinator = ApprovalCoordinator(FailingAuditSink())
        future = coordinator.register(
            make_pending(timeout=1), detection=DETECTION, initial_entry_id="audit-initial"
        )
        waiter = asyncio.create_task(coordinator.wait("approval-1"))

        resolution = await asyncio.wait_for(waiter, timeout=3)

        assert resolution.status == ApprovalStatus.TIMED_OUT
        assert future.done()
        assert "approval-1" not in coordinator
        assert coordinator.get_resolution("approval-1").status == ApprovalStatus.TIMED_OUT

    @pytest.mark.asyncio
    async def test_resolve_still_settles(self):
        coordinator = ApprovalCoordinator(FailingAuditSink())
        future = coordinator.register(
            make_pending(), detection=DETECTION, initial_entry_id="audit-initial"
        )

        result = coordinator.resolve("approval-1", Decision.APPROVED, ApprovalMethod.NATIVE)

        assert result.resolved
        assert result.status == ApprovalStatus.APPROVED
        assert (await future).allowed
        assert "approval-1" not in coordinator

        late = coordinator.resolve("approval-1", Decision.DENIED, ApprovalMethod.NATIVE)
        assert not late.resolved
        assert late.status == ApprovalStatus.APPROVED
