"""Clawsec quickstart — route one destructive and one purchase tool call."""

import asyncio

from clawsec import (
    ApprovalCoordinator,
    Classification,
    ClawsecConfig,
    DecisionRouter,
    InMemoryAuditSink,
    Severity,
    ToolCallContext,
)


async def main() -> None:
    audit = InMemoryAuditSink()
    coordinator = ApprovalCoordinator(audit)
    router = DecisionRouter(audit, coordinator)
    config = ClawsecConfig()

    blocked = await router.route(
        Classification(
            primary_category="destructive",
            severity=Severity.CRITICAL,
            recommended_action="block",
            reason="rm -rf",
        ),
        ToolCallContext(tool_name="bash", arguments={"command": "rm -rf /"}),
        config,
    )
    print(f"bash allowed: {blocked.allowed}\n{blocked.message}\n")

    held = await router.route(
        Classification(
            primary_category="purchase",
            severity=Severity.HIGH,
            recommended_action="confirm",
            reason="Checkout on stripe.com",
        ),
        ToolCallContext(tool_name="browser", arguments={"url": "https://checkout.stripe.com"}),
        config,
    )
    approval_id = held.pending_approval.id
    print(f"browser allowed: {held.allowed} (pending {approval_id})\n{held.message}\n")

    coordinator.resolve(approval_id, "approved", "native", decided_by="quickstart")
    resolution = await coordinator.wait(approval_id)
    print(f"Resolution: {resolution.status.value} via {resolution.via.value}")
    print(f"Audit entries: {len(audit)}")


if __name__ == "__main__":
    asyncio.run(main())
