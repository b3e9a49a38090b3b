"""
Clawsec Audit Sink

Append-only record of enforcement outcomes. Every entry is linked to the
previous one via SHA-256 hash, so a modified or dropped entry breaks the
chain and ``verify_integrity`` reports where.

The sink is injected into handlers and the approval coordinator rather
than held as process-wide state; ``AuditSink`` is the narrow interface a
durable store has to implement.
"""

from __future__ import annotations

import hashlib
import json
import threading
from typing import Protocol, runtime_checkable

from clawsec.core.models import AuditEntry, AuditQueryResult

DEFAULT_QUERY_LIMIT = 10


@runtime_checkable
class AuditSink(Protocol):
    """Append/query interface for audit storage."""

    def append(self, entry: AuditEntry) -> AuditEntry: ...

    def query(
        self,
        category: str | None = None,
        limit: int | None = DEFAULT_QUERY_LIMIT,
    ) -> AuditQueryResult: ...

    def __len__(self) -> int: ...


def _entry_hash(entry: AuditEntry, previous_hash: str, sequence: int) -> str:
    content = json.dumps(
        {
            "id": entry.id,
            "timestamp": entry.timestamp.isoformat(),
            "tool_name": entry.tool_name,
            "category": entry.category,
            "severity": entry.severity.value,
            "action": entry.action,
            "reason": entry.reason,
            "metadata": entry.metadata,
            "previous_hash": previous_hash,
            "sequence": sequence,
        },
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(content.encode()).hexdigest()


class InMemoryAuditSink:
    """Append-only, tamper-evident audit log kept in memory.

    Appends are serialized with a lock so entries may be written from
    worker threads as well as the event loop.
    """

    GENESIS_HASH = "0" * 64

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._current_hash: str = self.GENESIS_HASH
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Append an entry, stamping its sequence number and chain hash.

        Returns the stored copy; the argument itself is left untouched.
        """
        with self._lock:
            sequence = len(self._entries)
            entry_hash = _entry_hash(entry, self._current_hash, sequence)
            stored = entry.model_copy(
                update={
                    "sequence": sequence,
                    "hash": entry_hash,
                    "previous_hash": self._current_hash,
                }
            )
            self._entries.append(stored)
            self._current_hash = entry_hash
        return stored

    def query(
        self,
        category: str | None = None,
        limit: int | None = DEFAULT_QUERY_LIMIT,
    ) -> AuditQueryResult:
        """Filter by category, newest first, then apply the limit.

        ``total_entries`` is the size of the whole log, not of the filtered set.
        """
        with self._lock:
            entries = list(self._entries)
        total = len(entries)

        if category:
            entries = [e for e in entries if e.category == category]

        entries.sort(key=lambda e: (e.timestamp, e.sequence), reverse=True)

        if limit is not None:
            entries = entries[: max(0, limit)]

        return AuditQueryResult(entries=entries, total_entries=total)

    def entries_for_request(self, request_id: str) -> list[AuditEntry]:
        """All entries written for one tool call, in insertion order."""
        with self._lock:
            return [e for e in self._entries if e.metadata.get("request_id") == request_id]

    def entries_for_approval(self, approval_id: str) -> list[AuditEntry]:
        """Initial confirm entry followed by its terminal entry, if any."""
        with self._lock:
            return [e for e in self._entries if e.metadata.get("approval_id") == approval_id]

    def get(self, entry_id: str) -> AuditEntry | None:
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry
        return None

    def verify_integrity(self) -> tuple[bool, str]:
        """Verify the entire chain is intact.

        Returns (is_valid, message).
        """
        with self._lock:
            entries = list(self._entries)

        if not entries:
            return True, "Empty log, no entries to verify"

        expected_prev = self.GENESIS_HASH
        for i, entry in enumerate(entries):
            if entry.previous_hash != expected_prev:
                return False, (
                    f"Chain broken at entry {i}: "
                    f"expected previous_hash={expected_prev[:16]}..., "
                    f"got {entry.previous_hash[:16]}..."
                )
            recomputed = _entry_hash(entry, entry.previous_hash, entry.sequence)
            if recomputed != entry.hash:
                return False, (
                    f"Tampered entry at {i}: "
                    f"stored hash={entry.hash[:16]}..., "
                    f"recomputed={recomputed[:16]}..."
                )
            expected_prev = entry.hash

        return True, f"All {len(entries)} entries verified, chain intact"

    @property
    def head_hash(self) -> str:
        return self._current_hash

    def __len__(self) -> int:
        return len(self._entries)
