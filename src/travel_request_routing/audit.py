"""Append-only ledger of verdict submissions."""

from __future__ import annotations

from .models import ApprovalEntry
from .store import DurableStore


class AuditLog:
    """Read access to approval entries kept by the durable store.

    Entries are only ever written by ``DurableStore.commit_transition``
    together with the request transition they record. A request's history is
    its hash chain, so it follows commit order rather than entry timestamps.
    """

    def __init__(self, store: DurableStore):
        self.store = store

    def history(self, request_id: str) -> list[ApprovalEntry]:
        """Return the routing history of a request, oldest first."""

        return self.store.entry_chain(request_id)

    def recent(self, limit: int = 50) -> list[ApprovalEntry]:
        """Return the most recent entries across all requests, newest first."""

        return self.store.list_approvals(newest_first=True, limit=limit)

    def count(self, request_id: str) -> int:
        return len(self.history(request_id))

    def last_hash(self, request_id: str) -> str | None:
        """Return the chain hash a new entry for the request must link to."""

        return self.store.last_entry_hash(request_id)

    def verify_chain(self, request_id: str) -> bool:
        """Return True when every entry links to its predecessor unmodified."""

        previous_hash: str | None = None
        for entry in self.history(request_id):
            if entry.previous_hash != previous_hash:
                return False
            if entry.entry_hash != entry.content_hash():
                return False
            previous_hash = entry.entry_hash
        return True
