"""Collaborator contracts for persistence, file storage and change notification.

The routing core only depends on the protocols defined here. The in-memory
implementations back the tests, the CLI and embedding applications that do
not need durability.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol

from .exceptions import ConflictError, RequestNotFoundError, StorageError
from .models import Actor, ApprovalEntry, Attachment, TravelRequest

logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    """Kinds of request mutations announced on the change feed."""

    CREATED = "created"
    TRANSITIONED = "transitioned"
    ATTACHMENT_ADDED = "attachment_added"


@dataclass(frozen=True)
class ChangeNotification:
    """Signal that a request changed; readers should refresh."""

    request_id: str
    kind: ChangeKind
    version: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


Subscriber = Callable[[ChangeNotification], None]


class ChangeFeed(Protocol):
    def subscribe(self, callback: Subscriber) -> Subscription: ...

    def unsubscribe(self, callback: Subscriber) -> None: ...

    def publish(self, notification: ChangeNotification) -> None: ...


@dataclass
class Subscription:
    """Handle returned by ``subscribe``; call ``unsubscribe`` when the session ends."""

    feed: ChangeFeed
    callback: Subscriber

    def unsubscribe(self) -> None:
        self.feed.unsubscribe(self.callback)


class InMemoryChangeFeed:
    """Synchronous publish/subscribe feed."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Subscription:
        with self._lock:
            self._subscribers.append(callback)
        return Subscription(feed=self, callback=callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, notification: ChangeNotification) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(notification)
            except Exception:
                # The write is already committed; a broken reader must not undo it.
                logger.exception(
                    "Change feed subscriber failed for request %s",
                    notification.request_id,
                )


class ObjectStore(Protocol):
    def upload(self, key: str, content: bytes, media_type: str | None = None) -> str: ...

    def download(self, key: str) -> bytes: ...

    def public_url(self, key: str) -> str: ...


class InMemoryObjectStore:
    """Object store keeping uploaded files in a dictionary."""

    def __init__(self, base_url: str = "memory://travel_documents") -> None:
        self.base_url = base_url.rstrip("/")
        self._objects: dict[str, tuple[bytes, str | None]] = {}
        self._lock = threading.Lock()

    def upload(self, key: str, content: bytes, media_type: str | None = None) -> str:
        with self._lock:
            if key in self._objects:
                raise StorageError("upload", f"Object '{key}' already exists")
            self._objects[key] = (bytes(content), media_type)
        return key

    def download(self, key: str) -> bytes:
        with self._lock:
            if key not in self._objects:
                raise KeyError(f"No object stored at '{key}'")
            return self._objects[key][0]

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)


class DurableStore(Protocol):
    def add_actor(self, actor: Actor) -> Actor: ...

    def get_actor(self, actor_id: str) -> Actor | None: ...

    def list_actors(self) -> list[Actor]: ...

    def create_request(self, request: TravelRequest) -> TravelRequest: ...

    def get_request(self, request_id: str) -> TravelRequest: ...

    def query_requests(
        self,
        *,
        where: Callable[[TravelRequest], bool] | None = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[TravelRequest]: ...

    def commit_transition(
        self,
        request_id: str,
        expected_version: int,
        updated: TravelRequest,
        entry: ApprovalEntry,
        *,
        timeout: float | None = None,
    ) -> TravelRequest: ...

    def last_entry_hash(self, request_id: str) -> str | None: ...

    def entry_chain(self, request_id: str) -> list[ApprovalEntry]: ...

    def list_approvals(
        self,
        *,
        request_id: str | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[ApprovalEntry]: ...

    def add_attachment(self, attachment: Attachment) -> Attachment: ...

    def list_attachments(self, *, request_id: str | None = None) -> list[Attachment]: ...


class InMemoryStore:
    """Thread-safe store for requests, approval entries, attachments and actors.

    ``commit_transition`` is the only way a request changes after creation. It
    compares the stored version with the caller's expected version and writes
    the updated request together with its approval entry, or nothing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._actors: dict[str, Actor] = {}
        self._requests: dict[str, TravelRequest] = {}
        self._approvals: list[ApprovalEntry] = []
        self._attachments: list[Attachment] = []

    @contextmanager
    def _locked(self, operation: str, timeout: float | None = None) -> Iterator[None]:
        acquired = self._lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise StorageError(operation, f"Timed out waiting for the store during '{operation}'")
        try:
            yield
        finally:
            self._lock.release()

    def add_actor(self, actor: Actor) -> Actor:
        with self._locked("add_actor"):
            self._actors[actor.actor_id] = actor
        return actor

    def get_actor(self, actor_id: str) -> Actor | None:
        with self._locked("get_actor"):
            return self._actors.get(actor_id)

    def list_actors(self) -> list[Actor]:
        with self._locked("list_actors"):
            return list(self._actors.values())

    def create_request(self, request: TravelRequest) -> TravelRequest:
        with self._locked("create_request"):
            if request.request_id in self._requests:
                raise ValueError(f"Request '{request.request_id}' already exists")
            self._requests[request.request_id] = request
        return request

    def get_request(self, request_id: str) -> TravelRequest:
        with self._locked("get_request"):
            request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def query_requests(
        self,
        *,
        where: Callable[[TravelRequest], bool] | None = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
    ) -> list[TravelRequest]:
        with self._locked("query_requests"):
            requests = list(self._requests.values())
        if where is not None:
            requests = [request for request in requests if where(request)]
        requests.sort(key=lambda request: getattr(request, order_by), reverse=descending)
        if limit is not None:
            requests = requests[:limit]
        return requests

    def commit_transition(
        self,
        request_id: str,
        expected_version: int,
        updated: TravelRequest,
        entry: ApprovalEntry,
        *,
        timeout: float | None = None,
    ) -> TravelRequest:
        if updated.request_id != request_id or entry.request_id != request_id:
            raise ValueError("Transition and approval entry must target the same request")
        if updated.version != expected_version + 1:
            raise ValueError("Updated request must advance the version by exactly one")

        with self._locked("commit_transition", timeout):
            current = self._requests.get(request_id)
            if current is None:
                raise RequestNotFoundError(request_id)
            if current.version != expected_version:
                raise ConflictError(request_id, expected_version, current.version)
            last_hash = self._last_entry_hash(request_id)
            if entry.previous_hash != last_hash:
                raise ConflictError(
                    request_id,
                    expected_version,
                    current.version,
                    detail="approval entry does not link to the latest audit entry",
                )
            self._requests[request_id] = updated
            self._approvals.append(entry)
        return updated

    def _last_entry_hash(self, request_id: str) -> str | None:
        for entry in reversed(self._approvals):
            if entry.request_id == request_id:
                return entry.entry_hash
        return None

    def last_entry_hash(self, request_id: str) -> str | None:
        """Return the hash the next entry for the request must link to."""

        with self._locked("last_entry_hash"):
            return self._last_entry_hash(request_id)

    def entry_chain(self, request_id: str) -> list[ApprovalEntry]:
        """Return the request's approval entries in commit order."""

        with self._locked("entry_chain"):
            return [entry for entry in self._approvals if entry.request_id == request_id]

    def list_approvals(
        self,
        *,
        request_id: str | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[ApprovalEntry]:
        with self._locked("list_approvals"):
            entries = [
                entry
                for entry in self._approvals
                if request_id is None or entry.request_id == request_id
            ]
        # Stable sort keeps commit order for entries sharing a timestamp.
        entries.sort(key=lambda entry: entry.created_at)
        if newest_first:
            entries.reverse()
        if limit is not None:
            entries = entries[:limit]
        return entries

    def add_attachment(self, attachment: Attachment) -> Attachment:
        with self._locked("add_attachment"):
            if attachment.request_id not in self._requests:
                raise RequestNotFoundError(attachment.request_id)
            self._attachments.append(attachment)
        return attachment

    def list_attachments(self, *, request_id: str | None = None) -> list[Attachment]:
        with self._locked("list_attachments"):
            return [
                attachment
                for attachment in self._attachments
                if request_id is None or attachment.request_id == request_id
            ]
