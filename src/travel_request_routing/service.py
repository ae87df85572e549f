"""Routing service tying verdict processing to the durable store."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from .aggregate import RequestFields, apply_transition, create_request
from .audit import AuditLog
from .exceptions import AuthorizationError, ConflictError, RoutingError, StorageError
from .models import (
    ActingContext,
    Actor,
    ApprovalEntry,
    Attachment,
    AttachmentUpload,
    TravelRequest,
    Verdict,
)
from .offices import OfficePipeline, Role, default_pipeline
from .retry import ReadRetryPolicy
from .settings import RoutingSettings
from .store import (
    ChangeFeed,
    ChangeKind,
    ChangeNotification,
    DurableStore,
    InMemoryChangeFeed,
    InMemoryObjectStore,
    ObjectStore,
)
from .verdicts import apply_verdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentFailure:
    """A file that could not be stored with its request."""

    name: str
    reason: str
    object_key: str | None = None


@dataclass
class SubmissionResult:
    """Outcome of submitting a request with its attachments."""

    request: TravelRequest
    attachments: list[Attachment] = field(default_factory=list)
    failures: list[AttachmentFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True when every attachment was stored."""

        return not self.failures


def object_key(request_id: str, file_name: str) -> str:
    """Return a collision-resistant storage key under the request's folder."""

    suffix = PurePosixPath(file_name).suffix.lower()
    return f"{request_id}/{secrets.token_hex(8)}{suffix}"


class RoutingService:
    """Create travel requests and route them through the office pipeline."""

    def __init__(
        self,
        store: DurableStore,
        *,
        object_store: ObjectStore | None = None,
        feed: ChangeFeed | None = None,
        pipeline: OfficePipeline | None = None,
        settings: RoutingSettings | None = None,
    ) -> None:
        self.store = store
        self.object_store = object_store or InMemoryObjectStore()
        self.feed = feed or InMemoryChangeFeed()
        self.pipeline = pipeline or default_pipeline()
        self.settings = settings or RoutingSettings()
        self.audit_log = AuditLog(store)
        self.retry = ReadRetryPolicy(
            attempts=self.settings.read_retry_attempts,
            delay_seconds=self.settings.read_retry_delay_seconds,
        )

    def register_actor(self, actor: Actor) -> Actor:
        return self.store.add_actor(actor)

    def get_request(self, request_id: str) -> TravelRequest:
        return self.retry.call(
            lambda: self.store.get_request(request_id), description="get_request"
        )

    def history(self, request_id: str) -> list[ApprovalEntry]:
        return self.retry.call(
            lambda: self.audit_log.history(request_id), description="history"
        )

    def attachments(self, request_id: str) -> list[Attachment]:
        return self.retry.call(
            lambda: self.store.list_attachments(request_id=request_id),
            description="list_attachments",
        )

    def attachment_url(self, attachment: Attachment) -> str:
        return self.object_store.public_url(attachment.file_path)

    def submit_request(
        self,
        owner: Actor,
        fields: Mapping[str, object] | RequestFields,
        attachments: Iterable[AttachmentUpload] = (),
    ) -> SubmissionResult:
        """Create a request, then store its attachments best effort.

        A failed attachment is reported in the result and never removes the
        request that was already created.
        """

        request = create_request(owner, fields, pipeline=self.pipeline)
        self.store.create_request(request)
        logger.info(
            "Created travel request %s for %s at %s",
            request.request_id,
            owner.actor_id,
            request.current_office,
        )
        self._publish(request, ChangeKind.CREATED)

        result = SubmissionResult(request=request)
        for upload in attachments:
            key = object_key(request.request_id, upload.name)
            try:
                path = self._upload(key, upload)
            except StorageError as exc:
                self._record_failure(result, upload, exc)
                continue
            try:
                stored = self.store.add_attachment(
                    Attachment(
                        request_id=request.request_id,
                        name=upload.name,
                        file_path=path,
                        media_type=upload.media_type,
                    )
                )
            except RoutingError as exc:
                self._record_failure(result, upload, exc, uploaded_key=path)
                continue
            self._publish(request, ChangeKind.ATTACHMENT_ADDED)
            result.attachments.append(stored)
        return result

    def _upload(self, key: str, upload: AttachmentUpload) -> str:
        """Upload one file, reporting any object store failure as StorageError."""

        try:
            return self.object_store.upload(key, upload.content, upload.media_type)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError("upload", f"Upload of '{upload.name}' failed: {exc}") from exc

    def _record_failure(
        self,
        result: SubmissionResult,
        upload: AttachmentUpload,
        error: RoutingError,
        *,
        uploaded_key: str | None = None,
    ) -> None:
        logger.warning(
            "Attachment %s failed for request %s: %s",
            upload.name,
            result.request.request_id,
            error,
        )
        result.failures.append(
            AttachmentFailure(name=upload.name, reason=str(error), object_key=uploaded_key)
        )

    def submit_verdict(
        self,
        actor: Actor,
        request_id: str,
        verdict: Verdict | str,
        *,
        acting_as: Role | str | None = None,
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> TravelRequest:
        """Apply a verdict and commit it with its approval entry atomically.

        ``expected_version`` is the request version the actor was looking at;
        when given, a request that has moved on fails with ConflictError.
        """

        context = ActingContext.for_actor(actor, acting_as)
        request = self.get_request(request_id)
        if expected_version is not None and request.version != expected_version:
            logger.warning(
                "Verdict on request %s used stale version %d (current %d)",
                request_id,
                expected_version,
                request.version,
            )
            raise ConflictError(request_id, expected_version, request.version)

        previous_hash = self.retry.call(
            lambda: self.audit_log.last_hash(request_id), description="last_hash"
        )
        try:
            outcome = apply_verdict(
                request,
                context,
                verdict,
                comments,
                approver_id=actor.actor_id,
                pipeline=self.pipeline,
                previous_hash=previous_hash,
            )
        except AuthorizationError as exc:
            logger.warning(
                "Denied verdict by %s (%s) on request %s: %s",
                actor.actor_id,
                context.effective_role,
                request_id,
                exc.reason,
            )
            raise

        updated = apply_transition(
            request, outcome.new_status, outcome.new_office, pipeline=self.pipeline
        )
        try:
            committed = self.store.commit_transition(
                request_id,
                outcome.expected_version,
                updated,
                outcome.entry,
                timeout=self.settings.store_timeout_seconds,
            )
        except ConflictError:
            logger.warning(
                "Verdict by %s on request %s lost a concurrent write",
                actor.actor_id,
                request_id,
            )
            raise

        logger.info(
            "Request %s %s at %s by %s%s; now %s at %s",
            request_id,
            outcome.entry.status,
            outcome.entry.office,
            actor.actor_id,
            " (admin override)" if context.is_admin else "",
            committed.status,
            committed.current_office,
        )
        self._publish(committed, ChangeKind.TRANSITIONED)
        return committed

    def _publish(self, request: TravelRequest, kind: ChangeKind) -> None:
        self.feed.publish(
            ChangeNotification(
                request_id=request.request_id, kind=kind, version=request.version
            )
        )
