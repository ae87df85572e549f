"""Read-side views of travel requests for a signed-in actor."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from .exceptions import AuthorizationError
from .models import (
    ActingContext,
    Actor,
    ApprovalEntry,
    Attachment,
    TravelRequest,
    Verdict,
)
from .offices import Office, Role, office_for
from .settings import RoutingSettings
from .store import ChangeFeed, ChangeNotification, DurableStore, Subscription

logger = logging.getLogger(__name__)

UNKNOWN_APPROVER = "Unknown"
DELETED_REQUEST = "Deleted Request"


@dataclass(frozen=True)
class StatusCounters:
    """Counts of an actor's own requests by status bucket."""

    total: int
    pending: int
    approved: int
    returned: int


class AuditTrackingRow(BaseModel):
    """One approval entry joined with its approver and request."""

    timestamp: datetime = Field(..., description="When the verdict was recorded")
    approver_name: str = Field(..., description="Approver display name")
    approver_role: Role | None = Field(
        default=None, description="Approver's real role, when known"
    )
    office: Office = Field(..., description="Office acted on behalf of")
    status: Verdict = Field(..., description="Verdict recorded")
    request_title: str = Field(..., description="Title of the request")
    comments: str = Field(..., description="Recorded comments")


class FileRow(BaseModel):
    """An attachment on one of the actor's requests."""

    attachment: Attachment
    request_title: str


class DashboardSnapshot(BaseModel):
    """Everything the dashboard shows for one actor and acting context."""

    my_requests: list[TravelRequest] = Field(default_factory=list)
    action_required: list[TravelRequest] = Field(default_factory=list)
    counters: StatusCounters
    audit_tracking: list[AuditTrackingRow] | None = Field(
        default=None, description="None when the actor may not see audit tracking"
    )
    my_files: list[FileRow] = Field(default_factory=list)


def my_requests(requests: Iterable[TravelRequest], actor: Actor) -> list[TravelRequest]:
    """Return requests owned by the actor, newest first."""

    owned = [request for request in requests if request.owner_id == actor.actor_id]
    return sorted(owned, key=lambda request: request.created_at, reverse=True)


def action_required(
    requests: Iterable[TravelRequest], context: ActingContext
) -> list[TravelRequest]:
    """Return open requests waiting at the office of the effective role."""

    office = office_for(context.effective_role)
    if office is None:
        return []
    waiting = [
        request
        for request in requests
        if not request.is_terminal and request.current_office == office
    ]
    return sorted(waiting, key=lambda request: request.created_at, reverse=True)


def status_counters(requests: Iterable[TravelRequest]) -> StatusCounters:
    statuses = [request.status for request in requests]
    return StatusCounters(
        total=len(statuses),
        pending=sum(1 for status in statuses if "Pending" in status),
        approved=sum(1 for status in statuses if status == Verdict.APPROVED),
        returned=sum(1 for status in statuses if status == Verdict.RETURNED),
    )


def can_view_audit_tracking(context: ActingContext) -> bool:
    """Audit tracking is open to every real role except Faculty."""

    return context.real_role != Role.FACULTY


def audit_tracking(
    entries: Iterable[ApprovalEntry],
    actors: Mapping[str, Actor],
    requests: Mapping[str, TravelRequest],
    context: ActingContext,
    *,
    limit: int = 50,
) -> list[AuditTrackingRow]:
    """Return the newest approval entries joined with approver and request."""

    if not can_view_audit_tracking(context):
        raise AuthorizationError(
            "Faculty accounts cannot view audit tracking", role=context.real_role.value
        )

    newest = sorted(entries, key=lambda entry: entry.created_at, reverse=True)[:limit]
    rows: list[AuditTrackingRow] = []
    for entry in newest:
        approver = actors.get(entry.approver_id)
        request = requests.get(entry.request_id)
        rows.append(
            AuditTrackingRow(
                timestamp=entry.created_at,
                approver_name=approver.full_name if approver else UNKNOWN_APPROVER,
                approver_role=approver.role if approver else None,
                office=entry.office,
                status=entry.status,
                request_title=request.title if request else DELETED_REQUEST,
                comments=entry.comments,
            )
        )
    return rows


def my_files(
    attachments: Iterable[Attachment],
    requests: Mapping[str, TravelRequest],
    actor: Actor,
) -> list[FileRow]:
    """Return attachments on the actor's own requests, newest upload first."""

    rows = [
        FileRow(attachment=attachment, request_title=requests[attachment.request_id].title)
        for attachment in attachments
        if attachment.request_id in requests
        and requests[attachment.request_id].owner_id == actor.actor_id
    ]
    return sorted(rows, key=lambda row: row.attachment.uploaded_at, reverse=True)


class DashboardProjector:
    """Build dashboard snapshots and drop cached ones on change notifications."""

    def __init__(self, store: DurableStore, *, settings: RoutingSettings | None = None):
        self.store = store
        self.settings = settings or RoutingSettings()
        self._cache: dict[tuple[str, Role | None], DashboardSnapshot] = {}
        self._lock = threading.Lock()
        self._generation = 0
        self._subscription: Subscription | None = None

    def attach(self, feed: ChangeFeed) -> Subscription:
        """Refresh on every change published by ``feed``."""

        self.detach()
        self._subscription = feed.subscribe(self.on_change)
        return self._subscription

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def on_change(self, notification: ChangeNotification) -> None:
        logger.debug(
            "Dashboard cache invalidated by %s on request %s",
            notification.kind,
            notification.request_id,
        )
        with self._lock:
            self._cache.clear()
            self._generation += 1

    def snapshot(self, actor: Actor, acting_as: Role | str | None = None) -> DashboardSnapshot:
        """Return the cached snapshot, rebuilding it after any change."""

        context = ActingContext.for_actor(actor, acting_as)
        key = (actor.actor_id, context.acting_as)
        with self._lock:
            cached = self._cache.get(key)
            generation = self._generation
        if cached is not None:
            return cached

        built = self.build(actor, context)
        with self._lock:
            # A change that arrived mid-build makes this snapshot stale already.
            if generation == self._generation:
                self._cache[key] = built
        return built

    def build(self, actor: Actor, context: ActingContext) -> DashboardSnapshot:
        requests = self.store.query_requests()
        by_id = {request.request_id: request for request in requests}
        own = my_requests(requests, actor)

        tracking: list[AuditTrackingRow] | None = None
        if can_view_audit_tracking(context):
            limit = self.settings.audit_tracking_limit
            tracking = audit_tracking(
                self.store.list_approvals(newest_first=True, limit=limit),
                {known.actor_id: known for known in self.store.list_actors()},
                by_id,
                context,
                limit=limit,
            )

        return DashboardSnapshot(
            my_requests=own,
            action_required=action_required(requests, context),
            counters=status_counters(own),
            audit_tracking=tracking,
            my_files=my_files(self.store.list_attachments(), by_id, actor),
        )
