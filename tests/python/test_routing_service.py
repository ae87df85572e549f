"""End-to-end routing scenarios through the routing service."""

from __future__ import annotations

from datetime import date

import pytest

from travel_request_routing import (
    Actor,
    AttachmentUpload,
    AuthorizationError,
    ChangeKind,
    ChangeNotification,
    ConflictError,
    InMemoryChangeFeed,
    InMemoryObjectStore,
    InMemoryStore,
    Office,
    RequestNotFoundError,
    Role,
    RoutingService,
    RoutingSettings,
    StorageError,
    ValidationError,
    Verdict,
    role_for_office,
)


class FlakyStore(InMemoryStore):
    """Store whose request reads fail a fixed number of times."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def get_request(self, request_id: str):
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("get_request")
        return super().get_request(request_id)


class FailingObjectStore(InMemoryObjectStore):
    """Object store rejecting uploads whose content is b"broken"."""

    def __init__(self) -> None:
        super().__init__()
        self.attempted: list[str] = []

    def upload(self, key: str, content: bytes, media_type: str | None = None) -> str:
        self.attempted.append(key)
        if content == b"broken":
            raise StorageError("upload")
        return super().upload(key, content, media_type)


class CrashingObjectStore(InMemoryObjectStore):
    """Object store whose client raises its own error type."""

    def upload(self, key: str, content: bytes, media_type: str | None = None) -> str:
        raise RuntimeError("bucket quota exceeded")


class MetadataFailingStore(InMemoryStore):
    """Store that cannot record attachment metadata."""

    def add_attachment(self, attachment):
        raise StorageError("add_attachment")


def test_scenario_dept_head_approves_then_dean_returns(
    service: RoutingService, actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    request = service.submit_request(actors[Role.FACULTY], request_fields).request
    assert (request.current_office, request.status) == (Office.DEPARTMENT, "Pending Dept Review")

    request = service.submit_verdict(actors[Role.DEPT_HEAD], request.request_id, Verdict.APPROVED)
    assert (request.current_office, request.status) == (Office.DEAN, "Pending Dean Review")

    request = service.submit_verdict(actors[Role.DEAN], request.request_id, Verdict.RETURNED)
    assert (request.current_office, request.status) == (Office.DEAN, "Returned")

    with pytest.raises(AuthorizationError):
        service.submit_verdict(actors[Role.DEAN], request.request_id, Verdict.APPROVED)

    history = service.history(request.request_id)
    assert [(entry.office, entry.status) for entry in history] == [
        (Office.DEPARTMENT, Verdict.APPROVED),
        (Office.DEAN, Verdict.RETURNED),
    ]
    assert history[1].comments == "Returned by Dean"


def test_full_approval_records_one_entry_per_office(
    service: RoutingService, actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    request = service.submit_request(actors[Role.FACULTY], request_fields).request

    offices_at_call: list[Office] = []
    while not request.is_terminal:
        offices_at_call.append(request.current_office)
        role = role_for_office(request.current_office)
        request = service.submit_verdict(actors[role], request.request_id, "Approved")

    history = service.history(request.request_id)
    assert request.status == "Approved"
    assert request.version == len(offices_at_call) + 1
    assert len(history) == len(offices_at_call) == 7
    assert [entry.office for entry in history] == offices_at_call
    assert service.audit_log.verify_chain(request.request_id)


def test_denied_verdicts_leave_no_trace(
    service: RoutingService, actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    request = service.submit_request(actors[Role.FACULTY], request_fields).request

    for role in (Role.FACULTY, Role.DEAN, Role.CHANCELLOR, Role.SUPER_ADMIN):
        with pytest.raises(AuthorizationError):
            service.submit_verdict(actors[role], request.request_id, Verdict.APPROVED)

    assert service.history(request.request_id) == []
    assert service.get_request(request.request_id) == request


def test_super_admin_override_is_logged(
    service: RoutingService,
    store: InMemoryStore,
    actors: dict[Role, Actor],
    request_fields: dict[str, object],
) -> None:
    request = service.submit_request(actors[Role.FACULTY], request_fields).request
    admin = actors[Role.SUPER_ADMIN]
    for role in (Role.DEPT_HEAD, Role.DEAN, Role.KTTO_STAFF, Role.OVCRE_STAFF, Role.OVCAA_OVCPD):
        request = service.submit_verdict(admin, request.request_id, "Approved", acting_as=role)
    assert request.current_office == Office.FINANCE

    request = service.submit_verdict(
        admin, request.request_id, Verdict.APPROVED, acting_as=Role.FINANCE
    )

    last = service.history(request.request_id)[-1]
    assert last.office == Office.FINANCE
    assert last.approver_id == admin.actor_id
    assert "(Admin Override)" in last.comments
    assert "Finance" in last.comments
    assert store.get_actor(admin.actor_id).role == Role.SUPER_ADMIN


def test_stale_version_is_a_conflict(
    service: RoutingService, actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    request = service.submit_request(actors[Role.FACULTY], request_fields).request
    service.submit_verdict(
        actors[Role.DEPT_HEAD], request.request_id, "Approved", expected_version=1
    )

    with pytest.raises(ConflictError) as excinfo:
        service.submit_verdict(
            actors[Role.DEPT_HEAD], request.request_id, "Approved", expected_version=1
        )

    assert excinfo.value.code == "conflict"
    assert excinfo.value.actual_version == 2
    assert len(service.history(request.request_id)) == 1


def test_invalid_request_is_not_stored(
    service: RoutingService,
    store: InMemoryStore,
    actors: dict[Role, Actor],
    request_fields: dict[str, object],
) -> None:
    request_fields.update(start_date=date(2024, 6, 10), end_date=date(2024, 6, 5))

    with pytest.raises(ValidationError):
        service.submit_request(actors[Role.FACULTY], request_fields)

    assert store.query_requests() == []


def test_unknown_request_raises_not_found(
    service: RoutingService, actors: dict[Role, Actor]
) -> None:
    with pytest.raises(RequestNotFoundError):
        service.submit_verdict(actors[Role.DEAN], "missing", "Approved")


def test_attachments_are_best_effort(
    store: InMemoryStore, actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    object_store = FailingObjectStore()
    service = RoutingService(store, object_store=object_store)
    uploads = [
        AttachmentUpload(name="itinerary.PDF", content=b"%PDF", media_type="application/pdf"),
        AttachmentUpload(name="invitation.png", content=b"broken", media_type="image/png"),
        AttachmentUpload(name="notes", content=b"plain", media_type="text/plain"),
    ]

    result = service.submit_request(actors[Role.FACULTY], request_fields, uploads)

    request_id = result.request.request_id
    assert not result.complete
    assert [failure.name for failure in result.failures] == ["invitation.png"]
    assert [attachment.name for attachment in result.attachments] == ["itinerary.PDF", "notes"]
    assert store.get_request(request_id) == result.request
    assert len(service.attachments(request_id)) == 2
    assert len(object_store.attempted) == 3

    pdf = result.attachments[0]
    assert pdf.file_path.startswith(f"{request_id}/")
    assert pdf.file_path.endswith(".pdf")
    assert object_store.download(pdf.file_path) == b"%PDF"
    assert service.attachment_url(pdf) == f"memory://travel_documents/{pdf.file_path}"


def test_unexpected_object_store_errors_become_attachment_failures(
    store: InMemoryStore, actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    service = RoutingService(store, object_store=CrashingObjectStore())
    upload = AttachmentUpload(name="visa.pdf", content=b"%PDF", media_type="application/pdf")

    result = service.submit_request(actors[Role.FACULTY], request_fields, [upload])

    assert result.attachments == []
    assert [failure.name for failure in result.failures] == ["visa.pdf"]
    assert "bucket quota exceeded" in result.failures[0].reason
    assert result.failures[0].object_key is None
    assert store.get_request(result.request.request_id) == result.request


def test_metadata_failure_reports_uploaded_object(
    actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    object_store = InMemoryObjectStore()
    service = RoutingService(MetadataFailingStore(), object_store=object_store)
    upload = AttachmentUpload(name="budget.xlsx", content=b"PK", media_type=None)

    result = service.submit_request(actors[Role.FACULTY], request_fields, [upload])

    failure = result.failures[0]
    assert result.attachments == []
    assert failure.object_key is not None
    assert failure.object_key.startswith(f"{result.request.request_id}/")
    assert object_store.keys() == [failure.object_key]


def test_reads_are_retried_a_bounded_number_of_times(
    actors: dict[Role, Actor], request_fields: dict[str, object]
) -> None:
    store = FlakyStore(failures=0)
    service = RoutingService(store, settings=RoutingSettings(read_retry_attempts=3))
    request = service.submit_request(actors[Role.FACULTY], request_fields).request

    store.failures = 2
    assert service.get_request(request.request_id) == request

    store.failures = 3
    with pytest.raises(StorageError):
        service.get_request(request.request_id)


def test_change_feed_announces_creation_and_transitions(
    service: RoutingService,
    feed: InMemoryChangeFeed,
    actors: dict[Role, Actor],
    request_fields: dict[str, object],
) -> None:
    received: list[ChangeNotification] = []
    subscription = feed.subscribe(received.append)

    request = service.submit_request(actors[Role.FACULTY], request_fields).request
    service.submit_verdict(actors[Role.DEPT_HEAD], request.request_id, "Rejected")
    subscription.unsubscribe()
    service.submit_request(actors[Role.FACULTY], request_fields)

    assert [(note.kind, note.version) for note in received] == [
        (ChangeKind.CREATED, 1),
        (ChangeKind.TRANSITIONED, 2),
    ]
    assert feed.subscriber_count == 0


def test_failing_subscriber_does_not_undo_commit(
    service: RoutingService,
    feed: InMemoryChangeFeed,
    actors: dict[Role, Actor],
    request_fields: dict[str, object],
) -> None:
    def _broken(notification: ChangeNotification) -> None:
        raise RuntimeError("reader crashed")

    request = service.submit_request(actors[Role.FACULTY], request_fields).request
    feed.subscribe(_broken)

    updated = service.submit_verdict(actors[Role.DEPT_HEAD], request.request_id, "Approved")

    assert service.get_request(request.request_id) == updated
    assert len(service.history(request.request_id)) == 1
