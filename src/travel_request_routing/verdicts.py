"""Verdict processing: authorization and the routing state machine.

Authorization is office based. Any actor whose effective role maps to the
request's current office may act on it, which models a back-office queue
rather than per-request assignment. A Super Admin may act as another role;
the resulting approval entry always says so in its comments.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from .exceptions import AuthorizationError, ValidationError
from .models import ActingContext, ApprovalEntry, TravelRequest, Verdict, is_terminal
from .offices import Office, OfficePipeline, default_pipeline, office_for

ADMIN_OVERRIDE_MARKER = "(Admin Override)"


@dataclass(frozen=True)
class Transition:
    """Routing position a request moves to."""

    status: str
    office: Office


@dataclass(frozen=True)
class VerdictOutcome:
    """Result of an accepted verdict, ready to be committed atomically."""

    new_status: str
    new_office: Office
    entry: ApprovalEntry
    expected_version: int


def _coerce_verdict(verdict: Verdict | str) -> Verdict:
    try:
        return Verdict(verdict)
    except ValueError as exc:
        allowed = ", ".join(v.value for v in Verdict)
        raise ValidationError(
            {"verdict": f"Unknown verdict '{verdict}'. Allowed: {allowed}"}
        ) from exc


def authorize(request: TravelRequest, context: ActingContext) -> Office:
    """Return the office the context acts for, or raise AuthorizationError."""

    role = context.effective_role
    if request.is_terminal:
        raise AuthorizationError(
            f"Request '{request.request_id}' is already {request.status}; "
            "no further verdicts are accepted",
            request_id=request.request_id,
            role=role.value,
        )

    office = office_for(role)
    if office is None:
        raise AuthorizationError(
            f"Role '{role}' does not review travel requests",
            request_id=request.request_id,
            role=role.value,
        )
    if office != request.current_office:
        raise AuthorizationError(
            f"Role '{role}' acts for {office}, but request '{request.request_id}' "
            f"is at {request.current_office}",
            request_id=request.request_id,
            role=role.value,
        )
    return office


def can_act(request: TravelRequest, context: ActingContext) -> bool:
    """Return whether the context may submit a verdict on the request."""

    try:
        authorize(request, context)
    except AuthorizationError:
        return False
    return True


def compute_transition(
    status: str,
    office: Office,
    verdict: Verdict | str,
    pipeline: OfficePipeline | None = None,
) -> Transition:
    """Compute the routing position after ``verdict`` is applied.

    Approval moves the request to the next office's pending status, or to
    ``Approved`` after the last office. Return and rejection are terminal and
    leave the office unchanged.
    """

    resolved = _coerce_verdict(verdict)
    routing = pipeline or default_pipeline()
    if is_terminal(status):
        raise ValueError(f"Status '{status}' is terminal")
    expected = routing.pending_status(office)
    if status != expected:
        raise ValueError(
            f"Status '{status}' is inconsistent with office {office}; expected '{expected}'"
        )

    if resolved is not Verdict.APPROVED:
        return Transition(status=resolved.value, office=Office(office))

    next_office = routing.next_office(office)
    if next_office is None:
        return Transition(status=Verdict.APPROVED.value, office=Office(office))
    return Transition(status=routing.pending_status(next_office), office=next_office)


def format_comments(
    verdict: Verdict | str, context: ActingContext, note: str | None = None
) -> str:
    """Describe who acted, under which role, and whether an admin override was used."""

    comments = f"{Verdict(verdict).value} by {context.effective_role.value}"
    if context.is_admin:
        comments = f"{comments} {ADMIN_OVERRIDE_MARKER}"
    if note and note.strip():
        comments = f"{comments}: {note.strip()}"
    return comments


def apply_verdict(
    request: TravelRequest,
    context: ActingContext,
    verdict: Verdict | str,
    comments: str | None = None,
    *,
    approver_id: str,
    pipeline: OfficePipeline | None = None,
    previous_hash: str | None = None,
    timestamp: datetime | None = None,
) -> VerdictOutcome:
    """Authorize a verdict and prepare the transition and its audit entry.

    Nothing is persisted here; the caller commits ``entry`` together with the
    new status and office in one atomic write.
    """

    resolved = _coerce_verdict(verdict)
    acting_office = authorize(request, context)
    transition = compute_transition(
        request.status, request.current_office, resolved, pipeline
    )
    entry = ApprovalEntry(
        request_id=request.request_id,
        approver_id=approver_id,
        office=acting_office,
        status=resolved,
        comments=format_comments(resolved, context, comments),
        created_at=timestamp or datetime.now(UTC),
        previous_hash=previous_hash,
    )
    return VerdictOutcome(
        new_status=transition.status,
        new_office=transition.office,
        entry=entry,
        expected_version=request.version,
    )
