"""Core records for travel requests, approval entries and attachments."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from hashlib import sha256
from typing import Annotated
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .offices import Office, Role


class TravelType(StrEnum):
    """Kind of travel being requested."""

    ACADEMIC = "Academic"
    RESEARCH = "Research"
    ADMINISTRATIVE = "Administrative"


class Verdict(StrEnum):
    """Decision an office records against a request."""

    APPROVED = "Approved"
    REJECTED = "Rejected"
    RETURNED = "Returned"


TERMINAL_STATUSES: frozenset[str] = frozenset(verdict.value for verdict in Verdict)


def is_terminal(status: str) -> bool:
    """Return True when no further verdicts are accepted for ``status``."""

    return status in TERMINAL_STATUSES


def _new_id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Actor(BaseModel):
    """A signed-up user and the single role they hold."""

    actor_id: str = Field(..., description="Stable identity from the identity provider")
    full_name: str = Field(..., description="Display name")
    role: Role = Field(..., description="Role assigned at signup")
    department: str | None = Field(default=None, description="Home department")
    email: str | None = Field(default=None, description="Contact email")

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class ActingContext:
    """Role an actor is acting under for one authorization check.

    ``acting_as`` is only honoured for Super Admin and is never written back to
    the actor, the request or the audit entry as the actor's real role.
    """

    real_role: Role
    acting_as: Role | None = None

    @classmethod
    def for_actor(cls, actor: Actor, acting_as: Role | str | None = None) -> ActingContext:
        return cls(
            real_role=actor.role,
            acting_as=Role(acting_as) if acting_as is not None else None,
        )

    @property
    def is_admin(self) -> bool:
        return self.real_role == Role.SUPER_ADMIN

    @property
    def is_override(self) -> bool:
        """True when a Super Admin is acting as another role."""

        return self.is_admin and self.acting_as is not None

    @property
    def effective_role(self) -> Role:
        if self.is_admin and self.acting_as is not None:
            return self.acting_as
        return self.real_role


class TravelRequest(BaseModel):
    """A travel request and its current routing position."""

    request_id: str = Field(default_factory=_new_id, description="Unique identifier")
    owner_id: str = Field(..., description="Actor who submitted the request")
    title: str = Field(..., min_length=1, description="Title of the activity")
    destination: str = Field(..., min_length=1, description="Travel destination")
    purpose: str = Field(..., min_length=1, description="Purpose of the travel")
    start_date: date = Field(..., description="First day of travel")
    end_date: date = Field(..., description="Last day of travel")
    travel_type: TravelType = Field(
        default=TravelType.ACADEMIC, description="Kind of travel"
    )
    budget_estimate: Annotated[Decimal, Field(ge=0)] = Field(
        ..., description="Estimated total cost"
    )
    status: str = Field(..., description="Routing status")
    current_office: Office = Field(..., description="Office the request sits at")
    requester_role: Role = Field(
        ..., description="Owner's role at the time the request was created"
    )
    created_at: datetime = Field(default_factory=_now, description="Creation time")
    version: int = Field(
        default=1, ge=1, description="Incremented on every routing transition"
    )

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _validate_dates(self) -> TravelRequest:
        if self.end_date < self.start_date:
            msg = "end_date must be on or after start_date"
            raise ValueError(msg)
        return self

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


def _hash_payload(payload: Mapping[str, object]) -> str:
    serialized = json.dumps(
        payload,
        default=str,
        separators=(",", ":"),
        sort_keys=True,
    ).encode("utf-8")
    return sha256(serialized).hexdigest()


class ApprovalEntry(BaseModel):
    """Immutable record of a single verdict submission."""

    entry_id: str = Field(default_factory=_new_id, description="Unique identifier")
    request_id: str = Field(..., description="Request the verdict applies to")
    approver_id: str = Field(..., description="Actor who submitted the verdict")
    office: Office = Field(
        ..., description="Office acted on behalf of, before the request advanced"
    )
    status: Verdict = Field(..., description="Verdict recorded")
    comments: str = Field(..., description="Who acted, under which role and any note")
    created_at: datetime = Field(default_factory=_now, description="Submission time")
    previous_hash: str | None = Field(
        default=None, description="Hash of the previous entry for the same request"
    )
    entry_hash: str | None = Field(
        default=None, description="Digest of this entry chained to the previous one"
    )

    model_config = ConfigDict(frozen=True)

    def content_hash(self) -> str:
        """Recompute the chained digest from the entry's content."""

        return _hash_payload(
            {
                "entry_id": self.entry_id,
                "request_id": self.request_id,
                "approver_id": self.approver_id,
                "office": self.office.value,
                "status": self.status.value,
                "comments": self.comments,
                "created_at": self.created_at.isoformat(),
                "previous_hash": self.previous_hash,
            }
        )

    @model_validator(mode="after")
    def _set_hash(self) -> ApprovalEntry:
        object.__setattr__(self, "entry_hash", self.content_hash())
        return self


class Attachment(BaseModel):
    """Metadata for a file stored alongside a request."""

    attachment_id: str = Field(default_factory=_new_id, description="Unique identifier")
    request_id: str = Field(..., description="Owning request")
    name: str = Field(..., description="Original file name")
    file_path: str = Field(..., description="Object store key")
    media_type: str | None = Field(default=None, description="MIME type")
    uploaded_at: datetime = Field(default_factory=_now, description="Upload time")

    model_config = ConfigDict(frozen=True)


class AttachmentUpload(BaseModel):
    """A file submitted together with a new request."""

    name: str = Field(..., min_length=1, description="Original file name")
    content: bytes = Field(..., description="File bytes")
    media_type: str | None = Field(default=None, description="MIME type")
