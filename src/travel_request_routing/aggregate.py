"""Travel request creation and the single routing mutator."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationInfo
from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator

from .exceptions import ValidationError
from .models import Actor, TravelRequest, TravelType, is_terminal
from .offices import Office, OfficePipeline, default_pipeline

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class RequestFields(BaseModel):
    """Fields supplied by the requester when submitting a travel request."""

    title: RequiredText = Field(..., description="Title of the activity")
    destination: RequiredText = Field(..., description="Travel destination")
    purpose: RequiredText = Field(..., description="Purpose of the travel")
    start_date: date = Field(..., description="First day of travel")
    end_date: date = Field(..., description="Last day of travel")
    travel_type: TravelType = Field(
        default=TravelType.ACADEMIC, description="Kind of travel"
    )
    budget_estimate: Annotated[Decimal, Field(ge=0)] = Field(
        ..., description="Estimated total cost"
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("end_date")
    @classmethod
    def _end_not_before_start(cls, value: date, info: ValidationInfo) -> date:
        start = info.data.get("start_date")
        if start is not None and value < start:
            raise ValueError("end_date must be on or after start_date")
        return value


def _errors_from(exc: PydanticValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "request"
        errors.setdefault(field, error["msg"])
    return errors


def parse_fields(fields: Mapping[str, object] | RequestFields) -> RequestFields:
    """Validate raw request fields, raising ValidationError on bad input."""

    if isinstance(fields, RequestFields):
        return fields
    try:
        return RequestFields.model_validate(dict(fields))
    except PydanticValidationError as exc:
        raise ValidationError(_errors_from(exc)) from exc


def create_request(
    owner: Actor,
    fields: Mapping[str, object] | RequestFields,
    *,
    pipeline: OfficePipeline | None = None,
    created_at: datetime | None = None,
) -> TravelRequest:
    """Build a new request at the first office of the pipeline.

    The owner's role is snapshotted so later role changes do not alter the
    request.
    """

    parsed = parse_fields(fields)
    first_stage = (pipeline or default_pipeline()).first()
    return TravelRequest(
        owner_id=owner.actor_id,
        title=parsed.title,
        destination=parsed.destination,
        purpose=parsed.purpose,
        start_date=parsed.start_date,
        end_date=parsed.end_date,
        travel_type=parsed.travel_type,
        budget_estimate=parsed.budget_estimate,
        status=first_stage.pending_status,
        current_office=first_stage.office,
        requester_role=owner.role,
        created_at=created_at or datetime.now(UTC),
    )


def apply_transition(
    request: TravelRequest,
    new_status: str,
    new_office: Office,
    *,
    pipeline: OfficePipeline | None = None,
) -> TravelRequest:
    """Return a copy of ``request`` at the new routing position."""

    routing = pipeline or default_pipeline()
    if is_terminal(new_status):
        routing.stage_for(new_office)
    elif routing.office_for_status(new_status) != new_office:
        raise ValueError(
            f"Status '{new_status}' is inconsistent with office {new_office}"
        )
    return request.model_copy(
        update={
            "status": new_status,
            "current_office": Office(new_office),
            "version": request.version + 1,
        }
    )
