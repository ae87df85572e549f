"""Command-line interface for inspecting the pipeline and replaying routing scenarios."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import RoutingError
from .models import Actor, Verdict
from .offices import OfficePipeline, Role, default_pipeline, role_for_office
from .service import RoutingService
from .store import InMemoryStore


class ScenarioStep(BaseModel):
    """One verdict submission in a replayed scenario."""

    actor: str = Field(..., description="actor_id of the submitting actor")
    verdict: Verdict = Field(..., description="Verdict to submit")
    acting_as: Role | None = Field(
        default=None, description="Role a Super Admin acts as"
    )
    note: str | None = Field(default=None, description="Optional free-text note")


class ScenarioRequest(BaseModel):
    owner: str = Field(..., description="actor_id of the requester")
    fields: dict[str, object] = Field(..., description="Request fields")


class Scenario(BaseModel):
    """A request and the verdicts to route it through."""

    actors: list[Actor] = Field(..., min_length=1)
    request: ScenarioRequest
    verdicts: list[ScenarioStep] = Field(default_factory=list)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="travel-routing",
        description="Inspect the office pipeline and replay travel request routing.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log routing decisions to stderr."
    )
    parser.add_argument(
        "--pipeline",
        dest="pipeline_path",
        type=Path,
        default=None,
        help="Path to a pipeline YAML file (defaults to the packaged pipeline).",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("pipeline", help="Print the office pipeline.")
    replay = subcommands.add_parser(
        "replay", help="Replay a JSON scenario and print the audit trail."
    )
    replay.add_argument("scenario_json", type=Path, help="Path to the scenario JSON.")
    return parser


def _load_scenario(path: Path) -> Scenario:
    try:
        raw_data = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        msg = f"Input file not found: {path}"
        raise FileNotFoundError(msg) from exc
    except OSError as exc:
        msg = f"Unable to read input file: {path}"
        raise OSError(msg) from exc

    try:
        payload = json.loads(raw_data)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in input file: {path}"
        raise ValueError(msg) from exc

    return Scenario.model_validate(payload)


def _print_pipeline(pipeline: OfficePipeline) -> None:
    for position, stage in enumerate(pipeline.stages, start=1):
        role = role_for_office(stage.office)
        approver = role.value if role is not None else "-"
        print(f"{position}. {stage.office.value:<12} {stage.pending_status:<28} {approver}")


def _replay(scenario: Scenario, pipeline: OfficePipeline) -> None:
    service = RoutingService(InMemoryStore(), pipeline=pipeline)
    actors = {actor.actor_id: actor for actor in scenario.actors}
    for actor in actors.values():
        service.register_actor(actor)

    owner = actors.get(scenario.request.owner)
    if owner is None:
        raise ValueError(f"Unknown request owner '{scenario.request.owner}'")
    request = service.submit_request(owner, scenario.request.fields).request
    print(f"Created {request.request_id}: {request.status} at {request.current_office}")

    try:
        for step in scenario.verdicts:
            actor = actors.get(step.actor)
            if actor is None:
                raise ValueError(f"Unknown actor '{step.actor}'")
            request = service.submit_verdict(
                actor,
                request.request_id,
                step.verdict,
                acting_as=step.acting_as,
                comments=step.note,
            )
    finally:
        for entry in service.history(request.request_id):
            print(
                f"{entry.created_at.isoformat()} {entry.office.value:<12} "
                f"{entry.status.value:<9} {entry.comments}"
            )
        print(f"Final: {request.status} at {request.current_office}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        pipeline = (
            OfficePipeline.from_file(args.pipeline_path)
            if args.pipeline_path is not None
            else default_pipeline()
        )
        if args.command == "pipeline":
            _print_pipeline(pipeline)
        else:
            _replay(_load_scenario(args.scenario_json), pipeline)
    except PydanticValidationError as exc:
        print("Error: scenario validation failed.", file=sys.stderr)
        print(str(exc), file=sys.stderr)
        return 1
    except RoutingError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
