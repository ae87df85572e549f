"""Role registry and the ordered office pipeline."""

from __future__ import annotations

import os
from enum import StrEnum
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


class Role(StrEnum):
    """Organizational roles; exactly one is assigned per actor at signup."""

    FACULTY = "Faculty"
    DEPT_HEAD = "Dept. Head"
    DEAN = "Dean"
    KTTO_STAFF = "KTTO Staff"
    OVCRE_STAFF = "OVCRE Staff"
    OVCAA_OVCPD = "OVCAA/OVCPD"
    FINANCE = "Finance"
    CHANCELLOR = "Chancellor"
    SUPER_ADMIN = "Super Admin"


class Office(StrEnum):
    """Offices a travel request passes through."""

    DEPARTMENT = "Department"
    DEAN = "Dean"
    KTTO = "KTTO"
    OVCRE = "OVCRE"
    OVCAA = "OVCAA"
    FINANCE = "Finance"
    CHANCELLOR = "Chancellor"


ROLE_OFFICE_MAP: dict[Role, Office] = {
    Role.DEPT_HEAD: Office.DEPARTMENT,
    Role.DEAN: Office.DEAN,
    Role.KTTO_STAFF: Office.KTTO,
    Role.OVCRE_STAFF: Office.OVCRE,
    Role.OVCAA_OVCPD: Office.OVCAA,
    Role.FINANCE: Office.FINANCE,
    Role.CHANCELLOR: Office.CHANCELLOR,
}

OFFICE_ROLE_MAP: dict[Office, Role] = {
    office: role for role, office in ROLE_OFFICE_MAP.items()
}


def _coerce_role(role: Role | str | None) -> Role | None:
    if role is None:
        return None
    try:
        return Role(role)
    except ValueError:
        return None


def office_for(role: Role | str | None) -> Office | None:
    """Return the office a role approves for, or None.

    Faculty, Super Admin and unknown roles map to no office.
    """

    resolved = _coerce_role(role)
    if resolved is None:
        return None
    return ROLE_OFFICE_MAP.get(resolved)


def role_for_office(office: Office | str) -> Role | None:
    """Return the role that approves on behalf of an office."""

    try:
        return OFFICE_ROLE_MAP.get(Office(office))
    except ValueError:
        return None


class PipelineStage(BaseModel):
    """A single office in the routing pipeline."""

    office: Office = Field(..., description="Office that reviews at this stage")
    status_label: str = Field(
        ...,
        min_length=1,
        description="Label used in the pending status, e.g. 'Dept' in 'Pending Dept Review'",
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def pending_status(self) -> str:
        return f"Pending {self.status_label} Review"


class OfficePipeline(BaseModel):
    """Ordered sequence of offices a request must clear."""

    stages: tuple[PipelineStage, ...] = Field(
        ..., description="Stages in routing order"
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _validate_stages(self) -> OfficePipeline:
        if not self.stages:
            raise ValueError("Pipeline must include at least one stage")
        offices = [stage.office for stage in self.stages]
        if len(set(offices)) != len(offices):
            raise ValueError("Pipeline offices must be unique")
        labels = [stage.status_label for stage in self.stages]
        if len(set(labels)) != len(labels):
            raise ValueError("Pipeline status labels must be unique")
        return self

    @classmethod
    def from_offices(cls, offices: list[Office]) -> OfficePipeline:
        """Build a pipeline that labels each stage with its office name."""

        return cls(
            stages=tuple(
                PipelineStage(office=office, status_label=office.value)
                for office in offices
            )
        )

    @classmethod
    def from_yaml(cls, content: str) -> OfficePipeline:
        """Load a pipeline from YAML content."""

        data = yaml.safe_load(content) or {}
        raw_stages = data.get("stages")
        if not raw_stages:
            raise ValueError("Pipeline configuration must include a 'stages' list")
        return cls.model_validate({"stages": raw_stages})

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> OfficePipeline:
        """Load a pipeline from a YAML file, defaulting to the packaged config."""

        target_path = Path(path) if path is not None else _default_pipeline_path()
        if target_path is None:
            raise FileNotFoundError("No pipeline.yaml file found")
        return cls.from_yaml(target_path.read_text(encoding="utf-8"))

    @classmethod
    def from_environment(cls, env_var: str = "ROUTING_PIPELINE") -> OfficePipeline:
        """Load a pipeline from an environment variable containing YAML."""

        content = os.getenv(env_var)
        if not content:
            raise ValueError(f"Environment variable '{env_var}' is not set or empty")
        return cls.from_yaml(content)

    def order(self) -> tuple[Office, ...]:
        return tuple(stage.office for stage in self.stages)

    def first(self) -> PipelineStage:
        return self.stages[0]

    def stage_for(self, office: Office | str) -> PipelineStage:
        """Return the stage for an office; KeyError when it is not routed."""

        for stage in self.stages:
            if stage.office == office:
                return stage
        raise KeyError(f"Office '{office}' is not part of the pipeline")

    def is_last(self, office: Office | str) -> bool:
        return self.stages[-1].office == office

    def next_office(self, office: Office | str) -> Office | None:
        """Return the office after ``office``, or None at the end of the pipeline."""

        offices = self.order()
        index = offices.index(self.stage_for(office).office)
        if index + 1 >= len(offices):
            return None
        return offices[index + 1]

    def pending_status(self, office: Office | str) -> str:
        return self.stage_for(office).pending_status

    def office_for_status(self, status: str) -> Office | None:
        """Return the office whose pending status matches ``status``."""

        for stage in self.stages:
            if stage.pending_status == status:
                return stage.office
        return None


def _default_pipeline_path() -> Path | None:
    for parent in Path(__file__).resolve().parents:
        candidate = parent / "config" / "pipeline.yaml"
        if candidate.exists():
            return candidate
    return None


@lru_cache(maxsize=1)
def default_pipeline() -> OfficePipeline:
    """Return the packaged office pipeline."""

    return OfficePipeline.from_file()


def pipeline_order() -> tuple[Office, ...]:
    """Return the default pipeline's office order."""

    return default_pipeline().order()
