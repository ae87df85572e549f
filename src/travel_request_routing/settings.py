"""Runtime settings for the routing service."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field


def _default_settings_path() -> Path | None:
    for parent in Path(__file__).resolve().parents:
        candidate = parent / "config" / "settings.yaml"
        if candidate.is_file():
            return candidate
    return None


class RoutingSettings(BaseModel):
    """Tunable limits for reads, store access and dashboard display."""

    audit_tracking_limit: int = Field(
        default=50, gt=0, description="Entries shown in the audit tracking view"
    )
    read_retry_attempts: int = Field(
        default=3, ge=1, description="Total attempts for idempotent store reads"
    )
    read_retry_delay_seconds: float = Field(
        default=0.0, ge=0, description="Pause between read attempts"
    )
    store_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Maximum wait for the store's write lock"
    )
    currency_symbol: str = Field(
        default="₱", min_length=1, description="Symbol shown before budget amounts"
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_yaml(cls, content: str) -> RoutingSettings:
        data = yaml.safe_load(content) or {}
        if not isinstance(data, dict):
            raise ValueError("Routing settings must be a mapping")
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> RoutingSettings:
        target_path = Path(path) if path is not None else _default_settings_path()
        if target_path is None:
            raise FileNotFoundError("No settings.yaml file found")
        return cls.from_yaml(target_path.read_text(encoding="utf-8"))

    @classmethod
    def from_environment(cls, env_var: str = "ROUTING_SETTINGS") -> RoutingSettings:
        content = os.getenv(env_var)
        if not content:
            raise ValueError(f"Environment variable '{env_var}' is not set or empty")
        return cls.from_yaml(content)

    def format_currency(self, amount: Decimal) -> str:
        """Render a budget amount with the configured symbol."""

        return f"{self.currency_symbol}{amount:,.2f}"
