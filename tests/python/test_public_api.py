"""Tests for package root public API imports."""

from __future__ import annotations

import tomllib
from pathlib import Path

import travel_request_routing as trr
from travel_request_routing import (
    DashboardProjector,
    RoutingService,
    __version__,
    apply_verdict,
    compute_transition,
    pipeline_order,
)


def test_public_api_exports() -> None:
    """Core API symbols should be importable from the package root."""
    required_exports = {
        "__version__",
        "RoutingService",
        "DashboardProjector",
        "apply_verdict",
        "compute_transition",
        "pipeline_order",
    }

    assert required_exports.issubset(set(trr.__all__))
    assert all(hasattr(trr, name) for name in trr.__all__)
    assert callable(apply_verdict)
    assert callable(compute_transition)
    assert callable(pipeline_order)
    assert RoutingService is not None
    assert DashboardProjector is not None


def test_version_matches_pyproject() -> None:
    """Package __version__ should align with pyproject.toml."""
    pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    pyproject_data = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
    assert __version__ == pyproject_data["project"]["version"]
