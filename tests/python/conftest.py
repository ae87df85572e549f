"""Test configuration for adding src to the import path."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from travel_request_routing import (
    Actor,
    InMemoryChangeFeed,
    InMemoryObjectStore,
    InMemoryStore,
    Role,
    RoutingService,
)

ROLE_ACTOR_IDS = {
    Role.FACULTY: "faculty-1",
    Role.DEPT_HEAD: "dept-head-1",
    Role.DEAN: "dean-1",
    Role.KTTO_STAFF: "ktto-1",
    Role.OVCRE_STAFF: "ovcre-1",
    Role.OVCAA_OVCPD: "ovcaa-1",
    Role.FINANCE: "finance-1",
    Role.CHANCELLOR: "chancellor-1",
    Role.SUPER_ADMIN: "admin-1",
}


@pytest.fixture()
def actor_factory() -> Callable[..., Actor]:
    def _factory(role: Role = Role.FACULTY, **overrides: object) -> Actor:
        data = {
            "actor_id": ROLE_ACTOR_IDS[role],
            "full_name": f"{role.value} User",
            "role": role,
            "department": "Computer Science",
        }
        data.update(overrides)
        return Actor(**data)

    return _factory


@pytest.fixture()
def actors(actor_factory: Callable[..., Actor]) -> dict[Role, Actor]:
    return {role: actor_factory(role) for role in Role}


@pytest.fixture()
def request_fields() -> dict[str, object]:
    return {
        "title": "International Conference on AI",
        "destination": "Singapore",
        "purpose": "Present accepted paper",
        "start_date": date(2024, 6, 5),
        "end_date": date(2024, 6, 10),
        "travel_type": "Research",
        "budget_estimate": Decimal("45000.00"),
    }


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture()
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture()
def service(
    store: InMemoryStore,
    feed: InMemoryChangeFeed,
    object_store: InMemoryObjectStore,
    actors: dict[Role, Actor],
) -> RoutingService:
    routing = RoutingService(store, object_store=object_store, feed=feed)
    for actor in actors.values():
        routing.register_actor(actor)
    return routing
