from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


import fakeredis
import pytest

from dining_votes.bank import FoodEntry, LocationEntry, Registry
from dining_votes.counter_store import CounterStore
from dining_votes.remote import RemoteRegistry


def make_registry() -> Registry:
    return Registry(
        foods={
            "pizza": FoodEntry(id=0, name="pizza", location="earhart"),
            "salad": FoodEntry(id=1, name="salad", location="wiley"),
        },
        locations={
            "earhart": LocationEntry(id=0, name="earhart"),
            "wiley": LocationEntry(id=1, name="wiley"),
        },
        next_food_id=2,
        next_location_id=2,
    )


@pytest.fixture
def registry() -> Registry:
    return make_registry()


@pytest.fixture
def remote(registry: Registry) -> RemoteRegistry:
    return RemoteRegistry.from_registry(registry)


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(server=redis_server)


@pytest.fixture
def store(redis_client: fakeredis.FakeRedis) -> CounterStore:
    return CounterStore(redis_client)
