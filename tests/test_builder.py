from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Dict, List, Union

import pytest

from dining_votes.bank import NO_LOCATION, Registry, read_bank, write_bank
from dining_votes.builder import build_registry, date_window, run_build
from dining_votes.errors import FetchError
from dining_votes.menu_feed import MenuGrouping

TODAY = date(2025, 11, 14)


class FakeMenuSource:
    def __init__(self, days: Dict[date, Union[List[MenuGrouping], Exception]]):
        self.days = days
        self.requested: List[date] = []

    def fetch_day(self, day: date) -> List[MenuGrouping]:
        self.requested.append(day)
        outcome = self.days.get(day, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_date_window_spans_before_and_after() -> None:
    assert date_window(TODAY, 1, 2) == [
        date(2025, 11, 13),
        date(2025, 11, 14),
        date(2025, 11, 15),
        date(2025, 11, 16),
    ]
    assert date_window(TODAY, 0, 0) == [TODAY]
    with pytest.raises(ValueError):
        date_window(TODAY, -1, 0)


def test_failed_day_does_not_abort_the_window() -> None:
    source = FakeMenuSource(
        {
            date(2025, 11, 13): [("Earhart", ["Pizza"])],
            TODAY: FetchError("timeout"),
            date(2025, 11, 15): [("Wiley", ["Tacos", "Pizza"])],
        }
    )
    registry = Registry()
    report = build_registry(registry, source, days_before=1, days_after=1, today=TODAY)

    assert source.requested == [date(2025, 11, 13), TODAY, date(2025, 11, 15)]
    assert report.failed_dates == [TODAY]
    assert report.new_foods == 2
    assert report.new_locations == 2
    assert report.succeeded
    assert registry.foods["pizza"].id == 0
    assert registry.foods["tacos"].id == 1


def test_only_today_sets_locations() -> None:
    source = FakeMenuSource(
        {
            date(2025, 11, 13): [("Earhart", ["Pizza", "Soup"])],
            TODAY: [("Ford", ["Pizza"])],
            date(2025, 11, 15): [("Wiley", ["Pizza"])],
        }
    )
    registry = Registry()
    build_registry(registry, source, days_before=1, days_after=1, today=TODAY)
    assert registry.foods["pizza"].location == "ford"
    assert registry.foods["soup"].location == NO_LOCATION


def test_run_build_persists_and_preserves_ids(tmp_path: Path, registry: Registry) -> None:
    path = tmp_path / "bank.bin"
    write_bank(registry, path)
    source = FakeMenuSource({TODAY: [("Earhart", ["Burger", "Salad"])]})

    report = run_build(path, source, days_before=0, days_after=0, today=TODAY)

    saved = read_bank(path)
    assert report.new_foods == 1
    assert saved.foods["pizza"].id == 0
    assert saved.foods["salad"].id == 1
    assert saved.foods["salad"].location == "earhart"
    assert saved.foods["burger"].id == 2
    assert saved.next_food_id == 3


def test_run_build_leaves_bank_untouched_when_every_day_fails(tmp_path: Path, registry: Registry) -> None:
    path = tmp_path / "bank.bin"
    write_bank(registry, path)
    before = path.read_bytes()
    source = FakeMenuSource({TODAY: FetchError("down")})

    report = run_build(path, source, days_before=0, days_after=0, today=TODAY)

    assert not report.succeeded
    assert path.read_bytes() == before
