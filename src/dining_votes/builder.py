"""Batch job that grows the bank from the upstream menu feed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional, Protocol, Union

from dateutil import tz

from .bank import Registry, merge_menu, normalize, read_bank, write_bank
from .errors import FetchError
from .menu_feed import MenuGrouping, flatten_menu

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/Indiana/Indianapolis"


class MenuSource(Protocol):
    def fetch_day(self, day: date) -> List[MenuGrouping]:
        ...


@dataclass
class BuildReport:
    dates_scanned: List[date] = field(default_factory=list)
    failed_dates: List[date] = field(default_factory=list)
    new_foods: int = 0
    new_locations: int = 0
    food_count: int = 0
    location_count: int = 0

    @property
    def succeeded(self) -> bool:
        return len(self.failed_dates) < len(self.dates_scanned)

    def summary(self) -> str:
        return (
            f"{self.new_foods} new foods, {self.new_locations} new locations "
            f"({len(self.dates_scanned) - len(self.failed_dates)}/{len(self.dates_scanned)} days fetched)"
        )


def today_in(timezone: str = DEFAULT_TIMEZONE) -> date:
    tzinfo = tz.gettz(timezone) or tz.UTC
    return datetime.now(tzinfo).date()


def date_window(today: date, days_before: int, days_after: int) -> List[date]:
    if days_before < 0 or days_after < 0:
        raise ValueError("days_before and days_after must be non-negative")
    start = today - timedelta(days=days_before)
    return [start + timedelta(days=offset) for offset in range(days_before + days_after + 1)]


def build_registry(
    registry: Registry,
    source: MenuSource,
    *,
    days_before: int,
    days_after: int,
    today: date,
) -> BuildReport:
    """Merge every day in the window into ``registry`` in date order.

    A day whose fetch fails is recorded and skipped; the rest of the window is
    still processed. Only ``today`` is allowed to update food locations.
    """
    report = BuildReport()
    normalize(registry)
    for day in date_window(today, days_before, days_after):
        report.dates_scanned.append(day)
        try:
            groupings = source.fetch_day(day)
        except FetchError as exc:
            logger.warning("Skipping %s: %s", day, exc)
            report.failed_dates.append(day)
            continue
        new_foods, new_locations = merge_menu(registry, flatten_menu(groupings), day == today)
        logger.info("%s: %s new foods, %s new locations", day, new_foods, new_locations)
        report.new_foods += new_foods
        report.new_locations += new_locations
    normalize(registry)
    report.food_count = len(registry.foods)
    report.location_count = len(registry.locations)
    return report


def run_build(
    bank_path: Union[str, Path],
    source: MenuSource,
    *,
    days_before: int,
    days_after: int,
    today: Optional[date] = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> BuildReport:
    """Load the bank, scan the window and persist the result once the scan is over."""
    registry = read_bank(bank_path)
    logger.info("Loaded foods: %s, locations: %s", len(registry.foods), len(registry.locations))
    report = build_registry(
        registry,
        source,
        days_before=days_before,
        days_after=days_after,
        today=today or today_in(timezone),
    )
    if not report.succeeded:
        logger.error("Every menu fetch failed; leaving %s untouched", bank_path)
        return report
    write_bank(registry, bank_path)
    logger.info("Wrote %s: %s", bank_path, report.summary())
    return report
