"""Client for the Purdue dining GraphQL menu feed."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import requests
from pydantic import BaseModel, Field, ValidationError

from .errors import FetchError

logger = logging.getLogger(__name__)

ENDPOINT = "https://api.hfs.purdue.edu/menus/v3/GraphQL"

QUERY = """
query getFoodNames($date: Date!) {
    diningCourts {
        formalName
        dailyMenu(date: $date) {
            meals {
                name
                stations {
                    name
                    items {
                        item {
                            name
                        }
                    }
                }
            }
        }
    }
}
""".strip()

MenuGrouping = Tuple[str, List[str]]


class Item(BaseModel):
    name: str


class ItemShell(BaseModel):
    item: Item


class Station(BaseModel):
    name: str = ""
    items: List[ItemShell] = Field(default_factory=list)


class Meal(BaseModel):
    name: str = ""
    stations: List[Station] = Field(default_factory=list)


class DailyMenu(BaseModel):
    meals: List[Meal] = Field(default_factory=list)


class DiningCourt(BaseModel):
    formal_name: str = Field(alias="formalName")
    daily_menu: Optional[DailyMenu] = Field(default=None, alias="dailyMenu")

    def item_names(self) -> List[str]:
        if self.daily_menu is None:
            return []
        return [
            shell.item.name
            for meal in self.daily_menu.meals
            for station in meal.stations
            for shell in station.items
        ]


class MenuData(BaseModel):
    dining_courts: List[DiningCourt] = Field(alias="diningCourts")


class MenuResponse(BaseModel):
    data: MenuData

    def groupings(self) -> List[MenuGrouping]:
        return [(court.formal_name, court.item_names()) for court in self.data.dining_courts]


def build_payload(day: date) -> Dict[str, Any]:
    return {
        "operationName": "getFoodNames",
        "variables": {"date": day.strftime("%Y-%m-%d")},
        "query": QUERY,
    }


def flatten_menu(groupings: List[MenuGrouping]) -> List[Tuple[str, str]]:
    """Turn ``(location, [items])`` groupings into ``(location, item)`` pairs.

    A location with no items still yields one pair with an empty item so that
    the location itself gets registered.
    """
    pairs: List[Tuple[str, str]] = []
    for location, items in groupings:
        if not items:
            pairs.append((location, ""))
            continue
        pairs.extend((location, item) for item in items)
    return pairs


class MenuFeedClient:
    """Fetch one day's menu from the upstream feed with a bounded retry."""

    def __init__(
        self,
        endpoint: str = ENDPOINT,
        *,
        timeout: float = 30,
        retries: int = 1,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.retries = retries
        self.session = session or requests.Session()

    def fetch_day(self, day: date) -> List[MenuGrouping]:
        """Return ``(location_raw, [item_raw, ...])`` groupings served on ``day``."""
        payload = build_payload(day)
        last_error: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            try:
                response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
                response.raise_for_status()
                body = response.json()
                break
            except (requests.RequestException, ValueError) as exc:
                last_error = exc
                logger.warning("Menu fetch for %s failed (attempt %s): %s", day, attempt + 1, exc)
        else:
            raise FetchError(f"Menu feed unavailable for {day}: {last_error}") from last_error

        try:
            parsed = MenuResponse.model_validate(body)
        except ValidationError as exc:
            raise FetchError(f"Menu feed returned an unexpected shape for {day}: {exc}") from exc
        return parsed.groupings()
