"""Fetch the published bank and keep a hot-swappable copy for request handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import requests

from .bank import Registry, load, save
from .errors import CorruptSnapshot, FetchError

logger = logging.getLogger(__name__)

REMOTE_BANK_URL = "https://github.com/dadal00/food/raw/refs/heads/main/bank.bin"

DenseLookup = Tuple[str, ...]


@dataclass(frozen=True)
class RemoteRegistry:
    """A registry together with its ID -> name tables. Never mutated once built."""

    registry: Registry
    food_id_to_name: DenseLookup
    location_id_to_name: DenseLookup
    snapshot: bytes

    @classmethod
    def from_registry(cls, registry: Registry) -> "RemoteRegistry":
        return cls(
            registry=registry,
            food_id_to_name=dense_lookup(
                {entry.id: entry.name for entry in registry.foods.values()}, registry.next_food_id
            ),
            location_id_to_name=dense_lookup(
                {entry.id: entry.name for entry in registry.locations.values()},
                registry.next_location_id,
            ),
            snapshot=save(registry),
        )


def dense_lookup(names_by_id: Dict[int, str], size: int) -> DenseLookup:
    """Array indexed by ID; IDs that were never written stay as empty strings."""
    table = [""] * size
    for entry_id, name in names_by_id.items():
        if 0 <= entry_id < size:
            table[entry_id] = name
    return tuple(table)


def _read_source(source: Union[str, Path], timeout: float, retries: int) -> bytes:
    text = str(source)
    if not text.startswith(("http://", "https://")):
        try:
            return Path(text).read_bytes()
        except OSError as exc:
            raise FetchError(f"Could not read bank from {text}: {exc}") from exc

    last_error: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            response = requests.get(text, timeout=timeout)
            response.raise_for_status()
            return response.content
        except requests.RequestException as exc:
            last_error = exc
            logger.warning("Bank download from %s failed (attempt %s): %s", text, attempt + 1, exc)
    raise FetchError(f"Could not download bank from {text}: {last_error}") from last_error


def fetch_registry(
    source: Union[str, Path] = REMOTE_BANK_URL,
    *,
    timeout: float = 10,
    retries: int = 1,
) -> RemoteRegistry:
    """Fetch and decode the bank at ``source`` (URL or file path).

    Raises :class:`FetchError` when the source is unreachable and
    :class:`CorruptSnapshot` when the bytes do not decode.
    """
    data = _read_source(source, timeout, retries)
    return RemoteRegistry.from_registry(load(data))


class RegistryHolder:
    """Holds the live :class:`RemoteRegistry`.

    Readers grab ``current`` once per request and keep using that object; a swap
    is a single reference assignment, so a reader sees either the old tuple or
    the new one, never a mix.
    """

    def __init__(self, initial: RemoteRegistry):
        self._current = initial

    @property
    def current(self) -> RemoteRegistry:
        return self._current

    def swap(self, new: RemoteRegistry) -> RemoteRegistry:
        previous = self._current
        self._current = new
        return previous


def _append_only_violation(current: RemoteRegistry, fresh: RemoteRegistry) -> Optional[str]:
    """Describe how ``fresh`` breaks the append-only contract, or return None."""
    if fresh.registry.next_food_id < current.registry.next_food_id:
        return f"next_food_id {fresh.registry.next_food_id} is below the live {current.registry.next_food_id}"
    if fresh.registry.next_location_id < current.registry.next_location_id:
        return (
            f"next_location_id {fresh.registry.next_location_id} is below the live "
            f"{current.registry.next_location_id}"
        )
    for food_id, name in enumerate(current.food_id_to_name):
        if name and fresh.food_id_to_name[food_id] != name:
            return f"food id {food_id} changed from {name!r} to {fresh.food_id_to_name[food_id]!r}"
    return None


class RegistryReloader:
    """Periodically adopt a newer bank, keeping the old one on any failure."""

    def __init__(
        self,
        holder: RegistryHolder,
        source: Union[str, Path] = REMOTE_BANK_URL,
        *,
        interval_seconds: float = 300,
        backoff_base_seconds: float = 5,
        timeout: float = 10,
    ):
        self.holder = holder
        self.source = source
        self.interval_seconds = interval_seconds
        self.backoff_base_seconds = backoff_base_seconds
        self.timeout = timeout
        self.consecutive_failures = 0

    def reload_once(self) -> bool:
        try:
            fresh = fetch_registry(self.source, timeout=self.timeout)
        except (FetchError, CorruptSnapshot) as exc:
            self.consecutive_failures += 1
            logger.warning("Bank reload failed (%s in a row): %s", self.consecutive_failures, exc)
            return False

        current = self.holder.current
        problem = _append_only_violation(current, fresh)
        if problem:
            self.consecutive_failures += 1
            logger.warning("Refusing reloaded bank: %s", problem)
            return False

        self.consecutive_failures = 0
        if fresh.snapshot != current.snapshot:
            self.holder.swap(fresh)
            logger.info(
                "Adopted bank with %s foods and %s locations",
                len(fresh.registry.foods),
                len(fresh.registry.locations),
            )
        return True

    def next_delay(self) -> float:
        if self.consecutive_failures == 0:
            return self.interval_seconds
        backoff = self.backoff_base_seconds * (2 ** (self.consecutive_failures - 1))
        return min(backoff, self.interval_seconds)
