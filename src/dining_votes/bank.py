"""Food/location registry ("bank") with stable, append-only integer IDs.

The bank is the shared vocabulary between the builder, the vote server and
clients: bit ``i`` of a vote bitmap is the food whose ID is ``i``. IDs are
therefore never reassigned or reused, and the ``next_*_id`` counters only grow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, Tuple, Union

from . import wire
from .errors import CorruptSnapshot
from .sanitize import sanitize, sanitize_keys

logger = logging.getLogger(__name__)

NO_LOCATION = "none"
DEFAULT_BANK_PATH = Path("bank.bin")

# Bank message fields
_FOODS = 1
_LOCATIONS = 2
_NEXT_FOOD_ID = 3
_NEXT_LOCATION_ID = 4

# IDs and counters are uint32 on the wire
MAX_ID = 0xFFFF_FFFF


@dataclass
class FoodEntry:
    id: int
    name: str
    location: str = NO_LOCATION


@dataclass
class LocationEntry:
    id: int
    name: str


@dataclass
class Registry:
    """Canonical name -> entry maps for foods and locations plus the ID counters."""

    foods: Dict[str, FoodEntry] = field(default_factory=dict)
    locations: Dict[str, LocationEntry] = field(default_factory=dict)
    next_food_id: int = 0
    next_location_id: int = 0

    def copy(self) -> "Registry":
        return Registry(
            foods={name: replace(entry) for name, entry in self.foods.items()},
            locations={name: replace(entry) for name, entry in self.locations.items()},
            next_food_id=self.next_food_id,
            next_location_id=self.next_location_id,
        )

    def add_location(self, name: str) -> Tuple[LocationEntry, bool]:
        """Return the entry for ``name``, registering it first if it is new."""
        entry = self.locations.get(name)
        if entry is not None:
            return entry, False
        entry = LocationEntry(id=self.next_location_id, name=name)
        self.locations[name] = entry
        self.next_location_id += 1
        return entry, True

    def add_food(self, name: str, location: str = NO_LOCATION) -> Tuple[FoodEntry, bool]:
        entry = self.foods.get(name)
        if entry is not None:
            return entry, False
        entry = FoodEntry(id=self.next_food_id, name=name, location=location)
        self.foods[name] = entry
        self.next_food_id += 1
        return entry, True


def save(registry: Registry) -> bytes:
    """Serialise ``registry``; entries are sorted by name so diffs stay readable."""
    _check_ids(registry)
    parts = []
    for name in sorted(registry.foods):
        entry = registry.foods[name]
        payload = b"".join(
            [
                wire.encode_uint(1, entry.id),
                wire.encode_string(2, entry.name),
                wire.encode_string(3, entry.location or NO_LOCATION),
            ]
        )
        parts.append(wire.encode_bytes(_FOODS, payload))
    for name in sorted(registry.locations):
        entry = registry.locations[name]
        payload = wire.encode_uint(1, entry.id) + wire.encode_string(2, entry.name)
        parts.append(wire.encode_bytes(_LOCATIONS, payload))
    parts.append(wire.encode_uint(_NEXT_FOOD_ID, registry.next_food_id))
    parts.append(wire.encode_uint(_NEXT_LOCATION_ID, registry.next_location_id))
    return b"".join(parts)


def _check_ids(registry: Registry) -> None:
    for kind, ids in (
        ("food", [e.id for e in registry.foods.values()] + [registry.next_food_id]),
        ("location", [e.id for e in registry.locations.values()] + [registry.next_location_id]),
    ):
        for value in ids:
            if not 0 <= value <= MAX_ID:
                raise ValueError(f"{kind} id {value} does not fit in uint32")


def _parse_entry(data: bytes) -> Tuple[int, str, str]:
    entry_id = 0
    name = ""
    location = NO_LOCATION
    for number, wire_type, value in wire.iter_fields(data):
        if number == 1 and wire_type == wire.VARINT:
            entry_id = int(value)
        elif number == 2 and wire_type == wire.LENGTH_DELIMITED:
            name = wire.decode_text(bytes(value))
        elif number == 3 and wire_type == wire.LENGTH_DELIMITED:
            location = wire.decode_text(bytes(value)) or NO_LOCATION
    return entry_id, name, location


def load(snapshot: bytes) -> Registry:
    """Decode a snapshot produced by :func:`save`.

    Raises :class:`CorruptSnapshot` when the bytes do not follow the schema or
    the decoded contents break the registry invariants (empty names, duplicate
    names or IDs, IDs beyond the counters).
    """
    registry = Registry()
    food_ids: set[int] = set()
    location_ids: set[int] = set()
    try:
        for number, wire_type, value in wire.iter_fields(snapshot):
            if number in (_FOODS, _LOCATIONS) and wire_type == wire.LENGTH_DELIMITED:
                entry_id, name, location = _parse_entry(bytes(value))
                if not name:
                    raise ValueError("entry with empty name")
                if number == _FOODS:
                    if name in registry.foods or entry_id in food_ids:
                        raise ValueError(f"duplicate food entry {name!r} / {entry_id}")
                    registry.foods[name] = FoodEntry(id=entry_id, name=name, location=location)
                    food_ids.add(entry_id)
                else:
                    if name in registry.locations or entry_id in location_ids:
                        raise ValueError(f"duplicate location entry {name!r} / {entry_id}")
                    registry.locations[name] = LocationEntry(id=entry_id, name=name)
                    location_ids.add(entry_id)
            elif number == _NEXT_FOOD_ID and wire_type == wire.VARINT:
                registry.next_food_id = int(value)
            elif number == _NEXT_LOCATION_ID and wire_type == wire.VARINT:
                registry.next_location_id = int(value)
        _check_ids(registry)
    except ValueError as exc:
        raise CorruptSnapshot(f"Bank snapshot failed to decode: {exc}") from exc

    if food_ids and max(food_ids) >= registry.next_food_id:
        raise CorruptSnapshot(
            f"food id {max(food_ids)} is not below next_food_id {registry.next_food_id}"
        )
    if location_ids and max(location_ids) >= registry.next_location_id:
        raise CorruptSnapshot(
            f"location id {max(location_ids)} is not below next_location_id {registry.next_location_id}"
        )
    return registry


def read_bank(path: Union[str, Path] = DEFAULT_BANK_PATH) -> Registry:
    """Load the bank at ``path``; a missing file yields an empty registry."""
    bank_path = Path(path)
    if not bank_path.exists():
        logger.warning("Bank %s not found; starting from an empty registry", bank_path)
        return Registry()
    return load(bank_path.read_bytes())


def write_bank(registry: Registry, path: Union[str, Path] = DEFAULT_BANK_PATH) -> None:
    """Write the snapshot next to ``path`` and move it into place in one step."""
    bank_path = Path(path)
    bank_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = bank_path.with_suffix(bank_path.suffix + ".tmp")
    tmp.write_bytes(save(registry))
    tmp.replace(bank_path)



def merge_menu(
    registry: Registry,
    feed_items: Iterable[Tuple[str, str]],
    is_current_day: bool,
) -> Tuple[int, int]:
    """Merge raw ``(location, item)`` pairs into ``registry``.

    New names get the next free ID in first-seen order. Only a scan of the
    current day may set or move a food's location; backfilled days just add
    vocabulary. Returns ``(new_food_count, new_location_count)``.
    """
    new_foods = 0
    new_locations = 0
    for location_raw, item_raw in feed_items:
        location = sanitize(location_raw)
        if not location:
            continue
        _, created = registry.add_location(location)
        if created:
            logger.info("New location! %s", location)
            new_locations += 1

        name = sanitize(item_raw)
        if not name:
            continue
        entry, created = registry.add_food(name, location if is_current_day else NO_LOCATION)
        if created:
            logger.info("New item! %s", name)
            new_foods += 1
        elif is_current_day:
            entry.location = location
    return new_foods, new_locations


def normalize(registry: Registry) -> None:
    """Re-sanitize names and collapse duplicates in place, keeping the lowest ID.

    Names are canonical on ingestion so this is normally a no-op. IDs are never
    renumbered and the counters never move backwards.
    """
    seen_food_ids = [entry.id for entry in registry.foods.values()]
    seen_location_ids = [entry.id for entry in registry.locations.values()]

    foods = sanitize_keys(
        {entry.name: entry for entry in sorted(registry.foods.values(), key=lambda e: e.id)}
    )
    registry.foods = {
        name: FoodEntry(id=entry.id, name=name, location=sanitize(entry.location) or NO_LOCATION)
        for name, entry in foods.items()
        if name
    }
    locations = sanitize_keys(
        {entry.name: entry for entry in sorted(registry.locations.values(), key=lambda e: e.id)}
    )
    registry.locations = {
        name: LocationEntry(id=entry.id, name=name) for name, entry in locations.items() if name
    }
    # dropped entries still burn their IDs
    if seen_food_ids:
        registry.next_food_id = max(registry.next_food_id, max(seen_food_ids) + 1)
    if seen_location_ids:
        registry.next_location_id = max(registry.next_location_id, max(seen_location_ids) + 1)
