"""Turn a client's old/new vote bitmaps into per-food counter deltas.

Bit ``byte_index * 8 + bit_index`` is the food with that ID, where bit 0 is
the least significant bit of each byte. Clients depend on this ordering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Sequence

from . import wire
from .errors import MalformedPayload

INCREMENT = 1
DECREMENT = -1

# Votes message fields
_OLD_BIT_MAP = 1
_NEW_BIT_MAP = 2


@dataclass(frozen=True)
class VoteDiffRequest:
    old_bitmap: bytes
    new_bitmap: bytes


class VoteDelta(NamedTuple):
    food_id: int
    direction: int


def decode_votes(body: bytes) -> VoteDiffRequest:
    old_bitmap = b""
    new_bitmap = b""
    try:
        for number, wire_type, value in wire.iter_fields(body):
            if wire_type != wire.LENGTH_DELIMITED:
                continue
            if number == _OLD_BIT_MAP:
                old_bitmap = bytes(value)
            elif number == _NEW_BIT_MAP:
                new_bitmap = bytes(value)
    except ValueError as exc:
        raise MalformedPayload(f"Vote payload failed to decode: {exc}") from exc
    return VoteDiffRequest(old_bitmap=old_bitmap, new_bitmap=new_bitmap)


def encode_votes(request: VoteDiffRequest) -> bytes:
    return wire.encode_bytes(_OLD_BIT_MAP, request.old_bitmap) + wire.encode_bytes(
        _NEW_BIT_MAP, request.new_bitmap
    )


def max_bitmap_bytes(food_count: int) -> int:
    """Bytes needed to give every known food a bit; the last byte may carry padding."""
    return (food_count + 7) // 8


def bitmap_for(food_ids: Iterable[int], food_count: int) -> bytes:
    """Bitmap sized for ``food_count`` known foods with ``food_ids`` set."""
    bitmap = bytearray(max_bitmap_bytes(food_count))
    for food_id in food_ids:
        if not 0 <= food_id < food_count:
            raise ValueError(f"food id {food_id} is outside the {food_count} known foods")
        bitmap[food_id // 8] |= 1 << (food_id % 8)
    return bytes(bitmap)


def validate(request: VoteDiffRequest, lookup: Sequence[str]) -> None:
    if len(request.old_bitmap) != len(request.new_bitmap):
        raise MalformedPayload(
            f"Bitmap lengths differ: {len(request.old_bitmap)} != {len(request.new_bitmap)}"
        )
    if len(request.old_bitmap) > max_bitmap_bytes(len(lookup)):
        raise MalformedPayload(
            f"Bitmap of {len(request.old_bitmap)} bytes covers more foods than the {len(lookup)} known"
        )


def diff_and_map(request: VoteDiffRequest, lookup: Sequence[str]) -> List[VoteDelta]:
    """Return one delta per flipped bit whose food ID is known.

    Validation runs before any work so a rejected request has no effect. Bits
    that point at an ID without a name are stale client references and are
    dropped.
    """
    validate(request, lookup)
    deltas: List[VoteDelta] = []
    for byte_index, (old_byte, new_byte) in enumerate(zip(request.old_bitmap, request.new_bitmap)):
        changed = old_byte ^ new_byte
        if not changed:
            continue
        for bit_index in range(8):
            if not (changed >> bit_index) & 1:
                continue
            food_id = byte_index * 8 + bit_index
            if food_id >= len(lookup) or not lookup[food_id]:
                continue
            direction = INCREMENT if (new_byte >> bit_index) & 1 else DECREMENT
            deltas.append(VoteDelta(food_id=food_id, direction=direction))
    return deltas
