"""Protocol-buffer wire encoders/decoders for the bank snapshot and vote payloads.

Only the handful of wire types the two messages need are supported. Decoding
errors raise ``ValueError``; callers translate them into the domain error that
fits the payload being parsed.
"""

from __future__ import annotations

from typing import Iterator, Tuple, Union

VARINT = 0
FIXED64 = 1
LENGTH_DELIMITED = 2
FIXED32 = 5

FieldValue = Union[int, bytes]


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    current = value
    while current > 0x7F:
        out.append((current & 0x7F) | 0x80)
        current >>= 7
    out.append(current)
    return bytes(out)


def decode_varint(data: bytes, offset: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    index = offset
    while True:
        if index >= len(data):
            raise ValueError("truncated varint")
        byte = data[index]
        result |= (byte & 0x7F) << shift
        index += 1
        if byte < 0x80:
            return result, index
        shift += 7
        if shift >= 64:
            raise ValueError("varint too large")


def _key(field_number: int, wire_type: int) -> bytes:
    return encode_varint((field_number << 3) | wire_type)


def encode_uint(field_number: int, value: int) -> bytes:
    # proto3 omits default scalars
    if value == 0:
        return b""
    return _key(field_number, VARINT) + encode_varint(value)


def encode_bytes(field_number: int, value: bytes) -> bytes:
    return _key(field_number, LENGTH_DELIMITED) + encode_varint(len(value)) + value


def encode_string(field_number: int, value: str) -> bytes:
    return encode_bytes(field_number, value.encode("utf-8"))


def _read_length_delimited(data: bytes, offset: int) -> Tuple[bytes, int]:
    size, index = decode_varint(data, offset)
    end = index + size
    if end > len(data):
        raise ValueError("truncated length-delimited field")
    return data[index:end], end


def _read_fixed(data: bytes, offset: int, width: int) -> Tuple[int, int]:
    end = offset + width
    if end > len(data):
        raise ValueError("truncated fixed-width field")
    return int.from_bytes(data[offset:end], "little"), end


def iter_fields(data: bytes) -> Iterator[Tuple[int, int, FieldValue]]:
    """Yield ``(field_number, wire_type, value)`` for every field in ``data``."""
    index = 0
    while index < len(data):
        key, index = decode_varint(data, index)
        field = key >> 3
        wire_type = key & 0b111
        if field == 0:
            raise ValueError("field number 0 is reserved")
        value: FieldValue
        if wire_type == VARINT:
            value, index = decode_varint(data, index)
        elif wire_type == LENGTH_DELIMITED:
            value, index = _read_length_delimited(data, index)
        elif wire_type == FIXED64:
            value, index = _read_fixed(data, index, 8)
        elif wire_type == FIXED32:
            value, index = _read_fixed(data, index, 4)
        else:
            raise ValueError(f"unsupported wire type: {wire_type}")
        yield field, wire_type, value


def decode_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError(f"invalid utf-8 in string field: {exc}") from exc
