"""Canonicalise raw food and location names into registry keys."""

from __future__ import annotations

import re
from typing import Dict, Mapping, TypeVar

UNDERSCORE_RE = re.compile(r"_")
DISALLOWED_RE = re.compile(r"[^A-Za-z0-9\- ]")
SPACE_RUN_RE = re.compile(r" +")

V = TypeVar("V")


def sanitize(raw: str) -> str:
    """Return the canonical form of ``raw``.

    Underscores become spaces, anything outside ``[A-Za-z0-9- ]`` is dropped,
    the result is trimmed, runs of spaces collapse to one and everything is
    lowercased. An empty result means the input was gibberish and must not be
    registered.
    """
    text = UNDERSCORE_RE.sub(" ", raw)
    text = DISALLOWED_RE.sub("", text)
    text = text.strip()
    return SPACE_RUN_RE.sub(" ", text).lower()


def sanitize_keys(mapping: Mapping[str, V]) -> Dict[str, V]:
    """Re-key ``mapping`` by sanitized name; the first value seen for a key wins."""
    result: Dict[str, V] = {}
    for key, value in mapping.items():
        result.setdefault(sanitize(key), value)
    return result
