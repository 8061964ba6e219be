from __future__ import annotations

import pytest

from dining_votes.sanitize import sanitize, sanitize_keys

SAMPLES = [
    "hello_world",
    "Rust-lang",
    "  multiple   spaces  ",
    "!@#$%^&*()",
    "Crème Brûlée",
    "_start_end_",
    "Grilled Chicken (Halal)",
    "   ",
    "",
    "Mac & Cheese__Bar",
    "a\tb\nc",
]


def test_basic() -> None:
    assert sanitize("hello_world") == "hello world"
    assert sanitize("Rust-lang") == "rust-lang"
    assert sanitize("clean-this_text!") == "clean-this text"


def test_leading_trailing_spaces() -> None:
    assert sanitize("   hello   ") == "hello"
    assert sanitize("  multiple   spaces  ") == "multiple spaces"


def test_special_characters() -> None:
    assert sanitize("!@#$%^&*()") == ""
    assert sanitize("abc123!@#") == "abc123"


def test_underscores_and_dashes() -> None:
    assert sanitize("hello_world-test") == "hello world-test"
    assert sanitize("_start_end_") == "start end"


def test_empty_string() -> None:
    assert sanitize("") == ""
    assert sanitize("     ") == ""


def test_non_ascii_and_control_characters_are_dropped() -> None:
    assert sanitize("Crème Brûlée") == "crme brle"
    assert sanitize("a\tb\nc") == "abc"
    assert sanitize("Mac & Cheese__Bar") == "mac cheese bar"


@pytest.mark.parametrize("raw", SAMPLES)
def test_sanitize_is_idempotent(raw: str) -> None:
    once = sanitize(raw)
    assert sanitize(once) == once


def test_sanitize_keys_keeps_first_value_per_canonical_key() -> None:
    result = sanitize_keys({"Pizza!": 1, "pizza": 2, "Salad_Bar": 3})
    assert result == {"pizza": 1, "salad bar": 3}
