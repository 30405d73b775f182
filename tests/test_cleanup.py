from __future__ import annotations

import pytest

from toolstream.validation.cleanup import clean_speakable_text, normalize_numbering, strip_markdown


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("**Go now**", "Go now"),
        ("__Go now__", "Go now"),
        ("Take *one* tablet", "Take one tablet"),
        ("# Title\nBody", "Title\nBody"),
        ("- first\n* second", "first\nsecond"),
        ("Use `rest`", "Use rest"),
        ("2 * 3 = 6", "2 * 3 = 6"),
    ],
)
def test_strip_markdown(raw: str, expected: str) -> None:
    assert strip_markdown(raw) == expected


def test_circled_and_keycap_numbers_become_plain_markers() -> None:
    text = chr(0x2460) + "Rest " + chr(0x2461) + "Drink " + "3" + chr(0xFE0F) + chr(0x20E3) + "Sleep"
    assert clean_speakable_text(text) == "1. Rest 2. Drink 3. Sleep"


def test_dingbat_and_parenthesized_numbers() -> None:
    text = chr(0x2776) + "Call " + chr(0x2474) + "Wait"
    assert clean_speakable_text(text) == "1. Call 1. Wait"


def test_inline_parenthesized_markers() -> None:
    assert normalize_numbering("Steps: (1) rest (2) fluids") == "Steps: 1. rest 2. fluids"
    assert normalize_numbering("1) rest\n2) fluids") == "1. rest\n2. fluids"


def test_emoji_and_symbols_are_removed() -> None:
    text = "Go to hospital \U0001f691 now " + chr(0x26A0) + chr(0xFE0F) + " urgent " + chr(0x2192) + " ok"
    assert clean_speakable_text(text) == "Go to hospital now urgent ok"


def test_flag_and_zero_width_joiner_sequences_are_removed() -> None:
    family = "\U0001f468" + chr(0x200D) + "\U0001f469" + chr(0x200D) + "\U0001f467"
    assert clean_speakable_text(f"Family {family} care") == "Family care"


def test_whitespace_is_collapsed() -> None:
    assert clean_speakable_text("  Rest \n\n and   drink\twater  ") == "Rest and drink water"


def test_empty_text_stays_empty() -> None:
    assert clean_speakable_text("") == ""
    assert clean_speakable_text(chr(0x2728)) == ""
