"""Speech-oriented cleanup for user-facing strings."""

from __future__ import annotations

import re


def _digit_table() -> dict[str, str]:
    table: dict[str, str] = {}
    ranges = (
        (0x2460, 1, 20),  # circled 1-20
        (0x2474, 1, 20),  # parenthesized 1-20
        (0x2488, 1, 20),  # digit full stop 1-20
        (0x24EB, 11, 20),  # negative circled 11-20
        (0x24F5, 1, 10),  # double circled 1-10
        (0x2776, 1, 10),  # dingbat negative circled
        (0x2780, 1, 10),  # dingbat circled sans-serif
        (0x278A, 1, 10),  # dingbat negative circled sans-serif
    )
    for start, first, last in ranges:
        for offset, number in enumerate(range(first, last + 1)):
            table[chr(start + offset)] = f" {number}. "
    table["\u24ea"] = " 0. "
    return table


_NUMBERED_SYMBOLS = _digit_table()
_NUMBERED_SYMBOL_PATTERN = re.compile("[" + "".join(_NUMBERED_SYMBOLS) + "]")
_KEYCAP_PATTERN = re.compile("([0-9#*])\ufe0f?\u20e3")
_PAREN_NUMBER_PATTERN = re.compile(r"(?:^|(?<=[\s:;,.]))\((\d{1,2})\)\s+")
_LINE_NUMBER_PATTERN = re.compile(r"(?m)^\s*(\d{1,2})\)\s+")

_HEADER_PATTERN = re.compile(r"(?m)^\s{0,3}#{1,6}\s+")
_BOLD_PATTERN = re.compile(r"\*\*(.+?)\*\*|__(.+?)__", re.DOTALL)
_ITALIC_PATTERN = re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])")
_CODE_PATTERN = re.compile(r"`([^`]*)`")
_BULLET_PATTERN = re.compile("(?m)^\\s*[-*+\u2022]\\s+")

_SYMBOL_PATTERN = re.compile(
    "["
    "\U0001f000-\U0001faff"  # pictographs, emoticons, transport, supplemental symbols
    "\u2190-\u21ff"  # arrows
    "\u2300-\u23ff"  # technical symbols
    "\u2460-\u24ff"  # enclosed alphanumerics
    "\u25a0-\u25ff"  # geometric shapes
    "\u2600-\u27bf"  # miscellaneous symbols and dingbats
    "\u2b00-\u2bff"  # arrows and stars
    "\u2022\u2023\u2043"  # bullets
    "\ufe00-\ufe0f"  # variation selectors
    "\u200d"  # zero width joiner
    "\u20e3"  # combining keycap
    "\U000e0020-\U000e007f"  # tag characters
    "]"
)
_WHITESPACE_PATTERN = re.compile(r"\s+")


def strip_markdown(text: str) -> str:
    text = _HEADER_PATTERN.sub("", text)
    text = _BOLD_PATTERN.sub(lambda match: match.group(1) or match.group(2) or "", text)
    text = _ITALIC_PATTERN.sub(r"\1", text)
    text = _CODE_PATTERN.sub(r"\1", text)
    return _BULLET_PATTERN.sub("", text)


def normalize_numbering(text: str) -> str:
    """Rewrite decorative and inline list numbers as ``N.``."""
    text = _KEYCAP_PATTERN.sub(lambda match: f" {match.group(1)}. " if match.group(1).isdigit() else " ", text)
    text = _NUMBERED_SYMBOL_PATTERN.sub(lambda match: _NUMBERED_SYMBOLS[match.group(0)], text)
    text = _LINE_NUMBER_PATTERN.sub(r"\1. ", text)
    return _PAREN_NUMBER_PATTERN.sub(r"\1. ", text)


def strip_symbols(text: str) -> str:
    return _SYMBOL_PATTERN.sub("", text)


def clean_speakable_text(text: str) -> str:
    """Make ``text`` safe for display and text-to-speech.

    Markdown is removed, numbering symbols become plain ``N.`` markers,
    emoji and decorative symbols are dropped and whitespace is collapsed.
    """
    if not text:
        return ""
    text = strip_markdown(text)
    text = normalize_numbering(text)
    text = strip_symbols(text)
    return _WHITESPACE_PATTERN.sub(" ", text).strip()
