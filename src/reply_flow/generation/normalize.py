"""Sanitisation of raw model output.

Removes structural leakage the model tends to echo back from the composed
prompt (section tags, role labels, fences, wrapping quotes) plus emoji.
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterable

from ..types import RawGeneration

_LEADING_META_RE = re.compile(r"^(?:\s*\[[^\]]+\]\s*)+")
_ROLE_LABEL_RE = re.compile(r"^(?:assistant|system|user)\s*:\s*", re.IGNORECASE)
_QUOTE_PREFIX_RE = re.compile(r"^\s*>\s?")
_MULTI_SPACE_RE = re.compile(r"\s{2,}")

_TRAILING_META_MARKERS = ("\n[", "\nUser:", "\n```", "\n#", "\n---")

_WRAPPING_QUOTES = (('"', '"'), ("'", "'"), ("“", "”"), ("‘", "’"))

_EMOJI_RE = re.compile(
    "["
    "\U0001F000-\U0001F02F"  # Mahjong / domino tiles
    "\U0001F0A0-\U0001F0FF"  # Playing cards
    "\U0001F100-\U0001F1FF"  # Enclosed alphanumerics, regional indicators
    "\U0001F200-\U0001F2FF"  # Enclosed ideographic supplement
    "\U0001F300-\U0001F5FF"  # Misc Symbols and Pictographs
    "\U0001F600-\U0001F64F"  # Emoticons
    "\U0001F680-\U0001F6FF"  # Transport and Map
    "\U0001F700-\U0001F7FF"  # Alchemical, geometric shapes extended
    "\U0001F800-\U0001F8FF"  # Supplemental Arrows-C
    "\U0001F900-\U0001F9FF"  # Supplemental Symbols and Pictographs
    "\U0001FA00-\U0001FAFF"  # Chess, Symbols and Pictographs Extended-A
    "\u2600-\u27bf"  # Misc symbols, dingbats
    "\u231a\u231b\u23e9-\u23f3\u23f8-\u23fa"
    "\u24c2\u25aa\u25ab\u25b6\u25c0\u25fb-\u25fe"
    "\u2b05-\u2b07\u2b1b\u2b1c\u2b50\u2b55"
    "\u3030\u303d\u3297\u3299"
    "\u200d\ufe0e\ufe0f\u20e3"  # ZWJ, variation selectors, keycap
    "\U000E0020-\U000E007F"  # Tag characters (flag sequences)
    "]+"
)


def strip_emojis(text: str) -> str:
    return _EMOJI_RE.sub("", text)


def strip_wrapping_quotes(text: str) -> str:
    """Remove markdown quote prefixes, code fences, backticks and one pair of quotes."""

    t = text.strip()
    t = "\n".join(_QUOTE_PREFIX_RE.sub("", line) for line in t.split("\n")).strip()
    if t.startswith("```") and t.endswith("```") and len(t) >= 6:
        t = t.lstrip("`").rstrip("`").strip()
    if t.startswith("`") and t.endswith("`"):
        t = t.lstrip("`").rstrip("`").strip()
    for opening, closing in _WRAPPING_QUOTES:
        if len(t) >= 2 and t.startswith(opening) and t.endswith(closing):
            t = t[len(opening) : len(t) - len(closing)].strip()
            break
    return _MULTI_SPACE_RE.sub(" ", t).strip()


def clean_generation(text: str | None) -> str:
    """Return the presentable reply hidden in one raw generation."""

    s = (text or "").strip()
    s = _LEADING_META_RE.sub("", s).strip()
    s = _ROLE_LABEL_RE.sub("", s).strip()

    cuts = [pos for pos in (s.find(marker) for marker in _TRAILING_META_MARKERS) if pos > 0]
    if cuts:
        s = s[: min(cuts)].strip()

    s = strip_emojis(s)
    s = strip_wrapping_quotes(s)
    return _MULTI_SPACE_RE.sub(" ", s).strip()


def normalize_generations(raw: Iterable[RawGeneration]) -> tuple[list[RawGeneration], int]:
    """Clean every generation; returns the non-empty ones and how many were discarded."""

    kept: list[RawGeneration] = []
    discarded = 0
    for generation in raw:
        cleaned = clean_generation(generation.text)
        if not cleaned:
            discarded += 1
            continue
        kept.append(replace(generation, text=cleaned))
    return kept, discarded


__all__ = ["clean_generation", "normalize_generations", "strip_emojis", "strip_wrapping_quotes"]
