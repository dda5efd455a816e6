from __future__ import annotations

import re
import unicodedata
from typing import Optional

YEAR_PREFIX_PATTERN = re.compile(
    r"^\s*[\(\[]?(?P<year>(?:19|20)\d{2})[\)\]]?(?:\s*[-–._]\s*|\s+)(?P<title>\S.*)$"
)
BRACKETED_PATTERN = re.compile(r"\s*[\(\[\{][^\)\]\}]*[\)\]\}]")
NOISE_PATTERN = re.compile(
    r"\b(?:deluxe|expanded|remaster(?:ed)?|anniversary|special|limited|collector'?s|"
    r"edition|version|bonus\s+tracks?|disc\s*\d+|cd\s*\d+|\d{1,2}\s*cd)\b",
    re.IGNORECASE,
)
COMPILATION_PATTERN = re.compile(
    r"\b(?:best\s+of|greatest\s+hits|hits|collection|anthology|essential|"
    r"compilation|singles|retrospective|gold)\b",
    re.IGNORECASE,
)
UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]+')


def parse_folder_name(name: str) -> tuple[Optional[int], str]:
    """Split a folder name such as ``"1974 - Sheet Music"`` into year and title.

    A bare year (``"1984"``) is kept as the title, since nothing follows it.
    """
    match = YEAR_PREFIX_PATTERN.match(name or "")
    if match:
        return int(match.group("year")), _clean(match.group("title")) or ""
    return None, _clean(name) or ""


def reduce_keywords(title: str) -> str:
    """Strip bracketed segments and edition noise; fall back to the input when nothing is left."""
    reduced = BRACKETED_PATTERN.sub(" ", title or "")
    reduced = NOISE_PATTERN.sub(" ", reduced)
    reduced = re.sub(r"\s*[-–:]\s*$", "", re.sub(r"\s+", " ", reduced)).strip()
    return reduced or (title or "").strip()


def looks_like_compilation(name: str) -> bool:
    return bool(COMPILATION_PATTERN.search(name or ""))


def safe_folder_name(value: str) -> str:
    cleaned = unicodedata.normalize("NFC", value or "").strip()
    cleaned = UNSAFE_CHARS.sub("-", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip(" .")


def _clean(value: str | None) -> Optional[str]:
    if not value:
        return None
    cleaned = value.replace("_", " ")
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" ._-")
    return cleaned or None
