from __future__ import annotations

import fnmatch
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

GLOB_CHARS = frozenset("*?[]")


def is_glob(pattern: str) -> bool:
    return any(char in GLOB_CHARS for char in pattern)


def is_excluded(folder_name: str, patterns: Sequence[str]) -> bool:
    """True when any pattern matches the folder name.

    Patterns with ``* ? [ ]`` are shell globs; anything else is an exact,
    case-insensitive comparison. A glob that fails to compile never matches.
    """
    name = folder_name.lower()
    for pattern in patterns:
        if _pattern_matches(name, pattern):
            return True
    return False


def first_matching_pattern(folder_name: str, patterns: Sequence[str]) -> Optional[str]:
    name = folder_name.lower()
    for pattern in patterns:
        if _pattern_matches(name, pattern):
            return pattern
    return None


def _pattern_matches(name: str, pattern: str) -> bool:
    if not is_glob(pattern):
        return name == pattern.lower()
    compiled = _compile_glob(pattern.lower())
    if compiled is None:
        return False
    return compiled.match(name) is not None


@lru_cache(maxsize=512)
def _compile_glob(pattern: str) -> Optional[re.Pattern[str]]:
    try:
        return re.compile(fnmatch.translate(pattern))
    except re.error as exc:
        logger.debug("Ignoring malformed exclusion pattern %r: %s", pattern, exc)
        return None


def load_exclusion_file(path: Optional[Path]) -> List[str]:
    """Read one pattern per line; blank lines and ``#`` comments are ignored."""
    if not path or not path.exists():
        return []
    patterns: List[str] = []
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            value = line.rstrip("\r\n")
            if not value.strip() or value.lstrip().startswith("#"):
                continue
            patterns.append(value.strip())
    return patterns


def append_exclusion(path: Path, pattern: str) -> bool:
    """Add a pattern to the exclusion file unless it is already listed."""
    existing = load_exclusion_file(path)
    if pattern in existing:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(f"{pattern}\n")
    logger.info("Added exclusion %r to %s", pattern, path)
    return True


def merge_patterns(*sources: Iterable[str]) -> List[str]:
    merged: List[str] = []
    seen: set[str] = set()
    for source in sources:
        for pattern in source:
            if pattern in seen:
                continue
            seen.add(pattern)
            merged.append(pattern)
    return merged
