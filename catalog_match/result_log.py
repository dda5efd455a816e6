from __future__ import annotations

import json
import logging
from collections import Counter
from pathlib import Path
from typing import IO, Iterable, Optional

from .models import ResolutionResult

logger = logging.getLogger(__name__)


class ResultLog:
    """Appends one JSON object per ``ResolutionResult`` (JSON Lines)."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh: Optional[IO[str]] = self.path.open("w", encoding="utf-8")
        self.count = 0

    def write(self, result: ResolutionResult) -> None:
        if self._fh is None:
            raise ValueError(f"result log {self.path} is closed")
        self._fh.write(json.dumps(result.to_record(), ensure_ascii=False) + "\n")
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            logger.info("Wrote %d result(s) to %s", self.count, self.path)

    def __enter__(self) -> "ResultLog":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()


def summarize(results: Iterable[ResolutionResult]) -> Counter:
    return Counter(result.decision.value for result in results)


def format_result(result: ResolutionResult) -> str:
    target = result.proposed_folder_name or "-"
    return (
        f"[{result.decision.value:<13}] {result.level.value:<6} "
        f"{result.local_folder.name} -> {target} ({result.reason}, {result.confidence:.2f})"
    )
