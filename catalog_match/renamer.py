from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from .models import Decision, ResolutionResult

logger = logging.getLogger(__name__)


class FolderRenamer:
    """Applies ``rename`` decisions to the filesystem; never overwrites a directory."""

    def __init__(self, dry_run: bool = True) -> None:
        self.dry_run = dry_run
        self.renamed = 0
        self.conflicts = 0

    def target_for(self, result: ResolutionResult) -> Optional[Path]:
        source = result.local_folder.path
        if source is None or not result.proposed_folder_name:
            return None
        return source.with_name(result.proposed_folder_name)

    def apply(self, result: ResolutionResult) -> Optional[Path]:
        if result.decision != Decision.RENAME:
            return None
        source = result.local_folder.path
        target = self.target_for(result)
        if source is None or target is None or source == target:
            return None
        if not source.is_dir():
            logger.warning("Cannot rename %s: directory no longer exists", source)
            return None
        case_only = source.name.lower() == target.name.lower()
        if target.exists() and not (case_only and _same_directory(source, target)):
            self.conflicts += 1
            logger.warning("Not renaming %s: %s already exists", source, target.name)
            return None
        if self.dry_run:
            logger.info("Would rename %s -> %s", source, target.name)
            return target
        if case_only:
            # Two-step rename so case-insensitive filesystems register the change.
            interim = source.with_name(f".{source.name}.{uuid.uuid4().hex[:8]}")
            os.rename(source, interim)
            os.rename(interim, target)
        else:
            os.rename(source, target)
        self.renamed += 1
        logger.info("Renamed %s -> %s", source, target.name)
        return target


def _same_directory(first: Path, second: Path) -> bool:
    try:
        return first.samefile(second)
    except OSError:
        return False
