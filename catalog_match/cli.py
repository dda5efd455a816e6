from __future__ import annotations

import argparse
import logging
import signal
from collections import Counter
from pathlib import Path
from typing import List, Optional

from . import decision as policy
from .config import Settings, find_config
from .engine import ReconcileEngine
from .errors import ConfigurationFatal
from .exclusions import append_exclusion, load_exclusion_file, merge_patterns
from .models import Decision, DecisionMode, FolderLevel, ResolutionResult
from .providers.gateway import AbortSignal
from .providers.musicbrainz import MusicBrainzCatalog
from .renamer import FolderRenamer
from .result_log import ResultLog, format_result, summarize
from .scanner import LibraryScanner
from .tagging import AlbumTags, TagFixer

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}

logger = logging.getLogger(__name__)


class ShortPathFormatter(logging.Formatter):
    def __init__(self, fmt: str, roots: list[Path]) -> None:
        super().__init__(fmt)
        self.roots = [str(root) for root in roots if root]

    def _shorten(self, message: str) -> str:
        for root in self.roots:
            if not message:
                break
            message = message.replace(f"{root}/", "")
            message = message.replace(root, "")
        return message

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        return self._shorten(message)


class ColorFormatter(ShortPathFormatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def configure_logging(level_name: str, roots: list[Path]) -> tuple[WarningBufferHandler, Path]:
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    display_roots = [root.resolve() for root in roots]

    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(warn_buffer)

    warn_log_path = Path.cwd() / "catalog-match-warnings.log"
    file_handler = logging.FileHandler(warn_log_path, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(file_handler)

    logging.getLogger("musicbrainzngs").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    return warn_buffer, warn_log_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Match artist/album folders against the MusicBrainz catalog"
    )
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    scan_parser = subparsers.add_parser("scan", help="Resolve every artist/album folder")
    scan_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in DecisionMode],
        default=None,
        help="Override decision.mode from the config",
    )
    scan_parser.add_argument(
        "--apply",
        action="store_true",
        help="Rename folders whose decision is 'rename' (default is a dry run)",
    )
    scan_parser.add_argument(
        "--fix-tags",
        action="store_true",
        help="Rewrite album/album artist/date tags of matched albums (requires --apply)",
    )
    scan_parser.add_argument(
        "--results",
        type=Path,
        help="Write one JSON record per folder to this file (JSON Lines)",
    )
    scan_parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Skip unmatched folders instead of flagging them for review in automatic mode",
    )
    exclude_parser = subparsers.add_parser(
        "exclude", help="Add a folder name or glob pattern to the exclusion file"
    )
    exclude_parser.add_argument("pattern", help="Exact folder name or glob (* ? [...])")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    config_path = find_config(args.config)
    settings = Settings.load(config_path)
    warn_buffer, warn_log_path = configure_logging(args.log_level, settings.library.roots)
    try:
        match args.command:
            case "scan":
                run_scan(
                    settings,
                    mode=args.mode,
                    apply=args.apply,
                    fix_tags=args.fix_tags,
                    results_path=args.results,
                    non_interactive=args.non_interactive,
                )
            case "exclude":
                exclude_file = settings.library.exclude_file
                if exclude_file is None:
                    raise SystemExit("library.exclude_file is not configured")
                if append_exclusion(exclude_file, args.pattern):
                    print(f"Excluded {args.pattern!r}")
                else:
                    print(f"{args.pattern!r} is already excluded")
            case _:
                parser.error("Unknown command")
    finally:
        if warn_buffer.records:
            print("\n\033[33mWarnings/Errors summary:\033[0m")
            for line in warn_buffer.records:
                print(f" - {line}")
            print(f"\nFull warning log: {warn_log_path}")


def run_scan(
    settings: Settings,
    *,
    mode: Optional[str] = None,
    apply: bool = False,
    fix_tags: bool = False,
    results_path: Optional[Path] = None,
    non_interactive: bool = False,
) -> Counter:
    if mode:
        settings.decision.mode = DecisionMode(mode)
    if non_interactive:
        settings.decision.non_interactive = True
    try:
        client = MusicBrainzCatalog(settings.providers)
    except ConfigurationFatal as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    abort = AbortSignal()
    engine = ReconcileEngine.from_settings(settings, client, abort=abort)
    scanner = LibraryScanner(settings.library)
    exclusions = merge_patterns(
        settings.library.exclude_patterns,
        load_exclusion_file(settings.library.exclude_file),
    )
    renamer = FolderRenamer(dry_run=not apply)
    tag_fixer = TagFixer() if fix_tags and apply else None
    log = ResultLog(results_path) if results_path else None
    totals: Counter = Counter()

    def _interrupt(_signum, _frame) -> None:
        if abort.is_set():
            raise KeyboardInterrupt
        logger.warning("Abort requested; finishing in-flight lookups (Ctrl-C again to stop now)")
        abort.raise_signal()

    previous_handler = signal.signal(signal.SIGINT, _interrupt)
    try:
        for entry in scanner.iter_entries():
            try:
                results = list(engine.process_library([entry], exclusions))
            except ConfigurationFatal as exc:
                raise SystemExit(f"Configuration error: {exc}") from exc
            for result in results:
                print(format_result(result))
                if log:
                    log.write(result)
            totals.update(summarize(results))
            _apply_results(results, renamer, tag_fixer, scanner)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        if log:
            log.close()

    print("\nSummary: " + ", ".join(f"{key}={value}" for key, value in sorted(totals.items())))
    logger.info(
        "Catalog lookups: %d remote call(s), %d cache hit(s)",
        engine.gateway.remote_calls,
        engine.gateway.cache.hits,
    )
    return totals


def _apply_results(
    results: List[ResolutionResult],
    renamer: FolderRenamer,
    tag_fixer: Optional[TagFixer],
    scanner: LibraryScanner,
) -> None:
    # Albums first: renaming the artist folder would invalidate their paths.
    for result in results:
        if result.level != FolderLevel.ALBUM:
            continue
        target = renamer.apply(result)
        if tag_fixer is None or result.local_folder.path is None:
            continue
        if result.decision == Decision.RENAME and target is not None:
            directory = target
        elif result.decision == Decision.SKIP and result.reason == policy.ALREADY_CORRECT:
            directory = result.local_folder.path
        else:
            continue
        tags = AlbumTags.from_result(result)
        if tags:
            changed = tag_fixer.fix_files(scanner.audio_files(directory), tags)
            if changed:
                logger.info("Updated tags on %d file(s) in %s", changed, directory)
    for result in results:
        if result.level == FolderLevel.ARTIST:
            renamer.apply(result)


if __name__ == "__main__":
    main()
