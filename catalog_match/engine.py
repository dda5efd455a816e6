"""
Resolution engine: turn local artist/album folders into ``ResolutionResult``s.

Every folder handed to the engine yields exactly one result. Per-item
failures become result reasons; only ``ConfigurationFatal`` escapes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from . import decision as policy
from .album_resolver import AlbumResolver
from .artist_resolver import ArtistResolver
from .cache import QueryCache, RateLimiter
from .config import Settings
from .errors import InvalidLocalInput, OperationAborted, RemoteUnavailable
from .exclusions import first_matching_pattern
from .heuristics import safe_folder_name
from .models import (
    AlbumResolution,
    ArtistResolution,
    CatalogArtist,
    Decision,
    DecisionMode,
    FolderLevel,
    LocalFolder,
    ResolutionResult,
)
from .providers.base import CatalogClient
from .providers.gateway import AbortSignal, CatalogGateway

logger = logging.getLogger(__name__)

ArtistEntry = Tuple[LocalFolder, Sequence[LocalFolder]]


class ReconcileEngine:
    def __init__(
        self,
        gateway: CatalogGateway,
        *,
        artist_resolver: Optional[ArtistResolver] = None,
        album_resolver: Optional[AlbumResolver] = None,
        mode: DecisionMode = DecisionMode.SMART,
        thresholds: policy.DecisionThresholds = policy.DEFAULT_THRESHOLDS,
        non_interactive: bool = False,
        worker_concurrency: int = 1,
    ) -> None:
        self.gateway = gateway
        self.artist_resolver = artist_resolver or ArtistResolver(gateway)
        self.album_resolver = album_resolver or AlbumResolver(gateway)
        self.mode = mode
        self.thresholds = thresholds
        self.non_interactive = non_interactive
        self.worker_concurrency = max(1, worker_concurrency)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: CatalogClient,
        *,
        abort: Optional[AbortSignal] = None,
    ) -> "ReconcileEngine":
        providers = settings.providers
        gateway = CatalogGateway(
            client,
            cache=QueryCache(),
            limiter=RateLimiter(providers.min_request_interval_seconds),
            retries=providers.network_retries,
            backoff_seconds=providers.network_retry_backoff_seconds,
            batch_size=providers.batch_size,
            abort=abort,
        )
        low_floor = settings.decision.low_confidence_floor
        if low_floor is None:
            low_floor = settings.matching.min_acceptable_score
        return cls(
            gateway,
            artist_resolver=ArtistResolver(gateway, settings.matching),
            album_resolver=AlbumResolver(gateway, settings.matching),
            mode=settings.decision.mode,
            thresholds=policy.DecisionThresholds(
                high_confidence=settings.decision.high_confidence_threshold,
                low_confidence=low_floor,
            ),
            non_interactive=settings.decision.non_interactive,
            worker_concurrency=settings.engine.worker_concurrency,
        )

    @property
    def abort(self) -> AbortSignal:
        return self.gateway.abort

    def resolve_artist(
        self,
        folder: LocalFolder,
        album_folders: Sequence[LocalFolder] = (),
    ) -> ArtistResolution:
        return self.artist_resolver.resolve(folder, album_folders)

    def resolve_album(
        self,
        artist: CatalogArtist,
        folder: LocalFolder,
        *,
        trusted: bool = True,
    ) -> AlbumResolution:
        return self.album_resolver.resolve(artist, folder, trusted=trusted)

    def process_library(
        self,
        entries: Iterable[ArtistEntry],
        exclusions: Sequence[str] = (),
    ) -> Iterator[ResolutionResult]:
        for artist_folder, album_folders in entries:
            pattern = first_matching_pattern(artist_folder.name, exclusions)
            if pattern is not None:
                logger.info("Excluded artist folder %r (matches %r)", artist_folder.name, pattern)
                yield self._outcome(
                    artist_folder, FolderLevel.ARTIST, Decision.SKIP, policy.EXCLUDED
                )
                continue
            yield from self.process_artist(artist_folder, album_folders, exclusions)

    def process_artist(
        self,
        artist_folder: LocalFolder,
        album_folders: Sequence[LocalFolder],
        exclusions: Sequence[str] = (),
    ) -> List[ResolutionResult]:
        """Resolve one artist folder and its album folders; results keep input order."""
        results: List[Optional[ResolutionResult]] = [None] * len(album_folders)
        eligible: List[Tuple[int, LocalFolder]] = []
        for index, album_folder in enumerate(album_folders):
            pattern = first_matching_pattern(album_folder.name, exclusions)
            if pattern is not None:
                logger.info("Excluded album folder %r (matches %r)", album_folder.name, pattern)
                results[index] = self._outcome(
                    album_folder, FolderLevel.ALBUM, Decision.SKIP, policy.EXCLUDED
                )
            elif not album_folder.parsed_title:
                results[index] = self._outcome(
                    album_folder, FolderLevel.ALBUM, Decision.SKIP, policy.INVALID_INPUT
                )
            else:
                eligible.append((index, album_folder))
        eligible_folders = [folder for _, folder in eligible]

        artist_result, resolution = self._artist_result(artist_folder, eligible_folders)
        if resolution is None or resolution.artist is None:
            # Album folders inherit the artist-level outcome.
            for index, album_folder in eligible:
                results[index] = self._outcome(
                    album_folder,
                    FolderLevel.ALBUM,
                    artist_result.decision,
                    artist_result.reason,
                    artist_source=artist_result.artist_source,
                )
        else:
            album_results = self._map_albums(resolution, eligible_folders)
            for (index, _), album_result in zip(eligible, album_results):
                results[index] = album_result
        return [artist_result] + [result for result in results if result is not None]

    def _artist_result(
        self,
        artist_folder: LocalFolder,
        album_folders: Sequence[LocalFolder],
    ) -> Tuple[ResolutionResult, Optional[ArtistResolution]]:
        try:
            resolution = self.resolve_artist(artist_folder, album_folders)
        except InvalidLocalInput as exc:
            logger.warning("Skipping artist folder: %s", exc)
            return self._outcome(
                artist_folder, FolderLevel.ARTIST, Decision.SKIP, policy.INVALID_INPUT
            ), None
        except OperationAborted:
            return self._outcome(
                artist_folder, FolderLevel.ARTIST, Decision.SKIP, policy.ABORTED
            ), None
        except RemoteUnavailable as exc:
            logger.warning("Artist %r not resolved: %s", artist_folder.name, exc)
            return self._outcome(
                artist_folder, FolderLevel.ARTIST, Decision.ERROR, policy.REMOTE_UNAVAILABLE
            ), None

        if resolution.artist is None:
            outcome = policy.no_match(self.mode, self.non_interactive)
            logger.warning("No catalog artist found for %r", artist_folder.name)
            best = resolution.candidates[0].score if resolution.candidates else 0.0
            return self._outcome(
                artist_folder,
                FolderLevel.ARTIST,
                outcome.decision,
                outcome.reason,
                confidence=best,
            ), resolution

        proposed = safe_folder_name(resolution.artist.name)
        outcome = policy.decide(
            self.mode,
            resolution.confidence,
            proposed != artist_folder.name,
            self.thresholds,
        )
        result = ResolutionResult(
            local_folder=artist_folder,
            level=FolderLevel.ARTIST,
            decision=outcome.decision,
            reason=outcome.reason,
            confidence=resolution.confidence,
            resolved_artist=resolution.artist,
            proposed_folder_name=proposed,
            artist_source=resolution.source,
            match_kind=resolution.match_kind,
        )
        self._log_result(result)
        return result, resolution

    def _map_albums(
        self,
        resolution: ArtistResolution,
        album_folders: Sequence[LocalFolder],
    ) -> List[ResolutionResult]:
        if self.worker_concurrency <= 1 or len(album_folders) <= 1:
            return [self._album_result(resolution, folder) for folder in album_folders]
        with ThreadPoolExecutor(max_workers=self.worker_concurrency) as pool:
            return list(pool.map(lambda folder: self._album_result(resolution, folder), album_folders))

    def _album_result(
        self,
        artist_resolution: ArtistResolution,
        folder: LocalFolder,
    ) -> ResolutionResult:
        artist = artist_resolution.artist
        assert artist is not None
        common = {
            "resolved_artist": artist,
            "artist_source": artist_resolution.source,
        }
        try:
            resolution = self.resolve_album(artist, folder, trusted=artist_resolution.trusted)
        except InvalidLocalInput as exc:
            logger.warning("Skipping album folder: %s", exc)
            return self._outcome(folder, FolderLevel.ALBUM, Decision.SKIP, policy.INVALID_INPUT, **common)
        except OperationAborted:
            return self._outcome(folder, FolderLevel.ALBUM, Decision.SKIP, policy.ABORTED, **common)
        except RemoteUnavailable as exc:
            logger.warning("Album %r not resolved: %s", folder.name, exc)
            return self._outcome(
                folder, FolderLevel.ALBUM, Decision.ERROR, policy.REMOTE_UNAVAILABLE, **common
            )

        if resolution.candidate is None or resolution.album is None:
            outcome = policy.no_match(self.mode, self.non_interactive)
            best = max((c.score for c in resolution.candidates), default=0.0)
            logger.warning(
                "No catalog album for %r by %r (best %.2f)", folder.name, artist.name, best
            )
            return self._outcome(
                folder, FolderLevel.ALBUM, outcome.decision, outcome.reason, confidence=best, **common
            )

        confidence = min(resolution.candidate.score, artist_resolution.confidence)
        proposed = resolution.proposed_folder_name
        outcome = policy.decide(self.mode, confidence, proposed != folder.name, self.thresholds)
        result = ResolutionResult(
            local_folder=folder,
            level=FolderLevel.ALBUM,
            decision=outcome.decision,
            reason=outcome.reason,
            confidence=confidence,
            resolved_artist=artist,
            resolved_album=resolution.album,
            proposed_folder_name=proposed,
            artist_source=artist_resolution.source,
            match_kind=resolution.candidate.match_kind,
        )
        self._log_result(result)
        return result

    @staticmethod
    def _outcome(
        folder: LocalFolder,
        level: FolderLevel,
        decision: Decision,
        reason: str,
        *,
        confidence: float = 0.0,
        **extra,
    ) -> ResolutionResult:
        return ResolutionResult(
            local_folder=folder,
            level=level,
            decision=decision,
            reason=reason,
            confidence=confidence,
            **extra,
        )

    @staticmethod
    def _log_result(result: ResolutionResult) -> None:
        logger.info(
            "%s %r -> %r: %s (%s, %.2f)",
            result.level.value,
            result.local_folder.name,
            result.proposed_folder_name,
            result.decision.value,
            result.reason,
            result.confidence,
        )
