from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .config import MatchingSettings
from .errors import InvalidLocalInput
from .heuristics import looks_like_compilation, safe_folder_name
from .match_utils import name_similarity, normalize_match_text
from .models import (
    AlbumResolution,
    CatalogAlbum,
    CatalogArtist,
    LocalFolder,
    MatchCandidate,
    MatchKind,
    ReleaseType,
    clamp_score,
)
from .providers.gateway import CatalogGateway
from .queries import ALBUM_TIERS, DISCOGRAPHY, build_query

logger = logging.getLogger(__name__)


def score_album(
    local_title: str,
    local_year: Optional[int],
    album: CatalogAlbum,
    year_bonus: float = 0.3,
) -> float:
    score = name_similarity(local_title, album.name)
    if local_year is not None and album.release_year == local_year:
        score += year_bonus
    return clamp_score(score)


def select_best(
    candidates: Sequence[MatchCandidate],
    epsilon: float = 0.02,
    prefer_plain_album: bool = True,
) -> Optional[MatchCandidate]:
    """Highest score wins; a plain album within ``epsilon`` beats a single or compilation."""
    if not candidates:
        return None
    ranked = sorted(candidates, key=lambda candidate: -candidate.score)
    top = ranked[0]
    if not prefer_plain_album or _release_type(top) == ReleaseType.ALBUM:
        return top
    for candidate in ranked[1:]:
        if top.score - candidate.score > epsilon:
            break
        if _release_type(candidate) == ReleaseType.ALBUM:
            return candidate
    return top


def proposed_folder_name(album: CatalogAlbum, local_year: Optional[int]) -> str:
    year = album.release_year or local_year
    name = safe_folder_name(album.name)
    if year:
        return f"{year} - {name}"
    return name


def _release_type(candidate: MatchCandidate) -> Optional[ReleaseType]:
    target = candidate.target
    return target.release_type if isinstance(target, CatalogAlbum) else None


class AlbumResolver:
    def __init__(self, gateway: CatalogGateway, settings: Optional[MatchingSettings] = None) -> None:
        self.gateway = gateway
        self.settings = settings or MatchingSettings()

    def resolve(
        self,
        artist: CatalogArtist,
        folder: LocalFolder,
        *,
        trusted: bool = True,
    ) -> AlbumResolution:
        if not folder.parsed_title:
            raise InvalidLocalInput(f"album folder {folder.name!r} has no usable title")
        resolution = AlbumResolution()
        prefer_plain = not looks_like_compilation(folder.name)

        for tier in ALBUM_TIERS:
            query = build_query(tier, folder, artist_name=artist.name, artist_id=artist.id)
            if query is None:
                continue
            resolution.tiers_tried.append(tier.name)
            albums = self.gateway.search_albums(query)
            if self._accept(resolution, artist, folder, albums, tier.name, prefer_plain):
                return resolution

        if resolution.candidates:
            logger.debug(
                "No album for %r by %r cleared %.2f; best was %.2f",
                folder.name,
                artist.name,
                self.settings.min_acceptable_score,
                max(candidate.score for candidate in resolution.candidates),
            )
            return resolution
        if not trusted:
            logger.debug(
                "Skipping discography scan for untrusted artist %r (%s)", artist.name, folder.name
            )
            return resolution
        resolution.tiers_tried.append(DISCOGRAPHY)
        albums = self.gateway.get_artist_discography(artist.id)
        self._accept(resolution, artist, folder, albums, DISCOGRAPHY, prefer_plain)
        if not resolution.matched:
            logger.debug("No album match for %r by %r", folder.name, artist.name)
        return resolution

    def score_candidates(
        self,
        artist: CatalogArtist,
        folder: LocalFolder,
        albums: Sequence[CatalogAlbum],
        strategy: str,
    ) -> List[MatchCandidate]:
        local_norm = normalize_match_text(folder.parsed_title)
        candidates: List[MatchCandidate] = []
        seen: set[str] = set()
        for album in albums:
            if album.id in seen or not album.credited_to(artist.id):
                continue
            seen.add(album.id)
            exact = bool(local_norm) and normalize_match_text(album.name) == local_norm
            candidates.append(
                MatchCandidate(
                    target=album,
                    score=score_album(
                        folder.parsed_title, folder.parsed_year, album, self.settings.year_bonus
                    ),
                    source_strategy=strategy,
                    match_kind=MatchKind.EXACT if exact else MatchKind.FUZZY,
                )
            )
        return candidates

    def _accept(
        self,
        resolution: AlbumResolution,
        artist: CatalogArtist,
        folder: LocalFolder,
        albums: Sequence[CatalogAlbum],
        strategy: str,
        prefer_plain: bool,
    ) -> bool:
        scored = self.score_candidates(artist, folder, albums, strategy)
        resolution.candidates.extend(scored)
        acceptable = [c for c in scored if c.score >= self.settings.min_acceptable_score]
        best = select_best(acceptable, self.settings.release_type_epsilon, prefer_plain)
        if best is None:
            return False
        album = best.target
        assert isinstance(album, CatalogAlbum)
        resolution.album = album
        resolution.candidate = best
        resolution.proposed_folder_name = proposed_folder_name(album, folder.parsed_year)
        logger.debug(
            "Album %r matched %r via %s (%.2f)", folder.name, album.name, strategy, best.score
        )
        return True
