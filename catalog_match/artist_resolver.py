from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import MatchingSettings
from .errors import InvalidLocalInput, RemoteUnavailable
from .match_utils import name_similarity, normalize_match_text
from .models import (
    ArtistResolution,
    ArtistSource,
    CatalogAlbum,
    CatalogArtist,
    LocalFolder,
    MatchCandidate,
    MatchKind,
)
from .providers.gateway import CatalogGateway
from .queries import EVIDENCE_TIERS, build_query

logger = logging.getLogger(__name__)

DIRECT_SEARCH = "artist-search"
ALBUM_EVIDENCE = "album-evidence"


@dataclass(slots=True)
class ArtistVote:
    artist: CatalogArtist
    votes: int = 0
    best_score: float = 0.0
    order: int = 0


@dataclass(slots=True)
class ArtistTally:
    """Votes per catalog artist id gathered from album-evidence searches."""

    entries: Dict[str, ArtistVote] = field(default_factory=dict)

    def observe(self, artist: CatalogArtist, score: float, *, vote: bool = True) -> None:
        entry = self.entries.get(artist.id)
        if entry is None:
            entry = self.entries[artist.id] = ArtistVote(artist=artist, order=len(self.entries))
        if vote:
            entry.votes += 1
        entry.best_score = max(entry.best_score, score)

    def winner(self) -> Optional[ArtistVote]:
        if not self.entries:
            return None
        return max(
            self.entries.values(),
            key=lambda entry: (entry.votes, entry.best_score, -entry.order),
        )

    def votes(self) -> Dict[str, int]:
        return {artist_id: entry.votes for artist_id, entry in self.entries.items()}


def tally_album_evidence(
    evidence: Iterable[Tuple[str, Sequence[CatalogAlbum]]],
    floor: float,
) -> ArtistTally:
    """Count, per query response, the artists credited on albums resembling the local title.

    ``evidence`` pairs each local album title with one query's results. An
    artist votes at most once per response, however many of its albums match.
    """
    tally = ArtistTally()
    for local_title, albums in evidence:
        voted: set[str] = set()
        for album in albums:
            score = name_similarity(local_title, album.name)
            if score <= floor:
                continue
            for artist in album.artists:
                tally.observe(artist, score, vote=artist.id not in voted)
                voted.add(artist.id)
    return tally


def rank_artist_candidates(
    local_name: str,
    artists: Sequence[CatalogArtist],
    top_n: int,
) -> List[MatchCandidate]:
    """Score artists against the folder name; ties prefer higher popularity, then search order."""
    local_norm = normalize_match_text(local_name)
    scored: List[Tuple[float, float, int, CatalogArtist]] = []
    for index, artist in enumerate(artists):
        score = name_similarity(local_name, artist.name)
        popularity = float(artist.popularity) if artist.popularity is not None else float("-inf")
        scored.append((score, popularity, index, artist))
    scored.sort(key=lambda item: (-item[0], -item[1], item[2]))
    candidates: List[MatchCandidate] = []
    for score, _, _, artist in scored[:top_n]:
        exact = bool(local_norm) and normalize_match_text(artist.name) == local_norm
        candidates.append(
            MatchCandidate(
                target=artist,
                score=score,
                source_strategy=DIRECT_SEARCH,
                match_kind=MatchKind.EXACT if exact else MatchKind.FUZZY,
            )
        )
    return candidates


class ArtistResolver:
    def __init__(self, gateway: CatalogGateway, settings: Optional[MatchingSettings] = None) -> None:
        self.gateway = gateway
        self.settings = settings or MatchingSettings()

    def resolve(
        self,
        folder: LocalFolder,
        album_folders: Sequence[LocalFolder] = (),
    ) -> ArtistResolution:
        local_name = folder.parsed_title or folder.name.strip()
        if not local_name:
            raise InvalidLocalInput(f"artist folder {folder.name!r} has no usable name")

        found = self.gateway.search_artists(local_name)
        candidates = rank_artist_candidates(local_name, found, self.settings.top_n)
        if candidates and candidates[0].score >= self.settings.direct_confidence_floor:
            best = candidates[0]
            logger.debug(
                "Artist %r matched %r directly (%.2f)", folder.name, best.target.name, best.score
            )
            return ArtistResolution(
                artist=best.target,
                confidence=best.score,
                match_kind=best.match_kind,
                source=ArtistSource.SEARCH,
                candidates=candidates,
            )

        logger.info(
            "No direct match for artist %r (best %.2f); inferring from %d album folder(s)",
            folder.name,
            candidates[0].score if candidates else 0.0,
            len(album_folders),
        )
        resolution = self.infer_from_albums(local_name, album_folders)
        resolution.candidates = candidates + resolution.candidates
        return resolution

    def infer_from_albums(
        self,
        local_name: str,
        album_folders: Sequence[LocalFolder],
    ) -> ArtistResolution:
        usable = [folder for folder in album_folders if folder.parsed_title]
        evidence_folders = usable[: self.settings.max_evidence_albums]
        if not evidence_folders:
            return ArtistResolution()

        plan = []
        for album_folder in evidence_folders:
            for tier in EVIDENCE_TIERS:
                query = build_query(tier, album_folder, artist_name=local_name)
                if query is not None:
                    plan.append((album_folder, query))
        responses = self.gateway.search_albums_many([query for _, query in plan])
        tally = tally_album_evidence(
            ((album_folder.parsed_title, albums) for (album_folder, _), albums in zip(plan, responses)),
            self.settings.evidence_floor,
        )
        best = tally.winner()
        if best is None:
            logger.info("Album evidence for %r credited no catalog artist", local_name)
            return ArtistResolution(votes=tally.votes())

        candidate = MatchCandidate(
            target=best.artist,
            score=best.best_score * self.settings.inferred_penalty,
            source_strategy=ALBUM_EVIDENCE,
            match_kind=MatchKind.INFERRED,
        )
        resolution = ArtistResolution(
            artist=best.artist,
            confidence=candidate.score,
            match_kind=MatchKind.INFERRED,
            source=ArtistSource.INFERRED,
            candidates=[candidate],
            votes=tally.votes(),
        )
        if self.settings.validate_inferred:
            self._evaluate(resolution, best, usable)
        logger.info(
            "Artist %r %s as %r (%d vote(s), confidence %.2f)",
            local_name,
            resolution.source.value if resolution.source else "inferred",
            best.artist.name,
            best.votes,
            resolution.confidence,
        )
        return resolution

    def discography_coverage(
        self,
        artist: CatalogArtist,
        album_folders: Sequence[LocalFolder],
    ) -> float:
        """Fraction of local album folders with a plausible release in the artist's discography."""
        if not album_folders:
            return 0.0
        discography = self.gateway.get_artist_discography(artist.id)
        covered = 0
        for album_folder in album_folders:
            if any(
                name_similarity(album_folder.parsed_title, album.name) >= self.settings.evidence_floor
                for album in discography
            ):
                covered += 1
        return covered / len(album_folders)

    def _evaluate(
        self,
        resolution: ArtistResolution,
        best: ArtistVote,
        album_folders: Sequence[LocalFolder],
    ) -> None:
        try:
            coverage = self.discography_coverage(best.artist, album_folders)
        except RemoteUnavailable as exc:
            logger.warning("Could not validate inferred artist %r: %s", best.artist.name, exc)
            return
        if coverage < self.settings.evaluated_coverage:
            logger.debug(
                "Inferred artist %r covers %.0f%% of local albums; keeping inferred",
                best.artist.name,
                coverage * 100,
            )
            return
        confidence = max(best.best_score, coverage)
        resolution.confidence = confidence
        resolution.source = ArtistSource.EVALUATED
        resolution.match_kind = MatchKind.EVALUATED
        resolution.candidates = [
            MatchCandidate(
                target=best.artist,
                score=confidence,
                source_strategy=ALBUM_EVIDENCE,
                match_kind=MatchKind.EVALUATED,
            )
        ]
