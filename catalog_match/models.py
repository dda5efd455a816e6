from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from .heuristics import parse_folder_name


class ReleaseType(str, Enum):
    ALBUM = "album"
    SINGLE = "single"
    COMPILATION = "compilation"
    OTHER = "other"


class MatchKind(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    INFERRED = "inferred"
    EVALUATED = "evaluated"


class ArtistSource(str, Enum):
    SEARCH = "search"
    INFERRED = "inferred"
    EVALUATED = "evaluated"


class Decision(str, Enum):
    RENAME = "rename"
    SKIP = "skip"
    MANUAL_REVIEW = "manual-review"
    ERROR = "error"


class DecisionMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"
    SMART = "smart"


class FolderLevel(str, Enum):
    ARTIST = "artist"
    ALBUM = "album"


@dataclass(frozen=True, slots=True)
class LocalFolder:
    name: str
    parsed_year: Optional[int] = None
    parsed_title: str = ""
    path: Optional[Path] = None

    @classmethod
    def from_name(cls, name: str, path: Optional[Path] = None) -> "LocalFolder":
        year, title = parse_folder_name(name)
        return cls(name=name, parsed_year=year, parsed_title=title, path=path)

    @classmethod
    def from_path(cls, path: Path) -> "LocalFolder":
        return cls.from_name(path.name, path=path)


@dataclass(frozen=True, slots=True)
class CatalogArtist:
    id: str
    name: str
    popularity: Optional[int] = None


@dataclass(frozen=True, slots=True)
class CatalogAlbum:
    id: str
    name: str
    release_year: Optional[int] = None
    release_type: ReleaseType = ReleaseType.OTHER
    artists: tuple[CatalogArtist, ...] = ()

    @property
    def artist_ids(self) -> frozenset[str]:
        return frozenset(artist.id for artist in self.artists)

    def credited_to(self, artist_id: str) -> bool:
        return artist_id in self.artist_ids


CatalogEntity = Union[CatalogArtist, CatalogAlbum]


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    target: CatalogEntity
    score: float
    source_strategy: str
    match_kind: MatchKind

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", clamp_score(self.score))


@dataclass(slots=True)
class ArtistResolution:
    artist: Optional[CatalogArtist] = None
    confidence: float = 0.0
    match_kind: Optional[MatchKind] = None
    source: Optional[ArtistSource] = None
    candidates: List[MatchCandidate] = field(default_factory=list)
    votes: Dict[str, int] = field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return self.artist is not None

    @property
    def trusted(self) -> bool:
        return self.source in {ArtistSource.SEARCH, ArtistSource.EVALUATED}


@dataclass(slots=True)
class AlbumResolution:
    album: Optional[CatalogAlbum] = None
    candidate: Optional[MatchCandidate] = None
    proposed_folder_name: Optional[str] = None
    candidates: List[MatchCandidate] = field(default_factory=list)
    tiers_tried: List[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.album is not None

    @property
    def score(self) -> float:
        return self.candidate.score if self.candidate else 0.0


@dataclass(slots=True)
class ResolutionResult:
    local_folder: LocalFolder
    level: FolderLevel
    decision: Decision
    reason: str
    confidence: float = 0.0
    resolved_artist: Optional[CatalogArtist] = None
    resolved_album: Optional[CatalogAlbum] = None
    proposed_folder_name: Optional[str] = None
    artist_source: Optional[ArtistSource] = None
    match_kind: Optional[MatchKind] = None

    @property
    def matched_catalog_id(self) -> Optional[str]:
        if self.level == FolderLevel.ALBUM and self.resolved_album:
            return self.resolved_album.id
        if self.resolved_artist:
            return self.resolved_artist.id
        return None

    def to_record(self) -> Dict[str, object]:
        return {
            "local_folder": self.local_folder.name,
            "proposed_name": self.proposed_folder_name,
            "decision": self.decision.value,
            "reason": self.reason,
            "score": round(self.confidence, 4),
            "matched_catalog_id": self.matched_catalog_id,
            "level": self.level.value,
            "artist_source": self.artist_source.value if self.artist_source else None,
            "match_kind": self.match_kind.value if self.match_kind else None,
        }


def clamp_score(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
