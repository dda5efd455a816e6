"""
Album search tiers described as data.

Each tier names the fields it sends to the catalog; the album resolver walks
``ALBUM_TIERS`` in order and the artist resolver uses ``EVIDENCE_TIERS`` for
album-evidence inference. Catalog clients translate an ``AlbumQuery`` into
their own request shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .heuristics import reduce_keywords
from .models import LocalFolder


@dataclass(frozen=True, slots=True)
class QueryTier:
    name: str
    artist_field: bool = False
    album_field: bool = False
    year_field: bool = False
    free_text: bool = False
    free_text_artist: bool = False
    reduce_keywords: bool = False


@dataclass(frozen=True, slots=True)
class AlbumQuery:
    tier: str
    artist: Optional[str] = None
    artist_id: Optional[str] = None
    album: Optional[str] = None
    year: Optional[int] = None
    free_text: Optional[str] = None

    @property
    def structured(self) -> bool:
        return self.free_text is None

    def cache_key(self) -> str:
        if self.free_text is not None:
            return f"text|{self.free_text}"
        parts = [
            f"arid={self.artist_id}" if self.artist_id else f"artist={self.artist or ''}",
            f"album={self.album or ''}",
        ]
        if self.year is not None:
            parts.append(f"year={self.year}")
        return "|".join(parts)


EXACT_YEAR = QueryTier("exact-year", artist_field=True, album_field=True, year_field=True)
ARTIST_ALBUM = QueryTier("artist-album", artist_field=True, album_field=True)
FREE_TEXT = QueryTier("free-text", free_text=True, free_text_artist=True, reduce_keywords=True)
DISCOGRAPHY = "discography"

ALBUM_TIERS: tuple[QueryTier, ...] = (EXACT_YEAR, ARTIST_ALBUM, FREE_TEXT)

ALBUM_NAME_EVIDENCE = QueryTier("album-name", free_text=True)
COMBINED_EVIDENCE = QueryTier("artist-album-text", free_text=True, free_text_artist=True)

EVIDENCE_TIERS: tuple[QueryTier, ...] = (ALBUM_NAME_EVIDENCE, COMBINED_EVIDENCE)


def build_query(
    tier: QueryTier,
    folder: LocalFolder,
    artist_name: Optional[str],
    artist_id: Optional[str] = None,
) -> Optional[AlbumQuery]:
    """Fill a tier template for one album folder; None when the tier does not apply."""
    title = folder.parsed_title
    if not title:
        return None
    if tier.year_field and folder.parsed_year is None:
        return None
    if tier.free_text:
        album_text = reduce_keywords(title) if tier.reduce_keywords else title
        if tier.free_text_artist:
            if not artist_name:
                return None
            text = f"{artist_name} {album_text}"
        else:
            text = album_text
        return AlbumQuery(tier=tier.name, free_text=text)
    return AlbumQuery(
        tier=tier.name,
        artist=artist_name if tier.artist_field else None,
        artist_id=artist_id if tier.artist_field else None,
        album=title if tier.album_field else None,
        year=folder.parsed_year if tier.year_field else None,
    )
