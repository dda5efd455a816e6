"""
MusicBrainz catalog client.

Albums are modelled on MusicBrainz release groups: they carry the first
release date, the primary/secondary type and the artist credit, which is all
the resolvers need. Throttling, caching and retries live in the gateway, so
musicbrainzngs' own rate limiter is switched off here.
"""

from __future__ import annotations

import logging
import re
import socket
import urllib.error
from typing import Any, Callable, List, Optional

import musicbrainzngs

from .. import __version__ as _package_version
from ..config import ProviderSettings
from ..errors import ConfigurationFatal, TransientRemoteFailure
from ..models import CatalogAlbum, CatalogArtist, ReleaseType
from ..queries import AlbumQuery

logger = logging.getLogger(__name__)

BROWSE_PAGE_SIZE = 100
MAX_DISCOGRAPHY_PAGES = 10
LUCENE_SPECIAL = re.compile(r'([+\-&|!(){}\[\]^"~*?:\\/])')
TRANSIENT_HTTP_CODES = {429, 500, 502, 503, 504}
FATAL_HTTP_CODES = {401, 403}
PLACEHOLDER_CONTACT = re.compile(r"\bexample\.(?:com|org|net)\b", re.IGNORECASE)


class MusicBrainzCatalog:
    name = "musicbrainz"

    def __init__(self, settings: ProviderSettings) -> None:
        useragent = (settings.musicbrainz_useragent or "").strip()
        if not useragent or PLACEHOLDER_CONTACT.search(useragent):
            raise ConfigurationFatal(
                "providers.musicbrainz_useragent must include a real contact (e.g. email or URL)"
            )
        self.settings = settings
        self.limit = settings.search_limit
        musicbrainzngs.set_useragent("catalog-match", str(_package_version), contact=useragent)
        musicbrainzngs.set_rate_limit(False)

    def search_artists(self, text: str) -> List[CatalogArtist]:
        response = self._request(
            lambda: musicbrainzngs.search_artists(artist=text, limit=self.limit),
            label=f"artist search {text!r}",
        )
        if not response:
            return []
        artists: List[CatalogArtist] = []
        for entry in response.get("artist-list", []):
            artist = self._parse_artist(entry)
            if artist:
                artists.append(artist)
        return artists

    def search_albums(self, query: AlbumQuery) -> List[CatalogAlbum]:
        if query.structured:
            text = structured_query(query)
        else:
            text = escape_lucene(query.free_text or "")

        def _search():
            return musicbrainzngs.search_release_groups(query=text, limit=self.limit)

        response = self._request(_search, label=f"release group search [{query.tier}]")
        if not response:
            return []
        return self._parse_release_groups(response.get("release-group-list", []))

    def get_artist_discography(self, artist_id: str) -> List[CatalogAlbum]:
        albums: List[CatalogAlbum] = []
        offset = 0
        for _ in range(MAX_DISCOGRAPHY_PAGES):
            response = self._request(
                lambda: musicbrainzngs.browse_release_groups(
                    artist=artist_id,
                    includes=["artist-credits"],
                    limit=BROWSE_PAGE_SIZE,
                    offset=offset,
                ),
                label=f"release group browse {artist_id}",
            )
            if not response:
                break
            page = response.get("release-group-list", [])
            albums.extend(self._parse_release_groups(page))
            offset += len(page)
            total = int(response.get("release-group-count", 0) or 0)
            if not page or offset >= total:
                break
        return albums

    def _request(self, fn: Callable[[], Any], *, label: str) -> Optional[dict]:
        try:
            return fn()
        except musicbrainzngs.ResponseError as exc:
            code = getattr(getattr(exc, "cause", None), "code", None)
            if code in FATAL_HTTP_CODES:
                raise ConfigurationFatal(f"MusicBrainz rejected {label}: HTTP {code}") from exc
            if code in TRANSIENT_HTTP_CODES:
                raise TransientRemoteFailure(f"MusicBrainz {label}: HTTP {code}") from exc
            logger.debug("MusicBrainz %s returned nothing: %s", label, exc)
            return None
        except musicbrainzngs.NetworkError as exc:
            raise TransientRemoteFailure(f"MusicBrainz {label}: {exc}") from exc
        except (socket.gaierror, urllib.error.URLError, TimeoutError, ConnectionError) as exc:
            raise TransientRemoteFailure(f"MusicBrainz {label}: {exc}") from exc

    @staticmethod
    def _parse_artist(entry: dict) -> Optional[CatalogArtist]:
        artist_id = entry.get("id")
        name = entry.get("name")
        if not artist_id or not name:
            return None
        score = entry.get("ext:score")
        try:
            popularity = int(score) if score is not None else None
        except (TypeError, ValueError):
            popularity = None
        return CatalogArtist(id=artist_id, name=name, popularity=popularity)

    def _parse_release_groups(self, entries: List[dict]) -> List[CatalogAlbum]:
        albums: List[CatalogAlbum] = []
        for entry in entries:
            album_id = entry.get("id")
            title = entry.get("title")
            if not album_id or not title:
                continue
            albums.append(
                CatalogAlbum(
                    id=album_id,
                    name=title,
                    release_year=parse_year(entry.get("first-release-date")),
                    release_type=release_type_of(entry),
                    artists=self._credited_artists(entry.get("artist-credit", [])),
                )
            )
        return albums

    @staticmethod
    def _credited_artists(credit: List[Any]) -> tuple[CatalogArtist, ...]:
        artists: List[CatalogArtist] = []
        for item in credit or []:
            if not isinstance(item, dict):
                continue
            artist = item.get("artist") or {}
            artist_id = artist.get("id")
            if not artist_id:
                continue
            artists.append(CatalogArtist(id=artist_id, name=artist.get("name") or item.get("name") or ""))
        return tuple(artists)


def release_type_of(entry: dict) -> ReleaseType:
    secondary = {value.lower() for value in entry.get("secondary-type-list", []) or []}
    if "compilation" in secondary:
        return ReleaseType.COMPILATION
    primary = (entry.get("primary-type") or entry.get("type") or "").lower()
    if primary == "album":
        return ReleaseType.ALBUM
    if primary == "single":
        return ReleaseType.SINGLE
    if primary == "compilation":
        return ReleaseType.COMPILATION
    return ReleaseType.OTHER


def parse_year(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = re.match(r"^(\d{4})", str(value))
    return int(match.group(1)) if match else None


def escape_lucene(value: str) -> str:
    return LUCENE_SPECIAL.sub(r"\\\1", value)


def structured_query(query: AlbumQuery) -> str:
    """Lucene query with one field clause per filled ``AlbumQuery`` field.

    ``firstreleasedate`` is not a musicbrainzngs search field, so the whole
    query is built here and sent as raw Lucene.
    """
    clauses: List[str] = []
    if query.artist_id:
        clauses.append(f'arid:"{escape_lucene(query.artist_id)}"')
    elif query.artist:
        clauses.append(f'artist:"{escape_lucene(query.artist)}"')
    if query.album:
        clauses.append(f'releasegroup:"{escape_lucene(query.album)}"')
    if query.year is not None:
        clauses.append(f"firstreleasedate:{query.year}")
    return " AND ".join(clauses)
