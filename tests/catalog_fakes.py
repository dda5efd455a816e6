"""In-memory catalog used by the resolver and engine tests."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from catalog_match.errors import TransientRemoteFailure
from catalog_match.match_utils import name_similarity, normalize_match_text
from catalog_match.models import CatalogAlbum, CatalogArtist, ReleaseType
from catalog_match.queries import AlbumQuery


def artist(artist_id: str, name: str, popularity: Optional[int] = None) -> CatalogArtist:
    return CatalogArtist(id=artist_id, name=name, popularity=popularity)


def album(
    album_id: str,
    name: str,
    year: Optional[int],
    *artists: CatalogArtist,
    release_type: ReleaseType = ReleaseType.ALBUM,
) -> CatalogAlbum:
    return CatalogAlbum(
        id=album_id,
        name=name,
        release_year=year,
        release_type=release_type,
        artists=tuple(artists),
    )


class FakeCatalog:
    name = "fake"

    def __init__(
        self,
        artists: Sequence[CatalogArtist] = (),
        albums: Sequence[CatalogAlbum] = (),
        *,
        artist_results: Optional[Dict[str, List[CatalogArtist]]] = None,
        album_search: bool = True,
    ) -> None:
        self.artists = list(artists)
        self.albums = list(albums)
        self.artist_results = artist_results or {}
        self.album_search = album_search
        self.failures: Dict[str, int] = {}
        self.calls: List[tuple[str, object]] = []

    def fail(self, key: str, times: int) -> None:
        self.failures[key] = times

    def _maybe_fail(self, key: str) -> None:
        remaining = self.failures.get(key, 0)
        if remaining > 0:
            self.failures[key] = remaining - 1
            raise TransientRemoteFailure(f"simulated timeout for {key}")

    def search_artists(self, text: str) -> List[CatalogArtist]:
        self.calls.append(("artists", text))
        self._maybe_fail(f"artists:{text}")
        if text in self.artist_results:
            return list(self.artist_results[text])
        return [a for a in self.artists if name_similarity(text, a.name) >= 0.3]

    def search_albums(self, query: AlbumQuery) -> List[CatalogAlbum]:
        self.calls.append(("albums", query))
        self._maybe_fail(f"albums:{query.cache_key()}")
        if not self.album_search:
            return []
        if query.free_text is not None:
            tokens = set(normalize_match_text(query.free_text).split())
            return [a for a in self.albums if tokens & set(normalize_match_text(a.name).split())]
        results = []
        for candidate in self.albums:
            if query.artist_id and not candidate.credited_to(query.artist_id):
                continue
            if query.album and name_similarity(query.album, candidate.name) < 0.5:
                continue
            if query.year is not None and candidate.release_year != query.year:
                continue
            results.append(candidate)
        return results

    def get_artist_discography(self, artist_id: str) -> List[CatalogAlbum]:
        self.calls.append(("discography", artist_id))
        self._maybe_fail(f"discography:{artist_id}")
        return [a for a in self.albums if a.credited_to(artist_id)]

    def count(self, kind: str) -> int:
        return sum(1 for call_kind, _ in self.calls if call_kind == kind)


class BatchingFakeCatalog(FakeCatalog):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.batch_sizes: List[int] = []

    def search_albums_batch(self, queries: Sequence[AlbumQuery]) -> List[List[CatalogAlbum]]:
        self.batch_sizes.append(len(queries))
        return [FakeCatalog.search_albums(self, query) for query in queries]
