from __future__ import annotations

from typing import List, Protocol, Sequence, runtime_checkable

from ..models import CatalogAlbum, CatalogArtist
from ..queries import AlbumQuery


class CatalogClient(Protocol):
    """Raw catalog access.

    Implementations raise ``TransientRemoteFailure`` for network and
    rate-limit problems, ``ConfigurationFatal`` for rejected credentials,
    and return an empty list when nothing was found.
    """

    name: str

    def search_artists(self, text: str) -> List[CatalogArtist]: ...

    def search_albums(self, query: AlbumQuery) -> List[CatalogAlbum]: ...

    def get_artist_discography(self, artist_id: str) -> List[CatalogAlbum]: ...


@runtime_checkable
class BatchAlbumSearch(Protocol):
    """Optional capability: several album searches in one remote call."""

    def search_albums_batch(self, queries: Sequence[AlbumQuery]) -> List[List[CatalogAlbum]]: ...
