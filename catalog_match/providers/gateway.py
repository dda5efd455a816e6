from __future__ import annotations

import logging
import time
from threading import Event
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from ..cache import QueryCache, RateLimiter
from ..errors import OperationAborted, RemoteUnavailable, TransientRemoteFailure
from ..match_utils import normalize_query_key
from ..models import CatalogAlbum, CatalogArtist
from ..queries import AlbumQuery
from .base import BatchAlbumSearch, CatalogClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

ARTIST_SEARCH = "artist_search"
ALBUM_SEARCH = "album_search"
DISCOGRAPHY = "discography"


class AbortSignal:
    """Fail-fast flag: once raised, no new remote calls are started."""

    def __init__(self) -> None:
        self._event = Event()

    def raise_signal(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise OperationAborted("abort requested")


class CatalogGateway:
    """Cached, throttled and retried access to a ``CatalogClient``.

    Cache hits are served even after an abort; only new remote calls stop.
    Failed calls are never cached.
    """

    def __init__(
        self,
        client: CatalogClient,
        *,
        cache: Optional[QueryCache] = None,
        limiter: Optional[RateLimiter] = None,
        retries: int = 2,
        backoff_seconds: float = 0.5,
        batch_size: int = 5,
        abort: Optional[AbortSignal] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.cache = cache or QueryCache()
        self.limiter = limiter or RateLimiter(0.0)
        self.retries = max(0, int(retries))
        self.backoff_seconds = max(0.0, float(backoff_seconds))
        self.batch_size = max(1, int(batch_size))
        self.abort = abort or AbortSignal()
        self._sleep = sleep
        self.remote_calls = 0

    def search_artists(self, text: str) -> List[CatalogArtist]:
        value = self.cache.get_or_fetch(
            ARTIST_SEARCH,
            text,
            lambda: tuple(
                self._call(lambda: self.client.search_artists(text), label=f"artist search {text!r}")
            ),
        )
        return list(value)

    def search_albums(self, query: AlbumQuery) -> List[CatalogAlbum]:
        value = self.cache.get_or_fetch(
            ALBUM_SEARCH,
            query.cache_key(),
            lambda: tuple(self._fetch_albums(query)),
        )
        return list(value)

    def search_albums_many(self, queries: Sequence[AlbumQuery]) -> List[List[CatalogAlbum]]:
        by_key: Dict[str, AlbumQuery] = {}
        keys: List[str] = []
        for query in queries:
            key = query.cache_key()
            by_key.setdefault(normalize_query_key(key), query)
            keys.append(key)

        def fetch_one(key: str) -> tuple[CatalogAlbum, ...]:
            return tuple(self._fetch_albums(by_key[normalize_query_key(key)]))

        fetch_batch = None
        if isinstance(self.client, BatchAlbumSearch):
            client = self.client

            def fetch_batch(chunk: List[str]) -> List[tuple[CatalogAlbum, ...]]:
                batch = [by_key[normalize_query_key(key)] for key in chunk]
                responses = self._call(
                    lambda: client.search_albums_batch(batch),
                    label=f"album batch of {len(batch)}",
                )
                return [tuple(albums) for albums in responses]

        values = self.cache.lookup_many(
            ALBUM_SEARCH,
            keys,
            fetch_one,
            fetch_batch=fetch_batch,
            batch_size=self.batch_size,
        )
        return [list(value) for value in values]

    def get_artist_discography(self, artist_id: str) -> List[CatalogAlbum]:
        value = self.cache.get_or_fetch(
            DISCOGRAPHY,
            artist_id,
            lambda: tuple(
                self._call(
                    lambda: self.client.get_artist_discography(artist_id),
                    label=f"discography {artist_id}",
                )
            ),
        )
        return list(value)

    def _fetch_albums(self, query: AlbumQuery) -> List[CatalogAlbum]:
        return self._call(
            lambda: self.client.search_albums(query),
            label=f"album search [{query.tier}] {query.cache_key()!r}",
        )

    def _call(self, fn: Callable[[], T], *, label: str) -> T:
        attempts = 1 + self.retries
        last_exc: TransientRemoteFailure | None = None
        for attempt in range(1, attempts + 1):
            self.abort.check()
            try:
                with self.limiter.slot():
                    self.remote_calls += 1
                    return fn()
            except TransientRemoteFailure as exc:
                last_exc = exc
                logger.debug("%s failed (attempt %d/%d): %s", label, attempt, attempts, exc)
                if attempt >= attempts:
                    break
                sleep_for = self.backoff_seconds * (2 ** (attempt - 1))
                if sleep_for:
                    self._sleep(sleep_for)
        logger.warning("%s failed after %d attempts: %s", label, attempts, last_exc)
        raise RemoteUnavailable(label, last_exc)
