import unittest

from catalog_match.errors import (
    ConfigurationFatal,
    OperationAborted,
    RemoteUnavailable,
)
from catalog_match.models import LocalFolder
from catalog_match.providers.gateway import AbortSignal, CatalogGateway
from catalog_match.queries import ARTIST_ALBUM, build_query

from catalog_fakes import BatchingFakeCatalog, FakeCatalog, album, artist

TENCC = artist("a-10cc", "10cc")
SHEET_MUSIC = album("rg-sheet", "Sheet Music", 2007, TENCC)


def _gateway(client, **kwargs) -> CatalogGateway:
    kwargs.setdefault("backoff_seconds", 0.0)
    return CatalogGateway(client, **kwargs)


class TestCatalogGateway(unittest.TestCase):
    def test_repeated_queries_hit_cache(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC])
        gateway = _gateway(catalog)
        self.assertEqual(gateway.search_artists("10cc"), [TENCC])
        self.assertEqual(gateway.search_artists("  10CC "), [TENCC])
        self.assertEqual(catalog.count("artists"), 1)
        self.assertEqual(gateway.remote_calls, 1)

    def test_discography_fetched_once_per_artist(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC])
        gateway = _gateway(catalog)
        first = gateway.get_artist_discography(TENCC.id)
        second = gateway.get_artist_discography(TENCC.id)
        self.assertEqual(first, second)
        self.assertEqual(catalog.count("discography"), 1)

    def test_returned_lists_are_copies(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC])
        gateway = _gateway(catalog)
        gateway.get_artist_discography(TENCC.id).clear()
        self.assertEqual(gateway.get_artist_discography(TENCC.id), [SHEET_MUSIC])

    def test_transient_failures_retry_then_succeed(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC])
        catalog.fail("artists:10cc", 2)
        sleeps: list[float] = []
        gateway = _gateway(catalog, retries=2, backoff_seconds=0.5, sleep=sleeps.append)
        self.assertEqual(gateway.search_artists("10cc"), [TENCC])
        self.assertEqual(catalog.count("artists"), 3)
        self.assertEqual(sleeps, [0.5, 1.0])

    def test_retry_budget_exhausted_raises_remote_unavailable(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC])
        catalog.fail("artists:10cc", 3)
        gateway = _gateway(catalog, retries=2)
        with self.assertRaises(RemoteUnavailable):
            gateway.search_artists("10cc")
        self.assertEqual(catalog.count("artists"), 3)
        # Failures are not cached: the next call goes out again and succeeds.
        self.assertEqual(gateway.search_artists("10cc"), [TENCC])

    def test_configuration_fatal_is_not_retried(self) -> None:
        class _Rejecting(FakeCatalog):
            def search_artists(self, text):
                self.calls.append(("artists", text))
                raise ConfigurationFatal("HTTP 401")

        catalog = _Rejecting()
        gateway = _gateway(catalog, retries=2)
        with self.assertRaises(ConfigurationFatal):
            gateway.search_artists("10cc")
        self.assertEqual(catalog.count("artists"), 1)

    def test_abort_stops_new_calls_but_serves_cache(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC])
        abort = AbortSignal()
        gateway = _gateway(catalog, abort=abort)
        gateway.search_artists("10cc")
        abort.raise_signal()
        self.assertEqual(gateway.search_artists("10cc"), [TENCC])
        with self.assertRaises(OperationAborted):
            gateway.search_artists("Godley & Creme")
        self.assertEqual(catalog.count("artists"), 1)

    def test_search_albums_many_uses_batches_when_supported(self) -> None:
        catalog = BatchingFakeCatalog([TENCC], [SHEET_MUSIC])
        gateway = _gateway(catalog, batch_size=2)
        folders = [LocalFolder.from_name(name) for name in ("Sheet Music", "Bloody Tourist", "Deceptive Bends")]
        queries = [build_query(ARTIST_ALBUM, folder, "10cc", TENCC.id) for folder in folders]
        results = gateway.search_albums_many(queries)
        self.assertEqual(results[0], [SHEET_MUSIC])
        self.assertEqual(results[1], [])
        self.assertEqual(catalog.batch_sizes, [2])
        self.assertEqual(catalog.count("albums"), 3)
        self.assertEqual(gateway.remote_calls, 2)
        # Everything is cached now.
        gateway.search_albums_many(queries)
        self.assertEqual(gateway.remote_calls, 2)

    def test_search_albums_many_falls_back_to_sequential(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC])
        gateway = _gateway(catalog, batch_size=5)
        folders = [LocalFolder.from_name(name) for name in ("Sheet Music", "Sheet Music", "Bloody Tourist")]
        queries = [build_query(ARTIST_ALBUM, folder, "10cc", TENCC.id) for folder in folders]
        results = gateway.search_albums_many(queries)
        self.assertEqual(results[0], results[1])
        self.assertEqual(catalog.count("albums"), 2)


if __name__ == "__main__":
    unittest.main()
