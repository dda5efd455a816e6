import unittest

from catalog_match.artist_resolver import (
    ArtistResolver,
    rank_artist_candidates,
    tally_album_evidence,
)
from catalog_match.config import MatchingSettings
from catalog_match.errors import InvalidLocalInput
from catalog_match.models import ArtistSource, LocalFolder, MatchKind
from catalog_match.providers.gateway import CatalogGateway

from catalog_fakes import FakeCatalog, album, artist

TENCC = artist("a-10cc", "10cc", popularity=100)
ELEVEN_CATS = artist("a-cats", "Eleven Cats", popularity=40)
GODLEY = artist("a-gc", "Godley & Creme")
SHEET_MUSIC = album("rg-sheet", "Sheet Music", 2007, TENCC)
BLOODY_TOURIST = album("rg-bloody", "Bloody Tourist", 1978, TENCC)
CONSEQUENCES = album("rg-cons", "Consequences", 1977, GODLEY)


def _resolver(catalog, **settings) -> ArtistResolver:
    return ArtistResolver(CatalogGateway(catalog), MatchingSettings(**settings))


class TestRankArtistCandidates(unittest.TestCase):
    def test_orders_by_similarity(self) -> None:
        ranked = rank_artist_candidates("10cc", [ELEVEN_CATS, TENCC], top_n=5)
        self.assertEqual([c.target for c in ranked], [TENCC, ELEVEN_CATS])
        self.assertEqual(ranked[0].match_kind, MatchKind.EXACT)
        self.assertEqual(ranked[1].match_kind, MatchKind.FUZZY)

    def test_ties_prefer_popularity_then_search_order(self) -> None:
        quiet = artist("a-1", "Genesis", popularity=10)
        loud = artist("a-2", "Genesis", popularity=90)
        unknown = artist("a-3", "Genesis")
        ranked = rank_artist_candidates("Genesis", [unknown, quiet, loud], top_n=5)
        self.assertEqual([c.target.id for c in ranked], ["a-2", "a-1", "a-3"])
        first, second = artist("a-4", "Yes"), artist("a-5", "Yes")
        ranked = rank_artist_candidates("Yes", [first, second], top_n=5)
        self.assertEqual(ranked[0].target.id, "a-4")

    def test_keeps_top_n(self) -> None:
        many = [artist(f"a-{i}", f"Band {i}") for i in range(10)]
        self.assertEqual(len(rank_artist_candidates("Band", many, top_n=3)), 3)


class TestTallyAlbumEvidence(unittest.TestCase):
    def test_most_votes_wins(self) -> None:
        tally = tally_album_evidence(
            [
                ("Sheet Music", [SHEET_MUSIC]),
                ("Sheet Music", [SHEET_MUSIC, CONSEQUENCES]),
                ("Bloody Tourist", [BLOODY_TOURIST]),
            ],
            floor=0.5,
        )
        winner = tally.winner()
        self.assertEqual(winner.artist, TENCC)
        self.assertEqual(winner.votes, 3)
        self.assertEqual(tally.votes(), {TENCC.id: 3})

    def test_one_vote_per_response(self) -> None:
        tally = tally_album_evidence([("Sheet Music", [SHEET_MUSIC, SHEET_MUSIC])], floor=0.5)
        self.assertEqual(tally.votes(), {TENCC.id: 1})

    def test_ties_broken_by_best_score(self) -> None:
        near = album("rg-near", "Sheet Musik", 2000, GODLEY)
        tally = tally_album_evidence(
            [("Sheet Music", [near]), ("Sheet Music", [SHEET_MUSIC])],
            floor=0.5,
        )
        self.assertEqual(tally.winner().artist, TENCC)

    def test_albums_at_or_below_floor_do_not_vote(self) -> None:
        tally = tally_album_evidence([("Sheet Music", [CONSEQUENCES])], floor=0.5)
        self.assertIsNone(tally.winner())


class TestArtistResolver(unittest.TestCase):
    def test_direct_search_match(self) -> None:
        catalog = FakeCatalog([TENCC, ELEVEN_CATS], [SHEET_MUSIC])
        resolution = _resolver(catalog).resolve(LocalFolder.from_name("10CC"))
        self.assertEqual(resolution.artist, TENCC)
        self.assertEqual(resolution.source, ArtistSource.SEARCH)
        self.assertEqual(resolution.match_kind, MatchKind.EXACT)
        self.assertEqual(resolution.confidence, 1.0)
        self.assertTrue(resolution.trusted)
        self.assertEqual(catalog.count("albums"), 0)

    def test_inference_then_evaluation(self) -> None:
        catalog = FakeCatalog(
            [TENCC],
            [SHEET_MUSIC, BLOODY_TOURIST],
            artist_results={"11cc": [ELEVEN_CATS]},
        )
        albums = [LocalFolder.from_name("Sheet Music"), LocalFolder.from_name("1978 - Bloody Tourist")]
        resolution = _resolver(catalog).resolve(LocalFolder.from_name("11cc"), albums)
        self.assertEqual(resolution.artist, TENCC)
        self.assertEqual(resolution.source, ArtistSource.EVALUATED)
        self.assertEqual(resolution.match_kind, MatchKind.EVALUATED)
        self.assertEqual(resolution.confidence, 1.0)
        self.assertEqual(resolution.votes[TENCC.id], 4)
        self.assertEqual(catalog.count("discography"), 1)
        self.assertIn(ELEVEN_CATS, [c.target for c in resolution.candidates])

    def test_inference_without_validation_is_penalized(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC], artist_results={"11cc": []})
        resolver = _resolver(catalog, validate_inferred=False)
        resolution = resolver.resolve(LocalFolder.from_name("11cc"), [LocalFolder.from_name("Sheet Music")])
        self.assertEqual(resolution.source, ArtistSource.INFERRED)
        self.assertAlmostEqual(resolution.confidence, 0.75)
        self.assertFalse(resolution.trusted)
        self.assertEqual(catalog.count("discography"), 0)

    def test_low_discography_coverage_keeps_inferred(self) -> None:
        catalog = FakeCatalog([TENCC], [SHEET_MUSIC], artist_results={"11cc": []})
        albums = [
            LocalFolder.from_name("Sheet Music"),
            LocalFolder.from_name("Zzyzx Road"),
            LocalFolder.from_name("Qwerty Uiop"),
        ]
        resolution = _resolver(catalog, max_evidence_albums=1).resolve(LocalFolder.from_name("11cc"), albums)
        self.assertEqual(resolution.source, ArtistSource.INFERRED)
        self.assertAlmostEqual(resolution.confidence, 0.75)

    def test_no_evidence_no_match(self) -> None:
        catalog = FakeCatalog([], [], artist_results={"Nobody": []})
        resolution = _resolver(catalog).resolve(LocalFolder.from_name("Nobody"), [LocalFolder.from_name("Nothing")])
        self.assertFalse(resolution.matched)
        self.assertIsNone(resolution.source)

    def test_blank_name_is_invalid(self) -> None:
        with self.assertRaises(InvalidLocalInput):
            _resolver(FakeCatalog()).resolve(LocalFolder.from_name("   "))


if __name__ == "__main__":
    unittest.main()
