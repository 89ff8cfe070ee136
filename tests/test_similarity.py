import unittest
from unittest.mock import MagicMock
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from event_curation.exceptions import DimensionMismatch, NotFound
from event_curation.services.similarity import SimilarityIndex
from tests.fakes import BASE_TIME, FakeEventStore, make_event, unit_vector


class TestSimilarityIndex(unittest.TestCase):

    def setUp(self):
        self.store = FakeEventStore([
            make_event("target", embedding=unit_vector(0)),
            make_event("near", start=BASE_TIME + timedelta(days=3), embedding=unit_vector(1)),
            make_event("nearer", start=BASE_TIME + timedelta(days=5), embedding=unit_vector(2)),
            make_event("far", embedding=unit_vector(3)),
            make_event("unembedded"),
        ])
        self.vectors = MagicMock()
        self.vectors.query.return_value = [
            ("nearer", 0.93),
            ("near", 0.81),
            ("far", 0.42),
        ]
        self.index = SimilarityIndex(self.store, self.vectors, dimensions=8)

    def test_nearest_to_event_excludes_itself_and_applies_floor(self):
        results = self.index.nearest_to("target", limit=5, min_similarity=0.5)

        self.assertEqual([r.event.id for r in results], ["nearer", "near"])
        self.assertEqual([r.similarity for r in results], [0.93, 0.81])
        kwargs = self.vectors.query.call_args[1]
        self.assertIn("target", kwargs["exclude_ids"])

    def test_similarity_is_non_increasing(self):
        results = self.index.nearest_to("target", min_similarity=0.0)
        sims = [r.similarity for r in results]
        self.assertEqual(sims, sorted(sims, reverse=True))
        self.assertTrue(all(r.similarity >= 0.0 for r in results))

    def test_order_by_date(self):
        self.vectors.query.return_value = [("nearer", 0.93), ("near", 0.81)]
        results = self.index.nearest_to("target", order_by="date")
        self.assertEqual([r.event.id for r in results], ["near", "nearer"])

    def test_limit(self):
        results = self.index.nearest_to("target", limit=1, min_similarity=0.0)
        self.assertEqual([r.event.id for r in results], ["nearer"])

    def test_unknown_event_raises(self):
        with self.assertRaises(NotFound):
            self.index.nearest_to("missing")

    def test_event_without_embedding_raises(self):
        with self.assertRaises(NotFound):
            self.index.nearest_to("unembedded")
        self.vectors.query.assert_not_called()

    def test_vector_with_wrong_dimension_raises(self):
        with self.assertRaises(DimensionMismatch):
            self.index.nearest_to([0.1, 0.2])

    def test_deleted_events_are_dropped(self):
        self.vectors.query.return_value = [("gone", 0.99), ("near", 0.81)]
        results = self.index.nearest_to(unit_vector(1))
        self.assertEqual([r.event.id for r in results], ["near"])

    def test_semantic_search_embeds_query(self):
        embeddings = MagicMock()
        embeddings.embed.return_value = unit_vector(2)
        index = SimilarityIndex(self.store, self.vectors, embeddings, dimensions=8)

        results = index.semantic_search("lantern festival", limit=2)

        embeddings.embed.assert_called_once_with("lantern festival")
        self.assertEqual(len(results), 2)

    def test_semantic_search_failed_embedding(self):
        embeddings = MagicMock()
        embeddings.embed.return_value = None
        index = SimilarityIndex(self.store, self.vectors, embeddings, dimensions=8)
        self.assertEqual(index.semantic_search("anything"), [])


if __name__ == '__main__':
    unittest.main()
