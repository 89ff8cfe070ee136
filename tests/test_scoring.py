import json
import unittest
from unittest.mock import MagicMock
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from event_curation.exceptions import ContentPolicyError, NotFound
from event_curation.services.recurrence import RecurrenceCheck
from event_curation.services.scoring import (
    SOURCE_FALLBACK,
    SOURCE_MODEL,
    SOURCE_RECURRING,
    QualityScorer,
    ScoringEngine,
    build_scoring_prompt,
    calibrate,
    parse_score_response,
)
from event_curation.services.similarity import SimilarEvent, SimilarityIndex
from tests.fakes import BASE_TIME, FakeClock, FakeEventStore, completion, make_event, mock_llm, unit_vector


class TestParseScoreResponse(unittest.TestCase):

    def test_clamps_and_defaults(self):
        record = parse_score_response(json.dumps({"rarity": 15, "unique": "N/A", "magnitude": 6}))

        self.assertEqual(record.rarity, 10)
        self.assertEqual(record.unique, 5)
        self.assertEqual(record.magnitude, 6)
        self.assertEqual(record.total, 21)
        self.assertEqual(record.local_flavor, 5)
        self.assertEqual(record.social, 5)
        self.assertEqual(record.reason, "Score generated by AI.")

    def test_secondary_dimensions_floor_at_one(self):
        record = parse_score_response('{"rarity": 2, "unique": 2, "magnitude": 2, "local_flavor": 0, "social": -4}')
        self.assertEqual((record.local_flavor, record.social), (1, 1))

    def test_reason_is_capped(self):
        record = parse_score_response(json.dumps({"rarity": 1, "reason": "x" * 900}))
        self.assertEqual(len(record.reason), 500)

    def test_no_json_raises(self):
        with self.assertRaises(ValueError):
            parse_score_response("This event is great!")


class TestCalibrate(unittest.TestCase):

    def similar(self, count, similarity=0.85):
        return [SimilarEvent(event=make_event(f"s{i}"), similarity=similarity) for i in range(count)]

    def test_common_event_caps_rarity_and_uniqueness(self):
        record = parse_score_response('{"rarity": 9, "unique": 8, "magnitude": 4}')
        calibrated = calibrate(record, self.similar(15))
        self.assertEqual((calibrated.rarity, calibrated.unique, calibrated.total), (3, 5, 12))

    def test_moderate_event_caps_rarity_only(self):
        record = parse_score_response('{"rarity": 9, "unique": 8, "magnitude": 4}')
        calibrated = calibrate(record, self.similar(5))
        self.assertEqual((calibrated.rarity, calibrated.unique), (6, 8))

    def test_low_similarity_neighbours_ignored(self):
        record = parse_score_response('{"rarity": 9, "unique": 8, "magnitude": 4}')
        self.assertIs(calibrate(record, self.similar(20, similarity=0.6)), record)


class TestQualityScorer(unittest.TestCase):

    def setUp(self):
        self.event = make_event("e1", title="Lantern Festival", tags=["Holiday"], summary="Lanterns float downriver.")
        self.llm = MagicMock()
        self.scorer = QualityScorer(self.llm)

    def test_scores_with_similar_context_in_prompt(self):
        self.llm.complete.return_value = completion('{"rarity": 8, "unique": 7, "magnitude": 5, "reason": "Annual."}')
        similar = [SimilarEvent(event=make_event("s1", title="Paper Boat Race", location="Riverfront"), similarity=0.75)]

        record = self.scorer.score(self.event, similar)

        self.assertEqual(record.total, 20)
        prompt = self.llm.complete.call_args[0][1]
        self.assertIn('"Paper Boat Race" at Riverfront', prompt)
        self.assertIn("75% similar", prompt)

    def test_empty_or_unparseable_response_returns_none(self):
        for text in ("", "no json here"):
            self.llm.complete.return_value = completion(text)
            self.assertIsNone(self.scorer.score(self.event, []))

    def test_provider_errors_propagate(self):
        self.llm.complete.side_effect = ContentPolicyError("blocked")
        with self.assertRaises(ContentPolicyError):
            self.scorer.score(self.event, [])

    def test_prompt_without_similar_events(self):
        self.assertIn("No similar events found", build_scoring_prompt(self.event, []))


class TestScoringEngine(unittest.TestCase):

    def setUp(self):
        self.scorer = MagicMock()
        self.detector = MagicMock()
        self.detector.check_event.return_value = RecurrenceCheck(is_recurring=False, match_count=0)
        self.similarity = MagicMock()
        self.similarity.nearest_to.return_value = []
        self.engine = ScoringEngine(self.scorer, self.detector, self.similarity, clock=FakeClock(BASE_TIME))

    def test_daily_event_bypasses_model(self):
        outcome = self.engine.evaluate(make_event("d1", recurring_type="daily"))

        self.assertEqual(outcome.source, SOURCE_RECURRING)
        self.assertEqual(outcome.record.total, 5)
        self.scorer.score.assert_not_called()
        self.detector.check_event.assert_not_called()

    def test_detected_weekly_event_bypasses_model(self):
        self.detector.check_event.return_value = RecurrenceCheck(True, 2, ["a", "b"])

        outcome = self.engine.evaluate(make_event("w1", title="Weekly Trivia Night"))

        self.assertEqual(outcome.source, SOURCE_RECURRING)
        self.assertEqual(
            (outcome.record.rarity, outcome.record.unique, outcome.record.magnitude,
             outcome.record.local_flavor, outcome.record.social),
            (1, 2, 2, 3, 5),
        )
        self.assertIn("Weekly", outcome.record.reason)
        self.scorer.score.assert_not_called()

    def test_model_score(self):
        record = parse_score_response('{"rarity": 8, "unique": 7, "magnitude": 5}')
        self.scorer.score.return_value = record

        outcome = self.engine.evaluate(make_event("e1"))

        self.assertEqual(outcome.source, SOURCE_MODEL)
        self.assertIs(outcome.record, record)
        self.similarity.nearest_to.assert_called_once_with(
            "e1", limit=20, min_similarity=0.4, start=BASE_TIME
        )

    def test_unusable_model_answer_falls_back(self):
        self.scorer.score.return_value = None
        outcome = self.engine.evaluate(make_event("e1"))
        self.assertEqual(outcome.source, SOURCE_FALLBACK)
        self.assertEqual(outcome.record.total, 5)

    def test_missing_embedding_means_no_context(self):
        self.similarity.nearest_to.side_effect = NotFound("e1")
        self.scorer.score.return_value = None

        self.engine.evaluate(make_event("e1"))

        self.assertEqual(self.scorer.score.call_args[0][1], [])


def windowed_vectors(store):
    """Vector index double that honours the ``start`` filter like Pinecone metadata."""
    vectors = MagicMock()

    def query(vector, top_k, start=None, end=None, exclude_ids=()):
        hits = [
            (e.id, 0.95) for e in store.rows.values()
            if e.id not in exclude_ids and (start is None or e.start_date >= start)
        ]
        return hits[:top_k]

    vectors.query.side_effect = query
    return vectors


class TestScoringContextWindow(unittest.TestCase):

    def build_engine(self, neighbour_offsets):
        target = make_event("e1", title="Lantern Festival", start=BASE_TIME + timedelta(days=3),
                            embedding=unit_vector(0))
        neighbours = [
            make_event(f"n{i}", title="Lantern Walk", start=BASE_TIME + offset, embedding=unit_vector(0))
            for i, offset in enumerate(neighbour_offsets)
        ]
        self.store = FakeEventStore([target] + neighbours)
        self.vectors = windowed_vectors(self.store)
        detector = MagicMock()
        detector.check_event.return_value = RecurrenceCheck(is_recurring=False, match_count=0)
        scorer = QualityScorer(mock_llm('{"rarity": 9, "unique": 8, "magnitude": 6}'))
        engine = ScoringEngine(scorer, detector, SimilarityIndex(self.store, self.vectors),
                               clock=FakeClock(BASE_TIME))
        return engine, target

    def test_window_starts_at_now(self):
        engine, target = self.build_engine([])

        engine.similar_context(target)

        self.assertEqual(self.vectors.query.call_args.kwargs["start"], BASE_TIME)

    def test_past_neighbours_do_not_cap_rarity(self):
        engine, target = self.build_engine([-timedelta(days=7 * (i + 1)) for i in range(15)])

        outcome = engine.evaluate(target)

        self.assertEqual((outcome.record.rarity, outcome.record.unique), (9, 8))

    def test_upcoming_neighbours_still_cap_rarity(self):
        engine, target = self.build_engine([timedelta(days=i + 1) for i in range(15)])

        outcome = engine.evaluate(target)

        self.assertEqual((outcome.record.rarity, outcome.record.unique), (3, 5))


if __name__ == '__main__':
    unittest.main()
