import unittest
from unittest.mock import patch, MagicMock
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from pymongo.errors import AutoReconnect

from event_curation.exceptions import ContentPolicyError
from event_curation.models import PassStats
from event_curation.services.tagging import (
    PLACEHOLDER_SUMMARY_EMPTY,
    PLACEHOLDER_SUMMARY_FAILED,
    PLACEHOLDER_SUMMARY_FILTERED,
    PLACEHOLDER_TAGS,
)
from event_curation.workflows.event_pipeline import (
    BatchSettings,
    Components,
    run,
    run_dedup_pass,
    run_embedding_pass,
    run_scoring_pass,
    run_tag_summary_pass,
)
from tests.fakes import BASE_TIME, FakeEventStore, FakeProfileStore, completion, make_event, unit_vector


def settings(**overrides):
    values = dict(page_limit=50, chunk_size=5, delay=0, budget=None, sleep=MagicMock())
    values.update(overrides)
    return BatchSettings(**values)


class PipelineTestCase(unittest.TestCase):

    def build(self, events):
        self.store = FakeEventStore(events)
        self.vectors = MagicMock()
        self.vectors.query.return_value = []
        self.llm = MagicMock()
        self.embeddings = MagicMock()
        return Components.build(
            store=self.store,
            vectors=self.vectors,
            profiles=FakeProfileStore(),
            llm=self.llm,
            embeddings=self.embeddings,
        )


class TestTagSummaryPass(PipelineTestCase):

    def test_writes_tags_and_summary(self):
        components = self.build([make_event("e1", title="Lantern Walk")])
        self.llm.complete.return_value = completion(
            '{"official": ["Outdoors", "Made Up"], "custom": ["lanterns"], "summary": "Glowing stroll by the river."}'
        )

        stats = run_tag_summary_pass(components, settings())

        event = self.store.rows["e1"]
        self.assertEqual(event.tags, ["Outdoors", "lanterns"])
        self.assertEqual(event.summary, "Glowing stroll by the river.")
        self.assertEqual((stats.total, stats.succeeded, stats.failed), (1, 1, 0))

    def test_empty_result_gets_placeholders(self):
        components = self.build([make_event("e1")])
        self.llm.complete.return_value = completion("")

        stats = run_tag_summary_pass(components, settings())

        self.assertEqual(self.store.rows["e1"].tags, PLACEHOLDER_TAGS)
        self.assertEqual(self.store.rows["e1"].summary, PLACEHOLDER_SUMMARY_EMPTY)
        self.assertEqual(stats.failed, 1)

    def test_content_filter_gets_its_own_placeholder(self):
        components = self.build([make_event("e1")])
        self.llm.complete.side_effect = ContentPolicyError("content_filter")

        run_tag_summary_pass(components, settings())

        self.assertEqual(self.store.rows["e1"].tags, PLACEHOLDER_TAGS)
        self.assertEqual(self.store.rows["e1"].summary, PLACEHOLDER_SUMMARY_FILTERED)

    def test_other_errors_get_failed_placeholder(self):
        components = self.build([make_event("e1")])
        self.llm.complete.side_effect = RuntimeError("bad request")

        run_tag_summary_pass(components, settings())

        self.assertEqual(self.store.rows["e1"].summary, PLACEHOLDER_SUMMARY_FAILED)

    @patch('event_curation.workflows.event_pipeline.is_transient_error', return_value=True)
    def test_transient_error_leaves_row_for_next_run(self, mock_transient):
        components = self.build([make_event("e1")])
        self.llm.complete.side_effect = RuntimeError("timeout")

        stats = run_tag_summary_pass(components, settings())

        self.assertEqual(self.store.rows["e1"].tags, [])
        self.assertIsNone(self.store.rows["e1"].summary)
        self.assertEqual(stats.failed, 1)
        self.assertEqual(self.llm.complete.call_count, 1)

    def test_existing_tags_are_not_overwritten(self):
        components = self.build([make_event("e1", tags=["Trivia"])])
        self.llm.complete.return_value = completion('{"official": ["Comedy"], "custom": [], "summary": "Quiz night."}')

        run_tag_summary_pass(components, settings())

        self.assertEqual(self.store.rows["e1"].tags, ["Trivia"])
        self.assertEqual(self.store.rows["e1"].summary, "Quiz night.")

    def test_pages_until_exhausted(self):
        events = [make_event(f"e{i}", start=BASE_TIME + timedelta(hours=i)) for i in range(5)]
        components = self.build(events)
        self.llm.complete.return_value = completion('{"official": ["Art"], "custom": [], "summary": "Paint."}')

        stats = run_tag_summary_pass(components, settings(page_limit=2, chunk_size=2))

        self.assertEqual(stats.succeeded, 5)
        self.assertTrue(all(e.summary == "Paint." for e in self.store.rows.values()))
        self.assertEqual(self.store.scan_calls, 3)

    def test_exhausted_budget_starts_nothing(self):
        components = self.build([make_event("e1")])

        stats = run_tag_summary_pass(components, settings(budget=0))

        self.assertTrue(stats.timed_out)
        self.assertEqual(stats.total, 0)
        self.llm.complete.assert_not_called()


class TestEmbeddingPass(PipelineTestCase):

    def test_embeds_and_indexes(self):
        components = self.build([
            make_event("e1", title="Lantern Walk", summary="Glow.", tags=["Outdoors"], organizer="City"),
            make_event("e2", title="No summary yet"),
        ])
        self.embeddings.embed.return_value = unit_vector(0)

        stats = run_embedding_pass(components, settings())

        self.embeddings.embed.assert_called_once_with("Lantern Walk - Glow. - Outdoors - City")
        self.vectors.upsert.assert_called_once_with("e1", unit_vector(0), BASE_TIME)
        self.assertEqual(self.store.rows["e1"].embedding, unit_vector(0))
        self.assertIsNone(self.store.rows["e2"].embedding)
        self.assertEqual(stats.succeeded, 1)

    def test_failed_embedding_leaves_row(self):
        components = self.build([make_event("e1", summary="Glow.")])
        self.embeddings.embed.return_value = None

        stats = run_embedding_pass(components, settings())

        self.assertIsNone(self.store.rows["e1"].embedding)
        self.vectors.upsert.assert_not_called()
        self.assertEqual(stats.failed, 1)


class TestScoringPass(PipelineTestCase):

    def test_scores_recurring_and_model_events(self):
        components = self.build([
            make_event("d1", title="Morning Yoga", summary="s", embedding=unit_vector(0), recurring_type="daily"),
            make_event("e1", title="Lantern Festival", summary="s", embedding=unit_vector(1)),
        ])
        self.llm.complete.return_value = completion('{"rarity": 8, "unique": 7, "magnitude": 6, "reason": "Annual."}')

        stats = run_scoring_pass(components, settings())

        self.assertEqual(self.store.rows["d1"].score.total, 5)
        self.assertEqual(self.store.rows["e1"].score.total, 21)
        self.assertEqual(self.store.rows["e1"].score.reason, "Annual.")
        self.assertEqual(self.llm.complete.call_count, 1)
        self.assertEqual((stats.succeeded, stats.skipped), (2, 1))

    def test_provider_failure_persists_fallback(self):
        components = self.build([make_event("e1", summary="s", embedding=unit_vector(1))])
        self.llm.complete.side_effect = RuntimeError("invalid request")

        stats = run_scoring_pass(components, settings())

        self.assertEqual(self.store.rows["e1"].score.total, 5)
        self.assertEqual(self.store.rows["e1"].score.reason, "[AI scoring failed]")
        self.assertEqual(stats.failed, 1)

    @patch('event_curation.workflows.event_pipeline.is_transient_error', return_value=True)
    def test_transient_failure_leaves_row_unscored(self, mock_transient):
        components = self.build([make_event("e1", summary="s", embedding=unit_vector(1))])
        self.llm.complete.side_effect = RuntimeError("rate limited")

        run_scoring_pass(components, settings())

        self.assertIsNone(self.store.rows["e1"].score)

    def test_index_outage_leaves_row_unscored(self):
        components = self.build([make_event("e1", summary="s", embedding=unit_vector(1))])
        self.vectors.query.side_effect = ConnectionError("index unreachable")

        stats = run_scoring_pass(components, settings())

        self.assertIsNone(self.store.rows["e1"].score)
        self.assertEqual(stats.failed, 1)
        self.llm.complete.assert_not_called()

    def test_store_outage_during_recurrence_check_leaves_row_unscored(self):
        components = self.build([make_event("e1", summary="s", embedding=unit_vector(1))])
        self.store.find_by_title = MagicMock(side_effect=AutoReconnect("primary stepped down"))

        run_scoring_pass(components, settings())

        self.assertIsNone(self.store.rows["e1"].score)


class TestDedupPass(PipelineTestCase):

    def test_fingerprint_only(self):
        components = self.build([
            make_event("a", title="Jazz Night", created_at=BASE_TIME),
            make_event("b", title="Jazz Night", created_at=BASE_TIME + timedelta(hours=1)),
        ])

        stats = run_dedup_pass(components, semantic=False)

        self.assertEqual(list(self.store.rows), ["a"])
        self.assertEqual(stats.succeeded, 1)
        self.llm.complete.assert_not_called()


class TestRun(unittest.TestCase):

    @patch('event_curation.workflows.event_pipeline.run_scoring_pass')
    @patch('event_curation.workflows.event_pipeline.run_embedding_pass')
    @patch('event_curation.workflows.event_pipeline.run_tag_summary_pass')
    @patch('event_curation.workflows.event_pipeline.run_dedup_pass')
    def test_passes_run_in_order(self, mock_dedup, mock_tags, mock_embed, mock_score):
        calls = []
        for name, mock in (("dedup", mock_dedup), ("tags", mock_tags),
                           ("embeddings", mock_embed), ("scoring", mock_score)):
            mock.side_effect = lambda *a, _name=name, **k: calls.append(_name) or PassStats(name=_name)

        report = run(MagicMock())

        self.assertEqual(calls, ["dedup", "tags", "embeddings", "scoring"])
        self.assertEqual([p.name for p in report.passes], calls)
        self.assertEqual(report.failed, 0)

    @patch('event_curation.workflows.event_pipeline.run_tag_summary_pass')
    @patch('event_curation.workflows.event_pipeline.run_dedup_pass')
    def test_page_fetch_errors_propagate(self, mock_dedup, mock_tags):
        mock_dedup.return_value = PassStats(name="dedup")
        mock_tags.side_effect = ConnectionError("database unavailable")

        with self.assertRaises(ConnectionError):
            run(MagicMock())


if __name__ == '__main__':
    unittest.main()
