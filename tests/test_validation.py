"""Tests for timetable_pipeline.validation (semantic analysis)."""

from __future__ import annotations

import unittest

from timetable_pipeline.validation import (
    analyze,
    analyze_semantics,
    build_refinement_context,
    calculate_statistics,
    detect_conflicts,
    detect_duplicates,
    detect_gaps,
    finalize_document,
    semantic_text,
)
from timetable_pipeline.vector_store import InMemoryVectorStore, cosine_similarity

from fakes import (
    BagOfWordsEmbedder,
    StaticEmbedder,
    make_block,
    make_document,
    unit_vector_with_similarity,
)


class TestConflicts(unittest.TestCase):
    def test_overlap_detected(self) -> None:
        blocks = [
            make_block(start="09:00", end="10:00"),
            make_block(start="09:30", end="10:30", subject="English"),
        ]
        conflicts = detect_conflicts(blocks)
        self.assertEqual(len(conflicts), 1)
        self.assertEqual((conflicts[0].index_a, conflicts[0].index_b), (0, 1))
        self.assertEqual(conflicts[0].reason, "Time overlap detected")

    def test_touching_intervals_do_not_conflict(self) -> None:
        blocks = [
            make_block(start="09:00", end="10:00"),
            make_block(start="10:00", end="11:00", subject="English"),
        ]
        self.assertEqual(detect_conflicts(blocks), [])

    def test_different_days_do_not_conflict(self) -> None:
        blocks = [make_block(day="MONDAY"), make_block(day="TUESDAY")]
        self.assertEqual(detect_conflicts(blocks), [])


class TestDuplicates(unittest.TestCase):
    def test_above_threshold_is_flagged(self) -> None:
        doc = make_document([make_block(), make_block(day="TUESDAY")])
        embedder = StaticEmbedder([[1.0, 0.0], unit_vector_with_similarity(0.96)])
        pairs = detect_duplicates(doc, embedder, threshold=0.95)
        self.assertEqual(len(pairs), 1)
        self.assertEqual((pairs[0].index_a, pairs[0].index_b), (0, 1))
        self.assertAlmostEqual(pairs[0].similarity, 0.96, places=3)

    def test_below_threshold_is_not_flagged(self) -> None:
        doc = make_document([make_block(), make_block(day="TUESDAY")])
        embedder = StaticEmbedder([[1.0, 0.0], unit_vector_with_similarity(0.94)])
        self.assertEqual(detect_duplicates(doc, embedder, threshold=0.95), [])

    def test_each_pair_reported_once(self) -> None:
        doc = make_document([make_block(), make_block(), make_block()])
        embedder = StaticEmbedder([[1.0, 0.0]] * 3)
        pairs = detect_duplicates(doc, embedder)
        self.assertEqual(
            sorted((p.index_a, p.index_b) for p in pairs), [(0, 1), (0, 2), (1, 2)]
        )

    def test_single_block_skips_embedding(self) -> None:
        embedder = StaticEmbedder([])
        self.assertEqual(detect_duplicates(make_document([make_block()]), embedder), [])
        self.assertEqual(embedder.calls, [])

    def test_semantic_text_fields(self) -> None:
        text = semantic_text("Ms. X", make_block(classroom="Room 1", grade="7", section="B"))
        self.assertIn("Teacher: Ms. X", text)
        self.assertIn("Time: 09:00 to 10:00", text)
        self.assertIn("Location: Room 1", text)
        self.assertIn("Class: 7 B", text)
        self.assertIn("Notes: None", text)


class TestGaps(unittest.TestCase):
    def test_empty_weekday_is_full_day_gap(self) -> None:
        gaps = detect_gaps([], days=["MONDAY"])
        self.assertEqual(len(gaps), 1)
        self.assertTrue(gaps[0].full_day)
        self.assertEqual(gaps[0].day_of_week, "MONDAY")

    def test_large_gap(self) -> None:
        blocks = [
            make_block(start="14:00", end="15:00", subject="English"),
            make_block(start="08:00", end="09:00"),
        ]
        gaps = detect_gaps(blocks, days=["MONDAY"], threshold_minutes=120)
        self.assertEqual(len(gaps), 1)
        gap = gaps[0]
        self.assertEqual(gap.minutes, 300)
        self.assertEqual((gap.start_time, gap.end_time), ("09:00", "14:00"))
        self.assertEqual(gap.reason, "Large gap of 5h 0m")

    def test_small_gap_ignored(self) -> None:
        blocks = [make_block(start="08:00", end="09:00"), make_block(start="10:00", end="11:00")]
        self.assertEqual(detect_gaps(blocks, days=["MONDAY"]), [])

    def test_default_days_are_weekdays(self) -> None:
        gaps = detect_gaps([])
        self.assertEqual(
            [g.day_of_week for g in gaps],
            ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"],
        )


class TestStatistics(unittest.TestCase):
    def test_statistics(self) -> None:
        stats = calculate_statistics([
            make_block(start="09:00", end="10:00"),
            make_block(start="10:00", end="10:45"),
            make_block(day="FRIDAY", start="13:00", end="13:50"),
        ])
        self.assertEqual(stats.total_blocks, 3)
        self.assertEqual(stats.blocks_per_day, {"MONDAY": 2, "FRIDAY": 1})
        self.assertEqual(stats.total_duration, 155)
        self.assertEqual(stats.average_block_duration, 52)

    def test_empty(self) -> None:
        stats = calculate_statistics([])
        self.assertEqual(stats.total_blocks, 0)
        self.assertEqual(stats.average_block_duration, 0)


class TestAnalyze(unittest.TestCase):
    def test_full_analysis(self) -> None:
        doc = make_document([make_block(), make_block(start="09:30", end="10:30", subject="Art")])
        insights = analyze_semantics(doc, BagOfWordsEmbedder())
        self.assertIsNotNone(insights)
        self.assertTrue(insights.embeddings_available)
        self.assertEqual(len(insights.conflicts), 1)
        self.assertTrue(insights.needs_refinement)

    def test_unavailable_embedder_returns_none(self) -> None:
        doc = make_document()
        self.assertIsNone(analyze_semantics(doc, BagOfWordsEmbedder(available=False)))
        self.assertIsNone(analyze_semantics(doc, None))

    def test_failing_embedder_degrades(self) -> None:
        doc = make_document([make_block(), make_block(day="TUESDAY")])
        self.assertIsNone(analyze_semantics(doc, BagOfWordsEmbedder(fail=True)))
        insights = analyze(doc, BagOfWordsEmbedder(fail=True))
        self.assertFalse(insights.embeddings_available)
        self.assertEqual(insights.duplicates, [])
        self.assertEqual(insights.conflicts, [])
        self.assertEqual(insights.statistics.total_blocks, 2)
        self.assertFalse(insights.needs_refinement)


class TestRefinementContext(unittest.TestCase):
    def test_context_lists_findings(self) -> None:
        doc = make_document([make_block(), make_block(classroom="Room 101")])
        insights = analyze_semantics(doc, StaticEmbedder([[1.0, 0.0], [1.0, 0.0]]))
        context = build_refinement_context(doc, insights)
        self.assertIn("[0] MONDAY 09:00-10:00 Mathematics", context)
        self.assertIn("[0] and [1] (100.0% similar)", context)
        self.assertIn("TIME CONFLICTS:", context)
        self.assertIn("Time overlap detected", context)


class TestFinalize(unittest.TestCase):
    def test_exact_duplicates_collapse_to_most_complete(self) -> None:
        plain = make_block()
        rich = make_block(classroom="Room 101", grade="7")
        rich.confidence = 86
        doc = make_document([plain, rich, make_block(day="TUESDAY")])
        final = finalize_document(doc)
        self.assertEqual(len(final.time_blocks), 2)
        self.assertEqual(final.time_blocks[0].classroom, "Room 101")
        self.assertEqual(final.accepted_conflicts, [])

    def test_remaining_overlaps_are_recorded(self) -> None:
        doc = make_document([
            make_block(day="TUESDAY"),
            make_block(start="09:30", end="10:30", subject="Art"),
            make_block(),
        ])
        final = finalize_document(doc)
        self.assertEqual([b.day_of_week for b in final.time_blocks], ["MONDAY", "MONDAY", "TUESDAY"])
        self.assertEqual(len(final.accepted_conflicts), 1)
        self.assertEqual(final.accepted_conflicts[0].day_of_week, "MONDAY")


class TestVectorStore(unittest.TestCase):
    def test_search_orders_by_similarity(self) -> None:
        store = InMemoryVectorStore()
        store.add("a", [1.0, 0.0])
        store.add("b", [0.0, 1.0])
        store.add("c", [0.7, 0.7])
        hits = store.search([1.0, 0.1], k=2)
        self.assertEqual([h[0] for h in hits], ["a", "c"])
        self.assertEqual(len(store), 3)

    def test_cosine_zero_vector(self) -> None:
        self.assertEqual(cosine_similarity([0.0, 0.0], [1.0, 0.0]), 0.0)


if __name__ == "__main__":
    unittest.main()
