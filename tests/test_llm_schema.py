from __future__ import annotations

import unittest

from pydantic import ValidationError

from thread_summarizer.llm_schema import MultiPageSummary, PostSummary, SummaryPayload, ThreadSummary


class TestSummaryPayload(unittest.TestCase):
    def test_lenient_validation_drops_unusable_items(self) -> None:
        payload = SummaryPayload.model_validate(
            {
                "topic": "  Debate  ",
                "keyPoints": ["uno", "", 3, "  dos "],
                "participants": [{"name": "Ana", "contribution": "x"}, {"contribution": "sin nombre"}, "Bea"],
                "status": None,
                "extra": "ignored",
            }
        )

        self.assertEqual(payload.topic, "Debate")
        self.assertEqual(payload.key_points, ["uno", "dos"])
        self.assertEqual([p.name for p in payload.participants], ["Ana"])
        self.assertEqual(payload.status, "")

    def test_non_list_fields_become_empty(self) -> None:
        payload = SummaryPayload.model_validate({"keyPoints": "uno", "participants": {"name": "x"}})
        self.assertEqual(payload.key_points, [])
        self.assertEqual(payload.participants, [])

    def test_capped(self) -> None:
        payload = SummaryPayload.model_validate(
            {"keyPoints": [str(i) for i in range(9)], "participants": [{"name": f"u{i}"} for i in range(9)]}
        )
        capped = payload.capped(max_key_points=5, max_participants=3)
        self.assertEqual(len(capped.key_points), 5)
        self.assertEqual(len(capped.participants), 3)


class TestSummaries(unittest.TestCase):
    def test_error_summary_cannot_carry_content(self) -> None:
        with self.assertRaises(ValidationError):
            ThreadSummary(title="t", error="fallo", topic="algo")

        failed = MultiPageSummary(title="t", error="fallo", fetch_errors=[3])
        self.assertTrue(failed.is_error)

    def test_wire_format_is_camel_case_without_nulls(self) -> None:
        summary = MultiPageSummary(
            title="Hilo",
            topic="t",
            key_points=["k"],
            total_posts_analyzed=45,
            total_unique_authors=5,
            pages_analyzed=3,
            page_range="1-3",
            generation_ms=12,
        )
        wire = summary.to_wire()

        self.assertEqual(wire["totalPostsAnalyzed"], 45)
        self.assertEqual(wire["pageRange"], "1-3")
        self.assertEqual(wire["keyPoints"], ["k"])
        self.assertEqual(wire["fetchErrors"], [])
        self.assertNotIn("error", wire)
        self.assertNotIn("modelUsed", wire)

    def test_post_summary_wire(self) -> None:
        self.assertEqual(PostSummary(summary="s", tone="Neutral").to_wire(), {"summary": "s", "tone": "Neutral"})


if __name__ == "__main__":
    unittest.main()
