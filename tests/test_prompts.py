from __future__ import annotations

import unittest

from thread_summarizer.post import ExtractedPost, PageData
from thread_summarizer.prompts import (
    SUMMARY_JSON_STRUCTURE,
    build_batch_prompt,
    build_meta_prompt,
    build_repair_prompt,
    build_single_page_prompt,
    build_stats_block,
    build_summary_prompt,
    format_batch_content,
    page_range_label,
    scaled_limits,
)


def _page(n: int, posts: list[ExtractedPost]) -> PageData:
    return PageData(page_number=n, posts=tuple(posts))


class TestScaledLimits(unittest.TestCase):
    def test_step_function(self) -> None:
        cases = {1: (5, 5), 3: (5, 5), 4: (7, 8), 7: (7, 8), 8: (9, 10), 15: (9, 10), 16: (12, 14), 25: (12, 14), 26: (15, 16)}
        for pages, expected in cases.items():
            limits = scaled_limits(pages)
            self.assertEqual((limits.max_key_points, limits.max_participants), expected, msg=f"pages={pages}")


class TestBuildSummaryPrompt(unittest.TestCase):
    def test_variants_embed_scaled_limits(self) -> None:
        gemini_batch = build_summary_prompt("gemini", "batch", 10)
        self.assertIn("hasta 9 puntos clave", gemini_batch)
        self.assertIn("EXACTAMENTE 10 participantes", gemini_batch)
        self.assertNotIn("$", gemini_batch)

        groq_meta = build_summary_prompt("groq", "meta", 30)
        self.assertIn("EXACTAMENTE 15 puntos clave y EXACTAMENTE 16 participantes", groq_meta)
        self.assertIn("resúmenes parciales", groq_meta)

    def test_meta_prompts_ask_to_deduplicate_and_keep_irony(self) -> None:
        gemini_meta = build_summary_prompt("gemini", "meta", 12)
        self.assertIn("No repitas informacion redundante", gemini_meta)
        self.assertIn("ironía", gemini_meta)

    def test_unknown_variant(self) -> None:
        with self.assertRaises(ValueError):
            build_summary_prompt("openai", "batch", 2)  # type: ignore[arg-type]


class TestStatsBlock(unittest.TestCase):
    def test_counts_posters_and_votes(self) -> None:
        pages = [
            _page(
                1,
                [
                    ExtractedPost(1, "Ana", "a", votes=2),
                    ExtractedPost(2, "Bea", "b"),
                    ExtractedPost(3, "Ana", "c", votes=10),
                ],
            ),
            _page(2, [ExtractedPost(4, "Bea", "d"), ExtractedPost(5, "Bea", "e")]),
        ]

        block = build_stats_block(pages)

        self.assertEqual(
            block,
            "ESTADISTICAS DEL HILO:\n"
            "- Usuarios mas activos (por nº de posts): Bea (3), Ana (2)\n"
            "- Posts mas votados por la comunidad: #3 por Ana (10 votos), #1 por Ana (2 votos)",
        )

    def test_omits_votes_line_without_votes_and_caps_at_ten(self) -> None:
        posts = [ExtractedPost(i, f"u{i}", "x") for i in range(1, 15)]
        block = build_stats_block([_page(1, posts)])

        self.assertNotIn("votados", block)
        self.assertEqual(block.count("(1)"), 10)


class TestPromptAssembly(unittest.TestCase):
    def setUp(self) -> None:
        self.pages = [
            _page(4, [ExtractedPost(40, "Ana", "hola " * 10)]),
            _page(5, [ExtractedPost(41, "Bea", "adios " * 10)]),
        ]

    def test_range_labels(self) -> None:
        self.assertEqual(page_range_label(self.pages[:1]), "Pagina 4")
        self.assertEqual(page_range_label(self.pages), "Paginas 4-5")

    def test_batch_content_is_truncated_to_budget(self) -> None:
        content = format_batch_content(self.pages, max_chars=50)
        self.assertTrue(content.startswith("\n--- PAGINA 4 (1 posts) ---\n#40 Ana"))
        self.assertTrue(content.endswith("\n[...contenido truncado]"))
        self.assertEqual(len(content), 50 + len("\n[...contenido truncado]"))

    def test_batch_prompt_layout(self) -> None:
        prompt = build_batch_prompt(
            provider="gemini",
            thread_title="Hilo",
            pages=self.pages,
            stats_block="ESTADISTICAS DEL HILO:\n- x",
            content="CONTENT",
        )
        self.assertIn("\n\n---\nTITULO DEL HILO: Hilo (Paginas 4-5)\n\nESTADISTICAS DEL HILO:\n- x\n\nPOSTS:\nCONTENT", prompt)

    def test_meta_prompt_layout(self) -> None:
        prompt = build_meta_prompt(
            provider="groq",
            thread_title="Hilo",
            partial_summaries=['{"a":1}', '{"b":2}'],
            range_labels=["Paginas 1-8"],
            from_page=1,
            to_page=9,
            page_count=9,
            stats_block="STATS",
        )
        self.assertIn("TITULO DEL HILO: Hilo\nRANGO DE PAGINAS: 1 a 9\n\nSTATS\n\nRESUMENES PARCIALES:\n", prompt)
        self.assertIn('--- Paginas 1-8 ---\n{"a":1}\n\n--- Seccion 2 ---\n{"b":2}', prompt)

    def test_single_page_prompt(self) -> None:
        first = build_single_page_prompt(thread_title="T", page_number=1, formatted_posts="P", post_count=3)
        later = build_single_page_prompt(thread_title="T", page_number=6, formatted_posts="P", post_count=3)
        self.assertIn("TITULO DEL HILO: T (Primera pagina del hilo)", first)
        self.assertIn("TITULO DEL HILO: T (Pagina 6 del hilo)", later)
        self.assertIn("POSTS DE ESTA PAGINA (3 posts):\nP", later)

    def test_repair_prompt(self) -> None:
        prompt = build_repair_prompt('{"topic": "x"')
        self.assertTrue(prompt.startswith("Devuelve SOLO JSON válido"))
        self.assertIn(SUMMARY_JSON_STRUCTURE, prompt)
        self.assertTrue(prompt.endswith('Contenido:\n{"topic": "x"'))


if __name__ == "__main__":
    unittest.main()
