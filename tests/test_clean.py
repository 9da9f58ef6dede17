from __future__ import annotations

import unittest

from bs4 import BeautifulSoup

from thread_summarizer.clean import clean_post_content, has_meaningful_text, is_media_only_url


class TestCleanPostContent(unittest.TestCase):
    def test_strips_quotes_signatures_and_embeds(self) -> None:
        html = (
            '<div class="body">'
            "<blockquote>quoted text</blockquote>"
            "<p>Opinión   propia\n sobre el tema</p>"
            '<div class="post-signature">firma</div>'
            '<iframe src="https://www.youtube.com/embed/x"></iframe>'
            '<img src="a.png">'
            "<script>alert(1)</script>"
            "</div>"
        )
        self.assertEqual(clean_post_content(html), "Opinión propia sobre el tema")

    def test_spoilers_removed_by_default_and_kept_on_request(self) -> None:
        html = (
            '<div class="body"><p>Antes</p>'
            '<div class="spoiler-wrap"><a class="spoiler" href="#">Spoiler</a>'
            '<div class="sp">el final sorpresa</div></div></div>'
        )
        self.assertEqual(clean_post_content(html), "Antes")

        kept = clean_post_content(html, keep_spoilers=True)
        self.assertIn("el final sorpresa", kept)
        self.assertNotIn("Spoiler", kept)

    def test_code_blocks_only_removed_when_asked(self) -> None:
        html = '<div class="body"><p>Mira esto:</p><pre>print("hola")</pre></div>'
        self.assertIn('print("hola")', clean_post_content(html))
        self.assertEqual(clean_post_content(html, remove_code_blocks=True), "Mira esto:")

    def test_bare_media_url_cleans_to_empty(self) -> None:
        html = (
            '<div class="body"><a href="https://twitter.com/user/status/1">'
            "https://twitter.com/user/status/1</a></div>"
        )
        self.assertEqual(clean_post_content(html), "")

    def test_media_link_with_own_text_is_kept(self) -> None:
        html = '<div class="body"><a href="https://youtu.be/abc">mirad este vídeo tan bueno</a></div>'
        self.assertEqual(clean_post_content(html), "mirad este vídeo tan bueno")

    def test_does_not_mutate_the_source_tree(self) -> None:
        soup = BeautifulSoup('<div class="body"><blockquote>cita</blockquote><p>texto</p></div>', "html.parser")
        body = soup.select_one(".body")
        assert body is not None

        clean_post_content(body)

        self.assertIsNotNone(soup.select_one("blockquote"))

    def test_helpers(self) -> None:
        self.assertTrue(is_media_only_url("https://x.com/a/status/1"))
        self.assertFalse(is_media_only_url("https://example.com/article"))
        self.assertFalse(has_meaningful_text("https://example.com/a  "))
        self.assertFalse(has_meaningful_text("ok"))
        self.assertTrue(has_meaningful_text("vale"))


if __name__ == "__main__":
    unittest.main()
