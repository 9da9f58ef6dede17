from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from thread_summarizer.config import load_config, resolve_runtime_secrets
from thread_summarizer.config_schema import BatchingConfig, ExtractionConfig
from thread_summarizer.errors import ConfigError


_VALID_YAML = """\
ai:
  provider: groq
  groq:
    api_key_env: MY_GROQ_KEY
    model: moonshotai/kimi-k2-instruct
    base_url: https://api.groq.com/openai/v1
    fallback_models:
      - llama-3.3-70b-versatile
      - llama-3.3-70b-versatile
    max_output_tokens: 4096

forum:
  site_url: https://www.mediavida.com/
  fetch_concurrency: 2

extraction:
  max_total_chars: 20000

summarize:
  gemini:
    pages_per_batch: 6
    max_chars_per_batch: 30000

retry:
  max_retries: 2
  base_delay_seconds: 1

cache:
  ttl_seconds: 60
"""


class TestConfig(unittest.TestCase):
    def _write(self, td: str, text: str) -> Path:
        path = Path(td) / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_config_ok(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, _VALID_YAML))

            self.assertEqual(cfg.ai.provider, "groq")
            self.assertEqual(cfg.ai.active().api_key_env, "MY_GROQ_KEY")
            self.assertEqual(cfg.ai.active().fallback_models, ["llama-3.3-70b-versatile"])
            self.assertEqual(cfg.forum.site_url, "https://www.mediavida.com")
            self.assertEqual(cfg.extraction.max_total_chars, 20000)
            self.assertEqual(cfg.summarize.gemini.pages_per_batch, 6)
            self.assertEqual(cfg.retry.max_retries, 2)
            self.assertEqual(cfg.cache.ttl_seconds, 60)

    def test_empty_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, ""))

            self.assertEqual(cfg.ai.provider, "gemini")
            self.assertEqual(cfg.ai.active().api_key_env, "GEMINI_API_KEY")
            self.assertEqual(cfg.summarize.for_provider("gemini").limits_for(30), (8, 40000))
            self.assertEqual(cfg.summarize.for_provider("groq").limits_for(19), (4, 16000))
            self.assertEqual(cfg.summarize.for_provider("groq").limits_for(20), (3, 12000))
            self.assertEqual(cfg.extraction.max_chars_per_post, 1500)

    def test_load_config_rejects_unknown_keys_and_bad_values(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigError):
                load_config(self._write(td, "ai:\n  provider: openai\n"))
            with self.assertRaises(ConfigError) as ctx:
                load_config(self._write(td, "forum:\n  colour: blue\n"))
            self.assertIn("forum.colour", str(ctx.exception))
            with self.assertRaises(ConfigError):
                load_config(self._write(td, "- just\n- a list\n"))
            with self.assertRaises(ConfigError):
                load_config(Path(td) / "missing.yaml")

    def test_schema_cross_field_checks(self) -> None:
        with self.assertRaises(ValidationError):
            ExtractionConfig(min_chars_per_post=2000)
        with self.assertRaises(ValidationError):
            BatchingConfig(pages_per_batch=4, max_chars_per_batch=100, large_range_threshold=20)

    def test_resolve_runtime_secrets(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            cfg = load_config(self._write(td, _VALID_YAML))

            missing = resolve_runtime_secrets(cfg, environ={})
            self.assertFalse(missing.has_credentials)
            self.assertIsNone(missing.api_key)

            secrets = resolve_runtime_secrets(cfg, environ={"MY_GROQ_KEY": " k "})
            self.assertEqual(secrets.provider, "groq")
            self.assertEqual(secrets.api_key, "k")


if __name__ == "__main__":
    unittest.main()
