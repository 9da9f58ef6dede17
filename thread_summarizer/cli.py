from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, DecodeError, FetchError, GenerationError, NoUsableContentError
from .extract import current_page_number
from .fetch import HttpPageSource, PageSource, SummaryProgress
from .llm import OpenAICompatibleGenerator, TextGenerator
from .post_summary import extract_post_text, is_post_long_enough, short_post_message, summarize_post
from .run_log import RunLogger
from .summarize import ThreadSummarizer


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="thread_summarizer")

    subparsers = parser.add_subparsers(dest="command", required=True)

    page = subparsers.add_parser(
        "page",
        help="Summarize a single thread page.",
    )
    page.add_argument("--config", required=True, help="Path to YAML config file.")
    source = page.add_mutually_exclusive_group(required=True)
    source.add_argument("--html", help="Path to a saved thread page.")
    source.add_argument("--url", help="Thread page URL to download.")
    page.add_argument(
        "--offline",
        action="store_true",
        help="Use a synthetic thread and a stub generator; no network calls.",
    )
    page.add_argument("--log", help="Write a JSON-lines run log to this path.")
    page.set_defaults(_handler=_cmd_page)

    pages = subparsers.add_parser(
        "pages",
        help="Summarize a range of thread pages (map-reduce over batches).",
    )
    pages.add_argument("--config", required=True, help="Path to YAML config file.")
    pages.add_argument("--url", required=True, help="Thread URL (any page).")
    pages.add_argument("--from", dest="from_page", type=int, required=True, help="First page (inclusive).")
    pages.add_argument("--to", dest="to_page", type=int, required=True, help="Last page (inclusive).")
    pages.add_argument(
        "--offline",
        action="store_true",
        help="Use synthetic pages and a stub generator; no network calls.",
    )
    pages.add_argument("--log", help="Write a JSON-lines run log to this path.")
    pages.set_defaults(_handler=_cmd_pages)

    post = subparsers.add_parser(
        "post",
        help="Summarize a single post body.",
    )
    post.add_argument("--config", required=True, help="Path to YAML config file.")
    post.add_argument("--html", required=True, help="Path to a saved post body fragment.")
    post.add_argument(
        "--offline",
        action="store_true",
        help="Use a stub generator; no network calls.",
    )
    post.set_defaults(_handler=_cmd_post)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _read_text(path: str) -> str:
    p = Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except OSError as e:
        raise FetchError(f"Failed to read {p}: {e}") from e


def _build_generator(cfg: AppConfig, *, offline: bool) -> TextGenerator | None:
    if offline:
        from .offline import OfflineGenerator

        return OfflineGenerator()

    secrets = resolve_runtime_secrets(cfg)
    if not secrets.has_credentials or secrets.api_key is None:
        return None
    return OpenAICompatibleGenerator(secrets.api_key, provider_cfg=cfg.ai.active())


def _build_summarizer(cfg: AppConfig, log: RunLogger, *, offline: bool) -> ThreadSummarizer:
    return ThreadSummarizer.from_config(
        _build_generator(cfg, offline=offline),
        cfg,
        logger=log,
        sleep_fn=(lambda _seconds: None) if offline else None,
    )


def _page_source(url: str, cfg: AppConfig, *, offline: bool) -> PageSource:
    if offline:
        from .offline import OfflinePageSource

        return OfflinePageSource()
    return HttpPageSource(url, forum_cfg=cfg.forum)


def _open_log(path: str | None) -> RunLogger:
    return RunLogger.open(path, overwrite=True) if path else RunLogger()


def _print_progress(progress: SummaryProgress) -> None:
    _eprint(f"{progress.phase} {progress.current}/{progress.total} ({progress.fraction:.0%})")


def _cmd_page(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    offline = bool(getattr(args, "offline", False))

    with _open_log(getattr(args, "log", None)) as log:
        log.info("page_command_started", config_path=str(args.config), offline=offline)
        summarizer = _build_summarizer(cfg, log, offline=offline)

        if args.html:
            html = _read_text(args.html)
        else:
            page_number = current_page_number("", args.url)
            html = _page_source(args.url, cfg, offline=offline).fetch_page(page_number)

        summary = summarizer.summarize_document(html, url=args.url)
        _print_json(summary.to_wire())
        return 4 if summary.is_error else 0


def _cmd_pages(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    offline = bool(getattr(args, "offline", False))

    with _open_log(getattr(args, "log", None)) as log:
        log.info(
            "pages_command_started",
            config_path=str(args.config),
            url=args.url,
            from_page=args.from_page,
            to_page=args.to_page,
            offline=offline,
        )
        summarizer = _build_summarizer(cfg, log, offline=offline)
        summary = summarizer.summarize_pages(
            _page_source(args.url, cfg, offline=offline),
            args.from_page,
            args.to_page,
            on_progress=_print_progress,
        )
        _print_json(summary.to_wire())
        return 4 if summary.is_error else 0


def _cmd_post(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    offline = bool(getattr(args, "offline", False))

    text = extract_post_text(_read_text(args.html))
    if not is_post_long_enough(text):
        _print_json({"tooShort": True, "message": short_post_message()})
        return 0

    result = summarize_post(text, _build_generator(cfg, offline=offline))
    _print_json(result.to_wire())
    return 4 if result.error else 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (FetchError, GenerationError, DecodeError, NoUsableContentError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
