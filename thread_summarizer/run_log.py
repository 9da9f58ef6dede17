from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def truncate_text(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class RunLogger:
    """
    JSON-lines logger for summarization runs.

    Each record is a single JSON object written to a file, echoed to a stream,
    or both. Page fetches run on worker threads, so writes are serialized.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        echo: TextIO | None = None,
        overwrite: bool = True,
        session_id: str | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._echo = echo
        self._overwrite = bool(overwrite)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._fp: TextIO | None = None
        self._lock = Lock()
        self._opened = False
        self.records: list[dict[str, Any]] | None = None

    @classmethod
    def open(
        cls,
        path: str | Path | None = None,
        *,
        echo: TextIO | None = None,
        overwrite: bool = True,
    ) -> "RunLogger":
        logger = cls(path, echo=echo, overwrite=overwrite)
        logger._ensure_open()
        return logger

    @classmethod
    def in_memory(cls) -> "RunLogger":
        """A logger that only keeps records in `.records`; handy for tests."""
        logger = cls()
        logger.records = []
        return logger

    @property
    def session_id(self) -> str:
        return self._session_id

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def debug(self, event: str, *, location: str | None = None, **data: Any) -> None:
        self.log("DEBUG", event, location=location, **data)

    def info(self, event: str, *, location: str | None = None, **data: Any) -> None:
        self.log("INFO", event, location=location, **data)

    def warning(self, event: str, *, location: str | None = None, **data: Any) -> None:
        self.log("WARN", event, location=location, **data)

    def error(self, event: str, *, location: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, location=location, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        location: str | None = None,
        **data: Any,
    ) -> None:
        err = {
            "type": type(exc).__name__,
            "message": truncate_text(str(exc), limit=2000),
            "traceback": truncate_text(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, location=location, error=err, **data)

    def log(self, level: str, event: str, *, location: str | None = None, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        ev = (event or "").strip() or "event"

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": ev,
            "session_id": self._session_id,
        }

        loc = (location or "").strip()
        if loc:
            record["location"] = loc

        if data:
            record["data"] = data

        self._write(record)

    def _ensure_open(self) -> None:
        if self._fp is not None or self._path is None:
            return

        with self._lock:
            if self._fp is not None:
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite and not self._opened else "a"

            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            self._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self.records is not None:
                self.records.append(record)
            if self._fp is not None:
                self._fp.write(payload + "\n")
                self._fp.flush()
            if self._echo is not None:
                self._echo.write(payload + "\n")
                self._echo.flush()

    def events(self) -> list[str]:
        return [str(r.get("event")) for r in (self.records or [])]
