from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
    extra="ignore",
    protected_namespaces=(),
)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value).strip()


class Participant(BaseModel):
    model_config = _WIRE_CONFIG

    name: str
    contribution: str = ""
    avatar_url: str | None = None

    @field_validator("name", "contribution", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return _as_text(v)


class SummaryPayload(BaseModel):
    """
    Content fields as returned by the model.

    Models often pad lists with placeholder strings or drop keys; anything that is
    not usable is discarded here rather than failing the whole summary.
    """

    model_config = _WIRE_CONFIG

    topic: str = ""
    key_points: list[str] = Field(default_factory=list)
    participants: list[Participant] = Field(default_factory=list)
    status: str = ""

    @field_validator("topic", "status", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("key_points", mode="before")
    @classmethod
    def _keep_string_points(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [item.strip() for item in v if isinstance(item, str) and item.strip()]

    @field_validator("participants", mode="before")
    @classmethod
    def _keep_named_participants(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict) and _as_text(item.get("name"))]

    def capped(self, *, max_key_points: int, max_participants: int) -> "SummaryPayload":
        return self.model_copy(
            update={
                "key_points": list(self.key_points[:max_key_points]),
                "participants": list(self.participants[:max_participants]),
            }
        )


class _SummaryBase(BaseModel):
    model_config = _WIRE_CONFIG

    topic: str = ""
    key_points: list[str] = Field(default_factory=list)
    participants: list[Participant] = Field(default_factory=list)
    status: str = ""

    title: str = ""
    generation_ms: int | None = None
    model_used: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _error_has_no_content(self) -> "_SummaryBase":
        if self.error and (self.topic or self.key_points or self.participants or self.status):
            raise ValueError("error summaries must not carry content fields")
        return self

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ThreadSummary(_SummaryBase):
    posts_analyzed: int = 0
    unique_authors: int = 0
    page_number: int = 1


class MultiPageSummary(_SummaryBase):
    total_posts_analyzed: int = 0
    total_unique_authors: int = 0
    pages_analyzed: int = 0
    page_range: str = ""
    fetch_errors: list[int] = Field(default_factory=list)


class PostSummary(BaseModel):
    model_config = _WIRE_CONFIG

    summary: str
    tone: str
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
