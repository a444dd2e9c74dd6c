"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(slots=True, frozen=True)
class QueryContext:
    """Read-only query input threaded through normalization and scoring."""

    raw_query_text: str
    domain_tag: str = "health"


@dataclass(slots=True, frozen=True)
class RetrievalHit:
    """A document returned by the retrieval provider."""

    content: str
    title: str | None = None
    source: str | None = None
    category: str | None = None
    score: float | None = None
    reranker_score: float | None = None
    caption: str | None = None

    @property
    def provider_score(self) -> float | None:
        """Provider-native relevance, preferring the reranker when present."""
        if self.reranker_score is not None:
            return self.reranker_score
        return self.score

    @classmethod
    def from_search_document(cls, document: dict[str, Any]) -> "RetrievalHit":
        captions = document.get("@search.captions") or []
        caption = None
        if captions and isinstance(captions[0], dict):
            caption = captions[0].get("text")
        return cls(
            content=str(document.get("content") or ""),
            title=document.get("title"),
            source=document.get("source"),
            category=document.get("category"),
            score=_as_float(document.get("@search.score")),
            reranker_score=_as_float(document.get("@search.rerankerScore")),
            caption=caption,
        )


@dataclass(slots=True, frozen=True)
class RawModelResponse:
    """Untrusted completion text plus the hits retrieved alongside it."""

    answer: str
    hits: tuple[RetrievalHit, ...] = ()


@dataclass(slots=True)
class CandidateAnswer:
    """An unscored question/answer pair.

    `derived_score` is written once by the scorer and left alone afterwards.
    """

    question: str
    answer: str
    explicit_relevance: float | None = None
    derived_score: float | None = None

    def as_dict(self) -> dict[str, str]:
        return {"question": self.question, "answer": self.answer}


@dataclass(slots=True, frozen=True)
class ScoredAnswer:
    """A candidate with its finalized 0-20 score and threshold verdict."""

    candidate: CandidateAnswer
    score: float
    passes_threshold: bool
    rule: str

    @property
    def question(self) -> str:
        return self.candidate.question

    @property
    def answer(self) -> str:
        return self.candidate.answer

    def as_dict(self) -> dict[str, str]:
        return self.candidate.as_dict()


class DegradedCause(str, Enum):
    """Why an invocation ended on the canonical no-result answer."""

    TRANSPORT_ERROR = "transport_error"
    PROVIDER_ERROR_TEXT = "provider_error_text"
    MALFORMED_OUTPUT = "malformed_output"
    EMPTY_RETRIEVAL = "empty_retrieval"
    LOW_CONFIDENCE = "low_confidence"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(slots=True)
class PipelineResult:
    """Outcome of one similar-answer invocation.

    Callers only need `answers`; `cause` keeps the degraded reason visible to
    tests and traces without changing the answer text.
    """

    answers: list[ScoredAnswer]
    cause: DegradedCause | None = None
    parse_stage: str | None = None
    trace_id: str | None = None
    rules: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.cause is not None

    @property
    def outcome(self) -> str:
        return "degraded" if self.degraded else "success"


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
