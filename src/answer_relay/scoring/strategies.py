"""Ordered scoring strategies.

Each strategy is a pure function `(candidate, context) -> score | None` on the
0..max_score scale. The scorer applies them in order and keeps the first score
returned, so precedence lives in `DEFAULT_STRATEGIES` rather than in branches.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from answer_relay.config import ScoringConfig
from answer_relay.scoring.domain import (
    DomainVocabulary,
    domain_relevance,
    shared_topical_terms,
    vocabulary_for,
)
from answer_relay.types import CandidateAnswer, QueryContext, RetrievalHit

_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True, frozen=True)
class ScoringContext:
    query: QueryContext
    hits: Sequence[RetrievalHit]
    config: ScoringConfig
    vocabulary: DomainVocabulary

    @classmethod
    def build(
        cls,
        query: QueryContext,
        hits: Sequence[RetrievalHit] = (),
        config: ScoringConfig | None = None,
    ) -> "ScoringContext":
        return cls(
            query=query,
            hits=tuple(hits),
            config=config or ScoringConfig(),
            vocabulary=vocabulary_for(query.domain_tag),
        )


Strategy = Callable[[CandidateAnswer, ScoringContext], "float | None"]


def explicit_relevance(candidate: CandidateAnswer, context: ScoringContext) -> float | None:
    """Map a model-supplied relevance in [0, 1] linearly onto the score scale."""
    if candidate.explicit_relevance is None:
        return None
    return candidate.explicit_relevance * context.config.max_score


def query_match(candidate: CandidateAnswer, context: ScoringContext) -> float | None:
    """Score the candidate question against the original query text."""
    query = _normalize(context.query.raw_query_text)
    question = _normalize(candidate.question)
    if not query or not question:
        return None
    minimum = context.config.min_match_chars
    if _contains(question, query, minimum) or _contains(query, question, minimum):
        return context.config.query_exact_score

    width = context.config.prefix_match_chars
    if _contains(question, query[:width], width) or _contains(query, question[:width], width):
        return context.config.query_prefix_score
    return None


def hit_content_match(candidate: CandidateAnswer, context: ScoringContext) -> float | None:
    """Adopt a retrieval hit's provider score when the answer quotes that hit."""
    answer = _collapse(candidate.answer)
    if not answer:
        return None
    for hit in context.hits:
        provider_score = hit.provider_score
        if provider_score is None:
            continue
        prefix = _collapse(hit.content)[: context.config.hit_prefix_chars]
        if _contains(answer, prefix, context.config.min_match_chars):
            return min(max(provider_score, 0.0), context.config.max_score)
    return None


def domain_heuristic(candidate: CandidateAnswer, context: ScoringContext) -> float:
    """Last resort: lexical triage of the query against the domain vocabulary.

    Always yields a score, pushing anything off-domain below the threshold.
    """

    config = context.config
    query = context.query.raw_query_text
    relevance = domain_relevance(query, context.vocabulary)
    if relevance.relevance < config.domain_floor:
        return config.domain_low_score

    candidate_text = f"{candidate.question} {candidate.answer}"
    if shared_topical_terms(query, candidate_text, context.vocabulary):
        return config.domain_topical_score
    return config.domain_generic_score


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("explicit_relevance", explicit_relevance),
    ("query_match", query_match),
    ("hit_content_match", hit_content_match),
    ("domain_heuristic", domain_heuristic),
)


def _contains(text: str, fragment: str, minimum: int) -> bool:
    return len(fragment) >= minimum and fragment in text


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _normalize(text: str) -> str:
    return _collapse(text).lower().rstrip("?!.:; ")
