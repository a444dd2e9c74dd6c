"""Relevance scoring, threshold filtering and result capping."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from answer_relay.config import ScoringConfig
from answer_relay.ingest.normalizer import QUESTION_PLACEHOLDER, ResponseNormalizer
from answer_relay.scoring.strategies import DEFAULT_STRATEGIES, ScoringContext, Strategy
from answer_relay.types import CandidateAnswer, QueryContext, RetrievalHit, ScoredAnswer


@dataclass(slots=True)
class Selection:
    """Final bounded answer set plus how it was reached."""

    answers: list[ScoredAnswer]
    scored: list[ScoredAnswer]
    from_hits: bool = False

    @property
    def passed(self) -> bool:
        return any(answer.passes_threshold for answer in self.answers)


class RelevanceScorer:
    """Scores candidates with an ordered strategy cascade and filters them.

    The cascade is conservative: whatever cannot be positively matched ends up
    below the confidence threshold. Output keeps provider emission order and is
    never empty; when nothing passes, the canonical no-result answer stands in.
    """

    def __init__(
        self,
        config: ScoringConfig | None = None,
        *,
        normalizer: ResponseNormalizer | None = None,
        strategies: Sequence[tuple[str, Strategy]] = DEFAULT_STRATEGIES,
    ) -> None:
        self.config = config or ScoringConfig()
        self.normalizer = normalizer or ResponseNormalizer()
        self.strategies = tuple(strategies)

    def score(
        self,
        candidates: Sequence[CandidateAnswer],
        query: QueryContext,
        hits: Sequence[RetrievalHit] = (),
    ) -> list[ScoredAnswer]:
        context = ScoringContext.build(query, hits, self.config)
        scored: list[ScoredAnswer] = []
        for candidate in candidates:
            value, rule = self._apply(candidate, context)
            value = min(max(value, 0.0), self.config.max_score)
            candidate.derived_score = value
            scored.append(
                ScoredAnswer(
                    candidate=candidate,
                    score=value,
                    passes_threshold=self.passes(value),
                    rule=rule,
                )
            )
            logger.debug("Scored {!r} -> {:.2f} via {}", candidate.question[:80], value, rule)
        return scored

    def passes(self, score: float) -> bool:
        return score / self.config.max_score >= self.config.confidence_threshold

    def select(self, scored: Sequence[ScoredAnswer]) -> list[ScoredAnswer]:
        """Keep passing answers in emission order, capped at `max_results`."""
        kept = [answer for answer in scored if answer.passes_threshold]
        if not kept:
            return [self.no_result()]
        return kept[: self.config.max_results]

    def candidates_from_hits(self, hits: Sequence[RetrievalHit]) -> list[CandidateAnswer]:
        """Synthesize candidates from raw hits, seeding relevance from provider scores."""
        candidates: list[CandidateAnswer] = []
        for hit in hits:
            if not hit.content.strip():
                continue
            explicit = None
            if hit.provider_score is not None:
                explicit = min(
                    self.config.hit_score_cap,
                    max(0.0, hit.provider_score / self.config.hit_score_scale),
                )
            candidates.append(
                CandidateAnswer(
                    question=(hit.title or hit.caption or QUESTION_PLACEHOLDER).strip(),
                    answer=hit.content.strip(),
                    explicit_relevance=explicit,
                )
            )
        return candidates

    def rank(
        self,
        candidates: Sequence[CandidateAnswer],
        query: QueryContext,
        hits: Sequence[RetrievalHit] = (),
    ) -> Selection:
        """Score and select, recovering from raw hits when the model gave nothing."""
        from_hits = False
        if self._only_no_result(candidates) and hits:
            synthesized = self.candidates_from_hits(hits)
            if synthesized:
                logger.info("Model yielded no usable answers; scoring {} retrieval hits", len(synthesized))
                candidates = synthesized
                from_hits = True

        if self._only_no_result(candidates):
            return Selection(answers=[self.no_result()], scored=[])

        scored = self.score(candidates, query, hits)
        return Selection(answers=self.select(scored), scored=scored, from_hits=from_hits)

    def no_result(self) -> ScoredAnswer:
        return ScoredAnswer(
            candidate=self.normalizer.no_result(),
            score=0.0,
            passes_threshold=False,
            rule="no_result",
        )

    def _apply(self, candidate: CandidateAnswer, context: ScoringContext) -> tuple[float, str]:
        for name, strategy in self.strategies:
            value = strategy(candidate, context)
            if value is not None:
                return value, name
        return 0.0, "unscored"

    def _only_no_result(self, candidates: Sequence[CandidateAnswer]) -> bool:
        return len(candidates) == 1 and self.normalizer.is_no_result(candidates[0])
