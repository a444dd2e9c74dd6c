"""Find-similar-answers pipeline."""

from __future__ import annotations

from loguru import logger

from answer_relay.config import PipelineConfig, ScoringConfig
from answer_relay.ingest.normalizer import ParseFailed, ResponseNormalizer
from answer_relay.obs.tracing import Timer, TraceStore
from answer_relay.prompts import SIMILAR_SYSTEM_PROMPT, similar_prompt
from answer_relay.providers.completion import CompletionProvider
from answer_relay.providers.errors import TransportError
from answer_relay.providers.search import RetrievalProvider
from answer_relay.ratelimit.limiter import RateLimiter
from answer_relay.scoring.scorer import RelevanceScorer
from answer_relay.types import (
    CandidateAnswer,
    DegradedCause,
    PipelineResult,
    QueryContext,
    RawModelResponse,
)

_ERROR_TEXT_MARKERS = ("Cannot read properties",)


class SimilarAnswerPipeline:
    """Retrieval -> completion -> normalization -> scoring, with one degraded exit.

    Every provider call first takes a token from the injected `RateLimiter`.
    Transport failures, malformed output, empty retrieval and low relevance all
    end in the canonical no-result answer; `run` reports which one happened
    through `PipelineResult.cause`, while `find` returns only the answers.
    """

    def __init__(
        self,
        *,
        retrieval: RetrievalProvider,
        completion: CompletionProvider,
        rate_limiter: RateLimiter,
        index_name: str | None = None,
        config: PipelineConfig | None = None,
        scoring_config: ScoringConfig | None = None,
        normalizer: ResponseNormalizer | None = None,
        scorer: RelevanceScorer | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.retrieval = retrieval
        self.completion = completion
        self.rate_limiter = rate_limiter
        self.index_name = index_name
        self.config = config or PipelineConfig()
        self.normalizer = normalizer or ResponseNormalizer(self.config)
        self.scorer = scorer or RelevanceScorer(scoring_config, normalizer=self.normalizer)
        self.trace_store = trace_store or TraceStore()

    async def find(self, query: str) -> list[dict[str, str]]:
        """Return 1-3 question/answer pairs; never raises."""
        result = await self.run(query)
        return [answer.as_dict() for answer in result.answers]

    async def run(self, query: str) -> PipelineResult:
        context = self._context(query)
        response = RawModelResponse(answer="")
        candidates: list[CandidateAnswer] = []

        with Timer() as timer:
            try:
                response = await self._fetch(query)
                result, candidates = self._ingest(context, response)
            except TransportError as exc:
                logger.error("Provider call failed for {!r}: {}", query, exc)
                result = self._degraded(DegradedCause.TRANSPORT_ERROR)
            except Exception:
                logger.exception("Unexpected failure finding similar answers for {!r}", query)
                result = self._degraded(DegradedCause.UNEXPECTED_ERROR)

        if result.cause is not None:
            logger.warning("Similar-answer lookup degraded ({}) for {!r}", result.cause.value, query)

        record = self.trace_store.create_record(
            query=query,
            result=result,
            hit_count=len(response.hits),
            candidate_count=len(candidates),
            latency_ms=timer.elapsed_ms,
        )
        result.trace_id = record.trace_id
        return result

    def ingest(self, query: str, response: RawModelResponse) -> PipelineResult:
        """Normalize and rank an already fetched response without calling providers."""
        result, _ = self._ingest(self._context(query), response)
        return result

    async def _fetch(self, query: str) -> RawModelResponse:
        logger.info("Finding similar answers for question: {!r}", query)
        await self.rate_limiter.acquire(self.config.search_channel)
        hits = await self.retrieval.search(
            query,
            index_name=self.index_name,
            mode=self.config.search_mode,
            top=self.config.search_top,
        )
        await self.rate_limiter.acquire(self.config.completion_channel)
        text = await self.completion.complete(SIMILAR_SYSTEM_PROMPT, similar_prompt(query, hits))
        return RawModelResponse(answer=text, hits=tuple(hits))

    def _ingest(
        self,
        context: QueryContext,
        response: RawModelResponse,
    ) -> tuple[PipelineResult, list[CandidateAnswer]]:
        text = response.answer
        if _looks_like_error(text):
            logger.warning("Completion text looks like a provider error: {!r}", text[:500])
            return self._degraded(DegradedCause.PROVIDER_ERROR_TEXT), []

        outcome = self.normalizer.parse(text)
        candidates = self.normalizer.resolve(outcome, text)
        selection = self.scorer.rank(candidates, context, response.hits)

        cause = None
        if not selection.passed:
            if not selection.scored:
                cause = (
                    DegradedCause.MALFORMED_OUTPUT
                    if isinstance(outcome, ParseFailed)
                    else DegradedCause.EMPTY_RETRIEVAL
                )
            else:
                cause = DegradedCause.LOW_CONFIDENCE

        result = PipelineResult(
            answers=selection.answers,
            cause=cause,
            parse_stage="hits" if selection.from_hits else outcome.stage,
            rules=[answer.rule for answer in selection.scored],
        )
        return result, candidates

    def _context(self, query: str) -> QueryContext:
        return QueryContext(raw_query_text=query, domain_tag=self.config.domain_tag)

    def _degraded(self, cause: DegradedCause) -> PipelineResult:
        return PipelineResult(answers=[self.scorer.no_result()], cause=cause)


def _looks_like_error(text: str) -> bool:
    stripped = text.strip()
    return stripped.startswith("Error:") or any(marker in stripped for marker in _ERROR_TEXT_MARKERS)
