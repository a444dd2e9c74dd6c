"""Multi-source answer flow: documents, general model, PubMed abstracts, summary."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from answer_relay.prompts import ANSWER_SYSTEM_PROMPT, documents_prompt, summary_prompt
from answer_relay.providers.completion import CompletionProvider
from answer_relay.providers.errors import ProviderError
from answer_relay.providers.search import RetrievalProvider, SearchMode
from answer_relay.ratelimit.limiter import RateLimiter
from answer_relay.types import RetrievalHit

GENERAL_APOLOGY = (
    "I apologize, but I encountered an error while processing your question. "
    "Please try again later."
)
DOCUMENTS_APOLOGY = (
    "I apologize, but I encountered an error while processing your question with "
    "the available documents. Please try again later."
)
SUMMARY_UNAVAILABLE = "Unable to generate summary due to missing data"


@dataclass(slots=True)
class SourcedAnswer:
    answer: str
    hits: list[RetrievalHit]
    ok: bool = True


@dataclass(slots=True)
class AnswerBundle:
    docs: SourcedAnswer
    general: SourcedAnswer
    pma: SourcedAnswer
    summary: str


class AnswerService:
    """Answers a question from three sources concurrently, then summarises them.

    A failing source contributes an apology text instead of raising; the
    summary is only requested when every source succeeded.
    """

    def __init__(
        self,
        *,
        retrieval: RetrievalProvider,
        completion: CompletionProvider,
        rate_limiter: RateLimiter,
        docs_index: str,
        pma_index: str,
        search_channel: str = "search",
        completion_channel: str = "completions",
        pma_mode: SearchMode = "vector",
    ) -> None:
        self.retrieval = retrieval
        self.completion = completion
        self.rate_limiter = rate_limiter
        self.docs_index = docs_index
        self.pma_index = pma_index
        self.search_channel = search_channel
        self.completion_channel = completion_channel
        self.pma_mode = pma_mode

    async def answer(self, question: str) -> AnswerBundle:
        docs, general, pma = await asyncio.gather(
            self._from_documents(question, self.docs_index, "semantic"),
            self._general(question),
            self._from_documents(question, self.pma_index, self.pma_mode),
        )

        summary = SUMMARY_UNAVAILABLE
        if docs.ok and general.ok and pma.ok:
            try:
                summary = await self._complete(
                    summary_prompt(question, docs.answer, general.answer, pma.answer)
                )
            except ProviderError as exc:
                logger.error("Summary generation failed: {}", exc)

        return AnswerBundle(docs=docs, general=general, pma=pma, summary=summary)

    async def _general(self, question: str) -> SourcedAnswer:
        try:
            return SourcedAnswer(answer=await self._complete(question), hits=[])
        except ProviderError as exc:
            logger.error("General answer failed: {}", exc)
            return SourcedAnswer(answer=GENERAL_APOLOGY, hits=[], ok=False)

    async def _from_documents(self, question: str, index: str, mode: SearchMode) -> SourcedAnswer:
        try:
            await self.rate_limiter.acquire(self.search_channel)
            hits = await self.retrieval.search(question, index_name=index, mode=mode, top=5)
            answer = await self._complete(documents_prompt(question, hits))
        except (ProviderError, ValueError) as exc:
            logger.error("Document answer from index '{}' failed: {}", index, exc)
            return SourcedAnswer(answer=DOCUMENTS_APOLOGY, hits=[], ok=False)
        return SourcedAnswer(answer=answer or "No answer available", hits=hits)

    async def _complete(self, prompt: str) -> str:
        await self.rate_limiter.acquire(self.completion_channel)
        return await self.completion.complete(ANSWER_SYSTEM_PROMPT, prompt)
