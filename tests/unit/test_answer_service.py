import asyncio

from answer_relay.config import BucketConfig
from answer_relay.pipeline.answers import (
    DOCUMENTS_APOLOGY,
    GENERAL_APOLOGY,
    SUMMARY_UNAVAILABLE,
    AnswerService,
)
from answer_relay.providers.completion import CompletionProvider
from answer_relay.providers.errors import TransportError
from answer_relay.providers.search import RetrievalProvider
from answer_relay.ratelimit.limiter import RateLimiter
from answer_relay.types import RetrievalHit


class IndexedRetrieval(RetrievalProvider):
    def __init__(self, failing_index: str | None = None) -> None:
        self.failing_index = failing_index
        self.calls: list[tuple[str | None, str]] = []

    async def search(self, query, *, index_name=None, mode="keyword", top=5):
        self.calls.append((index_name, mode))
        if index_name == self.failing_index:
            raise TransportError("azure-search", "index unavailable")
        return [RetrievalHit(content=f"{index_name} passage", title=index_name)]


class EchoCompletion(CompletionProvider):
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.prompts: list[str] = []

    async def complete(self, system: str, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail_on and self.fail_on in prompt:
            raise TransportError("azure-openai", "HTTP 500")
        if prompt.startswith("Combine"):
            return "summary"
        return f"answer to: {prompt.splitlines()[1] if prompt.startswith('Context') else prompt}"


def _service(retrieval: RetrievalProvider, completion: CompletionProvider) -> AnswerService:
    quota = BucketConfig(capacity=20, tokens_per_interval=20, interval_ms=60000)
    return AnswerService(
        retrieval=retrieval,
        completion=completion,
        rate_limiter=RateLimiter({"search": quota, "completions": quota}),
        docs_index="docs",
        pma_index="pma",
    )


def test_all_sources_answer_and_are_summarised() -> None:
    retrieval = IndexedRetrieval()
    completion = EchoCompletion()

    bundle = asyncio.run(_service(retrieval, completion).answer("How is asthma treated?"))

    assert bundle.docs.ok and bundle.general.ok and bundle.pma.ok
    assert bundle.docs.answer == "answer to: docs passage"
    assert bundle.pma.answer == "answer to: pma passage"
    assert bundle.general.answer == "answer to: How is asthma treated?"
    assert bundle.summary == "summary"
    assert sorted(retrieval.calls) == [("docs", "semantic"), ("pma", "vector")]
    assert "Question: How is asthma treated?" in completion.prompts[-1]


def test_failed_document_source_skips_summary() -> None:
    bundle = asyncio.run(
        _service(IndexedRetrieval(failing_index="pma"), EchoCompletion()).answer("What is a fever?")
    )

    assert not bundle.pma.ok
    assert bundle.pma.answer == DOCUMENTS_APOLOGY
    assert bundle.docs.ok
    assert bundle.summary == SUMMARY_UNAVAILABLE


def test_failed_general_answer_uses_apology() -> None:
    completion = EchoCompletion(fail_on="What is a fever?")

    bundle = asyncio.run(_service(IndexedRetrieval(), completion).answer("What is a fever?"))

    assert bundle.general.answer == GENERAL_APOLOGY
    assert bundle.docs.answer == DOCUMENTS_APOLOGY
    assert bundle.summary == SUMMARY_UNAVAILABLE


def test_summary_failure_keeps_source_answers() -> None:
    completion = EchoCompletion(fail_on="Combine")

    bundle = asyncio.run(_service(IndexedRetrieval(), completion).answer("Why do I sneeze?"))

    assert bundle.docs.ok and bundle.general.ok and bundle.pma.ok
    assert bundle.summary == SUMMARY_UNAVAILABLE
