"""FastAPI entrypoint for similar-answer, answer and trace endpoints.

Run with `uvicorn answer_relay.api.main:create_app --factory`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from answer_relay.cms.drupal import CmsError, DrupalClient
from answer_relay.config import Settings
from answer_relay.obs.logging import configure_logging
from answer_relay.obs.tracing import TraceStore
from answer_relay.pipeline.answers import AnswerService
from answer_relay.pipeline.similar import SimilarAnswerPipeline
from answer_relay.providers.completion import (
    ChatModelCompletionProvider,
    create_chat_model,
    create_embeddings,
)
from answer_relay.providers.search import AzureSearchProvider
from answer_relay.ratelimit.limiter import RateLimiter


class SimilarLookupRequest(BaseModel):
    question: str = Field(min_length=1)
    nid: str = "test123"


class FindSimilarRequest(BaseModel):
    entity: dict[str, Any] = Field(default_factory=dict)


class AnswersRequest(BaseModel):
    node: Any
    session_id: Any
    question: str = Field(min_length=1)


def create_app(
    settings: Settings | None = None,
    *,
    pipeline: SimilarAnswerPipeline | None = None,
    answer_service: AnswerService | None = None,
    cms: DrupalClient | None = None,
    trace_store: TraceStore | None = None,
) -> FastAPI:
    """Build the app; injected collaborators replace the settings-built ones."""

    store = trace_store or (pipeline.trace_store if pipeline is not None else TraceStore())
    closers: list[Any] = []

    if pipeline is None or answer_service is None or cms is None:
        resolved = settings or Settings.from_env()
        configure_logging(resolved.log_level, resolved.log_dir)

        if pipeline is None or answer_service is None:
            rate_limiter = RateLimiter.from_config(resolved.rate_limits)
            azure = resolved.azure
            search = AzureSearchProvider(
                endpoint=azure.search_endpoint,
                api_key=azure.search_key,
                index_name=azure.index_name,
                api_version=azure.search_api_version,
                embeddings=create_embeddings(azure),
                timeout_seconds=azure.request_timeout_seconds,
            )
            closers.append(search)
            completion = ChatModelCompletionProvider(create_chat_model(azure))
            if pipeline is None:
                pipeline = SimilarAnswerPipeline(
                    retrieval=search,
                    completion=completion,
                    rate_limiter=rate_limiter,
                    index_name=azure.answers_index_name,
                    config=resolved.pipeline,
                    scoring_config=resolved.scoring,
                    trace_store=store,
                )
            if answer_service is None:
                answer_service = AnswerService(
                    retrieval=search,
                    completion=completion,
                    rate_limiter=rate_limiter,
                    docs_index=azure.index_name,
                    pma_index=azure.pm_index_name,
                )

        if cms is None:
            cms = DrupalClient(resolved.drupal)
            closers.append(cms)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info("Answer relay starting")
        yield
        for closer in closers:
            await closer.aclose()

    app = FastAPI(title="Answer Relay", version="0.1.0", lifespan=lifespan)
    similar = pipeline
    answers = answer_service
    drupal = cms

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "channels": similar.rate_limiter.channels(),
            "trace_count": len(store.list_recent(limit=1000)),
        }

    @app.post("/api/test-similar")
    async def test_similar(request: SimilarLookupRequest) -> dict[str, Any]:
        logger.info("Processing test question: {}", request.question)
        result = await similar.run(request.question)
        return {
            "status": "success",
            "nid": request.nid,
            "similarAnswers": [answer.as_dict() for answer in result.answers],
            "trace_id": result.trace_id,
        }

    @app.post("/api/find-similar")
    async def find_similar(request: FindSimilarRequest) -> dict[str, Any]:
        nid = _first_value(request.entity, "nid")
        question = _first_value(request.entity, "field_enter_question")
        if not nid or not question:
            logger.warning("Invalid request body: {}", request.entity)
            raise HTTPException(status_code=400, detail="Missing required fields: nid or question")

        logger.info("Processing question for nid {}: {}", nid, question)
        result = await similar.run(question)
        try:
            await drupal.post_similar(nid, result.answers)
        except CmsError as exc:
            logger.error("Error posting to Drupal: {}", exc)
            raise HTTPException(status_code=500, detail="Failed to post to Drupal") from exc
        return {"status": "success", "nid": nid, "trace_id": result.trace_id}

    @app.post("/api/get-answers")
    async def get_answers(request: AnswersRequest) -> dict[str, Any]:
        bundle = await answers.answer(request.question)
        return {
            "node": request.node,
            "session_id": request.session_id,
            "question": request.question,
            "answerDocs": bundle.docs.answer,
            "answerPMA": bundle.pma.answer,
            "answerGPT": bundle.general.answer,
            "answerSummary": bundle.summary,
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(record) for record in store.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return store.summary()

    return app


def _first_value(entity: dict[str, Any], field_name: str) -> str | None:
    values = entity.get(field_name)
    if not isinstance(values, list) or not values or not isinstance(values[0], dict):
        return None
    value = values[0].get("value")
    if value is None:
        return None
    return str(value).strip() or None
