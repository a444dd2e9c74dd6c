"""Document retrieval over Azure Cognitive Search."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal

import httpx

from answer_relay.providers.errors import TransportError
from answer_relay.types import RetrievalHit

SearchMode = Literal["keyword", "semantic", "vector"]


class RetrievalProvider(ABC):
    """Retrieval interface used by the pipelines."""

    @abstractmethod
    async def search(
        self,
        query: str,
        *,
        index_name: str | None = None,
        mode: SearchMode = "keyword",
        top: int = 5,
    ) -> list[RetrievalHit]:
        """Return hits for `query`, raising `TransportError` on failure."""


class AzureSearchProvider(RetrievalProvider):
    """Queries an Azure Cognitive Search index.

    Keyword mode sends the raw query, semantic mode adds the extractive
    captions/answers configuration, and vector mode embeds the query first
    through the optional `embeddings` object (anything with `aembed_query`).
    """

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str,
        index_name: str,
        api_version: str = "2023-07-01-Preview",
        semantic_configuration: str = "default",
        client: httpx.AsyncClient | None = None,
        embeddings: Any | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.index_name = index_name
        self.api_version = api_version
        self.semantic_configuration = semantic_configuration
        self.embeddings = embeddings
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def search(
        self,
        query: str,
        *,
        index_name: str | None = None,
        mode: SearchMode = "keyword",
        top: int = 5,
    ) -> list[RetrievalHit]:
        index = index_name or self.index_name
        url = f"{self.endpoint}/indexes/{index}/docs/search"
        body = await self._build_body(query, mode=mode, top=top)
        try:
            response = await self._client.post(
                url,
                params={"api-version": self.api_version},
                headers={"Content-Type": "application/json", "api-key": self.api_key},
                json=body,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                "azure-search",
                f"search request failed: {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TransportError("azure-search", f"search request failed: {exc}") from exc

        documents = payload.get("value") or []
        return [RetrievalHit.from_search_document(doc) for doc in documents if isinstance(doc, dict)]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _build_body(self, query: str, *, mode: SearchMode, top: int) -> dict[str, Any]:
        body: dict[str, Any] = {"count": False, "top": top}
        if mode == "semantic":
            body.update(
                {
                    "search": query,
                    "queryType": "semantic",
                    "semanticConfiguration": self.semantic_configuration,
                    "queryLanguage": "en-us",
                    "captions": "extractive",
                    "answers": "extractive",
                }
            )
        elif mode == "vector":
            if self.embeddings is None:
                raise ValueError("vector search requires an embeddings client")
            try:
                vector = await self.embeddings.aembed_query(query)
            except Exception as exc:
                raise TransportError("azure-embeddings", f"embedding request failed: {exc}") from exc
            body["vectors"] = [{"value": vector, "fields": "contentVector", "k": top}]
        else:
            body["search"] = query
        return body
