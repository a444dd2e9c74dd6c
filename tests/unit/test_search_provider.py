import asyncio
import json

import httpx
import pytest

from answer_relay.providers.errors import TransportError
from answer_relay.providers.search import AzureSearchProvider


class FakeEmbeddings:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    async def aembed_query(self, text: str) -> list[float]:
        if self.fail:
            raise RuntimeError("deployment not found")
        return [0.1, 0.2, 0.3]


def _provider(handler, embeddings=None) -> AzureSearchProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AzureSearchProvider(
        endpoint="https://search.example.net/",
        api_key="secret",
        index_name="default-index",
        client=client,
        embeddings=embeddings,
    )


def test_keyword_search_maps_documents_to_hits() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200,
            json={
                "value": [
                    {
                        "content": "Drink water.",
                        "title": "Hydration",
                        "@search.score": 7.5,
                        "@search.rerankerScore": 2.9,
                        "@search.captions": [{"text": "Drink water daily."}],
                    },
                    {"content": "Sleep well.", "@search.score": "1.5"},
                ]
            },
        )

    hits = asyncio.run(_provider(handler).search("water", index_name="answers", top=3))

    request = captured[0]
    assert request.url.path == "/indexes/answers/docs/search"
    assert request.url.params["api-version"] == "2023-07-01-Preview"
    assert request.headers["api-key"] == "secret"
    assert json.loads(request.content) == {"count": False, "top": 3, "search": "water"}

    assert hits[0].provider_score == 2.9
    assert hits[0].caption == "Drink water daily."
    assert hits[1].provider_score == 1.5
    assert hits[1].title is None


def test_semantic_search_requests_captions() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"value": []})

    hits = asyncio.run(_provider(handler).search("flu", mode="semantic"))

    assert hits == []
    assert bodies[0]["queryType"] == "semantic"
    assert bodies[0]["captions"] == "extractive"
    assert bodies[0]["search"] == "flu"


def test_vector_search_embeds_query() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"value": []})

    asyncio.run(_provider(handler, FakeEmbeddings()).search("flu", mode="vector", top=4))

    assert bodies[0]["vectors"] == [{"value": [0.1, 0.2, 0.3], "fields": "contentVector", "k": 4}]
    assert "search" not in bodies[0]


def test_vector_search_without_embeddings_is_rejected() -> None:
    provider = _provider(lambda request: httpx.Response(200, json={"value": []}))

    with pytest.raises(ValueError):
        asyncio.run(provider.search("flu", mode="vector"))


def test_embedding_failure_is_a_transport_error() -> None:
    provider = _provider(lambda request: httpx.Response(200, json={}), FakeEmbeddings(fail=True))

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(provider.search("flu", mode="vector"))
    assert excinfo.value.provider == "azure-embeddings"


def test_http_errors_become_transport_errors() -> None:
    provider = _provider(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(provider.search("flu"))
    assert excinfo.value.status_code == 503


def test_network_and_payload_errors_become_transport_errors() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        asyncio.run(_provider(refuse).search("flu"))
    with pytest.raises(TransportError):
        asyncio.run(_provider(lambda request: httpx.Response(200, text="<html>")).search("flu"))
