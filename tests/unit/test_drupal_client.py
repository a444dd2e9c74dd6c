import asyncio
import json

import httpx
import pytest

from answer_relay.cms.drupal import CmsError, DrupalClient, similar_fields
from answer_relay.config import DrupalConfig
from answer_relay.types import CandidateAnswer, ScoredAnswer


def _answers(count: int) -> list[ScoredAnswer]:
    return [
        ScoredAnswer(
            candidate=CandidateAnswer(f"Question {i}?", f"<p>Answer {i}</p>"),
            score=15.0,
            passes_threshold=True,
            rule="explicit_relevance",
        )
        for i in range(1, count + 1)
    ]


def _client(handler) -> DrupalClient:
    config = DrupalConfig(base_url="https://cms.example.org", username="bot", password="pw")
    return DrupalClient(config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_similar_fields_fill_at_most_three_slots() -> None:
    body = similar_fields(_answers(2))

    assert body["type"] == [{"target_id": "question_page"}]
    assert body["field_similar_question_1"] == [
        {"value": "Question: Question 1?\nAnswer: <p>Answer 1</p>", "format": "full_html"}
    ]
    assert "field_similar_question_2" in body
    assert "field_similar_question_3" not in body


def test_post_similar_logs_in_patches_and_logs_out() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/user/login":
            return httpx.Response(
                200,
                json={"csrf_token": "csrf-1", "logout_token": "logout-1"},
                headers={"set-cookie": "SESS=abc; path=/"},
            )
        if request.url.path == "/node/42":
            return httpx.Response(200, json={"nid": [{"value": 42}]})
        return httpx.Response(204)

    result = asyncio.run(_client(handler).post_similar("42", _answers(3)))

    assert result == {"nid": [{"value": 42}]}
    assert [(r.method, r.url.path) for r in requests] == [
        ("POST", "/user/login"),
        ("PATCH", "/node/42"),
        ("GET", "/user/logout"),
    ]
    login, patch, logout = requests
    assert login.url.params["_format"] == "json"
    assert json.loads(login.content) == {"name": "bot", "pass": "pw"}
    assert patch.headers["X-CSRF-Token"] == "csrf-1"
    assert patch.headers["Cookie"] == "SESS=abc; path=/"
    assert set(json.loads(patch.content)) == {
        "type",
        "field_similar_question_1",
        "field_similar_question_2",
        "field_similar_question_3",
    }
    assert logout.url.params["token"] == "logout-1"


def test_logout_runs_even_when_patch_fails() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/user/login":
            return httpx.Response(200, json={"csrf_token": "c", "logout_token": "l"})
        if request.url.path == "/node/7":
            return httpx.Response(403, text="Access denied")
        return httpx.Response(204)

    with pytest.raises(CmsError, match="403"):
        asyncio.run(_client(handler).post_similar("7", _answers(1)))
    assert paths == ["/user/login", "/node/7", "/user/logout"]


def test_non_json_patch_response_is_returned_raw() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/user/login":
            return httpx.Response(200, json={"csrf_token": "c", "logout_token": "l"})
        if request.url.path == "/node/9":
            return httpx.Response(200, text="updated")
        return httpx.Response(204)

    result = asyncio.run(_client(handler).post_similar("9", _answers(1)))

    assert result == {"raw": "updated"}


def test_unreachable_cms_raises_cms_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(CmsError):
        asyncio.run(_client(handler).login())
