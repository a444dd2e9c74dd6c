"""Drupal field-update collaborator for similar answers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from answer_relay.config import DrupalConfig
from answer_relay.types import ScoredAnswer

SIMILAR_FIELDS = (
    "field_similar_question_1",
    "field_similar_question_2",
    "field_similar_question_3",
)


class CmsError(Exception):
    """The CMS rejected a request or could not be reached."""


@dataclass(slots=True, frozen=True)
class DrupalSession:
    cookie: str
    csrf_token: str
    logout_token: str


def similar_fields(answers: Sequence[ScoredAnswer]) -> dict[str, Any]:
    """Map final scored answers onto the node's similar-question fields."""
    body: dict[str, Any] = {"type": [{"target_id": "question_page"}]}
    for field_name, answer in zip(SIMILAR_FIELDS, answers):
        body[field_name] = [
            {
                "value": f"Question: {answer.question}\nAnswer: {answer.answer}",
                "format": "full_html",
            }
        ]
    return body


class DrupalClient:
    """Logs in, patches a node, and logs out again, one session per update."""

    def __init__(self, config: DrupalConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = config.base_url if config.base_url.endswith("/") else config.base_url + "/"
        self.username = config.username
        self.password = config.password
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def login(self) -> DrupalSession:
        response = await self._request(
            "POST",
            "user/login",
            json={"name": self.username, "pass": self.password},
        )
        data = response.json()
        logger.info("Logged in to Drupal")
        return DrupalSession(
            cookie=response.headers.get("set-cookie", ""),
            csrf_token=str(data.get("csrf_token", "")),
            logout_token=str(data.get("logout_token", "")),
        )

    async def logout(self, session: DrupalSession) -> None:
        logger.info("Logging out of Drupal")
        await self._request("GET", "user/logout", params={"token": session.logout_token})

    async def update_similar(
        self,
        session: DrupalSession,
        nid: str,
        answers: Sequence[ScoredAnswer],
    ) -> dict[str, Any]:
        logger.debug("Posting {} similar answers for node {}", len(answers), nid)
        response = await self._request(
            "PATCH",
            f"node/{nid}",
            json=similar_fields(answers),
            headers={"X-CSRF-Token": session.csrf_token, "Cookie": session.cookie},
        )
        try:
            return response.json()
        except ValueError:
            logger.warning("Could not parse Drupal response as JSON")
            return {"raw": response.text}

    async def post_similar(self, nid: str, answers: Sequence[ScoredAnswer]) -> dict[str, Any]:
        session = await self.login()
        try:
            return await self.update_similar(session, nid, answers)
        finally:
            await self.logout(session)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        params = {"_format": "json", **kwargs.pop("params", {})}
        headers = {"Accept": "*/*", "Content-Type": "application/json", **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(
                method, self.base_url + path, params=params, headers=headers, **kwargs
            )
        except httpx.HTTPError as exc:
            raise CmsError(f"Drupal {method} {path} failed: {exc}") from exc
        if response.is_error:
            raise CmsError(f"Drupal {method} {path} failed: {response.status_code} - {response.text}")
        return response
