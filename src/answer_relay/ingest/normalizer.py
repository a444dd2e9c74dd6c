"""Recovers question/answer arrays from free-form model output."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Union

from loguru import logger

from answer_relay.config import PipelineConfig
from answer_relay.types import CandidateAnswer

QUESTION_PLACEHOLDER = "Question not available"
ANSWER_PLACEHOLDER = "Answer not available"

_SCORE_KEYS = ("relevanceScore", "relevance_score")
_LEADING_FENCE = re.compile(r"^\s*```(?:json|JSON)?[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```\s*$")
_QUESTION_KEY = re.compile(r'"question"\s*:\s*"')
_ANSWER_KEY = re.compile(r'"\s*,\s*"answer"\s*:\s*"')
_VALUE_END = re.compile(r'"(?=\s*(?:\}|,\s*"\w+"\s*:))')
_SCORE_FIELD = re.compile(r'"(?:relevanceScore|relevance_score)"\s*:\s*"?(-?\d+(?:\.\d+)?)')
_STRING_TOKEN = re.compile(r'\\(?:["\\/bfnrt]|u[0-9a-fA-F]{4})|\\|"|[\x00-\x1f]')
_RAW_LOG_LIMIT = 2000


class MalformedOutputError(ValueError):
    """A parse stage could not produce a non-empty JSON array."""


@dataclass(slots=True, frozen=True)
class Parsed:
    """The text was a clean JSON array."""

    candidates: list[CandidateAnswer]
    stage: str = "direct"


@dataclass(slots=True, frozen=True)
class Recovered:
    """A usable array was salvaged from surrounding prose or broken JSON."""

    candidates: list[CandidateAnswer]
    stage: str


@dataclass(slots=True, frozen=True)
class ParseFailed:
    """No stage produced a usable array."""

    reason: str
    stage: str = "fallback"


ParseOutcome = Union[Parsed, Recovered, ParseFailed]


def parse_direct(text: str) -> list[Any]:
    """Stage 1: the whole text is a JSON array."""
    return _load_array(text)


def parse_bracketed(text: str) -> list[Any]:
    """Stage 2: parse the outermost `[...]` span."""
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        raise MalformedOutputError("no bracketed array in text")
    return _load_array(text[start : end + 1])


def recover_fragments(text: str) -> list[Any]:
    """Stage 3: rebuild an array from question/answer shaped fragments.

    The text is cut at every `"question"` key and each piece is scanned once,
    so truncated output costs linear time. Each captured field is re-escaped on
    its own so stray quotes, backslashes and raw newlines inside HTML answers
    no longer break the document. A piece without a closing `}` is dropped.
    """

    keys = list(_QUESTION_KEY.finditer(text))
    fragments: list[str] = []
    for index, key in enumerate(keys):
        stop = keys[index + 1].start() if index + 1 < len(keys) else len(text)
        fragment = _fragment(text[key.end() : stop])
        if fragment is not None:
            fragments.append(fragment)
    if not fragments:
        raise MalformedOutputError("no question/answer fragments found")
    return _load_array("[" + ",".join(fragments) + "]")


def _fragment(segment: str) -> str | None:
    answer_key = _ANSWER_KEY.search(segment)
    if answer_key is None:
        return None
    rest = segment[answer_key.end() :]
    value_end = _VALUE_END.search(rest)
    if value_end is None:
        return None
    tail = rest[value_end.start() + 1 :]
    close = tail.find("}")
    if close < 0:
        return None

    question = _reescape(segment[: answer_key.start()])
    answer = _reescape(rest[: value_end.start()])
    fragment = f'{{"question": "{question}", "answer": "{answer}"'
    score = _SCORE_FIELD.search(tail, 0, close)
    if score is not None:
        fragment += f', "relevanceScore": {score.group(1)}'
    return fragment + "}"


_STAGES: tuple[tuple[str, Callable[[str], list[Any]]], ...] = (
    ("direct", parse_direct),
    ("bracketed", parse_bracketed),
    ("fragments", recover_fragments),
)


class ResponseNormalizer:
    """Turns untrusted completion text into an ordered list of candidates.

    `normalize` is total: any input yields at least one candidate, falling back
    to the canonical no-result pair when every stage fails.
    """

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def parse(self, raw_text: str | None) -> ParseOutcome:
        text = _strip_fences(raw_text or "")
        if not text:
            return ParseFailed(reason="empty model output")

        errors: list[str] = []
        for stage, parse_stage in _STAGES:
            try:
                items = parse_stage(text)
            except MalformedOutputError as exc:
                errors.append(f"{stage}: {exc}")
                continue
            candidates = [self._coerce(item) for item in items]
            if stage == "direct":
                return Parsed(candidates=candidates)
            return Recovered(candidates=candidates, stage=stage)
        return ParseFailed(reason="; ".join(errors))

    def normalize(self, raw_text: str | None) -> list[CandidateAnswer]:
        return self.resolve(self.parse(raw_text), raw_text)

    def resolve(self, outcome: ParseOutcome, raw_text: str | None = None) -> list[CandidateAnswer]:
        """Candidates for a parse outcome; the no-result pair when it failed."""
        if isinstance(outcome, ParseFailed):
            logger.warning(
                "Model output could not be normalized ({}): {!r}",
                outcome.reason,
                (raw_text or "")[:_RAW_LOG_LIMIT],
            )
            return [self.no_result()]
        if isinstance(outcome, Recovered):
            logger.info(
                "Recovered {} candidates via '{}' stage", len(outcome.candidates), outcome.stage
            )
        return outcome.candidates

    def no_result(self) -> CandidateAnswer:
        return CandidateAnswer(
            question=self.config.fallback_question,
            answer=self.config.fallback_message,
        )

    def is_no_result(self, candidate: CandidateAnswer) -> bool:
        return self.config.fallback_question.lower() in candidate.question.lower()

    @staticmethod
    def to_json(candidates: list[CandidateAnswer]) -> str:
        """Serialize candidates in the shape the model is asked to emit."""
        payload: list[dict[str, Any]] = []
        for candidate in candidates:
            item: dict[str, Any] = candidate.as_dict()
            if candidate.explicit_relevance is not None:
                item["relevanceScore"] = candidate.explicit_relevance
            payload.append(item)
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _coerce(item: Any) -> CandidateAnswer:
        if not isinstance(item, dict):
            return CandidateAnswer(question=QUESTION_PLACEHOLDER, answer=ANSWER_PLACEHOLDER)
        return CandidateAnswer(
            question=_text_field(item.get("question")) or QUESTION_PLACEHOLDER,
            answer=_text_field(item.get("answer")) or ANSWER_PLACEHOLDER,
            explicit_relevance=_explicit_relevance(item),
        )


def _load_array(text: str) -> list[Any]:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedOutputError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise MalformedOutputError(f"expected array, got {type(data).__name__}")
    if not data:
        raise MalformedOutputError("empty array")
    return data


def _strip_fences(text: str) -> str:
    """Drop a markdown fence wrapping the whole text; inner fences stay."""
    text = _LEADING_FENCE.sub("", text.strip(), count=1)
    return _TRAILING_FENCE.sub("", text, count=1).strip()


def _reescape(value: str) -> str:
    """Make captured string content valid JSON, keeping escapes that already are."""
    return _STRING_TOKEN.sub(_escape_token, value)


def _escape_token(match: re.Match[str]) -> str:
    token = match.group(0)
    if len(token) > 1:
        return token
    if token == "\\":
        return "\\\\"
    return json.dumps(token)[1:-1]


def _text_field(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def _explicit_relevance(item: dict[str, Any]) -> float | None:
    for key in _SCORE_KEYS:
        value = item.get(key)
        if isinstance(value, bool) or value is None:
            continue
        try:
            score = float(value)
        except (TypeError, ValueError):
            continue
        if 0.0 <= score <= 1.0:
            return score
    return None
