"""Text completion over a LangChain chat model."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from langchain_core.prompts import ChatPromptTemplate

from answer_relay.config import AzureConfig
from answer_relay.providers.errors import TransportError

_CHAT_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{system}"),
        ("human", "{prompt}"),
    ]
)


class CompletionProvider(ABC):
    """Completion interface used by the pipelines."""

    @abstractmethod
    async def complete(self, system: str, prompt: str) -> str:
        """Return free-form model text, raising `TransportError` on failure."""


class ChatModelCompletionProvider(CompletionProvider):
    """Adapts any LangChain chat model exposing `ainvoke`.

    The returned text is untrusted and is always routed through the
    normalizer before use.
    """

    def __init__(self, llm: Any, *, name: str = "azure-openai") -> None:
        self.llm = llm
        self.name = name

    async def complete(self, system: str, prompt: str) -> str:
        messages = _CHAT_PROMPT.format_messages(system=system, prompt=prompt)
        try:
            result = await self.llm.ainvoke(messages)
        except Exception as exc:
            raise TransportError(self.name, f"completion request failed: {exc}") from exc
        return _message_text(result).strip()


def create_chat_model(config: AzureConfig) -> Any:
    from langchain_openai import AzureChatOpenAI

    return AzureChatOpenAI(
        azure_endpoint=config.base_url,
        api_key=config.api_key,
        azure_deployment=config.deployment,
        api_version=config.api_version,
        temperature=0.2,
        max_tokens=800,
        timeout=config.request_timeout_seconds,
    )


def create_embeddings(config: AzureConfig) -> Any | None:
    if not config.embedding_deployment:
        return None

    from langchain_openai import AzureOpenAIEmbeddings

    return AzureOpenAIEmbeddings(
        azure_endpoint=config.base_url,
        api_key=config.api_key,
        azure_deployment=config.embedding_deployment,
        api_version="2023-05-15",
    )


def _message_text(result: Any) -> str:
    content = getattr(result, "content", result)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts)
    return str(content)
