"""Provider error hierarchy."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for failures talking to an external provider."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class TransportError(ProviderError):
    """Network or HTTP failure; never retried at the pipeline layer."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(provider, message)
        self.status_code = status_code
