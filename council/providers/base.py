"""Abstract base for completion service adapters."""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod

from config.config_loader import AgentConfig
from council.models import Completion

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]


class ProviderError(Exception):
    """Raised when a completion call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class CompletionProvider(ABC):
    """One agent's view of a completion service.

    Subclasses build their SDK client in __init__ and implement _send. The
    base class owns the API key lookup, the per-call timeout, wrapping SDK
    exceptions into ProviderError, and the Completion record.
    """

    label = "Completion"

    def __init__(self, config: AgentConfig) -> None:
        self._config = config
        self._api_key = os.environ.get(config.api_key_env, "").strip()
        if not self._api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")

    def name(self) -> str:
        """Return the agent name this provider serves (e.g. 'agent1', 'judge')."""
        return self._config.name

    def model_string(self) -> str:
        """Return the actual model identifier string."""
        return self._config.model

    @abstractmethod
    async def _send(self, messages: list[ChatMessage], temperature: float | None) -> tuple[str, int | None]:
        """Make one SDK call. Returns (text, token_count); text may be empty."""
        ...

    async def complete(self, messages: list[ChatMessage], temperature: float | None = None) -> Completion:
        """Generate a reply for a chat message list.

        Args:
            messages: [{"role": "system"|"user"|"assistant", "content": ...}, ...]
            temperature: Sampling temperature; provider default when None.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        start = time.monotonic()
        try:
            text, token_count = await asyncio.wait_for(
                self._send(messages, temperature),
                timeout=self._config.timeout_sec,
            )
        except ProviderError:
            raise
        except TimeoutError as exc:
            raise ProviderError(self.name(), f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self.name(), f"API call failed: {exc}") from exc

        latency = time.monotonic() - start
        if not text:
            raise ProviderError(self.name(), "Empty response content")

        logger.info("%s %s: %.2fs, %s tokens", self.label, self.name(), latency, token_count)

        return Completion(
            provider=self.name(),
            model=self._config.model,
            content=text,
            latency_sec=latency,
            token_count=token_count,
        )


def split_system(messages: list[ChatMessage]) -> tuple[str, list[ChatMessage]]:
    """Separate system messages (joined) from the conversational turns."""
    system = "\n\n".join(m["content"] for m in messages if m.get("role") == "system")
    turns = [m for m in messages if m.get("role") != "system"]
    return system, turns
