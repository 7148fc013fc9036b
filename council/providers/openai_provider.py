"""OpenAI-compatible chat completions (OpenAI, RedPill, any /v1 endpoint) via the openai SDK."""

from openai import AsyncOpenAI

from config.config_loader import AgentConfig
from council.providers.base import ChatMessage, CompletionProvider


class OpenAIProvider(CompletionProvider):
    """base_url selects the backend; None means api.openai.com."""

    label = "OpenAI-compatible"

    def __init__(self, config: AgentConfig) -> None:
        super().__init__(config)
        self._client = AsyncOpenAI(api_key=self._api_key, base_url=config.base_url)

    async def _send(self, messages: list[ChatMessage], temperature: float | None) -> tuple[str, int | None]:
        extra = {} if temperature is None else {"temperature": temperature}
        response = await self._client.chat.completions.create(
            model=self._config.model,
            messages=messages,
            max_tokens=self._config.max_tokens,
            **extra,
        )
        choice = response.choices[0] if response.choices else None
        text = choice.message.content if choice else None
        return text or "", response.usage.total_tokens if response.usage else None
