"""Anthropic Messages API via the anthropic SDK."""

import anthropic as anthropic_sdk

from config.config_loader import AgentConfig
from council.providers.base import ChatMessage, CompletionProvider, ProviderError, split_system


class AnthropicProvider(CompletionProvider):
    label = "Anthropic"

    def __init__(self, config: AgentConfig) -> None:
        super().__init__(config)
        self._client = anthropic_sdk.AsyncAnthropic(api_key=self._api_key)

    async def _send(self, messages: list[ChatMessage], temperature: float | None) -> tuple[str, int | None]:
        # System prompt goes out of band; turns must alternate user/assistant
        system, turns = split_system(messages)
        extra = {}
        if system:
            extra["system"] = system
        if temperature is not None:
            extra["temperature"] = temperature

        response = await self._client.messages.create(
            model=self._config.model,
            max_tokens=self._config.max_tokens,
            messages=turns,
            **extra,
        )

        text_blocks = [block.text for block in response.content or [] if block.type == "text"]
        if not text_blocks:
            raise ProviderError(self.name(), "No text blocks in response")
        usage = response.usage
        return "\n".join(text_blocks), usage.input_tokens + usage.output_tokens if usage else None
