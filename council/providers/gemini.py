"""Gemini via the google-genai SDK's async client."""

from google import genai
from google.genai import types as genai_types

from config.config_loader import AgentConfig
from council.providers.base import ChatMessage, CompletionProvider, split_system


def _to_contents(turns: list[ChatMessage]) -> list[genai_types.Content]:
    """Map chat turns onto Gemini contents ("assistant" is "model" there)."""
    return [
        genai_types.Content(
            role="model" if m["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in turns
    ]


class GeminiProvider(CompletionProvider):
    label = "Gemini"

    def __init__(self, config: AgentConfig) -> None:
        super().__init__(config)
        self._client = genai.Client(api_key=self._api_key)

    async def _send(self, messages: list[ChatMessage], temperature: float | None) -> tuple[str, int | None]:
        system, turns = split_system(messages)
        response = await self._client.aio.models.generate_content(
            model=self._config.model,
            contents=_to_contents(turns),
            config=genai_types.GenerateContentConfig(
                max_output_tokens=self._config.max_tokens,
                system_instruction=system or None,
                temperature=temperature,
            ),
        )
        usage = response.usage_metadata
        return response.text or "", usage.total_token_count if usage else None
