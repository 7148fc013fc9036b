"""Specialist agent endpoints: system prompt + per-session context + completion call."""

import logging
from collections import OrderedDict

from config.config_loader import AgentConfig, AppConfig
from council.models import AGENT_IDS
from council.providers.anthropic import AnthropicProvider
from council.providers.base import ChatMessage, CompletionProvider, ProviderError
from council.providers.gemini import GeminiProvider
from council.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[CompletionProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}

# Conversations kept per endpoint; oldest sessions are forgotten first
MAX_SESSIONS = 256


class AgentRequestError(ValueError):
    """Raised when an agent request is malformed (e.g. no messages)."""


class AgentCallError(Exception):
    """Raised when an agent could not produce a reply."""

    def __init__(self, agent_id: str, message: str, status: int | None = None) -> None:
        self.agent_id = agent_id
        self.status = status
        super().__init__(f"[{agent_id}] {message}")


def _normalize(messages: list[ChatMessage] | str) -> list[ChatMessage]:
    if isinstance(messages, str):
        messages = [{"role": "user", "content": messages}]
    return [
        {"role": str(m.get("role", "user")), "content": str(m.get("content", ""))}
        for m in messages
        if m.get("role") != "system"
    ]


class AgentEndpoint:
    """One specialist role backed by one completion provider.

    The endpoint remembers each session's exchanges, so later rounds see the
    earlier prompts and replies without the caller re-sending them.
    """

    def __init__(self, config: AgentConfig, provider: CompletionProvider) -> None:
        self._config = config
        self._provider = provider
        self._history: OrderedDict[str, list[ChatMessage]] = OrderedDict()

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def title(self) -> str:
        return self._config.title

    @property
    def provider(self) -> CompletionProvider:
        return self._provider

    def history(self, session_id: str) -> list[ChatMessage]:
        return list(self._history.get(session_id, []))

    def forget(self, session_id: str) -> None:
        self._history.pop(session_id, None)

    def _remember(self, session_id: str, turns: list[ChatMessage]) -> None:
        self._history.setdefault(session_id, []).extend(turns)
        self._history.move_to_end(session_id)
        while len(self._history) > MAX_SESSIONS:
            self._history.popitem(last=False)

    async def respond(
        self,
        messages: list[ChatMessage] | str,
        session_id: str | None = None,
        round_label: str | None = None,
        model: str | None = None,
    ) -> str:
        """Run one exchange and return the reply text.

        Raises:
            AgentRequestError: If no messages were given.
            AgentCallError: If the completion service failed.
        """
        turns = _normalize(messages) if messages else []
        if not turns:
            raise AgentRequestError("messages array required")
        if model and model != self._provider.model_string():
            logger.debug("%s: ignoring requested model %s, configured %s",
                          self.name, model, self._provider.model_string())

        context = self._history.get(session_id, []) if session_id else []
        payload: list[ChatMessage] = []
        if self._config.system_prompt:
            payload.append({"role": "system", "content": self._config.system_prompt})
        payload.extend(context)
        payload.extend(turns)

        try:
            completion = await self._provider.complete(payload, temperature=self._config.temperature)
        except ProviderError as exc:
            raise AgentCallError(self.name, str(exc)) from exc

        if session_id:
            self._remember(session_id, turns + [{"role": "assistant", "content": completion.content}])

        logger.debug(
            "%s answered %s (session %s, %d context turns)",
            self.name, round_label or "-", session_id or "-", len(context),
        )
        return completion.content


def build_provider(config: AgentConfig) -> CompletionProvider:
    """Instantiate the provider class for an agent's sdk.

    Raises:
        ProviderError: For an unknown sdk or a missing API key.
    """
    if config.sdk not in PROVIDER_CLASSES:
        raise ProviderError(config.name, f"Unknown sdk: {config.sdk}")
    return PROVIDER_CLASSES[config.sdk](config)


def build_all_providers(config: AppConfig) -> dict[str, CompletionProvider]:
    """Build providers for every available agent and the judge. Keyed by name."""
    providers: dict[str, CompletionProvider] = {}
    for name in sorted(config.available_agents):
        try:
            providers[name] = build_provider(config.agents[name])
        except Exception as exc:
            logger.warning("Failed to instantiate provider for '%s': %s", name, exc)
    return providers


def build_endpoints(
    config: AppConfig,
    providers: dict[str, CompletionProvider],
) -> dict[str, AgentEndpoint]:
    """Wrap the three specialist providers into endpoints.

    Agents without a provider are left out; calls to them fail like any other
    unavailable agent.
    """
    return {
        agent_id: AgentEndpoint(config.agents[agent_id], providers[agent_id])
        for agent_id in AGENT_IDS
        if agent_id in providers
    }
