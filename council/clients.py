"""CallAgent / CallJudge transports: in-process endpoints or HTTP via httpx."""

import logging
from abc import ABC, abstractmethod

import httpx

from council.agents import AgentCallError, AgentEndpoint
from council.judge import JudgeCallError, JudgeEndpoint, JudgeRequest, JudgeVerdict, validate_judge_request
from council.providers.base import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_COLOR = "bg-yellow-500"


class AgentClient(ABC):
    """CallAgent(agentId, messages, sessionId, round) -> text."""

    @abstractmethod
    async def call_agent(
        self,
        agent_id: str,
        messages: list[ChatMessage],
        session_id: str,
        round_label: str,
    ) -> str:
        """Return the agent's reply text.

        Raises:
            AgentCallError: On transport failure, non-2xx, or missing text.
        """
        ...


class JudgeClient(ABC):
    """CallJudge(round3Responses, userQuestion, sessionId, ...) -> {text, color}."""

    @abstractmethod
    async def call_judge(self, request: JudgeRequest) -> JudgeVerdict:
        """Return the judge's verdict.

        Raises:
            JudgeValidationError: If the request lacks a required field.
            JudgeCallError: On transport failure, non-2xx, or missing text.
        """
        ...


class LocalAgentClient(AgentClient):
    """Calls AgentEndpoint objects living in this process."""

    def __init__(self, endpoints: dict[str, AgentEndpoint]) -> None:
        self._endpoints = endpoints

    async def call_agent(self, agent_id, messages, session_id, round_label) -> str:
        endpoint = self._endpoints.get(agent_id)
        if endpoint is None:
            raise AgentCallError(agent_id, "Agent not available", status=404)
        return await endpoint.respond(messages, session_id=session_id, round_label=round_label)


class LocalJudgeClient(JudgeClient):
    def __init__(self, endpoint: JudgeEndpoint | None) -> None:
        self._endpoint = endpoint

    async def call_judge(self, request: JudgeRequest) -> JudgeVerdict:
        validate_judge_request(request)
        if self._endpoint is None:
            raise JudgeCallError("Judge not available", status=404)
        return await self._endpoint.judge(request)


class _HttpClientBase:
    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_sec: float = 120.0,
    ) -> None:
        if client is None and base_url is None:
            raise ValueError("base_url or client is required")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_sec)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _post(self, path: str, body: dict) -> tuple[int, dict | None]:
        """POST JSON; return (status, json body or None when not a JSON object)."""
        response = await self._client.post(path, json=body)
        try:
            data = response.json()
        except ValueError:
            data = None
        return response.status_code, data if isinstance(data, dict) else None


class HttpAgentClient(_HttpClientBase, AgentClient):
    """POST {messages, model, sessionId, round} to /api/<agent_id>, expect {text}."""

    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        model: str = DEFAULT_MODEL,
        timeout_sec: float = 120.0,
    ) -> None:
        super().__init__(base_url=base_url, client=client, timeout_sec=timeout_sec)
        self._model = model

    async def call_agent(self, agent_id, messages, session_id, round_label) -> str:
        body = {
            "messages": messages,
            "model": self._model,
            "sessionId": session_id,
            "round": round_label,
        }
        try:
            status, data = await self._post(f"/api/{agent_id}", body)
        except httpx.HTTPError as exc:
            raise AgentCallError(agent_id, f"Request failed: {exc}") from exc

        if not 200 <= status < 300:
            detail = (data or {}).get("error") or (data or {}).get("detail") or ""
            raise AgentCallError(agent_id, f"Non-OK response {status} {detail}".rstrip(), status=status)

        text = (data or {}).get("text")
        if not isinstance(text, str) or not text.strip():
            raise AgentCallError(agent_id, "Malformed response: missing text", status=status)
        return text


class HttpJudgeClient(_HttpClientBase, JudgeClient):
    """POST the judge request to /api/judge, expect {text, color}."""

    async def call_judge(self, request: JudgeRequest) -> JudgeVerdict:
        # Validation happens before anything touches the network
        validate_judge_request(request)
        try:
            status, data = await self._post("/api/judge", request.to_payload())
        except httpx.HTTPError as exc:
            raise JudgeCallError(f"Request failed: {exc}") from exc

        if not 200 <= status < 300:
            detail = (data or {}).get("error") or (data or {}).get("detail") or ""
            raise JudgeCallError(f"Non-OK response {status} {detail}".rstrip(), status=status)

        text = (data or {}).get("text")
        if not isinstance(text, str) or not text.strip():
            raise JudgeCallError("Malformed response: missing text", status=status)
        return JudgeVerdict(text=text, color=(data or {}).get("color") or DEFAULT_COLOR)
