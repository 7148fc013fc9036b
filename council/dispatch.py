"""Agent dispatch: one call -> AgentResponse, and the settle-all fan-out primitive."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from council.agents import AgentCallError
from council.clients import AgentClient
from council.models import AGENT_IDS, AgentFailed, AgentOk, AgentResponse, RoundResult, placeholder
from council.session_log import SessionLogger

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_settled(
    calls: dict[str, Awaitable[T]],
    on_error: Callable[[str, BaseException], T],
) -> dict[str, T]:
    """Run all calls concurrently and wait for every one of them to settle.

    Unlike a plain gather, one failure never cancels or hides the others:
    exceptions are turned into values by on_error.
    """
    keys = list(calls)
    results = await asyncio.gather(*calls.values(), return_exceptions=True)
    settled: dict[str, T] = {}
    for key, result in zip(keys, results):
        settled[key] = on_error(key, result) if isinstance(result, BaseException) else result
    return settled


class AgentDispatcher:
    """Sends one prompt to one agent and normalizes the outcome.

    Failure is data here: dispatch() never raises. Each call writes exactly one
    agent_output record to the session log, success or not, so the summary can
    count three agents per round. Records for a session that was cleared while
    the call ran are tagged abandoned. No retries.
    """

    def __init__(
        self,
        client: AgentClient,
        session_logger: SessionLogger,
        timeouts: dict[str, float] | None = None,
    ) -> None:
        self._client = client
        self._session_logger = session_logger
        self._timeouts = timeouts or {}

    async def _call(self, agent_id: str, content: str, session_id: str, round_label: str) -> str:
        messages = [{"role": "user", "content": content}]
        call = self._client.call_agent(agent_id, messages, session_id, round_label)
        timeout = self._timeouts.get(agent_id)
        text = await asyncio.wait_for(call, timeout=timeout) if timeout else await call
        if not isinstance(text, str) or not text.strip():
            raise AgentCallError(agent_id, "Empty response text")
        return text

    async def _log_output(self, session_id: str, round_label: str, agent_id: str, text: str,
                          failed: bool = False, reason: str | None = None,
                          still_current: Callable[[], bool] | None = None) -> None:
        abandoned = still_current is not None and not still_current()
        if abandoned:
            logger.info("%s %s settled after its session was cleared", agent_id, round_label)
        try:
            await self._session_logger.log_agent_output(
                session_id, round_label, agent_id, text, failed=failed, reason=reason, abandoned=abandoned,
            )
        except Exception as exc:
            logger.error("Session log write failed for %s/%s: %s", agent_id, round_label, exc)

    async def dispatch(
        self,
        agent_id: str,
        content: str,
        session_id: str,
        round_label: str,
        still_current: Callable[[], bool] | None = None,
    ) -> AgentResponse:
        """Call one agent. still_current tells whether its session still wants the result."""
        start = time.monotonic()
        try:
            text = await self._call(agent_id, content, session_id, round_label)
        except TimeoutError:
            reason = f"timed out after {self._timeouts.get(agent_id)}s"
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
        else:
            logger.info("%s %s: %.2fs, %d chars", agent_id, round_label, time.monotonic() - start, len(text))
            await self._log_output(session_id, round_label, agent_id, text, still_current=still_current)
            return AgentOk(agent_id=agent_id, round_label=round_label, text=text)

        logger.warning("%s failed in %s: %s", agent_id, round_label, reason)
        await self._log_output(
            session_id, round_label, agent_id, placeholder(agent_id, round_label),
            failed=True, reason=reason, still_current=still_current,
        )
        return AgentFailed(agent_id=agent_id, round_label=round_label, reason=reason)

    async def dispatch_round(
        self,
        prompts: dict[str, str],
        session_id: str,
        round_label: str,
        still_current: Callable[[], bool] | None = None,
    ) -> RoundResult:
        """Fan out one prompt per agent, fan in once all three have settled."""
        settled = await gather_settled(
            {agent_id: self.dispatch(agent_id, prompts[agent_id], session_id, round_label, still_current)
             for agent_id in AGENT_IDS},
            on_error=lambda agent_id, exc: AgentFailed(agent_id, round_label, f"Unexpected error: {exc!r}"),
        )
        return RoundResult(label=round_label, responses=settled)
