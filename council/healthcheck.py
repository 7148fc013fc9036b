"""Provider health checks: one short completion per agent before a consultation."""

import asyncio
import logging

from council.dispatch import gather_settled
from council.providers.base import CompletionProvider

logger = logging.getLogger(__name__)

_PING_MESSAGES = [{"role": "user", "content": "Reply with the word OK only."}]
_TIMEOUT_SEC = 15.0


async def _ping(provider: CompletionProvider) -> None:
    await asyncio.wait_for(provider.complete(_PING_MESSAGES), timeout=_TIMEOUT_SEC)


def _describe(name: str, exc: BaseException) -> str:
    logger.debug("Health check failed for %s: %r", name, exc)
    return str(exc) or exc.__class__.__name__


async def run_health_checks(
    providers: dict[str, CompletionProvider],
) -> dict[str, tuple[bool, str]]:
    """Ping all providers in parallel.

    Returns:
        Dict mapping agent name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    settled = await gather_settled(
        {name: _ping(provider) for name, provider in providers.items()},
        on_error=_describe,
    )
    # A successful ping settles to None, a failed one to its error text
    return {name: (outcome is None, outcome or "") for name, outcome in settled.items()}
