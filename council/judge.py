"""Judge: validate the final-round inputs, call the judge model, shape the verdict."""

import logging
from dataclasses import dataclass

from config.config_loader import AgentConfig
from council.models import AGENT_IDS
from council.prompts import PromptBuilder
from council.providers.base import CompletionProvider, ProviderError

logger = logging.getLogger(__name__)


class JudgeValidationError(ValueError):
    """Raised when a judge request lacks a required field."""


class JudgeCallError(Exception):
    """Raised when the judge could not produce a verdict."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


@dataclass
class JudgeRequest:
    round3_responses: dict[str, str]
    user_question: str
    session_id: str | None = None
    feeling_before: int | None = None
    feeling_after: int | None = None

    def to_payload(self) -> dict:
        """Wire body for POST /api/judge."""
        return {
            "round3Responses": dict(self.round3_responses),
            "userQuestion": self.user_question,
            "sessionId": self.session_id,
            "feelingBefore": self.feeling_before,
            "feelingAfter": self.feeling_after,
        }


@dataclass
class JudgeVerdict:
    text: str
    color: str


def validate_judge_request(request: JudgeRequest) -> None:
    """Raise JudgeValidationError unless question and all three responses are present.

    Placeholder texts count as present; only missing keys or blank values fail.
    """
    if not request.round3_responses or not (request.user_question or "").strip():
        raise JudgeValidationError("round3Responses and userQuestion are required")
    missing = [a for a in AGENT_IDS if not (request.round3_responses.get(a) or "").strip()]
    if missing:
        raise JudgeValidationError(
            f"round3Responses must contain {', '.join(AGENT_IDS)} (missing: {', '.join(missing)})"
        )


def enforce_word_ceiling(text: str, max_words: int) -> str:
    """Trim text to at most max_words words, keeping line structure."""
    kept: list[str] = []
    remaining = max_words
    for line in text.strip().splitlines():
        words = line.split()
        if len(words) <= remaining:
            kept.append(line.rstrip())
            remaining -= len(words)
            continue
        if remaining > 0:
            # Keep the line's leading indentation / bullet marker
            indent = line[: len(line) - len(line.lstrip())]
            kept.append(indent + " ".join(words[:remaining]) + "…")
        break
    return "\n".join(kept).strip()


class JudgeEndpoint:
    """In-process CallJudge implementation."""

    def __init__(
        self,
        config: AgentConfig,
        provider: CompletionProvider,
        prompts: PromptBuilder,
        color: str = "bg-yellow-500",
        max_words: int = 150,
    ) -> None:
        self._config = config
        self._provider = provider
        self._prompts = prompts
        self._color = color
        self._max_words = max_words

    @property
    def provider(self) -> CompletionProvider:
        return self._provider

    async def judge(self, request: JudgeRequest) -> JudgeVerdict:
        """Synthesize the three final-round responses into one verdict.

        Raises:
            JudgeValidationError: If a required field is missing.
            JudgeCallError: If the judge model failed or returned nothing.
        """
        validate_judge_request(request)

        judge_prompt = self._prompts.judge(request.user_question, request.round3_responses)
        messages = [{"role": "user", "content": judge_prompt}]
        if self._config.system_prompt:
            messages.insert(0, {"role": "system", "content": self._config.system_prompt})

        logger.info("Running judge via %s (session %s)", self._provider.model_string(), request.session_id)

        try:
            completion = await self._provider.complete(messages, temperature=self._config.temperature)
        except ProviderError as exc:
            raise JudgeCallError(str(exc)) from exc

        text = enforce_word_ceiling(completion.content, self._max_words)
        if not text:
            raise JudgeCallError(f"Judge {self._config.name} returned empty content")

        return JudgeVerdict(text=text, color=self._color)
