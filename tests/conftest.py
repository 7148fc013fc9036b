"""Shared pytest fixtures."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AgentConfig, AppConfig, DefaultsConfig, PromptsConfig
from council.clients import AgentClient, JudgeClient
from council.dispatch import AgentDispatcher
from council.judge import JudgeRequest, JudgeVerdict, validate_judge_request
from council.models import Completion
from council.orchestrator import RoundOrchestrator
from council.prompts import PromptBuilder
from council.providers.base import CompletionProvider
from council.session_log import SessionLogger
from council.store import MemoryStore

TITLES = {
    "agent1": "Clinical Psychologist",
    "agent2": "Psychiatrist",
    "agent3": "Holistic Counselor",
    "judge": "Judge",
}


def make_agent_config(name: str = "agent1", sdk: str = "openai", **overrides) -> AgentConfig:
    values = dict(
        name=name,
        title=TITLES.get(name, name),
        sdk=sdk,
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        temperature=0.5,
        system_prompt=f"You are {name}.",
        base_url=None,
    )
    values.update(overrides)
    return AgentConfig(**values)


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        round1="Consultation: {question}",
        round2="Colleagues said:\n\n{peer_answers}\n\nDiscuss.",
        round3="Give your final integrated recommendation.",
        judge="Concern: {question}\n\n{responses}\n\nUnder {max_words} words.",
        peer="{label} ({title}): {answer}",
        missing="[no response]",
    )


@pytest.fixture
def prompt_builder(sample_prompts_config: PromptsConfig) -> PromptBuilder:
    return PromptBuilder(sample_prompts_config, TITLES, max_words=150)


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_prompts_config: PromptsConfig) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            output_dir=tmp_path / "output",
            log_dir=tmp_path / "logs",
            state_path=tmp_path / "state.json",
        ),
        agents={name: make_agent_config(name) for name in TITLES},
        prompts=sample_prompts_config,
        available_agents=set(TITLES),
    )


@pytest.fixture
def session_logger(tmp_path: Path) -> SessionLogger:
    return SessionLogger(tmp_path / "logs")


class MockProvider(CompletionProvider):
    """Test double CompletionProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        # No super().__init__: there is no config or API key to resolve.
        self._name = provider_name
        self._response_content = response_content
        # Shadow complete with an AsyncMock at the instance level.
        self.complete = AsyncMock(  # type: ignore[assignment]
            return_value=Completion(
                provider=provider_name,
                model="mock-model",
                content=response_content,
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def _send(self, messages, temperature):
        return self._response_content, 10


class ScriptedAgentClient(AgentClient):
    """AgentClient that answers from a script and records every call.

    script maps (agent_id, round_label) to a reply string, an Exception to
    raise, or an async callable taking the prompt. Unscripted calls answer
    "<agent_id> <round_label> answer".
    """

    def __init__(self, script: dict | None = None) -> None:
        self.script = script or {}
        self.calls: list[dict] = []

    async def call_agent(self, agent_id, messages, session_id, round_label) -> str:
        prompt = messages[-1]["content"]
        self.calls.append({
            "agent_id": agent_id,
            "round": round_label,
            "prompt": prompt,
            "session_id": session_id,
            "started": asyncio.get_running_loop().time(),
        })
        action = self.script.get((agent_id, round_label), f"{agent_id} {round_label} answer")
        if isinstance(action, BaseException):
            raise action
        if callable(action):
            return await action(prompt)
        return action

    def calls_for(self, round_label: str) -> list[dict]:
        return [c for c in self.calls if c["round"] == round_label]


class RecordingJudgeClient(JudgeClient):
    def __init__(self, text: str = "## Be gentle with yourself\nYou are doing your best.", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.requests: list[JudgeRequest] = []

    async def call_judge(self, request: JudgeRequest) -> JudgeVerdict:
        validate_judge_request(request)
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return JudgeVerdict(text=self.text, color="bg-yellow-500")


@pytest.fixture
def agent_client() -> ScriptedAgentClient:
    return ScriptedAgentClient()


@pytest.fixture
def judge_client() -> RecordingJudgeClient:
    return RecordingJudgeClient()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def orchestrator(agent_client, judge_client, prompt_builder, session_logger, store) -> RoundOrchestrator:
    dispatcher = AgentDispatcher(agent_client, session_logger)
    return RoundOrchestrator(dispatcher, judge_client, prompt_builder, session_logger, store=store)
