"""Dataclasses for the consultation pipeline. Minimal logic, no deps."""

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

AGENT_IDS: tuple[str, ...] = ("agent1", "agent2", "agent3")
JUDGE_ID = "judge"
USER = "user"

QUESTION = "question"
ROUND_LABELS: tuple[str, ...] = ("round1", "round2", "round3")
FINAL = "final"


def new_session_id() -> str:
    """Opaque id: s_<epoch ms>_<6 base36 chars>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"s_{int(time.time() * 1000)}_{suffix}"


def placeholder(agent_id: str, round_label: str) -> str:
    """Stand-in text for an agent that produced nothing in a round."""
    return f"No response from {agent_id} in {round_label}."


class SessionState(str, Enum):
    IDLE = "idle"
    ROUND1 = "round1"
    ROUND2 = "round2"
    ROUND3 = "round3"
    JUDGING = "judging"


@dataclass(frozen=True)
class Message:
    speaker: str           # "user", "agent1".."agent3", "judge"
    round: str             # "question", "round1".."round3", "final"
    content: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class AgentOk:
    agent_id: str
    round_label: str
    text: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class AgentFailed:
    agent_id: str
    round_label: str
    reason: str

    @property
    def ok(self) -> bool:
        return False


AgentResponse = AgentOk | AgentFailed


@dataclass
class RoundResult:
    label: str
    responses: dict[str, AgentResponse] = field(default_factory=dict)

    def is_complete(self) -> bool:
        return all(agent_id in self.responses for agent_id in AGENT_IDS)

    def text_for(self, agent_id: str) -> str:
        response = self.responses.get(agent_id)
        if isinstance(response, AgentOk):
            return response.text
        return placeholder(agent_id, self.label)

    def texts(self) -> dict[str, str]:
        """Agent id -> text, with placeholders standing in for failures."""
        return {agent_id: self.text_for(agent_id) for agent_id in AGENT_IDS}

    def all_failed(self) -> bool:
        return not any(isinstance(r, AgentOk) for r in self.responses.values())


@dataclass
class Recommendation:
    text: str
    color: str = "bg-yellow-500"
    title: str = "Final Wellness Recommendation"
    degraded: bool = False
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class Session:
    id: str = field(default_factory=new_session_id)
    state: SessionState = SessionState.IDLE
    question: str = ""
    messages: list[Message] = field(default_factory=list)
    rounds: dict[str, RoundResult] = field(default_factory=dict)
    recommendation: Recommendation | None = None
    feeling_before: int | None = None
    feeling_after: int | None = None

    @property
    def round_number(self) -> int:
        """0 while idle or before round 1, otherwise the highest round reached."""
        return len(self.rounds)


@dataclass
class Completion:
    provider: str          # agent or judge name the provider serves
    model: str             # actual model string used
    content: str
    latency_sec: float
    token_count: int | None
