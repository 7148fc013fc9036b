"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

REQUIRED_AGENTS = ("agent1", "agent2", "agent3", "judge")


@dataclass
class AgentConfig:
    name: str              # "agent1", "agent2", "agent3" or "judge"
    title: str             # human label, e.g. "Clinical Psychologist"
    sdk: str               # "openai", "anthropic", "gemini"
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float
    system_prompt: str
    base_url: str | None = None


@dataclass
class PromptsConfig:
    round1: str
    round2: str
    round3: str
    judge: str
    peer: str = "{label} ({title}): {answer}"
    missing: str = "[no response]"


@dataclass
class DefaultsConfig:
    output_dir: Path
    log_dir: Path
    state_path: Path
    transport: str = "local"
    server_url: str = "http://127.0.0.1:8000"
    judge_color: str = "bg-yellow-500"
    judge_max_words: int = 150


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    agents: dict[str, AgentConfig]
    prompts: PromptsConfig
    available_agents: set[str] = field(default_factory=set)

    @property
    def titles(self) -> dict[str, str]:
        return {name: cfg.title for name, cfg in self.agents.items()}


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing and ValueError if one of
    agent1, agent2, agent3 or judge is not configured.
    Logs missing API keys but does not raise; callers check available_agents.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        log_dir=Path(defaults_raw["log_dir"]),
        state_path=Path(defaults_raw["state_path"]),
        transport=str(defaults_raw.get("transport", "local")),
        server_url=str(defaults_raw.get("server_url", "http://127.0.0.1:8000")),
        judge_color=str(defaults_raw.get("judge_color", "bg-yellow-500")),
        judge_max_words=int(defaults_raw.get("judge_max_words", 150)),
    )
    if defaults.transport not in ("local", "http"):
        raise ValueError(f"Unknown transport: {defaults.transport!r}")

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        round1=prompts_raw["round1"],
        round2=prompts_raw["round2"],
        round3=prompts_raw["round3"],
        judge=prompts_raw["judge"],
        peer=prompts_raw.get("peer", "{label} ({title}): {answer}"),
        missing=prompts_raw.get("missing", "[no response]"),
    )

    agents_raw = raw["agents"]
    missing = [name for name in REQUIRED_AGENTS if name not in agents_raw]
    if missing:
        raise ValueError(f"Settings missing agent sections: {', '.join(missing)}")

    agents: dict[str, AgentConfig] = {}
    available_agents: set[str] = set()

    for agent_name, agent_raw in agents_raw.items():
        agent_cfg = AgentConfig(
            name=agent_name,
            title=str(agent_raw.get("title", agent_name)),
            sdk=agent_raw["sdk"],
            model=agent_raw["model"],
            api_key_env=agent_raw["api_key_env"],
            timeout_sec=int(agent_raw["timeout_sec"]),
            max_tokens=int(agent_raw["max_tokens"]),
            temperature=float(agent_raw.get("temperature", 0.7)),
            system_prompt=str(agent_raw.get("system_prompt", "")).strip(),
            base_url=agent_raw.get("base_url"),
        )
        agents[agent_name] = agent_cfg

        api_key = os.environ.get(agent_raw["api_key_env"], "").strip()
        if api_key:
            available_agents.add(agent_name)
            logger.info("Agent available: %s (%s)", agent_name, agent_cfg.model)
        else:
            logger.info(
                "Agent skipped (no API key): %s, set %s in .env",
                agent_name,
                agent_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        agents=agents,
        prompts=prompts,
        available_agents=available_agents,
    )
