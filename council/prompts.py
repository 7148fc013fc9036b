"""Prompt rendering for each round and for the judge. Pure, no I/O."""

from config.config_loader import PromptsConfig
from council.models import AGENT_IDS


class PromptBuilder:
    """Render round prompts from the configured templates.

    Holds only the templates and the agent titles, so every method is a pure
    function of its arguments. Blank inputs never raise: they render as the
    configured missing-response marker.
    """

    def __init__(self, templates: PromptsConfig, titles: dict[str, str], max_words: int = 150) -> None:
        self._templates = templates
        self._titles = dict(titles)
        self._max_words = max_words

    def _or_missing(self, text: str | None) -> str:
        text = (text or "").strip()
        return text if text else self._templates.missing

    def _labelled(self, agent_id: str, answer: str | None) -> str:
        return self._templates.peer.format(
            label=agent_id.upper(),
            title=self._titles.get(agent_id, agent_id),
            answer=self._or_missing(answer),
        )

    def round1(self, question: str) -> str:
        return self._templates.round1.format(question=self._or_missing(question))

    def round2(self, answer1: str, answer2: str, answer3: str) -> dict[str, str]:
        """Build one critique prompt per agent from the other two answers."""
        answers = dict(zip(AGENT_IDS, (answer1, answer2, answer3)))
        prompts: dict[str, str] = {}
        for agent_id in AGENT_IDS:
            peers = "\n\n".join(
                self._labelled(peer_id, answers[peer_id])
                for peer_id in AGENT_IDS
                if peer_id != agent_id
            )
            prompts[agent_id] = self._templates.round2.format(peer_answers=peers)
        return prompts

    def round3(self) -> str:
        # Round-2 content is carried by each agent's session context.
        return self._templates.round3

    def judge(self, question: str, round3_responses: dict[str, str]) -> str:
        responses = "\n\n".join(
            self._labelled(agent_id, round3_responses.get(agent_id))
            for agent_id in AGENT_IDS
        )
        return self._templates.judge.format(
            question=self._or_missing(question),
            responses=responses,
            max_words=self._max_words,
        )
