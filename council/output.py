"""Rich console output and markdown file save for consultations."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from council.models import AGENT_IDS, AgentOk, Recommendation, RoundResult, Session

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_ROUND_TITLES = {
    "round1": "Assessment",
    "round2": "Discussion",
    "round3": "Final Votes",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_round_summary(result: RoundResult, titles: dict[str, str]) -> None:
    """Print a brief summary of one round's three responses."""
    heading = _ROUND_TITLES.get(result.label, result.label)
    console.print(Rule(f"[bold cyan]{result.label.title()}: {heading}[/bold cyan]"))
    for agent_id in AGENT_IDS:
        response = result.responses.get(agent_id)
        ok = isinstance(response, AgentOk)
        console.print(
            Panel(
                _preview(result.text_for(agent_id)),
                title=f"[bold]{agent_id}[/bold] ({titles.get(agent_id, agent_id)})",
                subtitle=None if ok else "[red]no response[/red]",
                border_style="dim" if ok else "red",
            )
        )


def print_recommendation(recommendation: Recommendation) -> None:
    """Print the judge's recommendation using Rich markdown."""
    console.print(Rule(f"[bold green]{recommendation.title}[/bold green]"))
    if recommendation.degraded:
        console.print(Text("The council could not complete this consultation.", style="yellow"))
    console.print(Markdown(recommendation.text))


def save_to_file(session: Session, titles: dict[str, str], output_dir: Path) -> Path:
    """Save the full consultation transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(session.question) or session.id}.md"

    lines: list[str] = [
        f"# Wellness Council: {session.question[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Session:** {session.id}",
        f"**Panel:** {', '.join(f'{a} ({titles.get(a, a)})' for a in AGENT_IDS)}",
    ]
    if session.feeling_before is not None:
        lines.append(f"**Feeling before:** {session.feeling_before}")
    if session.feeling_after is not None:
        lines.append(f"**Feeling after:** {session.feeling_after}")
    lines += ["", "---", ""]

    for label, result in session.rounds.items():
        lines.append(f"## {label.title()}: {_ROUND_TITLES.get(label, label)}")
        lines.append("")
        for agent_id in AGENT_IDS:
            response = result.responses.get(agent_id)
            lines.append(f"### {agent_id} ({titles.get(agent_id, agent_id)})")
            lines.append("")
            lines.append(result.text_for(agent_id))
            if response is not None and not response.ok:
                lines.append("")
                lines.append(f"*Failed: {response.reason}*")
            lines.append("")

    if session.recommendation is not None:
        lines += [
            f"## {session.recommendation.title}",
            "",
            session.recommendation.text,
            "",
        ]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Consultation saved to: %s", filepath)
    return filepath
