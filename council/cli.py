"""Click CLI: config loading, transport selection, consultation, output, HTTP serving."""

import asyncio
import logging
import sys
from collections.abc import Callable
from pathlib import Path

import click
import frontmatter
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from council.agents import build_all_providers, build_endpoints
from council.clients import AgentClient, HttpAgentClient, HttpJudgeClient, JudgeClient, LocalAgentClient, LocalJudgeClient
from council.dispatch import AgentDispatcher
from council.healthcheck import run_health_checks
from council.judge import JudgeEndpoint
from council.models import AGENT_IDS, JUDGE_ID, RoundResult
from council.orchestrator import ConsultationError, RoundOrchestrator
from council.output import console, print_recommendation, print_round_summary, save_to_file
from council.prompts import PromptBuilder
from council.providers.base import CompletionProvider
from council.session_log import SessionLogger
from council.store import JsonFileStore

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _load_config_or_exit() -> AppConfig:
    try:
        return load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def parse_question_file(path: Path) -> tuple[str, int | None]:
    """Read a question from markdown with optional front matter.

    Returns:
        (question_text, feeling_before), with feeling_before from a
        `feeling_before:` front matter key, None when absent.
    """
    post = frontmatter.load(str(path))
    rating = post.metadata.get("feeling_before")
    return post.content.strip(), int(rating) if rating is not None else None


def _report_health(providers: dict[str, CompletionProvider]) -> None:
    """Ping providers and ask whether to go on when some are down.

    Down specialists are not removed: their rounds fall back to placeholders.
    """
    console.print("\n[bold]Checking agents...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(providers))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return

    if len(failed_names) == len(results):
        console.print("\n[bold red]Error:[/bold red] No agent passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} agent(s) failed:[/yellow] {', '.join(failed_names)}")
    if not click.confirm("Continue anyway? Failed agents will be reported as 'no response'.", default=True):
        sys.exit(0)
    console.print()


def _local_clients(
    config: AppConfig,
    providers: dict[str, CompletionProvider],
    prompts: PromptBuilder,
) -> tuple[AgentClient, JudgeClient]:
    missing = [name for name in (*AGENT_IDS, JUDGE_ID) if name not in providers]
    if missing:
        logger.warning("No provider for: %s", ", ".join(missing))
    judge = None
    if JUDGE_ID in providers:
        judge = JudgeEndpoint(
            config.agents[JUDGE_ID],
            providers[JUDGE_ID],
            prompts,
            color=config.defaults.judge_color,
            max_words=config.defaults.judge_max_words,
        )
    return LocalAgentClient(build_endpoints(config, providers)), LocalJudgeClient(judge)


def build_orchestrator(
    config: AppConfig,
    agent_client: AgentClient,
    judge_client: JudgeClient,
    on_round_complete: Callable[[RoundResult], None] | None = None,
) -> RoundOrchestrator:
    prompts = PromptBuilder(config.prompts, config.titles, max_words=config.defaults.judge_max_words)
    session_logger = SessionLogger(config.defaults.log_dir)
    dispatcher = AgentDispatcher(
        agent_client,
        session_logger,
        timeouts={a: float(config.agents[a].timeout_sec) for a in AGENT_IDS},
    )
    return RoundOrchestrator(
        dispatcher,
        judge_client,
        prompts,
        session_logger,
        store=JsonFileStore(config.defaults.state_path),
        on_round_complete=on_round_complete,
        judge_color=config.defaults.judge_color,
    )


async def _run_consultation(
    config: AppConfig,
    agent_client: AgentClient,
    judge_client: JudgeClient,
    question: str | None,
    feeling_before: int | None,
    resume: bool,
    rate_after: bool,
    output_dir: Path,
) -> Path | None:
    """Run one consultation with a progress spinner; save and return the transcript path."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Round 1: assessments...", total=None)
        next_step = {"round1": "Round 2: discussion...", "round2": "Round 3: votes...", "round3": "Judge..."}

        def on_round_complete(result: RoundResult) -> None:
            succeeded = sum(1 for r in result.responses.values() if r.ok)
            progress.print(f"[green]OK[/green] {result.label} complete ({succeeded}/3 responses)")
            progress.update(task, description=next_step.get(result.label, "..."))

        orchestrator = build_orchestrator(config, agent_client, judge_client, on_round_complete)
        orchestrator.hydrate()
        if feeling_before is not None:
            await orchestrator.record_initial_feeling(feeling_before)

        try:
            if resume:
                recommendation = await orchestrator.resume_consultation()
            else:
                recommendation = await orchestrator.start_consultation(question)
        except ConsultationError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            return None

    session = orchestrator.session
    titles = config.titles
    for result in session.rounds.values():
        print_round_summary(result, titles)
    if recommendation is not None:
        print_recommendation(recommendation)

    if rate_after:
        rating = click.prompt("How do you feel now? (1-10)", type=click.IntRange(1, 10))
        await orchestrator.record_post_consult_feeling(rating)

    saved_path = save_to_file(session, titles, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(verbose: bool) -> None:
    """Wellness Council -- three specialists deliberate, a judge sums up.

    \b
    Examples:
      python -m council.cli ask "I feel anxious about work"
      python -m council.cli ask --file question.md --rate-after
      python -m council.cli ask "..." --server http://127.0.0.1:8000
      python -m council.cli serve --port 8000
      python -m council.cli rebuild-summary
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model output with
    # Unicode punctuation doesn't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)


@main.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from .md file")
@click.option("--feeling-before", type=click.IntRange(1, 10), default=None, help="How you feel today (1-10)")
@click.option("--rate-after", is_flag=True, help="Ask how you feel after the recommendation")
@click.option("--resume", is_flag=True, help="Re-run the question saved by an interrupted consultation")
@click.option("--server", "server_url", default=None, help="Send agent/judge calls to this HTTP server")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def ask(
    question: str | None,
    question_file: str | None,
    feeling_before: int | None,
    rate_after: bool,
    resume: bool,
    server_url: str | None,
    output_path: str | None,
    skip_health_check: bool,
) -> None:
    """Run one consultation for QUESTION."""
    config = _load_config_or_exit()
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    if question_file:
        question, file_feeling = parse_question_file(Path(question_file))
        feeling_before = feeling_before if feeling_before is not None else file_feeling
    if not resume and not (question or "").strip():
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument, --file, or --resume.")
        sys.exit(1)

    transport = "http" if server_url else config.defaults.transport
    if transport == "http":
        url = server_url or config.defaults.server_url
        agent_client = HttpAgentClient(base_url=url, model=config.agents["agent1"].model)
        judge_client = HttpJudgeClient(base_url=url)
        console.print(f"Transport: http ({url})")
    else:
        providers = build_all_providers(config)
        if not providers:
            console.print("[bold red]Error:[/bold red] No agents available. Check API keys in .env.")
            sys.exit(1)
        if not skip_health_check:
            _report_health(providers)
        prompts = PromptBuilder(config.prompts, config.titles, max_words=config.defaults.judge_max_words)
        agent_client, judge_client = _local_clients(config, providers, prompts)

    async def _go() -> Path | None:
        try:
            return await _run_consultation(
                config, agent_client, judge_client, question, feeling_before, resume, rate_after, effective_output,
            )
        finally:
            for client in (agent_client, judge_client):
                if hasattr(client, "aclose"):
                    await client.aclose()

    if asyncio.run(_go()) is None:
        sys.exit(1)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Serve the agent, judge and log endpoints over HTTP."""
    import uvicorn

    from council.server import create_app_from_config

    config = _load_config_or_exit()
    uvicorn.run(create_app_from_config(config), host=host, port=port)


@main.command("rebuild-summary")
@click.option("--log-dir", default=None, help="Log directory (default: from config)")
def rebuild_summary_command(log_dir: str | None) -> None:
    """Regenerate the readable summary log from the structured log."""
    config = _load_config_or_exit()
    session_logger = SessionLogger(Path(log_dir) if log_dir else config.defaults.log_dir)
    count = session_logger.rewrite_summary()
    console.print(f"Rebuilt {count} summary blocks into {session_logger.summary_file}")


if __name__ == "__main__":
    main()
