"""Per-session consultation log: JSONL records plus a derived readable summary.

Every write goes to two files under the log directory:

* ``consultations.jsonl`` holds one JSON object per line, each stamped with an
  ISO ``ts``. Records are never rewritten.
* ``consultations_simple.txt`` is a projection of those records built by
  :class:`SummaryFormatter`. It can always be rebuilt from the JSONL file
  alone with :func:`rebuild_summary`.

Logging is fire-and-forget for callers: write failures are reported through
``logging`` and never raised.
"""

import asyncio
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from council.models import AGENT_IDS

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "consultations.jsonl"
SIMPLE_LOG_FILE_NAME = "consultations_simple.txt"
DIVIDER = "----------"
# Events after which a session gets no further summary headers or rounds
CLOSING_EVENTS = frozenset({"judge_skipped", "judge_failed", "post_consult_feeling"})


def collapse_whitespace(text) -> str:
    return re.sub(r"\s+", " ", str(text if text is not None else "")).strip()


def local_time(ts_iso: str | None) -> str:
    try:
        moment = datetime.fromisoformat(ts_iso) if ts_iso else datetime.now(timezone.utc)
    except (TypeError, ValueError):
        moment = datetime.now(timezone.utc)
    return moment.astimezone().strftime("%Y-%m-%d %H:%M:%S")


@dataclass
class _SummaryState:
    printed_header: bool = False
    printed_feeling: bool = False
    printed_user_input: bool = False
    reported: dict[str, set[str]] = field(default_factory=dict)  # round -> agents seen


class SummaryFormatter:
    """Turns structured records into summary blocks, one session at a time."""

    def __init__(self) -> None:
        self._states: dict[str, _SummaryState] = {}

    def _state(self, session_id: str) -> _SummaryState:
        return self._states.setdefault(session_id, _SummaryState())

    def _header(self, state: _SummaryState, ts: str) -> list[str]:
        if state.printed_header:
            return []
        state.printed_header = True
        return [f"date/time: {local_time(ts)}", DIVIDER]

    def _feeling(self, state: _SummaryState, rating) -> list[str]:
        if rating is None or state.printed_feeling:
            return []
        state.printed_feeling = True
        return [f"feeling today: {rating}", DIVIDER]

    def forget(self, session_id: str) -> None:
        self._states.pop(session_id, None)

    def format(self, record: dict) -> str:
        """Return the summary block for a record ('' when nothing is printed).

        A session's state is dropped once its consultation is over, so a
        long-running process keeps state only for open sessions.
        """
        session_id = record.get("session_id") or ""
        ts = record.get("ts")
        kind = record.get("type")

        if kind == "event":
            event = record.get("event")
            data = record.get("data") or {}
            if event == "initial_feeling":
                state = self._state(session_id)
                return "\n".join(self._header(state, ts) + self._feeling(state, data.get("rating")))
            if event == "session_start":
                state = self._state(session_id)
                parts = self._header(state, ts) + self._feeling(state, data.get("feeling_before"))
                question = collapse_whitespace(data.get("question"))
                if question and not state.printed_user_input:
                    state.printed_user_input = True
                    parts += [f"user input: {question}", DIVIDER]
                return "\n".join(parts)
            if event in CLOSING_EVENTS:
                self.forget(session_id)
            if event == "post_consult_feeling":
                return f"feeling better: {data.get('rating', '')}"
            return f"date/time: {local_time(ts)}\nevent: {event}"

        if kind == "agent_output":
            if record.get("abandoned"):
                return ""
            state = self._state(session_id)
            round_label = collapse_whitespace(record.get("round"))
            agent = record.get("agent") or ""
            seen = state.reported.setdefault(round_label, set())
            lines: list[str] = []
            if not seen:
                lines.append(f"round {round_label.removeprefix('round')}")
            lines.append(f"{agent}: {collapse_whitespace(record.get('output'))}")
            # Divider once the last distinct agent of the round has reported
            if agent not in seen:
                seen.add(agent)
                if len(seen) == len(AGENT_IDS):
                    lines.append(DIVIDER)
            return "\n".join(lines)

        if kind == "judge_output":
            self.forget(session_id)
            return f"judge: {collapse_whitespace(record.get('text'))}"

        if kind == "summary_line":
            return str(record.get("line", ""))

        return f"{local_time(ts)}  {kind or 'log'}"


def read_records(log_file: Path) -> list[dict]:
    """Load JSONL records, skipping lines that do not parse."""
    records: list[dict] = []
    if not log_file.exists():
        return records
    with log_file.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping malformed log line %d in %s", lineno, log_file)
    return records


def rebuild_summary(log_file: Path) -> list[str]:
    """Rebuild the summary blocks from the structured log alone."""
    formatter = SummaryFormatter()
    blocks = (formatter.format(record) for record in read_records(log_file))
    return [block for block in blocks if block]


class SessionLogger:
    """Append-only structured log with a live summary mirror."""

    def __init__(self, log_dir: Path) -> None:
        self._log_dir = Path(log_dir)
        self._formatter = SummaryFormatter()
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: Counter[str] = Counter()

    @property
    def log_file(self) -> Path:
        return self._log_dir / LOG_FILE_NAME

    @property
    def summary_file(self) -> Path:
        return self._log_dir / SIMPLE_LOG_FILE_NAME

    def _append_line(self, path: Path, text: str) -> None:
        self._log_dir.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(text + "\n")

    async def _append(self, record: dict) -> None:
        session_id = record.get("session_id") or ""
        # Formatter state for a session is mutated by concurrent agent completions.
        # A lock lives only while writes for its session are pending.
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._pending[session_id] += 1
        try:
            async with lock:
                self._write(record)
        finally:
            self._pending[session_id] -= 1
            if not self._pending[session_id]:
                del self._pending[session_id]
                del self._locks[session_id]

    def _write(self, record: dict) -> None:
        enriched = {**record, "ts": datetime.now(timezone.utc).isoformat()}
        try:
            self._append_line(self.log_file, json.dumps(enriched, ensure_ascii=False, default=str))
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to append log: %s", exc)
            return
        try:
            block = self._formatter.format(enriched)
            if block:
                self._append_line(self.summary_file, block)
        except Exception as exc:
            logger.error("Failed to append summary mirror: %s", exc)

    async def log_event(self, session_id: str, event: str, data: dict | None = None) -> None:
        await self._append({"type": "event", "session_id": session_id, "event": event, "data": data or {}})

    async def log_agent_output(
        self,
        session_id: str,
        round_label: str,
        agent: str,
        text: str,
        failed: bool = False,
        reason: str | None = None,
        abandoned: bool = False,
    ) -> None:
        record = {
            "type": "agent_output",
            "session_id": session_id,
            "round": round_label,
            "agent": agent,
            "output": text,
            "failed": failed,
        }
        if reason:
            record["reason"] = reason
        if abandoned:
            # Settled after its session was cleared; kept out of the summary
            record["abandoned"] = True
        await self._append(record)

    async def log_judge_output(
        self,
        session_id: str,
        question: str,
        responses: dict[str, str],
        text: str,
        ratings: dict[str, int | None] | None = None,
    ) -> None:
        await self._append({
            "type": "judge_output",
            "session_id": session_id,
            "question": question,
            "responses": responses,
            "text": text,
            "ratings": ratings or {},
        })

    async def append_summary_line(self, line: str) -> None:
        await self._append({"type": "summary_line", "session_id": "", "line": line})

    def rewrite_summary(self) -> int:
        """Regenerate the summary file from the structured log. Returns block count."""
        blocks = rebuild_summary(self.log_file)
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self.summary_file.write_text("".join(b + "\n" for b in blocks), encoding="utf-8")
        return len(blocks)
