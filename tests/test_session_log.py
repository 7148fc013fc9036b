"""Tests for council/session_log.py."""

import asyncio
import json

from council.session_log import (
    DIVIDER,
    SessionLogger,
    SummaryFormatter,
    collapse_whitespace,
    rebuild_summary,
)

SID = "s_1700000000000_abc123"


def _event(event, data=None, session_id=SID):
    return {"type": "event", "session_id": session_id, "event": event, "data": data or {},
            "ts": "2024-05-01T10:00:00+00:00"}


def _agent(round_label, agent, output="text", session_id=SID):
    return {"type": "agent_output", "session_id": session_id, "round": round_label, "agent": agent,
            "output": output, "failed": False, "ts": "2024-05-01T10:00:01+00:00"}


def test_collapse_whitespace():
    assert collapse_whitespace("  a\n\n b\t c ") == "a b c"
    assert collapse_whitespace(None) == ""


def test_initial_feeling_prints_header_and_feeling():
    block = SummaryFormatter().format(_event("initial_feeling", {"rating": 4}))
    lines = block.splitlines()
    assert lines[0].startswith("date/time: ")
    assert lines[1:] == [DIVIDER, "feeling today: 4", DIVIDER]


def test_header_and_feeling_printed_once_per_session():
    formatter = SummaryFormatter()
    formatter.format(_event("initial_feeling", {"rating": 4}))
    block = formatter.format(_event("session_start", {"question": "I  can't\nsleep", "feeling_before": 4}))
    assert block == f"user input: I can't sleep\n{DIVIDER}"


def test_session_start_without_prior_feeling():
    block = SummaryFormatter().format(_event("session_start", {"question": "help", "feeling_before": None}))
    lines = block.splitlines()
    assert lines[0].startswith("date/time: ")
    assert "feeling today" not in block
    assert lines[-2:] == ["user input: help", DIVIDER]


def test_session_start_carries_feeling_before():
    block = SummaryFormatter().format(_event("session_start", {"question": "help", "feeling_before": 6}))
    assert "feeling today: 6" in block


def test_headers_are_per_session():
    formatter = SummaryFormatter()
    formatter.format(_event("session_start", {"question": "one"}))
    other = formatter.format(_event("session_start", {"question": "two"}, session_id="s_2_zzzzzz"))
    assert other.startswith("date/time: ")


def test_round_heading_before_first_agent_and_divider_after_third():
    formatter = SummaryFormatter()
    first = formatter.format(_agent("round1", "agent3", "third speaks first"))
    second = formatter.format(_agent("round1", "agent1", "hello"))
    third = formatter.format(_agent("round1", "agent2", "last"))

    assert first == "round 1\nagent3: third speaks first"
    assert second == "agent1: hello"
    assert third == f"agent2: last\n{DIVIDER}"


def test_repeated_agent_does_not_close_round():
    formatter = SummaryFormatter()
    formatter.format(_agent("round2", "agent1"))
    assert formatter.format(_agent("round2", "agent1")) == "agent1: text"
    formatter.format(_agent("round2", "agent2"))
    assert formatter.format(_agent("round2", "agent3")).endswith(DIVIDER)


def test_other_record_types():
    formatter = SummaryFormatter()
    assert formatter.format({"type": "judge_output", "session_id": SID, "text": "Rest\n\nwell"}) == "judge: Rest well"
    assert formatter.format({"type": "summary_line", "session_id": "", "line": "custom"}) == "custom"
    assert formatter.format(_event("post_consult_feeling", {"rating": 8})) == "feeling better: 8"
    assert formatter.format(_event("judge_skipped")).endswith("event: judge_skipped")
    assert formatter.format({"type": "mystery", "ts": "2024-05-01T10:00:00+00:00"}).endswith("  mystery")


async def test_logger_writes_both_files(session_logger):
    await session_logger.log_event(SID, "session_start", {"question": "help", "feeling_before": None})
    await session_logger.log_agent_output(SID, "round1", "agent1", "Try journaling.")

    lines = session_logger.log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    record = json.loads(lines[1])
    assert record["type"] == "agent_output"
    assert record["agent"] == "agent1"
    assert "ts" in record

    summary = session_logger.summary_file.read_text(encoding="utf-8")
    assert "user input: help" in summary
    assert "round 1\nagent1: Try journaling." in summary


async def test_concurrent_agent_writes_close_round_once(session_logger):
    await asyncio.gather(*(
        session_logger.log_agent_output(SID, "round1", agent, f"{agent} says hi")
        for agent in ("agent1", "agent2", "agent3")
    ))
    summary = session_logger.summary_file.read_text(encoding="utf-8")
    assert summary.count("round 1") == 1
    assert summary.count(DIVIDER) == 1
    assert summary.rstrip().endswith(DIVIDER)


async def test_failed_agent_record_keeps_reason(session_logger):
    await session_logger.log_agent_output(
        SID, "round2", "agent2", "No response from agent2 in round2.", failed=True, reason="HTTP 500",
    )
    record = json.loads(session_logger.log_file.read_text(encoding="utf-8"))
    assert record["failed"] is True
    assert record["reason"] == "HTTP 500"


async def test_write_errors_are_swallowed(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x", encoding="utf-8")
    logger = SessionLogger(blocker)
    # log_dir is a regular file, so every append fails
    await logger.log_event(SID, "session_start", {"question": "help"})
    await logger.append_summary_line("still fine")


async def test_rebuild_matches_live_summary(session_logger):
    await session_logger.log_event(SID, "initial_feeling", {"rating": 5})
    await session_logger.log_event(SID, "session_start", {"question": "help", "feeling_before": 5})
    for round_label in ("round1", "round2"):
        for agent in ("agent2", "agent1", "agent3"):
            await session_logger.log_agent_output(SID, round_label, agent, f"{agent} in {round_label}")
    await session_logger.log_judge_output(SID, "help", {}, "Go outside.", {"feeling_before": 5})
    await session_logger.append_summary_line("note")

    live = session_logger.summary_file.read_text(encoding="utf-8")
    rebuilt = "".join(block + "\n" for block in rebuild_summary(session_logger.log_file))
    assert rebuilt == live


async def test_rewrite_summary_replaces_file(session_logger):
    await session_logger.log_event(SID, "session_start", {"question": "help"})
    session_logger.summary_file.write_text("garbage\n", encoding="utf-8")

    count = session_logger.rewrite_summary()
    assert count == 1
    assert "garbage" not in session_logger.summary_file.read_text(encoding="utf-8")


def test_rebuild_skips_malformed_lines(tmp_path):
    log_file = tmp_path / "consultations.jsonl"
    log_file.write_text(
        json.dumps({"type": "summary_line", "session_id": "", "line": "kept"}) + "\n{not json\n\n",
        encoding="utf-8",
    )
    assert rebuild_summary(log_file) == ["kept"]


def test_rebuild_missing_file(tmp_path):
    assert rebuild_summary(tmp_path / "absent.jsonl") == []


def test_judge_output_closes_session_state():
    formatter = SummaryFormatter()
    formatter.format(_event("session_start", {"question": "help"}))
    formatter.format(_agent("round1", "agent1"))
    formatter.format({"type": "judge_output", "session_id": SID, "text": "Rest"})
    assert formatter.format(_event("post_consult_feeling", {"rating": 7})) == "feeling better: 7"
    assert formatter._states == {}


def test_judge_failed_closes_session_state():
    formatter = SummaryFormatter()
    formatter.format(_event("session_start", {"question": "help"}))
    formatter.format(_event("judge_failed", {"reason": "HTTP 500"}))
    assert SID not in formatter._states


def test_abandoned_agent_output_is_not_summarized():
    formatter = SummaryFormatter()
    assert formatter.format({**_agent("round2", "agent1", "too late"), "abandoned": True}) == ""
    assert formatter._states == {}


async def test_logger_keeps_no_per_session_state_after_consultation(session_logger):
    for n in range(5):
        session_id = f"s_{n}_abcdef"
        await session_logger.log_event(session_id, "session_start", {"question": "help"})
        await asyncio.gather(*(
            session_logger.log_agent_output(session_id, "round1", agent, "hi")
            for agent in ("agent1", "agent2", "agent3")
        ))
        await session_logger.log_judge_output(session_id, "help", {}, "Rest.")
        await session_logger.log_event(session_id, "post_consult_feeling", {"rating": 6})

    assert session_logger._locks == {}
    assert session_logger._formatter._states == {}
    summary = session_logger.summary_file.read_text(encoding="utf-8")
    assert summary.count("round 1") == 5
    assert summary.count("feeling better: 6") == 5
