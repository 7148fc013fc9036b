"""Tests for council/output.py."""

from pathlib import Path

import pytest

from council.models import AgentFailed, AgentOk, Recommendation, RoundResult, Session
from council.output import _preview, _slug, print_recommendation, print_round_summary, save_to_file
from tests.conftest import TITLES


def test_slug_basic():
    assert _slug("Should I see a therapist?") == "should-i-see-a-therapist"


def test_slug_max_len():
    long_text = "a" * 100
    assert len(_slug(long_text)) <= 40


def test_slug_special_chars():
    result = _slug("Sleep & stress (2024)")
    assert "&" not in result
    assert "(" not in result
    assert ")" not in result


def test_preview_truncates():
    assert _preview("one two three", words=2) == "one two..."
    assert _preview("one two", words=2) == "one two"


@pytest.fixture
def sample_session() -> Session:
    round1 = RoundResult(
        label="round1",
        responses={
            "agent1": AgentOk("agent1", "round1", "Try cognitive reframing."),
            "agent2": AgentFailed("agent2", "round1", "HTTP 500"),
            "agent3": AgentOk("agent3", "round1", "A short daily walk helps."),
        },
    )
    return Session(
        question="I feel anxious about work",
        rounds={"round1": round1},
        recommendation=Recommendation(text="## Small steps\n- Breathe"),
        feeling_before=3,
        feeling_after=6,
    )


def test_save_to_file_creates_file(tmp_path: Path, sample_session: Session):
    saved = save_to_file(sample_session, TITLES, tmp_path / "output")
    assert saved.exists()
    assert saved.suffix == ".md"


def test_save_to_file_creates_output_dir(tmp_path: Path, sample_session: Session):
    output_dir = tmp_path / "nested" / "output"
    assert not output_dir.exists()
    save_to_file(sample_session, TITLES, output_dir)
    assert output_dir.exists()


def test_save_to_file_content(tmp_path: Path, sample_session: Session):
    content = save_to_file(sample_session, TITLES, tmp_path).read_text(encoding="utf-8")
    assert "# Wellness Council: I feel anxious about work" in content
    assert "## Round1: Assessment" in content
    assert "### agent1 (Clinical Psychologist)" in content
    assert "Try cognitive reframing." in content
    assert "## Final Wellness Recommendation" in content
    assert "## Small steps" in content


def test_save_to_file_marks_failed_agent(tmp_path: Path, sample_session: Session):
    content = save_to_file(sample_session, TITLES, tmp_path).read_text(encoding="utf-8")
    assert "No response from agent2 in round1." in content
    assert "*Failed: HTTP 500*" in content


def test_save_to_file_has_panel_and_ratings(tmp_path: Path, sample_session: Session):
    content = save_to_file(sample_session, TITLES, tmp_path).read_text(encoding="utf-8")
    assert "**Panel:** agent1 (Clinical Psychologist), agent2 (Psychiatrist), agent3 (Holistic Counselor)" in content
    assert "**Feeling before:** 3" in content
    assert "**Feeling after:** 6" in content


def test_save_to_file_filename_has_slug(tmp_path: Path, sample_session: Session):
    saved = save_to_file(sample_session, TITLES, tmp_path)
    assert "anxious" in saved.name


def test_save_to_file_without_question_uses_session_id(tmp_path: Path):
    session = Session()
    saved = save_to_file(session, TITLES, tmp_path)
    assert session.id in saved.name


def test_print_helpers_do_not_raise(sample_session: Session):
    print_round_summary(sample_session.rounds["round1"], TITLES)
    print_recommendation(Recommendation(text="Sorry", degraded=True))
