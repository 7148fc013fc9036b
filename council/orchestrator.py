"""Consultation orchestration: three concurrent rounds, then the judge."""

import logging
from collections.abc import Callable

from council.clients import JudgeClient
from council.dispatch import AgentDispatcher
from council.judge import JudgeRequest
from council.models import (
    AGENT_IDS,
    FINAL,
    JUDGE_ID,
    QUESTION,
    USER,
    Message,
    Recommendation,
    RoundResult,
    Session,
    SessionState,
)
from council.prompts import PromptBuilder
from council.session_log import SessionLogger
from council.store import QUESTION_AT_START_KEY, USER_QUESTION_KEY, KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

APOLOGY_TEXT = "Sorry, there was an error generating the final recommendation. Please try again."
NO_RESPONSES_TEXT = (
    "Unable to generate final recommendation - no specialist responses found. "
    "Please try the consultation again."
)
PLACEHOLDER_QUESTION = (
    "No explicit user question captured. "
    "Provide a general mental health recommendation based on limited context."
)


class ConsultationError(ValueError):
    """Raised when a consultation cannot start (blank question, already running)."""


class RoundOrchestrator:
    """Owns one Session and drives it Idle -> Round1 -> Round2 -> Round3 -> Judging -> Idle.

    Partial agent failure never aborts the pipeline: failed agents are
    replaced by placeholders and the next round proceeds. Only a final round
    in which all three agents failed skips the judge.

    clear() may be called at any time. Calls already in flight are not
    cancelled; when they settle, their results are dropped because the
    session they belong to is no longer the current one.
    """

    def __init__(
        self,
        dispatcher: AgentDispatcher,
        judge_client: JudgeClient,
        prompts: PromptBuilder,
        session_logger: SessionLogger,
        store: KeyValueStore | None = None,
        on_round_complete: Callable[[RoundResult], None] | None = None,
        judge_color: str = "bg-yellow-500",
    ) -> None:
        self._dispatcher = dispatcher
        self._judge = judge_client
        self._prompts = prompts
        self._session_logger = session_logger
        self._store = store if store is not None else MemoryStore()
        self._on_round_complete = on_round_complete
        self._judge_color = judge_color
        self._session = Session()
        self.user_question = ""
        self.question_at_start = ""

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    # --- recovery state ---

    def set_user_question(self, text: str) -> None:
        self.user_question = text or ""
        self._store.set(USER_QUESTION_KEY, self.user_question)

    def hydrate(self) -> None:
        """Reload the typed question and the question-at-start from the store."""
        saved = self._store.get(USER_QUESTION_KEY)
        if isinstance(saved, str):
            self.user_question = saved
        saved_start = self._store.get(QUESTION_AT_START_KEY)
        if isinstance(saved_start, str):
            self.question_at_start = saved_start

    # --- ratings ---

    def _fresh_session(self) -> Session:
        """Current session, replaced first if it already holds a finished consultation."""
        if self._session.question and self._session.state is SessionState.IDLE:
            self._session = Session()
        return self._session

    async def record_initial_feeling(self, rating: int) -> None:
        # A rating given after a consultation belongs to the next one
        session = self._fresh_session()
        session.feeling_before = rating
        await self._log_event(session, "initial_feeling", {"rating": rating})

    async def record_post_consult_feeling(self, rating: int) -> None:
        self._session.feeling_after = rating
        await self._log_event(self._session, "post_consult_feeling", {"rating": rating})

    # --- pipeline ---

    def _is_current(self, session: Session, state: SessionState | None = None) -> bool:
        if session is not self._session:
            return False
        return state is None or session.state is state

    async def _log_event(self, session: Session, event: str, data: dict) -> None:
        try:
            await self._session_logger.log_event(session.id, event, data)
        except Exception as exc:
            logger.error("Session log write failed for %s: %s", event, exc)

    async def start_consultation(
        self,
        question: str | None = None,
        feeling_before: int | None = None,
    ) -> Recommendation | None:
        """Run a full consultation and return its Recommendation.

        Returns None when the session was cleared before it finished.

        Raises:
            ConsultationError: If the question is blank or a consultation is running.
        """
        text = (question if question is not None else self.user_question).strip()
        if not text:
            raise ConsultationError("Question must not be blank")
        if self._session.state is not SessionState.IDLE:
            raise ConsultationError(f"Consultation already running ({self._session.state.value})")

        session = self._fresh_session()
        # Leave Idle before the first await so a concurrent start is rejected
        session.state = SessionState.ROUND1
        if feeling_before is not None:
            session.feeling_before = feeling_before

        session.question = text
        session.messages.append(Message(speaker=USER, round=QUESTION, content=text))
        self.question_at_start = text
        self._store.set(QUESTION_AT_START_KEY, text)
        self.set_user_question(text)

        logger.info("Session %s: consultation started", session.id)
        await self._log_event(
            session, "session_start", {"question": text, "feeling_before": session.feeling_before},
        )

        round1_prompt = self._prompts.round1(text)
        round1 = await self._run_round(
            session, SessionState.ROUND1, "round1", {a: round1_prompt for a in AGENT_IDS},
        )
        if round1 is None:
            return None

        answers = round1.texts()
        round2 = await self._run_round(
            session, SessionState.ROUND2, "round2",
            self._prompts.round2(answers["agent1"], answers["agent2"], answers["agent3"]),
        )
        if round2 is None:
            return None

        voting_prompt = self._prompts.round3()
        round3 = await self._run_round(
            session, SessionState.ROUND3, "round3", {a: voting_prompt for a in AGENT_IDS},
        )
        if round3 is None:
            return None

        return await self.generate_final_recommendation(round3, session=session)

    async def _run_round(
        self,
        session: Session,
        state: SessionState,
        label: str,
        prompts: dict[str, str],
    ) -> RoundResult | None:
        if not self._is_current(session):
            return None
        session.state = state
        logger.info("Session %s: starting %s", session.id, label)

        result = await self._dispatcher.dispatch_round(
            prompts, session.id, label, still_current=lambda: self._is_current(session, state),
        )

        if not self._is_current(session, state):
            logger.info("Discarding late %s results for abandoned session %s", label, session.id)
            return None

        session.rounds[label] = result
        for agent_id in AGENT_IDS:
            session.messages.append(Message(speaker=agent_id, round=label, content=result.text_for(agent_id)))

        succeeded = sum(1 for r in result.responses.values() if r.ok)
        logger.info("Session %s: %s complete, %d/%d agents succeeded", session.id, label, succeeded, len(AGENT_IDS))

        if self._on_round_complete:
            self._on_round_complete(result)
        return result

    async def generate_final_recommendation(
        self,
        round3: RoundResult,
        session: Session | None = None,
    ) -> Recommendation | None:
        """Judging step. Always leaves the session Idle with a Recommendation.

        Returns None only when the session was cleared while the judge ran.
        """
        session = session or self._session
        if not self._is_current(session):
            return None
        session.state = SessionState.JUDGING

        if round3.all_failed():
            logger.error("Session %s: no specialist responses in round 3, judge skipped", session.id)
            await self._log_event(session, "judge_skipped", {"reason": "no specialist responses"})
            return self._finish(session, Recommendation(text=NO_RESPONSES_TEXT, color=self._judge_color, degraded=True))

        # Captured once at consultation start (or hydrated from the store)
        question = (session.question or self.question_at_start).strip()
        if not question:
            logger.warning("Session %s: no question captured, using placeholder question", session.id)
            question = PLACEHOLDER_QUESTION

        responses = round3.texts()
        request = JudgeRequest(
            round3_responses=responses,
            user_question=question,
            session_id=session.id,
            feeling_before=session.feeling_before,
            feeling_after=session.feeling_after,
        )

        try:
            verdict = await self._judge.call_judge(request)
        except Exception as exc:
            logger.error("Session %s: judge failed: %s", session.id, exc)
            if not self._is_current(session, SessionState.JUDGING):
                return None
            await self._log_event(session, "judge_failed", {"reason": str(exc) or exc.__class__.__name__})
            return self._finish(session, Recommendation(text=APOLOGY_TEXT, color=self._judge_color, degraded=True))

        if not self._is_current(session, SessionState.JUDGING):
            logger.info("Discarding late judge result for abandoned session %s", session.id)
            return None

        try:
            await self._session_logger.log_judge_output(
                session.id,
                question,
                responses,
                verdict.text,
                {"feeling_before": session.feeling_before, "feeling_after": session.feeling_after},
            )
        except Exception as exc:
            logger.error("Session log write failed for judge_output: %s", exc)

        return self._finish(session, Recommendation(text=verdict.text, color=verdict.color))

    def _finish(self, session: Session, recommendation: Recommendation) -> Recommendation:
        session.recommendation = recommendation
        session.messages.append(Message(speaker=JUDGE_ID, round=FINAL, content=recommendation.text))
        session.state = SessionState.IDLE
        return recommendation

    async def resume_consultation(self) -> Recommendation | None:
        """Re-run the pipeline for the question saved before a restart."""
        question = self.question_at_start or self.user_question
        if not question.strip():
            raise ConsultationError("No saved question to resume")
        return await self.start_consultation(question)

    def clear(self) -> None:
        """Back to Idle from any state with a fresh session; in-flight results are dropped."""
        if self._session.state is not SessionState.IDLE:
            logger.info("Abandoning session %s in %s", self._session.id, self._session.state.value)
        self._session = Session()
        self.question_at_start = ""
        self._store.remove(QUESTION_AT_START_KEY)
        # The stored typed question survives so it can be hydrated again
        self.user_question = ""
