"""HTTP surface: agent, judge and log endpoints for browser or remote clients."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from config.config_loader import AppConfig
from council.agents import AgentCallError, AgentEndpoint, AgentRequestError, build_all_providers, build_endpoints
from council.judge import JudgeCallError, JudgeEndpoint, JudgeRequest, JudgeValidationError
from council.models import JUDGE_ID
from council.prompts import PromptBuilder
from council.session_log import SessionLogger

logger = logging.getLogger(__name__)


class AgentCall(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[dict[str, Any]] | str | None = None
    model: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")
    round: str | None = None


class JudgeCall(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    round3_responses: dict[str, str] | None = Field(default=None, alias="round3Responses")
    user_question: str | None = Field(default=None, alias="userQuestion")
    session_id: str | None = Field(default=None, alias="sessionId")
    feeling_before: int | None = Field(default=None, alias="feelingBefore")
    feeling_after: int | None = Field(default=None, alias="feelingAfter")


class LogCall(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")
    event: str | None = None
    data: dict[str, Any] | None = None


class SummaryLineCall(BaseModel):
    line: str | None = None


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def create_app(
    endpoints: dict[str, AgentEndpoint],
    judge: JudgeEndpoint | None,
    session_logger: SessionLogger,
) -> FastAPI:
    """Build the app around already-constructed endpoints.

    Agent and judge routes only produce completions; session logging is done
    by whoever drives the consultation, through /api/log.
    """
    app = FastAPI(title="Wellness Council", version="0.1.0")

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, f"Invalid request body: {exc.errors()[0].get('msg', 'invalid')}")

    @app.post("/api/log")
    async def log_event(body: LogCall):
        if not body.session_id or not body.event:
            return _error(400, "sessionId and event are required")
        await session_logger.log_event(body.session_id, body.event, body.data)
        return {"ok": True}

    @app.post("/api/log_summary")
    async def log_summary(body: SummaryLineCall):
        if not body.line:
            return _error(400, "line (string) is required")
        await session_logger.append_summary_line(body.line)
        return {"ok": True}

    @app.post("/api/judge")
    async def call_judge(body: JudgeCall):
        if judge is None:
            return _error(503, "Judge not configured")
        request = JudgeRequest(
            round3_responses=body.round3_responses or {},
            user_question=body.user_question or "",
            session_id=body.session_id,
            feeling_before=body.feeling_before,
            feeling_after=body.feeling_after,
        )
        try:
            verdict = await judge.judge(request)
        except JudgeValidationError as exc:
            return _error(400, str(exc))
        except JudgeCallError as exc:
            logger.error("Judge API error: %s", exc)
            return _error(exc.status or 502, str(exc))
        return {"text": verdict.text, "agent": JUDGE_ID, "color": verdict.color}

    @app.post("/api/{agent_id}")
    async def call_agent(agent_id: str, body: AgentCall):
        endpoint = endpoints.get(agent_id)
        if endpoint is None:
            return _error(404, f"Unknown agent: {agent_id}")
        try:
            text = await endpoint.respond(
                body.messages or [],
                session_id=body.session_id,
                round_label=body.round,
                model=body.model,
            )
        except AgentRequestError as exc:
            return _error(400, str(exc))
        except AgentCallError as exc:
            logger.error("%s API error: %s", agent_id, exc)
            return _error(exc.status or 502, str(exc))
        return {"text": text, "agent": agent_id}

    return app


def create_app_from_config(config: AppConfig) -> FastAPI:
    """Wire providers, endpoints and logger from settings. Used by `council serve`."""
    providers = build_all_providers(config)
    endpoints = build_endpoints(config, providers)
    prompts = PromptBuilder(config.prompts, config.titles, max_words=config.defaults.judge_max_words)
    judge = None
    if JUDGE_ID in providers:
        judge = JudgeEndpoint(
            config.agents[JUDGE_ID],
            providers[JUDGE_ID],
            prompts,
            color=config.defaults.judge_color,
            max_words=config.defaults.judge_max_words,
        )
    else:
        logger.warning("Judge provider unavailable; /api/judge will answer 503")
    return create_app(endpoints, judge, SessionLogger(config.defaults.log_dir))
