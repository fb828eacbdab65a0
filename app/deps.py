from fastapi import Header, HTTPException, Request

from app.services.coordinator import GenerationCoordinator
from app.services.question_generator import BaseQuestionGenerator
from app.services.question_session import QuestionSessionService


async def get_owner_id(x_user_id: str | None = Header(default=None)) -> str:
    owner_id = (x_user_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return owner_id


def get_coordinator(request: Request) -> GenerationCoordinator:
    return request.app.state.coordinator


def get_generator(request: Request) -> BaseQuestionGenerator:
    return request.app.state.generator


def get_question_sessions(request: Request) -> QuestionSessionService:
    return request.app.state.question_sessions
