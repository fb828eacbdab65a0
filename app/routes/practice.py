from fastapi import APIRouter, Depends

from app.db import get_db
from app.deps import get_owner_id, get_question_sessions
from app.models.practice import (
    NextQuestionsRequest,
    NextQuestionsResponse,
    PracticeSessionCreate,
    PracticeSessionOut,
)
from app.services.documents import load_combined_text
from app.services.question_session import QuestionSessionService, session_doc_to_summary
from app.utils.hash import stable_hash
from app.utils.time import now_local

router = APIRouter(prefix="/api/practice", tags=["practice"])


@router.post("/sessions", response_model=PracticeSessionOut)
async def create_practice_session(
    payload: PracticeSessionCreate,
    owner_id: str = Depends(get_owner_id),
    sessions: QuestionSessionService = Depends(get_question_sessions),
):
    text = await load_combined_text(get_db(), owner_id, payload.fileIds)
    topic_key = (payload.topicKey or "").strip() or stable_hash(sorted(set(payload.fileIds)))
    doc = await sessions.create_session(owner_id=owner_id, topic_key=topic_key, context_text=text, now=now_local())
    return session_doc_to_summary(doc)


@router.get("/sessions/{session_id}", response_model=PracticeSessionOut)
async def get_practice_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    sessions: QuestionSessionService = Depends(get_question_sessions),
):
    doc = await sessions.get_session(owner_id=owner_id, session_id=session_id)
    return session_doc_to_summary(doc)


@router.post("/sessions/{session_id}/next", response_model=NextQuestionsResponse)
async def next_questions(
    session_id: str,
    payload: NextQuestionsRequest | None = None,
    owner_id: str = Depends(get_owner_id),
    sessions: QuestionSessionService = Depends(get_question_sessions),
):
    limit = payload.limit if payload else NextQuestionsRequest().limit
    return await sessions.next_questions(owner_id=owner_id, session_id=session_id, limit=limit, now=now_local())
