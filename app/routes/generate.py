from fastapi import APIRouter, Depends

from app.db import get_db
from app.deps import get_coordinator, get_generator, get_owner_id, get_question_sessions
from app.models.generate import GenerateRequest, GenerateResponse, MoreFlashcardsRequest, MoreFlashcardsResponse
from app.services.coordinator import GenerationCoordinator
from app.services.question_generator import BaseQuestionGenerator
from app.services.question_session import QuestionSessionService
from app.services.study_content import generate_more_flashcards, generate_study_content
from app.utils.time import now_local

router = APIRouter(prefix="/api", tags=["generate"])


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    payload: GenerateRequest,
    owner_id: str = Depends(get_owner_id),
    coordinator: GenerationCoordinator = Depends(get_coordinator),
    generator: BaseQuestionGenerator = Depends(get_generator),
    sessions: QuestionSessionService = Depends(get_question_sessions),
):
    return await generate_study_content(
        get_db(),
        coordinator=coordinator,
        generator=generator,
        question_sessions=sessions,
        owner_id=owner_id,
        file_ids=payload.fileIds,
        mode=payload.mode,
        now=now_local(),
    )


@router.post("/generate-more-flashcards", response_model=MoreFlashcardsResponse)
async def more_flashcards(
    payload: MoreFlashcardsRequest,
    owner_id: str = Depends(get_owner_id),
    generator: BaseQuestionGenerator = Depends(get_generator),
):
    card_ids = await generate_more_flashcards(
        get_db(),
        generator=generator,
        owner_id=owner_id,
        file_ids=payload.fileIds,
        existing_terms=payload.existingTerms,
        now=now_local(),
    )
    return {"cardIds": card_ids}
