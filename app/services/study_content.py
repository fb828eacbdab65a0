import logging
from datetime import datetime
from typing import Any, Literal

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.services.coordinator import GenerationCoordinator, fingerprint
from app.services.documents import load_combined_text
from app.services.question_generator import BaseQuestionGenerator
from app.services.question_session import QuestionSessionService
from app.services.review import create_cards

logger = logging.getLogger(__name__)

GenerateMode = Literal["comprehensive", "summary", "practice", "flashcards", "gaps"]

INITIAL_FLASHCARD_COUNT = 5
MORE_FLASHCARD_COUNT = 6
STUDY_PLAN_DAYS = 7


async def generate_study_content(
    db: AsyncIOMotorDatabase,
    *,
    coordinator: GenerationCoordinator,
    generator: BaseQuestionGenerator,
    question_sessions: QuestionSessionService,
    owner_id: str,
    file_ids: list[str],
    mode: GenerateMode,
    now: datetime,
) -> dict[str, Any]:
    """Produce the study material ``mode`` asks for, once per fingerprint.

    comprehensive: summary, practice session, flashcards. summary, practice,
    flashcards: only that part. gaps: knowledge gaps. Every mode also gets a
    study plan.
    """
    text = await load_combined_text(db, owner_id, file_ids)
    key = fingerprint(owner_id, file_ids, mode, len(text))
    shared = coordinator.is_in_flight(key) or coordinator.cache.get(key) is not None

    async def produce() -> dict[str, Any]:
        practice_session_id: str | None = None
        content: dict[str, Any] = {"summary": None, "knowledgeGaps": None, "studyPlan": []}

        # generate everything that can fail upstream before the first write
        flashcards = []
        if mode in ("comprehensive", "flashcards"):
            flashcards = await generator.generate_flashcards(
                context_text=text,
                existing_terms=[],
                count=INITIAL_FLASHCARD_COUNT,
            )
        if mode in ("comprehensive", "summary"):
            content["summary"] = (await generator.generate_summary(context_text=text)).model_dump()
        if mode == "gaps":
            content["knowledgeGaps"] = (await generator.generate_knowledge_gaps(context_text=text)).model_dump()
        plan = await generator.generate_study_plan(context_text=text, days=STUDY_PLAN_DAYS)
        content["studyPlan"] = [day.model_dump() for day in plan]

        # inserts its session only once its first batch exists
        if mode in ("comprehensive", "practice"):
            session_doc = await question_sessions.create_session(
                owner_id=owner_id,
                topic_key=key,
                context_text=text,
                now=now,
            )
            practice_session_id = str(session_doc["_id"])

        inserted = await db.study_sessions.insert_one(
            {
                "userId": owner_id,
                "fileIds": sorted(set(file_ids)),
                "mode": mode,
                "content": content,
                "practiceSessionId": practice_session_id,
                "createdAt": now,
            }
        )
        card_ids = await create_cards(
            db,
            owner_id=owner_id,
            study_session_id=inserted.inserted_id,
            flashcards=flashcards,
            now=now,
        )
        await db.study_sessions.update_one({"_id": inserted.inserted_id}, {"$set": {"cardIds": card_ids}})
        logger.info(
            "study_content_generated",
            extra={"mode": mode, "card_count": len(card_ids), "practice_session_id": practice_session_id},
        )
        return {
            "sessionId": str(inserted.inserted_id),
            "practiceSessionId": practice_session_id,
            "cardIds": card_ids,
            **content,
        }

    result = await coordinator.coalesce(key, produce)
    return {**result, "coalesced": shared}


async def generate_more_flashcards(
    db: AsyncIOMotorDatabase,
    *,
    generator: BaseQuestionGenerator,
    owner_id: str,
    file_ids: list[str],
    existing_terms: list[str],
    now: datetime,
) -> list[str]:
    text = await load_combined_text(db, owner_id, file_ids)
    flashcards = await generator.generate_flashcards(
        context_text=text,
        existing_terms=existing_terms,
        count=MORE_FLASHCARD_COUNT,
    )
    known = {term.strip().lower() for term in existing_terms}
    fresh = [card for card in flashcards if card.term.strip().lower() not in known]
    return await create_cards(db, owner_id=owner_id, study_session_id=None, flashcards=fresh, now=now)
