import logging
from datetime import datetime
from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.errors import ConflictError, NotFoundError
from app.services.question_generator import GeneratedFlashcard
from app.services.srs_sm2 import ReviewState, apply_review, due_cards, initial_state, validate_quality

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


async def review_card(
    db: AsyncIOMotorDatabase,
    *,
    owner_id: str,
    card_id: str,
    quality: int,
    now: datetime,
) -> dict[str, Any]:
    quality = validate_quality(quality)
    if not ObjectId.is_valid(card_id):
        raise NotFoundError("Card not found")
    oid = ObjectId(card_id)

    # compare-and-swap on the fields the review reads; a concurrent review forces a reload
    for _ in range(MAX_WRITE_ATTEMPTS):
        card = await db.flashcards.find_one({"_id": oid, "userId": owner_id})
        if not card:
            raise NotFoundError("Card not found")

        update = apply_review(ReviewState.from_doc(card), quality, now)
        guard = {
            "_id": oid,
            "repetitions": card.get("repetitions"),
            "interval": card.get("interval"),
            "easeFactor": card.get("easeFactor"),
        }
        result = await db.flashcards.update_one(guard, {"$set": {**update, "lastReviewedAt": now, "updatedAt": now}})
        if result.matched_count == 1:
            break
        logger.info("review_write_conflict", extra={"card_id": card_id})
    else:
        raise ConflictError("Card was modified concurrently, retry the review")

    await db.users.update_one({"_id": owner_id}, {"$inc": {"studyStats.cardsReviewed": 1}}, upsert=True)
    return update


async def list_due_cards(
    db: AsyncIOMotorDatabase,
    *,
    owner_id: str,
    now: datetime,
    limit: int,
) -> list[dict[str, Any]]:
    docs = await (
        db.flashcards.find({"userId": owner_id, "nextReviewAt": {"$lte": now}})
        .sort("nextReviewAt", 1)
        .limit(limit)
        .to_list(length=limit)
    )
    return due_cards(docs, now)


async def create_cards(
    db: AsyncIOMotorDatabase,
    *,
    owner_id: str,
    study_session_id: ObjectId | None,
    flashcards: list[GeneratedFlashcard],
    now: datetime,
) -> list[str]:
    if not flashcards:
        return []
    docs = [
        {
            **card.model_dump(),
            **initial_state(now),
            "userId": owner_id,
            "studySessionId": study_session_id,
            "createdAt": now,
            "updatedAt": now,
        }
        for card in flashcards
    ]
    result = await db.flashcards.insert_many(docs)
    return [str(item) for item in result.inserted_ids]


def card_doc_to_out(doc: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "term": doc.get("term", ""),
        "definition": doc.get("definition", ""),
        "repetitions": int(doc.get("repetitions") or 0),
        "easeFactor": float(doc.get("easeFactor") or 2.5),
        "interval": int(doc.get("interval") or 1),
        "nextReviewAt": doc.get("nextReviewAt"),
        "lastReviewedAt": doc.get("lastReviewedAt"),
    }
