import asyncio
import copy
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection

from app.config import Settings, get_settings
from app.errors import GenerationError, NotFoundError, ValidationError
from app.services.question_generator import BaseQuestionGenerator, GeneratedQuestion

logger = logging.getLogger(__name__)

UNSEEN = "unseen"
SHOWN = "shown"
DEFAULT_LIMIT = 5


def question_ids(batches: list[dict[str, Any]]) -> set[str]:
    return {str(item["question"].get("id")) for batch in batches for item in batch.get("questions", [])}


def new_batch(
    batch_number: int,
    questions: list[GeneratedQuestion],
    now: datetime,
    used_ids: Iterable[str] = (),
) -> dict[str, Any]:
    """Build an all-unseen batch whose question ids are unique within the session.

    Generators may repeat ids across (or within) batches, so an id already in
    ``used_ids`` is replaced by ``"<batchNumber>-<id>"``, or a fresh uuid4 hex
    when that is taken too.
    """
    taken = set(used_ids)
    items = []
    for question in questions:
        payload = question.model_dump()
        qid = payload["id"]
        if qid in taken:
            qid = f"{batch_number}-{qid}"
            if qid in taken:
                qid = uuid.uuid4().hex
        payload["id"] = qid
        taken.add(qid)
        items.append({"question": payload, "status": UNSEEN})
    return {"batchNumber": batch_number, "createdAt": now, "questions": items}


def count_unseen(batches: list[dict[str, Any]]) -> int:
    return sum(1 for batch in batches for item in batch.get("questions", []) if item.get("status") == UNSEEN)


def take_unseen(batches: list[dict[str, Any]], limit: int) -> tuple[list[dict[str, Any]], list[dict[str, Any]], int]:
    """Mark up to ``limit`` unseen questions as shown, in stored order.

    Returns ``(updated_batches, taken_payloads, remaining_unseen)``. The input is
    not modified; callers persist ``updated_batches`` only if they commit.
    """
    updated = copy.deepcopy(batches)
    taken: list[dict[str, Any]] = []
    for batch in updated:
        for item in batch.get("questions", []):
            if len(taken) >= limit:
                break
            if item.get("status") == UNSEEN:
                item["status"] = SHOWN
                taken.append(item["question"])
    return updated, taken, count_unseen(updated)


def next_batch_number(batches: list[dict[str, Any]]) -> int:
    return max((int(batch.get("batchNumber", 0)) for batch in batches), default=0) + 1


def seed_prior_topics(existing: list[str], questions: list[GeneratedQuestion], seed: int, limit: int) -> list[str]:
    topics = list(existing)
    for item in questions[:seed]:
        topic = (item.topic or item.question).strip()
        if topic and topic not in topics:
            topics.append(topic)
    return topics[-limit:] if limit > 0 else topics


def validate_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be an integer >= 1")
    return limit


def _session_object_id(session_id: str | ObjectId) -> ObjectId:
    if isinstance(session_id, ObjectId):
        return session_id
    if not ObjectId.is_valid(session_id):
        raise NotFoundError("Question session not found")
    return ObjectId(session_id)


def session_doc_to_summary(doc: dict[str, Any]) -> dict[str, Any]:
    batches = doc.get("batches", []) or []
    return {
        "id": str(doc["_id"]),
        "topicKey": doc.get("topicKey", ""),
        "batchCount": len(batches),
        "totalGenerated": int(doc.get("totalGenerated", 0)),
        "remaining": count_unseen(batches),
        "previousTopics": list(doc.get("previousTopics", []) or []),
        "createdAt": doc.get("createdAt"),
        "updatedAt": doc.get("updatedAt"),
    }


class QuestionSessionService:
    """Keep-Going pagination over generated practice questions.

    A question is handed out at most once per session. Calls on the same session
    are serialized with a per-session lock that is held across the read, the
    optional batch generation and the write.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        generator: BaseQuestionGenerator,
        settings: Settings | None = None,
    ):
        self.collection = collection
        self.generator = generator
        self.settings = settings or get_settings()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _session_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def _generate(self, context_text: str, prior_topics: list[str]) -> list[GeneratedQuestion]:
        questions = await self.generator.generate_batch(
            context_text=context_text,
            prior_topics=prior_topics,
            count=self.settings.question_batch_size,
        )
        if not questions:
            raise GenerationError("Question generator returned an empty batch")
        return questions

    async def create_session(self, *, owner_id: str, topic_key: str, context_text: str, now: datetime) -> dict[str, Any]:
        questions = await self._generate(context_text, [])
        batch = new_batch(1, questions, now)
        doc = {
            "userId": owner_id,
            "topicKey": topic_key,
            "contextText": context_text,
            "batches": [batch],
            "totalGenerated": len(questions),
            "previousTopics": seed_prior_topics(
                [], questions, self.settings.prior_topics_seed, self.settings.prior_topics_limit
            ),
            "createdAt": now,
            "updatedAt": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info(
            "batch_generated",
            extra={"session_id": str(doc["_id"]), "batch_number": 1, "size": len(questions)},
        )
        return doc

    async def get_session(self, *, owner_id: str, session_id: str) -> dict[str, Any]:
        doc = await self.collection.find_one({"_id": _session_object_id(session_id), "userId": owner_id})
        if not doc:
            raise NotFoundError("Question session not found")
        return doc

    async def next_questions(
        self,
        *,
        owner_id: str,
        session_id: str,
        now: datetime,
        limit: int = DEFAULT_LIMIT,
    ) -> dict[str, Any]:
        limit = validate_limit(limit)
        oid = _session_object_id(session_id)

        async with self._session_lock(str(oid)):
            doc = await self.get_session(owner_id=owner_id, session_id=oid)
            batches = doc.get("batches", []) or []

            updated, taken, remaining = take_unseen(batches, limit)
            if taken:
                await self.collection.update_one(
                    {"_id": oid},
                    {"$set": {"batches": updated, "updatedAt": now}},
                )
                return {
                    "questions": taken,
                    "remaining": remaining,
                    "newBatchGenerated": False,
                    "batchNumber": int(batches[-1]["batchNumber"]) if batches else 0,
                    "totalGenerated": int(doc.get("totalGenerated", 0)),
                }

            # exhausted: nothing is written unless generation succeeds
            prior_topics = list(doc.get("previousTopics", []) or [])
            questions = await self._generate(doc.get("contextText", ""), prior_topics)
            number = next_batch_number(batches)
            batch = new_batch(number, questions, now, question_ids(batches))
            updated, taken, remaining = take_unseen(batches + [batch], limit)
            total = int(doc.get("totalGenerated", 0)) + len(questions)
            topics = seed_prior_topics(
                prior_topics, questions, self.settings.prior_topics_seed, self.settings.prior_topics_limit
            )
            await self.collection.update_one(
                {"_id": oid},
                {
                    "$set": {
                        "batches": updated,
                        "totalGenerated": total,
                        "previousTopics": topics,
                        "updatedAt": now,
                    }
                },
            )
            logger.info(
                "batch_generated",
                extra={"session_id": str(oid), "batch_number": number, "size": len(questions)},
            )
            return {
                "questions": taken,
                "remaining": remaining,
                "newBatchGenerated": True,
                "batchNumber": number,
                "totalGenerated": total,
            }
