from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.config import get_settings, validate_mongo_settings

_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        settings = validate_mongo_settings(get_settings())
        _client = AsyncIOMotorClient(
            settings.mongo_url,
            serverSelectionTimeoutMS=5000,
            tz_aware=True,
        )
    return _client


def get_db() -> AsyncIOMotorDatabase:
    global _db
    if _db is None:
        settings = validate_mongo_settings(get_settings())
        _db = get_client()[settings.mongo_db]
    return _db


async def ping_db() -> None:
    await get_client().admin.command("ping")


async def create_indexes() -> None:
    db = get_db()
    await db.flashcards.create_index(
        [("userId", ASCENDING), ("nextReviewAt", ASCENDING)],
        name="idx_flashcards_user_next_review",
    )
    await db.flashcards.create_index([("studySessionId", ASCENDING)], name="idx_flashcards_study_session")
    await db.files.create_index([("userId", ASCENDING)], name="idx_files_user")
    await db.study_sessions.create_index(
        [("userId", ASCENDING), ("createdAt", DESCENDING)],
        name="idx_study_sessions_user_created",
    )
    await db.question_sessions.create_index(
        [("userId", ASCENDING), ("topicKey", ASCENDING)],
        name="idx_question_sessions_user_topic",
    )
    await db.daily_stats.create_index(
        [("userId", ASCENDING), ("date", ASCENDING)],
        name="idx_daily_stats_user_date",
        unique=True,
    )
