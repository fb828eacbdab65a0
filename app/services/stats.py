import logging
from datetime import datetime, timedelta
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.errors import ValidationError

logger = logging.getLogger(__name__)

WEEK_DAYS = 7
MAX_MINUTES_PER_UPDATE = 24 * 60

STAT_FIELDS = ("totalStudyTime", "cardsReviewed", "questionsAnswered", "streak")


async def get_stats(db: AsyncIOMotorDatabase, *, owner_id: str, now: datetime) -> dict[str, Any]:
    """Counters from ``users.studyStats`` plus the last week of ``daily_stats``."""
    user = await db.users.find_one({"_id": owner_id}) or {}
    stored = user.get("studyStats") or {}
    stats = {field: int(stored.get(field) or 0) for field in STAT_FIELDS}

    # a streak only survives while the last study day is today or yesterday
    last_day = stored.get("lastStudyDate")
    if last_day not in (_day(now), _day(now - timedelta(days=1))):
        stats["streak"] = 0

    week_start = _day(now - timedelta(days=WEEK_DAYS - 1))
    daily = await (
        db.daily_stats.find({"userId": owner_id, "date": {"$gte": week_start}})
        .sort("date", 1)
        .to_list(length=WEEK_DAYS)
    )
    stats["weeklyProgress"] = [
        {"date": doc["date"], "studyMinutes": int(doc.get("studyMinutes") or 0)} for doc in daily
    ]
    return stats


async def record_study_time(db: AsyncIOMotorDatabase, *, owner_id: str, minutes: int, now: datetime) -> dict[str, Any]:
    if isinstance(minutes, bool) or not isinstance(minutes, int) or not 1 <= minutes <= MAX_MINUTES_PER_UPDATE:
        raise ValidationError(f"minutes must be an integer between 1 and {MAX_MINUTES_PER_UPDATE}")

    today = _day(now)
    user = await db.users.find_one({"_id": owner_id}) or {}
    stored = user.get("studyStats") or {}
    last_day = stored.get("lastStudyDate")
    if last_day == today:
        streak = int(stored.get("streak") or 1)
    elif last_day == _day(now - timedelta(days=1)):
        streak = int(stored.get("streak") or 0) + 1
    else:
        streak = 1

    await db.users.update_one(
        {"_id": owner_id},
        {
            "$inc": {"studyStats.totalStudyTime": minutes},
            "$set": {"studyStats.streak": streak, "studyStats.lastStudyDate": today},
        },
        upsert=True,
    )
    await db.daily_stats.update_one(
        {"userId": owner_id, "date": today},
        {"$inc": {"studyMinutes": minutes}},
        upsert=True,
    )
    logger.info("study_time_recorded", extra={"minutes": minutes, "streak": streak})
    return {"streak": streak, "date": today}


def _day(value: datetime) -> str:
    return value.date().isoformat()
