from typing import Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.errors import NotFoundError, ValidationError


def _object_ids(file_ids: list[str]) -> list[ObjectId]:
    return [ObjectId(item) for item in file_ids if ObjectId.is_valid(item)]


async def load_files(db: AsyncIOMotorDatabase, owner_id: str, file_ids: list[str]) -> list[dict[str, Any]]:
    if not file_ids:
        raise ValidationError("fileIds are required")
    ids = _object_ids(file_ids)
    if not ids:
        raise NotFoundError("No files found")
    return await db.files.find({"_id": {"$in": ids}, "userId": owner_id}).to_list(length=None)


async def load_combined_text(db: AsyncIOMotorDatabase, owner_id: str, file_ids: list[str]) -> str:
    files = await load_files(db, owner_id, file_ids)
    if not files:
        raise NotFoundError("No files found")

    text = "\n\n".join(str(doc.get("textContent") or doc.get("content") or "") for doc in files).strip()
    if not text:
        raise ValidationError("No text content found in uploaded files")
    return text
