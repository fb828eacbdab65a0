from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PracticeSessionCreate(BaseModel):
    fileIds: list[str] = Field(min_length=1)
    topicKey: str | None = None


class NextQuestionsRequest(BaseModel):
    limit: int = Field(default=5, ge=1, le=50)


class NextQuestionsResponse(BaseModel):
    questions: list[dict[str, Any]] = Field(default_factory=list)
    remaining: int
    newBatchGenerated: bool
    batchNumber: int
    totalGenerated: int


class PracticeSessionOut(BaseModel):
    id: str
    topicKey: str
    batchCount: int
    totalGenerated: int
    remaining: int
    previousTopics: list[str] = Field(default_factory=list)
    createdAt: datetime | None = None
    updatedAt: datetime | None = None
