from datetime import datetime

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    cardId: str = Field(min_length=1)
    quality: int = Field(ge=0, le=5)


class ReviewResponse(BaseModel):
    interval: int
    nextReviewAt: datetime
    repetitions: int
    easeFactor: float


class CardOut(BaseModel):
    id: str
    term: str
    definition: str
    repetitions: int
    easeFactor: float
    interval: int
    nextReviewAt: datetime | None
    lastReviewedAt: datetime | None


class DueCardsOut(BaseModel):
    items: list[CardOut]
    total: int
