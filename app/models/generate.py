from typing import Any

from pydantic import BaseModel, Field

from app.services.study_content import GenerateMode


class GenerateRequest(BaseModel):
    fileIds: list[str] = Field(min_length=1)
    mode: GenerateMode = "comprehensive"


class GenerateResponse(BaseModel):
    sessionId: str
    practiceSessionId: str | None = None
    cardIds: list[str] = Field(default_factory=list)
    summary: dict[str, Any] | None = None
    knowledgeGaps: dict[str, Any] | None = None
    studyPlan: list[dict[str, Any]] = Field(default_factory=list)
    coalesced: bool = False


class MoreFlashcardsRequest(BaseModel):
    fileIds: list[str] = Field(min_length=1)
    existingTerms: list[str] = Field(default_factory=list)


class MoreFlashcardsResponse(BaseModel):
    cardIds: list[str] = Field(default_factory=list)
