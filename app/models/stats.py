from pydantic import BaseModel, Field


class DailyProgress(BaseModel):
    date: str
    studyMinutes: int


class StatsOut(BaseModel):
    totalStudyTime: int
    cardsReviewed: int
    questionsAnswered: int
    streak: int
    weeklyProgress: list[DailyProgress] = Field(default_factory=list)


class StudyTimeUpdate(BaseModel):
    minutes: int = Field(ge=1, le=24 * 60)


class StudyTimeResponse(BaseModel):
    success: bool = True
    streak: int
    date: str
