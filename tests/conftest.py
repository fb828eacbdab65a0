import os
from datetime import datetime, timezone

import pytest

os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("MONGO_DB", "studymaster_test")
os.environ.setdefault("OPENAI_API_KEY", "")

from app.config import Settings  # noqa: E402
from app.errors import GenerationError  # noqa: E402
from app.services.question_generator import (  # noqa: E402
    BaseQuestionGenerator,
    GeneratedFlashcard,
    GeneratedQuestion,
    KnowledgeGaps,
    StudyPlanDay,
    StudySummary,
)
from tests.fixtures.mock_mongo import MockDatabase  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingGenerator(BaseQuestionGenerator):
    """Endless supply of uniquely numbered questions; can be told to fail."""

    provider_name = "counting"

    def __init__(self):
        self.calls: list[dict] = []
        self.fail_next = False
        self._counter = 0
        self.content_calls: list[str] = []
        self.fail_plan = False

    async def generate_batch(self, *, context_text, prior_topics, count):
        self.calls.append({"context_text": context_text, "prior_topics": list(prior_topics), "count": count})
        if self.fail_next:
            self.fail_next = False
            raise GenerationError("upstream timeout")
        out = []
        for _ in range(count):
            self._counter += 1
            out.append(
                GeneratedQuestion(
                    id=f"q{self._counter}",
                    question=f"Question {self._counter}?",
                    options=["a", "b", "c", "d"],
                    correctAnswer="a",
                    topic=f"topic-{self._counter}",
                )
            )
        return out

    async def generate_flashcards(self, *, context_text, existing_terms, count):
        return [GeneratedFlashcard(term=f"Term {i}", definition=f"Definition {i}") for i in range(count)]

    async def generate_summary(self, *, context_text):
        self.content_calls.append("summary")
        return StudySummary(overview=context_text[:40], keyPoints=["point"])

    async def generate_knowledge_gaps(self, *, context_text):
        self.content_calls.append("gaps")
        return KnowledgeGaps(prerequisites=["basics"], difficultConcepts=["hard part"])

    async def generate_study_plan(self, *, context_text, days):
        self.content_calls.append("plan")
        if self.fail_plan:
            self.fail_plan = False
            raise GenerationError("plan timeout")
        return [StudyPlanDay(day=day, tasks=[f"task {day}"]) for day in range(1, days + 1)]


@pytest.fixture
def now():
    return datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def mock_db():
    return MockDatabase()


@pytest.fixture
def counting_generator():
    return CountingGenerator()


@pytest.fixture
def test_settings():
    return Settings(
        mongo_url="mongodb://localhost:27017",
        mongo_db="studymaster_test",
        openai_api_key="",
        openai_model="gpt-4.1-mini",
        tz="UTC",
        cors_origins=(),
        question_batch_size=4,
        prior_topics_seed=2,
        prior_topics_limit=5,
    )
