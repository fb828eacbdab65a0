import asyncio
import json
import logging
import uuid
from typing import Any
from urllib import error, request

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from app.config import get_settings
from app.errors import GenerationError

logger = logging.getLogger(__name__)


class GeneratedQuestion(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    question: str = Field(min_length=1)
    options: list[str] = Field(default_factory=list)
    correctAnswer: str = ""
    explanation: str = ""
    topic: str = ""
    difficulty: int = Field(default=3, ge=1, le=5)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text or uuid.uuid4().hex


class GeneratedFlashcard(BaseModel):
    term: str = Field(min_length=1)
    definition: str = Field(min_length=1)
    mnemonic: str | None = None
    examples: list[str] = Field(default_factory=list)
    category: str = ""
    difficulty: int = Field(default=3, ge=1, le=5)


class StudySummary(BaseModel):
    overview: str = Field(min_length=1)
    difficultyLevel: str = ""
    estimatedStudyTime: str = ""
    learningObjectives: list[str] = Field(default_factory=list)
    keyPoints: list[str] = Field(default_factory=list)
    definitions: dict[str, str] = Field(default_factory=dict)
    assessmentTips: list[str] = Field(default_factory=list)


class KnowledgeGaps(BaseModel):
    prerequisites: list[str] = Field(default_factory=list)
    difficultConcepts: list[str] = Field(default_factory=list)
    commonMisconceptions: list[str] = Field(default_factory=list)
    studyPriorities: list[str] = Field(default_factory=list)


class StudyPlanDay(BaseModel):
    day: int = Field(ge=1)
    tasks: list[str] = Field(default_factory=list)
    timeRequired: str = ""
    topics: list[str] = Field(default_factory=list)
    reviewItems: list[str] = Field(default_factory=list)


class BaseQuestionGenerator:
    provider_name = "stub"

    async def generate_batch(self, *, context_text: str, prior_topics: list[str], count: int) -> list[GeneratedQuestion]:
        raise NotImplementedError

    async def generate_flashcards(self, *, context_text: str, existing_terms: list[str], count: int) -> list[GeneratedFlashcard]:
        raise NotImplementedError

    async def generate_summary(self, *, context_text: str) -> StudySummary:
        raise NotImplementedError

    async def generate_knowledge_gaps(self, *, context_text: str) -> KnowledgeGaps:
        raise NotImplementedError

    async def generate_study_plan(self, *, context_text: str, days: int) -> list[StudyPlanDay]:
        raise NotImplementedError


def _chunks(text: str) -> list[str]:
    parts = [part.strip() for part in text.split("\n\n") if part.strip()]
    return parts or ([text.strip()] if text.strip() else [])


class StubQuestionGenerator(BaseQuestionGenerator):
    """Offline generator: one question per text chunk, cycling through the text."""

    provider_name = "stub"

    async def generate_batch(self, *, context_text: str, prior_topics: list[str], count: int) -> list[GeneratedQuestion]:
        chunks = _chunks(context_text)
        if not chunks:
            raise GenerationError("No text to generate questions from")

        offset = len(prior_topics)
        out: list[GeneratedQuestion] = []
        for i in range(count):
            chunk = chunks[(offset + i) % len(chunks)]
            topic = " ".join(chunk.split()[:6])
            out.append(
                GeneratedQuestion(
                    question=f"Which statement best summarizes: '{topic}'?",
                    options=[chunk[:120], "None of the above", "All of the above", "Not covered"],
                    correctAnswer=chunk[:120],
                    explanation="Taken directly from the source text.",
                    topic=f"{topic} #{offset + i + 1}",
                )
            )
        return out

    async def generate_flashcards(self, *, context_text: str, existing_terms: list[str], count: int) -> list[GeneratedFlashcard]:
        chunks = _chunks(context_text)
        if not chunks:
            raise GenerationError("No text to generate flashcards from")

        seen = {term.lower() for term in existing_terms}
        out: list[GeneratedFlashcard] = []
        for chunk in chunks:
            words = chunk.split()
            term = " ".join(words[:3])
            if term.lower() in seen:
                continue
            seen.add(term.lower())
            out.append(GeneratedFlashcard(term=term, definition=" ".join(words[:40])))
            if len(out) >= count:
                break
        return out

    async def generate_summary(self, *, context_text: str) -> StudySummary:
        chunks = _chunks(context_text)
        if not chunks:
            raise GenerationError("No text to summarize")

        words = len(context_text.split())
        if words < 300:
            level = "Beginner"
        elif words < 1500:
            level = "Intermediate"
        else:
            level = "Advanced"
        key_points = [_headline(chunk) for chunk in chunks[:5]]
        return StudySummary(
            overview=" ".join(chunks[0].split()[:40]),
            difficultyLevel=level,
            estimatedStudyTime=f"{max(1, round(words / 2000))} hours",
            learningObjectives=[f"Explain {point}" for point in key_points],
            keyPoints=key_points,
        )

    async def generate_knowledge_gaps(self, *, context_text: str) -> KnowledgeGaps:
        chunks = _chunks(context_text)
        if not chunks:
            raise GenerationError("No text to analyze")

        by_length = sorted(chunks, key=lambda chunk: len(chunk.split()), reverse=True)
        return KnowledgeGaps(
            prerequisites=[_headline(chunks[0])],
            difficultConcepts=[_headline(chunk) for chunk in by_length[:3]],
            studyPriorities=[_headline(chunk) for chunk in chunks[:3]],
        )

    async def generate_study_plan(self, *, context_text: str, days: int) -> list[StudyPlanDay]:
        chunks = _chunks(context_text)
        if not chunks:
            raise GenerationError("No text to plan from")

        plan = []
        for day in range(1, days + 1):
            topics = [_headline(chunk) for chunk in chunks[day - 1 :: days]]
            review = [_headline(chunk) for chunk in chunks[: max(0, day - 1)]][-3:]
            tasks = [f"Study {topic}" for topic in topics] or ["Review flashcards due today"]
            plan.append(StudyPlanDay(day=day, tasks=tasks, timeRequired="1 hour", topics=topics, reviewItems=review))
        return plan


def _headline(chunk: str) -> str:
    return " ".join(chunk.split()[:6])


class OpenAiQuestionGenerator(BaseQuestionGenerator):
    provider_name = "openai"
    _endpoint = "https://api.openai.com/v1/responses"

    def __init__(self, api_key: str, model: str = "gpt-4.1-mini", timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    async def generate_batch(self, *, context_text: str, prior_topics: list[str], count: int) -> list[GeneratedQuestion]:
        avoid = "; ".join(prior_topics)
        prompt = (
            "Return JSON only. Do not include markdown. "
            f"Create EXACTLY {count} multiple-choice practice questions from this content. "
            'Format: {"questions":[{"question":string,"options":string[4],"correctAnswer":string,'
            '"explanation":string,"topic":string,"difficulty":1-5}]}. '
            + (f"AVOID these already covered topics: {avoid}. " if avoid else "")
            + f"Content: {context_text[:12000]}"
        )
        parsed = await self._ask(prompt, max_output_tokens=2000)
        questions = _validate_items(parsed.get("questions"), GeneratedQuestion, "questions")
        logger.info("question_batch_generated", extra={"provider": self.provider_name, "count": len(questions)})
        return questions

    async def generate_flashcards(self, *, context_text: str, existing_terms: list[str], count: int) -> list[GeneratedFlashcard]:
        avoid = ", ".join(existing_terms)
        prompt = (
            "Return JSON only. Do not include markdown. "
            f"Create EXACTLY {count} flashcards from this content. "
            'Format: {"flashcards":[{"term":string,"definition":string,"mnemonic":string,'
            '"examples":string[],"category":string,"difficulty":1-5}]}. '
            + (f"AVOID these already used terms: {avoid}. " if avoid else "")
            + f"Content: {context_text[:12000]}"
        )
        parsed = await self._ask(prompt, max_output_tokens=1400)
        return _validate_items(parsed.get("flashcards"), GeneratedFlashcard, "flashcards")

    async def generate_summary(self, *, context_text: str) -> StudySummary:
        prompt = (
            "Return JSON only. Do not include markdown. "
            "Create a study summary of this content. "
            'Format: {"overview":string,"difficultyLevel":"Beginner"|"Intermediate"|"Advanced",'
            '"estimatedStudyTime":string,"learningObjectives":string[],"keyPoints":string[],'
            '"definitions":{term:definition},"assessmentTips":string[]}. '
            f"Content: {context_text[:8000]}"
        )
        parsed = await self._ask(prompt, max_output_tokens=1500)
        return _validate_object(parsed, StudySummary, "summary")

    async def generate_knowledge_gaps(self, *, context_text: str) -> KnowledgeGaps:
        prompt = (
            "Return JSON only. Do not include markdown. "
            "Identify the prerequisite knowledge and difficult areas of this content. "
            'Format: {"prerequisites":string[],"difficultConcepts":string[],'
            '"commonMisconceptions":string[],"studyPriorities":string[]}. '
            f"Content: {context_text[:8000]}"
        )
        parsed = await self._ask(prompt, max_output_tokens=800)
        gaps = _validate_object(parsed, KnowledgeGaps, "knowledge gaps")
        if not any(gaps.model_dump().values()):
            raise GenerationError("OpenAI output has no knowledge gaps")
        return gaps

    async def generate_study_plan(self, *, context_text: str, days: int) -> list[StudyPlanDay]:
        prompt = (
            "Return JSON only. Do not include markdown. "
            f"Create a study plan for mastering this content in {days} days. "
            'Format: {"studyPlan":[{"day":number,"tasks":string[],"timeRequired":string,'
            '"topics":string[],"reviewItems":string[]}]}. '
            f"Content: {context_text[:8000]}"
        )
        parsed = await self._ask(prompt, max_output_tokens=1500)
        days_raw = parsed.get("studyPlan")
        # models sometimes answer with {"day1": {...}, "day2": {...}}
        if isinstance(days_raw, dict):
            days_raw = list(days_raw.values())
        if isinstance(days_raw, list):
            days_raw = [
                {"day": index, **item} if isinstance(item, dict) and "day" not in item else item
                for index, item in enumerate(days_raw, start=1)
            ]
        return _validate_items(days_raw, StudyPlanDay, "studyPlan")

    async def _ask(self, prompt: str, *, max_output_tokens: int) -> dict[str, Any]:
        payload = {
            "model": self.model,
            "input": prompt,
            "temperature": 0.7,
            "max_output_tokens": max_output_tokens,
        }
        response_data = await self._call_responses_api(payload)
        parsed = _extract_json_dict(response_data)
        if not parsed:
            raise GenerationError("OpenAI returned no parseable JSON object")
        return parsed

    async def _call_responses_api(self, payload: dict[str, Any]) -> dict[str, Any]:
        def _sync_call() -> dict[str, Any]:
            req = request.Request(
                self._endpoint,
                data=json.dumps(payload).encode("utf-8"),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                method="POST",
            )
            with request.urlopen(req, timeout=self.timeout) as response:
                raw = response.read().decode("utf-8")
            return json.loads(raw)

        try:
            return await asyncio.to_thread(_sync_call)
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise GenerationError(f"OpenAI API HTTPError: {exc.code} {body}", cause=exc) from exc
        except Exception as exc:
            raise GenerationError(f"OpenAI API error: {exc}", cause=exc) from exc


def _validate_items(value: Any, model: type[BaseModel], label: str) -> list[Any]:
    if not isinstance(value, list) or not value:
        raise GenerationError(f"OpenAI output has no {label}")

    items = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        try:
            items.append(model.model_validate(raw))
        except PydanticValidationError:
            logger.warning("generated_item_rejected", extra={"label": label})
    if not items:
        raise GenerationError(f"OpenAI output has no valid {label}")
    return items


def _validate_object(value: dict[str, Any], model: type[BaseModel], label: str) -> Any:
    try:
        return model.model_validate(value)
    except PydanticValidationError as exc:
        raise GenerationError(f"OpenAI output has no valid {label}", cause=exc) from exc


def _extract_json_dict(response_data: dict[str, Any]) -> dict[str, Any]:
    if isinstance(response_data.get("output_text"), str) and response_data["output_text"].strip():
        return _parse_json_object(response_data["output_text"])

    text_parts: list[str] = []
    for block in response_data.get("output", []):
        for content in block.get("content", []):
            text = content.get("text")
            if isinstance(text, str) and text.strip():
                text_parts.append(text)

    if not text_parts:
        return {}

    return _parse_json_object("\n".join(text_parts))


def _parse_json_object(raw_text: str) -> dict[str, Any]:
    candidate = raw_text.strip()
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start >= 0 and end > start:
        candidate = candidate[start : end + 1]

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return {}

    return parsed if isinstance(parsed, dict) else {}


def get_question_generator() -> BaseQuestionGenerator:
    settings = get_settings()
    if settings.openai_api_key:
        return OpenAiQuestionGenerator(settings.openai_api_key, model=settings.openai_model)
    return StubQuestionGenerator()
