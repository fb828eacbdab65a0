import asyncio

import pytest
from bson import ObjectId

from app.errors import GenerationError, NotFoundError, ValidationError
from app.services.coordinator import GenerationCoordinator
from app.services.question_session import QuestionSessionService
from app.services.study_content import generate_more_flashcards, generate_study_content


@pytest.fixture
def file_id(mock_db):
    oid = ObjectId()
    mock_db.files.docs.append({"_id": oid, "userId": "u1", "textContent": "Enzymes lower activation energy."})
    return str(oid)


def _generate(mock_db, generator, settings, coordinator, file_ids, mode, now):
    return generate_study_content(
        mock_db,
        coordinator=coordinator,
        generator=generator,
        question_sessions=QuestionSessionService(mock_db.question_sessions, generator, settings),
        owner_id="u1",
        file_ids=file_ids,
        mode=mode,
        now=now,
    )


def test_concurrent_identical_requests_generate_once(mock_db, counting_generator, test_settings, file_id, now):
    coordinator = GenerationCoordinator()

    async def scenario():
        return await asyncio.gather(
            *(
                _generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "practice", now)
                for _ in range(5)
            )
        )

    results = asyncio.run(scenario())
    assert len({r["sessionId"] for r in results}) == 1
    assert [r["coalesced"] for r in results].count(False) == 1
    assert len(mock_db.study_sessions.docs) == 1
    assert len(mock_db.question_sessions.docs) == 1
    assert len(counting_generator.calls) == 1


def test_modes_decide_what_is_created(mock_db, counting_generator, test_settings, file_id, now):
    coordinator = GenerationCoordinator()

    flash = asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "flashcards", now))
    assert flash["practiceSessionId"] is None
    assert len(flash["cardIds"]) == 5

    practice = asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "practice", now))
    assert practice["practiceSessionId"]
    assert practice["cardIds"] == []
    assert practice["sessionId"] != flash["sessionId"]


def test_generation_failure_writes_nothing_and_is_retryable(mock_db, counting_generator, test_settings, file_id, now):
    coordinator = GenerationCoordinator()
    counting_generator.fail_next = True

    with pytest.raises(GenerationError):
        asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "comprehensive", now))
    assert mock_db.study_sessions.docs == []
    assert mock_db.flashcards.docs == []
    assert coordinator.in_flight_count() == 0

    result = asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "comprehensive", now))
    assert result["coalesced"] is False
    assert len(mock_db.study_sessions.docs) == 1


def test_missing_or_empty_files(mock_db, counting_generator, test_settings, now):
    coordinator = GenerationCoordinator()
    with pytest.raises(ValidationError):
        asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [], "practice", now))
    with pytest.raises(NotFoundError):
        asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [str(ObjectId())], "practice", now))

    empty = ObjectId()
    mock_db.files.docs.append({"_id": empty, "userId": "u1", "textContent": "  "})
    with pytest.raises(ValidationError):
        asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [str(empty)], "practice", now))


def test_more_flashcards_skip_known_terms(mock_db, counting_generator, file_id, now):
    ids = asyncio.run(
        generate_more_flashcards(
            mock_db,
            generator=counting_generator,
            owner_id="u1",
            file_ids=[file_id],
            existing_terms=["term 1", "Term 2 "],
            now=now,
        )
    )
    assert len(ids) == 4
    assert {doc["term"] for doc in mock_db.flashcards.docs} == {"Term 0", "Term 3", "Term 4", "Term 5"}


def test_summary_and_gaps_modes(mock_db, counting_generator, test_settings, file_id, now):
    coordinator = GenerationCoordinator()

    summary = asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "summary", now))
    assert summary["summary"]["overview"].startswith("Enzymes")
    assert summary["knowledgeGaps"] is None
    assert summary["practiceSessionId"] is None
    assert summary["cardIds"] == []
    assert [day["day"] for day in summary["studyPlan"]] == list(range(1, 8))

    gaps = asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "gaps", now))
    assert gaps["knowledgeGaps"]["prerequisites"] == ["basics"]
    assert gaps["summary"] is None

    stored = {doc["mode"]: doc["content"] for doc in mock_db.study_sessions.docs}
    assert stored["summary"]["summary"]["keyPoints"] == ["point"]
    assert stored["gaps"]["knowledgeGaps"]["difficultConcepts"] == ["hard part"]
    assert counting_generator.content_calls == ["summary", "plan", "gaps", "plan"]
    assert counting_generator.calls == []


def test_repeated_summary_request_is_coalesced(mock_db, counting_generator, test_settings, file_id, now):
    coordinator = GenerationCoordinator()

    async def scenario():
        return await asyncio.gather(
            *(
                _generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "summary", now)
                for _ in range(3)
            )
        )

    results = asyncio.run(scenario())
    assert len({r["sessionId"] for r in results}) == 1
    assert counting_generator.content_calls.count("summary") == 1


def test_study_plan_failure_leaves_no_practice_session(mock_db, counting_generator, test_settings, file_id, now):
    coordinator = GenerationCoordinator()
    counting_generator.fail_plan = True

    with pytest.raises(GenerationError):
        asyncio.run(_generate(mock_db, counting_generator, test_settings, coordinator, [file_id], "comprehensive", now))
    assert mock_db.question_sessions.docs == []
    assert mock_db.study_sessions.docs == []
    assert mock_db.flashcards.docs == []
