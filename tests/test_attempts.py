import pytest

from bandscore import crud, models
from bandscore.attempts import AttemptService, strip_correct_answers
from bandscore.errors import Conflict, NotFound
from bandscore.scoring import CompositeScorer
from bandscore.subjective import SubjectiveScorer
from bandscore.utils import band_score
from tests.stubs import StubOracle, StubTranscriber, full_answers, full_content, listening_content


@pytest.mark.asyncio
async def test_submit_scores_the_paid_draft(db, gate, service, student, full_exam):
    draft = await gate.ensure_access(db, student.id, full_exam.id)

    result = await service.submit(db, full_exam.id, student.id, full_answers())

    assert result["id"] == draft.id
    assert result["status"] == models.AttemptStatus.SCORED
    assert result["answers"] == full_answers()
    assert result["score"]["listening"] == 9.0
    assert result["score"]["reading"] == 4.0
    assert result["score"]["writing"] == 6.7
    assert result["score"]["speaking"] == 6.5
    assert result["user"]["profile"] == {"first_name": "Aziz", "last_name": "Karimov"}
    assert result["exam"]["title"] == "IELTS Academic - Full Test 1"

    details = result["detailed_results"]
    assert details["listening"]["correct"] == 3
    assert details["reading"]["questions"][1]["explanation"] == "Incorrect. Expected: True."
    assert details["speaking"]["parts"][1]["transcript"].startswith("Last summer")


@pytest.mark.asyncio
async def test_listening_scenario_one_of_two(db, gate, service, student):
    exam = await crud.save_exam(models.Exam(title="Listening", type="listening",
                                            content=listening_content(("A", "B"))), db)
    await gate.ensure_access(db, student.id, exam.id)

    result = await service.submit(db, exam.id, student.id, {"listening_q1": "A", "listening_q2": "wrong"})

    assert result["score"]["listening"] == 4.0
    assert result["score"]["overall"] == 1.0
    assert result["detailed_results"]["listening"]["total"] == 2


@pytest.mark.asyncio
async def test_submit_without_draft_creates_attempt(db, service, student, full_exam):
    result = await service.submit(db, full_exam.id, student.id, {"listening_l1": "A"})

    assert result["status"] == models.AttemptStatus.SCORED
    assert result["score"]["listening"] == band_score(1, 3)


@pytest.mark.asyncio
async def test_submit_unknown_exam_or_user(db, service, student, full_exam):
    with pytest.raises(NotFound):
        await service.submit(db, "missing-exam", student.id, {})
    with pytest.raises(NotFound):
        await service.submit(db, full_exam.id, "missing-user", {})


@pytest.mark.asyncio
async def test_scoring_is_idempotent(db, service, oracle, student, full_exam):
    result = await service.submit(db, full_exam.id, student.id, full_answers())

    again = await service.score_attempt(db, result["id"])

    assert again["score"] == result["score"]
    assert again["detailed_results"] == result["detailed_results"]
    assert len(oracle.writing_calls) == 1


@pytest.mark.asyncio
async def test_draft_cannot_be_scored(db, gate, service, student, full_exam):
    draft = await gate.ensure_access(db, student.id, full_exam.id)

    with pytest.raises(Conflict):
        await service.score_attempt(db, draft.id)
    with pytest.raises(NotFound):
        await service.score_attempt(db, "missing-attempt")


@pytest.mark.asyncio
async def test_resume_pending_scores_submitted_attempts(db, service, student, full_exam):
    pending = models.Attempt(user_id=student.id, exam_id=full_exam.id, answers=full_answers(),
                             status=models.AttemptStatus.SUBMITTED)
    db.add(pending)
    await db.commit()

    resumed = await service.resume_pending(db)

    assert resumed == [pending.id]
    attempt = await service.get_attempt(db, pending.id)
    assert attempt["status"] == models.AttemptStatus.SCORED
    assert attempt["score"]["listening"] == 9.0
    assert await service.resume_pending(db) == []


@pytest.mark.asyncio
async def test_oracle_outage_still_records_objective_scores(db, student, full_exam):
    scorer = CompositeScorer(SubjectiveScorer(StubOracle(fail_writing=True, fail_parts={1, 2}),
                                              StubTranscriber({2: "Some words."})))
    service = AttemptService(scorer)

    result = await service.submit(db, full_exam.id, student.id, full_answers())

    assert result["status"] == models.AttemptStatus.SCORED
    assert result["score"]["listening"] == 9.0
    assert result["score"]["writing"] == 0.0
    assert "unavailable" in result["detailed_results"]["writing"]["task1_feedback"]


@pytest.mark.asyncio
async def test_student_view_hides_answer_keys(db, service, full_exam):
    view = await service.get_exam_for_student(db, full_exam.id)

    for section in view["content"]["listening"]["sections"]:
        assert all("correctAnswer" not in q for q in section["questions"])
    for passage in view["content"]["reading"]["passages"]:
        assert all("correctAnswer" not in q for q in passage["questions"])
    assert view["content"]["writing"] == full_content()["writing"]
    # stored content is untouched
    assert full_exam.content["listening"]["sections"][0]["questions"][0]["correctAnswer"] == "A"

    with pytest.raises(NotFound):
        await service.get_exam_for_student(db, "missing-exam")


def test_strip_correct_answers_handles_missing_content():
    assert strip_correct_answers(None) == {}
    assert strip_correct_answers({"speaking": {"parts": []}}) == {"speaking": {"parts": []}}


@pytest.mark.asyncio
async def test_attempt_listings(db, service, student, admin, full_exam):
    await service.submit(db, full_exam.id, student.id, {})
    await service.submit(db, full_exam.id, admin.id, {})

    mine = await service.list_attempts_for_user(db, student.id)
    everyone = await service.list_all_attempts(db)

    assert len(mine) == 1
    assert mine[0]["user"] is None
    assert mine[0]["exam"]["id"] == full_exam.id
    assert len(everyone) == 2
    assert {a["user"]["login"] for a in everyone} == {"student", "admin"}
