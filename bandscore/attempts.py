"""Attempt lifecycle: draft -> submitted -> scored."""
import copy
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bandscore import crud, models
from bandscore.errors import Conflict, NotFound
from bandscore.scoring import CompositeScorer

logger = logging.getLogger(__name__)

ANSWER_KEY_FIELD = "correctAnswer"


def _strip_field(node: Any, field: str) -> Any:
    if isinstance(node, dict):
        return {k: _strip_field(v, field) for k, v in node.items() if k != field}
    if isinstance(node, list):
        return [_strip_field(item, field) for item in node]
    return node


def strip_correct_answers(content: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy of exam content without answer keys in the listening and reading sections."""
    if not isinstance(content, dict):
        return {}
    redacted = copy.deepcopy(content)
    for skill in ("listening", "reading"):
        if skill in redacted:
            redacted[skill] = _strip_field(redacted[skill], ANSWER_KEY_FIELD)
    return redacted


def serialize_attempt(attempt: models.Attempt, include_user: bool = True) -> Dict[str, Any]:
    """Attempt view. Relations must already be loaded; ``include_user`` only when the user was."""
    exam = attempt.exam
    score = attempt.score

    user_view = None
    if include_user and attempt.user is not None:
        user = attempt.user
        profile = user.profile
        user_view = {
            "id": user.id,
            "login": user.login,
            "role": user.role,
            "profile": {
                "first_name": profile.first_name,
                "last_name": profile.last_name,
            } if profile else None,
        }

    return {
        "id": attempt.id,
        "answers": attempt.answers or {},
        "status": attempt.status,
        "created_at": attempt.created_at,
        "updated_at": attempt.updated_at,
        "exam": {
            "id": exam.id,
            "title": exam.title,
            "type": exam.type,
        } if exam else None,
        "user": user_view,
        "score": {
            "id": score.id,
            "listening": score.listening,
            "reading": score.reading,
            "writing": score.writing,
            "speaking": score.speaking,
            "overall": score.overall,
        } if score else None,
        "detailed_results": (score.details or None) if score else None,
    }


class AttemptService:
    def __init__(self, scorer: CompositeScorer):
        self.scorer = scorer

    async def get_exam_for_student(self, db: AsyncSession, exam_id: str) -> Dict[str, Any]:
        exam = await crud.get_exam_by_id(db, exam_id)
        if not exam:
            raise NotFound("Exam not found")
        return {
            "id": exam.id,
            "title": exam.title,
            "type": exam.type,
            "content": strip_correct_answers(exam.content),
        }

    async def submit(self, db: AsyncSession, exam_id: str, user_id: str, answers: Dict[str, Any]) -> Dict[str, Any]:
        """Record the answers on the user's draft (or a new attempt) and score it."""
        exam = await crud.get_exam_by_id(db, exam_id)
        if not exam:
            raise NotFound("Exam not found")
        user = await crud.get_user_by_id(db, user_id)
        if not user:
            raise NotFound("User not found")

        attempt = await crud.find_draft_attempt(db, user_id, exam_id)
        if attempt:
            attempt.answers = dict(answers or {})
            attempt.status = models.AttemptStatus.SUBMITTED
        else:
            logger.warning(
                f"No draft attempt for user {user_id}, exam {exam_id}; creating one at submission",
                extra={"user_id": user_id, "exam_id": exam_id},
            )
            attempt = models.Attempt(
                user_id=user_id,
                exam_id=exam_id,
                answers=dict(answers or {}),
                status=models.AttemptStatus.SUBMITTED,
            )
            db.add(attempt)
        await db.commit()

        return await self.score_attempt(db, attempt.id)

    async def score_attempt(self, db: AsyncSession, attempt_id: str) -> Dict[str, Any]:
        """Score a submitted attempt. Already scored attempts are returned as they are."""
        attempt = await crud.load_attempt_for_scoring(db, attempt_id)
        if not attempt:
            raise NotFound("Attempt not found")
        if attempt.status == models.AttemptStatus.DRAFT:
            raise Conflict("Attempt has not been submitted yet")

        if attempt.score is None:
            result = await self.scorer.score(attempt.exam.content, attempt.answers or {})
            attempt.score = models.Score(
                listening=result.listening,
                reading=result.reading,
                writing=result.writing,
                speaking=result.speaking,
                overall=result.overall,
                details=result.detailed_results.model_dump(mode="json", exclude_none=True),
            )
            attempt.status = models.AttemptStatus.SCORED
            try:
                await db.commit()
            except IntegrityError:
                # Scored concurrently; keep the score that was stored first
                await db.rollback()
                logger.info(f"Attempt {attempt_id} was scored concurrently")
            else:
                logger.info(
                    f"Scored attempt {attempt_id}: overall {result.overall}",
                    extra={"attempt_id": attempt_id},
                )
        elif attempt.status != models.AttemptStatus.SCORED:
            attempt.status = models.AttemptStatus.SCORED
            await db.commit()

        return await self.get_attempt(db, attempt_id)

    async def resume_pending(self, db: AsyncSession) -> List[str]:
        """Score every attempt left in ``submitted``, e.g. after a crash mid-scoring."""
        attempt_ids = await crud.list_submitted_attempt_ids(db)
        for attempt_id in attempt_ids:
            await self.score_attempt(db, attempt_id)
        if attempt_ids:
            logger.info(f"Resumed scoring for {len(attempt_ids)} attempts")
        return attempt_ids

    async def get_attempt(self, db: AsyncSession, attempt_id: str) -> Dict[str, Any]:
        attempt = await crud.load_attempt_with_user_and_score(db, attempt_id)
        if not attempt:
            raise NotFound("Attempt not found")
        return serialize_attempt(attempt)

    async def list_attempts_for_user(self, db: AsyncSession, user_id: str) -> List[Dict[str, Any]]:
        attempts = await crud.list_attempts_for_user(db, user_id)
        return [serialize_attempt(a, include_user=False) for a in attempts]

    async def list_all_attempts(self, db: AsyncSession) -> List[Dict[str, Any]]:
        attempts = await crud.list_all_attempts(db)
        return [serialize_attempt(a) for a in attempts]
