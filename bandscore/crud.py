import logging
from io import BytesIO
from typing import List, Optional, Tuple

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bandscore import models
from bandscore.errors import NotFound

logger = logging.getLogger(__name__)


async def get_exam_by_id(db: AsyncSession, exam_id: str) -> Optional[models.Exam]:
    result = await db.execute(
        select(models.Exam).filter(models.Exam.id == exam_id)
    )
    return result.scalar_one_or_none()


async def list_exams(db: AsyncSession) -> List[models.Exam]:
    result = await db.execute(
        select(models.Exam).order_by(models.Exam.created_at.desc())
    )
    return list(result.scalars().all())


async def save_exam(exam: models.Exam, db: AsyncSession) -> models.Exam:
    db.add(exam)
    await db.commit()
    return exam


async def update_exam(exam_id: str, updated_data: dict, db: AsyncSession) -> Optional[models.Exam]:
    exam = await get_exam_by_id(db, exam_id)

    if exam:
        # Update only fields that exist in the model
        for key, value in updated_data.items():
            if hasattr(exam, key):
                setattr(exam, key, value)

        await db.commit()
        await db.refresh(exam)

    return exam


async def get_user_by_id(db: AsyncSession, user_id: str) -> Optional[models.User]:
    result = await db.execute(
        select(models.User)
        .options(selectinload(models.User.profile))
        .filter(models.User.id == user_id)
    )
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    login: str,
    role: str = models.UserRole.STUDENT,
    balance=0,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
) -> models.User:
    user = models.User(login=login, role=role, balance=balance)
    if first_name is not None or last_name is not None:
        user.profile = models.Profile(first_name=first_name or "", last_name=last_name or "")
    db.add(user)
    await db.commit()
    return user


async def find_draft_attempt(db: AsyncSession, user_id: str, exam_id: str) -> Optional[models.Attempt]:
    result = await db.execute(
        select(models.Attempt).filter(
            models.Attempt.user_id == user_id,
            models.Attempt.exam_id == exam_id,
            models.Attempt.status == models.AttemptStatus.DRAFT,
        )
    )
    return result.scalar_one_or_none()


async def load_attempt_for_scoring(db: AsyncSession, attempt_id: str) -> Optional[models.Attempt]:
    """Attempt with its exam and score."""
    result = await db.execute(
        select(models.Attempt)
        .options(selectinload(models.Attempt.exam), selectinload(models.Attempt.score))
        .filter(models.Attempt.id == attempt_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_attempt_with_user_and_score(db: AsyncSession, attempt_id: str) -> Optional[models.Attempt]:
    """Attempt with exam, score, user and the user's profile."""
    result = await db.execute(
        select(models.Attempt)
        .options(
            selectinload(models.Attempt.exam),
            selectinload(models.Attempt.score),
            selectinload(models.Attempt.user).selectinload(models.User.profile),
        )
        .filter(models.Attempt.id == attempt_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_attempts_for_user(db: AsyncSession, user_id: str) -> List[models.Attempt]:
    """A user's attempts, newest first, with exam and score."""
    result = await db.execute(
        select(models.Attempt)
        .options(selectinload(models.Attempt.exam), selectinload(models.Attempt.score))
        .filter(models.Attempt.user_id == user_id)
        .order_by(models.Attempt.created_at.desc())
    )
    return list(result.scalars().all())


async def list_all_attempts(db: AsyncSession) -> List[models.Attempt]:
    """Every attempt, newest first, with exam, score, user and profile."""
    result = await db.execute(
        select(models.Attempt)
        .options(
            selectinload(models.Attempt.exam),
            selectinload(models.Attempt.score),
            selectinload(models.Attempt.user).selectinload(models.User.profile),
        )
        .order_by(models.Attempt.created_at.desc())
    )
    return list(result.scalars().all())


async def list_submitted_attempt_ids(db: AsyncSession) -> List[str]:
    result = await db.execute(
        select(models.Attempt.id)
        .filter(models.Attempt.status == models.AttemptStatus.SUBMITTED)
        .order_by(models.Attempt.created_at)
    )
    return list(result.scalars().all())


async def get_statistics(db: AsyncSession) -> dict:
    async def count(model, *criteria) -> int:
        result = await db.execute(select(func.count()).select_from(model).filter(*criteria))
        return result.scalar_one()

    return {
        "total_users": await count(models.User),
        "total_students": await count(models.User, models.User.role == models.UserRole.STUDENT),
        "total_admins": await count(models.User, models.User.role == models.UserRole.ADMIN),
        "total_exams": await count(models.Exam),
        "total_attempts": await count(models.Attempt),
    }


async def export_exam_results(db: AsyncSession, exam_id: str) -> Tuple[BytesIO, str]:
    """
    Export scored attempts of an exam to an Excel file.
    Returns a tuple of (BytesIO containing the file, filename).
    """
    exam = await get_exam_by_id(db, exam_id)
    if not exam:
        raise NotFound("Exam not found")

    result = await db.execute(
        select(models.Attempt)
        .options(
            selectinload(models.Attempt.score),
            selectinload(models.Attempt.user).selectinload(models.User.profile),
        )
        .filter(
            models.Attempt.exam_id == exam_id,
            models.Attempt.status == models.AttemptStatus.SCORED,
        )
        .order_by(models.Attempt.created_at)
    )
    attempts = result.scalars().all()

    data = []
    for count, attempt in enumerate(attempts, start=1):
        user = attempt.user
        profile = user.profile
        full_name = f"{profile.first_name} {profile.last_name}".strip() if profile else ""
        score = attempt.score
        data.append({
            '№': count,
            'Student': full_name or user.login,
            'Login': user.login,
            'Listening': score.listening if score else 0.0,
            'Reading': score.reading if score else 0.0,
            'Writing': score.writing if score else 0.0,
            'Speaking': score.speaking if score else 0.0,
            'Overall': score.overall if score else 0.0,
            'Submitted': attempt.updated_at.strftime("%Y-%m-%d %H:%M"),
        })

    cols = ['№', 'Student', 'Login', 'Listening', 'Reading', 'Writing', 'Speaking', 'Overall', 'Submitted']
    df = pd.DataFrame(data, columns=cols)

    # Create Excel file in memory
    output = BytesIO()
    with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
        df.to_excel(writer, index=False, sheet_name='Results')

        # Auto-adjust column widths
        worksheet = writer.sheets['Results']
        for i, col in enumerate(df.columns):
            longest = df[col].astype(str).map(len).max() if not df.empty else 0
            worksheet.set_column(i, i, max(longest, len(col)) + 2)

    output.seek(0)
    logger.info(f"Exported {len(df)} scored attempts for exam {exam_id}")
    filename = f"exam_{exam_id}_results.xlsx"
    return output, filename
