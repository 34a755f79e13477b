# bandscore/routers.py
import os
import tempfile
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask

from bandscore import crud, models, schemas
from bandscore.attempts import AttemptService
from bandscore.auth import ensure_self_or_admin, get_current_user_id, require_admin
from bandscore.config import get_settings
from bandscore.crud import logger
from bandscore.database import get_db
from bandscore.dependencies import balance_factory, get_attempt_service, get_entitlement_gate
from bandscore.entitlement import EntitlementGate
from bandscore.errors import Forbidden, NotFound

router = APIRouter()


# Root endpoint
@router.get("/")
async def root():
    return {"message": "API is working", "docs": "/docs", "redoc": "/redoc"}


@router.get("/exams", response_model=List[schemas.ExamSummary])
async def list_exams(db: AsyncSession = Depends(get_db)):
    return await crud.list_exams(db)


@router.post("/exams", response_model=schemas.ExamResponse)
async def create_exam(
    exam_data: schemas.ExamCreate,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
):
    exam = models.Exam(
        title=exam_data.title,
        type=exam_data.type,
        content=exam_data.content.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
    return await crud.save_exam(exam, db)


@router.put("/exams/{exam_id}", response_model=schemas.ExamResponse)
async def modify_exam(
    exam_id: str,
    update_data: schemas.ExamUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
):
    changes = update_data.model_dump(exclude_unset=True, exclude={"content"})
    if update_data.content is not None:
        changes["content"] = update_data.content.model_dump(mode="json", by_alias=True, exclude_none=True)
    exam = await crud.update_exam(exam_id, changes, db)
    if not exam:
        raise NotFound("Exam not found")
    return exam


@router.get("/exams/{exam_id}", response_model=schemas.ExamResponse)
async def get_exam(
    exam_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    gate: EntitlementGate = Depends(get_entitlement_gate),
    service: AttemptService = Depends(get_attempt_service),
):
    """
    Open an exam for the current user. The first access charges the balance;
    later ones reuse the draft attempt and are free.
    """
    await gate.ensure_access(db, user_id, exam_id)
    return await service.get_exam_for_student(db, exam_id)


@router.post("/exams/{exam_id}/submit", response_model=schemas.AttemptResponse)
async def submit_attempt(
    exam_id: str,
    payload: schemas.SubmitAttemptRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: AttemptService = Depends(get_attempt_service),
):
    if payload.user_id is not None and payload.user_id != user_id:
        raise Forbidden("Answers can only be submitted for your own account")
    return await service.submit(db, exam_id, user_id, payload.answers)


@router.get("/attempts", response_model=List[schemas.AttemptResponse])
async def list_all_attempts(
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
    service: AttemptService = Depends(get_attempt_service),
):
    return await service.list_all_attempts(db)


@router.post("/attempts/resume-scoring")
async def resume_scoring(
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
    service: AttemptService = Depends(get_attempt_service),
):
    scored = await service.resume_pending(db)
    return {"scored": scored}


@router.get("/attempts/{attempt_id}", response_model=schemas.AttemptResponse)
async def get_attempt(
    attempt_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: AttemptService = Depends(get_attempt_service),
):
    attempt = await service.get_attempt(db, attempt_id)
    await ensure_self_or_admin(db, user_id, attempt["user"]["id"])
    return attempt


@router.post("/attempts/{attempt_id}/score", response_model=schemas.AttemptResponse)
async def score_attempt(
    attempt_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
    service: AttemptService = Depends(get_attempt_service),
):
    return await service.score_attempt(db, attempt_id)


@router.get("/users/{user_id}/attempts", response_model=List[schemas.AttemptResponse])
async def list_user_attempts(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: str = Depends(get_current_user_id),
    service: AttemptService = Depends(get_attempt_service),
):
    await ensure_self_or_admin(db, current_user_id, user_id)
    return await service.list_attempts_for_user(db, user_id)


@router.get("/balance", response_model=schemas.BalanceResponse)
async def get_balance(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    balance = balance_factory(get_settings())(db)
    amount = await balance.get_balance(user_id)
    return schemas.BalanceResponse(
        balance=float(amount),
        exam_cost=float(balance.cost),
        currency=balance.currency,
        has_enough_balance=amount >= balance.cost,
    )


@router.post("/users/{user_id}/balance", response_model=schemas.BalanceResponse)
async def credit_balance(
    user_id: str,
    payload: schemas.BalanceCredit,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
):
    balance = balance_factory(get_settings())(db)
    amount = await balance.credit(user_id, payload.amount)
    await db.commit()
    return schemas.BalanceResponse(
        balance=float(amount),
        exam_cost=float(balance.cost),
        currency=balance.currency,
        has_enough_balance=amount >= balance.cost,
    )


@router.get("/admin/statistics", response_model=schemas.StatisticsResponse)
async def get_statistics(
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
):
    return await crud.get_statistics(db)


@router.get("/export/{exam_id}")
async def export_exam_results_endpoint(
    exam_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
):
    """
    Export scored attempts of an exam as an Excel file.
    """
    try:
        excel_file, filename = await crud.export_exam_results(db, exam_id)

        # Temporary file that outlives this handler; removed once the response is sent
        fd, tmp_path = tempfile.mkstemp(suffix=".xlsx")
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(excel_file.getvalue())

        response = FileResponse(
            path=tmp_path,
            filename=filename,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        response.background = BackgroundTask(lambda: os.unlink(tmp_path) if os.path.exists(tmp_path) else None)

        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error exporting exam results: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")
