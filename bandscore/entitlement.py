"""Exam access gate: at most one balance charge per attempt.

An existing draft attempt for (user, exam) is the proof that access was
already paid for. Without one, the balance is charged and a draft is created
in the same transaction. A per-user lock serializes this within the process.
Across processes the user's balance row is locked and the draft looked up
again before charging; the partial unique index on draft attempts backs that
up where the database has no row locks.
"""
import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bandscore import crud, models
from bandscore.balance import Balance
from bandscore.errors import Forbidden, NotFound, Unauthenticated

logger = logging.getLogger(__name__)


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        async with lock:
            yield


class EntitlementGate:
    def __init__(self, balance_factory: Callable[[AsyncSession], Balance], locks: Optional[KeyedLock] = None):
        self.balance_factory = balance_factory
        self.locks = locks or KeyedLock()

    async def ensure_access(self, db: AsyncSession, user_id: Optional[str], exam_id: str) -> models.Attempt:
        """Let the user into the exam, charging the balance only on first access.

        Returns the draft attempt that proves access.
        """
        if not user_id:
            raise Unauthenticated("Authentication required")

        context = {"user_id": user_id, "exam_id": exam_id}

        async with self.locks.hold(user_id):
            exam = await crud.get_exam_by_id(db, exam_id)
            if not exam:
                raise NotFound("Exam not found")

            draft = await crud.find_draft_attempt(db, user_id, exam_id)
            if draft:
                logger.info(
                    f"Reusing draft attempt {draft.id} for user {user_id}, exam {exam_id}",
                    extra={**context, "attempt_id": draft.id},
                )
                return draft

            balance = self.balance_factory(db)
            await balance.lock(user_id)

            # Another worker may have paid for this exam while we waited for the row
            draft = await crud.find_draft_attempt(db, user_id, exam_id)
            if draft:
                await db.commit()
                logger.info(
                    f"Draft attempt {draft.id} appeared for user {user_id}, exam {exam_id}; not charging",
                    extra={**context, "attempt_id": draft.id},
                )
                return draft

            if not await balance.has_enough(user_id):
                price = f"{balance.cost} {balance.currency}".strip()
                raise Forbidden(f"Insufficient balance. Taking an exam costs {price}.")

            try:
                await balance.deduct(user_id)
                draft = models.Attempt(
                    user_id=user_id,
                    exam_id=exam_id,
                    answers={},
                    status=models.AttemptStatus.DRAFT,
                )
                db.add(draft)
                await db.commit()
            except (IntegrityError, Forbidden):
                # Without row locks another worker can still win; its charge stands, ours is rolled back
                await db.rollback()
                draft = await crud.find_draft_attempt(db, user_id, exam_id)
                if draft is None:
                    raise
                logger.info(
                    f"Concurrent access for user {user_id}, exam {exam_id}; using draft {draft.id}",
                    extra={**context, "attempt_id": draft.id},
                )
                return draft
            except Exception:
                await db.rollback()
                raise

            logger.info(
                f"Created draft attempt {draft.id} for user {user_id}, exam {exam_id}",
                extra={**context, "attempt_id": draft.id},
            )
            return draft
