"""Service wiring.

Collaborators are built once and handed down through constructors:
oracle + transcriber -> SubjectiveScorer -> CompositeScorer -> AttemptService.
Tests swap any of them through ``app.dependency_overrides``.
"""
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from bandscore.attempts import AttemptService
from bandscore.balance import UserBalance
from bandscore.config import Settings, get_settings
from bandscore.entitlement import EntitlementGate
from bandscore.oracle import OpenAIOracle, WhisperTranscriber
from bandscore.scoring import CompositeScorer
from bandscore.subjective import SubjectiveScorer


def build_attempt_service(settings: Settings) -> AttemptService:
    subjective = SubjectiveScorer(OpenAIOracle(settings), WhisperTranscriber(settings))
    return AttemptService(CompositeScorer(subjective))


def balance_factory(settings: Settings):
    def make(db: AsyncSession) -> UserBalance:
        return UserBalance(db, settings.EXAM_COST, settings.CURRENCY, settings.MIN_TOP_UP)
    return make


@lru_cache()
def get_attempt_service() -> AttemptService:
    return build_attempt_service(get_settings())


@lru_cache()
def get_entitlement_gate() -> EntitlementGate:
    return EntitlementGate(balance_factory(get_settings()))
