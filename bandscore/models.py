import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import relationship

from bandscore.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole:
    STUDENT = "student"
    ADMIN = "admin"


class AttemptStatus:
    DRAFT = "draft"
    SUBMITTED = "submitted"
    SCORED = "scored"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    login = Column(String(64), unique=True, nullable=False)
    role = Column(String(16), default=UserRole.STUDENT, nullable=False)

    # Prepaid balance, decremented by the exam cost on first access to an exam
    balance = Column(Numeric(10, 2), default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    profile = relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    attempts = relationship("Attempt", back_populates="user")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    user = relationship("User", back_populates="profile")


class Exam(Base):
    __tablename__ = "exams"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(200), nullable=False)

    # One of: full, listening, reading, writing, speaking
    type = Column(String(16), nullable=False)

    # Skill sections as camelCase JSON, validated by schemas.ExamContent on the way in
    content = Column(
        JSON,
        nullable=False,
        default=dict,
        comment="Stores {'listening': {'sections': [...]}, 'reading': {'passages': [...]}, ...}",
    )

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    attempts = relationship("Attempt", back_populates="exam")


class Attempt(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        # At most one draft per (user, exam): the draft is the proof of payment
        Index(
            "uq_attempts_draft_user_exam",
            "user_id",
            "exam_id",
            unique=True,
            postgresql_where=text("status = 'draft'"),
            sqlite_where=text("status = 'draft'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)

    # Answer key -> raw value, e.g. {'listening_q1': 'A', 'speaking_part1_audio': '<base64>'}
    answers = Column(JSON, nullable=False, default=dict)

    status = Column(String(16), default=AttemptStatus.DRAFT, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    user = relationship("User", back_populates="attempts")
    exam = relationship("Exam", back_populates="attempts")
    score = relationship("Score", back_populates="attempt", uselist=False, cascade="all, delete-orphan")


class Score(Base):
    __tablename__ = "scores"

    id = Column(String(36), primary_key=True, default=_uuid)
    attempt_id = Column(String(36), ForeignKey("attempts.id", ondelete="CASCADE"), unique=True, nullable=False)

    listening = Column(Float, default=0, nullable=False)
    reading = Column(Float, default=0, nullable=False)
    writing = Column(Float, default=0, nullable=False)
    speaking = Column(Float, default=0, nullable=False)
    overall = Column(Float, default=0, nullable=False)

    # Per-question explanations and per-part feedback, as returned at submission
    details = Column(JSON, nullable=False, default=dict)

    attempt = relationship("Attempt", back_populates="score")
