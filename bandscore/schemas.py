from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ExamType = Literal["full", "listening", "reading", "writing", "speaking"]
QuestionType = Literal["multiple-choice", "fill-blank", "true-false", "matching", "short-answer"]
Skill = Literal["listening", "reading", "writing", "speaking"]


# Exam content, stored and exchanged with camelCase keys

class ContentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Question(ContentModel):
    id: str
    type: QuestionType = "short-answer"
    question: str = ""
    options: Optional[List[str]] = None
    correct_answer: Optional[Union[str, List[str]]] = None
    points: float = 1


class ListeningSection(ContentModel):
    section_number: int
    audio_url: Optional[str] = None
    transcript: Optional[str] = None
    questions: List[Question] = []


class ListeningContent(ContentModel):
    sections: List[ListeningSection] = []
    total_questions: Optional[int] = None


class ReadingPassage(ContentModel):
    passage_number: int
    title: str = ""
    content: str = ""
    questions: List[Question] = []


class ReadingContent(ContentModel):
    passages: List[ReadingPassage] = []
    total_questions: Optional[int] = None


class WritingTask(ContentModel):
    task_number: int
    type: Literal["task1", "task2"]
    title: str = ""
    description: str = ""
    word_count: int = 0
    image_url: Optional[str] = None


class WritingContent(ContentModel):
    tasks: List[WritingTask] = []


class SpeakingPart(ContentModel):
    part_number: int
    title: str = ""
    description: str = ""
    questions: Optional[List[str]] = None
    topic: Optional[str] = None
    time_limit: Optional[int] = None


class SpeakingContent(ContentModel):
    parts: List[SpeakingPart] = []


class ExamContent(ContentModel):
    description: Optional[str] = None
    exam_duration: Optional[int] = None
    listening: Optional[ListeningContent] = None
    reading: Optional[ReadingContent] = None
    writing: Optional[WritingContent] = None
    speaking: Optional[SpeakingContent] = None


# Scoring results

class QuestionResult(BaseModel):
    question_id: str
    user_answer: Optional[str] = None
    correct_answer: Optional[Union[str, List[str]]] = None
    is_correct: bool
    explanation: str


class ObjectiveResult(BaseModel):
    score: float = 0.0
    correct: int = 0
    total: int = 0
    questions: List[QuestionResult] = []


class WritingResult(BaseModel):
    score: float = 0.0
    task1_score: float = 0.0
    task2_score: float = 0.0
    task1_feedback: str = ""
    task2_feedback: str = ""


class SpeakingPartResult(BaseModel):
    part_number: int
    score: float = 0.0
    word_count: int = 0
    feedback: str = ""
    transcript: Optional[str] = None


class SpeakingResult(BaseModel):
    score: float = 0.0
    parts: List[SpeakingPartResult] = []


class DetailedResults(BaseModel):
    listening: Optional[ObjectiveResult] = None
    reading: Optional[ObjectiveResult] = None
    writing: Optional[WritingResult] = None
    speaking: Optional[SpeakingResult] = None


class CompositeResult(BaseModel):
    listening: float = 0.0
    reading: float = 0.0
    writing: float = 0.0
    speaking: float = 0.0
    overall: float = 0.0
    detailed_results: DetailedResults = Field(default_factory=DetailedResults)


# HTTP payloads

class ExamSummary(BaseModel):
    """Exam metadata without content"""
    id: str
    title: str
    type: ExamType

    model_config = ConfigDict(from_attributes=True)


class ExamResponse(ExamSummary):
    content: Dict[str, Any] = Field(..., description="Skill sections; answer keys removed for students")


class ExamCreate(BaseModel):
    title: str = Field(..., max_length=200)
    type: ExamType
    content: ExamContent


class ExamUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    type: Optional[ExamType] = None
    content: Optional[ExamContent] = None


class SubmitAttemptRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, description="Must match the authenticated user when given")
    answers: Dict[str, Any] = Field(
        default_factory=dict,
        description="Answer key -> value, e.g. {'listening_q1': 'A', 'writing_task2': '...'}",
    )


class ProfileSummary(BaseModel):
    first_name: str
    last_name: str


class UserSummary(BaseModel):
    id: str
    login: str
    role: str
    profile: Optional[ProfileSummary] = None


class ScoreSummary(BaseModel):
    id: str
    listening: float
    reading: float
    writing: float
    speaking: float
    overall: float


class AttemptResponse(BaseModel):
    id: str
    answers: Dict[str, Any]
    status: Literal["draft", "submitted", "scored"]
    created_at: datetime
    updated_at: datetime
    exam: Optional[ExamSummary] = None
    user: Optional[UserSummary] = None
    score: Optional[ScoreSummary] = None
    detailed_results: Optional[DetailedResults] = None


class BalanceResponse(BaseModel):
    balance: float
    exam_cost: float
    currency: str
    has_enough_balance: bool


class BalanceCredit(BaseModel):
    amount: float = Field(..., gt=0)


class StatisticsResponse(BaseModel):
    total_users: int
    total_students: int
    total_admins: int
    total_exams: int
    total_attempts: int
