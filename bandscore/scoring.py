"""Objective grading and composite band scores for a whole exam attempt."""
import logging
from typing import Any, Dict, Iterator, Union

from pydantic import ValidationError

from bandscore.schemas import (
    CompositeResult,
    DetailedResults,
    ExamContent,
    ObjectiveResult,
    Question,
    QuestionResult,
)
from bandscore.subjective import SubjectiveScorer
from bandscore.utils import band_score, format_expected, is_answer_correct, round1

logger = logging.getLogger(__name__)

OBJECTIVE_SKILLS = ("listening", "reading")


def _questions(content: ExamContent, skill: str) -> Iterator[Question]:
    if skill == "listening" and content.listening:
        for section in content.listening.sections:
            yield from section.questions
    elif skill == "reading" and content.reading:
        for passage in content.reading.passages:
            yield from passage.questions


def score_objective(content: ExamContent, answers: Dict[str, Any], skill: str) -> ObjectiveResult:
    """Grade every listening or reading question in source order.

    Answers are looked up as ``"<skill>_<question id>"``. A missing or blank
    answer is never correct; otherwise the comparison ignores case and
    surrounding/repeated whitespace and accepts any member of a list of
    correct answers.
    """
    if skill not in OBJECTIVE_SKILLS:
        raise ValueError(f"{skill!r} is not an objectively scored skill")

    correct = 0
    total = 0
    results = []
    for question in _questions(content, skill):
        total += 1
        user_answer = answers.get(f"{skill}_{question.id}")
        is_correct = is_answer_correct(user_answer, question.correct_answer)
        if is_correct:
            correct += 1
            explanation = "Correct."
        elif user_answer is None or not str(user_answer).strip():
            explanation = f"No answer given. Expected: {format_expected(question.correct_answer)}."
        else:
            explanation = f"Incorrect. Expected: {format_expected(question.correct_answer)}."

        results.append(QuestionResult(
            question_id=question.id,
            user_answer=None if user_answer is None else str(user_answer),
            correct_answer=question.correct_answer,
            is_correct=is_correct,
            explanation=explanation,
        ))

    return ObjectiveResult(
        score=band_score(correct, total),
        correct=correct,
        total=total,
        questions=results,
    )


def parse_content(content: Union[ExamContent, Dict[str, Any], None]) -> ExamContent:
    if isinstance(content, ExamContent):
        return content
    if not isinstance(content, dict):
        return ExamContent()
    try:
        return ExamContent.model_validate(content)
    except ValidationError:
        pass

    # Keep the sections that validate; a broken one scores as absent
    valid = {}
    for key, section in content.items():
        try:
            ExamContent.model_validate({key: section})
        except ValidationError:
            logger.error(f"Exam content section {key!r} failed validation; scoring it as empty", exc_info=True)
            continue
        valid[key] = section
    return ExamContent.model_validate(valid)


class CompositeScorer:
    """Combine the four skill scores into an overall band."""

    def __init__(self, subjective: SubjectiveScorer):
        self.subjective = subjective

    async def score(self, content: Union[ExamContent, Dict[str, Any]], answers: Dict[str, Any]) -> CompositeResult:
        content = parse_content(content)
        answers = answers or {}
        detailed = DetailedResults()

        if content.listening:
            detailed.listening = score_objective(content, answers, "listening")
        if content.reading:
            detailed.reading = score_objective(content, answers, "reading")
        if content.writing:
            detailed.writing = await self.subjective.score_writing_answers(content, answers)
        if content.speaking:
            detailed.speaking = await self.subjective.score_speaking(content, answers)

        listening = detailed.listening.score if detailed.listening else 0.0
        reading = detailed.reading.score if detailed.reading else 0.0
        writing = detailed.writing.score if detailed.writing else 0.0
        speaking = detailed.speaking.score if detailed.speaking else 0.0

        # Always over four skills, also for single-skill exams
        overall = round1((listening + reading + writing + speaking) / 4)

        return CompositeResult(
            listening=listening,
            reading=reading,
            writing=writing,
            speaking=speaking,
            overall=overall,
            detailed_results=detailed,
        )
