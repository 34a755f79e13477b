"""Writing and speaking scoring through the external oracle.

The oracle is treated as unreliable: every call is wrapped so that a
transport, quota or parse failure becomes a zero score with an explanatory
note instead of failing the whole attempt.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from bandscore.errors import OracleFailure
from bandscore.oracle import ScoringOracle, Transcriber
from bandscore.schemas import (
    ExamContent,
    SpeakingPart,
    SpeakingPartResult,
    SpeakingResult,
    WritingResult,
)
from bandscore.utils import half_band, round1, word_count

logger = logging.getLogger(__name__)

NO_SPEAKING_RESPONSE = "No response recorded for this part."
ORACLE_UNAVAILABLE = "Automatic scoring is unavailable right now ({reason}). This response was given 0."


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_usable_transcript(transcript: str) -> bool:
    # Bracketed text is a system placeholder, not the candidate's words
    return bool(transcript) and not transcript.startswith("[")


def _writing_feedback(task: Dict[str, Any], first_criterion: Tuple[str, str]) -> str:
    key, label = first_criterion
    return (
        f"{label}: {task.get(key) or 'N/A'}\n"
        f"Coherence: {task.get('coherence') or 'N/A'}\n"
        f"Lexical Resource: {task.get('lexicalResource') or 'N/A'}\n"
        f"Grammar: {task.get('grammar') or 'N/A'}\n\n"
        f"{task.get('overallFeedback') or ''}"
    ).strip()


def _speaking_feedback(result: Dict[str, Any]) -> str:
    return (
        f"Fluency and Coherence: {result.get('fluency') or 'N/A'}\n"
        f"Lexical Resource: {result.get('lexicalResource') or 'N/A'}\n"
        f"Grammar: {result.get('grammar') or 'N/A'}\n"
        f"Pronunciation: {result.get('pronunciation') or 'N/A'}\n\n"
        f"{result.get('overallFeedback') or ''}"
    ).strip()


class SubjectiveScorer:
    def __init__(self, oracle: ScoringOracle, transcriber: Transcriber):
        self.oracle = oracle
        self.transcriber = transcriber

    async def score_writing(
        self,
        task1_text: str,
        task2_text: str,
        task1_type: Optional[str] = None,
        task2_type: Optional[str] = None,
    ) -> WritingResult:
        task1_text = _text(task1_text)
        task2_text = _text(task2_text)

        if not task1_text and not task2_text:
            return WritingResult(
                task1_feedback="Task 1 was not answered.",
                task2_feedback="Task 2 was not answered.",
            )

        try:
            parsed = await self.oracle.score_writing(task1_text, task2_text, task1_type, task2_type)
            task1 = parsed.get("task1") or {}
            task2 = parsed.get("task2") or {}
            if not isinstance(task1, dict) or not isinstance(task2, dict):
                raise OracleFailure("unexpected writing result shape")
        except OracleFailure as e:
            logger.warning(f"Writing not scored: {e}")
            message = ORACLE_UNAVAILABLE.format(reason=e)
            return WritingResult(task1_feedback=message, task2_feedback=message)
        except Exception:
            logger.error("Scoring oracle raised while scoring writing", exc_info=True)
            message = ORACLE_UNAVAILABLE.format(reason="unexpected oracle error")
            return WritingResult(task1_feedback=message, task2_feedback=message)

        task1_score = half_band(task1.get("score")) if task1_text else 0.0
        task2_score = half_band(task2.get("score")) if task2_text else 0.0

        if task1_text and task2_text:
            # Task 2 carries twice the weight of task 1
            overall = round1((task1_score + 2 * task2_score) / 3)
        elif task1_text:
            overall = task1_score
        else:
            overall = task2_score

        return WritingResult(
            score=overall,
            task1_score=task1_score,
            task2_score=task2_score,
            task1_feedback=(
                _writing_feedback(task1, ("taskAchievement", "Task Achievement"))
                if task1_text else "Task 1 was not answered."
            ),
            task2_feedback=(
                _writing_feedback(task2, ("taskResponse", "Task Response"))
                if task2_text else "Task 2 was not answered."
            ),
        )

    async def score_writing_answers(self, content: ExamContent, answers: Dict[str, Any]) -> WritingResult:
        task_types = {}
        if content.writing:
            for task in content.writing.tasks:
                task_types[task.type] = task.title or None
        return await self.score_writing(
            answers.get("writing_task1"),
            answers.get("writing_task2"),
            task_types.get("task1"),
            task_types.get("task2"),
        )

    async def _resolve_transcript(self, part: SpeakingPart, answers: Dict[str, Any]) -> str:
        n = part.part_number
        text = _text(answers.get(f"speaking_part{n}"))
        if text:
            return text

        audio = answers.get(f"speaking_part{n}_audio")
        if not audio:
            return ""
        try:
            return _text(await self.transcriber.transcribe(audio, n))
        except Exception:
            # Transcribers must not raise; a broken one counts as no response
            logger.error(f"Transcriber raised for speaking part {n}", exc_info=True)
            return ""

    async def _score_part(self, part: SpeakingPart, transcript: str) -> SpeakingPartResult:
        n = part.part_number
        try:
            result = await self.oracle.score_speaking(transcript, n, part.topic or part.title or None)
            score = half_band(result.get("score"))
            feedback = _speaking_feedback(result)
        except OracleFailure as e:
            logger.warning(f"Speaking part {n} not scored: {e}")
            score = 0.0
            feedback = ORACLE_UNAVAILABLE.format(reason=e)
        except Exception:
            logger.error(f"Scoring oracle raised while scoring speaking part {n}", exc_info=True)
            score = 0.0
            feedback = ORACLE_UNAVAILABLE.format(reason="unexpected oracle error")
        return SpeakingPartResult(
            part_number=n,
            score=score,
            word_count=word_count(transcript),
            feedback=feedback,
            transcript=transcript,
        )

    async def score_speaking(self, content: ExamContent, answers: Dict[str, Any]) -> SpeakingResult:
        parts: List[SpeakingPart] = content.speaking.parts if content.speaking else []
        if not parts:
            return SpeakingResult()

        transcripts = await asyncio.gather(*(self._resolve_transcript(p, answers) for p in parts))

        results: Dict[int, SpeakingPartResult] = {}
        pending = []
        for index, (part, transcript) in enumerate(zip(parts, transcripts)):
            if _is_usable_transcript(transcript):
                pending.append((index, part, transcript))
            else:
                results[index] = SpeakingPartResult(
                    part_number=part.part_number,
                    feedback=NO_SPEAKING_RESPONSE,
                    transcript=transcript or None,
                )

        scored = await asyncio.gather(*(self._score_part(part, transcript) for _, part, transcript in pending))
        for (index, _, _), part_result in zip(pending, scored):
            results[index] = part_result

        usable = [part_result.score for part_result in scored]
        score = round1(sum(usable) / len(usable)) if usable else 0.0
        return SpeakingResult(score=score, parts=[results[i] for i in range(len(parts))])
