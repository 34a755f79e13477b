"""External scoring oracle and transcription clients."""
import base64
import binascii
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError

from bandscore.config import Settings
from bandscore.errors import OracleFailure, TranscriptionFailure

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an expert IELTS examiner. Always respond with valid JSON only, no additional text."

WRITING_PROMPT = """You are an IELTS examiner. Evaluate the following IELTS Writing responses according to official IELTS band descriptors (Task Achievement/Response, Coherence and Cohesion, Lexical Resource, Grammatical Range and Accuracy).

Task 1 ({task1_type}):
{task1}

Task 2 ({task2_type}):
{task2}

Provide scores for each task (0.0 to 9.0) and detailed feedback in the following JSON format:
{{
  "task1": {{
    "score": 0.0-9.0,
    "taskAchievement": "feedback",
    "coherence": "feedback",
    "lexicalResource": "feedback",
    "grammar": "feedback",
    "overallFeedback": "detailed feedback"
  }},
  "task2": {{
    "score": 0.0-9.0,
    "taskResponse": "feedback",
    "coherence": "feedback",
    "lexicalResource": "feedback",
    "grammar": "feedback",
    "overallFeedback": "detailed feedback"
  }}
}}

Be strict and accurate. Use official IELTS band descriptors."""

SPEAKING_PROMPT = """You are an IELTS examiner. Evaluate the following IELTS Speaking response (Part {part_number}) according to official IELTS band descriptors (Fluency and Coherence, Lexical Resource, Grammatical Range and Accuracy, Pronunciation).

Topic: {topic}
Transcript:
{transcript}

Provide a score (0.0 to 9.0) and detailed feedback in the following JSON format:
{{
  "score": 0.0-9.0,
  "fluency": "feedback on fluency and coherence",
  "lexicalResource": "feedback on vocabulary use",
  "grammar": "feedback on grammatical range and accuracy",
  "pronunciation": "feedback on pronunciation (based on transcript patterns)",
  "overallFeedback": "comprehensive feedback with specific examples and suggestions"
}}

Be strict and accurate. Use official IELTS band descriptors."""


class ScoringOracle(ABC):
    """Subjective scoring provider. Implementations raise OracleFailure on any problem."""

    @abstractmethod
    async def score_writing(
        self,
        task1: str,
        task2: str,
        task1_type: Optional[str] = None,
        task2_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def score_speaking(self, transcript: str, part_number: int, topic: Optional[str] = None) -> Dict[str, Any]:
        pass


class Transcriber(ABC):
    """Speech-to-text provider. Returns an empty string instead of raising."""

    @abstractmethod
    async def transcribe(self, audio_payload: str, part_number: int) -> str:
        pass


def _client(settings: Settings) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.ORACLE_TIMEOUT,
    )


class OpenAIOracle(ScoringOracle):
    """Chat-completions based examiner with JSON-only responses."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.api_key = settings.OPENAI_API_KEY
        self.model = settings.OPENAI_MODEL
        self._client = client
        if self._client is None and self.api_key:
            self._client = _client(settings)

    async def _complete_json(self, prompt: str) -> Dict[str, Any]:
        if self._client is None:
            raise OracleFailure("Scoring oracle API key is not configured")
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise OracleFailure(f"Scoring oracle request failed: {e}") from e

        if not response.choices:
            raise OracleFailure("Scoring oracle returned no choices")
        content = response.choices[0].message.content or "{}"
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise OracleFailure("Scoring oracle returned malformed JSON") from e
        if not isinstance(parsed, dict):
            raise OracleFailure("Scoring oracle returned a non-object JSON value")
        return parsed

    async def score_writing(self, task1, task2, task1_type=None, task2_type=None):
        prompt = WRITING_PROMPT.format(
            task1_type=task1_type or "General",
            task1=task1 or "No response provided",
            task2_type=task2_type or "Essay",
            task2=task2 or "No response provided",
        )
        return await self._complete_json(prompt)

    async def score_speaking(self, transcript, part_number, topic=None):
        prompt = SPEAKING_PROMPT.format(
            part_number=part_number,
            topic=topic or "General topic",
            transcript=transcript,
        )
        return await self._complete_json(prompt)


def decode_audio(audio_payload: str) -> bytes:
    """Decode a base64 payload, accepting a ``data:audio/...;base64,`` prefix."""
    data = audio_payload.split(",", 1)[1] if "," in audio_payload else audio_payload
    data = data.strip()
    if not data:
        raise TranscriptionFailure("Empty audio payload")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise TranscriptionFailure("Audio payload is not valid base64") from e


class WhisperTranscriber(Transcriber):
    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.api_key = settings.OPENAI_API_KEY
        self.model = settings.OPENAI_WHISPER_MODEL
        self._client = client
        if self._client is None and self.api_key:
            self._client = _client(settings)

    async def transcribe(self, audio_payload: str, part_number: int) -> str:
        try:
            return await self._transcribe(audio_payload, part_number)
        except TranscriptionFailure as e:
            logger.warning(f"Speaking part {part_number} not transcribed: {e}")
            return ""

    async def _transcribe(self, audio_payload: str, part_number: int) -> str:
        if not isinstance(audio_payload, str) or not audio_payload:
            raise TranscriptionFailure("No audio payload")
        if self._client is None:
            raise TranscriptionFailure("Transcription API key is not configured")

        audio = decode_audio(audio_payload)
        try:
            result = await self._client.audio.transcriptions.create(
                model=self.model,
                file=(f"speaking_part{part_number}.webm", audio, "audio/webm"),
                language="en",
            )
        except OpenAIError as e:
            raise TranscriptionFailure(f"Transcription request failed: {e}") from e
        return (result.text or "").strip()
