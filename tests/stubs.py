"""Deterministic stand-ins for the external oracle and transcriber, plus sample content."""
from bandscore.errors import OracleFailure
from bandscore.oracle import ScoringOracle, Transcriber


class StubOracle(ScoringOracle):
    def __init__(self, task1_score=6.0, task2_score=7.0, speaking_scores=None,
                 fail_writing=False, fail_parts=(), error=None):
        self.task1_score = task1_score
        self.task2_score = task2_score
        self.speaking_scores = speaking_scores or {}
        self.fail_writing = fail_writing
        self.fail_parts = set(fail_parts)
        self.error = error
        self.writing_calls = []
        self.speaking_calls = []

    async def score_writing(self, task1, task2, task1_type=None, task2_type=None):
        self.writing_calls.append((task1, task2, task1_type, task2_type))
        if self.error is not None:
            raise self.error
        if self.fail_writing:
            raise OracleFailure("quota exceeded")
        return {
            "task1": {
                "score": self.task1_score,
                "taskAchievement": "Covers the key features.",
                "coherence": "Logical.",
                "lexicalResource": "Adequate.",
                "grammar": "Mostly accurate.",
                "overallFeedback": "Solid overview.",
            },
            "task2": {
                "score": self.task2_score,
                "taskResponse": "Addresses all parts.",
                "coherence": "Well organised.",
                "lexicalResource": "Wide range.",
                "grammar": "Complex structures.",
                "overallFeedback": "Clear position throughout.",
            },
        }

    async def score_speaking(self, transcript, part_number, topic=None):
        self.speaking_calls.append((transcript, part_number, topic))
        if self.error is not None:
            raise self.error
        if part_number in self.fail_parts:
            raise OracleFailure("timeout")
        return {
            "score": self.speaking_scores.get(part_number, 6.5),
            "fluency": "Speaks at length.",
            "lexicalResource": "Some less common words.",
            "grammar": "Mix of structures.",
            "pronunciation": "Generally clear.",
            "overallFeedback": "Good answer.",
        }


class StubTranscriber(Transcriber):
    def __init__(self, transcripts=None):
        self.transcripts = transcripts or {}
        self.calls = []

    async def transcribe(self, audio_payload, part_number):
        self.calls.append(part_number)
        return self.transcripts.get(part_number, "")


def listening_content(correct_answers=("A", "B")):
    return {
        "listening": {
            "sections": [
                {
                    "sectionNumber": 1,
                    "audioUrl": "/audio/listening-1.mp3",
                    "questions": [
                        {
                            "id": f"q{i}",
                            "type": "multiple-choice",
                            "question": f"Question {i}",
                            "options": ["A", "B", "C", "D"],
                            "correctAnswer": answer,
                            "points": 1,
                        }
                        for i, answer in enumerate(correct_answers, start=1)
                    ],
                }
            ],
            "totalQuestions": len(correct_answers),
        }
    }


def full_content():
    return {
        "description": "Full academic test",
        "examDuration": 180,
        "listening": {
            "sections": [
                {
                    "sectionNumber": 1,
                    "questions": [
                        {"id": "l1", "type": "multiple-choice", "question": "Topic?",
                         "options": ["A) Travel", "B) Work"], "correctAnswer": "A", "points": 1},
                        {"id": "l2", "type": "fill-blank", "question": "The flight departs at _____",
                         "correctAnswer": "14:30", "points": 1},
                    ],
                },
                {
                    "sectionNumber": 2,
                    "questions": [
                        {"id": "l3", "type": "short-answer", "question": "City?",
                         "correctAnswer": ["New York", "NYC"], "points": 1},
                    ],
                },
            ],
        },
        "reading": {
            "passages": [
                {
                    "passageNumber": 1,
                    "title": "The History of Coffee",
                    "content": "Coffee is one of the most popular beverages in the world...",
                    "questions": [
                        {"id": "r1", "type": "multiple-choice", "question": "Origin?",
                         "options": ["A) Brazil", "B) Ethiopia"], "correctAnswer": "B", "points": 1},
                        {"id": "r2", "type": "true-false", "question": "Coffee is popular.",
                         "correctAnswer": "True", "points": 1},
                    ],
                }
            ],
        },
        "writing": {
            "tasks": [
                {"taskNumber": 1, "type": "task1", "title": "Graph Description",
                 "description": "Summarise the graph.", "wordCount": 150},
                {"taskNumber": 2, "type": "task2", "title": "Opinion Essay",
                 "description": "Discuss both views.", "wordCount": 250},
            ],
        },
        "speaking": {
            "parts": [
                {"partNumber": 1, "title": "Introduction", "description": "Familiar topics",
                 "questions": ["Where do you live?"], "topic": "Home town"},
                {"partNumber": 2, "title": "Long turn", "description": "Cue card",
                 "topic": "A memorable trip", "timeLimit": 120},
            ],
        },
    }


def full_answers():
    return {
        "listening_l1": "A",
        "listening_l2": " 14:30 ",
        "listening_l3": "nyc",
        "reading_r1": "b",
        "reading_r2": "false",
        "writing_task1": "The graph shows a steady rise in internet access.",
        "writing_task2": "Technology has made life easier in many ways.",
        "speaking_part1": "I live in a small town near the mountains.",
        "speaking_part2_audio": "data:audio/webm;base64,YXVkaW8=",
    }
