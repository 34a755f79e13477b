import math
import re
from typing import Any, List, Optional, Union

# (minimum percentage correct, band), checked top-down
BAND_TABLE = (
    (97.5, 9.0),
    (92.5, 8.5),
    (87.5, 8.0),
    (82.5, 7.5),
    (77.5, 7.0),
    (72.5, 6.5),
    (67.5, 6.0),
    (62.5, 5.5),
    (57.5, 5.0),
    (52.5, 4.5),
    (47.5, 4.0),
    (37.5, 3.5),
    (25.0, 3.0),
    (12.5, 2.5),
    (2.5, 2.0),
)

MAX_BAND = 9.0

_WHITESPACE = re.compile(r"\s+")


def band_score(correct: int, total: int) -> float:
    """Convert a raw objective result into an IELTS band (0-9, half steps)."""
    if total <= 0 or correct <= 0:
        return 0.0
    percentage = correct * 100 / total
    for threshold, band in BAND_TABLE:
        if percentage >= threshold:
            return band
    return 0.0


def round1(value: float) -> float:
    return round(value, 1)


def half_band(value: Any) -> float:
    """Clamp an externally produced score to [0, 9] and snap it to the nearest half band."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    number = min(max(number, 0.0), MAX_BAND)
    return math.floor(number * 2 + 0.5) / 2


def normalize_answer(value: Any) -> str:
    return _WHITESPACE.sub(" ", str(value).strip()).casefold()


def is_answer_correct(user_answer: Any, correct_answer: Optional[Union[str, List[str]]]) -> bool:
    if user_answer is None or correct_answer is None:
        return False
    user = normalize_answer(user_answer)
    if not user:
        return False

    if isinstance(correct_answer, list):
        return any(normalize_answer(ans) == user for ans in correct_answer)
    return normalize_answer(correct_answer) == user


def format_expected(correct_answer: Optional[Union[str, List[str]]]) -> str:
    if correct_answer is None:
        return "n/a"
    if isinstance(correct_answer, list):
        return " / ".join(str(ans) for ans in correct_answer)
    return str(correct_answer)


def word_count(text: str) -> int:
    return len(text.split())
