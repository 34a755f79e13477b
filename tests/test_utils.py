import math

import pytest

from bandscore.utils import BAND_TABLE, band_score, half_band, is_answer_correct, normalize_answer


@pytest.mark.parametrize("total", [1, 2, 10, 13, 40, 100])
def test_band_zero_correct_is_zero(total):
    assert band_score(0, total) == 0.0


@pytest.mark.parametrize("correct", [0, 1, 5, 40])
def test_band_zero_total_is_zero(correct):
    assert band_score(correct, 0) == 0.0


def test_band_perfect_score():
    assert band_score(40, 40) == 9.0
    assert band_score(3, 3) == 9.0


@pytest.mark.parametrize("total", [1, 7, 13, 40, 60])
def test_band_non_decreasing_in_correct(total):
    bands = [band_score(c, total) for c in range(total + 1)]
    assert bands == sorted(bands)


def test_band_boundaries_out_of_forty():
    assert band_score(39, 40) == 9.0   # 97.5%
    assert band_score(38, 40) == 8.5   # 95%
    assert band_score(37, 40) == 8.5   # 92.5%
    assert band_score(20, 40) == 4.0   # 50%
    assert band_score(1, 40) == 2.0    # 2.5%


def test_band_half_is_four():
    assert band_score(1, 2) == 4.0


def test_band_below_lowest_threshold():
    assert band_score(1, 50) == 0.0


def test_band_table_strictly_increasing():
    thresholds = [t for t, _ in BAND_TABLE]
    bands = [b for _, b in BAND_TABLE]
    assert thresholds == sorted(thresholds, reverse=True)
    assert len(set(thresholds)) == len(thresholds)
    assert bands == sorted(bands, reverse=True)
    assert all(b * 2 == int(b * 2) for b in bands)


def test_normalize_answer():
    assert normalize_answer("  New   York ") == "new york"
    assert normalize_answer("TRUE") == "true"
    assert normalize_answer(42) == "42"


def test_answer_matching():
    assert is_answer_correct(" a ", "A")
    assert is_answer_correct("new  york", ["New York", "NYC"])
    assert is_answer_correct("NYC", ["New York", "NYC"])
    assert not is_answer_correct("LA", ["New York", "NYC"])


@pytest.mark.parametrize("answer", [None, "", "   "])
def test_blank_answer_never_correct(answer):
    assert not is_answer_correct(answer, "")
    assert not is_answer_correct(answer, "A")


def test_question_without_answer_key_is_never_correct():
    assert not is_answer_correct("A", None)


@pytest.mark.parametrize("raw, expected", [
    (6.0, 6.0),
    (6.2, 6.0),
    (6.3, 6.5),
    (6.75, 7.0),
    ("7.5", 7.5),
    (12, 9.0),
    (-3, 0.0),
    (None, 0.0),
    ("n/a", 0.0),
    (math.nan, 0.0),
])
def test_half_band(raw, expected):
    assert half_band(raw) == expected
