from types import SimpleNamespace

import pytest

from typehub.scoring import completion_ratio, effective_score, is_genuine, ranking_score


def test_genuine_attempt_is_weighted_by_completion_squared():
    assert ranking_score(90, 100, 95, 60) == pytest.approx(46.17)


def test_low_accuracy_scores_zero():
    assert ranking_score(100, 100, 40, 80) == 0


def test_stopping_early_scores_zero():
    assert ranking_score(50, 100, 100, 120) == 0


def test_missing_passage_length_gives_no_score():
    assert ranking_score(90, None, 95, 60) is None


def test_zero_passage_length_counts_as_complete():
    assert completion_ratio(10, 0) == 1.0
    assert ranking_score(10, 0, 100, 40) == pytest.approx(40)


def test_thresholds_are_inclusive():
    assert is_genuine(0.9, 50)
    assert not is_genuine(0.89, 50)
    assert not is_genuine(1.0, 49.9)


def test_effective_score_prefers_stored_value():
    assert effective_score(SimpleNamespace(ranking_score=12.5, accuracy=90, wpm=50)) == 12.5
    # a stored zero falls back like a missing score
    assert effective_score(SimpleNamespace(ranking_score=0.0, accuracy=90, wpm=50)) == pytest.approx(45)
    assert effective_score(SimpleNamespace(ranking_score=None, accuracy=90, wpm=50)) == pytest.approx(45)


def test_completion_ratio_is_capped_at_one():
    assert completion_ratio(120, 100) == 1.0
    assert ranking_score(120, 100, 100, 60) == pytest.approx(60)
