"""
Submission scoring.

    completion_ratio = min(1, words_typed / total_passage_words)   (1 when the total is unknown or 0)
    genuine          = completion_ratio >= 0.9 and accuracy >= 50
    ranking_score    = completion_ratio ** 2 * accuracy / 100 * wpm   (0 when not genuine)

Squaring the ratio punishes stopping early to inflate wpm. Clients that do
not send the passage length get no ranking score. For ranking, any submission
without a positive stored score falls back to accuracy-weighted wpm.
"""
from typing import Optional

MIN_COMPLETION_RATIO = 0.9
MIN_ACCURACY = 50


def completion_ratio(words_typed: float, total_passage_words: Optional[float]) -> float:
    if not total_passage_words or total_passage_words <= 0:
        return 1.0
    # typing past the end of the passage earns nothing extra
    return min(1.0, words_typed / total_passage_words)


def is_genuine(ratio: float, accuracy: float) -> bool:
    return ratio >= MIN_COMPLETION_RATIO and accuracy >= MIN_ACCURACY


def ranking_score(
    words_typed: float,
    total_passage_words: Optional[float],
    accuracy: float,
    wpm: float,
) -> Optional[float]:
    """Score stored with the submission; None when the passage length is unknown"""
    if total_passage_words is None:
        return None
    ratio = completion_ratio(words_typed, total_passage_words)
    if not is_genuine(ratio, accuracy):
        return 0.0
    return round(ratio * ratio * (accuracy / 100) * wpm, 4)


def fallback_score(accuracy: float, wpm: float) -> float:
    """Accuracy-weighted wpm, for submissions without a positive stored score"""
    return wpm * (accuracy / 100)


def effective_score(submission) -> float:
    if submission.ranking_score is not None and submission.ranking_score > 0:
        return submission.ranking_score
    return fallback_score(submission.accuracy, submission.wpm)
