from typing import Any, Dict, List, Optional, Tuple

from typehub.scoring import effective_score

LEADERBOARD_LIMIT = 10
MIN_ACCURACY_LEADERBOARD = 50
ANONYMOUS_NAME = "Anonymous"


def _sort_key(entry: Tuple[float, Any]):
    score, submission = entry
    # Higher score first; on ties the more recent attempt wins
    return (score, submission.created_at, submission.id)


def rank_submissions(candidates: List[Any]) -> List[Tuple[float, Any]]:
    """Score candidates, drop unscoreable ones and order best first"""
    scored = [
        (effective_score(s), s) for s in candidates
        if s.accuracy >= MIN_ACCURACY_LEADERBOARD
    ]
    genuine = [entry for entry in scored if entry[0] > 0]
    genuine.sort(key=_sort_key, reverse=True)
    return genuine


def leaderboard_entry(rank: int, submission, names: Dict[str, str], viewer_id: Optional[str]) -> Dict:
    is_you = bool(viewer_id) and submission.user_id == viewer_id
    if submission.user_id:
        user_name = names.get(submission.user_id, ANONYMOUS_NAME)
    else:
        user_name = ANONYMOUS_NAME
    return {
        "rank": rank,
        "userName": user_name,
        "timeTakenSeconds": submission.time_taken_seconds,
        "wpm": submission.wpm,
        "accuracy": submission.accuracy,
        "createdAt": submission.created_at,
        "isYou": is_you,
    }


def build_leaderboard(
    candidates: List[Any],
    names: Dict[str, str],
    viewer_id: Optional[str] = None,
    limit: int = LEADERBOARD_LIMIT,
) -> Dict:
    """Top-N genuine submissions plus the viewer's personal best and rank.

    ``candidates`` are a paragraph's submissions with accuracy >= 50;
    ``names`` maps user ids to display names.
    """
    ranked = rank_submissions(candidates)
    leaderboard = [
        leaderboard_entry(i + 1, submission, names, viewer_id)
        for i, (_, submission) in enumerate(ranked[:limit])
    ]

    your_rank = None
    your_best = None
    if viewer_id:
        # ranked is best-first, so the viewer's first row is their best
        best = next(((score, s) for score, s in ranked if s.user_id == viewer_id), None)
        if best is not None:
            best_score, best_submission = best
            your_rank = 1 + sum(
                1 for score, s in ranked
                if s.id != best_submission.id and score > best_score
            )
            your_best = leaderboard_entry(your_rank, best_submission, names, viewer_id)

    return {"leaderboard": leaderboard, "yourRank": your_rank, "yourBest": your_best}


def history_stats(submissions: List[Any]) -> Dict:
    if not submissions:
        return {"totalAttempts": 0, "bestTimeSeconds": 0, "bestWpm": 0, "avgAccuracy": 0}
    return {
        "totalAttempts": len(submissions),
        "bestTimeSeconds": min(s.time_taken_seconds for s in submissions),
        "bestWpm": max(s.wpm for s in submissions),
        "avgAccuracy": round(sum(s.accuracy for s in submissions) / len(submissions)),
    }
