"""
ranking.py — Student ranking by effective score.

Ties share a rank and the next distinct (lower) score takes the next
consecutive rank: [90, 90, 80] -> [1, 1, 2]. Students without a numeric
score get rank 0 (shown as "no rank", not last place).
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import numpy as np
from scipy import stats as sp_stats

from core.validation import parse_score

NO_RANK = 0


def effective_score(entered: Any, persisted: Any = None) -> Optional[float]:
    """Entered value when numeric, else the last persisted value, else None."""
    value = parse_score(entered)
    if value is not None:
        return value
    return parse_score(persisted)


def rank_scores(scores: Mapping[str, Any]) -> Dict[str, int]:
    """Rank an ordered mapping of student_id -> score; output keeps input order."""
    numeric = {sid: parse_score(v) for sid, v in scores.items()}
    ranked_ids = [sid for sid, v in numeric.items() if v is not None]

    ranks: Dict[str, int] = {sid: NO_RANK for sid in numeric}
    if not ranked_ids:
        return ranks

    values = np.array([numeric[sid] for sid in ranked_ids], dtype=float)
    dense = sp_stats.rankdata(-values, method="dense")
    for sid, r in zip(ranked_ids, dense):
        ranks[sid] = int(r)
    return ranks


def rank_students(entries: Iterable[Tuple[str, Any, Any]]) -> Dict[str, int]:
    """Rank (student_id, entered, persisted) triples by effective score."""
    return rank_scores({sid: effective_score(entered, persisted) for sid, entered, persisted in entries})
