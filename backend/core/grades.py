"""
grades.py — Category aggregation, weighted scores and the class record.

Per student and category:
- total  = sum of raw scores (missing scores count as 0)
- PS     = total / sum of the category's max scores * 100 (0 when there are no activities)
- WS     = PS * category weight / 100
Composite (initial grade) = WS(written) + WS(performance) + WS(exam), always on
0-100. An empty category contributes 0; weights are never renormalized.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from core.categories import CATEGORY_ORDER, Category, categorize
from core.models import Activity, CellKey, Student
from core.ranking import rank_scores
from core.transmutation import grade_indication, is_passing, transmute, transmuted_label
from core.validation import parse_score

STATUS_PENDING = "pending"
STATUS_PASSED = "passed"
STATUS_FAILED = "failed"


# ── Helpers ─────────────────────────────────────────────────────────

def sanitize(obj, ndigits: Optional[int] = 2):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types, rounding floats."""
    if isinstance(obj, dict):
        return {k: sanitize(v, ndigits) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(v, ndigits) for v in obj]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        if np.isnan(v) or np.isinf(v):
            return None
        return round(v, ndigits) if ndigits is not None else v
    return obj


def percentage(total: float, max_total: float) -> float:
    """Percentage score; a zero denominator yields 0 rather than raising."""
    if not max_total:
        return 0.0
    return total / max_total * 100


def weighted(percentage_score: float, category: Category) -> float:
    return percentage_score * category.weight / 100


def _activity_frame(activities: Sequence[Activity]) -> pd.DataFrame:
    rows = []
    for a in activities:
        cat = categorize(a.type)
        if cat is not None:
            rows.append({"activity_id": a.id, "category": cat.name, "max_score": float(a.max_score)})
    return pd.DataFrame(rows, columns=["activity_id", "category", "max_score"])


def _score_frame(student_ids: Sequence[str], activity_ids: Sequence[str],
                 scores: Mapping[CellKey, Any]) -> pd.DataFrame:
    """Long frame of numeric scores for the given students and activities."""
    rows = []
    for sid in student_ids:
        for aid in activity_ids:
            value = parse_score(scores.get((sid, aid)))
            if value is not None:
                rows.append({"student_id": sid, "activity_id": aid, "score": value})
    return pd.DataFrame(rows, columns=["student_id", "activity_id", "score"]).astype({"score": float})


def _category_totals(activities: Sequence[Activity], student_ids: Sequence[str],
                     scores: Mapping[CellKey, Any]):
    """Return (sum/count per student+category, max per category)."""
    act_df = _activity_frame(activities)
    score_df = _score_frame(student_ids, act_df["activity_id"].tolist(), scores)
    merged = score_df.merge(act_df[["activity_id", "category"]], on="activity_id", how="inner")
    grouped = merged.groupby(["student_id", "category"])["score"].agg(["sum", "count"])
    max_by_cat = act_df.groupby("category")["max_score"].sum()
    count_by_cat = act_df.groupby("category")["activity_id"].count()
    return grouped, max_by_cat, count_by_cat


def _breakdown(grouped: pd.DataFrame, max_by_cat: pd.Series, count_by_cat: pd.Series,
               student_id: str) -> Dict[str, Dict[str, Any]]:
    result: Dict[str, Dict[str, Any]] = {}
    for cat in CATEGORY_ORDER:
        key = (student_id, cat.name)
        total = float(grouped.loc[key, "sum"]) if key in grouped.index else 0.0
        graded = int(grouped.loc[key, "count"]) if key in grouped.index else 0
        max_total = float(max_by_cat.get(cat.name, 0.0))
        ps = percentage(total, max_total)
        result[cat.name] = {
            "label": cat.label,
            "weight": cat.weight,
            "total": total,
            "max_score": max_total,
            "percentage": ps,
            "weighted": weighted(ps, cat),
            "activity_count": int(count_by_cat.get(cat.name, 0)),
            "graded_count": graded,
        }
    return result


def composite_grade(breakdown: Mapping[str, Mapping[str, Any]]) -> float:
    """Sum of weighted scores across the three categories."""
    return sum(float(breakdown[cat.name]["weighted"]) for cat in CATEGORY_ORDER if cat.name in breakdown)


# ── Single Student ──────────────────────────────────────────────────

def compute_category_breakdown(activities: Sequence[Activity],
                               scores: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Category totals, PS, WS, composite and transmuted grade for one student.
    `scores` maps activity_id -> raw score.
    """
    sid = "_"
    cell_scores = {(sid, aid): v for aid, v in scores.items()}
    grouped, max_by_cat, count_by_cat = _category_totals(activities, [sid], cell_scores)
    breakdown = _breakdown(grouped, max_by_cat, count_by_cat, sid)
    return _grade_summary(breakdown)


def _grade_summary(breakdown: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    composite = composite_grade(breakdown)
    graded = sum(b["graded_count"] for b in breakdown.values())
    grade = transmute(composite)
    if graded == 0:
        status = STATUS_PENDING
    else:
        status = STATUS_PASSED if is_passing(grade) else STATUS_FAILED
    return {
        "categories": breakdown,
        "composite": composite,
        "transmuted": grade,
        "transmuted_label": transmuted_label(grade),
        "indication": grade_indication(grade),
        "passed": is_passing(grade),
        "status": status,
    }


# ── Class Record ────────────────────────────────────────────────────

def category_header(activities: Sequence[Activity]) -> List[Dict[str, Any]]:
    """Activities and highest possible score (HPS) per category."""
    header = []
    for cat in CATEGORY_ORDER:
        members = [a for a in activities if categorize(a.type) == cat]
        header.append({
            "category": cat.name,
            "label": cat.label,
            "weight": cat.weight,
            "max_score": float(sum(a.max_score for a in members)),
            "activities": [
                {"id": a.id, "title": a.title, "type": a.type, "max_score": a.max_score}
                for a in members
            ],
        })
    return header


def compute_class_record(activities: Sequence[Activity], students: Sequence[Student],
                         scores: Mapping[CellKey, Any]) -> Dict[str, Any]:
    """
    Build one StudentGradeRow per roster student (roster order kept) plus the
    category header. Rows are ranked by composite; pending rows get no rank.
    """
    student_ids = [s.student_id for s in students]
    grouped, max_by_cat, count_by_cat = _category_totals(activities, student_ids, scores)

    rows: List[Dict[str, Any]] = []
    for student in students:
        breakdown = _breakdown(grouped, max_by_cat, count_by_cat, student.student_id)
        row = {
            "student_id": student.student_id,
            "name": student.name,
            "code": student.code,
            "scores": {a.id: parse_score(scores.get((student.student_id, a.id))) for a in activities},
        }
        row.update(_grade_summary(breakdown))
        rows.append(row)

    ranks = rank_scores({
        r["student_id"]: (r["composite"] if r["status"] != STATUS_PENDING else None)
        for r in rows
    })
    for r in rows:
        r["rank"] = ranks[r["student_id"]]

    return {
        "categories": category_header(activities),
        "uncategorized": [a.id for a in activities if categorize(a.type) is None],
        "rows": rows,
    }
