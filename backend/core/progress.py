"""
progress.py — Grading progress statistics.

Per activity (one roster, one max score):
- passed:  score / max_score * 100 >= pass mark (75 by default)
- failed:  scored but below the pass mark
- pending: no score yet, or text that is not a number
graded = passed + failed, and passed + failed + pending == total always.

Per term: graded/pending cell counts per category plus the row-level
passed/failed/pending tally from the class record.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from core.categories import CATEGORY_ORDER, categorize
from core.grades import STATUS_FAILED, STATUS_PASSED, STATUS_PENDING, compute_class_record
from core.models import Activity, CellKey, Student
from core.validation import parse_score

DEFAULT_PASS_MARK = 75


def student_status(score: Any, max_score: float, pass_mark: float = DEFAULT_PASS_MARK) -> str:
    value = parse_score(score)
    if value is None:
        return STATUS_PENDING
    pct = value / max_score * 100 if max_score else 0.0
    return STATUS_PASSED if pct >= pass_mark else STATUS_FAILED


def _tally(statuses: Iterable[str]) -> Dict[str, Any]:
    statuses = list(statuses)
    total = len(statuses)
    passed = statuses.count(STATUS_PASSED)
    failed = statuses.count(STATUS_FAILED)
    pending = statuses.count(STATUS_PENDING)
    graded = passed + failed
    return {
        "total": total,
        "passed": passed,
        "failed": failed,
        "pending": pending,
        "graded": graded,
        "percentage_graded": graded / total * 100 if total else 0.0,
        # None rather than 0% when nothing is graded yet.
        "passing_rate": passed / graded * 100 if graded else None,
    }


def passing_rate_display(rate: Optional[float]) -> str:
    if rate is None:
        return "N/A"
    return f"{round(rate)}%"


def compute_activity_progress(scores: Mapping[str, Any], max_score: float,
                              pass_mark: float = DEFAULT_PASS_MARK) -> Dict[str, Any]:
    """
    Statistics for one activity. `scores` is an ordered mapping
    student_id -> entered value (None/"" for nothing yet).
    """
    statuses = {sid: student_status(v, max_score, pass_mark) for sid, v in scores.items()}
    result = _tally(statuses.values())
    result["passing_rate_display"] = passing_rate_display(result["passing_rate"])
    result["statuses"] = statuses
    return result


def order_pending_first(student_ids: Sequence[str], statuses: Mapping[str, str]) -> List[str]:
    """Stable reorder with pending students first."""
    return sorted(student_ids, key=lambda sid: 0 if statuses.get(sid, STATUS_PENDING) == STATUS_PENDING else 1)


def compute_term_progress(activities: Sequence[Activity], students: Sequence[Student],
                          scores: Mapping[CellKey, Any],
                          class_record: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Cell completion per category and the passed/failed/pending tally of class-record rows."""
    if class_record is None:
        class_record = compute_class_record(activities, students, scores)

    categories = []
    for cat in CATEGORY_ORDER:
        members = [a for a in activities if categorize(a.type) == cat]
        cells = len(members) * len(students)
        graded = sum(
            1
            for a in members
            for s in students
            if parse_score(scores.get((s.student_id, a.id))) is not None
        )
        categories.append({
            "category": cat.name,
            "label": cat.label,
            "activities": len(members),
            "cells": cells,
            "graded": graded,
            "pending": cells - graded,
            "percentage_graded": graded / cells * 100 if cells else 0.0,
        })

    students_tally = _tally(r["status"] for r in class_record["rows"])
    students_tally["passing_rate_display"] = passing_rate_display(students_tally["passing_rate"])
    return {"categories": categories, "students": students_tally}
