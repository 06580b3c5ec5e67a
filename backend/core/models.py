"""
models.py — Activity, roster and grade record types plus payload parsing.

Payloads follow the records served by the course/activity backend:
- activities: [{id, type, max_score, title}]
- roster:     [{student_id, name, code, grades?: [{activity_id, grade}]}]
- grades:     [{activity_id, student_id, grade}]
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.categories import Category, categorize
from core.validation import parse_score


# (student_id, activity_id)
CellKey = Tuple[str, str]


@dataclass(frozen=True)
class Activity:
    id: str
    type: str
    max_score: float
    title: str = ""

    @property
    def category(self) -> Optional[Category]:
        return categorize(self.type)


@dataclass(frozen=True)
class Student:
    student_id: str
    name: str = ""
    code: str = ""


@dataclass(frozen=True)
class GradeRecord:
    activity_id: str
    student_id: str
    score: Optional[float]
    persisted: bool = False


# ── Helpers ─────────────────────────────────────────────────────────

def _pick(item: Dict[str, Any], aliases: List[str]) -> Any:
    """Return the first present alias value from a payload record."""
    for a in aliases:
        if a in item and item[a] is not None:
            return item[a]
    return None


def _clean_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ── Parsing ─────────────────────────────────────────────────────────

def activity_from_dict(item: Dict[str, Any]) -> Activity:
    """Build an Activity, rejecting records without an id or a positive max score."""
    activity_id = _clean_id(_pick(item, ["id", "activity_id"]))
    if activity_id is None:
        raise ValueError("Activity is missing an id.")

    max_score = parse_score(_pick(item, ["max_score", "maxScore", "max"]))
    if max_score is None or max_score <= 0:
        raise ValueError(f"Activity '{activity_id}' must have a positive max_score.")

    return Activity(
        id=activity_id,
        type=str(_pick(item, ["type", "activity_type"]) or "").strip(),
        max_score=max_score,
        title=str(_pick(item, ["title", "name"]) or ""),
    )


def activities_from_payload(items: Optional[Iterable[Dict[str, Any]]]) -> List[Activity]:
    """Parse the activity list, rejecting duplicate ids."""
    activities: List[Activity] = []
    seen = set()
    for item in items or []:
        activity = activity_from_dict(item)
        if activity.id in seen:
            raise ValueError(f"Duplicate activity id '{activity.id}'.")
        seen.add(activity.id)
        activities.append(activity)
    return activities


def roster_from_payload(items: Optional[Iterable[Dict[str, Any]]]) -> Tuple[List[Student], List[GradeRecord]]:
    """
    Parse a roster snapshot. Embedded grades come from the backend, so they
    are returned as persisted records.
    """
    students: List[Student] = []
    records: List[GradeRecord] = []
    seen = set()
    for item in items or []:
        student_id = _clean_id(_pick(item, ["student_id", "id", "studentId"]))
        if student_id is None:
            raise ValueError("Roster entry is missing a student_id.")
        if student_id in seen:
            raise ValueError(f"Duplicate student id '{student_id}'.")
        seen.add(student_id)
        students.append(Student(
            student_id=student_id,
            name=str(_pick(item, ["name", "student_name", "full_name"]) or ""),
            code=str(_pick(item, ["code", "student_code", "student_number"]) or ""),
        ))
        for g in item.get("grades") or []:
            activity_id = _clean_id(_pick(g, ["activity_id", "activityId"]))
            if activity_id is None:
                continue
            records.append(GradeRecord(
                activity_id=activity_id,
                student_id=student_id,
                score=parse_score(_pick(g, ["grade", "score"])),
                persisted=True,
            ))
    return students, records


def grades_from_payload(items: Optional[Iterable[Dict[str, Any]]], persisted: bool = True) -> List[GradeRecord]:
    """Parse loose grade records ({activity_id, student_id, grade})."""
    records: List[GradeRecord] = []
    for g in items or []:
        activity_id = _clean_id(_pick(g, ["activity_id", "activityId"]))
        student_id = _clean_id(_pick(g, ["student_id", "studentId"]))
        if activity_id is None or student_id is None:
            raise ValueError("Grade record needs both activity_id and student_id.")
        records.append(GradeRecord(
            activity_id=activity_id,
            student_id=student_id,
            score=parse_score(_pick(g, ["grade", "score"])),
            persisted=persisted,
        ))
    return records


def scores_by_cell(records: Iterable[GradeRecord]) -> Dict[CellKey, Optional[float]]:
    """Index records by (student_id, activity_id); later records win."""
    return {(r.student_id, r.activity_id): r.score for r in records}
