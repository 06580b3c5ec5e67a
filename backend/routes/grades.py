"""
Grade routes — class record, category breakdown, validation and transmutation.
"""

import os
from fastapi import APIRouter, HTTPException

from core.categories import get_category_weights
from core.grades import compute_category_breakdown, compute_class_record, sanitize
from core.models import activities_from_payload, grades_from_payload, roster_from_payload, scores_by_cell
from core.progress import compute_term_progress
from core.transmutation import get_transmutation_scale, grade_indication, is_passing, transmute, transmuted_label
from core.validation import parse_score, validate_score

router = APIRouter()

PASS_MARK = int(os.getenv("PASS_MARK", "75"))


def _parse(payload: dict):
    """Activities, roster and scores from a request payload."""
    try:
        activities = activities_from_payload(payload.get("activities"))
        students, embedded = roster_from_payload(payload.get("roster"))
        extra = grades_from_payload(payload.get("grades"))
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not activities:
        raise HTTPException(400, "No activities provided.")
    return activities, students, scores_by_cell(embedded + extra)


@router.post("/class-record")
async def class_record(payload: dict):
    """
    Full class record: category header (HPS), per-student rows with totals,
    PS/WS per category, composite, transmuted grade, status and rank.
    Expects: { "activities": [...], "roster": [...], "grades": [...] }
    """
    activities, students, scores = _parse(payload)
    record = compute_class_record(activities, students, scores)
    record["progress"] = compute_term_progress(activities, students, scores, class_record=record)
    return sanitize(record)


@router.post("/breakdown")
async def breakdown(payload: dict):
    """One student's breakdown. Expects: { "activities": [...], "scores": {activity_id: score} }"""
    try:
        activities = activities_from_payload(payload.get("activities"))
    except ValueError as e:
        raise HTTPException(400, str(e))
    scores = payload.get("scores") or {}
    if not isinstance(scores, dict):
        raise HTTPException(400, "scores must be an object of activity_id -> score.")
    return sanitize(compute_category_breakdown(activities, {str(k): v for k, v in scores.items()}))


@router.post("/validate")
async def validate(payload: dict):
    """Check one typed value. Expects: { "value": "523", "max_score": 50, "previous": 45 }"""
    max_score = parse_score(payload.get("max_score"))
    if max_score is None or max_score <= 0:
        raise HTTPException(400, "max_score must be a positive number.")
    check = validate_score(payload.get("value"), max_score, previous=payload.get("previous"))
    return {
        "value": check.value,
        "outcome": check.outcome,
        "confirmation": (
            {"message": check.confirmation.message, "blocking": check.confirmation.blocking}
            if check.confirmation else None
        ),
        "previous": check.previous,
    }


@router.post("/transmute")
async def transmute_grade(payload: dict):
    """Composite (0-100) to transmuted grade."""
    composite = parse_score(payload.get("composite"))
    if composite is None:
        raise HTTPException(400, "composite must be a number.")
    grade = transmute(composite)
    return {
        "composite": composite,
        "transmuted": grade,
        "label": transmuted_label(grade),
        "indication": grade_indication(grade),
        "passed": is_passing(grade),
    }


@router.get("/scale")
async def scale():
    """Transmutation legend, category weights and the activity pass mark."""
    return {
        "transmutation": get_transmutation_scale(),
        "categories": get_category_weights(),
        "pass_mark": PASS_MARK,
    }
