"""
Activity routes — grading progress and ranking for a single activity.
"""

import os
from fastapi import APIRouter, HTTPException

from core.grades import sanitize
from core.models import activity_from_dict, roster_from_payload
from core.progress import compute_activity_progress, order_pending_first
from core.ranking import rank_students

router = APIRouter()

PASS_MARK = int(os.getenv("PASS_MARK", "75"))


@router.post("/progress")
async def activity_progress(payload: dict):
    """
    Passed/failed/pending counts, completion and passing rate for one activity,
    plus ranks by effective score.
    Expects: { "activity": {...}, "roster": [...], "entered": {student_id: value}, "pending_first": false }
    """
    if not payload.get("activity"):
        raise HTTPException(400, "No activity provided.")
    try:
        activity = activity_from_dict(payload["activity"])
        students, records = roster_from_payload(payload.get("roster"))
    except ValueError as e:
        raise HTTPException(400, str(e))

    entered = payload.get("entered") or {}
    if not isinstance(entered, dict):
        raise HTTPException(400, "entered must be an object of student_id -> value.")
    entered = {str(k): v for k, v in entered.items()}
    persisted = {r.student_id: r.score for r in records if r.activity_id == activity.id}

    values = {}
    for s in students:
        sid = s.student_id
        values[sid] = entered[sid] if sid in entered else persisted.get(sid)

    progress = compute_activity_progress(values, activity.max_score, PASS_MARK)
    ranks = rank_students((s.student_id, entered.get(s.student_id), persisted.get(s.student_id)) for s in students)

    order = [s.student_id for s in students]
    if payload.get("pending_first"):
        order = order_pending_first(order, progress["statuses"])

    progress["ranks"] = ranks
    progress["order"] = order
    return sanitize(progress)
