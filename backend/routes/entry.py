"""
Entry routes — grade entry sessions backed by GradeEntryStore.

A session holds the roster snapshot and activity list fetched when the
grading view opened. Cells are edited, committed, cancelled and unlocked
through the endpoints below; saves go to the grade backend one cell at a time.
"""

import logging
import os
import uuid
from time import time

from fastapi import APIRouter, HTTPException

from core.entry import CellLockedError, GradeEntryStore, UnknownCellError
from core.grades import sanitize
from core.models import activities_from_payload, grades_from_payload, roster_from_payload
from core.persistence import saver_from_env
from core.progress import compute_term_progress

logger = logging.getLogger(__name__)

router = APIRouter()

PASS_MARK = int(os.getenv("PASS_MARK", "75"))
SESSION_TTL_SECONDS = int(os.getenv("ENTRY_SESSION_TTL_SECONDS", str(60 * 60 * 8)))

# In-memory session store: session_id -> { store, created_at }
sessions: dict = {}


def _purge_expired_sessions():
    now = time()
    expired = [sid for sid, s in sessions.items() if (now - float(s.get("created_at", now))) > SESSION_TTL_SECONDS]
    for sid in expired:
        sessions.pop(sid, None)
        logger.info("Expired grade entry session %s", sid)


def _get_store(session_id: str) -> GradeEntryStore:
    session = sessions.get(session_id)
    if not session:
        raise HTTPException(404, "Session not found. Please reload the grading view.")
    return session["store"]


def _as_bool(value, default: bool) -> bool:
    """JSON booleans as-is; string flags parsed like the env switches."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _cell_args(payload: dict):
    student_id = payload.get("student_id")
    activity_id = payload.get("activity_id")
    if student_id is None or activity_id is None:
        raise HTTPException(400, "student_id and activity_id are required.")
    return str(student_id), str(activity_id)


def _session_view(session_id: str, store: GradeEntryStore) -> dict:
    record = store.class_record()
    return sanitize({
        "session_id": session_id,
        "cells": store.snapshot(),
        "class_record": record,
        "progress": compute_term_progress(store.activities, store.students, store.effective_scores(), class_record=record),
    })


@router.post("/sessions")
async def create_session(payload: dict):
    """
    Open a grading session.
    Expects: { "activities": [...], "roster": [...], "grades": [...] }
    """
    _purge_expired_sessions()
    try:
        activities = activities_from_payload(payload.get("activities"))
        students, embedded = roster_from_payload(payload.get("roster"))
        extra = grades_from_payload(payload.get("grades"))
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not activities:
        raise HTTPException(400, "No activities provided.")

    store = GradeEntryStore(activities, students, embedded + extra, saver=saver_from_env(), pass_mark=PASS_MARK)
    session_id = str(uuid.uuid4())
    sessions[session_id] = {"store": store, "created_at": time()}
    logger.info("Opened grade entry session %s (%d students, %d activities)",
                session_id, len(students), len(activities))
    return _session_view(session_id, store)


@router.get("/{session_id}")
async def get_session(session_id: str):
    return _session_view(session_id, _get_store(session_id))


@router.delete("/{session_id}")
async def close_session(session_id: str):
    if sessions.pop(session_id, None) is None:
        raise HTTPException(404, "Session not found.")
    return {"closed": session_id}


@router.post("/{session_id}/edit")
async def edit_cell(session_id: str, payload: dict):
    """
    Type a value into a cell. Expects: { student_id, activity_id, value, confirmed? }
    `confirmed: false` cancels a truncation prompt and keeps the previous value.
    """
    store = _get_store(session_id)
    student_id, activity_id = _cell_args(payload)
    try:
        check = store.edit(student_id, activity_id, payload.get("value"), confirmed=_as_bool(payload.get("confirmed"), True))
    except UnknownCellError:
        raise HTTPException(404, f"No cell for student '{student_id}' on activity '{activity_id}'.")
    except CellLockedError as e:
        raise HTTPException(409, str(e))
    return sanitize({
        "outcome": check.outcome,
        "confirmation": (
            {"message": check.confirmation.message, "blocking": check.confirmation.blocking}
            if check.confirmation else None
        ),
        "cell": store.get(student_id, activity_id).to_dict(),
    }, ndigits=None)


@router.post("/{session_id}/commit")
async def commit_cell(session_id: str, payload: dict):
    """Save one cell (Enter key). Save failures come back in the body, not as HTTP errors."""
    store = _get_store(session_id)
    student_id, activity_id = _cell_args(payload)
    try:
        outcome = await store.commit(student_id, activity_id)
    except UnknownCellError:
        raise HTTPException(404, f"No cell for student '{student_id}' on activity '{activity_id}'.")
    return sanitize(outcome, ndigits=None)


@router.post("/{session_id}/cancel")
async def cancel_cell(session_id: str, payload: dict):
    """Escape: restore the stored original."""
    store = _get_store(session_id)
    student_id, activity_id = _cell_args(payload)
    try:
        cell = store.cancel(student_id, activity_id)
    except UnknownCellError:
        raise HTTPException(404, f"No cell for student '{student_id}' on activity '{activity_id}'.")
    return sanitize(cell.to_dict(), ndigits=None)


@router.post("/{session_id}/unlock")
async def unlock_cell(session_id: str, payload: dict):
    """Double-activation on a locked cell: make it editable again, no server call."""
    store = _get_store(session_id)
    student_id, activity_id = _cell_args(payload)
    try:
        cell = store.unlock(student_id, activity_id)
    except UnknownCellError:
        raise HTTPException(404, f"No cell for student '{student_id}' on activity '{activity_id}'.")
    return sanitize(cell.to_dict(), ndigits=None)


@router.post("/{session_id}/save-all")
async def save_all(session_id: str):
    """Save every editable cell with a numeric value; reports per-cell results."""
    store = _get_store(session_id)
    return sanitize(await store.save_all(), ndigits=None)


@router.get("/{session_id}/activities/{activity_id}")
async def activity_view(session_id: str, activity_id: str):
    """Progress statistics and ranks for one activity in the session."""
    store = _get_store(session_id)
    try:
        progress = store.activity_progress(activity_id)
        ranks = store.activity_ranking(activity_id)
    except UnknownCellError:
        raise HTTPException(404, f"Activity '{activity_id}' is not part of this session.")
    progress["ranks"] = ranks
    return sanitize(progress)
