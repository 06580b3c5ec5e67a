"""
persistence.py — Grade upsert client for the course/activity backend.

One request per (student, activity): POST {base}/api/activities/{id}/grades
with {student_id, grade, status}. The backend upserts, so repeating an
identical call is harmless.

Saves never raise. Every outcome is a SaveResult:
- Ok(value)                    the backend acknowledged the write
- Err(previous, reason, ...)   the write failed; `previous` is the value to restore

Concurrent edits are last-write-wins unless `check_conflicts` is on, in which
case the current server value is re-read first and the write is refused when
it no longer matches the value the teacher started from.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from core.validation import parse_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Err:
    previous: Any
    reason: str
    conflict: bool = False
    current: Any = None


SaveResult = Union[Ok, Err]


def _same_score(a: Any, b: Any) -> bool:
    return parse_score(a) == parse_score(b)


def _error_message(res: httpx.Response) -> str:
    try:
        body = res.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Request failed ({res.status_code})"


class GradeSaver:
    """Async upsert client. Pass `client` to reuse a configured httpx.AsyncClient."""

    def __init__(self, base_url: str = "", timeout: Optional[float] = None,
                 check_conflicts: bool = False, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.check_conflicts = check_conflicts
        self._client = client

    def _grades_url(self, activity_id: str) -> str:
        return f"{self.base_url}/api/activities/{activity_id}/grades"

    async def _current_grade(self, client: httpx.AsyncClient, activity_id: str, student_id: str) -> Any:
        res = await client.get(self._grades_url(activity_id))
        res.raise_for_status()
        body = res.json()
        records = body.get("data") if isinstance(body, dict) else body
        if records is None:
            return None
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise ValueError("unexpected grade list from the backend")
        for record in records:
            if str(record.get("student_id")) == str(student_id):
                return record.get("grade")
        return None

    async def _save(self, client: httpx.AsyncClient, activity_id: str, student_id: str,
                    grade: Any, previous: Any, status: Optional[str]) -> SaveResult:
        if self.check_conflicts:
            current = await self._current_grade(client, activity_id, student_id)
            if not _same_score(current, previous):
                logger.warning(
                    "Grade conflict for student %s on activity %s: expected %r, server has %r",
                    student_id, activity_id, previous, current,
                )
                return Err(
                    previous=previous,
                    reason="This grade was changed by someone else. Reload to see the latest value.",
                    conflict=True,
                    current=current,
                )

        payload = {"student_id": student_id, "grade": grade}
        if status:
            payload["status"] = status
        res = await client.post(self._grades_url(activity_id), json=payload)
        if res.is_error:
            return Err(previous=previous, reason=_error_message(res))

        try:
            body = res.json() if res.content else {}
        except ValueError:
            # The write was accepted; only the acknowledgement body is unreadable.
            body = {}
        if isinstance(body, dict) and body.get("success") is False:
            return Err(previous=previous, reason=str(body.get("message") or "Save rejected"))
        return Ok(value=grade)

    async def save(self, activity_id: str, student_id: str, grade: Any,
                   previous: Any = None, status: Optional[str] = None) -> SaveResult:
        """Upsert one grade. Transport and server failures come back as Err."""
        try:
            if self._client is not None:
                result = await self._save(self._client, activity_id, student_id, grade, previous, status)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    result = await self._save(client, activity_id, student_id, grade, previous, status)
        except (httpx.HTTPError, ValueError) as e:
            result = Err(previous=previous, reason=f"Could not save grade: {e}")

        if isinstance(result, Ok):
            logger.info("Saved grade %r for student %s on activity %s", grade, student_id, activity_id)
        elif not result.conflict:
            logger.warning("Grade save failed for student %s on activity %s: %s",
                           student_id, activity_id, result.reason)
        return result


def saver_from_env() -> GradeSaver:
    """Build a GradeSaver from GRADES_API_* environment settings."""
    base_url = os.getenv("GRADES_API_BASE_URL", "http://localhost:8080").strip()
    raw_timeout = os.getenv("GRADES_API_TIMEOUT", "").strip()
    timeout = float(raw_timeout) if raw_timeout else None
    check_conflicts = os.getenv("GRADE_CONFLICT_CHECK", "false").strip().lower() in {"1", "true", "yes", "on"}
    return GradeSaver(base_url=base_url, timeout=timeout, check_conflicts=check_conflicts)
