"""
entry.py — Grade entry cells and the store that drives them.

Each (student, activity) cell moves through:

    EMPTY ──edit──▶ EDITABLE ──commit──▶ SAVING ──Ok──▶ LOCKED
                       ▲                   │               │
                       └──────Err──────────┘               │
                       └──────────────unlock───────────────┘

- cancel (Escape) on an EDITABLE cell restores the stored original and goes
  back to LOCKED when one exists, else EMPTY.
- unlock never touches the original and never calls the server.
- save-all only submits EDITABLE cells holding a numeric value; each cell is
  its own request and a failure does not roll back its siblings.

Transitions are pure functions over frozen GradeCell values; the store only
keeps the current cell per key and performs the I/O.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from core.grades import compute_class_record
from core.models import Activity, CellKey, GradeRecord, Student
from core.persistence import Err, GradeSaver, Ok, SaveResult
from core.progress import DEFAULT_PASS_MARK, compute_activity_progress, student_status
from core.ranking import effective_score, rank_scores
from core.validation import ScoreCheck, parse_score, resolve_check, validate_score

logger = logging.getLogger(__name__)


class CellState(Enum):
    EMPTY = "empty"
    EDITABLE = "editable"
    SAVING = "saving"
    LOCKED = "locked"


class CellLockedError(ValueError):
    """Raised when editing a cell that is locked or has a save in flight."""

    def __init__(self, key: CellKey, state: CellState):
        super().__init__(f"Grade for student {key[0]} on activity {key[1]} is {state.value}; unlock it first.")
        self.key = key
        self.state = state


class UnknownCellError(KeyError):
    """Raised for a (student_id, activity_id) pair outside the loaded roster/activities."""


@dataclass(frozen=True)
class GradeCell:
    student_id: str
    activity_id: str
    max_score: float
    value: Any = None
    original: Any = None
    state: CellState = CellState.EMPTY
    error: Optional[str] = None

    @property
    def key(self) -> CellKey:
        return (self.student_id, self.activity_id)

    @property
    def committable(self) -> bool:
        return self.state in (CellState.EDITABLE, CellState.SAVING) and parse_score(self.value) is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "activity_id": self.activity_id,
            "max_score": self.max_score,
            "value": self.value,
            "original": self.original,
            "state": self.state.value,
            "error": self.error,
        }


# ── Transitions ─────────────────────────────────────────────────────

def new_cell(student_id: str, activity_id: str, max_score: float, original: Any = None) -> GradeCell:
    """A cell with a persisted value starts LOCKED, otherwise EMPTY."""
    original = parse_score(original)
    if original is not None:
        original = int(original) if original.is_integer() else original
    return GradeCell(
        student_id=student_id,
        activity_id=activity_id,
        max_score=max_score,
        value=original,
        original=original,
        state=CellState.LOCKED if original is not None else CellState.EMPTY,
    )


def edit_cell(cell: GradeCell, raw: Any, confirmed: bool = True) -> Tuple[GradeCell, ScoreCheck]:
    """Validate and apply typed input. `confirmed` answers a truncation prompt."""
    if cell.state in (CellState.LOCKED, CellState.SAVING):
        raise CellLockedError(cell.key, cell.state)
    check = validate_score(raw, cell.max_score, previous=cell.value)
    value = resolve_check(check, confirmed)
    return replace(cell, value=value, state=CellState.EDITABLE, error=None), check


def begin_save(cell: GradeCell) -> GradeCell:
    if not cell.committable:
        return cell
    return replace(cell, state=CellState.SAVING, error=None)


def apply_save_result(cell: GradeCell, result: SaveResult) -> GradeCell:
    """Ok locks the saved value in as the new original; Err restores the previous value."""
    if isinstance(result, Ok):
        return replace(cell, value=result.value, original=result.value, state=CellState.LOCKED, error=None)
    if result.conflict:
        # Adopt the server's value so a retry compares against what is stored now.
        current = parse_score(result.current)
        return replace(cell, value=current, original=current, state=CellState.EDITABLE, error=result.reason)
    return replace(cell, value=result.previous, state=CellState.EDITABLE, error=result.reason)


def cancel_cell(cell: GradeCell) -> GradeCell:
    if cell.state != CellState.EDITABLE:
        return cell
    has_original = parse_score(cell.original) is not None
    return replace(
        cell,
        value=cell.original,
        state=CellState.LOCKED if has_original else CellState.EMPTY,
        error=None,
    )


def unlock_cell(cell: GradeCell) -> GradeCell:
    if cell.state != CellState.LOCKED:
        return cell
    return replace(cell, state=CellState.EDITABLE)


# ── Store ───────────────────────────────────────────────────────────

class GradeEntryStore:
    """
    Grade entry state for one roster snapshot and its activities.
    The snapshot is fixed at construction; outside edits are not picked up.
    """

    def __init__(self, activities: Sequence[Activity], students: Sequence[Student],
                 records: Iterable[GradeRecord] = (), saver: Optional[GradeSaver] = None,
                 pass_mark: float = DEFAULT_PASS_MARK):
        self.activities = list(activities)
        self.students = list(students)
        self.saver = saver
        self.pass_mark = pass_mark
        self._activity_by_id = {a.id: a for a in self.activities}

        persisted: Dict[CellKey, Any] = {}
        for r in records:
            if r.persisted:
                persisted[(r.student_id, r.activity_id)] = r.score

        self.cells: Dict[CellKey, GradeCell] = {}
        for s in self.students:
            for a in self.activities:
                key = (s.student_id, a.id)
                self.cells[key] = new_cell(s.student_id, a.id, a.max_score, persisted.get(key))

    def get(self, student_id: str, activity_id: str) -> GradeCell:
        try:
            return self.cells[(str(student_id), str(activity_id))]
        except KeyError:
            raise UnknownCellError((student_id, activity_id)) from None

    def _put(self, cell: GradeCell) -> GradeCell:
        self.cells[cell.key] = cell
        return cell

    # Local transitions

    def edit(self, student_id: str, activity_id: str, raw: Any, confirmed: bool = True) -> ScoreCheck:
        cell, check = edit_cell(self.get(student_id, activity_id), raw, confirmed)
        self._put(cell)
        return check

    def cancel(self, student_id: str, activity_id: str) -> GradeCell:
        return self._put(cancel_cell(self.get(student_id, activity_id)))

    def unlock(self, student_id: str, activity_id: str) -> GradeCell:
        return self._put(unlock_cell(self.get(student_id, activity_id)))

    # Persistence

    def _status_for(self, cell: GradeCell) -> str:
        return student_status(cell.value, cell.max_score, self.pass_mark).capitalize()

    async def _save_cell(self, cell: GradeCell) -> SaveResult:
        if self.saver is None:
            return Err(previous=cell.original, reason="No grade backend configured.")
        try:
            return await self.saver.save(
                cell.activity_id, cell.student_id, cell.value,
                previous=cell.original, status=self._status_for(cell),
            )
        except Exception as e:
            # A cell must never stay SAVING; report the failure and let the teacher retry.
            logger.exception("Unexpected error saving grade for student %s on activity %s",
                             cell.student_id, cell.activity_id)
            return Err(previous=cell.original, reason=f"Could not save grade: {e}")

    @staticmethod
    def _outcome(cell: GradeCell, result: Optional[SaveResult]) -> Dict[str, Any]:
        if result is None:
            status = "skipped"
        elif isinstance(result, Ok):
            status = "saved"
        else:
            status = "conflict" if result.conflict else "failed"
        return {
            "student_id": cell.student_id,
            "activity_id": cell.activity_id,
            "status": status,
            "state": cell.state.value,
            "value": cell.value,
            "error": cell.error,
        }

    async def commit(self, student_id: str, activity_id: str) -> Dict[str, Any]:
        """Save one cell (Enter / explicit save)."""
        cell = self.get(student_id, activity_id)
        if not cell.committable:
            return self._outcome(cell, None)
        cell = self._put(begin_save(cell))
        result = await self._save_cell(cell)
        cell = self._put(apply_save_result(self.cells[cell.key], result))
        return self._outcome(cell, result)

    async def save_all(self) -> Dict[str, Any]:
        """Submit every EDITABLE cell with a numeric value, one request each."""
        editable = [c for c in self.cells.values() if c.state == CellState.EDITABLE]
        to_save = [self._put(begin_save(c)) for c in editable if c.committable]
        skipped = len(editable) - len(to_save)

        results = await asyncio.gather(*(self._save_cell(c) for c in to_save))

        outcomes = []
        for cell, result in zip(to_save, results):
            updated = self._put(apply_save_result(self.cells[cell.key], result))
            outcomes.append(self._outcome(updated, result))

        saved = sum(1 for o in outcomes if o["status"] == "saved")
        summary = {
            "submitted": len(to_save),
            "saved": saved,
            "failed": len(to_save) - saved,
            "skipped": skipped,
            "results": outcomes,
        }
        logger.info("Saved %d of %d grades (%d skipped)", saved, len(to_save), skipped)
        return summary

    # Read models

    def effective_scores(self) -> Dict[CellKey, float]:
        """Values visible to aggregation: entered number, else persisted number."""
        scores: Dict[CellKey, float] = {}
        for key, cell in self.cells.items():
            value = effective_score(cell.value, cell.original)
            if value is not None:
                scores[key] = value
        return scores

    def activity(self, activity_id: str) -> Activity:
        try:
            return self._activity_by_id[str(activity_id)]
        except KeyError:
            raise UnknownCellError(activity_id) from None

    def activity_values(self, activity_id: str) -> Dict[str, Any]:
        """student_id -> displayed value for one activity, in roster order."""
        activity = self.activity(activity_id)
        return {s.student_id: self.cells[(s.student_id, activity.id)].value for s in self.students}

    def activity_progress(self, activity_id: str) -> Dict[str, Any]:
        activity = self.activity(activity_id)
        return compute_activity_progress(self.activity_values(activity.id), activity.max_score, self.pass_mark)

    def activity_ranking(self, activity_id: str) -> Dict[str, int]:
        activity = self.activity(activity_id)
        scores = self.effective_scores()
        return rank_scores({s.student_id: scores.get((s.student_id, activity.id)) for s in self.students})

    def class_record(self) -> Dict[str, Any]:
        return compute_class_record(self.activities, self.students, self.effective_scores())

    def snapshot(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self.cells.values()]
