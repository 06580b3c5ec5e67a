"""
Tests for core/entry.py — cell transitions and the grade entry store.
"""

import asyncio
import os
import sys
import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.entry import (
    CellLockedError, CellState, GradeEntryStore, UnknownCellError,
    apply_save_result, begin_save, cancel_cell, edit_cell, new_cell, unlock_cell,
)
from core.models import Activity, GradeRecord, Student
from core.persistence import Err, GradeSaver, Ok


class FakeSaver:
    """Records calls; fails for students listed in `fail_for`."""

    def __init__(self, fail_for=(), conflict_for=None):
        self.calls = []
        self.fail_for = set(fail_for)
        self.conflict_for = conflict_for or {}

    async def save(self, activity_id, student_id, grade, previous=None, status=None):
        self.calls.append((activity_id, student_id, grade, status))
        if student_id in self.conflict_for:
            return Err(previous=previous, reason="changed", conflict=True, current=self.conflict_for[student_id])
        if student_id in self.fail_for:
            return Err(previous=previous, reason="Server error")
        return Ok(grade)


@pytest.fixture
def activities():
    return [Activity("q1", "quiz", 50, "Quiz 1"), Activity("m1", "midterm", 100, "Midterm")]


@pytest.fixture
def students():
    return [Student("S1", "Ana"), Student("S2", "Ben"), Student("S3", "Cy")]


@pytest.fixture
def records():
    return [GradeRecord("q1", "S1", 40, persisted=True)]


class TestCellTransitions:
    def test_new_cell_states(self):
        assert new_cell("S1", "q1", 50).state is CellState.EMPTY
        locked = new_cell("S1", "q1", 50, original=40)
        assert locked.state is CellState.LOCKED
        assert locked.value == 40

    def test_edit_empty_becomes_editable(self):
        cell, check = edit_cell(new_cell("S1", "q1", 50), "45")
        assert cell.state is CellState.EDITABLE
        assert cell.value == 45
        assert check.outcome == "accepted"

    def test_edit_locked_raises(self):
        with pytest.raises(CellLockedError):
            edit_cell(new_cell("S1", "q1", 50, original=40), "45")

    def test_edit_applies_truncation_unless_cancelled(self):
        cell, _ = edit_cell(new_cell("S1", "q1", 50), "30")
        truncated, _ = edit_cell(cell, "523")
        assert truncated.value == 5
        kept, _ = edit_cell(cell, "523", confirmed=False)
        assert kept.value == 30

    def test_ok_locks_and_updates_original(self):
        cell, _ = edit_cell(new_cell("S1", "q1", 50), "45")
        saved = apply_save_result(begin_save(cell), Ok(45))
        assert saved.state is CellState.LOCKED
        assert saved.original == 45

    def test_err_reverts_to_previous(self):
        cell = unlock_cell(new_cell("S1", "q1", 50, original=40))
        cell, _ = edit_cell(cell, "45")
        failed = apply_save_result(begin_save(cell), Err(previous=40, reason="boom"))
        assert failed.state is CellState.EDITABLE
        assert failed.value == 40
        assert failed.error == "boom"

    def test_conflict_adopts_server_value(self):
        cell, _ = edit_cell(unlock_cell(new_cell("S1", "q1", 50, original=40)), "45")
        result = apply_save_result(begin_save(cell), Err(previous=40, reason="changed", conflict=True, current=38))
        assert result.value == 38
        assert result.original == 38
        assert result.state is CellState.EDITABLE

    def test_cancel_restores_original(self):
        cell, _ = edit_cell(unlock_cell(new_cell("S1", "q1", 50, original=40)), "12")
        cancelled = cancel_cell(cell)
        assert cancelled.state is CellState.LOCKED
        assert cancelled.value == 40

    def test_cancel_without_original_is_empty(self):
        cell, _ = edit_cell(new_cell("S1", "q1", 50), "12")
        cancelled = cancel_cell(cell)
        assert cancelled.state is CellState.EMPTY
        assert cancelled.value is None

    def test_unlock_keeps_original(self):
        cell = unlock_cell(new_cell("S1", "q1", 50, original=40))
        assert cell.state is CellState.EDITABLE
        assert cell.original == 40

    def test_unlock_then_escape_round_trip(self):
        locked = new_cell("S1", "q1", 50, original=40)
        assert cancel_cell(unlock_cell(locked)) == locked

    def test_begin_save_requires_numeric(self):
        cell, _ = edit_cell(new_cell("S1", "q1", 50), "4x")
        assert begin_save(cell) is cell


class TestGradeEntryStore:
    def test_initial_states(self, activities, students, records):
        store = GradeEntryStore(activities, students, records)
        assert store.get("S1", "q1").state is CellState.LOCKED
        assert store.get("S2", "q1").state is CellState.EMPTY
        assert len(store.snapshot()) == 6

    def test_unknown_cell(self, activities, students):
        store = GradeEntryStore(activities, students)
        with pytest.raises(UnknownCellError):
            store.get("S9", "q1")

    def test_unlock_makes_no_call(self, activities, students, records):
        saver = FakeSaver()
        store = GradeEntryStore(activities, students, records, saver=saver)
        store.unlock("S1", "q1")
        assert store.get("S1", "q1").state is CellState.EDITABLE
        store.cancel("S1", "q1")
        cell = store.get("S1", "q1")
        assert cell.state is CellState.LOCKED
        assert cell.value == 40
        assert saver.calls == []

    def test_commit_success(self, activities, students):
        saver = FakeSaver()
        store = GradeEntryStore(activities, students, saver=saver)
        store.edit("S2", "q1", "45")
        outcome = asyncio.run(store.commit("S2", "q1"))
        assert outcome["status"] == "saved"
        assert store.get("S2", "q1").state is CellState.LOCKED
        assert saver.calls == [("q1", "S2", 45, "Passed")]

    def test_commit_failure_reverts(self, activities, students, records):
        saver = FakeSaver(fail_for={"S1"})
        store = GradeEntryStore(activities, students, records, saver=saver)
        store.unlock("S1", "q1")
        store.edit("S1", "q1", "20")
        outcome = asyncio.run(store.commit("S1", "q1"))
        assert outcome["status"] == "failed"
        cell = store.get("S1", "q1")
        assert cell.state is CellState.EDITABLE
        assert cell.value == 40
        assert cell.error == "Server error"

    def test_commit_skips_non_numeric(self, activities, students):
        saver = FakeSaver()
        store = GradeEntryStore(activities, students, saver=saver)
        store.edit("S2", "q1", "abc")
        outcome = asyncio.run(store.commit("S2", "q1"))
        assert outcome["status"] == "skipped"
        assert saver.calls == []

    def test_unexpected_saver_error_returns_cell_to_editable(self, activities, students, records):
        class BrokenSaver:
            async def save(self, *args, **kwargs):
                raise AttributeError("'str' object has no attribute 'get'")

        store = GradeEntryStore(activities, students, records, saver=BrokenSaver())
        store.unlock("S1", "q1")
        store.edit("S1", "q1", "20")
        store.edit("S2", "q1", "30")
        summary = asyncio.run(store.save_all())
        assert summary["failed"] == 2
        s1 = store.get("S1", "q1")
        assert s1.state is CellState.EDITABLE
        assert s1.value == 40
        assert s1.error is not None
        assert store.get("S2", "q1").state is CellState.EDITABLE

        store.edit("S2", "q1", "31")
        outcome = asyncio.run(store.commit("S2", "q1"))
        assert outcome["status"] == "failed"
        assert store.get("S2", "q1").state is CellState.EDITABLE

    def test_malformed_conflict_response_does_not_strand_cell(self, activities, students, records):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"data": ["unexpected"]})
            return httpx.Response(200, json={"success": True})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        saver = GradeSaver(base_url="http://backend", check_conflicts=True, client=client)
        store = GradeEntryStore(activities, students, records, saver=saver)
        store.edit("S2", "q1", "30")
        summary = asyncio.run(store.save_all())
        assert summary["failed"] == 1
        assert store.get("S2", "q1").state is CellState.EDITABLE

    def test_commit_without_saver_fails_softly(self, activities, students):
        store = GradeEntryStore(activities, students)
        store.edit("S2", "q1", "30")
        outcome = asyncio.run(store.commit("S2", "q1"))
        assert outcome["status"] == "failed"
        assert store.get("S2", "q1").state is CellState.EDITABLE

    def test_save_all_only_editable_numeric(self, activities, students, records):
        saver = FakeSaver(fail_for={"S3"})
        store = GradeEntryStore(activities, students, records, saver=saver)
        store.edit("S2", "q1", "30")
        store.edit("S3", "q1", "35")
        store.edit("S2", "m1", "")
        store.edit("S3", "m1", "9x")
        summary = asyncio.run(store.save_all())

        assert summary["submitted"] == 2
        assert summary["saved"] == 1
        assert summary["failed"] == 1
        assert summary["skipped"] == 2
        # Locked S1/q1 is never resubmitted.
        assert sorted((c[0], c[1]) for c in saver.calls) == [("q1", "S2"), ("q1", "S3")]
        assert store.get("S2", "q1").state is CellState.LOCKED
        assert store.get("S3", "q1").state is CellState.EDITABLE
        assert store.get("S3", "q1").value is None

    def test_effective_scores_and_class_record(self, activities, students, records):
        store = GradeEntryStore(activities, students, records)
        store.edit("S2", "q1", "45")
        store.edit("S3", "q1", "abc")
        scores = store.effective_scores()
        assert scores == {("S1", "q1"): 40.0, ("S2", "q1"): 45.0}
        rows = {r["student_id"]: r for r in store.class_record()["rows"]}
        assert rows["S2"]["rank"] == 1
        assert rows["S1"]["rank"] == 2
        assert rows["S3"]["rank"] == 0

    def test_activity_progress_and_ranking(self, activities, students, records):
        store = GradeEntryStore(activities, students, records)
        store.edit("S2", "q1", "20")
        progress = store.activity_progress("q1")
        assert progress["passed"] == 1
        assert progress["failed"] == 1
        assert progress["pending"] == 1
        assert store.activity_ranking("q1") == {"S1": 1, "S2": 2, "S3": 0}
