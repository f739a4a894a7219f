"""Unit tests for the parking board lifecycle."""

import itertools

import pytest

from stagedo.models import CLEARED, DELETED, LATER, RESOLVED_DONE, UNKNOWN, ChecklistItem, ListDocument
from stagedo.parking import ParkingBoard


@pytest.fixture
def clock():
    counter = itertools.count(1)
    return lambda: f"2024-01-01T00:00:{next(counter):02d}Z"


@pytest.fixture
def board(clock):
    return ParkingBoard(ListDocument(), clock)


class TestUpsert:
    """Test cases for ParkingBoard.upsert."""

    def test_insert(self, board):
        item = ChecklistItem.new_task("Buy tools", "Prep")

        entry = board.upsert(item, LATER, 2)

        assert board.doc.parked == [entry]
        assert (entry.key, entry.text, entry.category) == (item.key, "Buy tools", "Prep")
        assert entry.status == LATER
        assert entry.stage == 2
        assert entry.created_at == entry.updated_at

    def test_update_refreshes_and_reopens(self, board):
        item = ChecklistItem.new_task("Buy tools", "Prep")
        entry = board.upsert(item, LATER, 2)
        board.resolve(item.key, CLEARED)

        again = board.upsert(item, UNKNOWN, 5)

        assert again is entry
        assert len(board.doc.parked) == 1
        assert entry.status == UNKNOWN
        assert entry.stage == 2
        assert entry.resolution is None
        assert entry.resolved_at is None
        assert entry.updated_at != entry.created_at

    def test_stage_filled_when_first_seen_at_zero(self, board):
        item = ChecklistItem.new_task("Buy tools")
        entry = board.upsert(item, LATER, 0)
        board.upsert(item, LATER, 3)
        assert entry.stage == 3

    def test_rejects_other_statuses(self, board):
        with pytest.raises(ValueError):
            board.upsert(ChecklistItem.new_task("x"), "normal", 1)


class TestCarryOver:
    """Test cases for stage-boundary carry-over."""

    def test_new_entry_is_later(self, board):
        entry = board.carry_over(ChecklistItem.new_task("Buy tools"), 1)
        assert entry.status == LATER

    def test_unresolved_unknown_wins(self, board):
        item = ChecklistItem.new_task("Buy tools")
        board.upsert(item, UNKNOWN, 1)
        assert board.carry_over(item, 1).status == UNKNOWN

    def test_resolved_unknown_becomes_later(self, board):
        item = ChecklistItem.new_task("Buy tools")
        board.upsert(item, UNKNOWN, 1)
        board.resolve(item.key, CLEARED)

        entry = board.carry_over(item, 2)

        assert entry.status == LATER
        assert not entry.is_resolved


class TestResolve:
    """Test cases for resolution and reopening."""

    def test_resolve_is_idempotent(self, board):
        item = ChecklistItem.new_task("Buy tools")
        entry = board.upsert(item, LATER, 1)

        assert board.resolve(item.key, DELETED) is True
        stamped = entry.resolved_at
        assert board.resolve(item.key, RESOLVED_DONE) is False
        assert entry.resolution == DELETED
        assert entry.resolved_at == stamped

    def test_missing_key(self, board):
        assert board.resolve("nope", CLEARED) is False

    def test_rejects_unknown_resolution(self, board):
        with pytest.raises(ValueError):
            board.resolve("nope", "forgotten")

    def test_reopen_only_reverses_done(self, board):
        done_item = ChecklistItem.new_task("a")
        cleared_item = ChecklistItem.new_task("b")
        board.upsert(done_item, LATER, 1)
        board.upsert(cleared_item, LATER, 1)
        board.resolve(done_item.key, RESOLVED_DONE)
        board.resolve(cleared_item.key, CLEARED)

        assert board.reopen_if_done_resolved(done_item) is True
        assert board.reopen_if_done_resolved(cleared_item) is False
        assert [p.text for p in board.active()] == ["a"]
        assert [p.text for p in board.resolved()] == ["b"]
