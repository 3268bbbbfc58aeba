"""
test_repository.py - Unit tests for Repository and Draft

Tests:
- Unit of work: commit, rollback on error, no save when nothing changed
- Persistence retries and PersistenceFailure
- Id counters and load-time reconciliation
"""

import pytest
from dataclasses import replace
from decimal import Decimal

from bazaar import (
    Repository, Draft, MarketState, InMemoryGateway, PersistenceFailure,
)

from ..fake_gateway import FlakyGateway
from ..fake_view import make_item
from ..helpers import build_market


@pytest.fixture
def populated():
    market = build_market(seed=True)
    return market.repository.snapshot()


class TestUnitOfWork:

    def test_commit_publishes_and_saves(self, populated):
        gateway = InMemoryGateway(populated)
        repo = Repository(gateway, verbose=False)
        with repo.unit_of_work() as draft:
            john = draft.get_user("1")
            draft.put_user(replace(john, cash_balance=Decimal("1")))
        assert repo.get_user("1").cash_balance == Decimal("1")
        assert gateway.load_all().get_user("1").cash_balance == Decimal("1")
        assert gateway.save_count == 1

    def test_exception_discards_draft(self, populated):
        gateway = InMemoryGateway(populated)
        repo = Repository(gateway, verbose=False)
        before = repo.snapshot()
        with pytest.raises(RuntimeError):
            with repo.unit_of_work() as draft:
                draft.delete_item("1")
                raise RuntimeError("boom")
        assert repo.snapshot() is before
        assert gateway.save_count == 0

    def test_clean_draft_is_not_saved(self, populated):
        gateway = InMemoryGateway(populated)
        repo = Repository(gateway, verbose=False)
        before = repo.snapshot()
        with repo.unit_of_work() as draft:
            draft.get_item("1")
        assert repo.snapshot() is before
        assert gateway.save_count == 0

    def test_readers_do_not_see_uncommitted_changes(self, populated):
        repo = Repository(InMemoryGateway(populated), verbose=False)
        with repo.unit_of_work() as draft:
            draft.delete_item("1")
            assert repo.get_item("1") is not None
            assert draft.get_item("1") is None
        assert repo.get_item("1") is None

    def test_old_snapshots_are_unaffected(self, populated):
        repo = Repository(InMemoryGateway(populated), verbose=False)
        old = repo.snapshot()
        with repo.unit_of_work() as draft:
            draft.delete_item("2")
        assert old.get_item("2") is not None
        assert repo.snapshot().get_item("2") is None


class TestPersistRetries:

    def test_transient_failure_is_retried(self, populated):
        gateway = FlakyGateway(failures=2, initial=populated)
        repo = Repository(gateway, persist_attempts=3, verbose=False)
        with repo.unit_of_work() as draft:
            draft.delete_item("4")
        assert gateway.attempts == 3
        assert repo.get_item("4") is None
        assert gateway.load_all().get_item("4") is None

    def test_exhausted_retries_roll_back(self, populated):
        gateway = FlakyGateway(failures=-1, initial=populated)
        repo = Repository(gateway, persist_attempts=2, verbose=False)
        before = repo.snapshot()
        with pytest.raises(PersistenceFailure, match="after 2 attempts") as info:
            with repo.unit_of_work() as draft:
                draft.delete_item("4")
        assert isinstance(info.value.__cause__, OSError)
        assert gateway.attempts == 2
        assert repo.snapshot() is before

    def test_failure_is_reported_when_verbose(self, populated, capsys):
        repo = Repository(FlakyGateway(failures=1, initial=populated), verbose=True)
        with repo.unit_of_work() as draft:
            draft.delete_item("4")
        assert "PERSIST FAILED (attempt 1/3)" in capsys.readouterr().out

    def test_invalid_attempt_count(self):
        with pytest.raises(ValueError):
            Repository(InMemoryGateway(), persist_attempts=0)

    def test_load_error_becomes_persistence_failure(self):
        class BrokenGateway(InMemoryGateway):
            def load_all(self):
                raise OSError("unreadable")

        with pytest.raises(PersistenceFailure, match="unreadable"):
            Repository(BrokenGateway())


class TestDraft:

    def test_next_id_is_monotonic(self):
        draft = Draft(MarketState())
        assert [draft.next_id("items") for _ in range(3)] == ["1", "2", "3"]
        assert draft.next_id("users") == "1"
        assert draft.dirty

    def test_unknown_collection(self):
        with pytest.raises(ValueError):
            Draft(MarketState()).next_id("widgets")

    def test_session_must_point_at_a_user(self):
        with pytest.raises(ValueError):
            Draft(MarketState()).current_user_id = "1"

    def test_setting_same_session_is_clean(self, populated):
        draft = Draft(populated)
        draft.current_user_id = None
        assert not draft.dirty

    def test_find_user_by_email(self, populated):
        draft = Draft(populated)
        assert draft.find_user_by_email("JOHN@example.com").id == "1"
        assert draft.find_user_by_email("ghost@example.com") is None


class TestReconcile:

    def test_counters_raised_above_existing_ids(self):
        stale = MarketState.build(
            users={},
            items={"7": make_item("7", seller_id="x"), "abc": make_item("abc", seller_id="x")},
            transactions=[],
            current_user_id=None,
            next_ids={"items": 2},
        )
        repo = Repository(InMemoryGateway(stale), verbose=False)
        assert repo.snapshot().next_ids["items"] == 8
        assert repo.snapshot().next_ids["users"] == 1

    def test_higher_counter_is_kept(self):
        state = MarketState.build({}, {"3": make_item("3")}, [], None, {"items": 10})
        repo = Repository(InMemoryGateway(state), verbose=False)
        assert repo.snapshot().next_ids["items"] == 10

    def test_non_ascii_digit_ids_are_ignored(self):
        state = MarketState.build({}, {"\u00b2": make_item("\u00b2"), "4": make_item("4")}, [], None, {})
        repo = Repository(InMemoryGateway(state), verbose=False)
        assert repo.snapshot().next_ids["items"] == 5

    def test_dangling_session_dropped(self):
        state = MarketState(current_user_id="42")
        repo = Repository(InMemoryGateway(state), verbose=False)
        assert repo.current_user_id is None

    def test_ids_not_reused_after_removal(self):
        market = build_market(seed=True)
        market.ledger.remove_item("4")
        reopened = build_market(market.repository.gateway)
        item = reopened.ledger.list_item("1", "Tent", "Two person", "80", "Outdoors")
        assert item.id == "5"
