"""
repository.py - Entity Repository

The Repository holds the authoritative in-memory copy of users, items and
transactions. It is the only module that publishes new state.

Key responsibilities:
    - Loads the full state from the persistence gateway at construction
    - Publishes immutable MarketState snapshots to readers (copy-on-write)
    - Runs mutations as units of work: a mutable Draft under a global write
      lock, persisted and published only if the whole block succeeds
    - Issues ids from monotonic per-collection counters
    - Retries failed saves, then surfaces PersistenceFailure
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional
import threading

from .core import (
    # Types
    User, Item, Transaction, MarketState,
    # Constants
    COLLECTIONS, USERS, ITEMS, TRANSACTIONS,
    # Exceptions
    PersistenceFailure,
    # Helpers
    normalize_email,
)
from .persistence import PersistenceGateway


class Draft:
    """
    Mutable working copy of a MarketState, used inside a unit of work.

    Implements the MarketView protocol so validation code can read the state
    it is about to change. Nothing done to a Draft is visible to readers until
    the unit of work commits.
    """

    def __init__(self, state: MarketState):
        self.users: Dict[str, User] = dict(state.users)
        self.items: Dict[str, Item] = dict(state.items)
        self.transactions: List[Transaction] = list(state.transactions)
        self.next_ids: Dict[str, int] = dict(state.next_ids)
        self._current_user_id: Optional[str] = state.current_user_id
        self.dirty = False

    # ------------------------------------------------------------------
    # MarketView
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def get_item(self, item_id: str) -> Optional[Item]:
        return self.items.get(item_id)

    def list_users(self) -> List[User]:
        return list(self.users.values())

    def list_items(self) -> List[Item]:
        return list(self.items.values())

    def list_transactions(self) -> List[Transaction]:
        return list(self.transactions)

    def find_user_by_email(self, email: str) -> Optional[User]:
        key = normalize_email(email)
        for user in self.users.values():
            if normalize_email(user.email) == key:
                return user
        return None

    # ------------------------------------------------------------------
    # Mutation primitives
    # ------------------------------------------------------------------

    def next_id(self, collection: str) -> str:
        """Issue the next id for a collection. Ids are never reused."""
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection {collection!r}")
        issued = self.next_ids.get(collection, 1)
        self.next_ids[collection] = issued + 1
        self.dirty = True
        return str(issued)

    def put_user(self, user: User) -> None:
        """Insert or replace a user (replacement keeps registration order)."""
        self.users[user.id] = user
        self.dirty = True

    def put_item(self, item: Item) -> None:
        """Insert or replace an item (replacement keeps listing order)."""
        self.items[item.id] = item
        self.dirty = True

    def delete_item(self, item_id: str) -> Item:
        item = self.items.pop(item_id)
        self.dirty = True
        return item

    def append_transaction(self, tx: Transaction) -> None:
        self.transactions.append(tx)
        self.dirty = True

    @property
    def current_user_id(self) -> Optional[str]:
        return self._current_user_id

    @current_user_id.setter
    def current_user_id(self, user_id: Optional[str]) -> None:
        if user_id is not None and user_id not in self.users:
            raise ValueError(f"Session user {user_id} is not registered")
        if user_id != self._current_user_id:
            self._current_user_id = user_id
            self.dirty = True

    def freeze(self) -> MarketState:
        return MarketState.build(
            self.users, self.items, self.transactions,
            self._current_user_id, self.next_ids,
        )


class Repository:
    """
    Authoritative store for users, items and transactions.

    Readers call snapshot() (or the lookup helpers, which use it) and get an
    immutable MarketState. Writers go through unit_of_work():

        with repository.unit_of_work() as draft:
            user = draft.get_user("1")
            draft.put_user(replace(user, cash_balance=...))

    On normal exit the draft is persisted through the gateway and then
    published. If the block raises, or persistence fails after all retries,
    the draft is dropped and the published state is exactly what it was
    before the block started.

    Thread Safety:
        Writers are serialized by a single re-entrant lock. Readers never take
        the lock; they see either the state before a commit or after it.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        persist_attempts: int = 3,
        verbose: bool = True,
    ):
        """
        Create a repository and load its state.

        Args:
            gateway: Durable storage for the full state
            persist_attempts: Save attempts per commit before giving up (>= 1)
            verbose: Print persistence diagnostics (default: True)

        Raises:
            PersistenceFailure: If the gateway cannot load the stored state
        """
        if persist_attempts < 1:
            raise ValueError(f"persist_attempts must be >= 1, got {persist_attempts}")
        self.gateway = gateway
        self.persist_attempts = persist_attempts
        self.verbose = verbose
        self._lock = threading.RLock()
        self._state: MarketState = self._load()

    def _load(self) -> MarketState:
        try:
            state = self.gateway.load_all()
        except OSError as e:
            raise PersistenceFailure(f"Could not load marketplace state: {e}") from e
        return self._reconcile(state)

    @staticmethod
    def _reconcile(state: MarketState) -> MarketState:
        """
        Repair loaded state so that it cannot break id uniqueness or the session.

        Counters are raised above the largest numeric id present, and a session
        pointer to an unknown user is dropped.
        """
        existing = {
            USERS: state.users.keys(),
            ITEMS: state.items.keys(),
            TRANSACTIONS: [tx.id for tx in state.transactions],
        }
        next_ids = dict(state.next_ids)
        for collection in COLLECTIONS:
            numeric = [int(i) for i in existing[collection] if i.isdecimal()]
            floor = max(numeric, default=0) + 1
            next_ids[collection] = max(next_ids.get(collection, 1), floor)

        current = state.current_user_id
        if current is not None and current not in state.users:
            current = None

        return MarketState.build(
            dict(state.users), dict(state.items), list(state.transactions),
            current, next_ids,
        )

    # ========================================================================
    # READ ACCESS
    # ========================================================================

    def snapshot(self) -> MarketState:
        """Return the currently published state."""
        return self._state

    def is_empty(self) -> bool:
        return self._state.is_empty()

    def get_user(self, user_id: str) -> Optional[User]:
        return self._state.get_user(user_id)

    def get_item(self, item_id: str) -> Optional[Item]:
        return self._state.get_item(item_id)

    def list_users(self) -> List[User]:
        return self._state.list_users()

    def list_items(self) -> List[Item]:
        return self._state.list_items()

    def list_transactions(self) -> List[Transaction]:
        return self._state.list_transactions()

    def items_by_seller(self, seller_id: str) -> List[Item]:
        return [item for item in self._state.items.values() if item.seller_id == seller_id]

    def find_user_by_email(self, email: str) -> Optional[User]:
        key = normalize_email(email)
        for user in self._state.users.values():
            if normalize_email(user.email) == key:
                return user
        return None

    @property
    def current_user_id(self) -> Optional[str]:
        return self._state.current_user_id

    # ========================================================================
    # WRITE ACCESS
    # ========================================================================

    @contextmanager
    def unit_of_work(self) -> Iterator[Draft]:
        """
        Run a block of mutations as one atomic, persisted change.

        Yields:
            A Draft of the current state

        Raises:
            PersistenceFailure: If the commit cannot be saved
            Any exception raised by the block (nothing is committed)
        """
        with self._lock:
            draft = Draft(self._state)
            yield draft
            if not draft.dirty:
                return
            committed = draft.freeze()
            self.persist(committed)
            self._state = committed

    def persist(self, state: Optional[MarketState] = None) -> None:
        """
        Save the full state through the gateway.

        Called by unit_of_work() as the commit point. Gateway errors
        (PersistenceFailure or OSError) are retried up to persist_attempts
        times in total.

        Args:
            state: State to save (default: the published state)

        Raises:
            PersistenceFailure: If every attempt fails
        """
        state = state if state is not None else self._state
        last_error: Optional[Exception] = None
        with self._lock:
            for attempt in range(1, self.persist_attempts + 1):
                try:
                    self.gateway.save_all(state)
                    return
                except (PersistenceFailure, OSError) as e:
                    last_error = e
                    if self.verbose:
                        print(f"⚠️  PERSIST FAILED (attempt {attempt}/{self.persist_attempts}): {e}")
        raise PersistenceFailure(
            f"Could not persist marketplace state after {self.persist_attempts} attempts: {last_error}"
        ) from last_error

    def __repr__(self) -> str:
        return f"Repository({self._state!r}, gateway={self.gateway!r})"
