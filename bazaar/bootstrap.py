"""
bootstrap.py - Marketplace wiring and sample data

open_marketplace() builds the component graph in dependency order:

    PersistenceGateway -> Repository -> SessionGate -> Ledger
                                     -> Catalog

and seeds the sample users and items when the storage is empty. Seeding is a
convenience for first runs and fixtures, not part of the ledger's contract.
Given a fixed clock it is fully reproducible, apart from credential salts.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from .core import (
    User, Item, ItemStatus,
    STARTING_BALANCE, CREDENTIAL_HASH_ITERATIONS,
    USERS, ITEMS,
    hash_secret,
)
from .catalog import Catalog
from .ledger import Ledger
from .persistence import InMemoryGateway, PersistenceGateway
from .repository import Repository
from .session import SessionGate


SAMPLE_PASSWORD = "password123"

SAMPLE_USERS = (
    {"username": "john_doe", "email": "john@example.com", "cash_balance": Decimal("1000")},
    {"username": "jane_smith", "email": "jane@example.com", "cash_balance": Decimal("1500")},
)

# seller is an index into SAMPLE_USERS
SAMPLE_ITEMS = (
    {"seller": 0, "title": "Vintage Camera", "price": Decimal("250"), "category": "Electronics",
     "description": "A beautiful vintage camera in excellent condition"},
    {"seller": 0, "title": "Mountain Bike", "price": Decimal("450"), "category": "Sports",
     "description": "High-quality mountain bike, barely used"},
    {"seller": 1, "title": "Designer Watch", "price": Decimal("350"), "category": "Fashion",
     "description": "Luxury designer watch, water resistant"},
    {"seller": 1, "title": "Laptop Stand", "price": Decimal("75"), "category": "Office",
     "description": "Ergonomic laptop stand, adjustable height"},
)


@dataclass(frozen=True)
class Marketplace:
    """The wired components of one marketplace process."""
    repository: Repository
    ledger: Ledger
    catalog: Catalog
    session: SessionGate


def seed_sample_data(ledger: Ledger) -> bool:
    """
    Populate an empty marketplace with the sample users and items.

    All records are written in one unit of work. Does nothing if any user,
    item or transaction already exists.

    Returns:
        True if the sample data was written
    """
    with ledger.repository.unit_of_work() as draft:
        if draft.users or draft.items or draft.transactions:
            return False
        now = ledger.current_time
        user_ids = []
        for sample in SAMPLE_USERS:
            user = User(
                id=draft.next_id(USERS),
                username=sample["username"],
                email=sample["email"],
                credential=hash_secret(SAMPLE_PASSWORD, ledger.hash_iterations),
                cash_balance=sample["cash_balance"],
                created_at=now,
            )
            draft.put_user(user)
            user_ids.append(user.id)
        for sample in SAMPLE_ITEMS:
            draft.put_item(Item(
                id=draft.next_id(ITEMS),
                seller_id=user_ids[sample["seller"]],
                title=sample["title"],
                description=sample["description"],
                price=sample["price"],
                category=sample["category"],
                status=ItemStatus.AVAILABLE,
                created_at=now,
            ))

    if ledger.verbose:
        print(f"🌱 Seeded {len(SAMPLE_USERS)} users and {len(SAMPLE_ITEMS)} items")
    return True


def open_marketplace(
    gateway: Optional[PersistenceGateway] = None,
    *,
    seed: bool = True,
    clock: Optional[Callable[[], datetime]] = None,
    starting_balance: Decimal = STARTING_BALANCE,
    hash_iterations: int = CREDENTIAL_HASH_ITERATIONS,
    persist_attempts: int = 3,
    verbose: bool = True,
) -> Marketplace:
    """
    Load state from a gateway and wire up the marketplace components.

    Args:
        gateway: Storage backend (default: a fresh InMemoryGateway)
        seed: Write the sample data if the storage is empty (default: True)
        clock: Timestamp source for new records (default: current UTC time)
        starting_balance: Cash credited on registration
        hash_iterations: PBKDF2 iterations for new credentials
        persist_attempts: Save attempts per commit before PersistenceFailure
        verbose: Print operation outcomes (default: True)

    Returns:
        A Marketplace holding the repository, ledger, catalog and session gate

    Raises:
        PersistenceFailure: If the stored state cannot be loaded, or the
            sample data cannot be saved
    """
    repository = Repository(
        gateway if gateway is not None else InMemoryGateway(),
        persist_attempts=persist_attempts,
        verbose=verbose,
    )
    session = SessionGate(repository, verbose=verbose)
    ledger = Ledger(
        repository,
        session=session,
        clock=clock,
        starting_balance=starting_balance,
        hash_iterations=hash_iterations,
        verbose=verbose,
    )
    if seed and repository.is_empty():
        seed_sample_data(ledger)
    return Marketplace(
        repository=repository,
        ledger=ledger,
        catalog=Catalog(repository),
        session=session,
    )
