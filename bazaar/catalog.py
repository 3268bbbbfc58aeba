"""
catalog.py - Catalog Query Engine

Read-only queries over marketplace state for browsing and search.

The module-level functions are pure: they take a MarketView and return new
lists of immutable entities, never live views. The Catalog class binds them
to a Repository and evaluates every query against a single snapshot, so a
query that reads several collections can never straddle a commit.

No query raises. Unknown ids and empty input produce empty results.
"""

from __future__ import annotations
from typing import Iterable, List, Optional, Set

from .core import Item, MarketView, Transaction, User
from .repository import Repository


# ============================================================================
# PURE QUERIES
# ============================================================================

def items_by_seller(view: MarketView, seller_id: str) -> List[Item]:
    """All items listed by a seller, available or sold."""
    return [item for item in view.list_items() if item.seller_id == seller_id]


def available_items(view: MarketView) -> List[Item]:
    return [item for item in view.list_items() if item.is_available]


def available_items_except_seller(view: MarketView, seller_id: str) -> List[Item]:
    """Available items a user could buy, i.e. not their own listings."""
    return [
        item for item in view.list_items()
        if item.is_available and item.seller_id != seller_id
    ]


def items_by_ids(view: MarketView, item_ids: Iterable[str]) -> List[Item]:
    """
    Items whose ids are in item_ids, in listing order.

    Unknown ids are skipped.
    """
    wanted: Set[str] = set(item_ids)
    if not wanted:
        return []
    return [item for item in view.list_items() if item.id in wanted]


def search_items(view: MarketView, query: str) -> List[Item]:
    """
    Case-insensitive substring search over available items.

    Matches the query against title, description and category. A blank
    query matches nothing.
    """
    needle = (query or "").strip().lower()
    if not needle:
        return []
    return [item for item in view.list_items() if item.is_available and item.matches(needle)]


def user_transactions(view: MarketView, user_id: str) -> List[Transaction]:
    """Transactions where the user was buyer or seller, in settlement order."""
    return [
        tx for tx in view.list_transactions()
        if tx.buyer_id == user_id or tx.seller_id == user_id
    ]


def purchased_items(view: MarketView, user_id: str) -> List[Item]:
    bought = {tx.item_id for tx in view.list_transactions() if tx.buyer_id == user_id}
    return items_by_ids(view, bought)


def sold_items(view: MarketView, user_id: str) -> List[Item]:
    sold = {tx.item_id for tx in view.list_transactions() if tx.seller_id == user_id}
    return items_by_ids(view, sold)


# ============================================================================
# REPOSITORY-BOUND FACADE
# ============================================================================

class Catalog:
    """
    Query engine bound to a Repository.

    Example:
        catalog = Catalog(repository)
        for item in catalog.search("camera"):
            print(item.title, item.price)
    """

    def __init__(self, repository: Repository):
        self.repository = repository

    def get_item(self, item_id: str) -> Optional[Item]:
        return self.repository.snapshot().get_item(item_id)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.repository.snapshot().get_user(user_id)

    def items_by_seller(self, seller_id: str) -> List[Item]:
        return items_by_seller(self.repository.snapshot(), seller_id)

    def available_items(self) -> List[Item]:
        return available_items(self.repository.snapshot())

    def available_items_except_seller(self, seller_id: str) -> List[Item]:
        return available_items_except_seller(self.repository.snapshot(), seller_id)

    def items_by_ids(self, item_ids: Iterable[str]) -> List[Item]:
        return items_by_ids(self.repository.snapshot(), item_ids)

    def search(self, query: str) -> List[Item]:
        return search_items(self.repository.snapshot(), query)

    def user_transactions(self, user_id: str) -> List[Transaction]:
        return user_transactions(self.repository.snapshot(), user_id)

    def purchased_items(self, user_id: str) -> List[Item]:
        return purchased_items(self.repository.snapshot(), user_id)

    def sold_items(self, user_id: str) -> List[Item]:
        return sold_items(self.repository.snapshot(), user_id)
