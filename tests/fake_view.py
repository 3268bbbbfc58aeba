"""
fake_view.py - Test Helper for MarketView

Provides a minimal MarketView implementation for testing query functions
without a Repository, plus a terse factory for items.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from bazaar import Item, ItemStatus, Transaction, User


def make_item(
    item_id: str,
    seller_id: str = "1",
    title: str = "Thing",
    description: str = "",
    price: str = "10",
    category: str = "Misc",
    status: ItemStatus = ItemStatus.AVAILABLE,
) -> Item:
    return Item(
        id=item_id,
        seller_id=seller_id,
        title=title,
        description=description,
        price=Decimal(price),
        category=category,
        status=status,
        created_at=datetime(2025, 1, 1),
    )


def make_tx(tx_id: str, item_id: str, seller_id: str, buyer_id: str, price: str = "10") -> Transaction:
    return Transaction(
        id=tx_id,
        item_id=item_id,
        seller_id=seller_id,
        buyer_id=buyer_id,
        price=Decimal(price),
        timestamp=datetime(2025, 1, 2),
    )


class FakeView:
    """
    Minimal MarketView for testing catalog functions.

    Example:
        view = FakeView(items=[make_item("1", title="Camera")])
        search_items(view, "camera")
    """

    def __init__(
        self,
        users: Optional[List[User]] = None,
        items: Optional[List[Item]] = None,
        transactions: Optional[List[Transaction]] = None,
    ):
        self._users = list(users or [])
        self._items = list(items or [])
        self._transactions = list(transactions or [])

    def get_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self._users if u.id == user_id), None)

    def get_item(self, item_id: str) -> Optional[Item]:
        return next((i for i in self._items if i.id == item_id), None)

    def list_users(self) -> List[User]:
        return list(self._users)

    def list_items(self) -> List[Item]:
        return list(self._items)

    def list_transactions(self) -> List[Transaction]:
        return list(self._transactions)
