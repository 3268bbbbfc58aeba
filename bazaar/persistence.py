"""
persistence.py - Persistence gateways for marketplace state

Provides the storage contract consumed by the Repository and two
implementations of it.

Classes:
- PersistenceGateway: Protocol defining load_all() / save_all()
- InMemoryGateway: Process-local storage, used for tests and ephemeral runs
- JsonFileGateway: One JSON document on disk, replaced atomically on save

The gateway always stores and returns a complete MarketState. There is no
partial save: either the whole snapshot is written or the previous one stays.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable
import json
import os
import tempfile

from .core import (
    User, Item, Transaction, ItemStatus, MarketState,
    COLLECTIONS, PersistenceFailure,
)


# Bumped whenever the on-disk document layout changes.
DOCUMENT_VERSION = 1


@runtime_checkable
class PersistenceGateway(Protocol):
    """
    Protocol for durable marketplace storage.

    load_all() is called once when a Repository is created and must return an
    empty MarketState when nothing has been stored yet. save_all() is called
    after every committed mutation and must be all-or-nothing from the
    caller's perspective.

    Implementations signal failure by raising PersistenceFailure or OSError.
    """

    def load_all(self) -> MarketState:
        """Return the stored state, or an empty state if there is none."""
        ...

    def save_all(self, state: MarketState) -> None:
        """Replace the stored state with the given snapshot."""
        ...


class InMemoryGateway:
    """
    Gateway that keeps the last saved snapshot in memory.

    MarketState is immutable, so holding a reference is enough to make later
    reads independent of the Repository that saved it.
    """

    def __init__(self, initial: Optional[MarketState] = None):
        self._saved: Optional[MarketState] = initial
        self.save_count = 0

    def load_all(self) -> MarketState:
        return self._saved if self._saved is not None else MarketState()

    def save_all(self, state: MarketState) -> None:
        self._saved = state
        self.save_count += 1

    def __repr__(self):
        return f"InMemoryGateway(saves={self.save_count})"


# ============================================================================
# DOCUMENT ENCODING
# ============================================================================

def _encode_decimal(value: Decimal) -> str:
    return format(value, 'f')


def _decode_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid decimal value {value!r}") from None


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "credential": user.credential,
        "cash_balance": _encode_decimal(user.cash_balance),
        "created_at": user.created_at.isoformat(),
    }


def user_from_dict(data: Dict[str, Any]) -> User:
    return User(
        id=str(data["id"]),
        username=data["username"],
        email=data["email"],
        credential=data["credential"],
        cash_balance=_decode_decimal(data["cash_balance"]),
        created_at=datetime.fromisoformat(data["created_at"]),
    )


def item_to_dict(item: Item) -> Dict[str, Any]:
    return {
        "id": item.id,
        "seller_id": item.seller_id,
        "title": item.title,
        "description": item.description,
        "price": _encode_decimal(item.price),
        "category": item.category,
        "status": item.status.value,
        "created_at": item.created_at.isoformat(),
        "image": item.image,
    }


def item_from_dict(data: Dict[str, Any]) -> Item:
    return Item(
        id=str(data["id"]),
        seller_id=str(data["seller_id"]),
        title=data["title"],
        description=data["description"],
        price=_decode_decimal(data["price"]),
        category=data["category"],
        status=ItemStatus(data["status"]),
        created_at=datetime.fromisoformat(data["created_at"]),
        image=data.get("image"),
    )


def transaction_to_dict(tx: Transaction) -> Dict[str, Any]:
    return {
        "id": tx.id,
        "item_id": tx.item_id,
        "seller_id": tx.seller_id,
        "buyer_id": tx.buyer_id,
        "price": _encode_decimal(tx.price),
        "timestamp": tx.timestamp.isoformat(),
    }


def transaction_from_dict(data: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=str(data["id"]),
        item_id=str(data["item_id"]),
        seller_id=str(data["seller_id"]),
        buyer_id=str(data["buyer_id"]),
        price=_decode_decimal(data["price"]),
        timestamp=datetime.fromisoformat(data["timestamp"]),
    )


def state_to_document(state: MarketState) -> Dict[str, Any]:
    """Encode a MarketState as a JSON-compatible dict."""
    return {
        "version": DOCUMENT_VERSION,
        "users": [user_to_dict(u) for u in state.users.values()],
        "items": [item_to_dict(i) for i in state.items.values()],
        "transactions": [transaction_to_dict(t) for t in state.transactions],
        "current_user_id": state.current_user_id,
        "next_ids": dict(state.next_ids),
    }


def state_from_document(document: Dict[str, Any]) -> MarketState:
    """
    Decode a dict produced by state_to_document().

    Raises:
        ValueError: If the document is malformed or has an unknown version
    """
    if not isinstance(document, dict):
        raise ValueError(f"Expected a JSON object, got {type(document).__name__}")
    version = document.get("version")
    if version != DOCUMENT_VERSION:
        raise ValueError(f"Unsupported document version {version!r}")
    try:
        users = [user_from_dict(d) for d in document.get("users", [])]
        items = [item_from_dict(d) for d in document.get("items", [])]
        transactions = [transaction_from_dict(d) for d in document.get("transactions", [])]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed record: {e!r}") from e

    counters = document.get("next_ids", {})
    if not isinstance(counters, dict):
        raise ValueError(f"next_ids must be a JSON object, got {type(counters).__name__}")
    next_ids = {name: 1 for name in COLLECTIONS}
    try:
        next_ids.update({k: int(v) for k, v in counters.items()})
    except TypeError as e:
        raise ValueError(f"Malformed id counter: {e!r}") from e
    current = document.get("current_user_id")
    return MarketState.build(
        users={u.id: u for u in users},
        items={i.id: i for i in items},
        transactions=transactions,
        current_user_id=str(current) if current is not None else None,
        next_ids=next_ids,
    )


class JsonFileGateway:
    """
    Gateway storing the full state as a single JSON document.

    Saves write a temporary file in the target directory and move it over the
    previous document with os.replace(), which is atomic on POSIX and Windows.
    A reader therefore sees either the old document or the new one.
    """

    def __init__(self, path: Union[str, Path], indent: Optional[int] = 2):
        """
        Args:
            path: Location of the JSON document (created on first save)
            indent: JSON indentation, None for compact output
        """
        self.path = Path(path)
        self.indent = indent

    def load_all(self) -> MarketState:
        if not self.path.exists():
            return MarketState()
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
            return state_from_document(document)
        except OSError as e:
            raise PersistenceFailure(f"Could not read {self.path}: {e}") from e
        except ValueError as e:
            raise PersistenceFailure(f"Corrupt marketplace document {self.path}: {e}") from e

    def save_all(self, state: MarketState) -> None:
        payload = json.dumps(state_to_document(state), indent=self.indent, ensure_ascii=False)
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise PersistenceFailure(f"Could not write {self.path}: {e}") from e

    def __repr__(self):
        return f"JsonFileGateway({str(self.path)!r})"
