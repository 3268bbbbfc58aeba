"""
Core types and pure functions for the marketplace ledger.

This module provides the foundational data structures and protocols:
1. Protocols: MarketView for read-only access to marketplace state
2. Immutable data structures: User, Item, Transaction, MarketState
3. Exceptions: MarketError and the domain-specific error types
4. Money helpers: parsing and rounding of cash amounts
5. Credential helpers: salted hashing and verification of user secrets

All functions in this module are pure. Nothing here can mutate the
authoritative state held by the Repository.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from enum import Enum
from types import MappingProxyType
import hashlib
import hmac
import secrets
from typing import (
    Any, Dict, FrozenSet, List, Mapping, Optional, Protocol, Tuple, Type,
    runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Cash handed to every newly registered user.
STARTING_BALANCE = Decimal("500")

# Cash amounts are kept at cent precision with banker's rounding.
CASH_DECIMAL_PLACES = 2
CASH_QUANTIZER = Decimal(10) ** -CASH_DECIMAL_PLACES
CASH_ROUNDING = ROUND_HALF_EVEN

# PBKDF2 work factor for stored credentials.
CREDENTIAL_HASH_ITERATIONS = 120_000
CREDENTIAL_HASH_SCHEME = "pbkdf2_sha256"

# Fields a seller may change on a listed item. Everything else (id, seller,
# status, creation time, image) is fixed once the item exists.
EDITABLE_ITEM_FIELDS: FrozenSet[str] = frozenset({"title", "description", "price", "category"})

# Id counter keys, one per collection.
USERS = "users"
ITEMS = "items"
TRANSACTIONS = "transactions"
COLLECTIONS: Tuple[str, ...] = (USERS, ITEMS, TRANSACTIONS)


# ============================================================================
# ENUMS
# ============================================================================

class ItemStatus(Enum):
    """
    Lifecycle state of a listed item.

    AVAILABLE: Listed and purchasable. The seller may edit or remove it.
    SOLD: Settled by exactly one purchase. Terminal.
    """
    AVAILABLE = "available"
    SOLD = "sold"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarketError(Exception):
    """Base exception for all marketplace ledger errors."""
    pass


class DuplicateEmail(MarketError):
    """Raised when registering with an email that another user already holds."""
    pass


class InvalidRegistration(MarketError):
    """Raised when a registration is missing its username, email or secret."""
    pass


class InvalidCredentials(MarketError):
    """Raised when no user matches the supplied email and secret."""
    pass


class InvalidAmount(MarketError):
    """Raised when a deposit amount is not a finite positive number."""
    pass


class InvalidPrice(MarketError):
    """Raised when an item price is not a finite positive number."""
    pass


class InvalidListing(MarketError):
    """Raised when an item title, description or category is not usable text."""
    pass


class ItemNotFound(MarketError):
    """Raised when an item id does not resolve to a listed item."""
    pass


class ItemAlreadySold(MarketError):
    """Raised when an operation requires an available item but it has been sold."""
    pass


class ImmutableField(MarketError):
    """Raised when an item update touches a field outside EDITABLE_ITEM_FIELDS."""
    pass


class BuyerNotFound(MarketError):
    """Raised when the buyer of a purchase does not resolve to a user."""
    pass


class SellerNotFound(MarketError):
    """Raised when the seller of an item does not resolve to a user."""
    pass


class InsufficientFunds(MarketError):
    """Raised when a buyer's cash balance is below the item price."""
    pass


class UserNotFound(MarketError):
    """Raised when a user id does not resolve to a registered user."""
    pass


class PersistenceFailure(MarketError):
    """Raised when state cannot be loaded from or committed to the persistence gateway."""
    pass


# ============================================================================
# MONEY
# ============================================================================

def round_cash(value: Decimal) -> Decimal:
    """Quantize a Decimal to cash precision."""
    return value.quantize(CASH_QUANTIZER, rounding=CASH_ROUNDING)


def parse_cash(value: Any, error: Type[MarketError]) -> Decimal:
    """
    Convert a caller-supplied amount into a positive cash Decimal.

    Accepts Decimal, int, float and numeric strings. Floats go through str()
    so that 0.1 becomes Decimal("0.1") and not its binary expansion.

    Args:
        value: The amount to convert
        error: Exception class raised when the amount is unusable

    Returns:
        The amount rounded to cash precision

    Raises:
        error: If the value is not numeric, not finite, or not positive
            after rounding
    """
    if isinstance(value, bool):
        raise error(f"Amount must be a number, got {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise error(f"Amount must be a number, got {value!r}") from None
    else:
        raise error(f"Amount must be a number, got {type(value).__name__}")

    if not amount.is_finite():
        raise error(f"Amount must be finite, got {value!r}")
    amount = round_cash(amount)
    if amount <= 0:
        raise error(f"Amount must be positive, got {value!r}")
    return amount


# ============================================================================
# CREDENTIALS
# ============================================================================

def hash_secret(secret: str, iterations: int = CREDENTIAL_HASH_ITERATIONS,
                salt: Optional[bytes] = None) -> str:
    """
    Derive a storable credential from a plaintext secret.

    Format: pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>
    """
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")
    salt = salt if salt is not None else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode(), salt, iterations)
    return f"{CREDENTIAL_HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def verify_secret(secret: str, credential: str) -> bool:
    """Check a plaintext secret against a credential produced by hash_secret()."""
    try:
        scheme, iterations, salt_hex, digest_hex = credential.split("$")
        if scheme != CREDENTIAL_HASH_SCHEME:
            return False
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    if rounds < 1:
        return False
    actual = hashlib.pbkdf2_hmac("sha256", secret.encode(), salt, rounds)
    return hmac.compare_digest(actual, expected)


def normalize_email(email: str) -> str:
    """Key used for email uniqueness and login lookup."""
    return email.strip().casefold()


# ============================================================================
# ENTITIES
# ============================================================================

def _require_text(value: Any, what: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{what} cannot be empty")


@dataclass(frozen=True, slots=True)
class User:
    """
    A marketplace participant.

    Attributes:
        id: Opaque identifier, unique for the lifetime of the state.
        username: Display name.
        email: Login email, unique (case-insensitively) across users.
        credential: Salted hash of the user's secret (see hash_secret()).
        cash_balance: Spendable cash, never negative.
        created_at: Registration time.
    """
    id: str
    username: str
    email: str
    credential: str
    cash_balance: Decimal
    created_at: datetime

    def __post_init__(self):
        _require_text(self.id, "User id")
        _require_text(self.username, "User username")
        _require_text(self.email, "User email")
        if not isinstance(self.credential, str):
            raise ValueError(f"User credential must be str, got {type(self.credential)}")
        if not isinstance(self.cash_balance, Decimal):
            raise ValueError(f"User cash_balance must be Decimal, got {type(self.cash_balance)}")
        if not self.cash_balance.is_finite():
            raise ValueError(f"User cash_balance must be finite, got {self.cash_balance}")
        if self.cash_balance < 0:
            raise ValueError(f"User cash_balance cannot be negative, got {self.cash_balance}")

    def __repr__(self) -> str:
        return f"User({self.id}: {self.username} <{self.email}> balance={self.cash_balance})"


@dataclass(frozen=True, slots=True)
class Item:
    """
    A listing offered for sale by a seller.

    Attributes:
        id: Opaque identifier, unique for the lifetime of the state.
        seller_id: Id of the owning user.
        title: Short headline.
        description: Free text.
        price: Asking price, strictly positive.
        category: Category label (e.g. "Electronics").
        status: AVAILABLE until a purchase settles it, then SOLD.
        created_at: Listing time.
        image: Optional image reference (URL or path).
    """
    id: str
    seller_id: str
    title: str
    description: str
    price: Decimal
    category: str
    status: ItemStatus
    created_at: datetime
    image: Optional[str] = None

    def __post_init__(self):
        _require_text(self.id, "Item id")
        _require_text(self.seller_id, "Item seller_id")
        _require_text(self.title, "Item title")
        for name in ("description", "category"):
            if not isinstance(getattr(self, name), str):
                raise ValueError(f"Item {name} must be str, got {type(getattr(self, name))}")
        if not isinstance(self.price, Decimal):
            raise ValueError(f"Item price must be Decimal, got {type(self.price)}")
        if not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"Item price must be finite and positive, got {self.price}")
        if not isinstance(self.status, ItemStatus):
            raise ValueError(f"Item status must be ItemStatus, got {self.status!r}")

    @property
    def is_available(self) -> bool:
        return self.status is ItemStatus.AVAILABLE

    def matches(self, needle: str) -> bool:
        """True if the lowercased needle occurs in title, description or category."""
        return (
            needle in self.title.lower()
            or needle in self.description.lower()
            or needle in self.category.lower()
        )

    def __repr__(self) -> str:
        return f"Item({self.id}: {self.title!r} {self.price} [{self.status.value}] seller={self.seller_id})"


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    Settlement record of a purchase - append-only audit fact.

    The price is frozen at the moment of sale, so later edits to the listing
    never change history.
    """
    id: str
    item_id: str
    seller_id: str
    buyer_id: str
    price: Decimal
    timestamp: datetime

    def __post_init__(self):
        _require_text(self.id, "Transaction id")
        _require_text(self.item_id, "Transaction item_id")
        _require_text(self.seller_id, "Transaction seller_id")
        _require_text(self.buyer_id, "Transaction buyer_id")
        if not isinstance(self.price, Decimal) or not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"Transaction price must be a positive Decimal, got {self.price!r}")

    def __repr__(self) -> str:
        return (f"Transaction({self.id}: item={self.item_id} "
                f"{self.price} {self.buyer_id}→{self.seller_id})")


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class MarketView(Protocol):
    """
    Read-only interface to marketplace state.

    Query functions accept a MarketView to declare their read-only intent.
    MarketState, the Repository's Draft, and the test FakeView implement it.
    Lookups return None for unknown ids instead of raising.
    """

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_item(self, item_id: str) -> Optional[Item]:
        ...

    def list_users(self) -> List[User]:
        ...

    def list_items(self) -> List[Item]:
        ...

    def list_transactions(self) -> List[Transaction]:
        ...


# ============================================================================
# STATE SNAPSHOT
# ============================================================================

def _empty_counters() -> Mapping[str, int]:
    return MappingProxyType({name: 1 for name in COLLECTIONS})


@dataclass(frozen=True, slots=True)
class MarketState:
    """
    Immutable snapshot of the whole marketplace.

    This is both what the Repository publishes to readers and what the
    persistence gateway stores. Mappings are read-only views and entities are
    frozen, so a snapshot can be shared freely across threads.

    Attributes:
        users: user id -> User, in registration order
        items: item id -> Item, in listing order
        transactions: Transactions in settlement order
        current_user_id: Id of the session user, if any
        next_ids: collection name -> next id to issue
    """
    users: Mapping[str, User] = field(default_factory=lambda: MappingProxyType({}))
    items: Mapping[str, Item] = field(default_factory=lambda: MappingProxyType({}))
    transactions: Tuple[Transaction, ...] = ()
    current_user_id: Optional[str] = None
    next_ids: Mapping[str, int] = field(default_factory=_empty_counters)

    @classmethod
    def build(
        cls,
        users: Dict[str, User],
        items: Dict[str, Item],
        transactions: List[Transaction],
        current_user_id: Optional[str],
        next_ids: Dict[str, int],
    ) -> MarketState:
        """Freeze mutable collections into a snapshot (copies are taken)."""
        return cls(
            users=MappingProxyType(dict(users)),
            items=MappingProxyType(dict(items)),
            transactions=tuple(transactions),
            current_user_id=current_user_id,
            next_ids=MappingProxyType(dict(next_ids)),
        )

    def is_empty(self) -> bool:
        return not self.users and not self.items and not self.transactions

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

    def __repr__(self) -> str:
        return (f"MarketState({len(self.users)} users, {len(self.items)} items, "
                f"{len(self.transactions)} transactions, session={self.current_user_id})")
