"""
ledger.py - Transactional Marketplace Ledger

The Ledger enforces the marketplace invariants. Every mutating operation is a
single unit of work on the Repository: preconditions are checked against a
draft, the draft is changed, and the change is persisted and published as
one step. A failing operation raises exactly one MarketError and leaves the
published state untouched.

Key responsibilities:
    - User registration, deposits, and authentication (via the Session Gate)
    - Item listing, editing and removal
    - Purchase settlement: debit buyer, credit seller, mark item sold and
      append the Transaction atomically
    - Invariant verification over the current state
"""

from __future__ import annotations
from collections import Counter
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional

from .core import (
    # Types
    User, Item, Transaction, ItemStatus,
    # Constants
    STARTING_BALANCE, CREDENTIAL_HASH_ITERATIONS, EDITABLE_ITEM_FIELDS,
    USERS, ITEMS, TRANSACTIONS,
    # Exceptions
    MarketError, DuplicateEmail, InvalidRegistration, InvalidAmount, InvalidPrice, InvalidListing,
    ItemNotFound, ItemAlreadySold, ImmutableField, BuyerNotFound, SellerNotFound,
    InsufficientFunds, UserNotFound,
    # Helpers
    parse_cash, round_cash, hash_secret, normalize_email,
)
from .repository import Draft, Repository
from .session import SessionGate


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Ledger:
    """
    Atomic, invariant-preserving mutations over users, items and transactions.

    Design Principles:
        - Check then apply: every precondition is evaluated before the first
          change to the draft, in the documented order.
        - Commit or nothing: persistence is the commit point. If the gateway
          fails after retries, PersistenceFailure propagates and the state is
          as it was before the call.
        - Explicit identity: callers pass the acting user's id. The session is
          never consulted to decide who is acting.

    Thread Safety:
        All mutations are serialized by the Repository's write lock. Reads via
        the Repository or Catalog are lock-free snapshot reads.

    Example:
        market = open_marketplace(JsonFileGateway("market.json"))
        ledger = market.ledger
        alice = ledger.register_user("alice", "alice@example.com", "s3cret")
        item = ledger.list_item(alice.id, "Desk Lamp", "Brass, works", "40", "Home")
        tx = ledger.purchase(item.id, buyer_id="2")
    """

    def __init__(
        self,
        repository: Repository,
        session: Optional[SessionGate] = None,
        clock: Optional[Callable[[], datetime]] = None,
        starting_balance: Decimal = STARTING_BALANCE,
        hash_iterations: int = CREDENTIAL_HASH_ITERATIONS,
        verbose: bool = True,
    ):
        """
        Create a ledger over a repository.

        Args:
            repository: Store that holds and persists the state
            session: Session gate (created over the same repository if omitted)
            clock: Source of timestamps (default: current UTC time)
            starting_balance: Cash credited on registration (default: 500)
            hash_iterations: PBKDF2 iterations for new credentials
            verbose: Print operation outcomes (default: True)
        """
        self.repository = repository
        self.session = session or SessionGate(repository, verbose=verbose)
        self._clock = clock or _utc_now
        self.starting_balance = round_cash(Decimal(starting_balance))
        self.hash_iterations = hash_iterations
        self.verbose = verbose

    @property
    def current_time(self) -> datetime:
        return self._clock()

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _report(self, message: str) -> None:
        if self.verbose:
            print(message)

    @contextmanager
    def _operation(self, name: str) -> Iterator[Draft]:
        """Unit of work that reports rejections before re-raising them."""
        try:
            with self.repository.unit_of_work() as draft:
                yield draft
        except MarketError as e:
            self._report(f"✗ REJECTED {name}: {type(e).__name__}: {e}")
            raise

    @staticmethod
    def _require_user(draft: Draft, user_id: str) -> User:
        user = draft.get_user(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    @staticmethod
    def _require_item(draft: Draft, item_id: str) -> Item:
        item = draft.get_item(item_id)
        if item is None:
            raise ItemNotFound(f"Item {item_id} not found")
        return item

    @staticmethod
    def _check_listing_text(**fields: Any) -> None:
        """Title, description and category must be strings, and the title not blank."""
        for name, value in fields.items():
            if not isinstance(value, str):
                raise InvalidListing(f"Item {name} must be text, got {type(value).__name__}")
        if "title" in fields and not fields["title"].strip():
            raise InvalidListing("Item title cannot be empty")

    # ========================================================================
    # USERS
    # ========================================================================

    def register_user(self, username: str, email: str, secret: str) -> User:
        """
        Register a new user with the starting balance.

        Args:
            username: Display name
            email: Login email, unique across users (case-insensitive)
            secret: Plaintext secret; only its salted hash is stored

        Returns:
            The new User

        Raises:
            InvalidRegistration: If username, email or secret is blank
            DuplicateEmail: If another user already has this email
        """
        with self._operation("register_user") as draft:
            for label, value in (("username", username), ("email", email), ("secret", secret)):
                if not isinstance(value, str) or not value.strip():
                    raise InvalidRegistration(f"{label} is required")
            if draft.find_user_by_email(email) is not None:
                raise DuplicateEmail(f"User with email {normalize_email(email)} already exists")

            user = User(
                id=draft.next_id(USERS),
                username=username.strip(),
                email=email.strip(),
                credential=hash_secret(secret, self.hash_iterations),
                cash_balance=self.starting_balance,
                created_at=self.current_time,
            )
            draft.put_user(user)

        self._report(f"📝 Registered: {user.username} ({user.id}) balance={user.cash_balance}")
        return user

    def authenticate(self, email: str, secret: str) -> User:
        """
        Check credentials and make the user the current session user.

        Raises:
            InvalidCredentials: If no user matches both email and secret
        """
        return self.session.login(email, secret)

    def logout(self) -> None:
        self.session.logout()

    def deposit(self, user_id: str, amount: Any) -> User:
        """
        Add cash to a user's balance.

        Args:
            user_id: Receiving user
            amount: Positive finite amount (Decimal, int, float or numeric str)

        Returns:
            The updated User

        Raises:
            InvalidAmount: If amount is not a finite positive number
            UserNotFound: If the user does not exist
        """
        with self._operation("deposit") as draft:
            value = parse_cash(amount, InvalidAmount)
            user = self._require_user(draft, user_id)
            updated = replace(user, cash_balance=round_cash(user.cash_balance + value))
            draft.put_user(updated)

        self._report(f"✓ APPLIED deposit: {value} → {user_id} (balance {updated.cash_balance})")
        return updated

    # ========================================================================
    # ITEMS
    # ========================================================================

    def list_item(
        self,
        seller_id: str,
        title: str,
        description: str,
        price: Any,
        category: str,
        image: Optional[str] = None,
    ) -> Item:
        """
        List a new item for sale.

        Returns:
            The new Item, status AVAILABLE

        Raises:
            InvalidPrice: If price is not a finite positive number
            InvalidListing: If title, description or category is not text,
                or the title is blank
            UserNotFound: If the seller does not exist
        """
        with self._operation("list_item") as draft:
            value = parse_cash(price, InvalidPrice)
            self._check_listing_text(title=title, description=description, category=category)
            self._require_user(draft, seller_id)
            item = Item(
                id=draft.next_id(ITEMS),
                seller_id=seller_id,
                title=title,
                description=description,
                price=value,
                category=category,
                status=ItemStatus.AVAILABLE,
                created_at=self.current_time,
                image=image,
            )
            draft.put_item(item)

        self._report(f"✓ APPLIED list_item: {item!r}")
        return item

    def update_item(self, item_id: str, **changes: Any) -> Item:
        """
        Edit an available item.

        Only title, description, price and category can change. Status moves
        only through purchase(), and the seller, id and creation time are
        fixed for the item's lifetime.

        Args:
            item_id: Item to edit
            **changes: New values for editable fields

        Returns:
            The updated Item (unchanged if no changes were given)

        Raises:
            ItemNotFound: If the item does not exist
            ItemAlreadySold: If the item has been sold
            ImmutableField: If a non-editable field is supplied
            InvalidListing: If a new title, description or category is not
                text, or the new title is blank
            InvalidPrice: If a new price is not a finite positive number
        """
        with self._operation("update_item") as draft:
            item = self._require_item(draft, item_id)
            if item.status is ItemStatus.SOLD:
                raise ItemAlreadySold(f"Item {item_id} is sold and can no longer be edited")
            protected = sorted(set(changes) - EDITABLE_ITEM_FIELDS)
            if protected:
                raise ImmutableField(f"Cannot update field(s) {', '.join(protected)} of item {item_id}")
            self._check_listing_text(**{k: v for k, v in changes.items() if k != "price"})
            if "price" in changes:
                changes["price"] = parse_cash(changes["price"], InvalidPrice)
            if not changes:
                return item
            updated = replace(item, **changes)
            draft.put_item(updated)

        self._report(f"✓ APPLIED update_item: {updated!r}")
        return updated

    def remove_item(self, item_id: str) -> None:
        """
        Delist an available item.

        Sold items are kept so that every Transaction keeps referring to an
        existing item.

        Raises:
            ItemNotFound: If the item does not exist
            ItemAlreadySold: If the item has been sold
        """
        with self._operation("remove_item") as draft:
            item = self._require_item(draft, item_id)
            if item.status is ItemStatus.SOLD:
                raise ItemAlreadySold(f"Item {item_id} is sold and cannot be removed")
            draft.delete_item(item_id)

        self._report(f"✓ APPLIED remove_item: {item_id}")

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    def purchase(self, item_id: str, buyer_id: str) -> Transaction:
        """
        Buy an item: the one operation that moves money between users.

        Preconditions, checked in this order (the first failure wins and
        nothing is changed):
            1. ItemNotFound - the item does not exist
            2. ItemAlreadySold - the item is already sold
            3. BuyerNotFound - the buyer does not exist
            4. SellerNotFound - the item's seller does not exist
            5. InsufficientFunds - buyer balance < item price

        Settlement then debits the buyer, credits the seller, marks the item
        sold and appends a Transaction carrying the price at this moment. All
        four changes are committed together or not at all.

        Returns:
            The Transaction record

        Raises:
            One of the errors above, or PersistenceFailure
        """
        with self._operation("purchase") as draft:
            item = self._require_item(draft, item_id)
            if item.status is ItemStatus.SOLD:
                raise ItemAlreadySold(f"Item {item_id} is already sold")
            buyer = draft.get_user(buyer_id)
            if buyer is None:
                raise BuyerNotFound(f"Buyer {buyer_id} not found")
            if draft.get_user(item.seller_id) is None:
                raise SellerNotFound(f"Seller {item.seller_id} of item {item_id} not found")
            price = item.price
            if buyer.cash_balance < price:
                raise InsufficientFunds(
                    f"Buyer {buyer_id} has {buyer.cash_balance}, item {item_id} costs {price}"
                )

            draft.put_user(replace(buyer, cash_balance=round_cash(buyer.cash_balance - price)))
            # Re-read: the seller may be the buyer.
            seller = draft.get_user(item.seller_id)
            draft.put_user(replace(seller, cash_balance=round_cash(seller.cash_balance + price)))
            draft.put_item(replace(item, status=ItemStatus.SOLD))
            tx = Transaction(
                id=draft.next_id(TRANSACTIONS),
                item_id=item.id,
                seller_id=item.seller_id,
                buyer_id=buyer_id,
                price=price,
                timestamp=self.current_time,
            )
            draft.append_transaction(tx)

        self._report(f"✓ APPLIED purchase: {tx!r}")
        return tx

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def total_cash(self) -> Decimal:
        """Sum of all user balances. Purchases never change it."""
        return sum((u.cash_balance for u in self.repository.list_users()), Decimal("0"))

    def verify_invariants(self) -> Dict[str, Any]:
        """
        Check the marketplace invariants against the current snapshot.

        Checks:
            - every item's seller is a registered user
            - an item is sold iff exactly one transaction references it
            - every transaction references an existing item, buyer and seller
            - no balance is negative
            - emails are unique (case-insensitive), transaction ids are unique
            - issued ids are below the id counters

        Returns:
            Dict with keys:
            - 'valid': bool - True if no violation was found
            - 'violations': List[str] - one message per violation

        Example:
            result = ledger.verify_invariants()
            assert result['valid'], result['violations']
        """
        state = self.repository.snapshot()
        violations: List[str] = []

        for item in state.items.values():
            if item.seller_id not in state.users:
                violations.append(f"item {item.id}: seller {item.seller_id} does not exist")

        references = Counter(tx.item_id for tx in state.transactions)
        for item in state.items.values():
            count = references.get(item.id, 0)
            if item.status is ItemStatus.SOLD and count != 1:
                violations.append(f"item {item.id}: sold with {count} transactions")
            if item.status is ItemStatus.AVAILABLE and count != 0:
                violations.append(f"item {item.id}: available with {count} transactions")

        for tx in state.transactions:
            if tx.item_id not in state.items:
                violations.append(f"transaction {tx.id}: item {tx.item_id} does not exist")
            if tx.buyer_id not in state.users:
                violations.append(f"transaction {tx.id}: buyer {tx.buyer_id} does not exist")
            if tx.seller_id not in state.users:
                violations.append(f"transaction {tx.id}: seller {tx.seller_id} does not exist")

        for user in state.users.values():
            if user.cash_balance < 0:
                violations.append(f"user {user.id}: negative balance {user.cash_balance}")

        emails = Counter(normalize_email(u.email) for u in state.users.values())
        violations.extend(f"email {e}: used by {n} users" for e, n in emails.items() if n > 1)

        tx_ids = Counter(tx.id for tx in state.transactions)
        violations.extend(f"transaction id {i}: used {n} times" for i, n in tx_ids.items() if n > 1)

        issued = {
            USERS: state.users.keys(),
            ITEMS: state.items.keys(),
            TRANSACTIONS: tx_ids.keys(),
        }
        for collection, ids in issued.items():
            limit = state.next_ids.get(collection, 1)
            for entity_id in ids:
                if entity_id.isdecimal() and int(entity_id) >= limit:
                    violations.append(f"{collection} id {entity_id}: not below counter {limit}")

        return {
            'valid': not violations,
            'violations': violations,
        }

    def __repr__(self) -> str:
        return f"Ledger({self.repository.snapshot()!r})"
