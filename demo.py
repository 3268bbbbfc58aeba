#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Marketplace Ledger Step by Step

A walkthrough of the marketplace ledger. Each step builds on the previous
one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation  - Opening a marketplace, sample data, browsing and search
  4-6:  Accounts    - Registration, deposits, login and the session
  7-9:  Trading     - Listing, purchasing, rejected operations
  10-12: Durability - Editing and removal, restart from disk, invariants

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
import sys
import tempfile

from bazaar import (
    # Wiring
    open_marketplace, Marketplace, JsonFileGateway,
    # Sample data
    SAMPLE_PASSWORD,
    # Errors
    MarketError, ItemAlreadySold, InsufficientFunds, InvalidCredentials, ImmutableField,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    newcomer_name: str = "carol"
    newcomer_email: str = "carol@example.com"
    newcomer_secret: str = "open-sesame"
    newcomer_deposit: Decimal = Decimal("100")

    piano_price: Decimal = Decimal("700")

    # Cheap hashing keeps the tutorial snappy
    hash_iterations: int = 1_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_balances(market: Marketplace):
    for user in market.repository.list_users():
        print(f"  {user.username:<12} {user.cash_balance:>10}")


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_open(path: Path) -> Marketplace:
    step_header(1, "Opening a Marketplace",
        "A marketplace is a repository loaded from a gateway, plus the components on top.")

    print(f">>> market = open_marketplace(JsonFileGateway({str(path)!r}))")
    market = open_marketplace(
        JsonFileGateway(path),
        hash_iterations=CONFIG.hash_iterations,
    )

    section_header("Key Insight")
    print("""
    The storage was empty, so sample users and items were written in one
    unit of work. Opening the same file again will NOT seed a second time.
    """)
    return market


def step_02_browse(market: Marketplace) -> Marketplace:
    step_header(2, "Browsing", "The catalog reads immutable snapshots and never raises.")

    print(">>> market.catalog.available_items()")
    for item in market.catalog.available_items():
        print(f"  {item!r}")

    section_header("Balances")
    show_balances(market)
    return market


def step_03_search(market: Marketplace) -> Marketplace:
    step_header(3, "Search", "Case-insensitive substring search over available items.")

    for query in ("CAMERA", "fashion", "", "tractor"):
        hits = market.catalog.search(query)
        print(f">>> catalog.search({query!r}) -> {[i.title for i in hits]}")
    return market


# ============================================================================
# PHASE 2: ACCOUNTS
# ============================================================================

def step_04_register(market: Marketplace) -> Marketplace:
    step_header(4, "Registration", "New users start with a fixed balance.")

    print(f">>> ledger.register_user({CONFIG.newcomer_name!r}, {CONFIG.newcomer_email!r}, ...)")
    market.ledger.register_user(CONFIG.newcomer_name, CONFIG.newcomer_email, CONFIG.newcomer_secret)

    section_header("Duplicate email (any case)")
    try:
        market.ledger.register_user("impostor", CONFIG.newcomer_email.upper(), "x")
    except MarketError as e:
        print(f"  Rejected as expected: {type(e).__name__}")
    return market


def step_05_deposit(market: Marketplace) -> Marketplace:
    step_header(5, "Deposits", "Only positive, finite amounts are accepted.")

    carol = market.repository.find_user_by_email(CONFIG.newcomer_email)
    market.ledger.deposit(carol.id, CONFIG.newcomer_deposit)

    for bad in ("-5", "abc", 0):
        try:
            market.ledger.deposit(carol.id, bad)
        except MarketError as e:
            print(f"  deposit({bad!r}) -> {type(e).__name__}")
    return market


def step_06_login(market: Marketplace) -> Marketplace:
    step_header(6, "Session", "One current user per process, persisted with the state.")

    try:
        market.ledger.authenticate("jane@example.com", "wrong")
    except InvalidCredentials:
        print("  Wrong password rejected")

    market.ledger.authenticate("jane@example.com", SAMPLE_PASSWORD)
    print(f"  current_user() = {market.session.current_user()!r}")
    return market


# ============================================================================
# PHASE 3: TRADING
# ============================================================================

def step_07_list(market: Marketplace) -> Marketplace:
    step_header(7, "Listing", "Any registered user can offer an item for sale.")

    john = market.repository.find_user_by_email("john@example.com")
    market.ledger.list_item(john.id, "Upright Piano", "Needs tuning", CONFIG.piano_price, "Music")
    return market


def step_08_purchase(market: Marketplace) -> Marketplace:
    step_header(8, "Purchase", "Debit, credit, mark sold, record: all four or none.")

    jane = market.session.current_user()
    camera = market.catalog.search("camera")[0]
    total_before = market.ledger.total_cash()

    print(f">>> ledger.purchase({camera.id!r}, {jane.id!r})")
    market.ledger.purchase(camera.id, jane.id)

    section_header("Balances after settlement")
    show_balances(market)
    print(f"\n  Total cash before: {total_before}  after: {market.ledger.total_cash()}")
    print(f"  search('camera') now: {market.catalog.search('camera')}")
    return market


def step_09_rejections(market: Marketplace) -> Marketplace:
    step_header(9, "Rejections", "A failed precondition leaves everything untouched.")

    carol = market.repository.find_user_by_email(CONFIG.newcomer_email)
    piano = market.catalog.search("piano")[0]
    before = market.repository.snapshot()

    for item_id, buyer_id, expected in (("1", carol.id, ItemAlreadySold),
                                        (piano.id, carol.id, InsufficientFunds)):
        try:
            market.ledger.purchase(item_id, buyer_id)
        except expected as e:
            print(f"  purchase({item_id!r}, {buyer_id!r}) -> {type(e).__name__}")

    print(f"\n  State unchanged: {market.repository.snapshot() is before}")
    return market


# ============================================================================
# PHASE 4: DURABILITY
# ============================================================================

def step_10_edit(market: Marketplace) -> Marketplace:
    step_header(10, "Editing and Removal", "Sellers edit descriptive fields of unsold items only.")

    watch = market.catalog.search("watch")[0]
    market.ledger.update_item(watch.id, price="325", description="Water resistant, boxed")
    try:
        market.ledger.update_item(watch.id, status="sold")
    except ImmutableField as e:
        print(f"  {e}")

    stand = market.catalog.search("laptop")[0]
    market.ledger.remove_item(stand.id)
    return market


def step_11_restart(path: Path, market: Marketplace) -> Marketplace:
    step_header(11, "Restart", "Everything, including the session, is reloaded from disk.")

    reopened = open_marketplace(JsonFileGateway(path), hash_iterations=CONFIG.hash_iterations)
    print(f"  Identical state: {reopened.repository.snapshot() == market.repository.snapshot()}")
    print(f"  Session user:    {reopened.session.current_user()!r}")
    return reopened


def step_12_verify(market: Marketplace) -> Marketplace:
    step_header(12, "Invariants", "The ledger can audit its own state.")

    result = market.ledger.verify_invariants()
    print(f"  valid={result['valid']} violations={result['violations']}")
    for tx in market.repository.list_transactions():
        print(f"  {tx!r}")
    return market


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       MARKETPLACE LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    with tempfile.TemporaryDirectory() as workdir:
        path = Path(workdir) / "market.json"

        market = step_01_open(path)
        for step in (step_02_browse, step_03_search, step_04_register, step_05_deposit,
                     step_06_login, step_07_list, step_08_purchase, step_09_rejections,
                     step_10_edit):
            wait_for_enter()
            market = step(market)

        wait_for_enter()
        market = step_11_restart(path, market)
        wait_for_enter()
        step_12_verify(market)

    print("\nTutorial complete.")


if __name__ == "__main__":
    main()
