"""
conftest.py - Shared pytest fixtures for marketplace tests

Provides common fixtures used across unit, functional and conformance tests:
- A controllable clock
- In-memory gateways and wired marketplaces (empty and seeded)
- Registered users and listed items for purchase scenarios
"""

import pytest
from decimal import Decimal

from bazaar import InMemoryGateway

from .helpers import ManualClock, build_market


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def market(gateway, clock):
    """Empty marketplace (no sample data)."""
    return build_market(gateway, clock)


@pytest.fixture
def ledger(market):
    return market.ledger


@pytest.fixture
def catalog(market):
    return market.catalog


@pytest.fixture
def seeded_market(gateway, clock):
    """Marketplace with the sample users (1000 / 1500) and four items."""
    return build_market(gateway, clock, seed=True)


# =============================================================================
# SCENARIO FIXTURES
# =============================================================================

@pytest.fixture
def alice_and_bob(ledger):
    """Two registered users, alice topped up to 1000 and bob to 1500."""
    alice = ledger.register_user("alice", "alice@example.com", "alice-pw")
    bob = ledger.register_user("bob", "bob@example.com", "bob-pw")
    alice = ledger.deposit(alice.id, Decimal("500"))
    bob = ledger.deposit(bob.id, Decimal("1000"))
    return alice, bob


@pytest.fixture
def listed_item(ledger, alice_and_bob):
    """Item listed by alice at 250."""
    alice, _ = alice_and_bob
    return ledger.list_item(alice.id, "Vintage Camera", "35mm rangefinder", Decimal("250"), "Electronics")
