"""
Conservation Conformance Tests

INVARIANT: Purchases move cash between users, they never create or destroy it.

    ∀ purchase P of item i by buyer b from seller s at price p:
        b.balance' + s.balance' = b.balance + s.balance
        b.balance' = b.balance - p,  s.balance' = s.balance + p   (b ≠ s)

    Σ balances changes only by registrations and deposits.
    No balance is ever negative.
"""

from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal

from bazaar import MarketError, STARTING_BALANCE

from ..helpers import build_market


prices = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("900"), places=2)
users = st.sampled_from(["1", "2", "3"])


class TestConservationProperties:
    """Property-based conservation tests."""

    @given(st.lists(st.tuples(users, users, prices), min_size=1, max_size=20))
    @settings(max_examples=60, deadline=None)
    def test_purchases_are_zero_sum(self, trades):
        """
        PROPERTY: Every purchase leaves the buyer+seller total unchanged.
        """
        market = build_market(seed=True)
        ledger = market.ledger
        ledger.register_user("carol", "carol@example.com", "pw")
        total = ledger.total_cash()

        for seller_id, buyer_id, price in trades:
            item = ledger.list_item(seller_id, "Lot", "", price, "Misc")
            buyer_before = market.catalog.get_user(buyer_id).cash_balance
            seller_before = market.catalog.get_user(seller_id).cash_balance
            try:
                ledger.purchase(item.id, buyer_id)
            except MarketError:
                assert buyer_before < price
                continue
            buyer_after = market.catalog.get_user(buyer_id).cash_balance
            seller_after = market.catalog.get_user(seller_id).cash_balance
            assert buyer_after + seller_after == buyer_before + seller_before
            if buyer_id != seller_id:
                assert buyer_after == buyer_before - price
                assert seller_after == seller_before + price
            else:
                assert buyer_after == buyer_before

        assert ledger.total_cash() == total
        assert all(u.cash_balance >= 0 for u in market.repository.list_users())
        result = ledger.verify_invariants()
        assert result['valid'], result['violations']

    @given(st.lists(st.one_of(
        st.tuples(st.just("deposit"), users, prices),
        st.tuples(st.just("register"), st.integers(min_value=0, max_value=5)),
        st.tuples(st.just("purchase"), st.sampled_from(["1", "2", "3", "4"]), users),
    ), max_size=25))
    @settings(max_examples=60, deadline=None)
    def test_total_changes_only_by_deposits_and_registrations(self, ops):
        """
        PROPERTY: Σ balances = seed total + Σ deposits + starting balance × registrations.
        """
        market = build_market(seed=True)
        ledger = market.ledger
        expected = ledger.total_cash()

        for op in ops:
            try:
                if op[0] == "deposit":
                    ledger.deposit(op[1], op[2])
                    expected += op[2]
                elif op[0] == "register":
                    ledger.register_user(f"user{op[1]}", f"user{op[1]}@example.com", "pw")
                    expected += STARTING_BALANCE
                else:
                    ledger.purchase(op[1], op[2])
            except MarketError:
                pass
            assert ledger.total_cash() == expected

        assert ledger.verify_invariants()['valid']


class TestConservationUnit:

    def test_self_purchase_is_net_zero(self):
        market = build_market(seed=True)
        tx = market.ledger.purchase("1", "1")
        assert market.catalog.get_user("1").cash_balance == Decimal("1000")
        assert (tx.buyer_id, tx.seller_id) == ("1", "1")

    def test_exact_balance_can_buy(self):
        market = build_market(seed=True)
        carol = market.ledger.register_user("carol", "carol@example.com", "pw")
        market.ledger.update_item("2", price="500")
        market.ledger.purchase("2", carol.id)
        assert market.catalog.get_user(carol.id).cash_balance == Decimal("0")

    def test_transaction_keeps_price_at_sale(self):
        market = build_market(seed=True)
        market.ledger.update_item("4", price="80")
        tx = market.ledger.purchase("4", "1")
        assert tx.price == Decimal("80")
