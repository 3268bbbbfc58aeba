"""
test_session.py - Unit tests for the Session Gate
"""

import pytest
from decimal import Decimal

from bazaar import InvalidCredentials

from .helpers import build_market


class TestLogin:

    def test_no_session_initially(self, market):
        assert market.session.current_user() is None
        assert market.session.current_user_id is None
        assert not market.session.is_authenticated()

    def test_login_sets_current_user(self, market, alice_and_bob):
        alice, _ = alice_and_bob
        user = market.session.login("alice@example.com", "alice-pw")
        assert user.id == alice.id
        assert market.session.current_user_id == alice.id
        assert market.session.is_authenticated()

    def test_login_email_is_case_insensitive(self, market, alice_and_bob):
        assert market.session.login("  ALICE@example.com", "alice-pw").username == "alice"

    def test_login_switches_user(self, market, alice_and_bob):
        _, bob = alice_and_bob
        market.session.login("alice@example.com", "alice-pw")
        market.session.login("bob@example.com", "bob-pw")
        assert market.session.current_user_id == bob.id

    def test_rejection_is_reported_when_verbose(self, capsys):
        market = build_market(verbose=True)
        market.ledger.register_user("dan", "dan@example.com", "pw")
        with pytest.raises(InvalidCredentials):
            market.session.login("dan@example.com", "")
        assert "LOGIN REJECTED" in capsys.readouterr().out


class TestCurrentUser:

    def test_current_user_is_live(self, market, ledger, alice_and_bob):
        alice, _ = alice_and_bob
        market.session.login("alice@example.com", "alice-pw")
        ledger.deposit(alice.id, "25")
        assert market.session.current_user().cash_balance == Decimal("1025")

    def test_logout(self, market, alice_and_bob):
        market.session.login("alice@example.com", "alice-pw")
        market.session.logout()
        assert market.session.current_user() is None

    def test_logout_when_anonymous_does_not_persist(self, market, gateway):
        before = gateway.save_count
        market.session.logout()
        assert gateway.save_count == before

    def test_session_is_persisted(self, market, gateway, alice_and_bob):
        alice, _ = alice_and_bob
        market.session.login("alice@example.com", "alice-pw")
        assert gateway.load_all().current_user_id == alice.id
