"""
session.py - Session Gate

Tracks which user is "current" for the process and checks credentials at
login. The pointer is part of MarketState, so it is persisted with everything
else and survives restarts.

The gate stores a user id, never a copy of the user, so current_user() always
reflects the latest balance after deposits and purchases.

This is not an authorization layer. Ledger operations take explicit ids and
never consult the session.
"""

from __future__ import annotations
from typing import Optional

from .core import User, InvalidCredentials, verify_secret
from .repository import Repository


class SessionGate:
    """Holds at most one current user, persisted through the Repository."""

    def __init__(self, repository: Repository, verbose: bool = True):
        self.repository = repository
        self.verbose = verbose

    def login(self, email: str, secret: str) -> User:
        """
        Authenticate a user and make them the current session user.

        Args:
            email: Login email (matched case-insensitively)
            secret: Plaintext secret

        Returns:
            The authenticated User

        Raises:
            InvalidCredentials: If no user matches both email and secret
            PersistenceFailure: If the new session pointer cannot be saved
        """
        with self.repository.unit_of_work() as draft:
            user = draft.find_user_by_email(email)
            if user is None or not verify_secret(secret, user.credential):
                if self.verbose:
                    print("✗ LOGIN REJECTED: invalid email or password")
                raise InvalidCredentials("Invalid email or password")
            draft.current_user_id = user.id
        if self.verbose:
            print(f"🔑 Logged in: {user.username} ({user.id})")
        return user

    def logout(self) -> None:
        """Clear the current session. A no-op when nobody is logged in."""
        with self.repository.unit_of_work() as draft:
            draft.current_user_id = None
        if self.verbose:
            print("🔒 Logged out")

    @property
    def current_user_id(self) -> Optional[str]:
        return self.repository.current_user_id

    def current_user(self) -> Optional[User]:
        """Return the live session user, or None."""
        state = self.repository.snapshot()
        if state.current_user_id is None:
            return None
        return state.get_user(state.current_user_id)

    def is_authenticated(self) -> bool:
        return self.current_user() is not None
