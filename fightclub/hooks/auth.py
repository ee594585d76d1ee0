"""Fake auth service — development stub for AuthService.

Accepts any non-empty token and returns a configurable test user. Empty
tokens return None (simulates a missing/invalid Authorization header).

TEAM: Production uses SupabaseAuthService from fightclub.hooks.supabase,
selected when STORAGE_BACKEND=supabase.

Usage:
    from fightclub.hooks.auth import FakeAuthService

    auth = FakeAuthService()                       # default user
    auth = FakeAuthService(user_id="user-42")      # fixed user id
"""

from fightclub.hooks.interfaces import AuthService
from fightclub.schemas import User

_DEFAULT_USER_ID = "fake-user-1"


class FakeAuthService(AuthService):
    """STUB — returns a test user for any non-empty token.

    Does not perform real authentication. Any non-empty string is treated
    as a valid token.
    """

    def __init__(self, user_id: str = _DEFAULT_USER_ID, role: str = "user") -> None:
        """Initialises the fake auth service.

        Args:
            user_id: The id of the user returned for every valid token.
            role: "user" or "admin".
        """
        self._user_id = user_id
        self._role = role

    async def validate_token(self, token: str) -> User | None:
        if not token:
            return None
        return self._make_user(self._user_id)

    async def get_user(self, user_id: str) -> User | None:
        if not user_id:
            return None
        return self._make_user(user_id)

    def _make_user(self, user_id: str) -> User:
        return User(
            id=user_id,
            email=f"{user_id}@example.test",
            name="Test User",
            role=self._role,  # type: ignore[arg-type]
        )
