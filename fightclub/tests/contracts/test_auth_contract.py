"""Contract tests for AuthService — behavioral contract.

Verifies that any AuthService implementation satisfies:
- Empty tokens are rejected with None, never an exception
- A valid token resolves to a User with a non-empty id
- get_user returns None for an empty id

Run against registered implementations:
    python -m pytest fightclub/tests/contracts/test_auth_contract.py -v
"""

import pytest

from fightclub.schemas import User


class TestAuthContract:
    """Behavioral contract for AuthService implementations."""

    @pytest.mark.asyncio
    async def test_empty_token_returns_none(self, auth_service) -> None:
        assert await auth_service.validate_token("") is None

    @pytest.mark.asyncio
    async def test_valid_token_returns_user(self, auth_service) -> None:
        user = await auth_service.validate_token("valid-token")
        assert isinstance(user, User)
        assert user.id

    @pytest.mark.asyncio
    async def test_get_user_empty_id_returns_none(self, auth_service) -> None:
        assert await auth_service.get_user("") is None

    @pytest.mark.asyncio
    async def test_get_user_returns_user_with_that_id(self, auth_service) -> None:
        user = await auth_service.get_user("user-42")
        assert user is not None
        assert user.id == "user-42"
