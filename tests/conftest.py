"""Shared fixtures for the PetSafe client tests."""

from unittest.mock import AsyncMock

import pytest

from petsafe.api import CognitoIdentityClient, Credentials, SessionManager

EMAIL = "user@example.com"
NOW = 1_700_000_000.0


class FakeClock:
    """Settable replacement for time.time."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def auth_result(
    id_token: str = "id-1",
    access_token: str = "access-1",
    refresh_token: str | None = "refresh-1",
    expires_in: int = 3600,
) -> dict:
    result = {
        "IdToken": id_token,
        "AccessToken": access_token,
        "ExpiresIn": expires_in,
        "TokenType": "Bearer",
    }
    if refresh_token is not None:
        result["RefreshToken"] = refresh_token
    return result


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def identity():
    """Identity provider double answering every call successfully."""
    identity = AsyncMock(spec=CognitoIdentityClient)
    identity.initiate_custom_auth.return_value = {
        "ChallengeName": "CUSTOM_CHALLENGE",
        "Session": "session-1",
        "ChallengeParameters": {"USERNAME": "user-uuid"},
    }
    identity.respond_to_challenge.return_value = {
        "AuthenticationResult": auth_result()
    }
    identity.refresh_tokens.return_value = {
        "AuthenticationResult": auth_result(
            id_token="id-2", access_token="access-2", refresh_token=None
        )
    }
    return identity


@pytest.fixture
def credentials(clock):
    return Credentials(
        id_token="id-1",
        access_token="access-1",
        refresh_token="refresh-1",
        expires_at=clock.now + 3600,
    )


@pytest.fixture
def manager(identity, clock):
    """A manager that has not logged in yet."""
    return SessionManager(EMAIL, identity=identity, clock=clock)


@pytest.fixture
def logged_in(identity, clock, credentials):
    """A manager resumed from valid credentials."""
    return SessionManager(
        EMAIL, credentials=credentials, identity=identity, clock=clock
    )
