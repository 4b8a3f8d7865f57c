"""Async client for the PetSafe cloud platform (SmartFeed feeders, ScoopFree litterboxes)."""

from .api import (
    ChallengeState,
    CognitoIdentityClient,
    Credentials,
    PetSafeApi,
    SessionManager,
    SessionState,
    TokenRefreshEvent,
    decode_json,
)
from .devices import ScoopFree, SmartFeed, get_feeders, get_litterboxes
from .exceptions import (
    AuthenticationFailed,
    AuthInitiationError,
    IdentityProviderError,
    InvalidCodeError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    PetSafeAuthError,
    PetSafeError,
    PetSafeResponseError,
    ProtocolSequenceError,
    RefreshFailedError,
)

__version__ = "0.1.0"
__all__ = [
    "AuthInitiationError",
    "AuthenticationFailed",
    "ChallengeState",
    "CognitoIdentityClient",
    "Credentials",
    "IdentityProviderError",
    "InvalidCodeError",
    "NoRefreshTokenError",
    "NotAuthenticatedError",
    "PetSafeApi",
    "PetSafeAuthError",
    "PetSafeError",
    "PetSafeResponseError",
    "ProtocolSequenceError",
    "RefreshFailedError",
    "ScoopFree",
    "SessionManager",
    "SessionState",
    "SmartFeed",
    "TokenRefreshEvent",
    "decode_json",
    "get_feeders",
    "get_litterboxes",
]
