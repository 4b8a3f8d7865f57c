"""Exceptions raised by the PetSafe client."""


class PetSafeError(Exception):
    """Base exception for the PetSafe client."""


class PetSafeAuthError(PetSafeError):
    """Base exception for authentication problems."""


class AuthInitiationError(PetSafeAuthError):
    """The identity provider refused to start a login for the given user.

    This is usually an unknown e-mail address and is never retried.
    """


class ProtocolSequenceError(PetSafeError):
    """An operation was called out of order (e.g. code redeemed before requested)."""


class InvalidCodeError(PetSafeAuthError):
    """The confirmation code was wrong or the challenge expired."""


class NotAuthenticatedError(PetSafeAuthError):
    """No credentials are available yet; log in first."""


class NoRefreshTokenError(PetSafeAuthError):
    """A refresh was requested but no refresh token is stored."""


class RefreshFailedError(PetSafeAuthError):
    """The identity provider rejected the refresh token."""


class AuthenticationFailed(PetSafeAuthError):
    """The platform rejected a request even after refreshing the tokens.

    A second 401/403 right after a successful refresh means the account lacks
    permission, not that the token was stale.
    """

    def __init__(self, message: str, *, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class IdentityProviderError(PetSafeError):
    """Error envelope returned by the identity provider."""

    def __init__(
        self, error_type: str, message: str, *, status_code: int | None = None
    ) -> None:
        self.error_type = error_type
        self.message = message
        self.status_code = status_code
        super().__init__(f"{error_type}: {message}" if message else error_type)


class PetSafeResponseError(PetSafeError):
    """The platform returned a payload that could not be understood."""
