import asyncio
import contextlib
import dataclasses
import enum
import logging
import re
import time
from collections.abc import Callable

from ..const import REFRESH_MARGIN
from ..exceptions import (
    AuthInitiationError,
    IdentityProviderError,
    InvalidCodeError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    ProtocolSequenceError,
    RefreshFailedError,
)
from .identity import CUSTOM_CHALLENGE, AuthenticationResult, CognitoIdentityClient

_LOGGER = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_code(code: str) -> str:
    """Strip everything but ASCII digits from a confirmation code ("12-3456" -> "123456")."""
    return _NON_DIGITS.sub("", code)


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    CHALLENGE_ISSUED = "challenge_issued"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class Credentials:
    """Complete token set for one user.

    ``expires_at`` is an absolute unix timestamp for the identity token. A value
    of ``0`` means the expiry is unknown (e.g. tokens restored from elsewhere)
    and the set is treated as expired.
    """

    id_token: str
    access_token: str
    refresh_token: str
    expires_at: float = 0.0

    def __post_init__(self) -> None:
        for name in ("id_token", "access_token", "refresh_token"):
            if not getattr(self, name):
                raise ValueError(f"incomplete credentials: {name} is missing")

    @classmethod
    def from_authentication_result(
        cls,
        result: AuthenticationResult,
        *,
        now: float,
        previous_refresh_token: str | None = None,
    ) -> "Credentials":
        # refresh tokens are not rotated on every refresh
        refresh_token = result.get("RefreshToken") or previous_refresh_token or ""
        return cls(
            id_token=result.get("IdToken", ""),
            access_token=result.get("AccessToken", ""),
            refresh_token=refresh_token,
            expires_at=now + result.get("ExpiresIn", 0),
        )

    def expires_within(self, margin: float, *, now: float) -> bool:
        return now >= self.expires_at - margin


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class ChallengeState:
    challenge_name: str
    session: str
    username: str
    """the username the provider expects in the answer, not necessarily the e-mail"""


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class TokenRefreshEvent:
    id_token: str
    access_token: str
    refresh_token: str


TokenRefreshCallback = Callable[[TokenRefreshEvent], None]


class SessionManager:
    """Owns the login challenge and the token set of a single PetSafe user.

    Login is a two step e-mail flow: :meth:`request_code` makes the provider
    send a code, :meth:`request_tokens_from_code` trades it for tokens. From
    then on :meth:`ensure_valid` hands out a usable identity token, refreshing
    it shortly before it expires.

    Refreshes are single-flight: concurrent callers share one exchange with the
    identity provider, because a refresh token may only be valid once.

    Args:
        email: E-mail address of the PetSafe account.
        credentials: Tokens of a previous session to resume without logging in.
        session: Challenge session handle of a previous login, kept for callers
            that want to store it. It cannot be redeemed on its own.
        identity: Identity provider client. One is created (and closed by
            :meth:`aclose`) when omitted.
        clock: Returns the current unix time in seconds.
        proactive_refresh: Refresh in :meth:`ensure_valid` when the token is
            about to expire. When off, tokens are only refreshed after the
            platform rejects a request.
        refresh_margin: Seconds before expiry at which the token counts as
            expired.
    """

    def __init__(
        self,
        email: str,
        *,
        credentials: Credentials | None = None,
        session: str | None = None,
        identity: CognitoIdentityClient | None = None,
        clock: Callable[[], float] = time.time,
        proactive_refresh: bool = True,
        refresh_margin: float = REFRESH_MARGIN,
    ) -> None:
        if not email:
            raise ValueError("email is required")
        self._email = email
        self._credentials = credentials
        self._challenge: ChallengeState | None = None
        self._session = session
        self._owns_identity = identity is None
        self._identity = identity if identity is not None else CognitoIdentityClient()
        self._clock = clock
        self._proactive_refresh = proactive_refresh
        self._refresh_margin = refresh_margin
        self._observers: list[TokenRefreshCallback] = []
        # serializes every mutation of credentials / challenge
        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[Credentials] | None = None

    @property
    def email(self) -> str:
        return self._email

    @property
    def state(self) -> SessionState:
        if self._refresh_task is not None and not self._refresh_task.done():
            return SessionState.REFRESHING
        if self._credentials is not None:
            return SessionState.AUTHENTICATED
        if self._challenge is not None:
            return SessionState.CHALLENGE_ISSUED
        return SessionState.UNAUTHENTICATED

    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @property
    def challenge(self) -> ChallengeState | None:
        return self._challenge

    @property
    def is_authenticated(self) -> bool:
        return self._credentials is not None

    @property
    def id_token(self) -> str | None:
        return self._credentials.id_token if self._credentials else None

    @property
    def access_token(self) -> str | None:
        return self._credentials.access_token if self._credentials else None

    @property
    def refresh_token(self) -> str | None:
        return self._credentials.refresh_token if self._credentials else None

    @property
    def expires_at(self) -> float | None:
        return self._credentials.expires_at if self._credentials else None

    @property
    def session(self) -> str | None:
        return self._session

    def on_token_refreshed(self, callback: TokenRefreshCallback) -> Callable[[], None]:
        """Register a callback invoked after every login and refresh.

        Returns:
            A function that removes the callback again.
        """
        self._observers.append(callback)

        def remove() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(callback)

        return remove

    async def request_code(self) -> ChallengeState:
        """Ask the identity provider to e-mail a confirmation code.

        Raises:
            AuthInitiationError: If the provider refuses the login, usually
                because the e-mail address is unknown.
            httpx.TransportError: On network problems.
        """
        async with self._lock:
            try:
                resp = await self._identity.initiate_custom_auth(self._email)
            except IdentityProviderError as err:
                _LOGGER.warning(
                    "login request for %s rejected: %s", self._email, err.error_type
                )
                raise AuthInitiationError(
                    f"unable to start login for {self._email}: {err}"
                ) from err

            session = resp.get("Session")
            if not session:
                raise AuthInitiationError(
                    f"identity provider returned no challenge for {self._email}"
                )

            challenge = ChallengeState(
                challenge_name=resp.get("ChallengeName") or CUSTOM_CHALLENGE,
                session=session,
                username=resp.get("ChallengeParameters", {}).get("USERNAME")
                or self._email,
            )
            self._challenge = challenge
            self._session = session

        _LOGGER.debug(
            "challenge %s issued for %s", challenge.challenge_name, self._email
        )
        return challenge

    async def request_tokens_from_code(self, code: str) -> Credentials:
        """Redeem the e-mailed confirmation code for a token set.

        Non-digit characters in ``code`` are ignored.

        If the provider answers a wrong code with a new challenge, the challenge
        stays armed and another code may be tried. If it rejects the answer
        outright, the challenge is dropped and a new code must be requested.

        Raises:
            ProtocolSequenceError: If no code was requested before.
            InvalidCodeError: If the code was wrong or the challenge expired.
            httpx.TransportError: On network problems.
        """
        async with self._lock:
            challenge = self._challenge
            if challenge is None:
                raise ProtocolSequenceError("must request code first")

            try:
                resp = await self._identity.respond_to_challenge(
                    challenge_name=challenge.challenge_name,
                    session=challenge.session,
                    username=challenge.username,
                    answer=normalize_code(code),
                )
            except IdentityProviderError as err:
                self._challenge = None
                _LOGGER.warning(
                    "confirmation code for %s rejected: %s",
                    self._email,
                    err.error_type,
                )
                raise InvalidCodeError(f"invalid confirmation code: {err}") from err

            result = resp.get("AuthenticationResult")
            if not result:
                if next_session := resp.get("Session"):
                    self._challenge = dataclasses.replace(
                        challenge,
                        challenge_name=resp.get("ChallengeName")
                        or challenge.challenge_name,
                        session=next_session,
                    )
                    self._session = next_session
                else:
                    self._challenge = None
                raise InvalidCodeError("invalid confirmation code")

            try:
                credentials = Credentials.from_authentication_result(
                    result, now=self._clock()
                )
            except ValueError as err:
                self._challenge = None
                raise InvalidCodeError(str(err)) from err

            self._credentials = credentials
            self._challenge = None

        _LOGGER.info("logged in as %s", self._email)
        self._emit(credentials)
        return credentials

    async def ensure_valid(self) -> str:
        """Return an identity token that is safe to put on the wire.

        Raises:
            NotAuthenticatedError: If there are no credentials yet.
            RefreshFailedError: If a due refresh was rejected.
        """
        credentials = self._credentials
        if credentials is None:
            raise NotAuthenticatedError("not authorized, have you requested a token?")

        if self._proactive_refresh and credentials.expires_within(
            self._refresh_margin, now=self._clock()
        ):
            _LOGGER.debug("identity token for %s about to expire", self._email)
            credentials = await self.refresh(stale_id_token=credentials.id_token)
        return credentials.id_token

    async def refresh(self, *, stale_id_token: str | None = None) -> Credentials:
        """Exchange the refresh token for a new identity / access token pair.

        Concurrent calls share the exchange in flight and all receive its
        result (or its error).

        Args:
            stale_id_token: The identity token the caller found unusable. If the
                stored token already differs, someone else refreshed in the
                meantime and the current credentials are returned as is.

        Raises:
            NoRefreshTokenError: If there are no credentials to refresh.
            RefreshFailedError: If the provider rejected the refresh. The
                previous credentials are kept.
        """
        if self._refresh_task is None:
            current = self._credentials
            if current is None:
                raise NoRefreshTokenError("no refresh token available")
            if stale_id_token is not None and current.id_token != stale_id_token:
                return current

            task = asyncio.get_running_loop().create_task(
                self._refresh(stale_id_token or current.id_token)
            )
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task

        # a cancelled waiter must not cancel the exchange the others wait on
        return await asyncio.shield(self._refresh_task)

    def _refresh_done(self, task: "asyncio.Task[Credentials]") -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        # waiters get the outcome through the shield; mark it retrieved
        if not task.cancelled():
            task.exception()

    async def _refresh(self, stale_id_token: str) -> Credentials:
        async with self._lock:
            current = self._credentials
            if current is None:
                raise NoRefreshTokenError("no refresh token available")
            # a login may have replaced the tokens while we waited for the lock
            if current.id_token != stale_id_token:
                return current

            _LOGGER.debug("refreshing tokens for %s", self._email)
            try:
                resp = await self._identity.refresh_tokens(current.refresh_token)
            except IdentityProviderError as err:
                _LOGGER.warning(
                    "token refresh for %s rejected: %s", self._email, err.error_type
                )
                raise RefreshFailedError(f"failed to refresh tokens: {err}") from err

            result = resp.get("AuthenticationResult")
            if not result:
                raise RefreshFailedError("failed to refresh tokens")

            try:
                credentials = Credentials.from_authentication_result(
                    result,
                    now=self._clock(),
                    previous_refresh_token=current.refresh_token,
                )
            except ValueError as err:
                raise RefreshFailedError(f"failed to refresh tokens: {err}") from err

            self._credentials = credentials

        _LOGGER.info("refreshed tokens for %s", self._email)
        self._emit(credentials)
        return credentials

    def _emit(self, credentials: Credentials) -> None:
        event = TokenRefreshEvent(
            id_token=credentials.id_token,
            access_token=credentials.access_token,
            refresh_token=credentials.refresh_token,
        )
        for callback in list(self._observers):
            try:
                callback(event)
            except Exception:
                _LOGGER.exception("token refresh callback %r failed", callback)

    async def aclose(self) -> None:
        if self._owns_identity:
            await self._identity.aclose()
