import json
import logging
from types import TracebackType
from typing import Any

import httpx
import json_repair
from yarl import URL

from ..const import (
    AUTH_RETRY_STATUSES,
    PETSAFE_API_BASE,
    REQUEST_TIMEOUT,
    TRANSPORT_RETRIES,
)
from ..exceptions import AuthenticationFailed, PetSafeResponseError
from .identity import CognitoIdentityClient
from .session import (
    ChallengeState,
    Credentials,
    SessionManager,
    SessionState,
    TokenRefreshCallback,
    TokenRefreshEvent,
    normalize_code,
)

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "ChallengeState",
    "CognitoIdentityClient",
    "Credentials",
    "PetSafeApi",
    "SessionManager",
    "SessionState",
    "TokenRefreshCallback",
    "TokenRefreshEvent",
    "decode_json",
    "normalize_code",
]


def decode_json(resp: httpx.Response, *, expected_type: Any = None) -> Any:
    """Decode the JSON body of a platform response.

    An empty body decodes to ``None`` (or ``[]`` if a list is expected). Broken
    JSON is repaired with ``json_repair`` before giving up.

    Raises:
        PetSafeResponseError: If the body can't be decoded or has the wrong type.
    """
    try:
        data = resp.json()
    except ValueError:
        if not resp.content:
            data = None
        else:
            _LOGGER.debug("invalid json payload: %s", resp.content)
            try:
                data = json.loads(json_repair.repair_json(resp.text))
            except Exception as repair_error:
                _LOGGER.debug("json repair failed: %s", repair_error)
                raise PetSafeResponseError("invalid json payload") from repair_error
            _LOGGER.debug("successfully repaired json: %s", data)

    if expected_type is list and data is None:
        data = []

    if expected_type is not None and not isinstance(data, expected_type):
        raise PetSafeResponseError(
            f"data type mismatch ({type(data)} != {expected_type})"
        )
    return data


class PetSafeApi:
    """Authenticated client for the PetSafe cloud platform.

    Every request carries the current identity token. If the platform answers
    401 or 403, the tokens are refreshed once and the request is sent again;
    a second rejection is raised as :class:`AuthenticationFailed`.

    Args:
        session: Session manager holding the user's tokens.
        base_url: Base URL of the platform API.
        transport: Optional httpx transport, mostly useful for tests.
        timeout: Request timeout in seconds.
    """

    @property
    def base_url(self) -> URL:
        """Return the base URL of the platform API."""
        return self._base_url

    @property
    def session(self) -> SessionManager:
        return self._session

    def __init__(
        self,
        session: SessionManager,
        *,
        base_url: URL | str = PETSAFE_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        if transport is None:
            transport = httpx.AsyncHTTPTransport(
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                retries=TRANSPORT_RETRIES,
            )
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._base_url = URL(base_url)
        self._session = session

    @classmethod
    def for_email(
        cls,
        email: str,
        *,
        credentials: Credentials | None = None,
        session: str | None = None,
        identity: CognitoIdentityClient | None = None,
        **kwargs: Any,
    ) -> "PetSafeApi":
        """Create a client together with its session manager."""
        manager = SessionManager(
            email, credentials=credentials, session=session, identity=identity
        )
        return cls(manager, **kwargs)

    async def __aenter__(self) -> "PetSafeApi":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._session.aclose()

    def _url(self, path: str) -> str:
        # paths may carry their own query, e.g. ".../messages?days=7"
        relative = URL(path.lstrip("/"))
        url = self._base_url / relative.path if relative.path else self._base_url
        if relative.query_string:
            url = url.with_query(relative.query)
        return str(url)

    @staticmethod
    def _headers(id_token: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": id_token,
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one authenticated request.

        Raises:
            NotAuthenticatedError: If the user never logged in.
            RefreshFailedError: If the tokens could not be refreshed.
            AuthenticationFailed: If the platform still answers 401/403 after
                a refresh.
            httpx.HTTPStatusError: For any other error status.
            httpx.TransportError: For network errors.
        """
        url = self._url(path)

        async def once(id_token: str) -> httpx.Response:
            _LOGGER.debug("%s %s params=%s", method, url, params)
            resp = await self._client.request(
                method,
                url,
                json=data,
                params=params,
                headers=self._headers(id_token),
            )
            resp.raise_for_status()
            return resp

        id_token = await self._session.ensure_valid()
        try:
            return await once(id_token)
        except httpx.HTTPStatusError as err:
            if err.response.status_code not in AUTH_RETRY_STATUSES:
                _LOGGER.warning(
                    "HTTP error %d for %s %s: %s",
                    err.response.status_code,
                    method,
                    url,
                    err.response.text[:200] if err.response.text else "No response body",
                )
                raise
            _LOGGER.warning(
                "HTTP %d for %s %s, refreshing tokens and retrying once",
                err.response.status_code,
                method,
                url,
            )

        credentials = await self._session.refresh(stale_id_token=id_token)
        try:
            return await once(credentials.id_token)
        except httpx.HTTPStatusError as err:
            if err.response.status_code not in AUTH_RETRY_STATUSES:
                raise
            _LOGGER.warning(
                "Authentication failed for %s %s after token refresh (HTTP %d)",
                method,
                url,
                err.response.status_code,
            )
            raise AuthenticationFailed(
                f"{method} {path} rejected after token refresh",
                status_code=err.response.status_code,
                body=err.response.text,
            ) from err

    async def get(
        self, path: str, data: Any = None, *, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        return await self._request("GET", path, data=data, params=params)

    async def post(
        self, path: str, data: Any = None, *, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        return await self._request("POST", path, data=data, params=params)

    async def put(
        self, path: str, data: Any = None, *, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        return await self._request("PUT", path, data=data, params=params)

    async def patch(
        self, path: str, data: Any = None, *, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        return await self._request("PATCH", path, data=data, params=params)

    async def delete(
        self, path: str, data: Any = None, *, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        return await self._request("DELETE", path, data=data, params=params)
