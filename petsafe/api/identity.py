import logging
from typing import Any, Literal, TypedDict, cast

import httpx
from yarl import URL

from ..const import (
    COGNITO_CLIENT_ID,
    COGNITO_CONTENT_TYPE,
    COGNITO_REGION,
    COGNITO_TARGET_PREFIX,
    REQUEST_TIMEOUT,
    TRANSPORT_RETRIES,
)
from ..exceptions import IdentityProviderError

_LOGGER = logging.getLogger(__name__)

CUSTOM_CHALLENGE: Literal["CUSTOM_CHALLENGE"] = "CUSTOM_CHALLENGE"


class AuthenticationResult(TypedDict, total=False):
    IdToken: str
    AccessToken: str
    RefreshToken: str
    """only present on login and when the provider rotates it"""
    ExpiresIn: int
    TokenType: str


class ChallengeParameters(TypedDict, total=False):
    USERNAME: str


class AuthResponse(TypedDict, total=False):
    ChallengeName: str
    Session: str
    ChallengeParameters: ChallengeParameters
    AuthenticationResult: AuthenticationResult


class CognitoIdentityClient:
    """Minimal client for the Cognito user pool API used by PetSafe.

    Only the three calls needed for the passwordless e-mail login are
    implemented. The pool is public, so requests are unsigned.

    Args:
        client_id: App client id of the user pool.
        region: AWS region hosting the user pool.
        transport: Optional httpx transport, mostly useful for tests.
    """

    @property
    def endpoint(self) -> URL:
        return self._endpoint

    @property
    def client_id(self) -> str:
        return self._client_id

    def __init__(
        self,
        *,
        client_id: str = COGNITO_CLIENT_ID,
        region: str = COGNITO_REGION,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        if transport is None:
            transport = httpx.AsyncHTTPTransport(retries=TRANSPORT_RETRIES)
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._client_id = client_id
        self._region = region
        self._endpoint = URL.build(
            scheme="https", host=f"cognito-idp.{region}.amazonaws.com", path="/"
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, operation: str, payload: dict[str, Any]) -> AuthResponse:
        """POST one operation to the user pool and return the decoded body.

        Raises:
            IdentityProviderError: If the provider answers with an error
                envelope or a non-JSON body.
            httpx.TransportError: On network problems.
        """
        _LOGGER.debug("cognito %s @ %s", operation, self._region)
        resp = await self._client.post(
            str(self._endpoint),
            json=payload,
            headers={
                "Content-Type": COGNITO_CONTENT_TYPE,
                "X-Amz-Target": f"{COGNITO_TARGET_PREFIX}.{operation}",
            },
        )
        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = None

        if resp.is_error or not isinstance(data, dict):
            error_type = "UnknownError"
            message = resp.text[:200] if resp.text else ""
            if isinstance(data, dict):
                # "__type" may be namespaced, e.g. "com.amazon...#NotAuthorizedException"
                error_type = str(data.get("__type", error_type)).rsplit("#", 1)[-1]
                message = str(data.get("message", data.get("Message", "")))
            _LOGGER.warning(
                "cognito %s failed with HTTP %d: %s",
                operation,
                resp.status_code,
                error_type,
            )
            raise IdentityProviderError(
                error_type, message, status_code=resp.status_code
            )

        return cast(AuthResponse, data)

    async def initiate_custom_auth(self, username: str) -> AuthResponse:
        return await self._call(
            "InitiateAuth",
            {
                "AuthFlow": "CUSTOM_AUTH",
                "ClientId": self._client_id,
                "AuthParameters": {
                    "USERNAME": username,
                    "AuthFlow": CUSTOM_CHALLENGE,
                },
            },
        )

    async def respond_to_challenge(
        self, *, challenge_name: str, session: str, username: str, answer: str
    ) -> AuthResponse:
        return await self._call(
            "RespondToAuthChallenge",
            {
                "ChallengeName": challenge_name,
                "ClientId": self._client_id,
                "Session": session,
                "ChallengeResponses": {
                    "USERNAME": username,
                    "ANSWER": answer,
                },
            },
        )

    async def refresh_tokens(self, refresh_token: str) -> AuthResponse:
        return await self._call(
            "InitiateAuth",
            {
                "AuthFlow": "REFRESH_TOKEN_AUTH",
                "ClientId": self._client_id,
                "AuthParameters": {"REFRESH_TOKEN": refresh_token},
            },
        )
