"""Auth-refresh gate: one silent credential refresh, one replay.

Flow for every guarded call:
  1. Run the request.
  2. Classify the body; no credential problem → return it untouched.
  3. Credential problem → refresh once.
     - refreshed → replay once and return whatever comes back
     - not refreshed → clear identity state, raise ReauthenticationRequired

There is no loop: the request function runs at most twice per call, even if
the replay (or the refresh endpoint) reports an expired credential again.
"""

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from jobsync.backends.base import ApiResponse
from jobsync.sync.errors import AuthErrorKind, ReauthenticationRequired

logger = logging.getLogger(__name__)

# The server reports credential problems as prose; keep the literals here only.
_SENTINELS: dict[str, AuthErrorKind] = {
    "invalid token please login again": AuthErrorKind.INVALID_TOKEN,
    "Invalid token or expired": AuthErrorKind.EXPIRED_TOKEN,
    "Token or user details missing": AuthErrorKind.MISSING_CREDENTIALS,
}

TOKEN_ENV = "JOBSYNC_TOKEN"


def classify_auth_error(body: Any) -> AuthErrorKind | None:
    """Map a response body onto an AuthErrorKind, or None if it is not an auth error."""
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if not isinstance(message, str):
        return None
    return _SENTINELS.get(message)


class CredentialProvider(ABC):
    """The authentication collaborator: owns the bearer token."""

    @property
    @abstractmethod
    def token(self) -> str | None:
        """Current bearer token, or None when logged out."""

    @abstractmethod
    async def refresh(self) -> bool:
        """Try to obtain a fresh token. Returns True on success."""

    @abstractmethod
    def clear(self) -> None:
        """Forget all local identity state."""


class StaticCredentials(CredentialProvider):
    """A fixed token (e.g. from ``JOBSYNC_TOKEN``) that cannot be refreshed."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token if token is not None else os.environ.get(TOKEN_ENV)

    @property
    def token(self) -> str | None:
        return self._token

    async def refresh(self) -> bool:
        logger.debug("Static credentials cannot be refreshed")
        return False

    def clear(self) -> None:
        self._token = None


RequestFn = Callable[[], Awaitable[ApiResponse]]


class AuthRefreshGate:
    """Wraps outbound requests with a single refresh-and-replay on credential expiry."""

    def __init__(
        self,
        credentials: CredentialProvider,
        on_reauth_required: Callable[[], None] | None = None,
    ) -> None:
        self._credentials = credentials
        self._on_reauth_required = on_reauth_required

    @property
    def credentials(self) -> CredentialProvider:
        return self._credentials

    async def guarded_request(self, request_fn: RequestFn) -> ApiResponse:
        """Run ``request_fn`` with at most one refresh and one replay.

        Raises:
            ReauthenticationRequired: the refresh failed; identity state was cleared.
        """
        response = await request_fn()
        kind = classify_auth_error(response.body)
        if kind is None:
            return response

        logger.info("Credential rejected (%s); attempting one refresh", kind.value)
        try:
            refreshed = await self._credentials.refresh()
        except Exception:
            logger.exception("Credential refresh raised")
            refreshed = False

        if not refreshed:
            logger.warning("Credential refresh failed; re-authentication required")
            self._credentials.clear()
            if self._on_reauth_required is not None:
                self._on_reauth_required()
            raise ReauthenticationRequired(kind)

        logger.info("Credential refreshed; replaying request once")
        return await request_fn()
