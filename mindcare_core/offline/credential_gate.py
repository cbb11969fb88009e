# =============================================================================
# mindcare_core/offline/credential_gate.py
# Credential Liveness, Silent Renewal and Forced Logout
# =============================================================================
"""
CredentialGate - decides whether a write may reach the remote store.

Features:
- Expiry-aware validity check of the stored credential
- Exactly one silent renewal attempt per check, never retried
- Forced logout that clears stored credential artifacts
- Auth-outcome callbacks for the UI (login prompt, toasts)
"""

from __future__ import annotations
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
import logging

import httpx

from mindcare_core.errors import AuthExpired, AuthRequired
from mindcare_core.offline.local_database import LocalDatabase

logger = logging.getLogger(__name__)


class CredentialStatus(Enum):
    """What the provider holds right now."""
    VALID = "valid"
    EXPIRED = "expired"
    ABSENT = "absent"


class AuthOutcome(Enum):
    """Auth signal broadcast to subscribers."""
    SUCCESS = "success"
    FAILURE = "failure"
    LOGIN_REQUIRED = "login_required"


class SessionStatus(Enum):
    UNKNOWN = "unknown"
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


@dataclass
class SessionState:
    """Current session state with metadata."""
    status: SessionStatus = SessionStatus.UNKNOWN
    last_renewal: Optional[datetime] = None
    last_outcome: Optional[AuthOutcome] = None
    renewal_failures: int = 0


class CredentialProvider(ABC):
    """Opaque source of the OAuth credential (the consent flow lives elsewhere)."""

    @property
    @abstractmethod
    def access_token(self) -> Optional[str]:
        """Current access token, if any."""

    @property
    @abstractmethod
    def expires_at(self) -> Optional[float]:
        """Epoch seconds after which the access token is stale."""

    @abstractmethod
    def check_stored(self) -> CredentialStatus:
        """Inspect the stored credential without touching the network."""

    @abstractmethod
    async def renew_silently(self) -> Optional[str]:
        """Non-interactive refresh. Returns the new token or None on failure."""

    @abstractmethod
    def store(
        self,
        access_token: str,
        expires_in: Optional[int] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        """Persist a freshly issued token and restart the expiry clock."""

    @abstractmethod
    def sign_out(self) -> None:
        """Forget every stored credential artifact."""


class GoogleOAuthProvider(CredentialProvider):
    """
    Google OAuth credential persisted in the local app settings table.

    Renewal uses the refresh-token grant against Google's token endpoint.
    """

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    DEFAULT_TOKEN_LIFETIME = 3600  # Google access tokens last one hour

    ACCESS_TOKEN_KEY = "google_access_token"
    REFRESH_TOKEN_KEY = "google_refresh_token"
    EXPIRES_AT_KEY = "google_token_expires_at"

    def __init__(
        self,
        local_db: LocalDatabase,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_lifetime: int = DEFAULT_TOKEN_LIFETIME,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._local_db = local_db
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_lifetime = token_lifetime
        self._http_client = http_client
        self._timeout = timeout
        self._clock = clock

    @property
    def access_token(self) -> Optional[str]:
        return self._local_db.get_setting(self.ACCESS_TOKEN_KEY)

    @property
    def expires_at(self) -> Optional[float]:
        return self._local_db.get_setting(self.EXPIRES_AT_KEY)

    def check_stored(self) -> CredentialStatus:
        token = self.access_token
        refresh_token = self._local_db.get_setting(self.REFRESH_TOKEN_KEY)

        if not token and not refresh_token:
            return CredentialStatus.ABSENT
        if not token:
            return CredentialStatus.EXPIRED

        expires_at = self.expires_at
        if expires_at is not None and self._clock() > float(expires_at):
            logger.debug("Stored access token has expired")
            return CredentialStatus.EXPIRED
        return CredentialStatus.VALID

    async def renew_silently(self) -> Optional[str]:
        refresh_token = self._local_db.get_setting(self.REFRESH_TOKEN_KEY)
        if not refresh_token:
            logger.info("No refresh token stored, silent renewal impossible")
            return None
        if not self._client_id:
            logger.warning("Google client id not configured, cannot renew token")
            return None

        payload = {
            "client_id": self._client_id,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        if self._client_secret:
            payload["client_secret"] = self._client_secret

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.TOKEN_URL, data=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.TOKEN_URL, data=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Token refresh request failed: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Token refresh rejected ({response.status_code}): {response.text}")
            return None

        try:
            tokens = response.json()
        except ValueError:
            logger.warning(f"Token refresh response is not JSON: {response.text[:200]}")
            return None

        new_access_token = tokens.get("access_token") if isinstance(tokens, dict) else None
        if not new_access_token:
            logger.error("No access token in refresh response")
            return None

        self.store(
            new_access_token,
            expires_in=tokens.get("expires_in"),
            refresh_token=tokens.get("refresh_token"),
        )
        return new_access_token

    def store(
        self,
        access_token: str,
        expires_in: Optional[int] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        lifetime = int(expires_in) if expires_in else self._token_lifetime
        self._local_db.set_setting(self.ACCESS_TOKEN_KEY, access_token)
        self._local_db.set_setting(self.EXPIRES_AT_KEY, self._clock() + lifetime)
        if refresh_token:
            self._local_db.set_setting(self.REFRESH_TOKEN_KEY, refresh_token)
        logger.debug(f"Access token stored, expires in {lifetime}s")

    def sign_out(self) -> None:
        for key in (self.ACCESS_TOKEN_KEY, self.REFRESH_TOKEN_KEY, self.EXPIRES_AT_KEY):
            self._local_db.delete_setting(key)
        logger.info("Stored credentials cleared")


class CredentialGate:
    """
    Tracks liveness of the remote session.

    Usage:
        gate = CredentialGate(provider)
        await gate.require_valid()   # raises AuthRequired / AuthExpired
    """

    def __init__(self, provider: CredentialProvider):
        self._provider = provider
        self._state = SessionState()
        self._callbacks: List[Callable[[AuthOutcome], None]] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_signed_in(self) -> bool:
        return self._state.status == SessionStatus.SIGNED_IN

    @property
    def access_token(self) -> Optional[str]:
        return self._provider.access_token

    def is_valid(self) -> bool:
        """Token present and not past its declared expiry."""
        return self._provider.check_stored() == CredentialStatus.VALID

    async def renew_silently(self) -> bool:
        """
        Attempt one non-interactive refresh.

        Returns:
            True if a new token was obtained
        """
        token = await self._provider.renew_silently()
        if token:
            self._state.status = SessionStatus.SIGNED_IN
            self._state.last_renewal = datetime.now()
            self._state.renewal_failures = 0
            logger.info("Credential renewed silently")
            self._notify(AuthOutcome.SUCCESS)
            return True

        self._state.renewal_failures += 1
        logger.warning("Silent credential renewal failed")
        self._notify(AuthOutcome.FAILURE)
        return False

    async def require_valid(self) -> None:
        """
        Gate a write on a live credential.

        Raises:
            AuthRequired: no credential is stored at all
            AuthExpired: the credential is stale and renewal failed (forces logout)
        """
        status = self._provider.check_stored()

        if status == CredentialStatus.VALID:
            self._state.status = SessionStatus.SIGNED_IN
            return

        if status == CredentialStatus.ABSENT:
            self._state.status = SessionStatus.SIGNED_OUT
            raise AuthRequired()

        expired_at = self._provider.expires_at
        if await self.renew_silently():
            return

        self.force_logout()
        raise AuthExpired(
            expired_at=datetime.fromtimestamp(float(expired_at)).isoformat() if expired_at else None
        )

    async def restore_session(self) -> bool:
        """
        Startup check of stored credentials; never raises.

        Returns:
            True if the session is usable
        """
        was_valid = self.is_valid()
        try:
            await self.require_valid()
        except AuthRequired:
            logger.info("No stored credentials, login required")
            self._notify(AuthOutcome.LOGIN_REQUIRED)
            return False
        except AuthExpired:
            return False

        if was_valid:
            logger.info("Session restored from stored credentials")
            self._notify(AuthOutcome.SUCCESS)
        return True

    def sign_in(
        self,
        access_token: str,
        expires_in: Optional[int] = None,
        refresh_token: Optional[str] = None,
    ) -> None:
        """Record a token obtained by the consent flow."""
        self._provider.store(access_token, expires_in=expires_in, refresh_token=refresh_token)
        self._state.status = SessionStatus.SIGNED_IN
        logger.info("Signed in")
        self._notify(AuthOutcome.SUCCESS)

    def sign_out(self) -> None:
        """User-initiated logout."""
        self._provider.sign_out()
        self._state.status = SessionStatus.SIGNED_OUT
        logger.info("Signed out")
        self._notify(AuthOutcome.LOGIN_REQUIRED)

    def force_logout(self) -> None:
        """Invalidate the session after a failed renewal and ask for login."""
        self._provider.sign_out()
        self._state.status = SessionStatus.SIGNED_OUT
        logger.warning("Session expired and could not be renewed, forcing logout")
        self._notify(AuthOutcome.LOGIN_REQUIRED)

    def subscribe(self, callback: Callable[[AuthOutcome], None]) -> None:
        """Register a callback for auth outcomes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unsubscribe(self, callback: Callable[[AuthOutcome], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify(self, outcome: AuthOutcome) -> None:
        self._state.last_outcome = outcome
        for callback in self._callbacks:
            try:
                callback(outcome)
            except Exception as e:
                logger.error(f"Error in auth callback: {e}")
