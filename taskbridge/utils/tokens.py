"""Stored OAuth tokens with refresh-token renewal.

The interactive authorization flows live outside taskbridge; they leave a
JSON token file behind. Both the google-auth ``authorized_user`` layout
(``token``/``expiry``) and the plain OAuth layout
(``access_token``/``expires_at``) are understood.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx

from taskbridge.core.errors import AuthenticationError
from taskbridge.utils.dates import parse_timestamp

logger = logging.getLogger(__name__)

EXPIRY_MARGIN = timedelta(seconds=60)


class OAuthTokenFile:
    """Access-token provider backed by a token file on disk."""

    def __init__(
        self,
        token_path: Path,
        token_uri: str,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        scope: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            token_path: JSON file written by the authorization flow
            token_uri: Provider token endpoint used for refreshing
            client_id: OAuth client ID (falls back to the value in the file)
            client_secret: OAuth client secret (falls back to the value in the file)
            scope: Scope requested on refresh, if the provider needs it
            transport: Optional httpx transport (used by tests)
        """
        self.token_path = token_path
        self.token_uri = token_uri
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self._transport = transport
        self._data: dict[str, Any] | None = None
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.token_path.exists():
            raise AuthenticationError(f"Token file not found: {self.token_path}")
        try:
            with open(self.token_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AuthenticationError(f"Cannot read token file {self.token_path}: {e}") from e
        if not isinstance(data, dict):
            raise AuthenticationError(f"Token file {self.token_path} is not a JSON object")
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.token_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    @staticmethod
    def _access_token(data: dict[str, Any]) -> str | None:
        return data.get("access_token") or data.get("token")

    @staticmethod
    def _expires_at(data: dict[str, Any]) -> datetime | None:
        value = data.get("expires_at") or data.get("expiry")
        if value is None:
            return None
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return parse_timestamp(str(value))

    def _is_expired(self, data: dict[str, Any]) -> bool:
        expires_at = self._expires_at(data)
        if expires_at is None:
            return False
        return datetime.now(timezone.utc) + EXPIRY_MARGIN >= expires_at

    async def get_access_token(self) -> str:
        """
        Return a valid access token, refreshing it first if it has expired.

        Raises:
            AuthenticationError: If no usable token is available
        """
        async with self._lock:
            if self._data is None:
                self._data = self._load()

            token = self._access_token(self._data)
            if token and not self._is_expired(self._data):
                return token

            self._data = await self._refresh(self._data)
            token = self._access_token(self._data)
            if not token:
                raise AuthenticationError("Token refresh returned no access token")
            return token

    async def _refresh(self, data: dict[str, Any]) -> dict[str, Any]:
        refresh_token = data.get("refresh_token")
        if not refresh_token:
            raise AuthenticationError(f"Token in {self.token_path} expired and has no refresh token")

        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id or data.get("client_id") or "",
        }
        client_secret = self.client_secret or data.get("client_secret")
        if client_secret:
            form["client_secret"] = client_secret
        if self.scope:
            form["scope"] = self.scope

        logger.info(f"Refreshing OAuth access token ({self.token_path.name})")
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(data.get("token_uri") or self.token_uri, data=form)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Token refresh failed: HTTP {e.response.status_code}")
            raise AuthenticationError(f"Failed to refresh OAuth token: {e}") from e
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Failed to refresh OAuth token: {e}") from e

        refreshed = dict(data)
        refreshed["access_token"] = payload["access_token"]
        refreshed.pop("token", None)
        if payload.get("refresh_token"):
            refreshed["refresh_token"] = payload["refresh_token"]
        expires_in = payload.get("expires_in")
        if expires_in:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            refreshed["expires_at"] = expires_at.isoformat()
            refreshed.pop("expiry", None)

        self._save(refreshed)
        logger.debug("OAuth token refreshed and saved")
        return refreshed
