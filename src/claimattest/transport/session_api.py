"""
HTTP client for the backend session service.

Endpoints (relative to ``BackendSettings.base_url``):

    POST /api/sdk/create-session/    {sessionId, appId, providerId}
    POST /api/sdk/update/session/    {sessionId, status}
    GET  /api/sdk/session/{id}       -> {message, session?: {..., statusV2, proofs?}}
    POST /api/sdk/shortener          {fullUrl} -> {result: {shortUrl}}

Every call is wrapped in its own ErrorKind. The shortener never fails: it
falls back to the URL it was given.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from claimattest.core.settings import BackendSettings, get_settings
from claimattest.protocol.enums import ErrorKind, SessionStatus
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import StatusUrlResponse

_JSON_HEADERS = {"Content-Type": "application/json"}


class SessionAPIClient:
    """
    Async client for the backend session service.

    Typical usage:

        async with SessionAPIClient() as api:
            await api.create_session(session_id, app_id, provider_id)
            status = await api.get_session_status(session_id)

    Pass ``client`` to reuse a configured ``httpx.AsyncClient`` (tests use
    one built on ``httpx.MockTransport``); a client passed in is not closed
    by ``aclose``.
    """

    def __init__(
        self,
        settings: Optional[BackendSettings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings or get_settings().backend
        self._client = client
        self._owns_client = client is None
        self._log = logger or logging.getLogger(__name__)

    @property
    def settings(self) -> BackendSettings:
        return self._settings

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.request_timeout_s)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SessionAPIClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    async def create_session(self, session_id: str, app_id: str, provider_id: str) -> Dict[str, Any]:
        body = {"sessionId": session_id, "appId": app_id, "providerId": provider_id}
        try:
            return await self._post_json(self._settings.create_session_url, body)
        except (httpx.HTTPError, ValueError) as e:
            self._log.warning("create_session failed for %s: %s", session_id, e)
            raise ClaimAttestError(
                f"Error creating session with sessionId: {session_id}",
                ErrorKind.CREATE_SESSION_ERROR,
                e,
            ) from e

    async def update_session(self, session_id: str, status: SessionStatus) -> Dict[str, Any]:
        body = {"sessionId": session_id, "status": SessionStatus(status).value}
        try:
            return await self._post_json(self._settings.update_session_url, body)
        except (httpx.HTTPError, ValueError) as e:
            self._log.warning("update_session failed for %s: %s", session_id, e)
            raise ClaimAttestError(
                f"Error updating session with sessionId: {session_id}",
                ErrorKind.UPDATE_SESSION_ERROR,
                e,
            ) from e

    async def get_session_status(self, session_id: str) -> StatusUrlResponse:
        url = f"{self._settings.status_url_base}{session_id}"
        try:
            response = await self._http().get(url, headers=_JSON_HEADERS)
            response.raise_for_status()
            return StatusUrlResponse.from_dict(response.json())
        except (httpx.HTTPError, ValueError, ClaimAttestError) as e:
            raise ClaimAttestError(
                f"Error getting session with sessionId: {session_id}",
                ErrorKind.STATUS_URL_ERROR,
                e,
            ) from e

    # ------------------------------------------------------------------
    # Link shortener
    # ------------------------------------------------------------------
    async def shorten(self, url: str) -> str:
        self._log.debug("Attempting to shorten URL: %s", url)
        try:
            response = await self._http().post(
                self._settings.shortener_url,
                json={"fullUrl": url},
                headers=_JSON_HEADERS,
            )
            if response.status_code >= 400:
                self._log.info("Failed to shorten URL (status %d), using full URL", response.status_code)
                return url
            short_url = (response.json().get("result") or {}).get("shortUrl")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            self._log.info("Error shortening URL, using full URL: %s", e)
            return url
        if not isinstance(short_url, str) or not short_url:
            return url
        return short_url

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _post_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._http().post(url, json=body, headers=_JSON_HEADERS)
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()
