"""
HubSpot OAuth 2.0 session management.

Handles the authorization-code flow (CSRF state → code exchange → portal
lookup → token storage) and hands out authenticated HubSpotClients, refreshing
stale access tokens on the way.

Credential resolution order for a request:
1. Stored OAuth token for the portal (refreshed when within the skew of expiry)
2. Static private-app token from HS_PRIVATE_APP_TOKEN (fallback)

A failed refresh deletes the portal's token: refresh tokens do not recover
without the user, and keeping the record would repeat the failing refresh on
every request.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from invoice_manager.config import Settings, settings as default_settings
from invoice_manager.database import async_session_maker
from invoice_manager.exceptions import ConfigurationError, InvalidStateError, ProviderError
from invoice_manager.middleware.correlation import set_portal_id
from invoice_manager.services.hubspot_client import (
    HubSpotClient,
    decode_json,
    provider_error_from_exception,
    provider_error_from_response,
)
from invoice_manager.services.oauth_state import OAuthStateRegistry
from invoice_manager.services.token_store import (
    DatabaseTokenStore,
    MemoryTokenStore,
    TokenRecord,
    TokenStore,
)

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/token"
TOKEN_INFO_PATH = "/oauth/v1/access-tokens/{token}"
DEFAULT_EXPIRES_IN = 1800


class HubSpotOAuthManager:
    """OAuth flow, token refresh and client resolution for HubSpot portals."""

    def __init__(
        self,
        store: TokenStore,
        states: OAuthStateRegistry,
        http: httpx.AsyncClient,
        settings: Settings = default_settings,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.states = states
        self.settings = settings
        self._http = http
        self._clock = clock
        # Per-portal locks, held only while some request uses them
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def api_base(self) -> str:
        return self.settings.HUBSPOT_API_BASE.rstrip("/")

    @asynccontextmanager
    async def _portal_lock(self, portal_id: str) -> AsyncIterator[None]:
        """Serialise token work for one portal; the lock is dropped once idle."""
        lock = self._locks.setdefault(portal_id, asyncio.Lock())
        self._lock_users[portal_id] = self._lock_users.get(portal_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[portal_id] -= 1
            if not self._lock_users[portal_id]:
                del self._lock_users[portal_id]
                del self._locks[portal_id]

    def _require(self, name: str) -> str:
        value = getattr(self.settings, name)
        if not value:
            logger.error(f"{name} not configured")
            raise ConfigurationError(name)
        return value

    # ── Authorization flow ──────────────────────────────────────

    def authorization_url(self) -> Tuple[str, str]:
        """Issue a CSRF state and build the HubSpot consent URL for it."""
        client_id = self._require("HUBSPOT_CLIENT_ID")
        redirect_uri = self._require("HUBSPOT_REDIRECT_URI")

        state = self.states.issue()
        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": self.settings.HUBSPOT_SCOPES,
            "state": state,
        }
        logger.info("OAuth flow started")
        return f"{self.settings.HUBSPOT_AUTHORIZE_URL}?{urlencode(params)}", state

    async def complete_authorization(self, code: str, state: Optional[str]) -> TokenRecord:
        """
        Finish the flow for a callback: validate state, exchange the code,
        resolve the portal id and persist the token set.

        Any failure ends the attempt; the user restarts from /auth/start.
        """
        client_id = self._require("HUBSPOT_CLIENT_ID")
        client_secret = self._require("HUBSPOT_CLIENT_SECRET")
        redirect_uri = self._require("HUBSPOT_REDIRECT_URI")

        if not self.states.consume(state):
            logger.warning("OAuth callback rejected: invalid state")
            raise InvalidStateError()

        logger.info("OAuth callback accepted, exchanging authorization code")
        issued_at = int(self._clock())
        tokens = await self._token_request(
            {
                "grant_type": "authorization_code",
                "client_id": client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
            action="authorization code exchange",
        )

        info = await self._fetch_token_info(tokens["access_token"])
        hub_id = info.get("hub_id")
        if hub_id is None:
            logger.error("HubSpot token info response has no hub_id")
            raise ProviderError("HubSpot token info did not include a portal id")

        record = TokenRecord(
            portal_id=str(hub_id),
            access_token=tokens["access_token"],
            refresh_token=tokens["refresh_token"],
            expires_at=issued_at + tokens["expires_in"],
            hub_domain=info.get("hub_domain"),
        )
        async with self._portal_lock(record.portal_id):
            await self.store.put(record)
        set_portal_id(record.portal_id)
        logger.info(f"HubSpot portal {record.portal_id} connected")
        return record

    async def _token_request(self, form: Dict[str, str], action: str) -> Dict:
        try:
            response = await self._http.post(
                f"{self.api_base}{TOKEN_PATH}",
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise provider_error_from_exception(e, action) from e
        if response.status_code >= 400:
            raise provider_error_from_response(response, action)

        data = decode_json(response, action)
        if not data.get("access_token"):
            raise ProviderError(f"HubSpot {action} returned no access token")
        if form["grant_type"] == "authorization_code" and not data.get("refresh_token"):
            raise ProviderError(f"HubSpot {action} returned no refresh token")
        try:
            data["expires_in"] = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            raise ProviderError(f"HubSpot {action} returned an invalid expires_in")
        return data

    async def _fetch_token_info(self, access_token: str) -> Dict:
        # The token is part of the path: never log this URL
        try:
            response = await self._http.get(
                f"{self.api_base}{TOKEN_INFO_PATH.format(token=access_token)}",
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise provider_error_from_exception(e, "access token lookup") from e
        if response.status_code >= 400:
            raise provider_error_from_response(response, "access token lookup")
        return decode_json(response, "access token lookup")

    # ── Refresh ─────────────────────────────────────────────────

    async def refresh(self, record: TokenRecord) -> Optional[TokenRecord]:
        """
        Exchange the refresh token for a new pair and persist it.

        Returns None after deleting the record when HubSpot rejects the
        refresh or cannot be reached. Callers hold the portal's lock.
        """
        client_id = self._require("HUBSPOT_CLIENT_ID")
        client_secret = self._require("HUBSPOT_CLIENT_SECRET")

        issued_at = int(self._clock())
        try:
            tokens = await self._token_request(
                {
                    "grant_type": "refresh_token",
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "refresh_token": record.refresh_token,
                },
                action="token refresh",
            )
        except ProviderError as e:
            logger.error(f"Token refresh failed for portal {record.portal_id}, removing stored token: {e.message}")
            await self.store.delete(record.portal_id)
            return None

        updated = record.refreshed(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            expires_at=issued_at + tokens["expires_in"],
        )
        await self.store.put(updated)
        logger.info(f"HubSpot token refreshed for portal {record.portal_id}")
        return updated

    # ── Client resolution ───────────────────────────────────────

    def _static_client(self) -> Optional[HubSpotClient]:
        token = self.settings.HS_PRIVATE_APP_TOKEN
        if not token:
            return None
        return HubSpotClient(token, self._http, base_url=self.api_base, source="private_app")

    async def resolve_client(self, portal_id: Optional[str] = None) -> Optional[HubSpotClient]:
        """
        Authenticated client for ``portal_id``, or None when not connected.

        None means "not connected", not a transient failure: the caller must
        not retry it.
        """
        if not portal_id:
            return self._static_client()

        async with self._portal_lock(portal_id):
            record = await self.store.get(portal_id)
            if record is None:
                return self._static_client()

            if not record.is_fresh(self._clock(), self.settings.TOKEN_REFRESH_SKEW_SECONDS):
                logger.info(f"Access token for portal {portal_id} is stale, refreshing")
                record = await self.refresh(record)
                if record is None:
                    return None

        set_portal_id(portal_id)
        return HubSpotClient(
            record.access_token,
            self._http,
            base_url=self.api_base,
            portal_id=portal_id,
            source="oauth",
        )

    # ── Status / disconnect ─────────────────────────────────────

    async def connection_status(self, portal_id: str) -> Dict:
        """Stored-token state for a portal. Never refreshes."""
        record = await self.store.get(portal_id)
        fallback = bool(self.settings.HS_PRIVATE_APP_TOKEN)
        if record is None:
            return {
                "connected": False,
                "portal_id": portal_id,
                "private_app_fallback": fallback,
                "message": "Not connected to HubSpot",
            }
        now = self._clock()
        return {
            "connected": True,
            "portal_id": portal_id,
            "hub_domain": record.hub_domain,
            "expires_at": record.expires_at,
            "token_expired": record.expires_at <= now,
            "needs_refresh": not record.is_fresh(now, self.settings.TOKEN_REFRESH_SKEW_SECONDS),
            "private_app_fallback": fallback,
        }

    async def disconnect(self, portal_id: str) -> None:
        """Delete the portal's stored token. Idempotent."""
        async with self._portal_lock(portal_id):
            await self.store.delete(portal_id)
        logger.info(f"HubSpot portal {portal_id} disconnected")


def build_token_store(settings: Settings = default_settings) -> TokenStore:
    if settings.TOKEN_STORE_BACKEND == "memory":
        logger.warning("Using in-memory token store: tokens are lost on restart")
        return MemoryTokenStore()
    return DatabaseTokenStore(async_session_maker)


# Singleton
_oauth_manager: Optional[HubSpotOAuthManager] = None


def get_oauth_manager() -> HubSpotOAuthManager:
    global _oauth_manager
    if _oauth_manager is None:
        _oauth_manager = HubSpotOAuthManager(
            store=build_token_store(default_settings),
            states=OAuthStateRegistry(ttl_seconds=default_settings.OAUTH_STATE_TTL_SECONDS),
            http=httpx.AsyncClient(timeout=default_settings.HUBSPOT_TIMEOUT_SECONDS),
        )
    return _oauth_manager


async def close_oauth_manager() -> None:
    global _oauth_manager
    if _oauth_manager is not None:
        await _oauth_manager._http.aclose()
        _oauth_manager = None
