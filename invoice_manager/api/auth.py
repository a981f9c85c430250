"""
HubSpot OAuth connection endpoints.

Provides:
- OAuth 2.0 authorization-code flow (start → HubSpot consent → callback)
- Connection status for a portal
- Disconnect (delete the stored token)
"""

from typing import Optional
import logging

from fastapi import APIRouter, Query, Response
from fastapi.responses import RedirectResponse

from invoice_manager.api.deps import OAuthManager, RequiredPortalId, create_session_token
from invoice_manager.config import settings
from invoice_manager.exceptions import InvalidStateError, MissingIdentifierError, ProviderError
from invoice_manager.schemas.auth import CallbackResponse, ConnectionStatus, DisconnectResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_session_cookie(response: Response, portal_id: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(portal_id),
        max_age=settings.SESSION_MAX_AGE_DAYS * 24 * 3600,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


@router.get("/start", status_code=302)
async def start_authorization(manager: OAuthManager) -> RedirectResponse:
    """Issue a CSRF state and redirect the browser to HubSpot's consent screen."""
    auth_url, _ = manager.authorization_url()
    return RedirectResponse(auth_url, status_code=302)


@router.get("/callback")
async def authorization_callback(
    response: Response,
    manager: OAuthManager,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
) -> CallbackResponse:
    """Handle HubSpot's redirect: validate state, exchange the code, store the token."""
    if error:
        # The state is spent either way; a denied consent needs a fresh start
        if not manager.states.consume(state):
            raise InvalidStateError()
        logger.warning(f"HubSpot authorization denied: {error}")
        raise ProviderError(
            f"HubSpot authorization was not granted: {error_description or error}",
            status_code=400,
        )
    if not code:
        raise MissingIdentifierError("code")

    record = await manager.complete_authorization(code, state)
    _set_session_cookie(response, record.portal_id)

    return CallbackResponse(
        success=True,
        message="HubSpot connected successfully",
        portal_id=record.portal_id,
        hub_domain=record.hub_domain,
    )


@router.get("/status")
async def connection_status(
    portal_id: RequiredPortalId,
    manager: OAuthManager,
) -> ConnectionStatus:
    """Report whether a token is stored for the portal. No side effects."""
    status = await manager.connection_status(portal_id)
    return ConnectionStatus(**status)


@router.post("/disconnect")
async def disconnect(
    response: Response,
    portal_id: RequiredPortalId,
    manager: OAuthManager,
) -> DisconnectResponse:
    """Delete the portal's stored token. Safe to call repeatedly."""
    await manager.disconnect(portal_id)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return DisconnectResponse(
        success=True,
        message="HubSpot disconnected",
        portal_id=portal_id,
    )
