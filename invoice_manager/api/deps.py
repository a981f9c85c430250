"""
FastAPI Dependencies

Provides dependency injection for the OAuth manager, the tenant (portal)
of a request, and the authenticated HubSpot client.

Portal resolution:
- ``portalId`` query parameter, else
- the signed session cookie set by /auth/callback

SECURITY NOTES:
- Session cookies carry only the portal id, signed with SECRET_KEY
- A cookie that fails verification is ignored, never trusted
"""

from datetime import date, datetime, timedelta, timezone
from typing import Annotated, Optional
import logging

from fastapi import Cookie, Depends, Path, Query
from jose import JWTError, jwt

from invoice_manager.config import settings
from invoice_manager.exceptions import MissingIdentifierError, NotConnectedError, ValidationError
from invoice_manager.services.hubspot_client import HubSpotClient
from invoice_manager.services.hubspot_oauth import HubSpotOAuthManager, get_oauth_manager
from invoice_manager.services.invoice_rules import reference_today
from invoice_manager.services.invoice_workflow import InvoiceWorkflow

logger = logging.getLogger(__name__)

HUBSPOT_ID_PATTERN = r"^\d+$"


def create_session_token(portal_id: str, expires_delta: timedelta | None = None) -> str:
    """Sign a session token naming the connected portal."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.SESSION_MAX_AGE_DAYS))
    return jwt.encode({"sub": portal_id, "exp": expire}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def read_session_token(token: str | None) -> Optional[str]:
    """Portal id from a session token, or None if absent, expired or forged."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        # SECURITY: Don't log token contents
        logger.warning("Session cookie failed verification")
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


async def get_manager() -> HubSpotOAuthManager:
    return get_oauth_manager()


async def get_portal_id(
    portal_id: Annotated[Optional[str], Query(alias="portalId", pattern=HUBSPOT_ID_PATTERN)] = None,
    session_token: Annotated[Optional[str], Cookie(alias=settings.SESSION_COOKIE_NAME)] = None,
) -> Optional[str]:
    """
    The request's portal, or None when the caller named none.

    A query portalId may only repeat the signed-in portal: the cookie is
    signed, the query string is not.
    """
    session_portal = read_session_token(session_token)
    if portal_id and session_portal and portal_id != session_portal:
        logger.warning(f"portalId {portal_id} conflicts with session portal {session_portal}")
        raise ValidationError(
            "portalId does not match the signed-in portal",
            errors=[{"field": "portalId", "message": "does not match the signed-in portal"}],
        )
    return portal_id or session_portal


async def require_portal_id(
    portal_id: Annotated[Optional[str], Depends(get_portal_id)],
) -> str:
    """Fail closed when an operation needs a portal and none was supplied."""
    if not portal_id:
        raise MissingIdentifierError("portalId")
    return portal_id


async def get_hubspot_client(
    portal_id: Annotated[Optional[str], Depends(get_portal_id)],
    manager: Annotated[HubSpotOAuthManager, Depends(get_manager)],
) -> HubSpotClient:
    """Authenticated client for the request; 401 when no credential is usable."""
    client = await manager.resolve_client(portal_id)
    if client is None:
        raise NotConnectedError(portal_id)
    return client


async def get_today() -> date:
    """Reference date for the whole request, captured once."""
    return reference_today()


async def get_workflow(
    client: Annotated[HubSpotClient, Depends(get_hubspot_client)],
) -> InvoiceWorkflow:
    return InvoiceWorkflow(client)


# Type aliases for cleaner endpoint signatures
OAuthManager = Annotated[HubSpotOAuthManager, Depends(get_manager)]
RequiredPortalId = Annotated[str, Depends(require_portal_id)]
Workflow = Annotated[InvoiceWorkflow, Depends(get_workflow)]
Today = Annotated[date, Depends(get_today)]
CompanyId = Annotated[str, Path(pattern=HUBSPOT_ID_PATTERN)]
InvoiceId = Annotated[str, Path(pattern=HUBSPOT_ID_PATTERN)]
