"""Schemas for the OAuth connection endpoints and health check."""

from pydantic import BaseModel, Field
from typing import Optional


class ConnectionStatus(BaseModel):
    """Stored-token state for one portal."""
    connected: bool
    portal_id: str = Field(..., alias="portalId")
    hub_domain: Optional[str] = Field(None, alias="hubDomain")
    expires_at: Optional[int] = Field(None, alias="expiresAt", description="Epoch seconds")
    token_expired: Optional[bool] = Field(None, alias="tokenExpired")
    needs_refresh: Optional[bool] = Field(None, alias="needsRefresh")
    private_app_fallback: bool = Field(False, alias="privateAppFallback")
    message: Optional[str] = None

    model_config = {"populate_by_name": True}


class CallbackResponse(BaseModel):
    success: bool
    message: str
    portal_id: str = Field(..., alias="portalId")
    hub_domain: Optional[str] = Field(None, alias="hubDomain")

    model_config = {"populate_by_name": True}


class DisconnectResponse(BaseModel):
    success: bool
    message: str
    portal_id: str = Field(..., alias="portalId")

    model_config = {"populate_by_name": True}


class HealthResponse(BaseModel):
    """Liveness plus which credentials are configured. Makes no HubSpot calls."""
    ok: bool
    timestamp: str
    version: str
    environment: str
    oauth_configured: bool = Field(..., alias="oauthConfigured")
    private_app_token_configured: bool = Field(..., alias="privateAppTokenConfigured")
    token_store: str = Field(..., alias="tokenStore")

    model_config = {"populate_by_name": True}
