"""HubSpot OAuth token storage model."""

from sqlalchemy import Column, String, Integer, DateTime, Text
from sqlalchemy.sql import func
from invoice_manager.database import Base


class HubSpotOAuthToken(Base):
    """Stores one HubSpot OAuth2 token set per portal."""

    __tablename__ = "hubspot_oauth_tokens"

    portal_id = Column(String(32), primary_key=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    # Epoch seconds: server-observed issuance time + provider expires_in
    expires_at = Column(Integer, nullable=False)
    hub_domain = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<HubSpotOAuthToken portal={self.portal_id} expires_at={self.expires_at}>"
