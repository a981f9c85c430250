"""
HubSpot OAuth token storage.

One token set per portal, keyed by the portal id. Writes are full-record
upserts (last write wins); serialising refreshes per portal is the session
manager's job, not the store's.

Backends:
- DatabaseTokenStore: the ``hubspot_oauth_tokens`` table (durable, default)
- MemoryTokenStore: a process-local dict (development and tests)
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from invoice_manager.models.hubspot_token import HubSpotOAuthToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenRecord:
    """A portal's OAuth token set. ``expires_at`` is in epoch seconds."""

    portal_id: str
    access_token: str
    refresh_token: str
    expires_at: int
    hub_domain: Optional[str] = None

    def is_fresh(self, now: Optional[float] = None, skew_seconds: int = 60) -> bool:
        """True while the access token stays valid beyond the refresh skew."""
        now = time.time() if now is None else now
        return self.expires_at > now + skew_seconds

    def refreshed(self, access_token: str, refresh_token: Optional[str], expires_at: int) -> "TokenRecord":
        """Copy with new credentials; keeps the old refresh token unless rotated."""
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token or self.refresh_token,
            expires_at=expires_at,
        )

    def __repr__(self) -> str:
        return f"TokenRecord(portal_id={self.portal_id!r}, expires_at={self.expires_at})"


class TokenStore(ABC):
    """Keyed storage for TokenRecords."""

    @abstractmethod
    async def get(self, portal_id: str) -> Optional[TokenRecord]:
        ...

    @abstractmethod
    async def put(self, record: TokenRecord) -> None:
        ...

    @abstractmethod
    async def delete(self, portal_id: str) -> None:
        """Remove the portal's record. Deleting a missing record is not an error."""


class MemoryTokenStore(TokenStore):
    """Tokens in a process-local dict; lost on restart, not shared between instances."""

    def __init__(self):
        self._records: Dict[str, TokenRecord] = {}

    async def get(self, portal_id: str) -> Optional[TokenRecord]:
        return self._records.get(portal_id)

    async def put(self, record: TokenRecord) -> None:
        self._records[record.portal_id] = record

    async def delete(self, portal_id: str) -> None:
        self._records.pop(portal_id, None)


class DatabaseTokenStore(TokenStore):
    """Tokens in the ``hubspot_oauth_tokens`` table, one short session per call."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @staticmethod
    def _to_record(row: HubSpotOAuthToken) -> TokenRecord:
        return TokenRecord(
            portal_id=row.portal_id,
            access_token=row.access_token,
            refresh_token=row.refresh_token,
            expires_at=int(row.expires_at),
            hub_domain=row.hub_domain,
        )

    async def get(self, portal_id: str) -> Optional[TokenRecord]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(HubSpotOAuthToken).where(HubSpotOAuthToken.portal_id == portal_id)
            )
            row = result.scalar_one_or_none()
            return self._to_record(row) if row else None

    async def put(self, record: TokenRecord) -> None:
        async with self._session_maker() as session:
            row = await session.get(HubSpotOAuthToken, record.portal_id)
            if row is None:
                row = HubSpotOAuthToken(portal_id=record.portal_id)
                session.add(row)
            row.access_token = record.access_token
            row.refresh_token = record.refresh_token
            row.expires_at = record.expires_at
            row.hub_domain = record.hub_domain
            await session.commit()
        logger.debug(f"Stored HubSpot token for portal {record.portal_id}")

    async def delete(self, portal_id: str) -> None:
        async with self._session_maker() as session:
            await session.execute(
                delete(HubSpotOAuthToken).where(HubSpotOAuthToken.portal_id == portal_id)
            )
            await session.commit()
