"""
HubSpot CRM API client.

An authenticated handle for one access token. It never refreshes or retries:
a timeout, transport fault or error response raises ProviderError and the
caller decides what that means for its operation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from invoice_manager.exceptions import ErrorCode, ProviderError

logger = logging.getLogger(__name__)

# v4 associations API page size ceiling
ASSOCIATIONS_PAGE_LIMIT = 500


@dataclass
class CrmObject:
    """A HubSpot CRM object as returned by the v3 objects API."""

    id: str
    properties: Dict[str, Optional[str]] = field(default_factory=dict)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.properties.get(name)
        return default if value is None else value


def provider_error_from_response(response: httpx.Response, action: str) -> ProviderError:
    """Build a ProviderError from a HubSpot error body ({status, message, category, ...})."""
    message = None
    category = None
    try:
        body = response.json()
        if isinstance(body, dict):
            message = body.get("message") or body.get("error_description")
            category = body.get("category") or body.get("error")
    except ValueError:
        pass
    if not message:
        message = response.text[:200] if response.text else f"HTTP {response.status_code}"
    return ProviderError(
        f"HubSpot {action} failed ({response.status_code}): {message}",
        provider_status=response.status_code,
        category=category,
    )


def provider_error_from_exception(exc: httpx.HTTPError, action: str) -> ProviderError:
    """Timeouts and transport faults count as failures, never as success."""
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError(f"HubSpot {action} timed out", code=ErrorCode.TIMEOUT)
    return ProviderError(f"HubSpot {action} failed: {type(exc).__name__}")


def decode_json(response: httpx.Response, action: str) -> Dict[str, Any]:
    """JSON object body of a successful response; anything else is a provider failure."""
    try:
        data = response.json()
    except ValueError:
        logger.warning(f"HubSpot {action} returned a non-JSON body ({response.status_code})")
        raise ProviderError(
            f"HubSpot {action} returned an invalid body",
            provider_status=response.status_code,
        )
    if not isinstance(data, dict):
        raise ProviderError(
            f"HubSpot {action} returned an invalid body",
            provider_status=response.status_code,
        )
    return data


class HubSpotClient:
    """HubSpot CRM client bound to one access token."""

    def __init__(
        self,
        access_token: str,
        http: httpx.AsyncClient,
        base_url: str = "https://api.hubapi.com",
        portal_id: Optional[str] = None,
        source: str = "oauth",
    ):
        self._access_token = access_token
        self._http = http
        self.base_url = base_url.rstrip("/")
        self.portal_id = portal_id
        # "oauth" for a stored portal token, "private_app" for the static fallback
        self.source = source

    def __repr__(self) -> str:
        return f"<HubSpotClient portal={self.portal_id} source={self.source}>"

    async def _request(
        self,
        method: str,
        path: str,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
        }
        try:
            response = await self._http.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                params=params,
                json=json_data,
            )
        except httpx.HTTPError as e:
            logger.error(f"HubSpot {action} failed: {type(e).__name__}")
            raise provider_error_from_exception(e, action) from e

        if response.status_code >= 400:
            error = provider_error_from_response(response, action)
            logger.warning(error.message)
            raise error

        if response.status_code == 204 or not response.content:
            return None
        return decode_json(response, action)

    # ── Objects ─────────────────────────────────────────────────

    async def get_object(self, object_type: str, object_id: str, fields: List[str]) -> CrmObject:
        data = await self._request(
            "GET",
            f"/crm/v3/objects/{object_type}/{object_id}",
            action=f"get {object_type} {object_id}",
            params={"properties": ",".join(fields)} if fields else None,
        )
        data = data or {}
        return CrmObject(id=str(data.get("id", object_id)), properties=data.get("properties") or {})

    async def get_company(self, company_id: str, fields: List[str]) -> CrmObject:
        return await self.get_object("companies", company_id, fields)

    async def update_object(self, object_type: str, object_id: str, properties: Dict[str, str]) -> CrmObject:
        data = await self._request(
            "PATCH",
            f"/crm/v3/objects/{object_type}/{object_id}",
            action=f"update {object_type} {object_id}",
            json_data={"properties": properties},
        )
        data = data or {}
        return CrmObject(id=str(data.get("id", object_id)), properties=data.get("properties") or {})

    async def archive_object(self, object_type: str, object_id: str) -> None:
        """Archive (soft delete) an object; HubSpot keeps it restorable for 90 days."""
        await self._request(
            "DELETE",
            f"/crm/v3/objects/{object_type}/{object_id}",
            action=f"archive {object_type} {object_id}",
        )

    # ── Associations ────────────────────────────────────────────

    async def list_associations(self, from_type: str, object_id: str, to_type: str) -> List[str]:
        """All associated object ids, following paging cursors until exhausted."""
        ids: List[str] = []
        after: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"limit": ASSOCIATIONS_PAGE_LIMIT}
            if after:
                params["after"] = after
            data = await self._request(
                "GET",
                f"/crm/v4/objects/{from_type}/{object_id}/associations/{to_type}",
                action=f"list {from_type} {object_id} -> {to_type} associations",
                params=params,
            ) or {}
            for result in data.get("results") or []:
                to_id = result.get("toObjectId", result.get("id"))
                if to_id is not None:
                    ids.append(str(to_id))
            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                return ids
