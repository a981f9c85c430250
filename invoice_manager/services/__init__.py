# Services module
from invoice_manager.services.hubspot_client import CrmObject, HubSpotClient
from invoice_manager.services.invoice_workflow import InvoiceWorkflow
from invoice_manager.services.oauth_state import OAuthStateRegistry
from invoice_manager.services.token_store import (
    DatabaseTokenStore,
    MemoryTokenStore,
    TokenRecord,
    TokenStore,
)

__all__ = [
    "CrmObject",
    "HubSpotClient",
    "InvoiceWorkflow",
    "OAuthStateRegistry",
    "DatabaseTokenStore",
    "MemoryTokenStore",
    "TokenRecord",
    "TokenStore",
]
