from invoice_manager.models.hubspot_token import HubSpotOAuthToken

__all__ = [
    "HubSpotOAuthToken",
]
