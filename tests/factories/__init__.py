"""
Test factories for HubSpot CRM payloads.

Usage:
    from factories import InvoicePropertiesFactory, DealPropertiesFactory

    invoice = InvoicePropertiesFactory(hs_invoice_status="paid")
"""

from .hubspot import (
    CompanyPropertiesFactory,
    DealPropertiesFactory,
    InvoicePropertiesFactory,
)

__all__ = [
    "CompanyPropertiesFactory",
    "DealPropertiesFactory",
    "InvoicePropertiesFactory",
]
