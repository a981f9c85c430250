from pydantic import BaseModel, Field
from typing import Optional


class CompanySummary(BaseModel):
    id: str
    name: str
    bad_debt: str = "false"


class DealResponse(BaseModel):
    id: str
    dealname: str
    amount: Optional[str] = None
    dealstage: str
    closedate: Optional[str] = None
    bad_debt: Optional[str] = None


class InvoiceResponse(BaseModel):
    """HubSpot invoice properties plus the derived overdue/paid flags."""
    id: str
    hs_invoice_number: str
    hs_invoice_status: str
    hs_due_date: Optional[str] = None
    hs_payment_status: Optional[str] = None
    hs_amount_paid: Optional[str] = None
    amount: Optional[str] = None
    bad_debt: Optional[str] = None
    deal_id: Optional[str] = Field(None, alias="dealId")
    deal_name: Optional[str] = Field(None, alias="dealName")
    is_overdue: bool = Field(False, alias="isOverdue")
    is_paid: bool = Field(False, alias="isPaid")

    model_config = {"populate_by_name": True}


class CompanyDataResponse(BaseModel):
    company: CompanySummary
    deals: list[DealResponse]
    invoices: list[InvoiceResponse]
    overdue_count: int = Field(0, alias="overdueCount")

    model_config = {"populate_by_name": True}
