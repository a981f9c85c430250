"""Request and response schemas for the bad-debt actions."""

from pydantic import BaseModel, Field
from typing import Optional, Union


class MarkBadDebtRequest(BaseModel):
    """Checkbox-style flag: true, "true", 1 and "1" mean checked."""
    bad_debt: Union[bool, int, str] = Field(..., alias="badDebt")

    model_config = {"populate_by_name": True}


class MarkBadDebtResponse(BaseModel):
    success: bool
    company_id: str = Field(..., alias="companyId")
    bad_debt: str

    model_config = {"populate_by_name": True}


class ArchiveSingleInvoiceResponse(BaseModel):
    success: bool
    invoice_id: str = Field(..., alias="invoiceId")
    invoice_number: str = Field(..., alias="invoiceNumber")
    message: str

    model_config = {"populate_by_name": True}


class FailedInvoice(BaseModel):
    number: str
    reason: str


class ArchiveOverdueInvoicesResponse(BaseModel):
    """Per-invoice results; ``success`` reflects the final company flag write."""
    success: bool
    archived_count: int = Field(..., alias="archivedCount")
    archived_invoices: list[str] = Field(default_factory=list, alias="archivedInvoices")
    failed_invoices: list[FailedInvoice] = Field(default_factory=list, alias="failedInvoices")
    company_marked: bool = Field(..., alias="companyMarked")
    message: str

    model_config = {"populate_by_name": True}


class CascadeBadDebtRequest(BaseModel):
    company_id: str = Field(..., alias="companyId", min_length=1, pattern=r"^\d+$")
    invoice_id: str = Field(..., alias="invoiceId", min_length=1, pattern=r"^\d+$")
    deal_id: Optional[str] = Field(None, alias="dealId", pattern=r"^\d+$")

    model_config = {"populate_by_name": True}


class TargetUpdate(BaseModel):
    object_type: str = Field(..., alias="objectType")
    object_id: Optional[str] = Field(None, alias="objectId")
    updated: bool
    error: Optional[str] = None

    model_config = {"populate_by_name": True}


class CascadeBadDebtResponse(BaseModel):
    """``success`` only says the cascade ran; check the per-object flags."""
    success: bool
    invoice_id: str = Field(..., alias="invoiceId")
    invoice_number: Optional[str] = Field(None, alias="invoiceNumber")
    invoice_updated: bool = Field(..., alias="invoiceUpdated")
    deal_updated: bool = Field(..., alias="dealUpdated")
    company_updated: bool = Field(..., alias="companyUpdated")
    updates: list[TargetUpdate] = Field(default_factory=list)
    message: str

    model_config = {"populate_by_name": True}
