"""
Company endpoints: overview, bad-debt flag, invoice archiving.

Every endpoint needs a usable HubSpot credential (401 otherwise) and
classifies invoices against one reference date captured per request.
"""

import logging

from fastapi.responses import JSONResponse
from fastapi import APIRouter

from invoice_manager.api.deps import CompanyId, InvoiceId, Today, Workflow
from invoice_manager.schemas.actions import (
    ArchiveOverdueInvoicesResponse,
    ArchiveSingleInvoiceResponse,
    FailedInvoice,
    MarkBadDebtRequest,
    MarkBadDebtResponse,
)
from invoice_manager.schemas.company import CompanyDataResponse
from invoice_manager.services.invoice_rules import parse_bool

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{company_id}")
async def get_company(
    company_id: CompanyId,
    workflow: Workflow,
    today: Today,
) -> CompanyDataResponse:
    """Company with its deals, invoices and overdue invoice count."""
    overview = await workflow.company_overview(company_id, today)
    return CompanyDataResponse(**overview)


@router.post("/{company_id}/bad-debt")
async def set_company_bad_debt(
    company_id: CompanyId,
    body: MarkBadDebtRequest,
    workflow: Workflow,
) -> MarkBadDebtResponse:
    """Set the company's bad_debt flag directly."""
    value = await workflow.set_company_bad_debt(company_id, parse_bool(body.bad_debt))
    return MarkBadDebtResponse(success=True, company_id=company_id, bad_debt=value)


@router.post("/{company_id}/invoices/{invoice_id}/archive")
async def archive_invoice(
    company_id: CompanyId,
    invoice_id: InvoiceId,
    workflow: Workflow,
    today: Today,
) -> ArchiveSingleInvoiceResponse:
    """Archive one overdue unpaid invoice and mark the company as bad debt."""
    result = await workflow.archive_single_invoice(company_id, invoice_id, today)
    return ArchiveSingleInvoiceResponse(**result)


@router.post(
    "/{company_id}/archive-overdue-invoices",
    response_model=ArchiveOverdueInvoicesResponse,
    responses={500: {"model": ArchiveOverdueInvoicesResponse, "description": "Company flag write failed"}},
)
async def archive_overdue_invoices(
    company_id: CompanyId,
    workflow: Workflow,
    today: Today,
):
    """
    Archive every overdue unpaid invoice of the company, then mark it as bad debt.

    Returns per-invoice results. When the final company write fails the same
    body is returned with status 500: archives listed in it already happened.
    """
    result = await workflow.mark_overdue_as_bad_debt(company_id, today)
    payload = ArchiveOverdueInvoicesResponse(
        success=result.success,
        archived_count=result.archived_count,
        archived_invoices=result.archived,
        failed_invoices=[FailedInvoice(number=f.number, reason=f.reason) for f in result.failed],
        company_marked=result.company_flagged,
        message=result.message,
    )
    if not result.success:
        return JSONResponse(status_code=500, content=payload.model_dump(by_alias=True))
    return payload
