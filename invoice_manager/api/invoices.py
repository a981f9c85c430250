"""Invoice endpoints."""

import logging

from fastapi import APIRouter

from invoice_manager.api.deps import Today, Workflow
from invoice_manager.schemas.actions import (
    CascadeBadDebtRequest,
    CascadeBadDebtResponse,
    TargetUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/bad-debt")
async def mark_invoice_bad_debt(
    body: CascadeBadDebtRequest,
    workflow: Workflow,
    today: Today,
) -> CascadeBadDebtResponse:
    """
    Mark an overdue unpaid invoice, its deal and its company as bad debt.

    The three writes are independent: inspect invoiceUpdated, dealUpdated
    and companyUpdated, not just success.
    """
    result = await workflow.mark_invoice_bad_debt(
        body.company_id,
        body.invoice_id,
        today,
        deal_id=body.deal_id,
    )
    return CascadeBadDebtResponse(
        success=result.success,
        invoice_id=result.invoice_id,
        invoice_number=result.invoice_number,
        invoice_updated=result.invoice_updated,
        deal_updated=result.deal_updated,
        company_updated=result.company_updated,
        updates=[
            TargetUpdate(
                object_type=o.object_type,
                object_id=o.object_id,
                updated=o.updated,
                error=o.error,
            )
            for o in result.outcomes
        ],
        message=result.message,
    )
