"""
Company invoice overview and bad-debt actions.

Reads fan out over associations and tolerate per-item failures (the item is
logged and left out). Writes never hide a failure: every per-item outcome is
reported back. Nothing is rolled back; archives and flag writes that already
succeeded stay applied.

The destructive action for overdue invoices is archive (soft delete,
restorable in HubSpot for 90 days).
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from invoice_manager.exceptions import InvoicePreconditionError, ProviderError
from invoice_manager.services.hubspot_client import CrmObject, HubSpotClient
from invoice_manager.services.invoice_rules import (
    CLASSIFICATION_FIELDS,
    is_bad_debt_candidate,
    is_overdue,
    is_paid,
    to_hubspot_bool,
)

logger = logging.getLogger(__name__)

COMPANY_FIELDS = ["name", "bad_debt"]
DEAL_FIELDS = ["dealname", "amount", "dealstage", "closedate", "bad_debt"]
INVOICE_FIELDS = CLASSIFICATION_FIELDS + ["amount", "bad_debt"]

BAD_DEBT = "bad_debt"
OBJECT_LABELS = {"invoices": "invoice", "deals": "deal", "companies": "company"}


# ── Result types ────────────────────────────────────────────────

@dataclass
class FailedInvoice:
    number: str
    reason: str


@dataclass
class BulkArchiveResult:
    """Outcome of archiving a company's overdue invoices and flagging the company."""

    archived: List[str] = field(default_factory=list)
    failed: List[FailedInvoice] = field(default_factory=list)
    company_flagged: bool = False
    company_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.company_flagged

    @property
    def archived_count(self) -> int:
        return len(self.archived)

    @property
    def message(self) -> str:
        if self.company_flagged:
            parts = ["Company marked as bad debt."]
        else:
            parts = [f"Failed to mark company as bad debt: {self.company_error}."]
        if self.archived:
            parts.append(
                f"Archived {len(self.archived)} overdue invoice(s): {', '.join(self.archived)}. "
                "They are now hidden from reporting and can be restored within 90 days."
            )
        elif not self.failed:
            parts.append("No overdue unpaid invoices found.")
        if self.failed:
            details = ", ".join(f"{f.number} ({f.reason})" for f in self.failed)
            parts.append(f"Failed to archive {len(self.failed)} invoice(s): {details}")
        return " ".join(parts)


@dataclass
class TargetOutcome:
    """Result of one independent write in a cascade."""

    object_type: str
    object_id: Optional[str]
    updated: bool
    error: Optional[str] = None


@dataclass
class CascadeResult:
    """
    Per-target outcomes of a bad-debt cascade (invoice, deal, company).

    ``success`` is True once the cascade ran; callers must read the
    per-target flags to learn which objects were actually updated.
    """

    invoice_id: str
    invoice_number: Optional[str] = None
    outcomes: List[TargetOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return True

    def _updated(self, object_type: str) -> bool:
        return any(o.updated for o in self.outcomes if o.object_type == object_type)

    @property
    def invoice_updated(self) -> bool:
        return self._updated("invoices")

    @property
    def deal_updated(self) -> bool:
        return self._updated("deals")

    @property
    def company_updated(self) -> bool:
        return self._updated("companies")

    @property
    def message(self) -> str:
        updated = [OBJECT_LABELS[o.object_type] for o in self.outcomes if o.updated]
        failed = [f"{OBJECT_LABELS[o.object_type]} ({o.error})" for o in self.outcomes if o.error]
        message = f"Marked bad debt on: {', '.join(updated) or 'nothing'}."
        if failed:
            message += f" Failed: {', '.join(failed)}."
        return message


# ── Workflow ────────────────────────────────────────────────────

class InvoiceWorkflow:
    """Invoice reads and bad-debt actions against one authenticated client."""

    def __init__(self, client: HubSpotClient):
        self.client = client

    async def _fetch_each(self, object_type: str, ids: List[str], fields: List[str]) -> List[CrmObject]:
        """Fetch objects one by one; a failed fetch is logged and skipped."""
        objects = []
        for object_id in ids:
            try:
                objects.append(await self.client.get_object(object_type, object_id, fields))
            except ProviderError as e:
                logger.error(f"Failed to fetch {object_type} {object_id}: {e.message}")
        return objects

    async def _invoice_deal_id(self, invoice_id: str) -> Optional[str]:
        try:
            deal_ids = await self.client.list_associations("invoices", invoice_id, "deals")
        except ProviderError as e:
            logger.error(f"Failed to look up deal for invoice {invoice_id}: {e.message}")
            return None
        return deal_ids[0] if deal_ids else None

    # ── Reads ───────────────────────────────────────────────────

    async def company_overview(self, company_id: str, today: date) -> Dict:
        """Company, its deals and invoices, and how many invoices are overdue."""
        company = await self.client.get_company(company_id, COMPANY_FIELDS)

        deal_ids = await self.client.list_associations("companies", company_id, "deals")
        invoice_ids = await self.client.list_associations("companies", company_id, "invoices")

        deals = await self._fetch_each("deals", deal_ids, DEAL_FIELDS)
        deal_names = {deal.id: deal.get("dealname", "") for deal in deals}

        invoices = []
        overdue_count = 0
        for invoice in await self._fetch_each("invoices", invoice_ids, INVOICE_FIELDS):
            overdue = is_overdue(invoice.properties, today)
            if overdue:
                overdue_count += 1

            deal_id = await self._invoice_deal_id(invoice.id)
            deal_name = deal_names.get(deal_id) if deal_id else None
            if deal_id and deal_name is None:
                try:
                    deal = await self.client.get_object("deals", deal_id, ["dealname"])
                    deal_name = deal.get("dealname", "")
                except ProviderError as e:
                    logger.error(f"Failed to fetch deal {deal_id} for invoice {invoice.id}: {e.message}")

            invoices.append({
                "id": invoice.id,
                "hs_invoice_number": invoice.get("hs_invoice_number", ""),
                "hs_invoice_status": invoice.get("hs_invoice_status", ""),
                "hs_due_date": invoice.get("hs_due_date"),
                "hs_payment_status": invoice.get("hs_payment_status"),
                "hs_amount_paid": invoice.get("hs_amount_paid"),
                "amount": invoice.get("amount"),
                "bad_debt": invoice.get(BAD_DEBT),
                "deal_id": deal_id,
                "deal_name": deal_name,
                "is_overdue": overdue,
                "is_paid": is_paid(invoice.properties),
            })

        return {
            "company": {
                "id": company.id,
                "name": company.get("name", ""),
                "bad_debt": company.get(BAD_DEBT, "false"),
            },
            "deals": [
                {
                    "id": deal.id,
                    "dealname": deal.get("dealname", ""),
                    "amount": deal.get("amount"),
                    "dealstage": deal.get("dealstage", ""),
                    "closedate": deal.get("closedate"),
                    "bad_debt": deal.get(BAD_DEBT),
                }
                for deal in deals
            ],
            "invoices": invoices,
            "overdue_count": overdue_count,
        }

    # ── Writes ──────────────────────────────────────────────────

    async def set_company_bad_debt(self, company_id: str, bad_debt: bool) -> str:
        """Write the company's bad_debt flag; returns the stored value."""
        value = to_hubspot_bool(bad_debt)
        await self.client.update_object("companies", company_id, {BAD_DEBT: value})
        logger.info(f"Company {company_id} bad_debt set to {value}")
        return value

    async def _eligible_invoice(self, invoice_id: str, today: date) -> CrmObject:
        """Fetch an invoice and reject it unless it is overdue and unpaid."""
        invoice = await self.client.get_object("invoices", invoice_id, CLASSIFICATION_FIELDS)
        if not is_bad_debt_candidate(invoice.properties, today):
            logger.info(f"Invoice {invoice_id} rejected: not overdue or already paid")
            raise InvoicePreconditionError()
        return invoice

    async def mark_overdue_as_bad_debt(self, company_id: str, today: date) -> BulkArchiveResult:
        """
        Archive every overdue unpaid invoice of the company, then flag the company.

        Each archive is independent: one failure does not stop the others.
        The company flag is written exactly once, after the archives, whatever
        their outcome; if it fails the result reports failure while the
        archives already done remain in place.
        """
        invoice_ids = await self.client.list_associations("companies", company_id, "invoices")

        candidates = []
        for invoice in await self._fetch_each("invoices", invoice_ids, CLASSIFICATION_FIELDS):
            if is_bad_debt_candidate(invoice.properties, today):
                candidates.append(invoice)
        logger.info(
            f"Company {company_id}: {len(candidates)} of {len(invoice_ids)} invoice(s) overdue and unpaid"
        )

        result = BulkArchiveResult()
        for invoice in candidates:
            number = invoice.get("hs_invoice_number") or invoice.id
            try:
                await self.client.archive_object("invoices", invoice.id)
                result.archived.append(number)
            except ProviderError as e:
                logger.error(f"Failed to archive invoice {invoice.id}: {e.message}")
                result.failed.append(FailedInvoice(number=number, reason=e.message))

        try:
            await self.set_company_bad_debt(company_id, True)
            result.company_flagged = True
        except ProviderError as e:
            logger.error(f"Failed to flag company {company_id} as bad debt: {e.message}")
            result.company_error = e.message

        return result

    async def archive_single_invoice(self, company_id: str, invoice_id: str, today: date) -> Dict:
        """Archive one overdue unpaid invoice and flag its company."""
        invoice = await self._eligible_invoice(invoice_id, today)
        number = invoice.get("hs_invoice_number") or invoice.id

        await self.client.archive_object("invoices", invoice.id)
        logger.info(f"Invoice {invoice.id} archived")
        await self.set_company_bad_debt(company_id, True)

        return {
            "success": True,
            "invoice_id": invoice.id,
            "invoice_number": number,
            "message": f"Invoice {number} archived and company marked as bad debt.",
        }

    async def _write_bad_debt(self, object_type: str, object_id: Optional[str]) -> TargetOutcome:
        if not object_id:
            return TargetOutcome(object_type=object_type, object_id=None, updated=False)
        try:
            await self.client.update_object(object_type, object_id, {BAD_DEBT: "true"})
            return TargetOutcome(object_type=object_type, object_id=object_id, updated=True)
        except ProviderError as e:
            logger.error(f"Failed to mark {object_type} {object_id} as bad debt: {e.message}")
            return TargetOutcome(object_type=object_type, object_id=object_id, updated=False, error=e.message)

    async def mark_invoice_bad_debt(
        self,
        company_id: str,
        invoice_id: str,
        today: date,
        deal_id: Optional[str] = None,
    ) -> CascadeResult:
        """
        Write bad_debt="true" to the invoice, its deal and the company.

        The three writes are independent. When no deal id is given the
        invoice's associated deal (if any) is used.
        """
        invoice = await self._eligible_invoice(invoice_id, today)
        if not deal_id:
            deal_id = await self._invoice_deal_id(invoice.id)

        result = CascadeResult(
            invoice_id=invoice.id,
            invoice_number=invoice.get("hs_invoice_number") or invoice.id,
        )
        result.outcomes.append(await self._write_bad_debt("invoices", invoice.id))
        result.outcomes.append(await self._write_bad_debt("deals", deal_id))
        result.outcomes.append(await self._write_bad_debt("companies", company_id))
        return result
