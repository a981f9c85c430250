"""
Invoice classification rules.

Pure functions over the HubSpot invoice property bag. Every rule that depends
on the current date takes an explicit ``today`` so a request classifies all
of its invoices against the same reference date (see ``reference_today``).

Overdue is derived, never read from a status value:

    is_overdue := hs_invoice_status == "open"
                  and hs_due_date is set
                  and hs_due_date < today

    is_paid    := hs_invoice_status == "paid"
                  or hs_payment_status == "paid"
                  or hs_amount_paid > 0
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

STATUS_OPEN = "open"
STATUS_PAID = "paid"

# Properties requested whenever an invoice is classified
CLASSIFICATION_FIELDS = [
    "hs_invoice_number",
    "hs_invoice_status",
    "hs_due_date",
    "hs_payment_status",
    "hs_amount_paid",
]

_TRUE_STRINGS = {"true", "1"}


def parse_bool(value: Any) -> bool:
    """
    Strict boolean for checkbox-style inputs.

    ``True``, ``1``, ``"true"`` and ``"1"`` (strings compared case-insensitively
    after trimming) mean checked; every other value, including ``None``,
    means unchecked.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def to_hubspot_bool(value: bool) -> str:
    """HubSpot stores booleans as the strings "true" / "false"."""
    return "true" if value else "false"


def reference_today(now: Optional[datetime] = None) -> date:
    """The local calendar date a request classifies against; capture once per request."""
    return (now or datetime.now()).date()


def parse_due_date(raw: Optional[str]) -> Optional[date]:
    """
    Parse ``hs_due_date``.

    HubSpot returns date properties either as ISO strings (``2024-11-20`` or
    ``2024-11-20T00:00:00Z``) or as epoch milliseconds. Unparseable values
    are treated as absent.
    """
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw:
        return None
    try:
        if raw.isdigit():
            return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc).date()
        return date.fromisoformat(raw[:10])
    except (OverflowError, OSError, ValueError):
        logger.debug(f"Unparseable hs_due_date value: {raw!r}")
        return None


def _parse_amount(raw: Optional[str]) -> float:
    if raw in (None, ""):
        return 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def _lower(properties: Mapping[str, Optional[str]], name: str) -> str:
    return (properties.get(name) or "").strip().lower()


def is_overdue(properties: Mapping[str, Optional[str]], today: date) -> bool:
    """Open invoice whose due date is strictly before ``today``."""
    if _lower(properties, "hs_invoice_status") != STATUS_OPEN:
        return False
    due_date = parse_due_date(properties.get("hs_due_date"))
    if due_date is None:
        return False
    return due_date < today


def is_paid(properties: Mapping[str, Optional[str]]) -> bool:
    return (
        _lower(properties, "hs_invoice_status") == STATUS_PAID
        or _lower(properties, "hs_payment_status") == STATUS_PAID
        or _parse_amount(properties.get("hs_amount_paid")) > 0
    )


def is_bad_debt_candidate(properties: Mapping[str, Optional[str]], today: date) -> bool:
    """Overdue and not paid: the only invoices a bad-debt action may touch."""
    return is_overdue(properties, today) and not is_paid(properties)
