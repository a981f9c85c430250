"""Tests for invoice classification and checkbox coercion."""

from datetime import date, datetime

import pytest

from invoice_manager.services.invoice_rules import (
    is_bad_debt_candidate,
    is_overdue,
    is_paid,
    parse_bool,
    parse_due_date,
    reference_today,
    to_hubspot_bool,
)

from factories import InvoicePropertiesFactory

TODAY = date(2025, 6, 1)


class TestParseBool:
    @pytest.mark.parametrize("value", [True, 1, "true", "TRUE", " True ", "1"])
    def test_checked_values(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", [False, 0, 2, -1, "false", "yes", "on", "0", "", None, [], {}])
    def test_everything_else_is_unchecked(self, value):
        assert parse_bool(value) is False

    def test_hubspot_string_form(self):
        assert to_hubspot_bool(True) == "true"
        assert to_hubspot_bool(False) == "false"


class TestParseDueDate:
    def test_iso_date(self):
        assert parse_due_date("2024-11-20") == date(2024, 11, 20)

    def test_iso_datetime(self):
        assert parse_due_date("2024-11-20T00:00:00Z") == date(2024, 11, 20)

    def test_epoch_milliseconds(self):
        # 2024-11-20T00:00:00Z
        assert parse_due_date("1732060800000") == date(2024, 11, 20)

    @pytest.mark.parametrize("value", [
        None, "", "   ", "not-a-date", "2024-13-45",
        # epoch milliseconds beyond the platform date range
        "99999999999999999999", "9" * 400,
        "\u00b2",
    ])
    def test_absent_or_unparseable(self, value):
        assert parse_due_date(value) is None


class TestClassification:
    def test_open_past_due_is_overdue(self):
        assert is_overdue(InvoicePropertiesFactory(), TODAY) is True

    def test_due_today_is_not_overdue(self):
        props = InvoicePropertiesFactory(hs_due_date="2025-06-01")
        assert is_overdue(props, TODAY) is False

    def test_due_yesterday_is_overdue(self):
        props = InvoicePropertiesFactory(hs_due_date="2025-05-31")
        assert is_overdue(props, TODAY) is True

    def test_future_due_date_is_not_overdue(self):
        props = InvoicePropertiesFactory(hs_due_date="2099-01-01")
        assert is_overdue(props, TODAY) is False

    def test_missing_due_date_is_not_overdue(self):
        props = InvoicePropertiesFactory(hs_due_date=None)
        assert is_overdue(props, TODAY) is False

    def test_out_of_range_due_date_is_not_overdue(self):
        props = InvoicePropertiesFactory(hs_due_date="99999999999999999999")
        assert is_overdue(props, TODAY) is False

    @pytest.mark.parametrize("status", ["paid", "draft", "voided", "overdue", ""])
    def test_only_open_invoices_can_be_overdue(self, status):
        props = InvoicePropertiesFactory(hs_invoice_status=status)
        assert is_overdue(props, TODAY) is False

    def test_status_is_case_insensitive(self):
        props = InvoicePropertiesFactory(hs_invoice_status="Open")
        assert is_overdue(props, TODAY) is True

    def test_paid_by_status(self):
        assert is_paid(InvoicePropertiesFactory(hs_invoice_status="paid")) is True

    def test_paid_by_payment_status(self):
        assert is_paid(InvoicePropertiesFactory(hs_payment_status="paid")) is True

    def test_paid_by_amount(self):
        assert is_paid(InvoicePropertiesFactory(hs_amount_paid="12.50")) is True

    @pytest.mark.parametrize("amount", [None, "", "0", "0.00", "n/a"])
    def test_not_paid(self, amount):
        assert is_paid(InvoicePropertiesFactory(hs_amount_paid=amount)) is False

    def test_partially_paid_overdue_invoice_is_not_a_candidate(self):
        props = InvoicePropertiesFactory(hs_amount_paid="100")
        assert is_overdue(props, TODAY) is True
        assert is_bad_debt_candidate(props, TODAY) is False

    def test_overdue_unpaid_invoice_is_a_candidate(self):
        assert is_bad_debt_candidate(InvoicePropertiesFactory(), TODAY) is True

    def test_reference_today_uses_local_date(self):
        assert reference_today(datetime(2025, 6, 1, 23, 59)) == TODAY

    def test_classification_is_deterministic_for_fixed_date(self):
        props = InvoicePropertiesFactory(hs_due_date="2025-05-31")
        assert is_overdue(props, TODAY) == is_overdue(dict(props), TODAY)
        assert is_bad_debt_candidate(props, TODAY) == is_bad_debt_candidate(props, TODAY)
