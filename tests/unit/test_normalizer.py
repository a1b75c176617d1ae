"""
Unit tests for normalizer.py module.

Tests record parsing, dropping of malformed records, ordering and the
baseline summary.
"""

import warnings
from datetime import date

import pytest

from fincast.exceptions import DataIngestionError, ValidationError
from fincast.normalizer import (
    Summary,
    Transaction,
    normalize_transactions,
    parse_transaction,
)


# ============================================================================
# TRANSACTION
# ============================================================================

class TestTransaction:
    """Tests for the Transaction record."""

    def test_type_derived_from_sign(self):
        """Missing type is derived from the amount sign."""
        income = Transaction(date(2025, 1, 1), "Salary", 100.0)
        expense = Transaction(date(2025, 1, 1), "Rent", -100.0)

        assert income.type == "income"
        assert expense.type == "expense"
        assert income.category == "Other"

    def test_immutable(self):
        """Transactions cannot be modified once built."""
        t = Transaction(date(2025, 1, 1), "Salary", 100.0)

        with pytest.raises(Exception):
            t.amount = 200.0

    def test_non_finite_amount_rejected(self):
        """NaN amounts raise ValidationError."""
        with pytest.raises(ValidationError):
            Transaction(date(2025, 1, 1), "Broken", float("nan"))


class TestParseTransaction:
    """Tests for parse_transaction."""

    def test_parses_strings(self):
        """ISO dates and comma-grouped amounts are accepted."""
        t = parse_transaction({"date": "2025-03-04", "description": " Bonus ", "amount": "1,250.50"})

        assert t.date == date(2025, 3, 4)
        assert t.amount == 1250.50
        assert t.description == "Bonus"

    @pytest.mark.parametrize("record", [
        {"date": "not a date", "amount": 10},
        {"date": "2025-01-01", "amount": "ten"},
        {"date": "2025-01-01"},
        {"amount": 10},
        {"date": "2025-01-01", "amount": True},
        {"date": "2025-01-01", "amount": float("inf")},
        "2025-01-01,10",
    ])
    def test_unusable_records_return_none(self, record):
        """Records without a date or numeric amount yield None."""
        assert parse_transaction(record) is None


# ============================================================================
# NORMALIZATION
# ============================================================================

class TestNormalizeTransactions:
    """Tests for normalize_transactions."""

    def test_sorted_ascending(self):
        """Output is ordered by date."""
        data = normalize_transactions([
            {"date": "2025-02-01", "amount": 10},
            {"date": "2025-01-01", "amount": 20},
            {"date": "2025-01-15", "amount": -5},
        ])

        dates = [t.date for t in data.transactions]
        assert dates == sorted(dates)

    def test_same_day_order_preserved(self):
        """Same-day records keep their input order."""
        data = normalize_transactions([
            {"date": "2025-01-01", "description": "first", "amount": 1},
            {"date": "2025-01-01", "description": "second", "amount": 2},
        ])

        assert [t.description for t in data.transactions] == ["first", "second"]

    def test_summary(self):
        """Summary totals and balance."""
        data = normalize_transactions([
            {"date": "2025-01-31", "description": "Salary", "amount": 4200},
            {"date": "2025-01-03", "description": "Rent", "amount": -2200},
            {"date": "2025-02-03", "description": "Rent", "amount": -2200},
        ])
        s = data.summary

        assert s.total_income == 4200.0
        assert s.total_expenses == 4400.0
        assert s.net_income == -200.0
        assert s.current_balance == -200.0
        assert s.date_range == (date(2025, 1, 3), date(2025, 2, 3))
        assert s.transaction_count == 3
        assert s.months_of_history == 2

    def test_bad_records_dropped_and_counted(self):
        """Malformed records are counted and reported with a warning."""
        records = [
            {"date": "2025-01-01", "amount": 10},
            {"date": None, "amount": 10},
            {"date": "2025-01-02", "amount": None},
        ]

        with pytest.warns(UserWarning, match="Dropped 2 of 3"):
            data = normalize_transactions(records)

        assert len(data) == 1
        assert data.summary.dropped_count == 2

    def test_empty_input_returns_empty_summary(self):
        """Empty input does not raise."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            data = normalize_transactions([])

        assert data.is_empty
        assert data.summary == Summary()
        assert data.summary.months_of_history == 0

    @pytest.mark.parametrize("records", [None, "records", {"date": "2025-01-01", "amount": 1}, 42])
    def test_non_list_input_is_fatal(self, records):
        """Anything but a list or tuple raises DataIngestionError."""
        with pytest.raises(DataIngestionError):
            normalize_transactions(records)

    def test_accepts_transaction_objects(self):
        """Pre-built transactions pass through unchanged."""
        t = Transaction(date(2025, 1, 1), "Salary", 100.0, "Income")
        data = normalize_transactions((t,))

        assert data.transactions[0] is t
