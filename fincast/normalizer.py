"""
Transaction normalization for fincast.

Purpose
-------
First pipeline stage. Turns raw transaction records (mappings as delivered
by the transaction-history provider, or already-built ``Transaction``
objects) into an immutable, date-ordered tuple plus baseline summary
statistics.

Rules
-----
- A record without a parseable date or a finite numeric amount is dropped
  and counted; individual bad records never raise.
- Missing categories default to "Other"; a missing type is derived from
  the sign of the amount (income positive).
- Input that is not a list or tuple raises DataIngestionError.
- An empty (or fully filtered) input yields an empty Summary.

Example
-------
>>> data = normalize_transactions([
...     {"date": "2025-01-31", "description": "Salary", "amount": 4200, "category": "Income"},
...     {"date": "2025-01-03", "description": "Rent", "amount": -2200, "category": "Housing"},
... ])
>>> [t.description for t in data.transactions]
['Rent', 'Salary']
>>> data.summary.current_balance
2000.0
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .constants import DEFAULT_CATEGORY, EXPENSE_TYPE, INCOME_TYPE
from .exceptions import DataIngestionError, ValidationError
from .types import TransactionRecordDict
from .utils import month_span

__all__ = [
    "Transaction",
    "Summary",
    "NormalizedData",
    "summarize",
    "parse_transaction",
    "normalize_transactions",
]

logger = logging.getLogger(__name__)

RawRecord = Union[TransactionRecordDict, Mapping[str, Any], "Transaction"]


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Transaction:
    """
    A single account transaction.

    Parameters
    ----------
    date : datetime.date
        Booking date.
    description : str
        Free-text description as it appears on the statement.
    amount : float
        Signed amount; income positive, expenses negative.
    category : str
        Spending category (default "Other").
    type : str
        "income" or "expense"; derived from the sign when not supplied.
    """
    date: date
    description: str
    amount: float
    category: str = DEFAULT_CATEGORY
    type: str = ""

    def __post_init__(self):
        if not math.isfinite(self.amount):
            raise ValidationError(f"amount must be finite, got {self.amount}.")
        if not self.type:
            object.__setattr__(self, "type", INCOME_TYPE if self.amount > 0 else EXPENSE_TYPE)

    @property
    def is_income(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "type": self.type,
        }


@dataclass(frozen=True)
class Summary:
    """Baseline statistics of a normalized history."""
    total_income: float = 0.0
    total_expenses: float = 0.0
    net_income: float = 0.0
    current_balance: float = 0.0
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    transaction_count: int = 0
    dropped_count: int = 0

    @property
    def date_range(self) -> Tuple[Optional[date], Optional[date]]:
        return (self.start_date, self.end_date)

    @property
    def months_of_history(self) -> int:
        """Calendar months touched by the history (0 when empty)."""
        if self.start_date is None or self.end_date is None:
            return 0
        return month_span(self.start_date, self.end_date)

    @property
    def is_empty(self) -> bool:
        return self.transaction_count == 0

    def to_dict(self) -> dict:
        return {
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "net_income": self.net_income,
            "current_balance": self.current_balance,
            "date_range": {
                "start": self.start_date.isoformat() if self.start_date else None,
                "end": self.end_date.isoformat() if self.end_date else None,
            },
            "transaction_count": self.transaction_count,
            "dropped_count": self.dropped_count,
            "months_of_history": self.months_of_history,
        }


@dataclass(frozen=True)
class NormalizedData:
    """Output of the normalizer: ordered transactions plus their summary."""
    transactions: Tuple[Transaction, ...] = field(default_factory=tuple)
    summary: Summary = field(default_factory=Summary)

    def __len__(self) -> int:
        return len(self.transactions)

    @property
    def is_empty(self) -> bool:
        return len(self.transactions) == 0


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError):
        return None
    if not isinstance(ts, pd.Timestamp) or pd.isna(ts):
        return None
    return ts.date()


def _parse_amount(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    return amount


def parse_transaction(record: RawRecord) -> Optional[Transaction]:
    """
    Build a Transaction from a raw record, or return None if it is unusable.

    Parameters
    ----------
    record : Mapping or Transaction
        Raw record with keys ``date``, ``description``, ``amount``,
        ``category`` and ``type``. Only ``date`` and ``amount`` are required.

    Returns
    -------
    Transaction or None
        None when the date or amount cannot be parsed.
    """
    if isinstance(record, Transaction):
        return record
    if not isinstance(record, Mapping):
        return None

    tx_date = _parse_date(record.get("date"))
    amount = _parse_amount(record.get("amount"))
    if tx_date is None or amount is None:
        return None

    description = record.get("description")
    category = record.get("category")
    tx_type = record.get("type")
    return Transaction(
        date=tx_date,
        description=str(description).strip() if description is not None else "",
        amount=amount,
        category=str(category).strip() if category else DEFAULT_CATEGORY,
        type=str(tx_type).strip().lower() if tx_type else "",
    )


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def summarize(transactions: Sequence[Transaction], dropped: int = 0) -> Summary:
    """Compute the baseline Summary of an ordered transaction sequence."""
    if not transactions:
        return Summary(dropped_count=dropped)

    total_income = sum(t.amount for t in transactions if t.amount > 0)
    total_expenses = abs(sum(t.amount for t in transactions if t.amount < 0))
    return Summary(
        total_income=float(total_income),
        total_expenses=float(total_expenses),
        net_income=float(total_income - total_expenses),
        current_balance=float(sum(t.amount for t in transactions)),
        start_date=transactions[0].date,
        end_date=transactions[-1].date,
        transaction_count=len(transactions),
        dropped_count=dropped,
    )


def normalize_transactions(records: Sequence[RawRecord]) -> NormalizedData:
    """
    Validate, sort and summarize raw transaction records.

    Parameters
    ----------
    records : list or tuple
        Raw records (mappings or Transaction objects).

    Returns
    -------
    NormalizedData
        Ascending-by-date transactions and their Summary. Empty input gives
        an empty Summary; the caller decides whether that is fatal.

    Raises
    ------
    DataIngestionError
        If *records* is not a list or tuple.
    """
    if not isinstance(records, (list, tuple)):
        raise DataIngestionError(
            f"Transaction input must be a list of records, got {type(records).__name__}."
        )

    parsed = []
    dropped = 0
    for record in records:
        tx = parse_transaction(record)
        if tx is None:
            dropped += 1
            continue
        parsed.append(tx)

    if dropped:
        warnings.warn(
            f"Dropped {dropped} of {len(records)} transaction records without a "
            f"parseable date or numeric amount.",
            UserWarning
        )

    # sorted() is stable: same-day records keep their input order
    ordered = tuple(sorted(parsed, key=lambda t: t.date))
    summary = summarize(ordered, dropped=dropped)
    logger.info(
        "Normalized %d transactions (%d dropped), balance %.2f",
        summary.transaction_count, dropped, summary.current_balance,
    )
    return NormalizedData(transactions=ordered, summary=summary)
