"""
Shared fixtures for the csv_recon test suite.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from csv_recon.config import MatchingConfig, MatchingRule
from csv_recon.models.transaction import SourceData, Transaction, TransactionSource


# ==============================================================================
# TRANSACTION FACTORIES
# ==============================================================================

def make_txn(
    source: TransactionSource,
    row_index: int,
    amount: Optional[str] = None,
    txn_date: Optional[str] = None,
    reference: Optional[str] = None,
    **extra: str,
) -> Transaction:
    """Build a transaction whose raw row carries Amount/Date/Reference columns."""
    raw = {
        "Amount": amount or "",
        "Date": txn_date or "",
        "Reference": reference or "",
    }
    raw.update(extra)
    return Transaction(
        source=source,
        row_index=row_index,
        amount=Decimal(amount) if amount else None,
        date=date.fromisoformat(txn_date) if txn_date else None,
        reference=reference,
        raw=raw,
    )


def txn_a(row_index: int, amount=None, txn_date=None, reference=None, **extra) -> Transaction:
    return make_txn(TransactionSource.SOURCE_A, row_index, amount, txn_date, reference, **extra)


def txn_b(row_index: int, amount=None, txn_date=None, reference=None, **extra) -> Transaction:
    return make_txn(TransactionSource.SOURCE_B, row_index, amount, txn_date, reference, **extra)


# ==============================================================================
# CONFIGURATION FIXTURES
# ==============================================================================

@pytest.fixture
def amount_reference_config():
    """Fixed 0.01 amount tolerance (weight 0.6) plus exact reference (weight 0.4)."""
    return MatchingConfig(
        rules=[
            MatchingRule(
                column_a="Amount",
                column_b="Amount",
                match_type="tolerance_numeric",
                tolerance_numeric_mode="fixed",
                tolerance_value=0.01,
                weight=0.6,
            ),
            MatchingRule(
                column_a="Reference",
                column_b="Reference",
                match_type="exact",
                weight=0.4,
            ),
        ],
        min_confidence_threshold=0.7,
    )


@pytest.fixture
def three_rule_config():
    """Amount, date and reference rules with equal weights."""
    return MatchingConfig(
        rules=[
            MatchingRule(
                column_a="Amount",
                column_b="Amount",
                match_type="tolerance_numeric",
                tolerance_numeric_mode="fixed",
                tolerance_value=0.01,
            ),
            MatchingRule(
                column_a="Date",
                column_b="Date",
                match_type="tolerance_date",
                tolerance_value=3,
            ),
            MatchingRule(
                column_a="Reference",
                column_b="Reference",
                match_type="exact",
            ),
        ],
        min_confidence_threshold=0.7,
    )


# ==============================================================================
# SOURCE DATA FIXTURES
# ==============================================================================

@pytest.fixture
def bank_source():
    """Bank-side export."""
    return SourceData(
        headers=["Date", "Amount", "Reference", "Payee"],
        rows=[
            {"Date": "2025-01-02", "Amount": "100.00", "Reference": "INV-001", "Payee": "Acme Corp"},
            {"Date": "2025-01-03", "Amount": "250.50", "Reference": "INV-002", "Payee": "Globex Inc"},
            {"Date": "2025-01-05", "Amount": "75.25", "Reference": "INV-003", "Payee": "Initech"},
            {"Date": "2025-02-20", "Amount": "999.00", "Reference": "INV-099", "Payee": "Umbrella"},
        ],
        filename="bank.csv",
    )


@pytest.fixture
def ledger_source():
    """Ledger-side export with different column names."""
    return SourceData(
        headers=["Posted", "Value", "Ref", "Vendor"],
        rows=[
            {"Posted": "01/03/2025", "Value": "250.50", "Ref": "INV-002", "Vendor": "Globex Incorporated"},
            {"Posted": "01/02/2025", "Value": "100.00", "Ref": "INV-001", "Vendor": "ACME Corporation"},
            {"Posted": "01/06/2025", "Value": "75.25", "Ref": "INV-003", "Vendor": "Initech"},
            {"Posted": "01/09/2025", "Value": "40.00", "Ref": "INV-050", "Vendor": "Hooli"},
        ],
        filename="ledger.csv",
    )


@pytest.fixture
def bank_ledger_config():
    """Rules mapping the bank columns onto the ledger columns."""
    return MatchingConfig(
        rules=[
            MatchingRule(
                column_a="Amount",
                column_b="Value",
                match_type="tolerance_numeric",
                tolerance_numeric_mode="fixed",
                tolerance_value=0.01,
                weight=0.5,
            ),
            MatchingRule(
                column_a="Date",
                column_b="Posted",
                match_type="tolerance_date",
                tolerance_value=3,
                weight=0.2,
            ),
            MatchingRule(
                column_a="Reference",
                column_b="Ref",
                match_type="exact",
                weight=0.3,
            ),
        ],
        min_confidence_threshold=0.7,
    )


@pytest.fixture
def write_csv(tmp_path):
    """Write rows to a CSV file under tmp_path and return its path."""

    def _write(name: str, text: str):
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write
