"""Test fixtures and utilities."""

from datetime import date
from pathlib import Path

import pytest

from invoice_matcher.config import Config
from invoice_matcher.schemas.entities import (
    AliasMatchType,
    Invoice,
    LineItem,
    Transaction,
    TransactionType,
    VendorAlias,
)
from invoice_matcher.state_store import StateStore

# Scenario dates
INVOICE_DATE = date(2024, 3, 1)


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh state store with all migrations applied."""
    return StateStore(temp_db)


@pytest.fixture
def config(temp_db) -> Config:
    """Default configuration pointing at the temporary database."""
    return Config(state_db_path=temp_db)


@pytest.fixture
def aws_alias() -> VendorAlias:
    """Alias mapping the bank's AWS descriptor to the vendor name."""
    return VendorAlias(
        alias_pattern="AMZN AWS",
        canonical_name="Amazon Web Services",
        match_type=AliasMatchType.CONTAINS,
        priority=10,
    )


@pytest.fixture
def make_invoice():
    """Factory for invoices."""

    def _make(invoice_id: str = "inv-1", **kwargs) -> Invoice:
        defaults = {
            "vendor_name": "Amazon Web Services",
            "invoice_date": INVOICE_DATE,
            "currency": "ILS",
        }
        defaults.update(kwargs)
        return Invoice(id=invoice_id, **defaults)

    return _make


@pytest.fixture
def make_line_item():
    """Factory for line items."""

    def _make(line_item_id: str = "li-1", **kwargs) -> LineItem:
        defaults = {
            "invoice_id": "inv-1",
            "description": "Cloud hosting",
            "total_minor": 10000,
            "currency": "ILS",
            "transaction_date": INVOICE_DATE,
        }
        defaults.update(kwargs)
        return LineItem(id=line_item_id, **defaults)

    return _make


@pytest.fixture
def make_transaction():
    """Factory for transactions (expense amounts are negative)."""

    def _make(transaction_id: str = "tx-1", **kwargs) -> Transaction:
        defaults = {
            "date": date(2024, 3, 2),
            "amount_minor": -10000,
            "description": "AMZN AWS",
            "transaction_type": TransactionType.BANK_REGULAR,
        }
        defaults.update(kwargs)
        return Transaction(id=transaction_id, **defaults)

    return _make
