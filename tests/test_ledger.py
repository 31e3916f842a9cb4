"""Tests for the transaction ledger."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from pixel_paywall.domain.transactions import STATUS_COMPLETED, STATUS_FAILED
from pixel_paywall.errors import LedgerError, LedgerTransitionError, ValidationError
from pixel_paywall.services.ledger import TransactionLedger
from tests.conftest import InMemoryTransactionRepository


def _open(ledger: TransactionLedger, **overrides):  # type: ignore[no-untyped-def]
    values = {
        "session_id": "session-1",
        "payer": "258841234567",
        "amount": Decimal("16"),
        "original_amount": Decimal("20"),
        "discount_amount": Decimal("4"),
        "promo_code": "SAVE20",
        "batch_size": 2,
        "payment_type": "bulk",
        "discount_percent": Decimal("20"),
        "reference": "RDP_0000012345",
        "third_party_reference": "12345",
    }
    values.update(overrides)
    return ledger.open(**values)


def test_open_records_pending_transaction() -> None:
    repository = InMemoryTransactionRepository()
    ledger = TransactionLedger(repository)

    transaction_id = _open(ledger)
    record = ledger.get(transaction_id)

    assert record is not None
    assert record.status == "pending"
    assert record.amount == Decimal("16")
    assert record.image_count == 2
    assert record.reference == "RDP_0000012345"
    assert record.third_party_reference == "12345"


def test_complete_is_terminal() -> None:
    ledger = TransactionLedger(InMemoryTransactionRepository())
    transaction_id = _open(ledger)

    ledger.complete(transaction_id, "MP-1", "conv-1")

    record = ledger.get(transaction_id)
    assert record is not None
    assert record.status == STATUS_COMPLETED
    assert record.gateway_transaction_id == "MP-1"
    assert record.completed_at is not None
    with pytest.raises(LedgerTransitionError):
        ledger.fail(transaction_id, "late failure")
    with pytest.raises(LedgerTransitionError):
        ledger.complete(transaction_id)


def test_failed_transaction_cannot_complete() -> None:
    ledger = TransactionLedger(InMemoryTransactionRepository())
    transaction_id = _open(ledger)

    ledger.fail(transaction_id, "Insufficient balance")

    record = ledger.get(transaction_id)
    assert record is not None
    assert record.status == STATUS_FAILED
    assert record.failure_reason == "Insufficient balance"
    with pytest.raises(LedgerTransitionError):
        ledger.complete(transaction_id)


def test_open_rejects_invalid_values() -> None:
    repository = InMemoryTransactionRepository()
    ledger = TransactionLedger(repository)

    with pytest.raises(ValidationError):
        _open(ledger, amount=Decimal("-1"))
    with pytest.raises(ValidationError):
        _open(ledger, batch_size=0)
    with pytest.raises(ValidationError):
        _open(ledger, payment_type="subscription")
    assert repository.transactions == {}


def test_storage_failure_raises_ledger_error() -> None:
    ledger = TransactionLedger(InMemoryTransactionRepository(fail_creates=True))

    with pytest.raises(LedgerError):
        _open(ledger)


def test_list_pending_returns_only_stale_pending_rows() -> None:
    repository = InMemoryTransactionRepository()
    ledger = TransactionLedger(repository)
    stale_id = _open(ledger)
    fresh_id = _open(ledger)
    done_id = _open(ledger)
    for transaction_id in (stale_id, done_id):
        repository.transactions[transaction_id] = replace(
            repository.transactions[transaction_id],
            created_at=datetime.now(tz=UTC) - timedelta(minutes=30),
        )
    ledger.complete(done_id)

    pending = ledger.list_pending(older_than=timedelta(minutes=5))

    assert [record.id for record in pending] == [stale_id]
    assert fresh_id in repository.transactions
