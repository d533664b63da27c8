import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fulfillment.domain import ledger
from fulfillment.domain.errors import ValidationError
from fulfillment.domain.ledger import PaymentEntry
from fulfillment.domain.statuses import PaymentMode, Role

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def attempt(status, minutes, **extra):
    timestamp = (START + timedelta(minutes=minutes)).isoformat().replace("+00:00", "Z")
    return PaymentEntry(payment_mode="card", session_id=f"cs_{minutes}",
                        payment_status=status, timestamp=timestamp, **extra)


def test_append_to_empty_ledger():
    stored = ledger.append(None, attempt("paid", 1))
    assert isinstance(stored, str)
    assert len(json.loads(stored)) == 1


def test_append_normalizes_legacy_single_object():
    legacy = json.dumps({"payment_mode": "card", "session_id": "cs_old", "payment_status": "failed"})
    stored = json.loads(ledger.append(legacy, attempt("paid", 5)))
    assert [e["session_id"] for e in stored] == ["cs_old", "cs_5"]


def test_append_accepts_pre_parsed_lists():
    stored = json.loads(ledger.append([{"payment_mode": "card", "session_id": "cs_a"}], attempt("paid", 1)))
    assert len(stored) == 2


def test_malformed_ledger_is_treated_as_empty(caplog):
    with caplog.at_level(logging.WARNING):
        stored = json.loads(ledger.append("{broken", attempt("paid", 1)))
    assert len(stored) == 1
    assert "Malformed ledger data" in caplog.text
    assert ledger.view("{broken", Role.SUPER_ADMIN) == []


def test_append_keeps_existing_entries_verbatim():
    existing = [{"payment_mode": "card", "session_id": "cs_1", "payment_status": "failed", "vendor_field": 7},
                {}]
    stored = json.loads(ledger.append(json.dumps(existing), attempt("paid", 3)))
    assert stored[:2] == existing


def test_sequence_of_attempts_is_fully_preserved_for_super_admin():
    raw = None
    statuses = ["failed", "incomplete", "paid", "cancelled", "paid"]
    for minute, status in enumerate(statuses):
        raw = ledger.append(raw, attempt(status, minute))

    entries = ledger.view(raw, Role.SUPER_ADMIN)
    assert len(entries) == len(statuses)
    assert [e.session_id for e in entries] == [f"cs_{m}" for m in reversed(range(len(statuses)))]


@pytest.mark.parametrize("role", [Role.ADMIN, Role.VENDOR])
def test_non_super_admin_only_sees_paid_entries(role):
    raw = json.dumps([attempt(s, i).to_storage() for i, s in enumerate(["failed", "paid", "pending", "paid"])])
    entries = ledger.view(raw, role)
    assert len(entries) == 2
    assert all(e.payment_status == "paid" for e in entries)


def test_placeholders_are_hidden_and_missing_timestamps_sort_last():
    raw = json.dumps([
        {},
        {"payment_status": "paid"},
        {"payment_mode": "Cash", "transaction_id": "MANUAL-1", "payment_status": "paid"},
        attempt("paid", 10).to_storage(),
        attempt("paid", 20).to_storage(),
    ])
    entries = ledger.view(raw, Role.ADMIN)
    assert [e.transaction_id or e.session_id for e in entries] == ["cs_20", "cs_10", "MANUAL-1"]


def test_successful_payment_detection():
    failed_only = json.dumps([attempt("failed", 1).to_storage()])
    assert not ledger.has_successful_payment(failed_only)
    assert ledger.view(failed_only, Role.ADMIN) == []
    assert ledger.has_successful_payment(ledger.append(failed_only, attempt("paid", 2)))
    assert not ledger.has_successful_payment(None)


def test_card_details_survive_round_trip():
    raw = json.dumps([attempt("paid", 1, payment_details={"brand": "visa", "last4": "4242"},
                              receipt_url="https://pay.example.com/r/1").to_storage()])
    entry = ledger.view(raw, Role.ADMIN)[0]
    assert entry.payment_details.last4 == "4242"
    assert entry.receipt_url == "https://pay.example.com/r/1"


def test_bank_transfer_requires_reference_and_bank():
    with pytest.raises(ValidationError) as excinfo:
        ledger.build_offline_entry(PaymentMode.BANK_TRANSFER, {"sender_name": "A. Buyer"})
    assert set(excinfo.value.fields) == {"transaction_id", "sender_bank"}


def test_cash_requires_collector_and_cheque_requires_number_and_bank():
    with pytest.raises(ValidationError) as excinfo:
        ledger.build_offline_entry(PaymentMode.CASH, {"receipt_no": "R-1"})
    assert set(excinfo.value.fields) == {"collected_by"}

    with pytest.raises(ValidationError) as excinfo:
        ledger.build_offline_entry(PaymentMode.CHEQUE, {"cheque_no": "  "})
    assert set(excinfo.value.fields) == {"cheque_no", "issuing_bank"}


def test_offline_entry_shape():
    entry = ledger.build_offline_entry(
        PaymentMode.BANK_TRANSFER,
        {"transaction_id": "TRN-1", "sender_bank": "ABC Bank", "sender_name": "Buyer", "notes": "wire"},
        amount_total=Decimal("105.00"), currency="AED", now=START,
    )
    stored = entry.to_storage()
    assert stored["payment_mode"] == "Bank Transfer"
    assert stored["transaction_id"] == "TRN-1"
    assert stored["manual_entry"] is True
    assert stored["payment_status"] == "paid"
    assert stored["offline_details"] == {"sender_bank": "ABC Bank", "sender_name": "Buyer"}
    assert stored["timestamp"] == "2026-03-01T09:00:00Z"
    assert stored["notes"] == "wire"
    assert Decimal(stored["amount_total"]) == Decimal("105.00")


def test_cash_entry_gets_generated_transaction_id():
    entry = ledger.build_offline_entry(PaymentMode.CASH, {"collected_by": "Front desk"})
    assert entry.transaction_id.startswith("MANUAL-")
    assert entry.offline_details == {"collected_by": "Front desk"}


def test_blank_cash_reference_is_replaced():
    entry = ledger.build_offline_entry(PaymentMode.CASH, {"collected_by": "Front desk", "transaction_id": "   "})
    assert entry.transaction_id.startswith("MANUAL-")

    entry = ledger.build_offline_entry(PaymentMode.CHEQUE, {"cheque_no": "1001", "issuing_bank": "ABC Bank",
                                                            "transaction_id": " CHQ-7 "})
    assert entry.transaction_id == "CHQ-7"
