import pytest
from pydantic import ValidationError

from invoice_schema import (
    SCHEMA_VERSION,
    InvoiceData,
    dump_invoice,
    form_errors,
    is_legacy_payload,
    load_invoice,
)


LEGACY = {
    "invoiceNumber": "INV-002",
    "invoiceDate": "2023-11-01",
    "dueDate": "2023-12-01",
    "clientName": "Old Client",
    "clientEmail": "old@client.test",
    "clientAddress": "Old Street 2",
    "services": [{"description": "Consulting", "hours": 10, "rate": 50}],
}


def test_legacy_flat_service_becomes_single_subtask():
    assert is_legacy_payload(LEGACY)
    data = load_invoice(LEGACY)
    assert data.schema_version == SCHEMA_VERSION
    svc = data.services[0]
    assert svc.title == "Consulting"
    assert svc.rate == 50
    assert [(st.title, st.hours) for st in svc.subtasks] == [("Consulting", 10)]


def test_current_payload_is_not_legacy(sample_payload):
    assert not is_legacy_payload(sample_payload)
    assert not is_legacy_payload(dump_invoice(load_invoice(LEGACY)))


def test_dump_uses_camel_case_and_iso_dates(sample_invoice):
    out = dump_invoice(sample_invoice)
    assert out["invoiceNumber"] == "INV-007"
    assert out["invoiceDate"] == "2024-03-01"
    assert out["services"][0]["subtasks"][1]["description"] == "Two rounds"
    assert out["schemaVersion"] == SCHEMA_VERSION


def test_currency_is_upper_cased(sample_payload):
    sample_payload["currency"] = "gbp"
    assert load_invoice(sample_payload).currency == "GBP"


def test_due_date_before_invoice_date_is_rejected(sample_payload):
    sample_payload["dueDate"] = "2024-02-01"
    with pytest.raises(ValidationError) as exc:
        load_invoice(sample_payload)
    assert "dueDate" in form_errors(exc.value)


def test_form_errors_use_nested_field_names(sample_payload):
    sample_payload["clientName"] = ""
    sample_payload["clientEmail"] = "not-an-email"
    sample_payload["services"][0]["subtasks"][1]["hours"] = 0
    sample_payload["services"][1]["rate"] = "abc"

    with pytest.raises(ValidationError) as exc:
        InvoiceData.model_validate(sample_payload)
    errors = form_errors(exc.value)

    assert errors["clientName"] == "This field is required"
    assert errors["clientEmail"] == "Enter a valid email address"
    assert errors["services-0-subtasks-1-hours"] == "Must be greater than 0"
    assert errors["services-1-rate"] == "Enter a number"


def test_service_needs_a_subtask(sample_payload):
    sample_payload["services"][1]["subtasks"] = []
    with pytest.raises(ValidationError) as exc:
        load_invoice(sample_payload)
    assert "services-1-subtasks" in form_errors(exc.value)
