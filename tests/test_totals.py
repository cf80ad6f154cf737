import pytest

from invoice_schema import UserConfig, load_invoice
from totals import compute_totals, currency_symbol, money, resolve_currency, service_total


def _invoice(**overrides):
    payload = {
        "invoiceNumber": "INV-001",
        "invoiceDate": "2024-01-10",
        "dueDate": "2024-02-09",
        "clientName": "Client",
        "clientEmail": "client@example.com",
        "clientAddress": "Somewhere",
        "services": [{"title": "Work", "rate": 100, "subtasks": [{"title": "Hours", "hours": 10}]}],
    }
    payload.update(overrides)
    return load_invoice(payload)


def test_subtotal_is_rate_times_summed_subtask_hours():
    data = _invoice(services=[
        {"title": "A", "rate": 25, "subtasks": [{"title": "x", "hours": 2}, {"title": "y", "hours": 3}]},
        {"title": "B", "rate": 50, "subtasks": [{"title": "z", "hours": 2.5}]},
    ])
    totals = compute_totals(data)
    assert service_total(data.services[0]) == 125
    assert totals.subtotal == 250
    assert totals.total == 250


def test_irpf_is_withheld_before_vat():
    totals = compute_totals(_invoice(taxRate=21, irpfRate=15))
    assert totals.subtotal == 1000
    assert totals.irpf_amount == 150
    assert totals.taxable_base == 850
    assert totals.tax_amount == 178.5
    assert totals.total == 1028.5


def test_rates_fall_back_to_user_defaults():
    config = UserConfig(default_tax_rate=10, default_irpf_rate=0)
    totals = compute_totals(_invoice(), config)
    assert totals.tax_rate == 10
    assert totals.total == 1100


def test_invoice_rate_of_zero_overrides_default():
    config = UserConfig(default_tax_rate=10)
    totals = compute_totals(_invoice(taxRate=0), config)
    assert totals.tax_amount == 0
    assert totals.total == 1000


def test_currency_resolution_order():
    config = UserConfig(default_currency="gbp")
    assert resolve_currency(_invoice(currency="eur"), config) == "EUR"
    assert resolve_currency(_invoice(), config) == "GBP"
    assert resolve_currency(None, None) == "USD"


@pytest.mark.parametrize("code,symbol", [("EUR", "€"), ("usd", "$"), ("XYZ", "XYZ"), (None, "$")])
def test_currency_symbol(code, symbol):
    assert currency_symbol(code) == symbol


def test_money_formatting():
    assert money(1028.5, "USD") == "$1,028.50"
    assert money(-150, "EUR") == "-€150.00"
    assert money(12, "XYZ") == "XYZ 12.00"


def test_service_total_sums_subtask_hours():
    data = _invoice(services=[{"title": "A", "rate": 50, "subtasks": [{"title": "x", "hours": 2}, {"title": "y", "hours": 3}]}])
    assert service_total(data.services[0]) == 250


def test_legacy_flat_invoice_totals_match_nested_form():
    flat = _invoice(services=[{"description": "Work", "hours": 10, "rate": 100}])
    nested = _invoice()
    assert compute_totals(flat) == compute_totals(nested)
