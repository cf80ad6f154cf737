"""
Invoice totals and money formatting.

Every view (dashboard, space, detail, preview, PDF, insights) goes through
compute_totals(); nothing stores a total.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from invoice_schema import InvoiceData, Service, UserConfig

DEFAULT_CURRENCY = "USD"

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CHF": "CHF ",
    "CAD": "CA$",
    "AUD": "A$",
    "MXN": "MX$",
    "INR": "₹",
}


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: float
    irpf_rate: float
    irpf_amount: float
    tax_rate: float
    tax_amount: float
    total: float

    @property
    def taxable_base(self) -> float:
        return round(self.subtotal - self.irpf_amount, 2)


def service_hours(service: Service) -> float:
    return sum(st.hours for st in service.subtasks)


def service_total(service: Service) -> float:
    return round(service.rate * service_hours(service), 2)


def _rate(value: Optional[float], default: Optional[float]) -> float:
    if value is not None:
        return float(value)
    return float(default or 0.0)


def compute_totals(data: InvoiceData, config: Optional[UserConfig] = None) -> InvoiceTotals:
    """
    IRPF is withheld on the subtotal, VAT is added on what remains:
        total = subtotal - subtotal*irpf + (subtotal - subtotal*irpf)*vat
    Rates missing on the invoice fall back to the user's defaults.
    """
    config = config or UserConfig()
    subtotal = round(sum(svc.rate * service_hours(svc) for svc in data.services), 2)

    irpf_rate = _rate(data.irpf_rate, config.default_irpf_rate)
    tax_rate = _rate(data.tax_rate, config.default_tax_rate)

    irpf_amount = round(subtotal * irpf_rate / 100, 2)
    tax_amount = round((subtotal - irpf_amount) * tax_rate / 100, 2)
    total = round(subtotal - irpf_amount + tax_amount, 2)

    return InvoiceTotals(
        subtotal=subtotal,
        irpf_rate=irpf_rate,
        irpf_amount=irpf_amount,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total=total,
    )


def resolve_currency(data: Optional[InvoiceData], config: Optional[UserConfig] = None) -> str:
    if data is not None and data.currency:
        return data.currency
    if config is not None and config.default_currency:
        return config.default_currency
    return DEFAULT_CURRENCY


def currency_symbol(code: Optional[str]) -> str:
    """Symbol for a known code; unknown codes come back unchanged."""
    code = (code or "").strip() or DEFAULT_CURRENCY
    return CURRENCY_SYMBOLS.get(code.upper(), code)


def money(x, currency: Optional[str] = None) -> str:
    symbol = currency_symbol(currency)
    if symbol[-1:].isalpha():
        symbol += " "
    try:
        value = float(x)
    except (TypeError, ValueError):
        return f"{symbol}{x}"
    if value < 0:
        return f"-{symbol}{abs(value):,.2f}"
    return f"{symbol}{value:,.2f}"


def format_hours(hours: float) -> str:
    return f"{hours:g}"


def format_rate(rate: float) -> str:
    return f"{rate:g}%"
