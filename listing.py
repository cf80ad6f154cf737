"""
Dashboard / space / insights helpers over stored invoices.

Rows carry the validated InvoiceData and its totals so templates never
recompute anything themselves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from pydantic import ValidationError

from invoice_schema import InvoiceData, UserConfig, load_invoice
from models import Invoice, PAYMENT_STATUSES
from totals import InvoiceTotals, compute_totals, money, resolve_currency

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("date", "amount", "client")
STATUS_OPTIONS = ("all",) + PAYMENT_STATUSES


@dataclass
class InvoiceRow:
    record: Invoice
    data: Optional[InvoiceData]
    totals: Optional[InvoiceTotals]
    currency: str

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def invoice_number(self) -> str:
        return self.data.invoice_number if self.data else self.record.invoice_number

    @property
    def client_name(self) -> str:
        return self.data.client_name if self.data else ""

    @property
    def invoice_date(self) -> Optional[date]:
        return self.data.invoice_date if self.data else None

    @property
    def total(self) -> float:
        return self.totals.total if self.totals else 0.0

    @property
    def total_label(self) -> str:
        return money(self.totals.total, self.currency) if self.totals else "—"

    @property
    def service_titles(self) -> str:
        return ", ".join(s.title for s in self.data.services) if self.data else ""


def build_row(record: Invoice, config: Optional[UserConfig] = None) -> InvoiceRow:
    try:
        data = load_invoice(record.data or {})
    except ValidationError:
        # Keep the row visible so it can still be opened, edited or deleted.
        logger.warning("Stored invoice id=%s does not match the invoice schema", record.id)
        return InvoiceRow(record=record, data=None, totals=None, currency=resolve_currency(None, config))
    return InvoiceRow(
        record=record,
        data=data,
        totals=compute_totals(data, config),
        currency=resolve_currency(data, config),
    )


def build_rows(records: list[Invoice], config: Optional[UserConfig] = None) -> list[InvoiceRow]:
    return [build_row(r, config) for r in records]


def search_rows(rows: list[InvoiceRow], q: str) -> list[InvoiceRow]:
    q = (q or "").strip().lower()
    if not q:
        return rows
    return [r for r in rows if q in r.client_name.lower() or q in r.invoice_number.lower()]


def filter_status(rows: list[InvoiceRow], status: str) -> list[InvoiceRow]:
    if status not in PAYMENT_STATUSES:
        return rows
    return [r for r in rows if r.record.payment_status == status]


def filter_space(rows: list[InvoiceRow], space: str) -> list[InvoiceRow]:
    """space: 'all', 'none' (unassigned) or a space id."""
    space = (space or "all").strip()
    if space == "all":
        return rows
    if space == "none":
        return [r for r in rows if r.record.space_id is None]
    if space.isdigit():
        return [r for r in rows if r.record.space_id == int(space)]
    return rows


def sort_rows(rows: list[InvoiceRow], sort: str) -> list[InvoiceRow]:
    if sort == "amount":
        return sorted(rows, key=lambda r: r.total, reverse=True)
    if sort == "client":
        return sorted(rows, key=lambda r: r.client_name.lower())
    # date: newest invoice date first, unparseable rows last
    return sorted(rows, key=lambda r: (r.invoice_date is not None, r.invoice_date or date.min), reverse=True)


def dashboard_rows(
    rows: list[InvoiceRow],
    q: str = "",
    sort: str = "date",
    status: str = "all",
    space: str = "all",
) -> list[InvoiceRow]:
    rows = search_rows(rows, q)
    rows = filter_status(rows, status)
    rows = filter_space(rows, space)
    return sort_rows(rows, sort)


@dataclass(frozen=True)
class EarningsPoint:
    day: date
    total: float


def aggregate_earnings(rows: list[InvoiceRow], start: date, end: date) -> list[EarningsPoint]:
    """Daily totals by invoice date within [start, end], oldest first."""
    if start > end:
        raise ValueError("Start date cannot be after end date.")

    per_day: dict[date, float] = {}
    for r in rows:
        if r.data is None or not (start <= r.data.invoice_date <= end):
            continue
        per_day[r.data.invoice_date] = per_day.get(r.data.invoice_date, 0.0) + r.total
    return [EarningsPoint(day, round(total, 2)) for day, total in sorted(per_day.items())]
