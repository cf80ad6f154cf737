"""
Preview renderer: (InvoiceData, UserConfig) -> PreviewDocument.

The document is a plain tree of already-formatted strings. The HTML template
(templates/_invoice_document.html) and the PDF rasterizer (preview_raster.py)
both draw from it, so the browser preview and the exported PDF cannot disagree.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from invoice_schema import InvoiceData, UserConfig
from totals import (
    InvoiceTotals,
    compute_totals,
    format_hours,
    format_rate,
    money,
    resolve_currency,
    service_total,
)


@dataclass
class SubtaskLine:
    title: str
    description: str
    hours: str
    rate: str
    amount: str


@dataclass
class ServiceBlock:
    title: str
    description: str
    rate: str
    lines: list[SubtaskLine]
    total: str


@dataclass
class BreakdownRow:
    label: str
    value: str
    emphasis: bool = False


@dataclass
class PreviewDocument:
    title: str
    invoice_number: str
    invoice_date: str
    due_date: str
    issuer_lines: list[str]
    client_lines: list[str]
    services: list[ServiceBlock]
    breakdown: list[BreakdownRow]
    totals: InvoiceTotals
    currency: str
    notes: str = ""
    payment_terms: str = ""
    bank_details: str = ""


def _lines(text: Optional[str]) -> list[str]:
    return [ln.strip() for ln in re.split(r"[\r\n]+", text or "") if ln.strip()]


def _date(d) -> str:
    return d.strftime("%B %d, %Y").replace(" 0", " ")


def _issuer_lines(data: InvoiceData, config: UserConfig) -> list[str]:
    # invoice override -> company config
    name = data.business_name or config.company_name
    address = data.business_address or config.company_address
    email = data.business_email or config.company_email
    phone = data.business_phone or config.company_phone

    lines = [name] if name else []
    lines.extend(_lines(address))
    lines.extend(p for p in [email, phone, config.company_website] if p)
    if config.tax_number:
        lines.append(f"Tax ID: {config.tax_number}")
    return lines


def _client_lines(data: InvoiceData) -> list[str]:
    return [data.client_name, data.client_email, *_lines(data.client_address)]


def _breakdown(totals: InvoiceTotals, currency: str) -> list[BreakdownRow]:
    rows = [BreakdownRow("Subtotal", money(totals.subtotal, currency))]
    # zero-rate rows are left out entirely
    if totals.irpf_rate:
        rows.append(BreakdownRow(f"IRPF (-{format_rate(totals.irpf_rate)})", money(-totals.irpf_amount, currency)))
    if totals.tax_rate:
        rows.append(BreakdownRow(f"Tax ({format_rate(totals.tax_rate)})", money(totals.tax_amount, currency)))
    rows.append(BreakdownRow("Total", money(totals.total, currency), emphasis=True))
    return rows


def render_preview(data: InvoiceData, config: Optional[UserConfig] = None) -> PreviewDocument:
    config = config or UserConfig()
    currency = resolve_currency(data, config)
    totals = compute_totals(data, config)

    services = []
    for svc in data.services:
        rate = money(svc.rate, currency)
        services.append(ServiceBlock(
            title=svc.title,
            description=svc.description or "",
            rate=f"{rate}/hr",
            lines=[
                SubtaskLine(
                    title=st.title,
                    description=st.description or "",
                    hours=format_hours(st.hours),
                    rate=rate,
                    amount=money(st.hours * svc.rate, currency),
                )
                for st in svc.subtasks
            ],
            total=money(service_total(svc), currency),
        ))

    return PreviewDocument(
        title="INVOICE",
        invoice_number=data.invoice_number,
        invoice_date=_date(data.invoice_date),
        due_date=_date(data.due_date),
        issuer_lines=_issuer_lines(data, config),
        client_lines=_client_lines(data),
        services=services,
        breakdown=_breakdown(totals, currency),
        totals=totals,
        currency=currency,
        notes=data.notes or "",
        payment_terms=config.default_payment_terms or "",
        bank_details=config.bank_details or "",
    )
