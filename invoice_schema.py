"""
Invoice schema shared by the form, the preview, the dashboard and the PDF export.

Stored invoices are JSON blobs with camelCase keys. Two historical shapes exist:

  v1  services are flat: {"description", "hours", "rate"}
  v2  services nest subtasks: {"title", "description", "rate", "subtasks": [...]}

Every payload is upgraded to the current version before validation, so callers
only ever see v2 objects.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 2

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class Subtask(_CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    hours: float = Field(gt=0)


class Service(_CamelModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    rate: float = Field(ge=0)
    subtasks: list[Subtask] = Field(min_length=1)


class InvoiceData(_CamelModel):
    schema_version: int = SCHEMA_VERSION

    invoice_number: str = Field(min_length=1, max_length=64)
    invoice_date: date
    due_date: date

    # Per-invoice overrides of the user's company config
    business_name: Optional[str] = None
    business_email: Optional[str] = None
    business_address: Optional[str] = None
    business_phone: Optional[str] = None

    client_name: str = Field(min_length=1)
    client_email: str = Field(min_length=1)
    client_address: str = Field(min_length=1)

    currency: Optional[str] = None
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)
    irpf_rate: Optional[float] = Field(default=None, ge=0, le=100)

    services: list[Service] = Field(min_length=1)
    notes: str = ""

    @model_validator(mode="before")
    @classmethod
    def _upgrade(cls, raw: Any) -> Any:
        return upgrade_invoice_payload(raw)

    @field_validator("client_email", "business_email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        if v and not _EMAIL_RE.match(v):
            raise ValueError("Enter a valid email address")
        return v

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else None

    @field_validator("due_date")
    @classmethod
    def _due_not_before_issue(cls, v: date, info) -> date:
        issued = info.data.get("invoice_date")
        if issued and v < issued:
            raise ValueError("Due date cannot be before the invoice date")
        return v


class UserConfig(BaseModel):
    """Company identity and defaults applied when an invoice leaves a field empty."""
    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)

    company_name: str = ""
    company_address: str = ""
    company_email: str = ""
    company_phone: str = ""
    company_website: str = ""
    tax_number: str = ""
    bank_details: str = ""
    default_payment_terms: str = "30 days"
    default_currency: str = "USD"
    default_tax_rate: float = Field(default=0.0, ge=0, le=100)
    default_irpf_rate: float = Field(default=0.0, ge=0, le=100)

    @field_validator("default_currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return (v or "USD").upper()


# -----------------------------
# Legacy shapes
# -----------------------------
def is_legacy_payload(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    version = raw.get("schemaVersion", raw.get("schema_version"))
    try:
        return not version or int(version) < SCHEMA_VERSION
    except (TypeError, ValueError):
        return True


def _upgrade_flat_service(svc: dict) -> dict:
    title = (svc.get("title") or svc.get("description") or "").strip()
    description = (svc.get("description") or None) if svc.get("title") else None
    return {
        "title": title,
        "description": description,
        "rate": svc.get("rate", 0),
        "subtasks": [{"title": title, "hours": svc.get("hours", 0)}],
    }


def upgrade_invoice_payload(raw: Any) -> Any:
    """
    Return `raw` converted to the current schema version.
    Flat v1 services become one service with a single subtask carrying its hours.
    """
    if not is_legacy_payload(raw):
        return raw

    payload = dict(raw)
    services = []
    for svc in payload.get("services") or []:
        if isinstance(svc, dict) and "subtasks" not in svc:
            services.append(_upgrade_flat_service(svc))
        else:
            services.append(svc)
    payload["services"] = services
    payload.pop("schema_version", None)
    payload["schemaVersion"] = SCHEMA_VERSION
    return payload


def load_invoice(raw: dict) -> InvoiceData:
    return InvoiceData.model_validate(raw)


def dump_invoice(data: InvoiceData) -> dict:
    """JSON-ready dict with camelCase keys and ISO dates, as stored in invoices.data."""
    return data.model_dump(mode="json", by_alias=True)


# -----------------------------
# Form error mapping
# -----------------------------
_MESSAGES = {
    "missing": "This field is required",
    "string_too_short": "This field is required",
    "too_short": "Add at least one item",
    "float_parsing": "Enter a number",
    "float_type": "Enter a number",
    "date_from_datetime_parsing": "Enter a valid date",
    "date_parsing": "Enter a valid date",
    "date_type": "Enter a valid date",
}


def _message(err: dict) -> str:
    kind = err.get("type", "")
    if kind in _MESSAGES:
        return _MESSAGES[kind]
    ctx = err.get("ctx") or {}
    if kind == "greater_than":
        return f"Must be greater than {ctx.get('gt')}"
    if kind == "greater_than_equal":
        return f"Must be at least {ctx.get('ge')}"
    if kind == "less_than_equal":
        return f"Must be at most {ctx.get('le')}"
    if kind == "value_error":
        return str(ctx.get("error") or err.get("msg", "Invalid value"))
    return err.get("msg", "Invalid value")


def form_errors(exc: ValidationError) -> dict[str, str]:
    """
    Map a ValidationError to {form field name: message}.
    Field names join the error location with '-', e.g. 'services-0-subtasks-1-hours'.
    The first error per field wins.
    """
    out: dict[str, str] = {}
    for err in exc.errors():
        key = "-".join(str(p) for p in err.get("loc", ())) or "__all__"
        out.setdefault(key, _message(err))
    return out
