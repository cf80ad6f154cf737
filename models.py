from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    create_engine,
    String,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID)


# -----------------------------
# SQLAlchemy base
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Tables
# -----------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(80), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class InvoiceSpace(Base):
    """
    A folder-like grouping of invoices owned by one user.
    """
    __tablename__ = "invoice_spaces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#3b82f6")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoices: Mapped[list["Invoice"]] = relationship(back_populates="space")


class Invoice(Base):
    """
    Stored invoice: the validated InvoiceData JSON blob plus PDF and grouping metadata.
    Totals are never stored; they are recomputed from `data` whenever shown.
    """
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Public URL of the stored PDF artifact
    pdf_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    space_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoice_spaces.id", ondelete="SET NULL"), nullable=True, index=True
    )
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default=PAYMENT_PENDING)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    space: Mapped[Optional["InvoiceSpace"]] = relationship(back_populates="invoices")

    @property
    def invoice_number(self) -> str:
        return str((self.data or {}).get("invoiceNumber") or "")

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_PAID


class UserInvoiceConfig(Base):
    """
    One row per user: company identity and tax/currency defaults for new invoices.
    """
    __tablename__ = "user_invoice_configs"
    __table_args__ = (UniqueConstraint("user_id", name="uq_user_invoice_configs_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    company_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    company_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    company_email: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    company_phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    company_website: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    tax_number: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    bank_details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    default_payment_terms: Mapped[str] = mapped_column(String(120), nullable=False, default="30 days")
    default_currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    default_tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    default_irpf_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# -----------------------------
# Engine / Session factory
# -----------------------------
def make_engine(db_url: str, echo: bool = False):
    """
    Create SQLAlchemy engine.
    Note: SQLite path must exist (instance/ folder). We'll create it in setup steps.
    """
    return create_engine(db_url, echo=echo, future=True)


def make_session_factory(engine):
    # Views render rows after the session closes, so keep loaded state after commit.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
