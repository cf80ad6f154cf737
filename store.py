"""
User-scoped data access.

InvoiceStore is handed to the web app, the PDF flow and the numbering helper;
nothing reaches the database any other way. Every invoice/space/config call
takes the authenticated user's id and filters on it.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from invoice_schema import UserConfig
from models import (
    Invoice,
    InvoiceSpace,
    User,
    UserInvoiceConfig,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    pass


class NotFoundError(StoreError):
    pass


class InvoiceStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        s = self._session_factory()
        try:
            yield s
        except SQLAlchemyError as exc:
            s.rollback()
            logger.exception("Database operation failed")
            raise StoreError("Database operation failed") from exc
        finally:
            s.close()

    # -----------------------------
    # Users
    # -----------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        with self._session() as s:
            return s.get(User, user_id)

    def find_user(self, username: str) -> Optional[User]:
        with self._session() as s:
            return s.query(User).filter(User.username == username).first()

    def list_users(self) -> list[User]:
        with self._session() as s:
            return s.query(User).order_by(User.id.asc()).all()

    def create_user(self, username: str, password_hash: str) -> User:
        with self._session() as s:
            u = User(username=username, password_hash=password_hash)
            s.add(u)
            s.commit()
            return u

    # -----------------------------
    # Invoices
    # -----------------------------
    def _owned_invoice(self, s, user_id: int, invoice_id: int) -> Invoice:
        inv = (
            s.query(Invoice)
            .options(selectinload(Invoice.space))
            .filter(Invoice.id == invoice_id, Invoice.user_id == user_id)
            .first()
        )
        if not inv:
            raise NotFoundError(f"Invoice not found: id={invoice_id}")
        return inv

    def list_invoices(self, user_id: int, space_id: Optional[int] = None) -> list[Invoice]:
        with self._session() as s:
            q = (
                s.query(Invoice)
                .options(selectinload(Invoice.space))
                .filter(Invoice.user_id == user_id)
                .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            )
            if space_id is not None:
                q = q.filter(Invoice.space_id == space_id)
            return q.all()

    def recent_invoice_numbers(self, user_id: int, limit: int) -> list[str]:
        """Invoice numbers of the user's `limit` most recently created invoices."""
        with self._session() as s:
            rows = (
                s.query(Invoice.data)
                .filter(Invoice.user_id == user_id)
                .order_by(Invoice.created_at.desc(), Invoice.id.desc())
                .limit(limit)
                .all()
            )
            return [str((data or {}).get("invoiceNumber") or "") for (data,) in rows]

    def get_invoice(self, user_id: int, invoice_id: int) -> Invoice:
        with self._session() as s:
            return self._owned_invoice(s, user_id, invoice_id)

    def create_invoice(self, user_id: int, data: dict, space_id: Optional[int] = None) -> Invoice:
        with self._session() as s:
            if space_id is not None:
                self._owned_space(s, user_id, space_id)
            inv = Invoice(user_id=user_id, data=data, space_id=space_id, payment_status=PAYMENT_PENDING)
            s.add(inv)
            s.commit()
            return inv

    def update_invoice_data(self, user_id: int, invoice_id: int, data: dict) -> Invoice:
        with self._session() as s:
            inv = self._owned_invoice(s, user_id, invoice_id)
            inv.data = data
            s.commit()
            return inv

    def set_pdf_path(self, user_id: int, invoice_id: int, pdf_path: Optional[str]) -> None:
        with self._session() as s:
            inv = self._owned_invoice(s, user_id, invoice_id)
            inv.pdf_path = pdf_path
            s.commit()

    def delete_invoice(self, user_id: int, invoice_id: int) -> Invoice:
        with self._session() as s:
            inv = self._owned_invoice(s, user_id, invoice_id)
            s.delete(inv)
            s.commit()
            return inv

    def move_invoice(self, user_id: int, invoice_id: int, space_id: Optional[int]) -> Invoice:
        with self._session() as s:
            inv = self._owned_invoice(s, user_id, invoice_id)
            if space_id is not None:
                self._owned_space(s, user_id, space_id)
            inv.space_id = space_id
            s.commit()
            return inv

    def set_payment_status(self, user_id: int, invoice_id: int, status: str) -> Invoice:
        if status not in PAYMENT_STATUSES:
            raise ValueError(f"Unknown payment status: {status!r}")
        with self._session() as s:
            inv = self._owned_invoice(s, user_id, invoice_id)
            inv.payment_status = status
            inv.paid_at = datetime.utcnow() if status == PAYMENT_PAID else None
            s.commit()
            return inv

    # -----------------------------
    # Spaces
    # -----------------------------
    def _owned_space(self, s, user_id: int, space_id: int) -> InvoiceSpace:
        space = (
            s.query(InvoiceSpace)
            .filter(InvoiceSpace.id == space_id, InvoiceSpace.user_id == user_id)
            .first()
        )
        if not space:
            raise NotFoundError(f"Space not found: id={space_id}")
        return space

    def list_spaces(self, user_id: int) -> list[tuple[InvoiceSpace, int]]:
        """Spaces with their invoice counts, oldest first."""
        with self._session() as s:
            counts = (
                s.query(Invoice.space_id, func.count(Invoice.id))
                .filter(Invoice.user_id == user_id, Invoice.space_id.isnot(None))
                .group_by(Invoice.space_id)
                .all()
            )
            by_space = {space_id: n for space_id, n in counts}
            spaces = (
                s.query(InvoiceSpace)
                .filter(InvoiceSpace.user_id == user_id)
                .order_by(InvoiceSpace.created_at.asc(), InvoiceSpace.id.asc())
                .all()
            )
            return [(sp, by_space.get(sp.id, 0)) for sp in spaces]

    def get_space(self, user_id: int, space_id: int) -> InvoiceSpace:
        with self._session() as s:
            return self._owned_space(s, user_id, space_id)

    def create_space(self, user_id: int, name: str, description: Optional[str], color: str) -> InvoiceSpace:
        with self._session() as s:
            space = InvoiceSpace(user_id=user_id, name=name, description=description, color=color)
            s.add(space)
            s.commit()
            return space

    def update_space(self, user_id: int, space_id: int, name: str, description: Optional[str], color: str) -> InvoiceSpace:
        with self._session() as s:
            space = self._owned_space(s, user_id, space_id)
            space.name = name
            space.description = description
            space.color = color
            s.commit()
            return space

    def delete_space(self, user_id: int, space_id: int) -> None:
        """Delete a space; its invoices stay, unassigned."""
        with self._session() as s:
            space = self._owned_space(s, user_id, space_id)
            (
                s.query(Invoice)
                .filter(Invoice.user_id == user_id, Invoice.space_id == space_id)
                .update({"space_id": None}, synchronize_session=False)
            )
            s.delete(space)
            s.commit()

    # -----------------------------
    # User invoice config
    # -----------------------------
    def get_config(self, user_id: int) -> UserConfig:
        with self._session() as s:
            row = s.query(UserInvoiceConfig).filter(UserInvoiceConfig.user_id == user_id).first()
            if not row:
                return UserConfig()
            return UserConfig.model_validate(row)

    def save_config(self, user_id: int, config: UserConfig) -> UserConfig:
        with self._session() as s:
            row = s.query(UserInvoiceConfig).filter(UserInvoiceConfig.user_id == user_id).first()
            if not row:
                row = UserInvoiceConfig(user_id=user_id)
                s.add(row)
            for key, value in config.model_dump().items():
                setattr(row, key, value)
            s.commit()
            return UserConfig.model_validate(row)
