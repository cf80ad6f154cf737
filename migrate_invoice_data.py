#!/usr/bin/env python3
"""
Upgrade stored invoice payloads to the current schema version.

Older invoices were saved with flat services ({"description", "hours", "rate"});
the app reads them either way, but rewriting them keeps the stored JSON uniform.

Usage examples:

  # report what would change
  python migrate_invoice_data.py --dry-run

  # only one user's invoices, against an explicit database
  python migrate_invoice_data.py --db-url "sqlite:///instance/invoices.db" --username alice
"""

import argparse

from pydantic import ValidationError

from config import Config
from invoice_schema import SCHEMA_VERSION, dump_invoice, is_legacy_payload, load_invoice, upgrade_invoice_payload
from models import Base, Invoice, User, make_engine, make_session_factory


def _parse_args():
    p = argparse.ArgumentParser()
    p.add_argument("--db-url", default=Config.SQLALCHEMY_DATABASE_URI, help="Database URL (defaults to DATABASE_URL)")
    p.add_argument("--username", default="", help="Only migrate invoices owned by this user")
    p.add_argument("--dry-run", action="store_true", help="Do not write anything; just report what would happen")
    return p.parse_args()


def main():
    args = _parse_args()

    engine = make_engine(args.db_url)
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    with SessionLocal() as s:
        q = s.query(Invoice).order_by(Invoice.created_at.asc(), Invoice.id.asc())
        if args.username:
            u = s.query(User).filter(User.username == args.username).first()
            if not u:
                raise SystemExit(f"User '{args.username}' not found.")
            q = q.filter(Invoice.user_id == u.id)

        invoices = q.all()
        legacy = [inv for inv in invoices if is_legacy_payload(inv.data or {})]

        print(f"Found {len(invoices)} invoices; {len(legacy)} stored below schema v{SCHEMA_VERSION}.")

        if args.dry_run:
            for inv in legacy:
                print(f"  would upgrade id={inv.id} {inv.invoice_number or '(no number)'}")
            print("DRY RUN: no changes will be written.")
            return

        invalid = 0
        for inv in legacy:
            raw = dict(inv.data or {})
            try:
                inv.data = dump_invoice(load_invoice(raw))
            except ValidationError:
                # keep what we have; the edit form flags the rest
                inv.data = upgrade_invoice_payload(raw)
                invalid += 1
                print(f"  upgraded id={inv.id} but it still needs editing (missing or invalid fields)")

        s.commit()
        print(f"Upgraded {len(legacy)} invoices ({invalid} still incomplete).")
        print("Done.")


if __name__ == "__main__":
    main()
