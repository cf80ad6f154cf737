# bulk_generate_pdfs.py
import argparse
from pathlib import Path

from pydantic import ValidationError

from config import Config
from models import Base, make_engine, make_session_factory
from pdf_service import PdfGenerationError, PdfOptions, generate_and_store_pdf
from storage import PdfStorage, StorageError
from store import InvoiceStore, StoreError


def _invoice_year(inv) -> str:
    return str((inv.data or {}).get("invoiceDate") or "")[:4]


def main():
    parser = argparse.ArgumentParser(description="Bulk generate stored invoice PDFs.")
    parser.add_argument("--user", type=str, default="", help="Only generate PDFs for this username.")
    parser.add_argument("--year", type=str, default="", help="Only invoices dated in a given year (YYYY).")
    parser.add_argument("--all", action="store_true", help="Regenerate PDFs even if one already exists.")
    args = parser.parse_args()

    target_year = (args.year or "").strip()
    if target_year and not (target_year.isdigit() and len(target_year) == 4):
        raise SystemExit("Year must be 4 digits, e.g. --year 2025")

    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    store = InvoiceStore(make_session_factory(engine))
    storage = PdfStorage(Config.EXPORTS_DIR, Config.APP_BASE_URL)
    options = PdfOptions.from_config(vars(Config))

    if args.user:
        user = store.find_user(args.user.strip())
        if not user:
            raise SystemExit(f"User '{args.user}' not found.")
        users = [user]
    else:
        users = store.list_users()

    work = []
    for u in users:
        for inv in store.list_invoices(u.id):
            if target_year and _invoice_year(inv) != target_year:
                continue
            work.append((u, inv))

    if not work:
        print("No invoices found for the given filter.")
        return

    total = len(work)
    generated = 0
    skipped = 0
    failed = 0

    for i, (u, inv) in enumerate(work, start=1):
        label = f"{u.username}/{inv.invoice_number or inv.id}"
        if inv.pdf_path and storage.exists(inv.pdf_path) and not args.all:
            skipped += 1
            print(f"[{i}/{total}] SKIP  {label} (already has PDF)")
            continue
        try:
            url = generate_and_store_pdf(store, storage, u.id, inv.id, options)
        except (PdfGenerationError, StorageError, StoreError, ValidationError) as e:
            failed += 1
            print(f"[{i}/{total}] FAIL  {label}  ({e.__class__.__name__}: {e})")
            continue
        generated += 1
        print(f"[{i}/{total}] DONE  {label} -> {url}")

    print("\n✅ Bulk PDF generation complete.")
    print(f"Generated: {generated}")
    print(f"Skipped:   {skipped}")
    print(f"Failed:    {failed}")
    print(f"Storage:   {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
