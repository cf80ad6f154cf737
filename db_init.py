# db_init.py
import argparse
import getpass
from pathlib import Path

from werkzeug.security import generate_password_hash

from config import Config
from models import Base, make_engine, make_session_factory
from store import InvoiceStore


def main():
    parser = argparse.ArgumentParser(description="Create the database tables and storage root.")
    parser.add_argument("--reset", action="store_true", help="Drop every table first (deletes all data).")
    parser.add_argument("--user", type=str, default="", help="Also create a login with this username.")
    args = parser.parse_args()

    # Ensure instance/ exists for SQLite local dev
    if Config.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        Path("instance").mkdir(parents=True, exist_ok=True)

    # PDF storage root: <EXPORTS_DIR>/<user_id>/<invoice_id>/invoice-<number>.pdf
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    if args.reset:
        Base.metadata.drop_all(engine)
        print("Dropped existing tables.")
    Base.metadata.create_all(engine)

    if args.user:
        store = InvoiceStore(make_session_factory(engine))
        username = args.user.strip()
        if store.find_user(username):
            raise SystemExit(f"User '{username}' already exists.")
        password = getpass.getpass(f"Password for {username}: ")
        if len(password) < 6:
            raise SystemExit("Password must be at least 6 characters.")
        u = store.create_user(username, generate_password_hash(password))
        print(f"Created user '{u.username}' (id={u.id}).")

    print("✅ Database initialized.")
    print(f"DB: {Config.SQLALCHEMY_DATABASE_URI}")
    print(f"PDF storage: {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
