import io
import re
import json
import logging
from datetime import date, timedelta
from pathlib import Path

from flask import (
    Flask, render_template, request, redirect, url_for,
    flash, send_file, send_from_directory, abort
)
from flask_login import (
    LoginManager, UserMixin, login_user, logout_user,
    login_required, current_user
)
from pydantic import ValidationError
from sqlalchemy import inspect, text
from werkzeug.security import generate_password_hash, check_password_hash

from config import Config
from invoice_schema import InvoiceData, UserConfig, dump_invoice, form_errors, load_invoice
from listing import (
    SORT_OPTIONS, STATUS_OPTIONS,
    aggregate_earnings, build_row, build_rows, dashboard_rows,
)
from models import Base, make_engine, make_session_factory, PAYMENT_STATUSES
from numbering import next_invoice_number
from pdf_service import PdfGenerationError, PdfOptions, export_invoice_pdf, generate_and_store_pdf, pdf_filename
from preview import render_preview
from storage import PdfStorage, StorageError
from store import InvoiceStore, NotFoundError, StoreError
from totals import money

logger = logging.getLogger(__name__)

login_manager = LoginManager()
login_manager.login_view = "login"

SPACE_COLORS = (
    "#3b82f6",  # blue
    "#10b981",  # green
    "#f59e0b",  # amber
    "#ef4444",  # red
    "#8b5cf6",  # purple
    "#ec4899",  # pink
    "#06b6d4",  # cyan
    "#84cc16",  # lime
)

INVOICE_FIELDS = (
    "invoiceNumber", "invoiceDate", "dueDate",
    "businessName", "businessEmail", "businessAddress", "businessPhone",
    "clientName", "clientEmail", "clientAddress",
    "currency", "taxRate", "irpfRate", "notes",
)
OPTIONAL_INVOICE_FIELDS = {
    "businessName", "businessEmail", "businessAddress", "businessPhone",
    "currency", "taxRate", "irpfRate",
}
CONFIG_FIELDS = tuple(UserConfig.model_fields)

_SERVICE_FIELD_RE = re.compile(r"^services-(\d+)-(title|description|rate)$")
_SUBTASK_FIELD_RE = re.compile(r"^services-(\d+)-subtasks-(\d+)-(title|description|hours)$")
_FORM_ACTION_RE = re.compile(r"^(add_service|add_subtask|remove_service|remove_subtask)(?:-(\d+))?(?:-(\d+))?$")


# -----------------------------
# Flask-Login user wrapper
# -----------------------------
class AppUser(UserMixin):
    def __init__(self, user_id: int, username: str):
        self.id = str(user_id)
        self.username = username


# -----------------------------
# Helpers
# -----------------------------
def _blank_subtask():
    return {"title": "", "description": "", "hours": ""}


def _blank_service():
    return {"title": "", "description": "", "rate": "", "subtasks": [_blank_subtask()]}


def _is_blank(d: dict, keys) -> bool:
    return not any(str(d.get(k) or "").strip() for k in keys)


def _form_payload(form) -> dict:
    """
    Rebuild the camelCase invoice payload from flat form fields:
    services-<i>-title, services-<i>-subtasks-<j>-hours, ...
    Rows left completely empty are dropped; blank optional fields are omitted.
    """
    payload = {}
    for key in INVOICE_FIELDS:
        value = form.get(key) or ""
        value = value.rstrip() if key == "notes" else value.strip()
        if key in OPTIONAL_INVOICE_FIELDS and not value:
            continue
        payload[key] = value

    services = {}
    for key in form.keys():
        m = _SERVICE_FIELD_RE.match(key)
        if m:
            services.setdefault(int(m.group(1)), {"subtasks": {}})[m.group(2)] = (form.get(key) or "").strip()
            continue
        m = _SUBTASK_FIELD_RE.match(key)
        if m:
            svc = services.setdefault(int(m.group(1)), {"subtasks": {}})
            svc["subtasks"].setdefault(int(m.group(2)), {})[m.group(3)] = (form.get(key) or "").strip()

    out = []
    for i in sorted(services):
        svc = services[i]
        subtasks = []
        for j in sorted(svc["subtasks"]):
            st = svc["subtasks"][j]
            if _is_blank(st, ("title", "description", "hours")):
                continue
            st["description"] = st.get("description") or None
            subtasks.append(st)
        svc["subtasks"] = subtasks
        if not subtasks and _is_blank(svc, ("title", "description", "rate")):
            continue
        svc["description"] = svc.get("description") or None
        out.append(svc)
    payload["services"] = out
    return payload


def _apply_form_action(payload: dict, action: str) -> bool:
    """Add/remove service and subtask rows. Returns False if `action` is not a row action."""
    m = _FORM_ACTION_RE.match(action or "")
    if not m:
        return False
    kind, i, j = m.group(1), m.group(2), m.group(3)
    services = payload.setdefault("services", [])
    if kind == "add_service":
        services.append(_blank_service())
        return True
    if i is None or not (0 <= int(i) < len(services)):
        return True
    svc = services[int(i)]
    svc.setdefault("subtasks", [])
    if kind == "remove_service":
        services.pop(int(i))
    elif kind == "add_subtask":
        svc["subtasks"].append(_blank_subtask())
    elif kind == "remove_subtask" and j is not None and 0 <= int(j) < len(svc["subtasks"]):
        svc["subtasks"].pop(int(j))
    return True


def _ensure_dirs(cfg):
    if str(cfg["SQLALCHEMY_DATABASE_URI"]).startswith("sqlite"):
        Path("instance").mkdir(parents=True, exist_ok=True)
    Path(cfg["EXPORTS_DIR"]).mkdir(parents=True, exist_ok=True)


def _current_user_id_int() -> int:
    try:
        return int(current_user.get_id())
    except (TypeError, ValueError):
        return -1


def _parse_date(value: str, default: date) -> date:
    try:
        return date.fromisoformat((value or "").strip())
    except ValueError:
        return default


def _months_ago(d: date, months: int) -> date:
    month_index = d.year * 12 + (d.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    for day in (d.day, 30, 29, 28):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return date(year, month, 28)


def _setup_logging(level_name: str):
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# -----------------------------
# DB migration (lightweight)
# -----------------------------
def _column_exists(engine, table_name: str, column_name: str) -> bool:
    insp = inspect(engine)
    if not insp.has_table(table_name):
        return False
    return any(c["name"] == column_name for c in insp.get_columns(table_name))


def _migrate_add_payment_columns(engine):
    # Older databases predate payment tracking on invoices
    statements = []
    if not _column_exists(engine, "invoices", "id"):
        return
    if not _column_exists(engine, "invoices", "payment_status"):
        statements.append("ALTER TABLE invoices ADD COLUMN payment_status VARCHAR(16) NOT NULL DEFAULT 'pending'")
    if not _column_exists(engine, "invoices", "paid_at"):
        statements.append("ALTER TABLE invoices ADD COLUMN paid_at TIMESTAMP")
    if statements:
        with engine.begin() as conn:
            for stmt in statements:
                conn.execute(text(stmt))


# -----------------------------
# App factory
# -----------------------------
def create_app(config_object=Config, store: InvoiceStore = None, storage: PdfStorage = None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    _setup_logging(app.config.get("LOG_LEVEL", "INFO"))
    _ensure_dirs(app.config)

    login_manager.init_app(app)

    if store is None:
        engine = make_engine(app.config["SQLALCHEMY_DATABASE_URI"], echo=app.config.get("SQLALCHEMY_ECHO", False))
        _migrate_add_payment_columns(engine)
        Base.metadata.create_all(engine)
        store = InvoiceStore(make_session_factory(engine))
    if storage is None:
        storage = PdfStorage(app.config["EXPORTS_DIR"], app.config["APP_BASE_URL"])

    app.extensions["invoice_store"] = store
    app.extensions["pdf_storage"] = storage
    pdf_options = PdfOptions.from_config(app.config)
    scan_limit = int(app.config.get("INVOICE_NUMBER_SCAN_LIMIT", 50))

    app.jinja_env.globals.update(money=money, space_colors=SPACE_COLORS)

    @app.errorhandler(StoreError)
    def _store_unavailable(exc):
        if isinstance(exc, NotFoundError):
            return render_template("not_found.html"), 404
        flash("Something went wrong loading your data. Please try again.", "error")
        return redirect(url_for("invoices"))

    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            uid = int(user_id)
        except (TypeError, ValueError):
            return None
        try:
            u = store.get_user(uid)
        except StoreError:
            return None
        if not u:
            return None
        return AppUser(u.id, u.username)

    def _invoice_owned_or_404(invoice_id: int):
        try:
            return store.get_invoice(_current_user_id_int(), invoice_id)
        except NotFoundError:
            abort(404)

    def _space_owned_or_404(space_id: int):
        try:
            return store.get_space(_current_user_id_int(), space_id)
        except NotFoundError:
            abort(404)

    def _user_config() -> UserConfig:
        try:
            return store.get_config(_current_user_id_int())
        except StoreError:
            flash("Could not load your invoice settings; using defaults.", "error")
            return UserConfig()

    def _spaces_with_counts():
        try:
            return store.list_spaces(_current_user_id_int())
        except StoreError:
            flash("Failed to load spaces.", "error")
            return []

    def _store_pdf(invoice_id: int) -> bool:
        try:
            generate_and_store_pdf(store, storage, _current_user_id_int(), invoice_id, pdf_options)
            return True
        except (PdfGenerationError, StorageError, StoreError, ValidationError):
            logger.exception("Storing PDF failed for invoice id=%s", invoice_id)
            flash("Invoice saved, but PDF generation failed. You can retry from the invoice page.", "error")
            return False

    def _new_invoice_payload() -> dict:
        config = _user_config()
        today = date.today()
        payload = {
            "invoiceNumber": next_invoice_number(store, _current_user_id_int(), scan_limit),
            "invoiceDate": today.isoformat(),
            "dueDate": (today + timedelta(days=30)).isoformat(),
            "currency": config.default_currency,
            "notes": "Thank you for your business!",
            "services": [_blank_service()],
        }
        if config.default_tax_rate:
            payload["taxRate"] = config.default_tax_rate
        if config.default_irpf_rate:
            payload["irpfRate"] = config.default_irpf_rate
        return payload

    def _render_form(mode, payload, errors=None, inv=None, space_id=None):
        return render_template(
            "invoice_form.html",
            mode=mode,
            form=payload,
            errors=errors or {},
            inv=inv,
            space_id=space_id,
            spaces=_spaces_with_counts() if mode == "new" else [],
        )

    def _handle_invoice_form(mode, inv=None):
        """Shared POST handling for the new and edit forms."""
        action = (request.form.get("action") or "save").strip()
        space_id = request.form.get("space_id", type=int)

        if request.form.get("payload"):
            # round trip from the preview page
            try:
                payload = json.loads(request.form["payload"])
            except ValueError:
                abort(400)
            if not isinstance(payload, dict):
                abort(400)
        else:
            payload = _form_payload(request.form)

        if action == "edit" or _apply_form_action(payload, action):
            return _render_form(mode, payload, inv=inv, space_id=space_id)

        try:
            data = InvoiceData.model_validate(payload)
        except ValidationError as exc:
            flash("Please fix the highlighted fields.", "error")
            return _render_form(mode, payload, errors=form_errors(exc), inv=inv, space_id=space_id)

        if action == "preview":
            return render_template(
                "invoice_preview.html",
                mode=mode,
                inv=inv,
                space_id=space_id,
                doc=render_preview(data, _user_config()),
                payload=json.dumps(dump_invoice(data)),
            )

        uid = _current_user_id_int()
        try:
            if mode == "new":
                saved = store.create_invoice(uid, dump_invoice(data), space_id=space_id)
            else:
                saved = store.update_invoice_data(uid, inv.id, dump_invoice(data))
        except NotFoundError:
            abort(404)
        except StoreError:
            flash("Failed to save invoice.", "error")
            return _render_form(mode, payload, inv=inv, space_id=space_id)

        if _store_pdf(saved.id):
            flash("Invoice saved.", "success")
        return redirect(url_for("invoice_view", invoice_id=saved.id))

    # -----------------------------
    # Auth routes
    # -----------------------------
    @app.route("/login", methods=["GET", "POST"])
    def login():
        if current_user.is_authenticated:
            return redirect(url_for("invoices"))

        if request.method == "POST":
            username = (request.form.get("username") or "").strip()
            password = request.form.get("password") or ""
            try:
                u = store.find_user(username)
            except StoreError:
                flash("Login is unavailable right now. Please try again.", "error")
                return render_template("login.html")
            if u and check_password_hash(u.password_hash, password):
                login_user(AppUser(u.id, u.username))
                return redirect(url_for("invoices"))

            flash("Invalid username or password.", "error")
        return render_template("login.html")

    @app.route("/register", methods=["GET", "POST"])
    def register():
        if current_user.is_authenticated:
            return redirect(url_for("invoices"))

        if request.method == "POST":
            username = (request.form.get("username") or "").strip()
            password = request.form.get("password") or ""
            confirm = request.form.get("confirm") or ""

            if not username or len(username) < 3:
                flash("Username must be at least 3 characters.", "error")
                return render_template("register.html")

            if not password or len(password) < 6:
                flash("Password must be at least 6 characters.", "error")
                return render_template("register.html")

            if password != confirm:
                flash("Passwords do not match.", "error")
                return render_template("register.html")

            try:
                if store.find_user(username):
                    flash("That username is already taken.", "error")
                    return render_template("register.html")
                u = store.create_user(username, generate_password_hash(password))
            except StoreError:
                flash("Registration failed. Please try again.", "error")
                return render_template("register.html")

            login_user(AppUser(u.id, u.username))
            return redirect(url_for("invoices"))

        return render_template("register.html")

    @app.route("/logout")
    @login_required
    def logout():
        logout_user()
        return redirect(url_for("login"))

    # -----------------------------
    # Index
    # -----------------------------
    @app.route("/")
    def index():
        return redirect(url_for("invoices" if current_user.is_authenticated else "login"))

    # -----------------------------
    # Dashboard (scoped to user)
    # -----------------------------
    @app.route("/invoices")
    @login_required
    def invoices():
        q = (request.args.get("q") or "").strip()
        sort = (request.args.get("sort") or "date").strip()
        status = (request.args.get("status") or "all").strip()
        space = (request.args.get("space") or "all").strip()
        if sort not in SORT_OPTIONS:
            sort = "date"
        if status not in STATUS_OPTIONS:
            status = "all"

        uid = _current_user_id_int()
        config = _user_config()
        try:
            records = store.list_invoices(uid)
        except StoreError:
            flash("Failed to load invoices.", "error")
            records = []

        rows = dashboard_rows(build_rows(records, config), q=q, sort=sort, status=status, space=space)
        return render_template(
            "invoices_list.html",
            rows=rows,
            spaces=_spaces_with_counts(),
            q=q,
            sort=sort,
            status=status,
            space=space,
            sort_options=SORT_OPTIONS,
            status_options=STATUS_OPTIONS,
        )

    # -----------------------------
    # Create invoice (owned by user)
    # -----------------------------
    @app.route("/invoices/new", methods=["GET", "POST"])
    @login_required
    def invoice_new():
        if request.method == "POST":
            return _handle_invoice_form("new")
        return _render_form("new", _new_invoice_payload(), space_id=request.args.get("space", type=int))

    @app.route("/invoices/preview/pdf", methods=["POST"])
    @login_required
    def invoice_preview_pdf():
        try:
            data = InvoiceData.model_validate(json.loads(request.form.get("payload") or "{}"))
        except (ValueError, ValidationError):
            abort(400)
        config = _user_config()
        try:
            filename, content = export_invoice_pdf(data, config, pdf_options)
        except PdfGenerationError:
            flash("PDF generation failed. Please try again.", "error")
            # keep an edit preview pointed at the invoice being edited
            invoice_id = request.form.get("invoice_id", type=int)
            inv = _invoice_owned_or_404(invoice_id) if invoice_id else None
            return render_template(
                "invoice_preview.html",
                mode="edit" if inv else "new",
                inv=inv,
                space_id=request.form.get("space_id", type=int),
                doc=render_preview(data, config),
                payload=json.dumps(dump_invoice(data)),
            )
        return send_file(io.BytesIO(content), as_attachment=True, download_name=filename, mimetype="application/pdf")

    # -----------------------------
    # View invoice (scoped)
    # -----------------------------
    @app.route("/invoices/<int:invoice_id>")
    @login_required
    def invoice_view(invoice_id):
        inv = _invoice_owned_or_404(invoice_id)
        config = _user_config()
        row = build_row(inv, config)
        doc = render_preview(row.data, config) if row.data else None
        return render_template(
            "invoice_view.html",
            inv=inv,
            row=row,
            doc=doc,
            spaces=_spaces_with_counts(),
            pdf_available=bool(inv.pdf_path) and storage.exists(inv.pdf_path),
        )

    # -----------------------------
    # Edit invoice (scoped)
    # -----------------------------
    @app.route("/invoices/<int:invoice_id>/edit", methods=["GET", "POST"])
    @login_required
    def invoice_edit(invoice_id):
        inv = _invoice_owned_or_404(invoice_id)
        if request.method == "POST":
            return _handle_invoice_form("edit", inv=inv)
        try:
            payload = dump_invoice(load_invoice(inv.data))
        except ValidationError:
            payload = dict(inv.data or {})
        return _render_form("edit", payload, inv=inv)

    # -----------------------------
    # Delete invoice (scoped, typed confirmation)
    # -----------------------------
    @app.route("/invoices/<int:invoice_id>/delete", methods=["GET", "POST"])
    @login_required
    def invoice_delete(invoice_id: int):
        inv = _invoice_owned_or_404(invoice_id)
        if request.method == "GET":
            return render_template("invoice_delete.html", inv=inv)

        typed = (request.form.get("confirm_number") or "").strip()
        if not typed or typed != inv.invoice_number:
            flash("The invoice number you typed does not match. Nothing was deleted.", "error")
            return redirect(url_for("invoice_delete", invoice_id=invoice_id))

        try:
            store.delete_invoice(_current_user_id_int(), invoice_id)
        except StoreError:
            flash("Failed to delete invoice.", "error")
            return redirect(url_for("invoice_view", invoice_id=invoice_id))

        if inv.pdf_path:
            try:
                storage.remove(inv.pdf_path)
            except StorageError:
                logger.exception("Could not remove PDF for deleted invoice id=%s", invoice_id)

        flash("Invoice deleted.", "success")
        return redirect(url_for("invoices"))

    # -----------------------------
    # Payment status / space (scoped)
    # -----------------------------
    @app.route("/invoices/<int:invoice_id>/status", methods=["POST"])
    @login_required
    def invoice_set_status(invoice_id: int):
        _invoice_owned_or_404(invoice_id)
        status = (request.form.get("status") or "").strip()
        if status not in PAYMENT_STATUSES:
            abort(400)
        try:
            store.set_payment_status(_current_user_id_int(), invoice_id, status)
            flash("Invoice marked as paid." if status == "paid" else "Invoice marked as pending.", "success")
        except StoreError:
            flash("Failed to update payment status.", "error")
        return redirect(url_for("invoice_view", invoice_id=invoice_id))

    @app.route("/invoices/<int:invoice_id>/move", methods=["POST"])
    @login_required
    def invoice_move(invoice_id: int):
        _invoice_owned_or_404(invoice_id)
        raw = (request.form.get("space_id") or "").strip()
        space_id = int(raw) if raw.isdigit() else None
        try:
            store.move_invoice(_current_user_id_int(), invoice_id, space_id)
            flash("Invoice moved." if space_id else "Invoice removed from space.", "success")
        except NotFoundError:
            abort(404)
        except StoreError:
            flash("Failed to move invoice.", "error")
        next_url = request.form.get("next") or ""
        if next_url.startswith("/") and not next_url.startswith("//"):
            return redirect(next_url)
        return redirect(url_for("invoice_view", invoice_id=invoice_id))

    # -----------------------------
    # PDF routes (scoped)
    # -----------------------------
    @app.route("/invoices/<int:invoice_id>/pdf/generate", methods=["POST"])
    @login_required
    def invoice_pdf_generate(invoice_id):
        _invoice_owned_or_404(invoice_id)
        if _store_pdf(invoice_id):
            flash("PDF generated.", "success")
        return redirect(url_for("invoice_view", invoice_id=invoice_id))

    @app.route("/invoices/<int:invoice_id>/pdf/download")
    @login_required
    def invoice_pdf_download(invoice_id):
        inv = _invoice_owned_or_404(invoice_id)
        if not inv.pdf_path or not storage.exists(inv.pdf_path):
            flash("PDF not found. Generate it first.", "error")
            return redirect(url_for("invoice_view", invoice_id=invoice_id))

        return send_file(
            storage.local_path(inv.pdf_path),
            as_attachment=True,
            download_name=pdf_filename(inv.invoice_number),
            mimetype="application/pdf"
        )

    @app.route("/invoices/<int:invoice_id>/pdf/export")
    @login_required
    def invoice_pdf_export(invoice_id):
        inv = _invoice_owned_or_404(invoice_id)
        try:
            data = load_invoice(inv.data)
            filename, content = export_invoice_pdf(data, _user_config(), pdf_options)
        except ValidationError:
            flash("This invoice has invalid data. Edit it before exporting.", "error")
            return redirect(url_for("invoice_view", invoice_id=invoice_id))
        except PdfGenerationError:
            flash("PDF generation failed. Please try again.", "error")
            return redirect(url_for("invoice_view", invoice_id=invoice_id))
        return send_file(io.BytesIO(content), as_attachment=True, download_name=filename, mimetype="application/pdf")

    @app.route("/files/<int:user_id>/<path:key>")
    def stored_file(user_id: int, key: str):
        return send_from_directory(storage.root, f"{user_id}/{key}", mimetype="application/pdf")

    # -----------------------------
    # Spaces (scoped)
    # -----------------------------
    def _space_form():
        name = (request.form.get("name") or "").strip()
        description = (request.form.get("description") or "").strip() or None
        color = (request.form.get("color") or "").strip()
        if color not in SPACE_COLORS:
            color = SPACE_COLORS[0]
        return name, description, color

    @app.route("/spaces", methods=["POST"])
    @login_required
    def space_create():
        name, description, color = _space_form()
        if not name:
            flash("Please enter a space name.", "error")
            return redirect(url_for("invoices"))
        try:
            space = store.create_space(_current_user_id_int(), name, description, color)
        except StoreError:
            flash("Failed to create space.", "error")
            return redirect(url_for("invoices"))
        flash("Space created successfully!", "success")
        return redirect(url_for("space_view", space_id=space.id))

    @app.route("/spaces/<int:space_id>")
    @login_required
    def space_view(space_id: int):
        space = _space_owned_or_404(space_id)
        uid = _current_user_id_int()
        try:
            records = store.list_invoices(uid, space_id=space_id)
        except StoreError:
            flash("Failed to load invoices.", "error")
            records = []
        return render_template(
            "space_view.html",
            space=space,
            rows=build_rows(records, _user_config()),
            spaces=_spaces_with_counts(),
        )

    @app.route("/spaces/<int:space_id>/edit", methods=["POST"])
    @login_required
    def space_edit(space_id: int):
        _space_owned_or_404(space_id)
        name, description, color = _space_form()
        if not name:
            flash("Please enter a space name.", "error")
            return redirect(url_for("space_view", space_id=space_id))
        try:
            store.update_space(_current_user_id_int(), space_id, name, description, color)
            flash("Space updated.", "success")
        except StoreError:
            flash("Failed to update space.", "error")
        return redirect(url_for("space_view", space_id=space_id))

    @app.route("/spaces/<int:space_id>/delete", methods=["POST"])
    @login_required
    def space_delete(space_id: int):
        _space_owned_or_404(space_id)
        try:
            store.delete_space(_current_user_id_int(), space_id)
            flash("Space deleted. Its invoices were kept.", "success")
        except StoreError:
            flash("Failed to delete space.", "error")
        return redirect(url_for("invoices"))

    # -----------------------------
    # Settings (user invoice config)
    # -----------------------------
    @app.route("/settings", methods=["GET", "POST"])
    @login_required
    def settings():
        if request.method == "POST":
            raw = {k: (request.form.get(k) or "").strip() for k in CONFIG_FIELDS}
            for k in ("default_tax_rate", "default_irpf_rate"):
                raw[k] = raw[k] or "0"
            try:
                config = UserConfig.model_validate(raw)
            except ValidationError as exc:
                flash("Please fix the highlighted fields.", "error")
                return render_template("settings.html", form=raw, errors=form_errors(exc))
            try:
                store.save_config(_current_user_id_int(), config)
            except StoreError:
                flash("Failed to save settings.", "error")
                return render_template("settings.html", form=raw, errors={})
            flash("Settings saved successfully!", "success")
            return redirect(url_for("settings"))

        return render_template("settings.html", form=_user_config().model_dump(), errors={})

    # -----------------------------
    # Insights (scoped)
    # -----------------------------
    @app.route("/insights")
    @login_required
    def insights():
        today = date.today()
        default_start = _months_ago(today, 3)
        start = _parse_date(request.args.get("start"), default_start)
        end = _parse_date(request.args.get("end"), today)

        uid = _current_user_id_int()
        config = _user_config()
        try:
            records = store.list_invoices(uid)
        except StoreError:
            flash("Failed to load insights data.", "error")
            records = []

        try:
            points = aggregate_earnings(build_rows(records, config), start, end)
        except ValueError as exc:
            flash(str(exc), "error")
            points = []

        total = round(sum(p.total for p in points), 2)
        peak = max((p.total for p in points), default=0.0)
        return render_template(
            "insights.html",
            start=start,
            end=end,
            points=points,
            total=total,
            peak=peak,
            currency=config.default_currency,
        )

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
