from pathlib import Path

import pdf_service
from conftest import register


def invoice_form(**overrides):
    form = {
        "action": "save",
        "invoiceNumber": "INV-001",
        "invoiceDate": "2024-05-01",
        "dueDate": "2024-05-31",
        "clientName": "Acme Corp",
        "clientEmail": "billing@acme.test",
        "clientAddress": "1 Main St",
        "currency": "USD",
        "taxRate": "21",
        "irpfRate": "15",
        "notes": "Thanks!",
        "services-0-title": "Consulting",
        "services-0-description": "",
        "services-0-rate": "100",
        "services-0-subtasks-0-title": "Workshop",
        "services-0-subtasks-0-description": "",
        "services-0-subtasks-0-hours": "10",
    }
    form.update(overrides)
    return form


def create_invoice(client, **overrides):
    return client.post("/invoices/new", data=invoice_form(**overrides))


def test_pages_require_login(client):
    resp = client.get("/invoices")
    assert resp.status_code == 302
    assert "/login" in resp.headers["Location"]


def test_register_login_logout(client):
    resp = register(client)
    assert b"Invoices" in resp.data

    client.get("/logout")
    resp = client.post("/login", data={"username": "alice", "password": "wrong"}, follow_redirects=True)
    assert b"Invalid username or password." in resp.data

    resp = client.post("/login", data={"username": "alice", "password": "secret123"})
    assert resp.status_code == 302


def test_register_rejects_mismatched_passwords(client):
    resp = client.post("/register", data={"username": "carol", "password": "secret123", "confirm": "nope12"})
    assert b"Passwords do not match." in resp.data


def test_new_form_suggests_next_number(auth_client):
    assert b'value="INV-001"' in auth_client.get("/invoices/new").data
    create_invoice(auth_client)
    assert b'value="INV-002"' in auth_client.get("/invoices/new").data


def test_create_invoice_stores_pdf(auth_client, app):
    resp = create_invoice(auth_client)
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/invoices/1")

    page = auth_client.get("/invoices/1")
    assert page.status_code == 200
    assert b"Acme Corp" in page.data
    assert b"$1,028.50" in page.data

    stored = Path(app.config["EXPORTS_DIR"]) / "1" / "1" / "invoice-INV-001.pdf"
    assert stored.read_bytes().startswith(b"%PDF")

    download = auth_client.get("/invoices/1/pdf/download")
    assert download.status_code == 200
    assert download.mimetype == "application/pdf"
    assert "invoice-INV-001.pdf" in download.headers["Content-Disposition"]


def test_invalid_form_shows_field_errors(auth_client):
    resp = create_invoice(auth_client, clientName="", **{"services-0-subtasks-0-hours": "0"})
    assert resp.status_code == 200
    assert b"Please fix the highlighted fields." in resp.data
    assert b"This field is required" in resp.data
    assert b"Must be greater than 0" in resp.data
    assert auth_client.get("/invoices/1").status_code == 404


def test_row_actions_add_and_remove_rows(auth_client):
    resp = create_invoice(auth_client, action="add_service")
    assert b'name="services-1-title"' in resp.data

    resp = create_invoice(auth_client, action="add_subtask-0")
    assert b'name="services-0-subtasks-1-hours"' in resp.data


def test_preview_then_save_round_trip(auth_client):
    resp = create_invoice(auth_client, action="preview")
    assert resp.status_code == 200
    assert b"Invoice Preview" in resp.data
    assert b"IRPF (-15%)" in resp.data

    payload = '{"invoiceNumber": "INV-001", "invoiceDate": "2024-05-01", "dueDate": "2024-05-31", ' \
              '"clientName": "Acme Corp", "clientEmail": "billing@acme.test", "clientAddress": "1 Main St", ' \
              '"services": [{"title": "Consulting", "rate": 100, "subtasks": [{"title": "Workshop", "hours": 10}]}]}'
    resp = auth_client.post("/invoices/new", data={"payload": payload, "action": "save"})
    assert resp.status_code == 302

    pdf = auth_client.post("/invoices/preview/pdf", data={"payload": payload})
    assert pdf.status_code == 200
    assert pdf.data.startswith(b"%PDF")


def test_edit_updates_invoice(auth_client):
    create_invoice(auth_client)
    resp = auth_client.post("/invoices/1/edit", data=invoice_form(clientName="Globex"))
    assert resp.status_code == 302
    assert b"Globex" in auth_client.get("/invoices/1").data


def test_delete_requires_typed_invoice_number(auth_client, app):
    create_invoice(auth_client)

    resp = auth_client.post("/invoices/1/delete", data={"confirm_number": "INV-00"}, follow_redirects=True)
    assert b"does not match" in resp.data
    assert auth_client.get("/invoices/1").status_code == 200

    resp = auth_client.post("/invoices/1/delete", data={"confirm_number": "INV-001"})
    assert resp.status_code == 302
    assert auth_client.get("/invoices/1").status_code == 404
    assert not (Path(app.config["EXPORTS_DIR"]) / "1" / "1" / "invoice-INV-001.pdf").exists()


def test_other_users_cannot_reach_invoice(auth_client, app):
    create_invoice(auth_client)

    other = app.test_client()
    register(other, username="bob")
    assert other.get("/invoices/1").status_code == 404
    assert other.post("/invoices/1/delete", data={"confirm_number": "INV-001"}).status_code == 404
    assert b"Acme Corp" not in other.get("/invoices").data


def test_payment_status_and_dashboard_filter(auth_client):
    create_invoice(auth_client)
    create_invoice(auth_client, invoiceNumber="INV-002", clientName="Globex")

    resp = auth_client.post("/invoices/1/status", data={"status": "paid"}, follow_redirects=True)
    assert b"Invoice marked as paid." in resp.data

    paid = auth_client.get("/invoices?status=paid").data
    assert b"Acme Corp" in paid and b"Globex" not in paid

    found = auth_client.get("/invoices?q=globex").data
    assert b"Globex" in found and b"Acme Corp" not in found


def test_spaces_flow(auth_client):
    create_invoice(auth_client)
    resp = auth_client.post("/spaces", data={"name": "Retainers", "color": "#10b981"})
    assert resp.status_code == 302

    auth_client.post("/invoices/1/move", data={"space_id": "1"})
    space_page = auth_client.get("/spaces/1").data
    assert b"Retainers" in space_page and b"INV-001" in space_page

    auth_client.post("/spaces/1/delete")
    assert auth_client.get("/spaces/1").status_code == 404
    assert auth_client.get("/invoices/1").status_code == 200


def test_settings_are_saved_and_validated(auth_client):
    resp = auth_client.post(
        "/settings",
        data={"company_name": "Alice Studio", "default_currency": "eur", "default_tax_rate": "21"},
        follow_redirects=True,
    )
    assert b"Settings saved successfully!" in resp.data
    assert b'value="Alice Studio"' in resp.data
    assert b'value="EUR"' in resp.data

    resp = auth_client.post("/settings", data={"default_tax_rate": "150"})
    assert b"Must be at most 100" in resp.data


def test_insights_rejects_inverted_range(auth_client):
    create_invoice(auth_client)
    resp = auth_client.get("/insights?start=2024-06-01&end=2024-01-01")
    assert b"Start date cannot be after end date." in resp.data

    resp = auth_client.get("/insights?start=2024-01-01&end=2024-12-31")
    assert b"$1,028.50" in resp.data
    assert b"not converted" in resp.data


def break_rasterizer(monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("rasterizer crashed")

    monkeypatch.setattr(pdf_service, "rasterize_preview", boom)


def stored_pdf(app, number="INV-001", invoice_id=1, user_id=1):
    return Path(app.config["EXPORTS_DIR"]) / str(user_id) / str(invoice_id) / f"invoice-{number}.pdf"


EDIT_PAYLOAD = (
    '{"invoiceNumber": "INV-001", "invoiceDate": "2024-05-01", "dueDate": "2024-05-31", '
    '"clientName": "Globex", "clientEmail": "billing@acme.test", "clientAddress": "1 Main St", '
    '"services": [{"title": "Consulting", "rate": 100, "subtasks": [{"title": "Workshop", "hours": 10}]}]}'
)


def test_failed_preview_download_keeps_editing_the_same_invoice(auth_client, monkeypatch):
    create_invoice(auth_client)
    break_rasterizer(monkeypatch)

    resp = auth_client.post("/invoices/preview/pdf", data={"payload": EDIT_PAYLOAD, "invoice_id": "1"})
    assert resp.status_code == 200
    assert b"PDF generation failed. Please try again." in resp.data
    assert b'action="/invoices/1/edit"' in resp.data
    assert b'action="/invoices/new"' not in resp.data
    assert b'name="invoice_id" value="1"' in resp.data

    auth_client.post("/invoices/1/edit", data={"payload": EDIT_PAYLOAD, "action": "save"})
    assert auth_client.get("/invoices/2").status_code == 404
    assert b"Globex" in auth_client.get("/invoices/1").data


def test_failed_preview_download_rejects_foreign_invoice(auth_client, app, monkeypatch):
    break_rasterizer(monkeypatch)
    other = app.test_client()
    register(other, username="bob")
    create_invoice(other)

    resp = auth_client.post("/invoices/preview/pdf", data={"payload": EDIT_PAYLOAD, "invoice_id": "1"})
    assert resp.status_code == 404


def test_export_streams_a_fresh_pdf(auth_client):
    create_invoice(auth_client)
    resp = auth_client.get("/invoices/1/pdf/export")
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert resp.data.startswith(b"%PDF")
    assert "invoice-INV-001.pdf" in resp.headers["Content-Disposition"]


def test_export_failure_flashes_and_returns_to_invoice(auth_client, monkeypatch):
    create_invoice(auth_client)
    break_rasterizer(monkeypatch)

    resp = auth_client.get("/invoices/1/pdf/export")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/invoices/1")
    assert b"PDF generation failed. Please try again." in auth_client.get("/invoices/1").data


def test_generate_recreates_missing_pdf(auth_client, app):
    create_invoice(auth_client)
    stored_pdf(app).unlink()

    resp = auth_client.post("/invoices/1/pdf/generate", follow_redirects=True)
    assert b"PDF generated." in resp.data
    assert stored_pdf(app).read_bytes().startswith(b"%PDF")


def test_stored_pdf_url_is_served_without_login(auth_client, app):
    create_invoice(auth_client)

    anonymous = app.test_client()
    resp = anonymous.get("/files/1/1/invoice-INV-001.pdf")
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert resp.data == stored_pdf(app).read_bytes()


def test_pdf_failure_keeps_invoice_saved(auth_client, app, monkeypatch):
    break_rasterizer(monkeypatch)
    resp = create_invoice(auth_client)
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/invoices/1")

    page = auth_client.get("/invoices/1")
    assert page.status_code == 200
    assert b"Invoice saved, but PDF generation failed." in page.data
    assert b"Generate PDF" in page.data
    assert not stored_pdf(app).exists()


def test_renumbering_removes_previous_pdf(auth_client, app):
    create_invoice(auth_client)
    assert stored_pdf(app).exists()

    auth_client.post("/invoices/1/edit", data=invoice_form(invoiceNumber="INV-100"))
    assert not stored_pdf(app).exists()
    assert stored_pdf(app, number="INV-100").read_bytes().startswith(b"%PDF")

    download = auth_client.get("/invoices/1/pdf/download")
    assert "invoice-INV-100.pdf" in download.headers["Content-Disposition"]
