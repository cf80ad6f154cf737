"""Shared fixtures: an app on a throwaway SQLite database and a sample invoice payload."""

import pytest

from app import create_app
from config import Config
from invoice_schema import load_invoice


@pytest.fixture
def sample_payload() -> dict:
    """Stored-form (camelCase) invoice with two services."""
    return {
        "schemaVersion": 2,
        "invoiceNumber": "INV-007",
        "invoiceDate": "2024-03-01",
        "dueDate": "2024-03-31",
        "clientName": "Acme Corp",
        "clientEmail": "billing@acme.test",
        "clientAddress": "1 Main St\nSpringfield",
        "currency": "EUR",
        "taxRate": 21,
        "irpfRate": 15,
        "services": [
            {
                "title": "Design",
                "description": "Landing page",
                "rate": 50,
                "subtasks": [
                    {"title": "Wireframes", "hours": 4},
                    {"title": "Mockups", "description": "Two rounds", "hours": 6},
                ],
            },
            {
                "title": "Development",
                "rate": 100,
                "subtasks": [{"title": "Build", "hours": 5}],
            },
        ],
        "notes": "Thank you for your business!",
    }


@pytest.fixture
def sample_invoice(sample_payload):
    return load_invoice(sample_payload)


@pytest.fixture
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = "test"
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{(tmp_path / 'test.db').as_posix()}"
        EXPORTS_DIR = (tmp_path / "exports").as_posix()
        APP_BASE_URL = "http://localhost"
        PDF_SCALE = 1

    return create_app(TestConfig)


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username="alice", password="secret123"):
    return client.post(
        "/register",
        data={"username": username, "password": password, "confirm": password},
        follow_redirects=True,
    )


@pytest.fixture
def auth_client(client):
    register(client)
    return client
