"""Shared pytest fixtures for VIN Scan tests."""

import time
from unittest.mock import patch

import pytest

from app import create_app
from app.extensions import db as _db
from app.schemas.inventory import InventoryRecord, VehicleAnalysis
from app.services.permissions import provision_operator
from app.state import get_state


@pytest.fixture()
def app(tmp_path):
    """Application de test, bases SQLite propres a chaque test."""
    app = create_app(
        "testing",
        overrides={
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'vinscan.db'}",
            "SQLALCHEMY_BINDS": {"blobs": f"sqlite:///{tmp_path / 'vinscan_images.db'}"},
        },
    )
    yield app
    app.extensions["scan_pipeline"].shutdown()
    app.extensions["blob_store"].shutdown()
    with app.app_context():
        _db.session.remove()
        for engine in _db.engines.values():
            engine.dispose()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def db(app):
    """Database session for a test -- rolls back after each test."""
    with app.app_context():
        yield _db
        _db.session.rollback()


@pytest.fixture(autouse=True)
def _no_gemini_network():
    """Empeche tout appel reseau vers Gemini dans les tests.

    Sans cle, le service leve ``ExtractionError("CLÉ API INVALIDE...")``.
    Les tests qui mockent ``_get_client`` ou les fonctions d'analyse ne
    sont pas affectes car leur patch local prend precedence.
    """
    with patch("app.services.gemini_service._get_api_key", return_value=""):
        yield


def login(client, username="admin", password="1234"):
    return client.post("/api/auth/login", json={"username": username, "password": password})


@pytest.fixture()
def admin_client(app):
    """Client connecte avec l'administrateur initial."""
    client = app.test_client()
    resp = login(client)
    assert resp.status_code == 200
    return client


@pytest.fixture()
def operator_client(app):
    """Fabrique : cree un operateur (role + surcharges) et retourne son client connecte."""

    def _make(username="agent", role="agent", overrides=None):
        with app.app_context():
            provision_operator(
                get_state(),
                name=f"Operateur {username}",
                username=username,
                secret="secret",
                role=role,
                overrides=overrides,
            )
        client = app.test_client()
        resp = login(client, username, "secret")
        assert resp.status_code == 200
        return client

    return _make


@pytest.fixture()
def make_record():
    """Fabrique de fiches d'inventaire."""
    counter = iter(range(1, 10_000))

    def _make(
        vin="",
        brand="RENAULT",
        model="CLIO",
        timestamp=None,
        user_id="1",
        location_id="default-1",
        **analysis,
    ):
        n = next(counter)
        return InventoryRecord(
            id=f"S-test-{n}",
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
            analysis=VehicleAnalysis(vin=vin, brand=brand, model=model, **analysis),
            user_id=user_id,
            user_name="Administrateur",
            location_id=location_id,
            location="SIÈGE / DÉPÔT",
        )

    return _make
