"""Classes de configuration pour l'application VIN Scan."""

import os
import tempfile
from pathlib import Path

basedir = Path(__file__).resolve().parent


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration de base (production locale, un seul poste)."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-only-insecure-key")

    # Slots durables (scans, users, locs, settings, session)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{basedir / 'data' / 'vinscan.db'}",
    )
    # Stockage des photos, cycle de vie independant des slots
    SQLALCHEMY_BINDS = {
        "blobs": os.environ.get(
            "BLOB_DATABASE_URL",
            f"sqlite:///{basedir / 'data' / 'vinscan_images.db'}",
        ),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")

    # API Gemini
    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

    # Pipeline de scan
    REFINEMENT_TIMEOUT = float(os.environ.get("REFINEMENT_TIMEOUT", "15"))
    SUCCESS_INDICATOR_SECONDS = float(os.environ.get("SUCCESS_INDICATOR_SECONDS", "1.5"))
    # "warn" : le doublon est signale, l'enregistrement passe. "block" : refuse.
    DUPLICATE_POLICY = os.environ.get("DUPLICATE_POLICY", "warn")
    # Confidentialite par defaut : la photo est jetee apres validation
    SAVE_PHOTOS = _env_bool("SAVE_PHOTOS", "false")

    # Restaure l'operateur depuis le slot de session si le cookie est absent
    RESTORE_SESSION = _env_bool("RESTORE_SESSION", "true")

    APP_VERSION = os.environ.get("APP_VERSION", "4.0.0")

    # Journalisation
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class DevConfig(Config):
    """Configuration de developpement."""

    DEBUG = True
    LOG_LEVEL = "DEBUG"
    CORS_ORIGINS = ["*"]


class TestConfig(Config):
    """Configuration de test."""

    TESTING = True
    # Fichiers temporaires au lieu de :memory: car le raffinement tourne
    # dans un ThreadPoolExecutor et SQLite in-memory ne partage pas les
    # connexions entre threads.
    _test_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    _test_blob_db = tempfile.NamedTemporaryFile(suffix="_images.db", delete=False)
    SQLALCHEMY_DATABASE_URI = f"sqlite:///{_test_db.name}"
    SQLALCHEMY_BINDS = {"blobs": f"sqlite:///{_test_blob_db.name}"}
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"check_same_thread": False},
    }
    GEMINI_API_KEY = "test-key"
    REFINEMENT_TIMEOUT = 0.5
    SUCCESS_INDICATOR_SECONDS = 0.1
    RESTORE_SESSION = False
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    LOG_LEVEL = "DEBUG"


config_by_name = {
    "development": DevConfig,
    "testing": TestConfig,
    "production": Config,
}
