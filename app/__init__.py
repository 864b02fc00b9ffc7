"""Fabrique d'application Flask pour VIN Scan."""

import logging
import os
from typing import Any

from flask import Flask, current_app, jsonify

from app.extensions import cors, csrf, db, limiter, login_manager
from app.logging_config import setup_logging
from config import config_by_name

logger = logging.getLogger(__name__)


def create_app(config_name: str | None = None, overrides: dict[str, Any] | None = None) -> Flask:
    """Cree et configure l'application Flask.

    Args:
        config_name: Un parmi 'development', 'testing', 'production'.
                     Par defaut, utilise la variable d'env FLASK_ENV ou 'development'.
        overrides: Cles de configuration a surcharger (tests, outils).
    """
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    if overrides:
        app.config.update(overrides)

    # Garde-fou production : interdire le secret par defaut
    if config_name == "production" and app.config["SECRET_KEY"] == "dev-only-insecure-key":
        raise RuntimeError(
            "SECRET_KEY non definie. Definir la variable d'environnement SECRET_KEY."
        )
    if not app.config.get("GEMINI_API_KEY"):
        logger.warning("GEMINI_API_KEY non definie : les analyses IA echoueront")

    setup_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Initialisation des extensions
    db.init_app(app)
    login_manager.init_app(app)
    cors.init_app(app, origins=app.config["CORS_ORIGINS"], supports_credentials=True)
    csrf.init_app(app)
    limiter.init_app(app)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify(
            {
                "success": False,
                "error": "UNAUTHORIZED",
                "message": "Connexion requise.",
                "data": None,
            }
        ), 401

    # DBHandler : persiste WARNING/ERROR dans app_logs (desactive en tests)
    if not app.config.get("TESTING"):
        from app.logging_db import DBHandler

        db_handler = DBHandler(app=app, level=logging.WARNING)
        db_handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)s in %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logging.getLogger().addHandler(db_handler)

    # Blueprint API (JSON, pas de formulaires : exempte du CSRF)
    from app.api import api_bp

    csrf.exempt(api_bp)
    app.register_blueprint(api_bp, url_prefix="/api")

    # Etat local, stockage des photos, pipeline de scan
    from app.models import ImageBlob, StorageSlot  # noqa: F401
    from app.services.pipeline import EXTENSION_KEY as PIPELINE_KEY
    from app.services.pipeline import ScanPipeline
    from app.state import get_state, init_state
    from app.storage.blob_store import BlobStore

    with app.app_context():
        db.create_all()
        state = init_state(app)

    blob_store = BlobStore()
    app.extensions["blob_store"] = blob_store
    app.extensions[PIPELINE_KEY] = ScanPipeline.from_config(app, state, blob_store)

    # Chargement de l'operateur connecte depuis l'etat local
    @login_manager.user_loader
    def load_user(user_id):
        return get_state().find_operator(user_id)

    @login_manager.request_loader
    def load_user_from_session_slot(_request):
        # Reprise de session apres redemarrage (pointeur v4_session)
        if not current_app.config.get("RESTORE_SESSION"):
            return None
        local = get_state()
        return local.find_operator(local.session_operator_id)

    logger.info("VIN Scan app created with config '%s'", config_name)
    return app
