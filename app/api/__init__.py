"""Blueprint API -- points d'acces REST consommes par l'interface du poste."""

from flask import Blueprint

api_bp = Blueprint("api", __name__)

from app.api import (  # noqa: E402, F401
    config_routes,
    errors,
    inventory_routes,
    routes,
    scanner_routes,
)
