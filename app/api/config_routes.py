"""Routes de configuration : parametres, lieux d'inventaire, operateurs."""

import logging

from flask_login import current_user

from app.api import api_bp
from app.api.helpers import parse_body
from app.schemas.common import ok
from app.schemas.requests import LocationCreate, OperatorCreate, SettingsUpdate
from app.services.permissions import delete_operator, provision_operator, require_capability
from app.state import get_state

logger = logging.getLogger(__name__)


# ── Parametres ──────────────────────────────────────────────────


@api_bp.route("/config/settings", methods=["GET"])
@require_capability("configGlobal")
def get_settings():
    return ok(get_state().settings.to_json())


@api_bp.route("/config/settings", methods=["PUT"])
@require_capability("configGlobal", "configCompany")
def update_settings():
    """Seuil de doublon, objectif mensuel, identite de l'entreprise, langue."""
    req = parse_body(SettingsUpdate)
    settings = get_state().update_settings(**req.model_dump(exclude_none=True))
    logger.info("Parametres mis a jour par '%s'", current_user.username)
    return ok(settings.to_json())


# ── Lieux ───────────────────────────────────────────────────────


@api_bp.route("/config/locations", methods=["GET"])
@require_capability("configGlobal", "configLocations")
def list_locations():
    return ok([loc.to_json() for loc in get_state().locations])


@api_bp.route("/config/locations", methods=["POST"])
@require_capability("configGlobal", "configLocations")
def create_location():
    req = parse_body(LocationCreate)
    location = get_state().add_location(req.name)
    logger.info("Lieu '%s' ajoute", location.name)
    return ok(location.to_json(), status=201)


@api_bp.route("/config/locations/<location_id>", methods=["DELETE"])
@require_capability("configGlobal", "configLocations")
def delete_location(location_id):
    """Les scans deja valides gardent le nom du lieu supprime."""
    get_state().remove_location(location_id)
    return ok({"id": location_id})


# ── Operateurs ──────────────────────────────────────────────────


@api_bp.route("/config/users", methods=["GET"])
@require_capability("configGlobal", "configUsers")
def list_operators():
    return ok([op.public_json() for op in get_state().operators])


@api_bp.route("/config/users", methods=["POST"])
@require_capability("configGlobal", "configUsers")
def create_operator():
    """Nouvel operateur : capacites du role, puis surcharges eventuelles."""
    req = parse_body(OperatorCreate)
    operator = provision_operator(
        get_state(),
        name=req.name,
        username=req.username,
        secret=req.password,
        role=req.role,
        overrides=req.permissions,
    )
    return ok(operator.public_json(), status=201)


@api_bp.route("/config/users/<operator_id>", methods=["DELETE"])
@require_capability("configGlobal", "configUsers")
def remove_operator(operator_id):
    delete_operator(get_state(), operator_id)
    return ok({"id": operator_id})
