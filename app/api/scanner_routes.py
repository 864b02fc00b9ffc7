"""Routes du scanner : capture, VIN manuel, revue, validation."""

import logging

from flask import request
from flask_login import current_user

from app.api import api_bp
from app.api.helpers import decode_image, parse_body
from app.extensions import limiter
from app.schemas.common import ok
from app.schemas.requests import CaptureRequest, CommitRequest, DraftUpdate, ManualVinRequest
from app.services.permissions import require_capability
from app.services.pipeline import get_pipeline
from app.state import get_state

logger = logging.getLogger(__name__)

RECENT_SCANS = 5


def _scanner_payload() -> dict:
    state = get_state()
    return {
        "scan": get_pipeline().status(current_user),
        "locations": [loc.to_json() for loc in state.locations],
        "recent": [r.to_json() for r in state.records[:RECENT_SCANS]],
    }


@api_bp.route("/scanner", methods=["GET"])
@require_capability("scanner")
def scanner_status():
    """Etat de la tentative en cours (a interroger pendant le raffinement)."""
    return ok(_scanner_payload())


@api_bp.route("/scanner/capture", methods=["POST"])
@require_capability("scanner")
@limiter.limit("30/minute")
def scanner_capture():
    """Photo -> passe critique. Repond des l'entree en revue."""
    req = parse_body(CaptureRequest)
    image, mime = decode_image(req.image)
    get_pipeline().start_capture(
        current_user, image, mode=req.mode, location_id=req.location_id, mime_type=mime
    )
    return ok(_scanner_payload())


@api_bp.route("/scanner/manual", methods=["POST"])
@require_capability("scanner")
@limiter.limit("30/minute")
def scanner_manual_vin():
    req = parse_body(ManualVinRequest)
    get_pipeline().submit_manual_vin(current_user, req.vin, location_id=req.location_id)
    return ok(_scanner_payload())


@api_bp.route("/scanner/draft", methods=["PATCH"])
@require_capability("scanner")
def scanner_edit_draft():
    """Edition manuelle du brouillon en revue."""
    req = parse_body(DraftUpdate)
    get_pipeline().update_draft(current_user, req.model_dump(exclude_none=True))
    return ok(_scanner_payload())


@api_bp.route("/scanner/discard", methods=["POST"])
@require_capability("scanner")
def scanner_discard():
    get_pipeline().discard(current_user)
    return ok(_scanner_payload())


@api_bp.route("/scanner/commit", methods=["POST"])
@require_capability("scanner")
def scanner_commit():
    """Valide le brouillon ; les doublons sont signales (ou bloques selon la politique)."""
    has_body = request.get_json(silent=True) is not None
    req = parse_body(CommitRequest) if has_body else CommitRequest()
    record, duplicates = get_pipeline().commit(current_user, location_id=req.location_id)
    payload = _scanner_payload()
    payload["record"] = record.to_json()
    payload["duplicate"] = bool(duplicates)
    payload["duplicates"] = [r.id for r in duplicates]
    return ok(payload, status=201)
