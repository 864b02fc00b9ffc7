"""Routes de l'historique : liste filtree, fiche, enrichissements, export CSV."""

import logging
import time
from datetime import date

from flask import Response, current_app, request

from app.api import api_bp
from app.api.helpers import encode_image
from app.errors import ValidationError
from app.extensions import limiter
from app.schemas.common import ok
from app.schemas.inventory import VehicleAnalysis, is_valid_vin
from app.services import gemini_service
from app.services.csv_export import export_csv, export_filename
from app.services.duplicate_guard import flag_duplicates
from app.services.history import filter_records
from app.services.permissions import require_capability
from app.state import get_state

logger = logging.getLogger(__name__)


def _parse_date(name: str) -> date | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Date invalide pour '{name}' (AAAA-MM-JJ attendu).") from exc


def _blob_store():
    return current_app.extensions["blob_store"]


@api_bp.route("/inventory", methods=["GET"])
@require_capability("history")
def list_inventory():
    """Historique filtre (recherche, operateur, lieu, dates), doublons marques."""
    state = get_state()
    records = filter_records(
        state.records,
        search=request.args.get("q"),
        user_id=request.args.get("user_id"),
        location_id=request.args.get("location_id"),
        start=_parse_date("start"),
        end=_parse_date("end"),
    )
    flagged = flag_duplicates(state.records, state.settings.duplicate_threshold_hours)
    if request.args.get("duplicates") in ("1", "true"):
        records = [r for r in records if r.id in flagged]

    items = []
    for record in records:
        item = record.to_json()
        item["isDuplicate"] = record.id in flagged
        items.append(item)
    return ok({"items": items, "count": len(items), "total": len(state.records)})


@api_bp.route("/inventory/export.csv", methods=["GET"])
@require_capability("history")
def export_inventory():
    """Export CSV de tout l'inventaire (UTF-8 avec BOM, point-virgule)."""
    content = export_csv(get_state().records)
    return Response(
        content.encode("utf-8"),
        content_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename()}"',
        },
    )


@api_bp.route("/inventory/<record_id>", methods=["GET"])
@require_capability("history")
def get_inventory_record(record_id):
    return ok(get_state().get_record(record_id).to_json())


@api_bp.route("/inventory/<record_id>/image", methods=["GET"])
@require_capability("history")
def get_inventory_image(record_id):
    """Photo du scan ; absente = ``image: null``, jamais une erreur."""
    get_state().get_record(record_id)
    stored = _blob_store().get_async(record_id).result()
    image = encode_image(stored.data, stored.mime_type) if stored else None
    return ok({"id": record_id, "image": image})


@api_bp.route("/inventory/<record_id>/report", methods=["POST"])
@require_capability("history")
@limiter.limit("30/minute")
def generate_report(record_id):
    """Rapport d'expertise du VIN, mis en cache sur la fiche."""
    state = get_state()
    record = state.get_record(record_id)
    if record.analysis_report:
        return ok({"report": record.analysis_report, "cached": True})

    vin = record.analysis.vin
    if not is_valid_vin(vin):
        raise ValidationError("Un VIN complet (17 caracteres) est requis pour le rapport.")

    started = time.monotonic()
    report = gemini_service.get_vin_analysis_report(vin)
    record = state.update_record(
        record_id,
        analysis_report=report,
        deep_analysis_duration=round(time.monotonic() - started, 2),
    )
    logger.info("Rapport genere pour %s (%s)", record_id, vin)
    return ok({"report": report, "cached": False, "record": record.to_json()})


@api_bp.route("/inventory/<record_id>/estimate", methods=["POST"])
@require_capability("history")
@limiter.limit("30/minute")
def estimate_value(record_id):
    """Fourchette de valeur marche, fusionnee dans l'analyse de la fiche.

    Une fourchette deja connue est renvoyee telle quelle, sauf ``?refresh=1``.
    """
    state = get_state()
    record = state.get_record(record_id)
    refresh = request.args.get("refresh") in ("1", "true")
    if record.analysis.market_value_min is not None and not refresh:
        return ok({**record.to_json(), "cached": True})

    estimation = gemini_service.estimate_market_value(record.analysis.to_json())
    analysis = VehicleAnalysis.model_validate({**record.analysis.to_json(), **estimation})
    record = state.update_record(record_id, analysis=analysis)
    logger.info(
        "Estimation %s: %s-%s MAD", record_id, analysis.market_value_min, analysis.market_value_max
    )
    return ok({**record.to_json(), "cached": False})


@api_bp.route("/inventory/<record_id>", methods=["DELETE"])
@require_capability("history", admin_only=True)
def delete_inventory_record(record_id):
    """Suppression explicite : la photo associee part avec la fiche."""
    state = get_state()
    state.get_record(record_id)
    _blob_store().delete_async(record_id).result()
    state.remove_record(record_id)
    logger.info("Scan %s supprime", record_id)
    return ok({"id": record_id})


@api_bp.route("/inventory", methods=["DELETE"])
@require_capability("history", admin_only=True)
def clear_inventory():
    state = get_state()
    ids = state.clear_records()
    _blob_store().clear()
    logger.warning("Historique vide (%d scans)", len(ids))
    return ok({"deleted": len(ids)})
