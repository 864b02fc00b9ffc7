"""Routes API generales : sante, session, navigation, tableau de bord, chat."""

import logging

from flask import current_app
from flask_login import current_user, login_required, login_user, logout_user

from app.api import api_bp
from app.api.helpers import parse_body
from app.errors import ExtractionError
from app.extensions import limiter
from app.schemas.common import fail, ok
from app.schemas.requests import ChatRequest, LoginRequest, ProfileUpdate
from app.services import gemini_service
from app.services.history import dashboard_figures
from app.services.permissions import authenticate, navigation_for, require_capability
from app.services.pipeline import get_pipeline
from app.state import get_state

logger = logging.getLogger(__name__)


def _session_payload(operator) -> dict:
    state = get_state()
    return {
        "user": operator.public_json(),
        "navigation": navigation_for(operator),
        "settings": state.settings.to_json(),
    }


@api_bp.route("/health", methods=["GET"])
def health():
    """Point de controle de sante de l'API."""
    return ok(
        {
            "status": "ok",
            "version": current_app.config.get("APP_VERSION", "0.0.0"),
            "geminiConfigured": bool(current_app.config.get("GEMINI_API_KEY")),
        }
    )


# ── Session ─────────────────────────────────────────────────────


@api_bp.route("/auth/login", methods=["POST"])
@limiter.limit("10/minute")
def login():
    """Connexion par identifiant (insensible a la casse) et mot de passe."""
    req = parse_body(LoginRequest)
    state = get_state()
    operator = authenticate(state, req.username, req.password)
    login_user(operator)
    state.set_session(operator.id)
    logger.info("Operateur '%s' connecte", operator.username)
    return ok(_session_payload(operator))


@api_bp.route("/auth/logout", methods=["POST"])
@login_required
def logout():
    username = current_user.username
    logout_user()
    get_state().set_session(None)
    logger.info("Operateur '%s' deconnecte", username)
    return ok()


@api_bp.route("/auth/me", methods=["GET"])
@login_required
def me():
    return ok(_session_payload(current_user))


@api_bp.route("/navigation", methods=["GET"])
@login_required
def navigation():
    """Ecrans accessibles a l'operateur connecte."""
    return ok({"screens": navigation_for(current_user)})


@api_bp.route("/profile", methods=["PATCH"])
@login_required
def update_profile():
    """Nom affiche et avatar de l'operateur connecte."""
    req = parse_body(ProfileUpdate)
    changes = req.model_dump(exclude_none=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    state = get_state()
    updated = current_user.model_copy(update=changes)
    state.replace_operator(updated)
    return ok(updated.public_json())


# ── Tableau de bord et chat ─────────────────────────────────────


@api_bp.route("/dashboard", methods=["GET"])
@require_capability("dashboard")
def dashboard():
    state = get_state()
    return ok(dashboard_figures(state.records, state.settings))


@api_bp.route("/chat", methods=["POST"])
@require_capability("chat")
@limiter.limit("30/minute")
def chat():
    """Question libre a l'expert, avec l'historique de la conversation."""
    req = parse_body(ChatRequest)
    history = [turn.model_dump() for turn in req.history]
    try:
        reply = gemini_service.chat_with_expert(history, req.message)
    except ExtractionError as exc:
        logger.warning("Chat indisponible: %s", exc)
        return fail("CHAT_UNAVAILABLE", "Service de chat temporairement indisponible.", 503)
    return ok({"role": "model", "text": reply})


# ── Remise a zero ───────────────────────────────────────────────


@api_bp.route("/reset", methods=["POST"])
@login_required
def reset_local_state():
    """Issue de secours : efface slots et photos, recharge les valeurs par defaut."""
    username = current_user.username
    logout_user()
    get_pipeline().discard_all()
    current_app.extensions["blob_store"].clear()
    get_state().reset()
    logger.warning("Donnees locales reinitialisees par '%s'", username)
    return ok(message="Donnees locales effacees.")
