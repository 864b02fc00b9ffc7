"""Session et capacites : authentification, navigation, garde des routes.

Le role (admin/agent) ne sert qu'a pre-remplir les capacites d'un nouvel
operateur ; les verifications lisent toujours les capacites stockees.
"""

import base64
import logging
from functools import wraps

from flask_login import current_user, login_required

from app.errors import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    ProtectedOperatorError,
    ValidationError,
)
from app.schemas.operator import Operator, Permissions
from app.state import InventoryState, new_id

logger = logging.getLogger(__name__)

# Table declarative (ecran, capacite requise), filtree par operateur
NAVIGATION: tuple[tuple[str, str], ...] = (
    ("dashboard", "dashboard"),
    ("scanner", "scanner"),
    ("history", "history"),
    ("chat", "chat"),
    ("config", "configGlobal"),
)

LOGIN_REJECTED = "Identifiants incorrects."


def encode_secret(secret: str) -> str:
    """Encodage base64 du secret (pas un hachage, pas de securite reelle)."""
    return base64.b64encode(secret.encode("utf-8")).decode("ascii")


def default_permissions(role: str) -> Permissions:
    """Profil par defaut : admin = tout, agent = scanner + historique."""
    if role == "admin":
        return Permissions(**{name: True for name in Permissions.model_fields})
    return Permissions(scanner=True, history=True)


def navigation_for(operator: Operator) -> list[str]:
    return [screen for screen, capability in NAVIGATION if operator.permissions.allows(capability)]


def authenticate(state: InventoryState, username: str, secret: str) -> Operator:
    """Correspondance exacte (identifiant normalise, secret encode).

    Raises:
        AuthenticationError: Meme message pour identifiant inconnu ou secret faux.
    """
    operator = state.find_by_username(username)
    if operator is None or operator.password != encode_secret(secret):
        logger.info("Connexion refusee pour '%s'", username.strip().lower())
        raise AuthenticationError(LOGIN_REJECTED)
    return operator


def provision_operator(
    state: InventoryState,
    name: str,
    username: str,
    secret: str,
    role: str = "agent",
    overrides: dict[str, bool] | None = None,
) -> Operator:
    """Cree un operateur depuis le profil du role, capacites surchargeables."""
    key = username.strip().lower()
    if not key or not name.strip() or not secret:
        raise ValidationError("Nom, identifiant et mot de passe sont obligatoires.")
    if state.find_by_username(key) is not None:
        raise ValidationError(f"L'identifiant '{key}' existe deja.")

    permissions = default_permissions(role).model_dump()
    for capability, allowed in (overrides or {}).items():
        field = _capability_field(capability)
        permissions[field] = bool(allowed)

    operator_id = new_id()
    while state.find_operator(operator_id) is not None:
        operator_id = str(int(operator_id) + 1)

    operator = Operator(
        id=operator_id,
        username=key,
        password=encode_secret(secret),
        name=name.strip(),
        role=role,
        avatar="default",
        permissions=Permissions(**permissions),
    )
    state.add_operator(operator)
    logger.info("Operateur '%s' cree (role=%s)", key, role)
    return operator


def delete_operator(state: InventoryState, operator_id: str) -> None:
    """Supprime un operateur ; l'administrateur initial est intouchable."""
    operator = state.find_operator(operator_id)
    if operator is not None and operator.is_seed_admin:
        logger.warning("Suppression de l'administrateur initial refusee")
        raise ProtectedOperatorError("L'administrateur initial ne peut pas etre supprime.")
    if operator is None:
        raise NotFoundError(f"Operateur introuvable: {operator_id}")
    state.remove_operator(operator_id)
    logger.info("Operateur '%s' supprime", operator.username)


def _capability_field(capability: str) -> str:
    for name, field in Permissions.model_fields.items():
        if capability in (name, field.alias):
            return name
    raise ValidationError(f"Capacite inconnue: {capability}")


def require_capability(*capabilities: str, admin_only: bool = False):
    """Decorateur de route : connexion + toutes les capacites demandees."""

    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            missing = [c for c in capabilities if not current_user.permissions.allows(c)]
            if missing:
                raise PermissionDeniedError(f"Acces refuse (capacite requise: {missing[0]}).")
            if admin_only and current_user.role != "admin":
                raise PermissionDeniedError("Action reservee aux administrateurs.")
            return view(*args, **kwargs)

        return wrapped

    return decorator
