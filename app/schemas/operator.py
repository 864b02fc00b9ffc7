"""Schemas Operator et Permissions -- operateurs stockes dans le slot ``v4_users``."""

from typing import Literal

from flask_login import UserMixin

from app.schemas.inventory import CamelModel

Role = Literal["admin", "agent"]

SEED_ADMIN_ID = "1"


class Permissions(CamelModel):
    """Les 8 capacites independantes d'un operateur."""

    dashboard: bool = False
    scanner: bool = False
    history: bool = False
    chat: bool = False
    config_global: bool = False
    config_company: bool = False
    config_locations: bool = False
    config_users: bool = False

    def allows(self, capability: str) -> bool:
        """Accepte le nom python (config_users) ou l'alias (configUsers)."""
        for name, field in type(self).model_fields.items():
            if capability in (name, field.alias):
                return bool(getattr(self, name))
        raise KeyError(f"Capacite inconnue: {capability}")


class Operator(UserMixin, CamelModel):
    """Operateur de l'application (admin ou agent)."""

    id: str
    username: str
    password: str = ""
    name: str
    role: Role = "agent"
    avatar: str = "default"
    permissions: Permissions = Permissions()

    @property
    def is_seed_admin(self) -> bool:
        return self.id == SEED_ADMIN_ID

    def public_json(self) -> dict:
        """Representation API, sans le secret."""
        return self.model_dump(by_alias=True, mode="json", exclude={"password"})

    def __repr__(self):
        return f"<Operator {self.username} ({self.role})>"
