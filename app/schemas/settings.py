"""Schemas Settings et Location."""

from typing import Literal

from pydantic import Field

from app.schemas.inventory import CamelModel

AppLanguage = Literal["fr", "ar"]


class Settings(CamelModel):
    """Parametres globaux (singleton), slot ``v4_settings``."""

    duplicate_threshold_hours: int = Field(24, ge=0)
    monthly_target: int = Field(100, ge=1)
    company_name: str = "AUTO EXPERT MAROC"
    app_name: str = "VIN SCAN PRO"
    language: AppLanguage = "fr"


class Location(CamelModel):
    """Lieu d'inventaire (depot, parc, agence)."""

    id: str
    name: str


DEFAULT_LOCATIONS = (Location(id="default-1", name="SIÈGE / DÉPÔT"),)
