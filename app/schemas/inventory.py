"""Schemas Pydantic du domaine inventaire : VehicleAnalysis et InventoryRecord.

Les cles JSON (slots et API) gardent le camelCase historique
(``yearOfManufacture``, ``inventoryNotes``...) via un alias generator.
"""

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

FuelType = Literal["Essence", "Diesel", "Hybride", "Électrique", "N/A"]
FUEL_TYPES: tuple[str, ...] = ("Essence", "Diesel", "Hybride", "Électrique", "N/A")

# Valeurs sentinelles
UNKNOWN = "INCONNU"
PENDING = "ANALYSE..."
BLANK = "..."
SENTINELS = frozenset({UNKNOWN, PENDING, BLANK, "", "N/A"})

_FUEL_ALIASES = {
    "essence": "Essence",
    "gasoline": "Essence",
    "petrol": "Essence",
    "diesel": "Diesel",
    "gazole": "Diesel",
    "hybride": "Hybride",
    "hybrid": "Hybride",
    "électrique": "Électrique",
    "electrique": "Électrique",
    "electric": "Électrique",
}

_VIN_RE = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")


def normalize_vin(raw: str | None) -> str:
    """Nettoie un VIN lu par OCR : garde A-Z/0-9, en majuscules."""
    return re.sub(r"[^A-Z0-9]", "", str(raw or "").upper())


def is_valid_vin(vin: str | None) -> bool:
    """17 caracteres, sans I, O ni Q (ISO 3779)."""
    return bool(vin) and bool(_VIN_RE.match(vin))


def coerce_fuel_type(value) -> str:
    """Ramene une energie libre a l'une des valeurs connues, sinon N/A."""
    if value in FUEL_TYPES:
        return value
    return _FUEL_ALIASES.get(str(value or "").strip().lower(), "N/A")


class CamelModel(BaseModel):
    """Base commune : alias camelCase, population par nom ou alias."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class VehicleAnalysis(CamelModel):
    """Attributs du vehicule, tous en best-effort."""

    brand: str = UNKNOWN
    model: str = UNKNOWN
    vin: str = ""
    fuel_type: FuelType = "N/A"
    motorization: str = ""
    year_of_manufacture: str = ""
    registration_year: str = ""
    license_plate: str = ""
    inventory_notes: str = ""
    color: str = ""
    deduction_reasoning: str = ""
    market_value_min: float | None = None
    market_value_max: float | None = None
    market_value_justification: str | None = None

    @field_validator("brand", "model", mode="before")
    @classmethod
    def _default_unknown(cls, v):
        text = str(v or "").strip()
        return text or UNKNOWN

    @field_validator("fuel_type", mode="before")
    @classmethod
    def _coerce_fuel(cls, v):
        return coerce_fuel_type(v)

    @field_validator(
        "vin",
        "motorization",
        "year_of_manufacture",
        "registration_year",
        "license_plate",
        "inventory_notes",
        "color",
        "deduction_reasoning",
        mode="before",
    )
    @classmethod
    def _as_text(cls, v):
        return "" if v is None else str(v)


class InventoryRecord(CamelModel):
    """Scan valide, tel que stocke dans le slot ``v4_scans``."""

    id: str
    timestamp: int = Field(..., description="Epoch en millisecondes")
    image_url: str = ""
    analysis: VehicleAnalysis
    user_id: str
    user_name: str = ""
    location_id: str = ""
    location: str = ""
    scan_duration: float | None = None
    deep_analysis_duration: float | None = None
    analysis_report: str | None = None

    def to_json(self) -> dict:
        # Les photos ne sont jamais serialisees avec la fiche
        data = super().to_json()
        data["imageUrl"] = ""
        return data
