"""Schemas Pydantic des corps de requete de l'API."""

from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.inventory import CamelModel
from app.schemas.operator import Role

ScanType = Literal["vin", "carte_grise"]


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CaptureRequest(CamelModel):
    """Photo (base64, avec ou sans en-tete data URL) et mode de scan."""

    image: str = Field(..., min_length=1)
    mode: ScanType = "vin"
    location_id: str | None = None


class ManualVinRequest(CamelModel):
    vin: str = Field(..., min_length=5, max_length=17)
    location_id: str | None = None


class DraftUpdate(CamelModel):
    """Modifications manuelles pendant la revue. Champs absents = inchanges."""

    brand: str | None = None
    model: str | None = None
    vin: str | None = None
    fuel_type: str | None = None
    motorization: str | None = None
    year_of_manufacture: str | None = None
    registration_year: str | None = None
    license_plate: str | None = None
    inventory_notes: str | None = None
    color: str | None = None
    deduction_reasoning: str | None = None


class CommitRequest(CamelModel):
    location_id: str | None = None


class ChatTurn(BaseModel):
    role: Literal["user", "model"]
    text: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: list[ChatTurn] = []


class ProfileUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    avatar: str | None = None


class OperatorCreate(CamelModel):
    name: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    role: Role = "agent"
    permissions: dict[str, bool] | None = None


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1)


class SettingsUpdate(CamelModel):
    duplicate_threshold_hours: int | None = Field(None, ge=0)
    monthly_target: int | None = Field(None, ge=1)
    company_name: str | None = None
    app_name: str | None = None
    language: Literal["fr", "ar"] | None = None
