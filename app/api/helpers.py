"""Utilitaires partages par les routes API."""

import base64
import binascii
import logging
import re
from typing import TypeVar

from flask import request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.errors import ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)


def parse_body(schema: type[M]) -> M:
    """Valide le corps JSON de la requete contre ``schema``.

    Raises:
        ValidationError: Corps absent ou non conforme.
    """
    json_data = request.get_json(silent=True)
    if json_data is None:
        raise ValidationError("Le corps de la requete doit etre du JSON valide.")
    try:
        return schema.model_validate(json_data)
    except PydanticValidationError as exc:
        logger.warning("Validation error: %s", exc)
        raise ValidationError("Donnees invalides. Verifiez le format du payload.") from exc


def decode_image(payload: str) -> tuple[bytes, str]:
    """Photo en base64 (data URL ou brute) -> (octets, type MIME)."""
    mime = "image/jpeg"
    match = _DATA_URL_RE.match(payload.strip())
    if match:
        mime = match.group("mime")
        payload = match.group("data")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Image illisible (base64 attendu).") from exc
    if not data:
        raise ValidationError("Image vide.")
    return data, mime


def encode_image(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
