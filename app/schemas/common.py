"""Schema commun d'enveloppe de reponse API."""

from typing import Any

from flask import jsonify
from pydantic import BaseModel


class APIResponse(BaseModel):
    """Enveloppe de reponse API uniforme.

    Succes : {"success": true, "error": null, "message": null, "data": {...}}
    Erreur : {"success": false, "error": "CODE", "message": "...", "data": null}
    """

    success: bool
    error: str | None = None
    message: str | None = None
    data: Any = None


def ok(data: Any = None, message: str | None = None, status: int = 200):
    return jsonify(APIResponse(success=True, message=message, data=data).model_dump()), status


def fail(error: str, message: str, status: int, data: Any = None):
    return jsonify(
        APIResponse(success=False, error=error, message=message, data=data).model_dump()
    ), status
