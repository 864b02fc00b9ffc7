"""Service Gemini -- extraction vision/texte via le SDK Google Gen AI.

Toutes les fonctions levent ``ExtractionError`` en cas d'echec reseau,
de cle absente ou de reponse JSON inexploitable : l'appelant decide
si l'echec est terminal (passe critique) ou absorbe (raffinement).
"""

import json
import logging
import re
import threading
import time
from typing import Any

import httpx
from flask import current_app
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.errors import ExtractionError

logger = logging.getLogger(__name__)

_EXPERT_PERSONA = "Tu es KHABIR, expert automobile certifie au Maroc."

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def _get_api_key() -> str:
    """Recupere la cle API Gemini depuis la config Flask."""
    return current_app.config.get("GEMINI_API_KEY", "")


def _get_model() -> str:
    """Nom du modele Gemini a utiliser."""
    return current_app.config.get("GEMINI_MODEL", "gemini-2.5-flash")


def _get_client(timeout: float | None = None) -> genai.Client:
    """Cree un client Gemini. ``timeout`` (s) borne la requete HTTP elle-meme."""
    api_key = _get_api_key()
    if not api_key:
        raise ExtractionError("CLÉ API INVALIDE: GEMINI_API_KEY non configuree")
    http_options = None
    if timeout is not None:
        http_options = types.HttpOptions(timeout=max(1, int(timeout * 1000)))
    return genai.Client(api_key=api_key, http_options=http_options)


def clean_json(text: str) -> dict[str, Any]:
    """Retire les balises Markdown et decode l'objet JSON renvoye par l'IA."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExtractionError(
            "IA_JSON_ERROR: La reponse de l'IA n'est pas un JSON valide."
        ) from exc
    if not isinstance(data, dict):
        raise ExtractionError("IA_JSON_ERROR: objet JSON attendu.")
    return data


def _image_part(image: bytes, mime_type: str = "image/jpeg") -> types.Part:
    return types.Part.from_bytes(data=image, mime_type=mime_type)


def _generate(
    contents: Any,
    feature: str,
    json_mode: bool = False,
    system_prompt: str | None = None,
    temperature: float = 0.2,
    timeout: float | None = None,
) -> str:
    """Envoie la requete a Gemini et retourne le texte genere.

    Raises:
        ExtractionError: Cle absente, erreur API ou reseau.
    """
    config: dict[str, Any] = {"temperature": temperature}
    if json_mode:
        config["response_mime_type"] = "application/json"
    if system_prompt:
        config["system_instruction"] = system_prompt

    started = time.monotonic()
    client = _get_client(timeout)
    try:
        response = client.models.generate_content(
            model=_get_model(),
            contents=contents,
            config=config,
        )
    except (genai_errors.APIError, httpx.HTTPError, OSError) as exc:
        raise ExtractionError(f"Gemini erreur: {exc}") from exc

    usage = getattr(response, "usage_metadata", None)
    logger.info(
        "Gemini %s: %s tok en %.2fs",
        feature,
        getattr(usage, "total_token_count", 0) or 0,
        time.monotonic() - started,
    )
    return response.text or ""


def analyze_vehicle_critical(image: bytes, mode: str = "vin") -> dict[str, str]:
    """Passe critique sur une photo (plaque VIN ou carte grise).

    Retourne les champs indispensables, normalises : vin, brand, model,
    deductionReasoning, yearOfManufacture, licensePlate, registrationYear.
    """
    if mode == "carte_grise":
        source = (
            "L'image est une CARTE GRISE : lis directement la marque, le modele, "
            "le carburant et l'immatriculation imprimes."
        )
    else:
        source = (
            "L'image montre une plaque VIN : corrige l'OCR (I=1, O=0, B=8, S=5, Z=2), "
            "le VIN prime sur tout le reste."
        )
    prompt = f"""{_EXPERT_PERSONA}
Extrais le VIN (17 caracteres, 0-9 et A-Z sauf I, O, Q) et les informations cles de l'image.
{source}
Deduis la marque du WMI (caracteres 1-3), le modele du VDS (4-9), l'annee du caractere 10.

Reponds en JSON avec les cles : brand, model, vin, deductionReasoning,
yearOfManufacture, licensePlate, registrationYear."""

    raw = clean_json(_generate([prompt, _image_part(image)], feature="critical", json_mode=True))
    vin = re.sub(r"[^A-Z0-9]", "", str(raw.get("vin") or "").upper())
    return {
        "vin": vin,
        "brand": str(raw.get("brand") or "").upper(),
        "model": str(raw.get("model") or "").upper(),
        "deductionReasoning": str(raw.get("deductionReasoning") or ""),
        "yearOfManufacture": str(raw.get("yearOfManufacture") or ""),
        "licensePlate": str(raw.get("licensePlate") or ""),
        "registrationYear": str(raw.get("registrationYear") or ""),
    }


def analyze_vehicle_details(
    image: bytes,
    brand: str,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Passe de raffinement : version, motorisation, energie, couleur.

    ``cancel_event`` est le jeton d'annulation du pipeline : s'il est leve
    avant l'envoi ou a la reception, le resultat est abandonne. ``timeout``
    est reporte sur la requete HTTP pour qu'elle soit reellement coupee.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise ExtractionError("Raffinement annule avant envoi")

    prompt = f"""Expert automobile du marche marocain.
La marque du vehicule sur cette image est {brand}. Affine l'analyse.

Reponds en JSON avec les cles :
- model : version ou finition exacte
- motorization : motorisation (ex : 1.5 dCi, 2.0 TDI)
- fuelType : une valeur parmi Essence, Diesel, Hybride, Électrique, N/A
- color : nom commercial de la couleur
- registrationYear : annee de mise en circulation
- deductionReasoning : explication courte"""

    text = _generate(
        [prompt, _image_part(image)],
        feature="details",
        json_mode=True,
        timeout=timeout,
    )
    if cancel_event is not None and cancel_event.is_set():
        raise ExtractionError("Raffinement annule, reponse ignoree")
    return clean_json(text)


def analyze_vehicle_by_vin(vin: str) -> dict[str, Any]:
    """Decodage ISO 3779 d'un VIN saisi a la main."""
    prompt = f"""{_EXPERT_PERSONA}
Decode rigoureusement le VIN {vin} (ISO 3779).
Le VDS (positions 4 a 9) porte le code modele ; pour le groupe VAG les positions 7-8
sont decisives. Croise avec les modeles commercialises au Maroc.

Reponds uniquement en JSON avec les cles : brand, model, deductionReasoning
(quel code a permis l'identification), yearOfManufacture (position 10), motorization,
fuelType (Essence, Diesel, Hybride, Électrique ou N/A), color."""

    return clean_json(_generate(prompt, feature="vin_lookup", json_mode=True))


def get_vin_analysis_report(vin: str) -> str:
    """Rapport d'expertise Markdown pour un VIN."""
    prompt = f"""{_EXPERT_PERSONA}
Redige un rapport d'expertise technique en Markdown pour le VIN {vin}.

### 1. Identite et conformite (marque, modele, pays d'origine via le WMI, importateur au Maroc)
### 2. Analyse technique (moteur deduit du VDS, annee modele via le 10e caractere)
### 3. Decodage detaille
| Section | Code | Signification |
| :--- | :--- | :--- |
| **WMI** | {vin[:3]} | Constructeur / Pays |
| **VDS** | {vin[3:9]} | Caracteristiques |
| **VIS** | {vin[9:17]} | Identification unique |
### 4. Points de vigilance (2 ou 3 points a surveiller sur ce modele)"""

    text = _generate(prompt, feature="vin_report", temperature=0.4)
    if not text.strip():
        raise ExtractionError("Rapport vide")
    return text


def estimate_market_value(analysis: dict[str, Any]) -> dict[str, Any]:
    """Fourchette de prix du marche marocain (MAD) pour le vehicule."""
    prompt = f"""{_EXPERT_PERSONA}
Estime la valeur de revente sur le marche marocain, en dirhams (MAD), du vehicule :
marque {analysis.get("brand")}, modele {analysis.get("model")},
annee {analysis.get("yearOfManufacture")}, energie {analysis.get("fuelType")},
motorisation {analysis.get("motorization")}.

Reponds en JSON avec les cles : marketValueMin (nombre), marketValueMax (nombre),
marketValueJustification (texte court)."""

    raw = clean_json(_generate(prompt, feature="market_value", json_mode=True))
    try:
        low = float(raw.get("marketValueMin") or 0)
        high = float(raw.get("marketValueMax") or 0)
    except (TypeError, ValueError) as exc:
        raise ExtractionError(f"IA_JSON_ERROR: valeurs non numeriques ({exc})") from exc
    if low > high:
        low, high = high, low
    return {
        "marketValueMin": low,
        "marketValueMax": high,
        "marketValueJustification": str(raw.get("marketValueJustification") or ""),
    }


def chat_with_expert(history: list[dict[str, str]], message: str) -> str:
    """Conversation libre avec l'expert ; ``history`` = [{role, text}, ...]."""
    contents = [
        types.Content(
            role="user" if turn["role"] == "user" else "model",
            parts=[types.Part.from_text(text=turn["text"])],
        )
        for turn in history
    ]
    contents.append(types.Content(role="user", parts=[types.Part.from_text(text=message)]))
    return _generate(
        contents,
        feature="chat",
        system_prompt=_EXPERT_PERSONA,
        temperature=0.5,
    )
