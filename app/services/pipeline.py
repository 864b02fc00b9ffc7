"""Pipeline de scan en deux passes.

Etats d'une tentative (une par operateur) :

    capture -> analyzing-critical -> review -> committing -> capture

La passe critique (VIN, marque, plaque) bloque jusqu'a la revue. La passe
de raffinement part ensuite en arriere-plan, en course contre
``REFINEMENT_TIMEOUT`` : si elle arrive a temps, ses champs non vides
remplacent les valeurs provisoires ; sinon son jeton d'annulation est leve
et son resultat n'est jamais applique. Ses echecs sont absorbes.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from flask import current_app
from pydantic.alias_generators import to_camel

from app.errors import AnalysisError, DuplicateScanError, ValidationError, VinScanError
from app.schemas.inventory import BLANK, PENDING, UNKNOWN, InventoryRecord, VehicleAnalysis
from app.schemas.operator import Operator
from app.services import duplicate_guard, gemini_service
from app.state import InventoryState
from app.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "scan_pipeline"

REFINABLE_FIELDS = (
    "model",
    "motorization",
    "fuel_type",
    "color",
    "registration_year",
    "deduction_reasoning",
)

_UPPERCASE_FIELDS = ("vin", "license_plate")


class ScanState(str, Enum):
    CAPTURE = "capture"
    ANALYZING = "analyzing-critical"
    REVIEW = "review"
    COMMITTING = "committing"


class Refinement(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    APPLIED = "applied"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


def classify_analysis_error(exc: Exception) -> AnalysisError:
    """Classe un echec par le contenu de son message."""
    message = str(exc) or type(exc).__name__
    upper = message.upper()
    if "API_KEY" in upper or "API KEY" in upper or "CLÉ API" in upper:
        return AnalysisError("INVALID_API_KEY", "CLÉ API INVALIDE : verifiez la configuration.")
    if "429" in upper or "RESOURCE_EXHAUSTED" in upper:
        return AnalysisError("RATE_LIMITED", "Quota API depasse (Erreur 429). Reessayez plus tard.")
    return AnalysisError("ANALYSIS_FAILED", f"Echec Analyse: {message}")


@dataclass
class ScanAttempt:
    """Tentative de scan en cours pour un operateur."""

    operator_id: str
    state: ScanState = ScanState.CAPTURE
    mode: str = "vin"
    analysis: VehicleAnalysis | None = None
    image: bytes | None = None
    image_mime: str = "image/jpeg"
    location_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    refinement: Refinement = Refinement.IDLE
    refinement_deadline: float | None = None
    critical_duration: float | None = None
    edited_fields: set[str] = field(default_factory=set)
    generation: int = 0
    cancel_event: threading.Event | None = None
    last_commit_at: float | None = None
    refinement_done: threading.Event = field(default_factory=threading.Event)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def reset(self) -> None:
        """Retour a la capture ; toute passe en vol devient obsolete."""
        if self.cancel_event is not None:
            self.cancel_event.set()
        self.generation += 1
        self.state = ScanState.CAPTURE
        self.analysis = None
        self.image = None
        self.refinement = Refinement.IDLE
        self.refinement_deadline = None
        self.critical_duration = None
        self.edited_fields = set()
        self.cancel_event = None
        self.refinement_done.set()

    def fail(self, error: AnalysisError) -> None:
        self.reset()
        self.error_code = error.code
        self.error_message = str(error)

    def to_json(self, success_seconds: float) -> dict[str, Any]:
        now = time.monotonic()
        remaining = None
        if self.refinement == Refinement.RUNNING and self.refinement_deadline is not None:
            remaining = max(0.0, round(self.refinement_deadline - now, 1))
        success = (
            self.last_commit_at is not None and now - self.last_commit_at < success_seconds
        )
        return {
            "state": self.state.value,
            "mode": self.mode,
            "analysis": self.analysis.to_json() if self.analysis else None,
            "hasImage": self.image is not None,
            "locationId": self.location_id,
            "refinement": self.refinement.value,
            "refinementRemaining": remaining,
            "error": self.error_code,
            "errorMessage": self.error_message,
            "success": success,
        }


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


class ScanPipeline:
    """Orchestrateur des tentatives de scan (une par operateur)."""

    def __init__(
        self,
        state: InventoryState,
        blob_store: BlobStore,
        refinement_timeout: float = 15.0,
        success_seconds: float = 1.5,
        duplicate_policy: str = "warn",
        save_photos: bool = False,
    ):
        if duplicate_policy not in ("warn", "block"):
            raise ValueError(f"DUPLICATE_POLICY inconnue: {duplicate_policy}")
        self._state = state
        self._blob_store = blob_store
        self.refinement_timeout = refinement_timeout
        self.success_seconds = success_seconds
        self.duplicate_policy = duplicate_policy
        self.save_photos = save_photos
        self._attempts: dict[str, ScanAttempt] = {}
        self._attempts_lock = threading.Lock()
        # Deux pools : la course attend le fetch, ils ne doivent pas se bloquer
        self._race_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="refine-race")
        self._fetch_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="refine-fetch")

    @classmethod
    def from_config(cls, app, state: InventoryState, blob_store: BlobStore) -> "ScanPipeline":
        return cls(
            state,
            blob_store,
            refinement_timeout=float(app.config.get("REFINEMENT_TIMEOUT", 15)),
            success_seconds=float(app.config.get("SUCCESS_INDICATOR_SECONDS", 1.5)),
            duplicate_policy=app.config.get("DUPLICATE_POLICY", "warn"),
            save_photos=bool(app.config.get("SAVE_PHOTOS", False)),
        )

    def attempt_for(self, operator_id: str) -> ScanAttempt:
        with self._attempts_lock:
            attempt = self._attempts.get(operator_id)
            if attempt is None:
                attempt = ScanAttempt(operator_id=operator_id)
                attempt.refinement_done.set()
                self._attempts[operator_id] = attempt
            return attempt

    def status(self, operator: Operator) -> dict[str, Any]:
        attempt = self.attempt_for(operator.id)
        with attempt.lock:
            return attempt.to_json(self.success_seconds)

    # ── Passe critique ──────────────────────────────────────────

    def _begin(self, attempt: ScanAttempt, location_id: str | None, mode: str) -> int:
        with attempt.lock:
            if attempt.state != ScanState.CAPTURE:
                raise ValidationError(
                    f"Un scan est deja en cours ({attempt.state.value}) : validez ou abandonnez-le."
                )
            attempt.state = ScanState.ANALYZING
            attempt.mode = mode
            attempt.location_id = location_id
            attempt.error_code = None
            attempt.error_message = None
            attempt.last_commit_at = None
            return attempt.generation

    def _abort(self, attempt: ScanAttempt, error: AnalysisError) -> AnalysisError:
        """Remet la tentative en capture apres un echec de la passe bloquante."""
        with attempt.lock:
            attempt.fail(error)
        return error

    def start_capture(
        self,
        operator: Operator,
        image: bytes,
        mode: str = "vin",
        location_id: str | None = None,
        mime_type: str = "image/jpeg",
    ) -> ScanAttempt:
        """Photo -> passe critique -> revue, puis raffinement en arriere-plan.

        Raises:
            AnalysisError: Echec classe de la passe critique (tentative annulee).
        """
        attempt = self.attempt_for(operator.id)
        generation = self._begin(attempt, location_id, mode)

        started = time.monotonic()
        try:
            critical = gemini_service.analyze_vehicle_critical(image, mode)
        except (VinScanError, ValueError, OSError) as exc:
            error = classify_analysis_error(exc)
            logger.warning("Passe critique echouee (%s): %s", error.code, exc)
            raise self._abort(attempt, error) from exc
        except Exception as exc:
            logger.exception("Erreur inattendue pendant la passe critique")
            raise self._abort(attempt, classify_analysis_error(exc)) from exc

        analysis = VehicleAnalysis(
            vin=critical.get("vin") or "",
            brand=critical.get("brand") or UNKNOWN,
            model=critical.get("model") or PENDING,
            fuel_type="N/A",
            motorization=PENDING,
            year_of_manufacture=critical.get("yearOfManufacture") or BLANK,
            registration_year=critical.get("registrationYear") or BLANK,
            license_plate=critical.get("licensePlate") or BLANK,
            inventory_notes="",
            color=BLANK,
            deduction_reasoning=critical.get("deductionReasoning") or "",
        )
        with attempt.lock:
            if attempt.generation != generation:
                # Abandonnee pendant la passe critique
                return attempt
            attempt.analysis = analysis
            attempt.image = image
            attempt.image_mime = mime_type
            attempt.critical_duration = round(time.monotonic() - started, 2)
            attempt.state = ScanState.REVIEW
            logger.info(
                "Passe critique OK: %s %s vin=%s (%.2fs)",
                analysis.brand,
                analysis.model,
                analysis.vin or "-",
                attempt.critical_duration,
            )
            self._schedule_refinement(attempt, image, analysis.brand)
        return attempt

    def submit_manual_vin(
        self, operator: Operator, vin: str, location_id: str | None = None
    ) -> ScanAttempt:
        """VIN saisi : une seule recherche, revue sans photo ni raffinement."""
        vin_upper = vin.strip().upper()
        if len(vin_upper) < 5:
            raise ValidationError("Le VIN saisi doit comporter au moins 5 caracteres.")

        attempt = self.attempt_for(operator.id)
        generation = self._begin(attempt, location_id, "vin")

        started = time.monotonic()
        try:
            info = gemini_service.analyze_vehicle_by_vin(vin_upper)
        except (VinScanError, ValueError, OSError) as exc:
            error = classify_analysis_error(exc)
            logger.warning("Recherche VIN %s echouee (%s): %s", vin_upper, error.code, exc)
            raise self._abort(attempt, error) from exc
        except Exception as exc:
            logger.exception("Erreur inattendue pendant la recherche VIN %s", vin_upper)
            raise self._abort(attempt, classify_analysis_error(exc)) from exc

        analysis = VehicleAnalysis(
            vin=vin_upper,
            brand=_text(info.get("brand")) or UNKNOWN,
            model=_text(info.get("model")) or UNKNOWN,
            fuel_type=info.get("fuelType") or "N/A",
            motorization=_text(info.get("motorization")),
            year_of_manufacture=_text(info.get("yearOfManufacture")) or BLANK,
            registration_year="",
            license_plate="",
            inventory_notes="",
            color=_text(info.get("color")) or BLANK,
            deduction_reasoning=_text(info.get("deductionReasoning")),
        )
        with attempt.lock:
            if attempt.generation != generation:
                return attempt
            attempt.analysis = analysis
            attempt.image = None
            attempt.critical_duration = round(time.monotonic() - started, 2)
            attempt.state = ScanState.REVIEW
        logger.info("VIN manuel %s: %s %s", vin_upper, analysis.brand, analysis.model)
        return attempt

    # ── Raffinement ─────────────────────────────────────────────

    def _schedule_refinement(self, attempt: ScanAttempt, image: bytes, brand: str) -> None:
        token = threading.Event()
        attempt.cancel_event = token
        attempt.refinement = Refinement.RUNNING
        attempt.refinement_deadline = time.monotonic() + self.refinement_timeout
        attempt.refinement_done.clear()
        app = current_app._get_current_object()
        self._race_pool.submit(
            self._run_refinement, app, attempt, attempt.generation, token, image, brand
        )

    def _fetch_details(self, app, image: bytes, brand: str, token: threading.Event) -> dict:
        with app.app_context():
            return gemini_service.analyze_vehicle_details(
                image, brand, cancel_event=token, timeout=self.refinement_timeout
            )

    def _run_refinement(
        self,
        app,
        attempt: ScanAttempt,
        generation: int,
        token: threading.Event,
        image: bytes,
        brand: str,
    ) -> None:
        future = self._fetch_pool.submit(self._fetch_details, app, image, brand, token)
        try:
            details = future.result(timeout=self.refinement_timeout)
        except FutureTimeout:
            token.set()
            future.cancel()
            outcome = Refinement.TIMED_OUT
            logger.warning("Raffinement expire apres %.1fs, valeurs critiques conservees",
                           self.refinement_timeout)
        except (VinScanError, KeyError, ValueError, AttributeError, TypeError, OSError) as exc:
            outcome = Refinement.FAILED
            logger.warning("Raffinement echoue (%s): %s", type(exc).__name__, exc)
        else:
            outcome = self._apply_refinement(attempt, generation, token, details)

        with attempt.lock:
            if attempt.generation == generation:
                attempt.refinement = outcome
                attempt.refinement_deadline = None
                attempt.cancel_event = None
                attempt.refinement_done.set()

    def _apply_refinement(
        self,
        attempt: ScanAttempt,
        generation: int,
        token: threading.Event,
        details: dict[str, Any],
    ) -> Refinement:
        with attempt.lock:
            if token.is_set() or attempt.generation != generation or attempt.analysis is None:
                return Refinement.TIMED_OUT
            updates = {}
            for name in REFINABLE_FIELDS:
                value = _text(details.get(to_camel(name), details.get(name)))
                if value and name not in attempt.edited_fields:
                    updates[name] = value
            attempt.analysis = VehicleAnalysis.model_validate(
                {**attempt.analysis.model_dump(), **updates}
            )
            logger.info("Raffinement applique: %s", ", ".join(sorted(updates)) or "aucun champ")
            return Refinement.APPLIED

    def wait_for_refinement(self, operator: Operator, timeout: float | None = None) -> bool:
        return self.attempt_for(operator.id).refinement_done.wait(timeout)

    # ── Revue ───────────────────────────────────────────────────

    def update_draft(self, operator: Operator, changes: dict[str, Any]) -> ScanAttempt:
        """Edition manuelle : les champs edites ne sont plus raffines."""
        attempt = self.attempt_for(operator.id)
        with attempt.lock:
            if attempt.state != ScanState.REVIEW or attempt.analysis is None:
                raise ValidationError("Aucun scan en revue.")
            clean = {}
            for name, value in changes.items():
                if value is None:
                    continue
                if name not in VehicleAnalysis.model_fields:
                    raise ValidationError(f"Champ inconnu: {name}")
                clean[name] = value.upper() if name in _UPPERCASE_FIELDS else value
            attempt.analysis = VehicleAnalysis.model_validate(
                {**attempt.analysis.model_dump(), **clean}
            )
            attempt.edited_fields.update(clean)
        return attempt

    def discard(self, operator: Operator) -> ScanAttempt:
        attempt = self.attempt_for(operator.id)
        with attempt.lock:
            attempt.reset()
            attempt.error_code = None
            attempt.error_message = None
        logger.info("Scan abandonne par '%s'", operator.username)
        return attempt

    def discard_all(self) -> None:
        """Abandonne toutes les tentatives (remise a zero locale)."""
        with self._attempts_lock:
            attempts = list(self._attempts.values())
            self._attempts.clear()
        for attempt in attempts:
            with attempt.lock:
                attempt.reset()

    # ── Validation ──────────────────────────────────────────────

    def _new_record_id(self, now_ms: int) -> str:
        stamp = now_ms
        while self._state.has_record(f"S-{stamp}"):
            stamp += 1
        return f"S-{stamp}"

    def commit(
        self, operator: Operator, location_id: str | None = None
    ) -> tuple[InventoryRecord, list[InventoryRecord]]:
        """Enregistre le brouillon et revient a la capture.

        Retourne la fiche creee et les doublons detectes (politique "warn").

        Raises:
            DuplicateScanError: Doublon detecte avec la politique "block".
        """
        attempt = self.attempt_for(operator.id)
        with attempt.lock:
            if attempt.state != ScanState.REVIEW or attempt.analysis is None:
                raise ValidationError("Aucun scan en revue.")
            attempt.state = ScanState.COMMITTING
            try:
                location = self._state.resolve_location(location_id or attempt.location_id)
            except ValidationError:
                attempt.state = ScanState.REVIEW
                raise

            now_ms = int(time.time() * 1000)
            duplicates = duplicate_guard.find_duplicates(
                attempt.analysis,
                self._state.records,
                self._state.settings.duplicate_threshold_hours,
                now_ms,
            )
            if duplicates and self.duplicate_policy == "block":
                attempt.state = ScanState.REVIEW
                raise DuplicateScanError(
                    "Vehicule deja inventorie dans la fenetre de doublon.", duplicates
                )

            record = InventoryRecord(
                id=self._new_record_id(now_ms),
                timestamp=now_ms,
                image_url="",
                analysis=attempt.analysis,
                user_id=operator.id,
                user_name=operator.name,
                location_id=location.id,
                location=location.name,
                scan_duration=attempt.critical_duration,
            )
            self._state.add_record(record)

            if self.save_photos and attempt.image is not None:
                self._blob_store.put_async(record.id, attempt.image, attempt.image_mime)

            attempt.reset()
            attempt.location_id = location.id
            attempt.last_commit_at = time.monotonic()

        logger.info(
            "Scan %s enregistre: %s %s @ %s par %s%s",
            record.id,
            record.analysis.brand,
            record.analysis.model,
            record.location,
            operator.username,
            f" ({len(duplicates)} doublon(s))" if duplicates else "",
        )
        return record, duplicates

    def shutdown(self) -> None:
        self._race_pool.shutdown(wait=False, cancel_futures=True)
        self._fetch_pool.shutdown(wait=False, cancel_futures=True)


def get_pipeline() -> ScanPipeline:
    return current_app.extensions[EXTENSION_KEY]
