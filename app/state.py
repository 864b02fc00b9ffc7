"""Conteneur explicite de l'etat applicatif.

``InventoryState`` porte les scans, operateurs, lieux, parametres et le
pointeur de session. Il est hydrate depuis le RecordStore au demarrage,
et chaque mutation emet un evenement nommant le slot touche. La
persistance est un abonne a ces evenements (``SlotPersister``), pas un
effet de bord cache dans les mutations.

Usage::

    state = get_state()
    state.add_location("PARC NORD")   # -> evenement v4_locs -> slot reecrit
"""

import json
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from flask import current_app
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.errors import NotFoundError, ValidationError
from app.schemas.inventory import InventoryRecord
from app.schemas.operator import SEED_ADMIN_ID, Operator, Permissions
from app.schemas.settings import DEFAULT_LOCATIONS, Location, Settings
from app.storage.record_store import (
    SLOT_LOCATIONS,
    SLOT_SCANS,
    SLOT_SESSION,
    SLOT_SETTINGS,
    SLOT_USERS,
    RecordStore,
)

logger = logging.getLogger(__name__)

EXTENSION_KEY = "inventory_state"

Listener = Callable[[str, "InventoryState"], None]


def seed_admin() -> Operator:
    """Administrateur initial (id fixe, indelebile). Secret : 1234."""
    return Operator(
        id=SEED_ADMIN_ID,
        username="admin",
        password="MTIzNA==",
        name="Administrateur",
        role="admin",
        avatar="default",
        permissions=Permissions(
            dashboard=True,
            scanner=True,
            history=True,
            chat=True,
            config_global=True,
            config_company=True,
            config_locations=True,
            config_users=True,
        ),
    )


def new_id() -> str:
    """Identifiant horodate (epoch ms), comme les ids historiques."""
    return str(int(time.time() * 1000))


class InventoryState:
    """Etat en memoire d'un poste (un seul operateur actif a la fois)."""

    def __init__(self):
        self.records: list[InventoryRecord] = []
        self.operators: list[Operator] = [seed_admin()]
        self.locations: list[Location] = list(DEFAULT_LOCATIONS)
        self.settings = Settings()
        self.session_operator_id: str | None = None
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

    # ── Evenements ──────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, slot: str) -> None:
        for listener in self._listeners:
            listener(slot, self)

    def snapshot(self, slot: str) -> Any:
        """Document JSON a ecrire dans ``slot``."""
        with self._lock:
            if slot == SLOT_SCANS:
                return [r.to_json() for r in self.records]
            if slot == SLOT_USERS:
                return [op.to_json() for op in self.operators]
            if slot == SLOT_LOCATIONS:
                return [loc.to_json() for loc in self.locations]
            if slot == SLOT_SETTINGS:
                return self.settings.to_json()
            if slot == SLOT_SESSION:
                if self.session_operator_id is None:
                    return None
                return {"userId": self.session_operator_id}
        raise KeyError(slot)

    # ── Hydratation ─────────────────────────────────────────────

    def hydrate(self, store: RecordStore) -> None:
        """Charge chaque slot ; un slot illisible garde ses valeurs par defaut."""
        loaders = (
            (SLOT_SCANS, self._load_scans),
            (SLOT_USERS, self._load_users),
            (SLOT_LOCATIONS, self._load_locations),
            (SLOT_SETTINGS, self._load_settings),
            (SLOT_SESSION, self._load_session),
        )
        for slot, loader in loaders:
            try:
                raw = store.read(slot)
                if raw is not None:
                    loader(raw)
            except (
                json.JSONDecodeError,
                PydanticValidationError,
                SQLAlchemyError,
                TypeError,
                AttributeError,
            ) as exc:
                logger.error("Chargement du slot %s echoue, valeurs par defaut: %s", slot, exc)
        logger.info(
            "Etat charge: %d scans, %d operateurs, %d lieux",
            len(self.records),
            len(self.operators),
            len(self.locations),
        )

    def _load_scans(self, raw: list) -> None:
        records = []
        for item in raw:
            if not isinstance(item, dict) or not item.get("id") or not item.get("analysis"):
                continue
            try:
                records.append(InventoryRecord.model_validate(item))
            except PydanticValidationError as exc:
                logger.warning("Scan %s ignore (invalide): %s", item.get("id"), exc)
        self.records = records

    def _load_users(self, raw: list) -> None:
        operators = [Operator.model_validate(item) for item in raw]
        if not any(op.is_seed_admin for op in operators):
            operators.insert(0, seed_admin())
        self.operators = operators

    def _load_locations(self, raw: list) -> None:
        self.locations = [Location.model_validate(item) for item in raw]

    def _load_settings(self, raw: dict) -> None:
        self.settings = Settings.model_validate({**Settings().to_json(), **raw})

    def _load_session(self, raw: dict) -> None:
        self.session_operator_id = raw.get("userId")

    def reset(self) -> None:
        """Retour aux valeurs par defaut, chaque slot est reecrit."""
        with self._lock:
            self.records = []
            self.operators = [seed_admin()]
            self.locations = list(DEFAULT_LOCATIONS)
            self.settings = Settings()
            self.session_operator_id = None
        for slot in (SLOT_SCANS, SLOT_USERS, SLOT_LOCATIONS, SLOT_SETTINGS, SLOT_SESSION):
            self._emit(slot)

    # ── Scans ───────────────────────────────────────────────────

    def add_record(self, record: InventoryRecord) -> None:
        with self._lock:
            self.records.insert(0, record)
        self._emit(SLOT_SCANS)

    def has_record(self, record_id: str) -> bool:
        return any(r.id == record_id for r in self.records)

    def get_record(self, record_id: str) -> InventoryRecord:
        for record in self.records:
            if record.id == record_id:
                return record
        raise NotFoundError(f"Scan introuvable: {record_id}")

    def update_record(self, record_id: str, **changes) -> InventoryRecord:
        """Remplace la fiche par une copie modifiee (enrichissements)."""
        with self._lock:
            for i, record in enumerate(self.records):
                if record.id == record_id:
                    updated = record.model_copy(update=changes)
                    self.records[i] = updated
                    break
            else:
                raise NotFoundError(f"Scan introuvable: {record_id}")
        self._emit(SLOT_SCANS)
        return updated

    def remove_record(self, record_id: str) -> None:
        with self._lock:
            before = len(self.records)
            self.records = [r for r in self.records if r.id != record_id]
            if len(self.records) == before:
                raise NotFoundError(f"Scan introuvable: {record_id}")
        self._emit(SLOT_SCANS)

    def clear_records(self) -> list[str]:
        with self._lock:
            ids = [r.id for r in self.records]
            self.records = []
        self._emit(SLOT_SCANS)
        return ids

    # ── Operateurs ──────────────────────────────────────────────

    def find_operator(self, operator_id: str | None) -> Operator | None:
        if operator_id is None:
            return None
        return next((op for op in self.operators if op.id == operator_id), None)

    def find_by_username(self, username: str) -> Operator | None:
        key = username.strip().lower()
        return next((op for op in self.operators if op.username == key), None)

    def add_operator(self, operator: Operator) -> None:
        with self._lock:
            self.operators.append(operator)
        self._emit(SLOT_USERS)

    def replace_operator(self, operator: Operator) -> None:
        with self._lock:
            self.operators = [operator if op.id == operator.id else op for op in self.operators]
        self._emit(SLOT_USERS)

    def remove_operator(self, operator_id: str) -> None:
        with self._lock:
            before = len(self.operators)
            self.operators = [op for op in self.operators if op.id != operator_id]
            if len(self.operators) == before:
                raise NotFoundError(f"Operateur introuvable: {operator_id}")
        self._emit(SLOT_USERS)

    # ── Lieux ───────────────────────────────────────────────────

    def add_location(self, name: str) -> Location:
        clean = name.strip().upper()
        if not clean:
            raise ValidationError("Le nom du lieu est obligatoire.")
        location = Location(id=new_id(), name=clean)
        with self._lock:
            while any(loc.id == location.id for loc in self.locations):
                location = Location(id=str(int(location.id) + 1), name=clean)
            self.locations.append(location)
        self._emit(SLOT_LOCATIONS)
        return location

    def remove_location(self, location_id: str) -> None:
        with self._lock:
            before = len(self.locations)
            self.locations = [loc for loc in self.locations if loc.id != location_id]
            if len(self.locations) == before:
                raise NotFoundError(f"Lieu introuvable: {location_id}")
        self._emit(SLOT_LOCATIONS)

    def resolve_location(self, location_id: str | None) -> Location:
        """Lieu demande, ou le premier lieu connu a defaut."""
        if location_id:
            for loc in self.locations:
                if loc.id == location_id:
                    return loc
        if not self.locations:
            raise ValidationError("Aucun lieu d'inventaire n'est configure.")
        return self.locations[0]

    # ── Parametres et session ───────────────────────────────────

    def update_settings(self, **changes) -> Settings:
        with self._lock:
            self.settings = Settings.model_validate({**self.settings.model_dump(), **changes})
        self._emit(SLOT_SETTINGS)
        return self.settings

    def set_session(self, operator_id: str | None) -> None:
        self.session_operator_id = operator_id
        self._emit(SLOT_SESSION)


class SlotPersister:
    """Abonne : reecrit le slot correspondant a chaque evenement."""

    def __init__(self, store: RecordStore):
        self._store = store

    def __call__(self, slot: str, state: InventoryState) -> None:
        document = state.snapshot(slot)
        if document is None:
            self._store.remove(slot)
        else:
            self._store.write(slot, document)


def init_state(app) -> InventoryState:
    """Cree l'etat, l'hydrate et branche la persistance (app context requis)."""
    store = RecordStore()
    state = InventoryState()
    state.hydrate(store)
    state.subscribe(SlotPersister(store))
    app.extensions[EXTENSION_KEY] = state
    return state


def get_state() -> InventoryState:
    return current_app.extensions[EXTENSION_KEY]
