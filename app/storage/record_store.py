"""RecordStore -- slots durables nommes, chacun un document JSON.

Aucun diff incremental : chaque ecriture remplace le slot entier.
Les ecritures sont best-effort et ne cassent jamais l'appelant.
"""

import json
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.slot import StorageSlot

logger = logging.getLogger(__name__)

SLOT_SCANS = "v4_scans"
SLOT_USERS = "v4_users"
SLOT_LOCATIONS = "v4_locs"
SLOT_SETTINGS = "v4_settings"
SLOT_SESSION = "v4_session"

ALL_SLOTS = (SLOT_SCANS, SLOT_USERS, SLOT_LOCATIONS, SLOT_SETTINGS, SLOT_SESSION)


class RecordStore:
    """Acces aux slots (doit etre utilise dans un app context)."""

    def read(self, key: str) -> Any:
        """Retourne le document decode, ou None si le slot est vide.

        Raises:
            json.JSONDecodeError: Si le slot contient un document corrompu.
            SQLAlchemyError: Si la base est illisible.
        """
        slot = db.session.get(StorageSlot, key)
        if slot is None:
            return None
        return json.loads(slot.payload)

    def write(self, key: str, value: Any) -> bool:
        """Reecrit le slot. Retourne False si l'ecriture a echoue."""
        try:
            payload = json.dumps(value, ensure_ascii=False)
            slot = db.session.get(StorageSlot, key)
            if slot is None:
                db.session.add(StorageSlot(key=key, payload=payload))
            else:
                slot.payload = payload
            db.session.commit()
        except (TypeError, ValueError, SQLAlchemyError) as exc:
            db.session.rollback()
            logger.error("Ecriture du slot %s echouee: %s", key, exc)
            return False
        logger.debug("Slot %s reecrit (%d octets)", key, len(payload))
        return True

    def remove(self, key: str) -> None:
        try:
            StorageSlot.query.filter_by(key=key).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Suppression du slot %s echouee: %s", key, exc)

    def clear(self) -> None:
        """Vide tous les slots (remise a zero locale)."""
        for key in ALL_SLOTS:
            self.remove(key)
        logger.warning("Tous les slots ont ete effaces")
