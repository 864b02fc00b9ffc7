"""BlobStore -- photos indexees par id de scan, dans la base ``blobs``.

Les operations ``*_async`` tournent sur un executor dedie et retournent
un ``Future`` : elles ne bloquent jamais les ecritures de slots.
Une cle absente n'est pas une erreur, elle donne ``None``.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.blob import ImageBlob

logger = logging.getLogger(__name__)

MAX_WORKERS = 2


class StoredImage:
    """Photo relue depuis le stockage."""

    __slots__ = ("data", "mime_type")

    def __init__(self, data: bytes, mime_type: str):
        self.data = data
        self.mime_type = mime_type


class BlobStore:
    """Stockage cle -> binaire, cycle de vie independant des scans."""

    def __init__(self, max_workers: int = MAX_WORKERS):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="blob-store"
        )

    # ── Operations synchrones (app context requis) ──────────────

    def get(self, record_id: str) -> StoredImage | None:
        try:
            blob = db.session.get(ImageBlob, record_id)
        except SQLAlchemyError as exc:
            logger.warning("Lecture photo %s impossible: %s", record_id, exc)
            return None
        if blob is None:
            return None
        return StoredImage(blob.data, blob.mime_type)

    def put(self, record_id: str, data: bytes, mime_type: str = "image/jpeg") -> None:
        try:
            blob = db.session.get(ImageBlob, record_id)
            if blob is None:
                db.session.add(ImageBlob(record_id=record_id, data=data, mime_type=mime_type))
            else:
                blob.data = data
                blob.mime_type = mime_type
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Sauvegarde photo %s echouee: %s", record_id, exc)
            raise
        logger.info("Photo %s sauvegardee (%d octets)", record_id, len(data))

    def delete(self, record_id: str) -> None:
        try:
            ImageBlob.query.filter_by(record_id=record_id).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Suppression photo %s echouee: %s", record_id, exc)
            raise

    def clear(self) -> None:
        try:
            ImageBlob.query.delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Purge des photos echouee: %s", exc)
            raise

    # ── Variantes asynchrones ───────────────────────────────────

    def _submit(self, fn, *args) -> Future:
        # Propager l'app Flask dans le thread de l'executor
        app = current_app._get_current_object()

        def _run():
            with app.app_context():
                return fn(*args)

        return self._executor.submit(_run)

    def get_async(self, record_id: str) -> Future:
        return self._submit(self.get, record_id)

    def put_async(self, record_id: str, data: bytes, mime_type: str = "image/jpeg") -> Future:
        return self._submit(self.put, record_id, data, mime_type)

    def delete_async(self, record_id: str) -> Future:
        return self._submit(self.delete, record_id)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
