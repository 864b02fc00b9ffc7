"""DBHandler -- persiste les WARNING/ERROR dans la table app_logs."""

import logging
import sys
from datetime import datetime, timezone

from flask import has_app_context, has_request_context
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.log import AppLog

# Attributs standard d'un LogRecord -- on ne les stocke pas dans 'extra'
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _operator_id() -> str | None:
    """Identifiant de l'operateur connecte, si la requete en a un."""
    if not has_request_context():
        return None
    if getattr(current_user, "is_authenticated", False):
        return current_user.get_id()
    return None


class DBHandler(logging.Handler):
    """Logging handler qui ecrit les records WARNING+ dans AppLog.

    Si pas de contexte Flask ni d'app attachee, le record est ignore.
    Si l'ecriture echoue, l'erreur part sur stderr sans crash.
    """

    def __init__(self, app=None, level=logging.WARNING):
        super().__init__(level)
        self._app = app

    def emit(self, record: logging.LogRecord) -> None:
        # Anti-recursion : nos propres logs et ceux de SQLAlchemy
        if record.name == __name__ or record.name.startswith("sqlalchemy"):
            return

        if not has_app_context() and self._app is None:
            return

        try:
            if has_app_context():
                self._write(record)
            else:
                with self._app.app_context():
                    self._write(record)
        except (OSError, ValueError, TypeError, RuntimeError, SQLAlchemyError) as exc:
            print(f"DBHandler.emit failed: {exc}", file=sys.stderr)
            try:
                db.session.rollback()
            except (OSError, RuntimeError, SQLAlchemyError):
                pass

    def _write(self, record: logging.LogRecord) -> None:
        extra = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _STANDARD_ATTRS and not k.startswith("_")
        } or None

        db.session.add(
            AppLog(
                level=record.levelname,
                module=record.name,
                message=self.format(record) if self.formatter else record.getMessage(),
                operator_id=_operator_id(),
                extra=extra,
                created_at=datetime.fromtimestamp(record.created, tz=timezone.utc),
            )
        )
        db.session.commit()
