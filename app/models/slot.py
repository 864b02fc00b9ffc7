"""Modele StorageSlot -- emplacement durable cle -> document JSON."""

from datetime import datetime, timezone

from app.extensions import db


class StorageSlot(db.Model):
    """Un slot nomme (scans, users, locs, settings, session).

    Chaque mutation reecrit le document entier, sans diff incremental.
    """

    __tablename__ = "storage_slots"

    key = db.Column(db.String(50), primary_key=True)
    payload = db.Column(db.Text, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<StorageSlot {self.key} {len(self.payload or '')}B>"
