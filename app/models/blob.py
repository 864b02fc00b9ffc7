"""Modele ImageBlob -- photos stockees hors des slots, dans leur propre base."""

from datetime import datetime, timezone

from app.extensions import db


class ImageBlob(db.Model):
    """Photo d'un scan, indexee par l'identifiant du scan."""

    __bind_key__ = "blobs"
    __tablename__ = "vehicle_images"

    record_id = db.Column(db.String(40), primary_key=True)
    data = db.Column(db.LargeBinary, nullable=False)
    mime_type = db.Column(db.String(50), nullable=False, default="image/jpeg")
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<ImageBlob {self.record_id} {len(self.data or b'')}B>"
