"""Tests des modeles StorageSlot et ImageBlob."""

from sqlalchemy import inspect

from app.models.blob import ImageBlob
from app.models.slot import StorageSlot


class TestStorageSlot:
    def test_create(self, db):
        slot = StorageSlot(key="v4_settings", payload='{"language": "fr"}')
        db.session.add(slot)
        db.session.commit()

        fetched = db.session.get(StorageSlot, "v4_settings")
        assert fetched.payload == '{"language": "fr"}'
        assert fetched.updated_at is not None


class TestImageBlob:
    def test_stored_in_blob_database(self, app, db):
        """Les photos vivent dans la base liee ``blobs``, pas avec les slots."""
        db.session.add(ImageBlob(record_id="S-1", data=b"jpeg", mime_type="image/jpeg"))
        db.session.commit()

        assert ImageBlob.__bind_key__ == "blobs"
        assert db.session.get(ImageBlob, "S-1").data == b"jpeg"
        with db.engines["blobs"].connect() as conn:
            assert "vehicle_images" in inspect(conn).get_table_names()
        with db.engine.connect() as conn:
            assert "vehicle_images" not in inspect(conn).get_table_names()
