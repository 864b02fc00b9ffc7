"""Tests du RecordStore (slots JSON nommes)."""

from app.models.slot import StorageSlot
from app.storage.record_store import SLOT_LOCATIONS, SLOT_SETTINGS, RecordStore


class TestRecordStore:
    def test_missing_slot_reads_none(self, db):
        assert RecordStore().read("v4_inexistant") is None

    def test_write_replaces_whole_document(self, db):
        store = RecordStore()
        assert store.write(SLOT_SETTINGS, {"companyName": "AUTO EXPERT", "monthlyTarget": 10})
        assert store.write(SLOT_SETTINGS, {"companyName": "GARAGE ATLAS"})

        assert store.read(SLOT_SETTINGS) == {"companyName": "GARAGE ATLAS"}
        assert StorageSlot.query.count() == 1

    def test_unicode_preserved(self, db):
        store = RecordStore()
        store.write(SLOT_LOCATIONS, [{"id": "default-1", "name": "SIÈGE / DÉPÔT"}])
        slot = db.session.get(StorageSlot, SLOT_LOCATIONS)
        assert "SIÈGE" in slot.payload

    def test_unserializable_write_is_best_effort(self, db):
        """Une ecriture impossible retourne False, le slot precedent reste intact."""
        store = RecordStore()
        store.write(SLOT_SETTINGS, {"monthlyTarget": 10})
        assert store.write(SLOT_SETTINGS, {"monthlyTarget": object()}) is False
        assert store.read(SLOT_SETTINGS) == {"monthlyTarget": 10}

    def test_remove_and_clear(self, db):
        store = RecordStore()
        store.write(SLOT_SETTINGS, {})
        store.write(SLOT_LOCATIONS, [])
        store.remove(SLOT_SETTINGS)
        assert store.read(SLOT_SETTINGS) is None

        store.clear()
        assert StorageSlot.query.count() == 0
