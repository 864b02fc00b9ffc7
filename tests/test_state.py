"""Tests de l'etat applicatif : hydratation, evenements, persistance des slots."""

import pytest

from app.errors import NotFoundError, ValidationError
from app.extensions import db as _db
from app.models.slot import StorageSlot
from app.schemas.operator import SEED_ADMIN_ID
from app.state import InventoryState, SlotPersister, get_state
from app.storage.record_store import (
    SLOT_LOCATIONS,
    SLOT_SCANS,
    SLOT_SESSION,
    SLOT_SETTINGS,
    SLOT_USERS,
    RecordStore,
)


def _rehydrate():
    fresh = InventoryState()
    fresh.hydrate(RecordStore())
    return fresh


class TestDefaults:
    def test_first_launch(self, app):
        with app.app_context():
            state = get_state()
            assert state.records == []
            assert [op.id for op in state.operators] == [SEED_ADMIN_ID]
            assert [loc.name for loc in state.locations] == ["SIÈGE / DÉPÔT"]
            assert state.settings.duplicate_threshold_hours == 24
            assert state.settings.monthly_target == 100
            assert state.session_operator_id is None


class TestPersistence:
    def test_mutations_rewrite_their_slot(self, db, make_record):
        state = get_state()
        state.add_location("  parc nord ")
        state.update_settings(monthly_target=250)
        state.add_record(make_record(vin="VF1RFA00X12345678"))

        fresh = _rehydrate()
        assert [loc.name for loc in fresh.locations] == ["SIÈGE / DÉPÔT", "PARC NORD"]
        assert fresh.settings.monthly_target == 250
        assert fresh.records[0].analysis.vin == "VF1RFA00X12345678"

    def test_listener_receives_slot_name(self):
        state = InventoryState()
        events = []
        state.subscribe(lambda slot, _state: events.append(slot))

        state.add_location("Parc")
        state.set_session("1")
        assert events == [SLOT_LOCATIONS, SLOT_SESSION]

    def test_session_pointer(self, db):
        store = RecordStore()
        state = get_state()
        state.set_session("1")
        assert store.read(SLOT_SESSION) == {"userId": "1"}

        state.set_session(None)
        assert store.read(SLOT_SESSION) is None

    def test_persister_writes_snapshot(self, db):
        state = InventoryState()
        SlotPersister(RecordStore())(SLOT_SETTINGS, state)
        assert RecordStore().read(SLOT_SETTINGS)["companyName"] == "AUTO EXPERT MAROC"


class TestHydrate:
    def _write_raw(self, key, payload):
        _db.session.merge(StorageSlot(key=key, payload=payload))
        _db.session.commit()

    def test_corrupt_slot_keeps_defaults(self, db):
        """Un slot illisible n'empeche pas le chargement des autres."""
        RecordStore().write(SLOT_LOCATIONS, [{"id": "7", "name": "AGENCE"}])
        self._write_raw(SLOT_SETTINGS, "{pas du json")

        fresh = _rehydrate()
        assert fresh.settings.monthly_target == 100
        assert [loc.id for loc in fresh.locations] == ["7"]

    def test_invalid_scans_skipped(self, db, make_record):
        valid = make_record(vin="VF1RFA00X12345678").to_json()
        RecordStore().write(
            SLOT_SCANS, [valid, {"id": "sans-analyse"}, {"id": "x", "analysis": {}}, "bruit"]
        )

        fresh = _rehydrate()
        assert [r.id for r in fresh.records] == [valid["id"]]

    def test_seed_admin_restored(self, db):
        RecordStore().write(
            SLOT_USERS,
            [{"id": "5", "username": "karim", "name": "Karim", "role": "agent"}],
        )

        fresh = _rehydrate()
        assert [op.id for op in fresh.operators] == [SEED_ADMIN_ID, "5"]

    def test_partial_settings_merged_with_defaults(self, db):
        RecordStore().write(SLOT_SETTINGS, {"companyName": "GARAGE ATLAS"})

        fresh = _rehydrate()
        assert fresh.settings.company_name == "GARAGE ATLAS"
        assert fresh.settings.duplicate_threshold_hours == 24


class TestRecordsAndLocations:
    def test_update_and_remove_record(self, make_record):
        state = InventoryState()
        record = make_record()
        state.add_record(record)

        updated = state.update_record(record.id, analysis_report="# Rapport")
        assert state.get_record(record.id).analysis_report == "# Rapport"
        assert updated is not record

        state.remove_record(record.id)
        with pytest.raises(NotFoundError):
            state.get_record(record.id)

    def test_newest_first(self, make_record):
        state = InventoryState()
        first, second = make_record(), make_record()
        state.add_record(first)
        state.add_record(second)
        assert [r.id for r in state.records] == [second.id, first.id]

    def test_resolve_location(self):
        state = InventoryState()
        parc = state.add_location("Parc")
        assert state.resolve_location(parc.id) == parc
        assert state.resolve_location("inconnu").id == "default-1"
        assert state.resolve_location(None).id == "default-1"

        state.remove_location("default-1")
        state.remove_location(parc.id)
        with pytest.raises(ValidationError):
            state.resolve_location(None)

    def test_blank_location_rejected(self):
        with pytest.raises(ValidationError):
            InventoryState().add_location("   ")


class TestReset:
    def test_reset_restores_defaults_everywhere(self, db, make_record):
        state = get_state()
        state.add_record(make_record())
        state.add_location("Parc")
        state.set_session("1")

        state.reset()

        assert state.records == []
        assert len(state.locations) == 1
        fresh = _rehydrate()
        assert fresh.records == []
        assert fresh.session_operator_id is None
        assert [loc.id for loc in fresh.locations] == ["default-1"]
