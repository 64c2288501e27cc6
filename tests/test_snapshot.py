"""Snapshot store and migration tests."""

from __future__ import annotations

import json

import pytest

from ccis_connect.data_access import seed, snapshot_dao
from ccis_connect.data_access.db import execute
from ccis_connect.models.entities import RequestStatus
from ccis_connect.services import store


def test_round_trip_through_snapshot_store(app, ledger, admin, student):
    pending = ledger.submit_request(student, "laptop", 4, room_id="100A", return_date="2025-03-14").value
    ledger.approve_request(admin, pending.request_id)
    ledger.update_equipment_status(admin, "tv", "Reserved", False, "Exam week")

    with app.app_context():
        snapshot_dao.save_ledger(ledger)
        restored = seed.default_ledger()
        assert snapshot_dao.load_into(restored)

    assert restored.equipment["laptop"].quantity == 8
    assert restored.rooms["100A"].assigned("laptop") == 4
    assert not restored.equipment["tv"].available
    request = restored.get_request(pending.request_id)
    assert request.status == RequestStatus.APPROVED
    assert request.requester_id == "alice@student.ccis.edu"
    assert request.created_at == pending.created_at
    assert restored.audit_log[0].reason == "Exam week"


def test_empty_store_loads_nothing(app):
    with app.app_context():
        ledger = seed.default_ledger()
        snapshot_dao.clear()
        assert snapshot_dao.load_into(ledger) is False
    assert ledger.equipment["laptop"].quantity == 12


def test_v1_prototype_snapshot_is_migrated(app, db):
    rooms = [{"id": "100A", "items": {"Laptop": 3}}, {"id": "100B", "items": {}}]
    inventory = {"Laptop": 9, "TV": 3}
    requests = [
        {
            "id": 1700000000000,
            "itemType": "Laptop",
            "qty": 3,
            "roomId": "100A",
            "status": "approved",
            "createdAt": "2024-11-14T22:13:20.000Z",
        }
    ]
    for key, payload in (("rooms", rooms), ("equipment", inventory), ("requests", requests)):
        snapshot_dao.save_blob(key, payload, version=1, connection=db)

    with app.app_context():
        ledger = seed.default_ledger()
        assert snapshot_dao.load_into(ledger)

    assert sorted(ledger.rooms) == ["100A", "100B"]
    assert ledger.rooms["100A"].assigned("Laptop") == 3
    assert ledger.equipment["Laptop"].quantity == 9
    migrated = ledger.requests[0]
    assert migrated.quantity == 3
    assert migrated.equipment_id == "Laptop"
    assert migrated.status == RequestStatus.APPROVED
    assert migrated.created_at.year == 2024
    assert ledger.audit_log == []


def test_newer_snapshot_version_is_refused(app, db):
    snapshot_dao.save_blob("rooms", [], version=snapshot_dao.SCHEMA_VERSION + 1, connection=db)
    with app.app_context():
        with pytest.raises(snapshot_dao.SnapshotSchemaError):
            snapshot_dao.load_into(seed.default_ledger())


def test_corrupt_blob_is_refused(app, db):
    execute(
        db,
        "INSERT INTO snapshots (snapshot_key, schema_version, payload) VALUES (?, ?, ?)",
        ("equipment", snapshot_dao.SCHEMA_VERSION, "{not json"),
    )
    with app.app_context():
        with pytest.raises(snapshot_dao.SnapshotSchemaError):
            snapshot_dao.load_blobs()


def test_app_ledger_persists_each_change(app, app_ledger, admin):
    app_ledger.return_equipment(admin, "hdmi", 2)

    with app.app_context():
        stored = snapshot_dao.load_blobs()
    hdmi = next(item for item in stored["equipment"] if item["equipment_id"] == "hdmi")
    assert hdmi["quantity"] == 12


def test_reset_ledger_command_restores_seed(app, app_ledger, admin, runner, db):
    app_ledger.return_equipment(admin, "hdmi", 5)
    assert app_ledger.equipment["hdmi"].quantity == 15

    result = runner.invoke(args=["reset-ledger"])
    assert "Ledger reset: 6 rooms, 5 equipment types." in result.output
    assert store.get_ledger(app).equipment["hdmi"].quantity == 10
    row = db.execute("SELECT payload FROM snapshots WHERE snapshot_key = 'equipment'").fetchone()
    assert {item["equipment_id"]: item["quantity"] for item in json.loads(row["payload"])}["hdmi"] == 10


def test_failed_snapshot_write_is_logged_not_raised(app, app_ledger, admin, monkeypatch, caplog):
    def _broken_save(ledger, connection=None):
        raise RuntimeError("dictionary changed size during iteration")

    monkeypatch.setattr(snapshot_dao, "save_ledger", _broken_save)

    outcome = app_ledger.toggle_room(admin, "100D")
    assert outcome.success
    assert not app_ledger.rooms["100D"].available
    assert "Failed to persist ledger snapshot" in caplog.text
