"""Persisted ledger snapshots: one JSON blob per key, versioned."""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Callable, Dict

from ..models.entities import AuditEntry, BorrowRequest, EquipmentType, Room
from ..services.ledger import Ledger
from .db import execute, get_db, query_all

SCHEMA_VERSION = 2
SNAPSHOT_KEYS = ("rooms", "equipment", "requests", "audit_log")

_SCHEMA_INSTRUCTIONS = (
    "Snapshot table is missing. Re-initialize the database with "
    "`flask --app ccis_connect.app init-db`."
)


class SnapshotSchemaError(RuntimeError):
    """Raised when a stored snapshot cannot be read or migrated."""


# Version 1 is the room-centric prototype: rooms as {"id", "items"}, the
# inventory as a {"Laptop": 12} map and requests keyed by itemType/qty/roomId.
def _rooms_v1_to_v2(payload: Any) -> Any:
    return [
        {
            "room_id": room["id"],
            "name": room.get("name") or room["id"],
            "available": room.get("available", True),
            "items": room.get("items") or {},
        }
        for room in payload
    ]


def _equipment_v1_to_v2(payload: Any) -> Any:
    if isinstance(payload, dict):
        return [
            {"equipment_id": name, "name": name, "quantity": quantity}
            for name, quantity in payload.items()
        ]
    return [
        {
            "equipment_id": item["id"],
            "name": item.get("name") or item["id"],
            "quantity": item.get("quantity", 0),
            "category": item.get("category"),
            "location": item.get("location"),
            "available": item.get("available", True),
        }
        for item in payload
    ]


def _requests_v1_to_v2(payload: Any) -> Any:
    migrated = []
    for item in payload:
        equipment_id = item.get("equipmentId") or item["itemType"]
        migrated.append(
            {
                "request_id": str(item["id"]),
                "equipment_id": equipment_id,
                "equipment_name": item.get("equipmentName") or equipment_id,
                "quantity": item.get("quantity") or item["qty"],
                "requester": item.get("requester") or item.get("userName") or "Unknown",
                "requester_role": item.get("role") or "student",
                "created_at": (item.get("createdAt") or "").rstrip("Z") or None,
                "room_id": item.get("roomId"),
                "status": item.get("status", "pending"),
                "acted_at": (item.get("actedAt") or "").rstrip("Z") or None,
            }
        )
    return migrated


def _audit_v1_to_v2(payload: Any) -> Any:
    return [
        {
            "entry_id": str(item["id"]),
            "equipment_id": item["equipmentId"],
            "equipment_name": item.get("equipmentName"),
            "old_status": item.get("oldStatus"),
            "new_status": item.get("newStatus"),
            "old_quantity": item.get("oldQuantity", 0),
            "new_quantity": item.get("newQuantity", 0),
            "reason": item.get("reason"),
            "actor": item.get("staffId"),
            "timestamp": item["timestamp"].rstrip("Z"),
        }
        for item in payload
    ]


MIGRATIONS: Dict[int, Dict[str, Callable[[Any], Any]]] = {
    1: {
        "rooms": _rooms_v1_to_v2,
        "equipment": _equipment_v1_to_v2,
        "requests": _requests_v1_to_v2,
        "audit_log": _audit_v1_to_v2,
    },
}


def migrate(key: str, version: int, payload: Any) -> Any:
    """Upgrade a payload one version at a time to ``SCHEMA_VERSION``."""

    if version > SCHEMA_VERSION:
        raise SnapshotSchemaError(
            f"Snapshot '{key}' has version {version}; this build reads up to {SCHEMA_VERSION}."
        )
    while version < SCHEMA_VERSION:
        step = MIGRATIONS.get(version, {}).get(key)
        if step is None:
            raise SnapshotSchemaError(f"No migration for '{key}' from version {version}.")
        payload = step(payload)
        version += 1
    return payload


def save_blob(key: str, payload: Any, version: int = SCHEMA_VERSION, connection=None) -> None:
    """Write one keyed blob, replacing whatever was stored under the key."""

    db = connection or get_db()
    try:
        execute(
            db,
            """
            INSERT INTO snapshots (snapshot_key, schema_version, payload, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(snapshot_key) DO UPDATE SET
                schema_version = excluded.schema_version,
                payload = excluded.payload,
                updated_at = CURRENT_TIMESTAMP
            """,
            (key, version, json.dumps(payload)),
        )
    except sqlite3.OperationalError as exc:
        raise SnapshotSchemaError(_SCHEMA_INSTRUCTIONS) from exc


def load_blobs(connection=None) -> Dict[str, Any]:
    """Return every stored blob migrated to the current schema version."""

    db = connection or get_db()
    try:
        rows = query_all(db, "SELECT snapshot_key, schema_version, payload FROM snapshots")
    except sqlite3.OperationalError as exc:
        raise SnapshotSchemaError(_SCHEMA_INSTRUCTIONS) from exc
    blobs: Dict[str, Any] = {}
    for row in rows:
        key = row["snapshot_key"]
        try:
            payload = json.loads(row["payload"])
        except json.JSONDecodeError as exc:
            raise SnapshotSchemaError(f"Snapshot '{key}' is not valid JSON.") from exc
        blobs[key] = migrate(key, int(row["schema_version"]), payload)
    return blobs


def save_ledger(ledger: Ledger, connection=None) -> None:
    """Mirror the ledger registries into their keyed blobs."""

    db = connection or get_db()
    for key, payload in ledger.snapshot().items():
        save_blob(key, payload, connection=db)


def load_into(ledger: Ledger, connection=None) -> bool:
    """Fill ``ledger`` from stored blobs. Returns False when nothing is stored.

    Missing keys leave the ledger's current registry for that key untouched,
    so a store holding only requests still loads over the seed rooms.
    """

    blobs = load_blobs(connection)
    if not blobs:
        return False
    if "rooms" in blobs:
        rooms = [Room.from_dict(item) for item in blobs["rooms"]]
        ledger.rooms = {room.room_id: room for room in rooms}
    if "equipment" in blobs:
        equipment = [EquipmentType.from_dict(item) for item in blobs["equipment"]]
        ledger.equipment = {eq.equipment_id: eq for eq in equipment}
    if "requests" in blobs:
        ledger.requests = [BorrowRequest.from_dict(item) for item in blobs["requests"]]
    if "audit_log" in blobs:
        ledger.audit_log = [AuditEntry.from_dict(item) for item in blobs["audit_log"]]
    return True


def clear(connection=None) -> None:
    """Drop every stored blob."""

    db = connection or get_db()
    execute(db, "DELETE FROM snapshots")
