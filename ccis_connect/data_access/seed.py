"""Deterministic seed data for CCIS Connect."""

from __future__ import annotations

import json

from ..models.entities import EquipmentType, Room
from ..services.ledger import Ledger
from .db import execute, get_db
from .users_dao import hash_password

DEMO_PASSWORD = "Password123!"

ROOM_IDS = ("100A", "100B", "100C", "100D", "100E", "100F")

USERS = [
    ("Ada Admin", "ada.admin@ccis.edu", "admin", []),
    ("Fiona Faculty", "fiona.faculty@ccis.edu", "faculty", ["100A", "100B"]),
    ("Alice Student", "alice@student.ccis.edu", "student", []),
    ("Ben Student", "ben@student.ccis.edu", "student", []),
]

ROOMS = [
    Room("100A", "Computer Laboratory 1", floor="1st Floor", capacity=40, room_type="Laboratory"),
    Room("100B", "Computer Laboratory 2", floor="1st Floor", capacity=40, room_type="Laboratory"),
    Room("100C", "Lecture Room", floor="1st Floor", capacity=50, room_type="Lecture"),
    Room("100D", "Faculty Room", floor="1st Floor", capacity=15, room_type="Office"),
    Room("100E", "Conference Room", floor="1st Floor", capacity=20, room_type="Conference"),
    Room("100F", "Research Laboratory", floor="1st Floor", capacity=25, room_type="Laboratory"),
]

EQUIPMENT = [
    EquipmentType("laptop", "Laptop", 12, category="Computing", location="CCIS Equipment Room"),
    EquipmentType("tv", "TV", 3, category="Audio-Visual", location="CCIS Equipment Room"),
    EquipmentType("projector", "Projector", 4, category="Audio-Visual", location="Faculty Room"),
    EquipmentType("hdmi", "HDMI Cable", 10, category="Accessories", location="Faculty Room"),
    EquipmentType("speaker", "Portable Speaker", 2, category="Audio-Visual", location="CCIS Equipment Room"),
]


def default_ledger(**options) -> Ledger:
    """Build a ledger holding fresh copies of the seed rooms and equipment."""

    rooms = [Room.from_dict(room.to_dict()) for room in ROOMS]
    equipment = [EquipmentType.from_dict(eq.to_dict()) for eq in EQUIPMENT]
    return Ledger(rooms=rooms, equipment=equipment, **options)


def seed() -> None:
    """Populate the users table with demo accounts."""

    db = get_db()
    password_hash = hash_password(DEMO_PASSWORD)
    for name, email, role, scheduled_rooms in USERS:
        execute(
            db,
            """
            INSERT OR IGNORE INTO users (name, email, password_hash, role, scheduled_rooms, is_active)
            VALUES (?, ?, ?, ?, ?, 1)
            """,
            (name, email, password_hash, role, json.dumps(scheduled_rooms)),
        )
