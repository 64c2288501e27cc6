"""Data access helpers for the users table."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable, Optional

import bcrypt

from ..models.entities import Role, User
from .db import execute, get_db, query_all, query_one

ALLOWED_ROLES = {Role.STUDENT.value, Role.FACULTY.value, Role.ADMIN.value}


class StaleUserError(ValueError):
    """Stored user row predates the current role model."""


def _row_to_user(row) -> User:
    if row["role"] not in ALLOWED_ROLES:
        raise StaleUserError(f"User {row['user_id']} has unsupported role '{row['role']}'")
    scheduled = json.loads(row["scheduled_rooms"]) if row["scheduled_rooms"] else []
    created_at = row["created_at"]
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at.replace(" ", "T"))
    return User(
        user_id=row["user_id"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        created_at=created_at,
        scheduled_rooms=tuple(scheduled),
        is_active=bool(row["is_active"]),
    )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_user(
    name: str,
    email: str,
    password_hash: str,
    role: str = "student",
    scheduled_rooms: Optional[Iterable[str]] = None,
) -> User:
    """Insert a new user and return the persisted entity."""

    role = Role(role).value
    if role not in ALLOWED_ROLES:
        raise ValueError(f"Unsupported role '{role}'")

    db = get_db()
    cursor = execute(
        db,
        """
        INSERT INTO users (name, email, password_hash, role, scheduled_rooms)
        VALUES (?, ?, ?, ?, ?)
        """,
        (name, email.lower(), password_hash, role, json.dumps(list(scheduled_rooms or []))),
    )
    return get_user_by_id(cursor.lastrowid, connection=db)


def get_user_by_id(user_id: int, connection=None) -> User | None:
    """Fetch a user by primary key."""

    db = connection or get_db()
    row = query_one(
        db,
        "SELECT * FROM users WHERE user_id = ?",
        (user_id,),
    )
    return _row_to_user(row) if row else None


def get_user_by_email(email: str) -> User | None:
    """Fetch a user by unique email address."""

    db = get_db()
    row = query_one(
        db,
        "SELECT * FROM users WHERE email = ?",
        (email.lower(),),
    )
    return _row_to_user(row) if row else None


def list_users(include_inactive: bool = True) -> list[User]:
    """Return all users, optionally filtering out inactive entries."""

    db = get_db()
    query = "SELECT * FROM users"
    if not include_inactive:
        query += " WHERE is_active = 1"
    query += " ORDER BY name ASC"
    return [_row_to_user(row) for row in query_all(db, query)]


def set_role(user_id: int, role: str) -> None:
    """Update the role for a user."""

    if role not in ALLOWED_ROLES:
        raise ValueError(f"Unsupported role '{role}'")

    db = get_db()
    execute(
        db,
        "UPDATE users SET role = ? WHERE user_id = ?",
        (role, user_id),
    )


def set_scheduled_rooms(user_id: int, room_ids: Iterable[str]) -> None:
    """Replace the rooms a faculty member is scheduled to teach in."""

    db = get_db()
    execute(
        db,
        "UPDATE users SET scheduled_rooms = ? WHERE user_id = ?",
        (json.dumps(list(room_ids)), user_id),
    )


def deactivate_user(user_id: int) -> None:
    """Soft delete a user record."""

    db = get_db()
    execute(
        db,
        "UPDATE users SET is_active = 0 WHERE user_id = ?",
        (user_id,),
    )


def activate_user(user_id: int) -> None:
    """Reactivate a previously deactivated user."""

    db = get_db()
    execute(
        db,
        "UPDATE users SET is_active = 1 WHERE user_id = ?",
        (user_id,),
    )


def verify_password(stored_hash: str, candidate: str) -> bool:
    """Compare a stored hash against a candidate password."""

    if not stored_hash:
        return False
    return bcrypt.checkpw(candidate.encode("utf-8"), stored_hash.encode("utf-8"))
