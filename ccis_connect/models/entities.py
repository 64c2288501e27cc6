"""Dataclass-style entity representations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from flask_login import AnonymousUserMixin, UserMixin


class Role(str, Enum):
    """Roles a CCIS Connect session can hold."""

    GUEST = "guest"
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    """Lifecycle states of a borrow request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"
    OVERDUE = "overdue"


class FailureKind(str, Enum):
    """Why a ledger transition was refused."""

    VALIDATION = "validation"
    AVAILABILITY = "availability"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Capabilities:
    """Gates on which transitions a caller may invoke."""

    can_borrow: bool = False
    can_update_rooms: bool = False
    can_admin: bool = False


_CAPABILITIES = {
    Role.GUEST: Capabilities(),
    Role.STUDENT: Capabilities(can_borrow=True),
    Role.FACULTY: Capabilities(can_borrow=True, can_update_rooms=True),
    Role.ADMIN: Capabilities(can_update_rooms=True, can_admin=True),
}


def capabilities_for(role: Role | str) -> Capabilities:
    """Return the capability flags granted to a role."""

    return _CAPABILITIES[Role(role)]


@dataclass(frozen=True)
class Actor:
    """Whoever invokes a ledger transition."""

    name: str
    role: Role = Role.GUEST
    scheduled_rooms: Tuple[str, ...] = ()
    identity: str = ""

    @property
    def key(self) -> str:
        """Stable requester identity; the display name when none is known."""
        return self.identity or self.name

    @property
    def capabilities(self) -> Capabilities:
        return capabilities_for(self.role)


@dataclass
class User(UserMixin):
    """User entity compatible with Flask-Login."""

    user_id: int
    name: str
    email: str
    password_hash: str
    role: Role
    created_at: datetime
    scheduled_rooms: Tuple[str, ...] = ()
    is_active: bool = True

    def get_id(self) -> str:
        return str(self.user_id)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def capabilities(self) -> Capabilities:
        return capabilities_for(self.role)

    @property
    def actor(self) -> Actor:
        return Actor(
            name=self.name,
            role=self.role,
            scheduled_rooms=self.scheduled_rooms,
            identity=self.email,
        )


class Guest(AnonymousUserMixin):
    """Anonymous visitor; may browse but not act."""

    name = "Guest"
    role = Role.GUEST
    is_admin = False

    @property
    def capabilities(self) -> Capabilities:
        return capabilities_for(Role.GUEST)

    @property
    def actor(self) -> Actor:
        return Actor(name=self.name, role=Role.GUEST)


@dataclass
class Room:
    """Campus room on the interactive map."""

    room_id: str
    name: str
    floor: Optional[str] = None
    capacity: Optional[int] = None
    room_type: Optional[str] = None
    available: bool = True
    items: Dict[str, int] = field(default_factory=dict)

    def assigned(self, equipment_id: str) -> int:
        return self.items.get(equipment_id, 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Room":
        return cls(
            room_id=data["room_id"],
            name=data.get("name") or data["room_id"],
            floor=data.get("floor"),
            capacity=data.get("capacity"),
            room_type=data.get("room_type"),
            available=bool(data.get("available", True)),
            items={key: int(value) for key, value in (data.get("items") or {}).items()},
        )


@dataclass
class EquipmentType:
    """Borrowable equipment kind and the units currently on the shelf."""

    equipment_id: str
    name: str
    quantity: int
    category: str = "General"
    location: str = "Equipment Room"
    available: bool = True
    status: str = "Available"

    @property
    def can_lend(self) -> bool:
        return self.available and self.quantity > 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EquipmentType":
        available = bool(data.get("available", True))
        return cls(
            equipment_id=data["equipment_id"],
            name=data.get("name") or data["equipment_id"],
            quantity=int(data.get("quantity", 0)),
            category=data.get("category") or "General",
            location=data.get("location") or "Equipment Room",
            available=available,
            status=data.get("status") or ("Available" if available else "Unavailable"),
        )


@dataclass
class BorrowRequest:
    """Request to borrow units of one equipment type."""

    request_id: str
    equipment_id: str
    equipment_name: str
    quantity: int
    requester: str
    requester_role: Role
    created_at: datetime
    room_id: Optional[str] = None
    requester_id: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    purpose: Optional[str] = None
    duration: Optional[str] = None
    return_date: Optional[str] = None
    educational_purpose: Optional[str] = None
    acted_by: Optional[str] = None
    acted_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    returned_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["requester_role"] = self.requester_role.value
        data["status"] = self.status.value
        for key in ("created_at", "acted_at", "returned_at"):
            value = data[key]
            data[key] = value.isoformat() if value else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BorrowRequest":
        def _parse(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return cls(
            request_id=data["request_id"],
            equipment_id=data["equipment_id"],
            equipment_name=data.get("equipment_name") or data["equipment_id"],
            quantity=int(data["quantity"]),
            requester=data.get("requester") or "Unknown",
            requester_role=Role(data.get("requester_role") or Role.GUEST.value),
            created_at=_parse(data.get("created_at")) or datetime.now(),
            room_id=data.get("room_id"),
            requester_id=data.get("requester_id") or data.get("requester") or "Unknown",
            status=RequestStatus(data.get("status") or RequestStatus.PENDING.value),
            purpose=data.get("purpose"),
            duration=data.get("duration"),
            return_date=data.get("return_date"),
            educational_purpose=data.get("educational_purpose"),
            acted_by=data.get("acted_by"),
            acted_at=_parse(data.get("acted_at")),
            rejection_reason=data.get("rejection_reason"),
            returned_at=_parse(data.get("returned_at")),
        )


@dataclass
class AuditEntry:
    """Record of an administrative equipment status change."""

    entry_id: str
    equipment_id: str
    equipment_name: str
    old_status: str
    new_status: str
    old_quantity: int
    new_quantity: int
    reason: str
    actor: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            entry_id=str(data["entry_id"]),
            equipment_id=data["equipment_id"],
            equipment_name=data.get("equipment_name") or data["equipment_id"],
            old_status=data.get("old_status") or "",
            new_status=data.get("new_status") or "",
            old_quantity=int(data.get("old_quantity", 0)),
            new_quantity=int(data.get("new_quantity", 0)),
            reason=data.get("reason") or "",
            actor=data.get("actor") or "Unknown",
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class Outcome:
    """Reportable result of a ledger transition."""

    success: bool
    message: str
    failure: Optional[FailureKind] = None
    value: Any = None

    @classmethod
    def ok(cls, message: str, value: Any = None) -> "Outcome":
        return cls(True, message, None, value)

    @classmethod
    def fail(cls, failure: FailureKind, message: str) -> "Outcome":
        return cls(False, message, failure)

    def __bool__(self) -> bool:
        return self.success
