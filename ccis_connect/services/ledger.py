"""Inventory and request ledger for CCIS Connect.

The ledger owns the room registry, the equipment inventory, the borrow
request log (most recent first) and the equipment audit log. Every
transition validates its input, applies its delta while holding the ledger
lock, and returns an :class:`Outcome` instead of raising.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from ..models.entities import (
    Actor,
    AuditEntry,
    BorrowRequest,
    EquipmentType,
    FailureKind,
    Outcome,
    RequestStatus,
    Role,
    Room,
)
from .room_release import RoomReleaseScheduler, TimerFactory

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ChangeListener = Callable[["Ledger"], None]

ROOM_ACTIONS = ("entering", "leaving")
EQUIPMENT_FILTERS = ("all", "available", "unavailable")
ROOM_FILTERS = ("all", "available", "occupied")
OPEN_STATUSES = (RequestStatus.APPROVED, RequestStatus.OVERDUE)


def parse_quantity(value) -> Optional[int]:
    """Return ``value`` as an int when it denotes a whole number, else None."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(number) if number.is_integer() else None
    return None


def _positive_quantity(value) -> Optional[int]:
    number = parse_quantity(value)
    if number is None or number <= 0:
        return None
    return number


def new_request_id(now: datetime) -> str:
    """Unique request token whose prefix sorts by creation time."""

    return f"REQ-{now:%Y%m%d%H%M%S%f}-{uuid4().hex[:6]}"


class Ledger:
    """Owned, mutable state of rooms, equipment, requests and audit log."""

    def __init__(
        self,
        rooms: Iterable[Room] = (),
        equipment: Iterable[EquipmentType] = (),
        requests: Iterable[BorrowRequest] = (),
        audit_log: Iterable[AuditEntry] = (),
        clock: Clock = datetime.now,
        release_delay_seconds: float = 0,
        class_hours: tuple[int, int] = (8, 17),
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self.rooms: Dict[str, Room] = {room.room_id: room for room in rooms}
        self.equipment: Dict[str, EquipmentType] = {eq.equipment_id: eq for eq in equipment}
        self.requests: List[BorrowRequest] = list(requests)
        self.audit_log: List[AuditEntry] = list(audit_log)
        self.clock = clock
        self.class_hours = class_hours
        self.release_scheduler = RoomReleaseScheduler(
            release_delay_seconds,
            self._auto_release,
            timer_factory=timer_factory,
        )
        self._lock = threading.RLock()
        self._listeners: List[ChangeListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def subscribe(self, listener: ChangeListener) -> None:
        """Register a callback run after every successful mutation."""

        self._listeners.append(listener)

    def replace_state(self, other: "Ledger") -> None:
        """Adopt another ledger's registries, cancelling pending releases."""

        with self._lock:
            self.release_scheduler.cancel_all()
            self.rooms = other.rooms
            self.equipment = other.equipment
            self.requests = other.requests
            self.audit_log = other.audit_log
        self._changed()

    def snapshot(self) -> Dict[str, list]:
        """Serializable copy of every registry, taken under the ledger lock."""

        with self._lock:
            return {
                "rooms": [room.to_dict() for room in self.rooms.values()],
                "equipment": [eq.to_dict() for eq in self.equipment.values()],
                "requests": [request.to_dict() for request in self.requests],
                "audit_log": [entry.to_dict() for entry in self.audit_log],
            }

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_room(self, room_id: Optional[str]) -> Optional[Room]:
        return self.rooms.get(room_id) if room_id else None

    def get_equipment(self, equipment_id: Optional[str]) -> Optional[EquipmentType]:
        return self.equipment.get(equipment_id) if equipment_id else None

    def get_request(self, request_id: str) -> Optional[BorrowRequest]:
        return next((req for req in self.requests if req.request_id == request_id), None)

    def list_requests(
        self,
        status: RequestStatus | str | None = None,
        requester: Optional[str] = None,
    ) -> List[BorrowRequest]:
        with self._lock:
            items = list(self.requests)
        if status is not None:
            wanted = RequestStatus(status)
            items = [req for req in items if req.status == wanted]
        if requester is not None:
            items = [req for req in items if req.requester_id == requester]
        return items

    def pending_requests(self) -> List[BorrowRequest]:
        return self.list_requests(RequestStatus.PENDING)

    def recent_requests(self, limit: int = 10) -> List[BorrowRequest]:
        with self._lock:
            return list(self.requests[:limit])

    def requests_for(self, requester: str) -> List[BorrowRequest]:
        return self.list_requests(requester=requester)

    def outstanding_for(self, requester: str) -> List[BorrowRequest]:
        """Approved or overdue requests of a requester not yet returned."""

        return [req for req in self.requests_for(requester) if req.status in OPEN_STATUSES]

    def pending_count_for(self, equipment_id: str) -> int:
        return sum(1 for req in self.pending_requests() if req.equipment_id == equipment_id)

    def status_counts(self) -> Dict[str, int]:
        counts = Counter(req.status.value for req in self.list_requests())
        return {status.value: counts.get(status.value, 0) for status in RequestStatus}

    def equipment_stats(self) -> Dict[str, int]:
        with self._lock:
            items = list(self.equipment.values())
        total = sum(eq.quantity for eq in items)
        available = sum(eq.quantity for eq in items if eq.can_lend)
        return {
            "total": total,
            "available": available,
            "borrowed_types": sum(1 for eq in items if not eq.can_lend),
            "categories": len({eq.category for eq in items}),
            "locations": len({eq.location for eq in items}),
        }

    def equipment_by_location(self) -> Dict[str, List[EquipmentType]]:
        grouped: Dict[str, List[EquipmentType]] = {}
        for eq in self.equipment.values():
            grouped.setdefault(eq.location, []).append(eq)
        return grouped

    def filter_equipment(self, availability: str = "all", query: str = "") -> List[EquipmentType]:
        """Catalog view filtered by availability and a free-text query."""

        if availability not in EQUIPMENT_FILTERS:
            availability = "all"
        needle = (query or "").strip().lower()
        results = []
        for eq in self.equipment.values():
            if availability == "available" and not eq.can_lend:
                continue
            if availability == "unavailable" and eq.can_lend:
                continue
            if needle and not any(needle in text.lower() for text in (eq.name, eq.location, eq.category)):
                continue
            results.append(eq)
        return results

    def filter_rooms(self, occupancy: str = "all") -> List[Room]:
        rooms = list(self.rooms.values())
        if occupancy == "available":
            return [room for room in rooms if room.available]
        if occupancy == "occupied":
            return [room for room in rooms if not room.available]
        return rooms

    def validate_for_approval(self, request_id: str) -> Outcome:
        """Run the approval checks without mutating anything."""

        with self._lock:
            request = self.get_request(request_id)
            if request is None:
                return Outcome.fail(FailureKind.NOT_FOUND, "Request not found.")
            if not request.is_pending:
                return Outcome.fail(
                    FailureKind.VALIDATION,
                    f"Request is already {request.status.value}.",
                )
            eq = self.get_equipment(request.equipment_id)
            if eq is None:
                return Outcome.fail(FailureKind.NOT_FOUND, "Equipment not found in inventory.")
            if not eq.available:
                return Outcome.fail(FailureKind.AVAILABILITY, f"{eq.name} is currently unavailable.")
            if eq.quantity < request.quantity:
                return Outcome.fail(
                    FailureKind.AVAILABILITY,
                    f"Insufficient {eq.name} available. Only {eq.quantity} unit(s) available, "
                    f"but {request.quantity} requested.",
                )
            return Outcome.ok("Request can be approved.", request)

    # ------------------------------------------------------------------
    # Borrow request lifecycle
    # ------------------------------------------------------------------
    def submit_request(
        self,
        actor: Actor,
        equipment_id: str,
        quantity,
        room_id: Optional[str] = None,
        purpose: Optional[str] = None,
        duration: Optional[str] = None,
        return_date: Optional[str] = None,
        educational_purpose: Optional[str] = None,
    ) -> Outcome:
        """Append a pending request; inventory is debited only on approval."""

        with self._lock:
            if not actor.capabilities.can_borrow:
                return self._refuse(
                    "submit",
                    FailureKind.AUTHORIZATION,
                    "You do not have permission to borrow equipment. "
                    "Please log in as a student or faculty member.",
                )
            eq = self.get_equipment(equipment_id)
            if eq is None:
                return self._refuse("submit", FailureKind.NOT_FOUND, "Equipment not found.")
            if room_id and self.get_room(room_id) is None:
                return self._refuse("submit", FailureKind.NOT_FOUND, f"Room {room_id} not found.")
            if not eq.available:
                return self._refuse(
                    "submit",
                    FailureKind.AVAILABILITY,
                    f"{eq.name} is no longer available. Please browse the equipment list again.",
                )
            amount = _positive_quantity(quantity)
            if amount is None:
                return self._refuse("submit", FailureKind.VALIDATION, "Quantity must be a positive integer.")
            if amount > eq.quantity:
                return self._refuse(
                    "submit",
                    FailureKind.AVAILABILITY,
                    f"Requested quantity ({amount}) exceeds available {eq.name} ({eq.quantity}).",
                )

            now = self.clock()
            request = BorrowRequest(
                request_id=new_request_id(now),
                equipment_id=eq.equipment_id,
                equipment_name=eq.name,
                quantity=amount,
                requester=actor.name,
                requester_role=actor.role,
                created_at=now,
                room_id=room_id or None,
                requester_id=actor.key,
                purpose=purpose,
                duration=duration,
                return_date=return_date,
                educational_purpose=educational_purpose if actor.role == Role.FACULTY else None,
            )
            self.requests.insert(0, request)
            logger.info("%s requested %s x %s (%s)", actor.name, amount, eq.name, request.request_id)
        self._changed()
        return Outcome.ok(f"Request submitted for {amount} {eq.name}(s).", request)

    def approve_request(self, actor: Actor, request_id: str) -> Outcome:
        """Debit inventory, assign to the room and mark the request approved."""

        with self._lock:
            if not actor.capabilities.can_admin:
                return self._refuse("approve", FailureKind.AUTHORIZATION, "Only administrators can approve requests.")
            check = self.validate_for_approval(request_id)
            if not check:
                return self._refuse("approve", check.failure, check.message)
            request = check.value
            eq = self.equipment[request.equipment_id]
            eq.quantity -= request.quantity
            room = self.get_room(request.room_id)
            if room is not None:
                room.items[eq.equipment_id] = room.assigned(eq.equipment_id) + request.quantity
            request.status = RequestStatus.APPROVED
            request.acted_by = actor.name
            request.acted_at = self.clock()
            logger.info("%s approved %s; %s left: %s", actor.name, request_id, eq.name, eq.quantity)
        self._changed()
        return Outcome.ok(f"Request approved. {request.quantity} {eq.name}(s) assigned to {request.requester}.", request)

    def reject_request(self, actor: Actor, request_id: str, reason: Optional[str] = None) -> Outcome:
        with self._lock:
            if not actor.capabilities.can_admin:
                return self._refuse("reject", FailureKind.AUTHORIZATION, "Only administrators can reject requests.")
            request = self.get_request(request_id)
            if request is None:
                return self._refuse("reject", FailureKind.NOT_FOUND, "Request not found.")
            if not request.is_pending:
                return self._refuse("reject", FailureKind.VALIDATION, f"Request is already {request.status.value}.")
            request.status = RequestStatus.REJECTED
            request.acted_by = actor.name
            request.acted_at = self.clock()
            request.rejection_reason = (reason or "").strip() or None
            logger.info("%s rejected %s", actor.name, request_id)
        self._changed()
        return Outcome.ok("Request rejected.", request)

    def return_equipment(
        self,
        actor: Actor,
        equipment_id: str,
        quantity,
        room_id: Optional[str] = None,
    ) -> Outcome:
        """Put units back on the shelf, clamped to a room's assignment when scoped."""

        with self._lock:
            if not actor.capabilities.can_admin:
                return self._refuse("return", FailureKind.AUTHORIZATION, "Only administrators can mark returns.")
            amount = _positive_quantity(quantity)
            if amount is None:
                return self._refuse("return", FailureKind.VALIDATION, "Return quantity must be a positive integer.")
            eq = self.get_equipment(equipment_id)
            if eq is None:
                return self._refuse("return", FailureKind.NOT_FOUND, "Equipment not found.")
            if room_id:
                room = self.get_room(room_id)
                if room is None:
                    return self._refuse("return", FailureKind.NOT_FOUND, f"Room {room_id} not found.")
                assigned = room.assigned(equipment_id)
                if assigned <= 0:
                    return self._refuse(
                        "return", FailureKind.AVAILABILITY, f"{room.room_id} has no {eq.name} to return."
                    )
                amount = min(amount, assigned)
                room.items[equipment_id] = assigned - amount
            eq.quantity += amount
            logger.info("%s returned %s x %s from %s", actor.name, amount, eq.name, room_id or "inventory")
        self._changed()
        source = f" from {room_id}" if room_id else ""
        return Outcome.ok(f"Marked {amount} {eq.name}(s) as returned{source}.", amount)

    def return_request(self, actor: Actor, request_id: str) -> Outcome:
        """Close an approved or overdue request and restock its units.

        When the request names a room, only the units that room still holds
        come back to the shelf; units already returned or moved elsewhere are
        not counted twice.
        """

        with self._lock:
            if not actor.capabilities.can_admin:
                return self._refuse("return", FailureKind.AUTHORIZATION, "Only administrators can mark returns.")
            request = self.get_request(request_id)
            if request is None:
                return self._refuse("return", FailureKind.NOT_FOUND, "Request not found.")
            if request.status not in OPEN_STATUSES:
                return self._refuse(
                    "return",
                    FailureKind.VALIDATION,
                    f"Only approved or overdue requests can be returned; this one is {request.status.value}.",
                )
            eq = self.get_equipment(request.equipment_id)
            if eq is None:
                return self._refuse("return", FailureKind.NOT_FOUND, "Equipment not found.")
            amount = request.quantity
            room = self.get_room(request.room_id)
            if room is not None:
                assigned = room.assigned(eq.equipment_id)
                if assigned <= 0:
                    return self._refuse(
                        "return", FailureKind.AVAILABILITY, f"{room.room_id} has no {eq.name} to return."
                    )
                amount = min(amount, assigned)
                room.items[eq.equipment_id] = assigned - amount
            eq.quantity += amount
            request.status = RequestStatus.RETURNED
            request.returned_at = self.clock()
            logger.info("%s closed %s as returned", actor.name, request_id)
        self._changed()
        return Outcome.ok(f"{amount} {eq.name}(s) returned by {request.requester}.", request)

    def mark_overdue(self, today: Optional[date] = None) -> int:
        """Flag approved requests whose return date has passed."""

        today = today or self.clock().date()
        flagged = 0
        with self._lock:
            for request in self.requests:
                if request.status != RequestStatus.APPROVED or not request.return_date:
                    continue
                try:
                    due = date.fromisoformat(request.return_date[:10])
                except ValueError:
                    logger.warning("Unparseable return date %r on %s", request.return_date, request.request_id)
                    continue
                if due < today:
                    request.status = RequestStatus.OVERDUE
                    flagged += 1
        if flagged:
            logger.info("Marked %s request(s) overdue", flagged)
            self._changed()
        return flagged

    # ------------------------------------------------------------------
    # Room-centric inventory
    # ------------------------------------------------------------------
    def move_items(
        self,
        actor: Actor,
        source_id: str,
        destination_id: str,
        equipment_id: str,
        quantity,
    ) -> Outcome:
        """Shift assigned units between rooms, clamped to what the source holds."""

        with self._lock:
            if not actor.capabilities.can_admin:
                return self._refuse("move", FailureKind.AUTHORIZATION, "Only administrators can move items.")
            source = self.get_room(source_id)
            destination = self.get_room(destination_id)
            if source is None or destination is None:
                return self._refuse("move", FailureKind.NOT_FOUND, "Choose both From and To rooms.")
            if source.room_id == destination.room_id:
                return self._refuse("move", FailureKind.VALIDATION, "From and To cannot be the same room.")
            eq = self.get_equipment(equipment_id)
            if eq is None:
                return self._refuse("move", FailureKind.NOT_FOUND, "Equipment not found.")
            amount = _positive_quantity(quantity)
            if amount is None:
                return self._refuse("move", FailureKind.VALIDATION, "Move quantity must be a positive integer.")
            held = source.assigned(equipment_id)
            if held <= 0:
                return self._refuse("move", FailureKind.AVAILABILITY, f"{source.room_id} has no {eq.name} to move.")
            amount = min(amount, held)
            source.items[equipment_id] = held - amount
            destination.items[equipment_id] = destination.assigned(equipment_id) + amount
            logger.info("%s moved %s x %s %s -> %s", actor.name, amount, eq.name, source_id, destination_id)
        self._changed()
        return Outcome.ok(f"Moved {amount} {eq.name}(s) from {source_id} to {destination_id}.", amount)

    # ------------------------------------------------------------------
    # Administrative equipment status
    # ------------------------------------------------------------------
    def update_equipment_status(
        self,
        actor: Actor,
        equipment_id: str,
        status: str,
        available: bool,
        reason: str,
        quantity=None,
    ) -> Outcome:
        """Overwrite availability, quantity and label; record an audit entry."""

        with self._lock:
            if not actor.capabilities.can_admin:
                return self._refuse("status", FailureKind.AUTHORIZATION, "Only administrators can update equipment.")
            eq = self.get_equipment(equipment_id)
            if eq is None:
                return self._refuse("status", FailureKind.NOT_FOUND, "Equipment not found.")
            if not (reason or "").strip():
                return self._refuse("status", FailureKind.VALIDATION, "Please provide a reason for the status update.")
            new_quantity = eq.quantity
            if quantity is not None and quantity != "":
                new_quantity = parse_quantity(quantity)
                if new_quantity is None or new_quantity < 0:
                    return self._refuse("status", FailureKind.VALIDATION, "Quantity must be a non-negative integer.")
            entry = self._apply_status(actor, eq, status, available, new_quantity, reason.strip())
        self._changed()
        return Outcome.ok("Equipment status updated successfully.", entry)

    def bulk_update_status(self, actor: Actor, equipment_ids: Iterable[str], status: str) -> Outcome:
        ids = list(dict.fromkeys(equipment_ids))
        with self._lock:
            if not actor.capabilities.can_admin:
                return self._refuse("bulk", FailureKind.AUTHORIZATION, "Only administrators can update equipment.")
            if not ids:
                return self._refuse("bulk", FailureKind.VALIDATION, "Please select at least one equipment item.")
            if not (status or "").strip():
                return self._refuse("bulk", FailureKind.VALIDATION, "Please select a status to apply.")
            missing = [equipment_id for equipment_id in ids if equipment_id not in self.equipment]
            if missing:
                return self._refuse("bulk", FailureKind.NOT_FOUND, f"Unknown equipment: {', '.join(missing)}.")
            entries = [
                self._apply_status(
                    actor,
                    self.equipment[equipment_id],
                    status,
                    status == "Available",
                    self.equipment[equipment_id].quantity,
                    "Bulk status update",
                )
                for equipment_id in ids
            ]
        self._changed()
        return Outcome.ok(f"Bulk update completed: {len(entries)} items updated.", entries)

    def _apply_status(
        self,
        actor: Actor,
        eq: EquipmentType,
        status: str,
        available: bool,
        quantity: int,
        reason: str,
    ) -> AuditEntry:
        now = self.clock()
        entry = AuditEntry(
            entry_id=uuid4().hex,
            equipment_id=eq.equipment_id,
            equipment_name=eq.name,
            old_status=eq.status,
            new_status=status,
            old_quantity=eq.quantity,
            new_quantity=quantity,
            reason=reason,
            actor=actor.name,
            timestamp=now,
        )
        eq.status = status
        eq.available = bool(available)
        eq.quantity = quantity
        self.audit_log.insert(0, entry)
        logger.info("%s set %s to %s (%s)", actor.name, eq.name, status, reason)
        return entry

    # ------------------------------------------------------------------
    # Room occupancy
    # ------------------------------------------------------------------
    def toggle_room(self, actor: Actor, room_id: str) -> Outcome:
        with self._lock:
            if not actor.capabilities.can_update_rooms:
                return self._refuse(
                    "toggle", FailureKind.AUTHORIZATION, "Only faculty and administrators can update room status."
                )
            room = self.get_room(room_id)
            if room is None:
                return self._refuse("toggle", FailureKind.NOT_FOUND, f"Room {room_id} not found.")
            self.release_scheduler.cancel(room_id)
            room.available = not room.available
        self._changed()
        label = "Available" if room.available else "Occupied"
        return Outcome.ok(f"Room {room_id} marked as {label}.", room)

    def check_in(self, actor: Actor, room_id: str, action: str) -> Outcome:
        """Apply a scanned room code: ``entering`` occupies, ``leaving`` frees."""

        with self._lock:
            if not actor.capabilities.can_update_rooms:
                return self._refuse(
                    "scan", FailureKind.AUTHORIZATION, "Only faculty and administrators can update room status."
                )
            if action not in ROOM_ACTIONS:
                return self._refuse("scan", FailureKind.VALIDATION, "Choose whether you are entering or leaving.")
            room = self.get_room(room_id)
            if room is None:
                return self._refuse("scan", FailureKind.NOT_FOUND, "Room not found. Please scan a valid QR code.")
            if actor.role != Role.ADMIN:
                if room_id not in actor.scheduled_rooms:
                    return self._refuse(
                        "scan",
                        FailureKind.AUTHORIZATION,
                        f"Cannot update current status. You are not scheduled for {room_id} at this time.",
                    )
                start, end = self.class_hours
                if not start <= self.clock().hour < end:
                    return self._refuse(
                        "scan",
                        FailureKind.VALIDATION,
                        f"Cannot update outside of class hours ({start:02d}:00 - {end:02d}:00).",
                    )
            self.release_scheduler.cancel(room_id)
            if action == "entering":
                room.available = False
                self.release_scheduler.schedule(room_id)
                message = f"Room {room_id} marked as Occupied. Class started."
            else:
                room.available = True
                message = f"Room {room_id} marked as Available. Class ended."
            logger.info("%s scanned %s (%s)", actor.name, room_id, action)
        self._changed()
        return Outcome.ok(message, room)

    def _auto_release(self, room_id: str, generation: int) -> None:
        with self._lock:
            if not self.release_scheduler.is_current(room_id, generation):
                logger.debug("Auto release of %s superseded", room_id)
                return
            self.release_scheduler.complete(room_id, generation)
            room = self.get_room(room_id)
            if room is None or room.available:
                return
            room.available = True
            logger.info("Auto released %s", room_id)
        self._changed()

    # ------------------------------------------------------------------
    def _refuse(self, operation: str, failure: FailureKind, message: str) -> Outcome:
        logger.warning("Refused %s (%s): %s", operation, failure.value, message)
        return Outcome.fail(failure, message)
