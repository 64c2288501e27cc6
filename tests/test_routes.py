"""HTTP flows for rooms, borrowing and administration."""

from __future__ import annotations

from datetime import date, timedelta

from ccis_connect.models.entities import RequestStatus


def login(client, email: str, password: str = "Password123!"):
    return client.post(
        "/auth/login",
        data={"email": email, "password": password},
        follow_redirects=True,
    )


def borrow_form(**overrides):
    data = {
        "quantity": "2",
        "room_id": "100A",
        "purpose": "Capstone presentation",
        "duration": "3 hours",
        "return_date": (date.today() + timedelta(days=3)).isoformat(),
    }
    data.update(overrides)
    return data


def test_campus_map_and_catalog_are_public(client):
    home = client.get("/")
    assert home.status_code == 200
    assert b"Computer Laboratory 1" in home.data
    assert b"Pending requests:</strong> 0" in home.data

    catalog = client.get("/equipment/?q=audio")
    assert catalog.status_code == 200
    assert b"Portable Speaker" in catalog.data
    assert b"HDMI Cable" not in catalog.data

    by_location = client.get("/equipment/?view=status")
    assert b"Faculty Room" in by_location.data

    rooms = client.get("/rooms/?filter=occupied")
    assert b"No rooms match this filter." in rooms.data


def test_student_submits_borrow_request(client, app_ledger, student_user):
    login(client, student_user.email)

    response = client.post("/equipment/laptop/request", data=borrow_form(), follow_redirects=True)
    assert response.status_code == 200
    assert b"Request submitted for 2 Laptop(s)." in response.data
    assert b"My Requests" in response.data

    [request] = app_ledger.pending_requests()
    assert request.requester_id == student_user.email
    assert request.room_id == "100A"
    assert request.purpose == "Capstone presentation"
    assert app_ledger.equipment["laptop"].quantity == 12


def test_pending_request_blocks_another_submission(client, app_ledger, student_user):
    login(client, student_user.email)
    client.post("/equipment/laptop/request", data=borrow_form(), follow_redirects=True)

    page = client.get("/equipment/hdmi/request")
    assert b"You already have pending request(s)." in page.data

    blocked = client.post("/equipment/hdmi/request", data=borrow_form(quantity="1"), follow_redirects=True)
    assert b"You already have pending request(s)." in blocked.data
    assert len(app_ledger.requests) == 1


def test_borrow_form_validation(client, app_ledger, student_user, faculty_user):
    login(client, student_user.email)
    past = client.post(
        "/equipment/laptop/request",
        data=borrow_form(return_date=(date.today() - timedelta(days=1)).isoformat()),
    )
    assert b"Return date cannot be in the past" in past.data

    too_many = client.post("/equipment/speaker/request", data=borrow_form(quantity="5"), follow_redirects=True)
    assert b"Requested quantity (5) exceeds available Portable Speaker (2)." in too_many.data
    client.get("/auth/logout")

    login(client, faculty_user.email)
    missing = client.post("/equipment/projector/request", data=borrow_form())
    assert b"Educational purpose details are required for faculty requests" in missing.data
    assert app_ledger.requests == []


def test_admin_cannot_borrow(client, admin_user):
    login(client, admin_user.email)
    assert client.get("/equipment/laptop/request").status_code == 403
    assert client.get("/equipment/drone/request").status_code == 403


def test_unknown_equipment_is_404(client, student_user):
    login(client, student_user.email)
    assert client.get("/equipment/drone/request").status_code == 404


def test_admin_approves_and_rejects(client, app_ledger, student, faculty, admin_user):
    first = app_ledger.submit_request(student, "laptop", 5, room_id="100A").value
    second = app_ledger.submit_request(faculty, "tv", 1, educational_purpose="Seminar").value
    login(client, admin_user.email)

    queue = client.get("/admin/requests")
    assert first.request_id.encode() in queue.data

    approved = client.post(f"/admin/requests/{first.request_id}/approve", follow_redirects=True)
    assert b"Request approved. 5 Laptop(s) assigned to Alice Student." in approved.data
    assert app_ledger.equipment["laptop"].quantity == 7
    assert app_ledger.rooms["100A"].assigned("laptop") == 5

    rejected = client.post(
        f"/admin/requests/{second.request_id}/reject",
        data={"reason": "Projector room booked"},
        follow_redirects=True,
    )
    assert b"Request rejected." in rejected.data
    assert second.status == RequestStatus.REJECTED
    assert second.rejection_reason == "Projector room booked"

    returned = client.post(f"/admin/requests/{first.request_id}/return", follow_redirects=True)
    assert b"5 Laptop(s) returned by Alice Student." in returned.data
    assert app_ledger.equipment["laptop"].quantity == 12

    overdue = client.post("/admin/overdue", follow_redirects=True)
    assert b"0 request(s) marked overdue." in overdue.data


def test_admin_moves_and_returns_room_items(client, app_ledger, admin_user):
    app_ledger.rooms["100A"].items["laptop"] = 3
    login(client, admin_user.email)

    moved = client.post(
        "/admin/move",
        data={"source": "100A", "destination": "100B", "equipment_id": "laptop", "quantity": "5"},
        follow_redirects=True,
    )
    assert b"Moved 3 Laptop(s) from 100A to 100B." in moved.data
    assert app_ledger.rooms["100B"].assigned("laptop") == 3

    same = client.post(
        "/admin/move",
        data={"source": "100B", "destination": "100B", "equipment_id": "laptop", "quantity": "1"},
        follow_redirects=True,
    )
    assert b"From and To cannot be the same room." in same.data

    returned = client.post(
        "/admin/return",
        data={"equipment_id": "laptop", "room_id": "100B", "quantity": "1"},
        follow_redirects=True,
    )
    assert b"Marked 1 Laptop(s) as returned from 100B." in returned.data
    assert app_ledger.equipment["laptop"].quantity == 13
    assert app_ledger.rooms["100B"].assigned("laptop") == 2


def test_admin_equipment_status_and_audit(client, app_ledger, student, admin_user):
    app_ledger.submit_request(student, "projector", 1)
    login(client, admin_user.email)

    no_reason = client.post(
        "/admin/equipment/projector/status",
        data={"projector-status": "Under Maintenance", "projector-reason": ""},
        follow_redirects=True,
    )
    assert b"Please provide a reason for the status update." in no_reason.data
    assert app_ledger.equipment["projector"].available

    updated = client.post(
        "/admin/equipment/projector/status",
        data={"projector-status": "Under Maintenance", "projector-reason": "Lamp replacement", "projector-quantity": "3"},
        follow_redirects=True,
    )
    assert b"Equipment status updated successfully." in updated.data
    assert b"1 pending request(s) that can no longer be approved" in updated.data
    projector = app_ledger.equipment["projector"]
    assert (projector.status, projector.available, projector.quantity) == ("Under Maintenance", False, 3)

    bulk = client.post(
        "/admin/equipment/bulk-status",
        data={"equipment_ids": ["tv", "speaker"], "status": "Reserved"},
        follow_redirects=True,
    )
    assert b"Bulk update completed: 2 items updated." in bulk.data

    audit = client.get("/admin/audit")
    assert b"Lamp replacement" in audit.data
    assert audit.data.count(b"Bulk status update") == 2

    assert client.post("/admin/equipment/drone/status", data={}).status_code == 404


def test_room_toggle_and_scan_permissions(client, app_ledger, student_user, faculty_user, admin_user):
    login(client, student_user.email)
    assert client.post("/rooms/100A/toggle").status_code == 403
    client.get("/auth/logout")

    login(client, faculty_user.email)
    toggled = client.post("/rooms/100C/toggle", follow_redirects=True)
    assert b"Room 100C marked as Occupied." in toggled.data
    assert not app_ledger.rooms["100C"].available
    client.get("/auth/logout")

    login(client, admin_user.email)
    scanned = client.post("/rooms/scan", data={"room_code": " 100f ", "action": "entering"}, follow_redirects=True)
    assert b"Room 100F marked as Occupied. Class started." in scanned.data
    assert not app_ledger.rooms["100F"].available
    assert app_ledger.release_scheduler.pending_rooms() == []

    unknown = client.post("/rooms/scan", data={"room_code": "999Z", "action": "leaving"}, follow_redirects=True)
    assert b"Room not found. Please scan a valid QR code." in unknown.data


def test_room_toggle_ignores_referer(client, faculty_user):
    login(client, faculty_user.email)
    resp = client.post("/rooms/100C/toggle", headers={"Referer": "https://evil.example.com/"})
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/rooms/")
