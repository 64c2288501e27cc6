"""Authentication flow tests."""

from __future__ import annotations

from ccis_connect.data_access import users_dao
from ccis_connect.data_access.db import execute, get_db


def login(client, email: str, password: str = "Password123!"):
    return client.post(
        "/auth/login",
        data={"email": email, "password": password},
        follow_redirects=True,
    )


def test_register_login_and_access_protected(client):
    """Register a new student, login again, and reach a protected route."""

    response = client.post(
        "/auth/register",
        data={
            "name": "Test Student",
            "email": "Test.Student@ccis.edu",
            "password": "Password123!",
            "confirm_password": "Password123!",
            "role": "student",
        },
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert b"Welcome to CCIS Connect!" in response.data

    client.get("/auth/logout", follow_redirects=True)

    login_resp = login(client, "test.student@ccis.edu")
    assert login_resp.status_code == 200
    assert b"Signed in as Test Student (student)" in login_resp.data

    protected_resp = client.get("/equipment/requests/mine")
    assert protected_resp.status_code == 200


def test_register_rejects_duplicates_and_admin_role(client):
    duplicate = client.post(
        "/auth/register",
        data={
            "name": "Alice Again",
            "email": "alice@student.ccis.edu",
            "password": "Password123!",
            "confirm_password": "Password123!",
            "role": "student",
        },
        follow_redirects=True,
    )
    assert b"User with this email already exists" in duplicate.data

    self_promoted = client.post(
        "/auth/register",
        data={
            "name": "Mallory",
            "email": "mallory@ccis.edu",
            "password": "Password123!",
            "confirm_password": "Password123!",
            "role": "admin",
        },
        follow_redirects=True,
    )
    assert b"Not a valid choice" in self_promoted.data


def test_invalid_credentials_fail(client):
    """Invalid sign-ins should prompt an error."""

    response = login(client, "nonexistent@ccis.edu", "WrongPassword!")
    assert response.status_code == 200
    assert b"Invalid email or password" in response.data


def test_admin_routes_require_admin_privileges(client, student_user):
    """Students and faculty cannot reach admin-only endpoints."""

    login(client, student_user.email)

    resp = client.get("/admin/", follow_redirects=False)
    assert resp.status_code == 403
    assert b"Access Denied" in resp.data

    client.get("/auth/logout", follow_redirects=True)

    admin_resp = login(client, "ada.admin@ccis.edu")
    assert b"Admin Dashboard" in admin_resp.data
    assert client.get("/admin/", follow_redirects=False).status_code == 200


def test_guest_is_sent_to_login(client):
    resp = client.get("/equipment/requests/mine", follow_redirects=False)
    assert resp.status_code == 302
    assert "/auth/login" in resp.headers["Location"]


def test_deactivated_user_cannot_login(client, app, student_user):
    """Inactive accounts should be prevented from signing in."""

    with app.app_context():
        users_dao.deactivate_user(student_user.user_id)

    response = login(client, student_user.email)
    assert response.status_code == 200
    assert b"has been deactivated" in response.data


def test_stale_role_forces_reauthentication(client, app, student_user):
    """A session whose stored role is no longer recognised is signed out."""

    login(client, student_user.email)
    assert client.get("/equipment/requests/mine").status_code == 200

    with app.app_context():
        execute(get_db(), "UPDATE users SET role = 'staff' WHERE user_id = ?", (student_user.user_id,))

    resp = client.get("/equipment/requests/mine", follow_redirects=False)
    assert resp.status_code == 302
    assert "/auth/login" in resp.headers["Location"]
