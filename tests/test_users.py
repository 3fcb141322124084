"""
Tests for user lookup and admin user management.

These tests verify:
  - Users can read their own record but not someone else's (403)
  - Admins can read any user, search by email/status and change status
  - Non-admins are rejected from admin endpoints (403)
  - A blocked user can no longer receive new transactions
  - Emails listed in ADMIN_EMAILS register as admins
"""

from app.config import settings


class TestAdminProvisioning:

    async def test_configured_email_registers_as_admin(self, client, register, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_EMAILS", ["Ops@Example.com"])

        ops = await register("Ops Team", "ops@example.com")
        other = await register("Regular User", "regular@example.com")

        assert ops.user["role"] == "admin"
        assert other.user["role"] == "user"

        response = await client.get("/api/users/search", headers=ops.headers)
        assert response.status_code == 200


class TestGetUser:
    """Tests for GET /api/users/{user_id}."""

    async def test_get_self(self, client, sender):
        response = await client.get(f"/api/users/{sender.id}", headers=sender.headers)
        assert response.status_code == 200
        assert response.json()["email"] == sender.email
        assert response.json()["balance_cents"] == 100_000

    async def test_get_other_user_forbidden(self, client, sender, receiver):
        response = await client.get(f"/api/users/{receiver.id}", headers=sender.headers)
        assert response.status_code == 403
        assert response.json()["error_type"] == "FORBIDDEN"

    async def test_admin_gets_any_user(self, client, admin, receiver):
        response = await client.get(f"/api/users/{receiver.id}", headers=admin.headers)
        assert response.status_code == 200
        assert response.json()["id"] == receiver.id

    async def test_admin_gets_unknown_user(self, client, admin):
        response = await client.get("/api/users/does-not-exist", headers=admin.headers)
        assert response.status_code == 404
        assert response.json()["error_type"] == "NOT_FOUND"


class TestSearchUsers:
    """Tests for GET /api/users/search."""

    async def test_non_admin_forbidden(self, client, sender):
        response = await client.get("/api/users/search", headers=sender.headers)
        assert response.status_code == 403
        assert response.json() == {
            "detail": "Admin access required",
            "error_type": "FORBIDDEN",
        }

    async def test_unauthenticated(self, client):
        response = await client.get("/api/users/search")
        assert response.status_code == 401
        assert response.json()["error_type"] == "UNAUTHORIZED"

    async def test_search_all_paginated(self, client, admin, sender, receiver):
        response = await client.get(
            "/api/users/search",
            headers=admin.headers,
            params={"limit": 2},
        )
        assert response.status_code == 200
        data = response.json()
        assert len(data["users"]) == 2
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["total_pages"] == 2
        assert data["pagination"]["has_more"] is True

    async def test_search_by_email(self, client, admin, sender, receiver):
        response = await client.get(
            "/api/users/search",
            headers=admin.headers,
            params={"email": receiver.email.upper()},
        )
        users = response.json()["users"]
        assert [u["id"] for u in users] == [receiver.id]

    async def test_search_by_status(self, client, admin, sender, receiver):
        await client.patch(
            f"/api/users/{receiver.id}/status",
            headers=admin.headers,
            json={"status": "blocked"},
        )
        response = await client.get(
            "/api/users/search",
            headers=admin.headers,
            params={"status": "blocked"},
        )
        users = response.json()["users"]
        assert [u["id"] for u in users] == [receiver.id]

    async def test_search_invalid_status(self, client, admin):
        response = await client.get(
            "/api/users/search",
            headers=admin.headers,
            params={"status": "sleeping"},
        )
        assert response.status_code == 400


class TestUserStatus:
    """Tests for PATCH /api/users/{user_id}/status."""

    async def test_admin_blocks_user(self, client, admin, receiver):
        response = await client.patch(
            f"/api/users/{receiver.id}/status",
            headers=admin.headers,
            json={"status": "blocked"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "blocked"

        # The blocked user's token no longer works
        profile = await client.get("/api/auth/profile", headers=receiver.headers)
        assert profile.status_code == 403

    async def test_blocked_user_cannot_receive(self, client, admin, sender, receiver):
        await client.patch(
            f"/api/users/{receiver.id}/status",
            headers=admin.headers,
            json={"status": "inactive"},
        )
        response = await client.post(
            "/api/transactions",
            headers=sender.headers,
            json={"receiver_user_id": receiver.id, "amount_cents": 1_000, "description": "Hello"},
        )
        assert response.status_code == 400
        assert "active account" in response.json()["detail"]

    async def test_reactivate_user(self, client, admin, receiver):
        for status in ("blocked", "active"):
            response = await client.patch(
                f"/api/users/{receiver.id}/status",
                headers=admin.headers,
                json={"status": status},
            )
            assert response.status_code == 200

        profile = await client.get("/api/auth/profile", headers=receiver.headers)
        assert profile.status_code == 200

    async def test_non_admin_forbidden(self, client, sender, receiver):
        response = await client.patch(
            f"/api/users/{receiver.id}/status",
            headers=sender.headers,
            json={"status": "blocked"},
        )
        assert response.status_code == 403

    async def test_unknown_user(self, client, admin):
        response = await client.patch(
            "/api/users/does-not-exist/status",
            headers=admin.headers,
            json={"status": "blocked"},
        )
        assert response.status_code == 404
