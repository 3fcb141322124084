"""
End-to-end tests for the transaction lifecycle over HTTP.

These tests verify:
  - create -> authorize -> process moves exactly the amount, once
  - No money moves before /process
  - A cancelled transaction can never be processed
  - Insufficient funds, self-transfers and unknown receivers are rejected
  - The authorization code is only returned by create and authorize
  - Participant-only access to detail, validate, process
  - Refunds, history filters and pagination
"""

from datetime import datetime, timedelta, timezone


async def create(client, sender, receiver, amount_cents=25_000, description="Concert tickets"):
    response = await client.post(
        "/api/transactions",
        headers=sender.headers,
        json={
            "receiver_user_id": receiver.id,
            "amount_cents": amount_cents,
            "description": description,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


async def authorize(client, sender, txn):
    response = await client.post(
        f"/api/transactions/{txn['id']}/authorize",
        headers=sender.headers,
        json={"authorization_code": txn["authorization_code"]},
    )
    assert response.status_code == 200, response.text
    return response.json()


async def balance(client, user):
    response = await client.get("/api/auth/balance", headers=user.headers)
    return response.json()["balance_cents"]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:

    async def test_full_payment_flow(self, client, sender, receiver):
        """$250.00 from a fresh sender leaves $750.00 and $1250.00."""
        txn = await create(client, sender, receiver)
        assert txn["status"] == "pending"
        assert txn["is_authorized"] is False
        assert await balance(client, sender) == 100_000

        authorized = await authorize(client, sender, txn)
        assert authorized["is_authorized"] is True
        assert authorized["status"] == "pending"
        assert await balance(client, sender) == 100_000

        response = await client.post(
            f"/api/transactions/{txn['id']}/process",
            headers=sender.headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["transaction"]["status"] == "completed"
        assert data["transaction"]["completed_at"] is not None
        assert data["sender_balance_cents"] == 75_000
        assert data["receiver_balance_cents"] == 125_000

        assert await balance(client, sender) == 75_000
        assert await balance(client, receiver) == 125_000

    async def test_process_twice_rejected(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        await authorize(client, sender, txn)

        first = await client.post(f"/api/transactions/{txn['id']}/process", headers=sender.headers)
        second = await client.post(f"/api/transactions/{txn['id']}/process", headers=receiver.headers)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error_type"] == "VALIDATION_ERROR"
        assert await balance(client, sender) == 75_000

    async def test_authorize_without_body(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        response = await client.post(
            f"/api/transactions/{txn['id']}/authorize",
            headers=sender.headers,
        )
        assert response.status_code == 200
        assert response.json()["is_authorized"] is True

    async def test_blank_authorization_code_counts_as_absent(self, client, sender, receiver):
        for code in ("", "   "):
            txn = await create(client, sender, receiver, amount_cents=100)
            response = await client.post(
                f"/api/transactions/{txn['id']}/authorize",
                headers=sender.headers,
                json={"authorization_code": code},
            )
            assert response.status_code == 200, code
            assert response.json()["is_authorized"] is True

    async def test_wrong_authorization_code(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        response = await client.post(
            f"/api/transactions/{txn['id']}/authorize",
            headers=sender.headers,
            json={"authorization_code": "NOTRIGHT"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid authorization code"

    async def test_receiver_cannot_authorize(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        response = await client.post(
            f"/api/transactions/{txn['id']}/authorize",
            headers=receiver.headers,
            json={"authorization_code": txn["authorization_code"]},
        )
        assert response.status_code == 403

    async def test_unauthorized_cannot_be_processed(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        response = await client.post(
            f"/api/transactions/{txn['id']}/process",
            headers=sender.headers,
        )
        assert response.status_code == 400
        assert await balance(client, sender) == 100_000

    async def test_cancelled_cannot_be_processed(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        await authorize(client, sender, txn)

        cancel = await client.post(f"/api/transactions/{txn['id']}/cancel", headers=sender.headers)
        assert cancel.status_code == 200
        assert cancel.json()["status"] == "cancelled"

        process = await client.post(f"/api/transactions/{txn['id']}/process", headers=sender.headers)
        assert process.status_code == 400
        assert await balance(client, sender) == 100_000
        assert await balance(client, receiver) == 100_000

    async def test_completed_cannot_be_cancelled(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        await authorize(client, sender, txn)
        await client.post(f"/api/transactions/{txn['id']}/process", headers=sender.headers)

        response = await client.post(f"/api/transactions/{txn['id']}/cancel", headers=sender.headers)
        assert response.status_code == 400
        assert "completed" in response.json()["detail"]

    async def test_receiver_cannot_cancel(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        response = await client.post(f"/api/transactions/{txn['id']}/cancel", headers=receiver.headers)
        assert response.status_code == 403

    async def test_unknown_transaction(self, client, sender):
        for action in ("authorize", "process", "cancel", "refund"):
            response = await client.post(
                f"/api/transactions/does-not-exist/{action}",
                headers=sender.headers,
            )
            assert response.status_code == 404, action


# ---------------------------------------------------------------------------
# Create validation
# ---------------------------------------------------------------------------

class TestCreateValidation:

    async def test_insufficient_funds(self, client, sender, receiver):
        response = await client.post(
            "/api/transactions",
            headers=sender.headers,
            json={"receiver_user_id": receiver.id, "amount_cents": 100_001, "description": "Too much"},
        )
        assert response.status_code == 400
        data = response.json()
        assert data["error_type"] == "INSUFFICIENT_FUNDS"
        assert data["requested_cents"] == 100_001
        assert data["available_cents"] == 100_000

    async def test_self_transfer(self, client, sender):
        response = await client.post(
            "/api/transactions",
            headers=sender.headers,
            json={"receiver_user_id": sender.id, "amount_cents": 100, "description": "To me"},
        )
        assert response.status_code == 400
        assert "yourself" in response.json()["detail"]

    async def test_unknown_receiver(self, client, sender):
        response = await client.post(
            "/api/transactions",
            headers=sender.headers,
            json={"receiver_user_id": "nobody", "amount_cents": 100, "description": "Ghost"},
        )
        assert response.status_code == 404

    async def test_non_positive_amount(self, client, sender, receiver):
        for amount in (0, -500):
            response = await client.post(
                "/api/transactions",
                headers=sender.headers,
                json={"receiver_user_id": receiver.id, "amount_cents": amount, "description": "Zero"},
            )
            assert response.status_code == 400

    async def test_description_too_short(self, client, sender, receiver):
        response = await client.post(
            "/api/transactions",
            headers=sender.headers,
            json={"receiver_user_id": receiver.id, "amount_cents": 100, "description": "ab"},
        )
        assert response.status_code == 400

    async def test_requires_authentication(self, client, receiver):
        response = await client.post(
            "/api/transactions",
            json={"receiver_user_id": receiver.id, "amount_cents": 100, "description": "Anon"},
        )
        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestReads:

    async def test_detail_hides_authorization_code(self, client, sender, receiver):
        txn = await create(client, sender, receiver)

        response = await client.get(f"/api/transactions/{txn['id']}", headers=receiver.headers)
        assert response.status_code == 200
        data = response.json()
        assert "authorization_code" not in data
        assert data["user_role"] == "receiver"
        assert data["sender"]["id"] == sender.id
        assert data["receiver"]["id"] == receiver.id

    async def test_detail_forbidden_to_outsider(self, client, register, sender, receiver):
        txn = await create(client, sender, receiver)
        outsider = await register("Olive Outsider", "outsider@example.com")

        for path in (f"/api/transactions/{txn['id']}", f"/api/transactions/{txn['id']}/validate"):
            response = await client.get(path, headers=outsider.headers)
            assert response.status_code == 403, path

        process = await client.post(f"/api/transactions/{txn['id']}/process", headers=outsider.headers)
        assert process.status_code == 403

    async def test_validate(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        before = await client.get(f"/api/transactions/{txn['id']}/validate", headers=sender.headers)
        assert before.json() == {"transaction_id": txn["id"], "is_authorized": False, "status": "pending"}

        await authorize(client, sender, txn)
        after = await client.get(f"/api/transactions/{txn['id']}/validate", headers=receiver.headers)
        assert after.json()["is_authorized"] is True

    async def test_history_roles(self, client, sender, receiver):
        await create(client, sender, receiver, amount_cents=1_000, description="Sent one")
        await create(client, receiver, sender, amount_cents=2_000, description="Got one")

        response = await client.get("/api/transactions", headers=sender.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total"] == 2
        roles = {t["description"]: t["role"] for t in data["transactions"]}
        assert roles == {"Sent one": "sender", "Got one": "receiver"}
        for item in data["transactions"]:
            assert "authorization_code" not in item
            assert item["other_party"]["id"] == receiver.id

    async def test_history_newest_first_and_paginated(self, client, sender, receiver):
        for i in range(3):
            await create(client, sender, receiver, amount_cents=100, description=f"Payment {i}")

        response = await client.get(
            "/api/transactions",
            headers=sender.headers,
            params={"page": 1, "limit": 2},
        )
        data = response.json()
        assert len(data["transactions"]) == 2
        assert data["pagination"] == {
            "page": 1, "limit": 2, "total": 3, "total_pages": 2, "has_more": True,
        }
        created = [t["created_at"] for t in data["transactions"]]
        assert created == sorted(created, reverse=True)

    async def test_history_status_filter(self, client, sender, receiver):
        keep = await create(client, sender, receiver, description="Keep me")
        drop = await create(client, sender, receiver, description="Drop me")
        await client.post(f"/api/transactions/{drop['id']}/cancel", headers=sender.headers)

        response = await client.get(
            "/api/transactions",
            headers=sender.headers,
            params={"status": "pending"},
        )
        assert [t["id"] for t in response.json()["transactions"]] == [keep["id"]]

    async def test_history_date_range(self, client, sender, receiver):
        await create(client, sender, receiver)
        future = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()

        response = await client.get(
            "/api/transactions",
            headers=sender.headers,
            params={"start_date": future},
        )
        assert response.json()["pagination"]["total"] == 0

    async def test_history_invalid_status(self, client, sender):
        response = await client.get(
            "/api/transactions",
            headers=sender.headers,
            params={"status": "lost"},
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------

class TestRefund:

    async def test_receiver_refunds(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        await authorize(client, sender, txn)
        await client.post(f"/api/transactions/{txn['id']}/process", headers=sender.headers)

        response = await client.post(f"/api/transactions/{txn['id']}/refund", headers=receiver.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["transaction"]["status"] == "refunded"
        assert data["refund_transaction"]["type"] == "refund"
        assert data["refund_transaction"]["related_transaction_id"] == txn["id"]

        assert await balance(client, sender) == 100_000
        assert await balance(client, receiver) == 100_000

    async def test_sender_cannot_refund(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        await authorize(client, sender, txn)
        await client.post(f"/api/transactions/{txn['id']}/process", headers=sender.headers)

        response = await client.post(f"/api/transactions/{txn['id']}/refund", headers=sender.headers)
        assert response.status_code == 403

    async def test_pending_cannot_be_refunded(self, client, sender, receiver):
        txn = await create(client, sender, receiver)
        response = await client.post(f"/api/transactions/{txn['id']}/refund", headers=receiver.headers)
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:

    async def test_health_reports_counts(self, client, sender, receiver):
        await create(client, sender, receiver)
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["users"] == 2
        assert data["transactions"] == 1
