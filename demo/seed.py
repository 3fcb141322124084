#!/usr/bin/env python3
"""
Demo seed script — populates a running server with sample users and payments.

!! NOT FOR PRODUCTION !!
This script registers users with known passwords and moves fake money
between them. It is intended ONLY for local demos and frontend development.

State lives in the server's memory, so restarting the server wipes
everything this script created. To get an admin, start the server with the
admin email listed in ADMIN_EMAILS:

    ADMIN_EMAILS='["admin@p2pdemo.com"]' uvicorn app.main:app --reload

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┬───────────────────┐
    │ Email                        │ Password          │ Role              │
    ├──────────────────────────────┼───────────────────┼───────────────────┤
    │ admin@p2pdemo.com            │ AdminDemo123      │ ADMIN (see above) │
    │ alice.chen@example.com       │ AliceDemo123      │ USER              │
    │ bob.martinez@example.com     │ BobDemo123        │ USER              │
    │ carol.nguyen@example.com     │ CarolDemo123      │ USER              │
    │ dave.johnson@example.com     │ DaveDemo123       │ USER              │
    └──────────────────────────────┴───────────────────┴───────────────────┘
"""

import argparse
import asyncio
import random
import sys

import httpx

BASE_URL = "http://localhost:8000"
API = "/api"

# ---------------------------------------------------------------------------
# Demo users
# ---------------------------------------------------------------------------

ADMIN = {"name": "Admin User", "email": "admin@p2pdemo.com", "password": "AdminDemo123"}

MEMBERS = [
    {"name": "Alice Chen", "email": "alice.chen@example.com", "password": "AliceDemo123"},
    {"name": "Bob Martinez", "email": "bob.martinez@example.com", "password": "BobDemo123"},
    {"name": "Carol Nguyen", "email": "carol.nguyen@example.com", "password": "CarolDemo123"},
    {"name": "Dave Johnson", "email": "dave.johnson@example.com", "password": "DaveDemo123"},
]

DESCRIPTIONS = [
    "Dinner split", "Concert tickets", "Rent share", "Groceries",
    "Birthday gift", "Taxi fare", "Coffee run", "Movie night",
    "Utility bill share", "Book club dues",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def cents_to_dollars(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def register(client: httpx.AsyncClient, user: dict) -> dict:
    """Register a user (or log in if already registered). Returns the auth payload."""
    resp = await client.post(f"{BASE_URL}{API}/auth/register", json=user)
    if resp.status_code == 409:
        resp = await client.post(
            f"{BASE_URL}{API}/auth/login",
            json={"email": user["email"], "password": user["password"]},
        )
    resp.raise_for_status()
    return resp.json()


async def pay(
    client: httpx.AsyncClient,
    token: str,
    receiver_id: str,
    amount_cents: int,
    description: str,
    process: bool = True,
) -> dict:
    """Create, authorize and (optionally) process a payment."""
    headers = auth_header(token)
    resp = await client.post(
        f"{BASE_URL}{API}/transactions",
        headers=headers,
        json={
            "receiver_user_id": receiver_id,
            "amount_cents": amount_cents,
            "description": description,
        },
    )
    if resp.status_code != 201:
        return resp.json()
    txn = resp.json()

    resp = await client.post(
        f"{BASE_URL}{API}/transactions/{txn['id']}/authorize",
        headers=headers,
        json={"authorization_code": txn["authorization_code"]},
    )
    if resp.status_code != 200 or not process:
        return resp.json()

    resp = await client.post(
        f"{BASE_URL}{API}/transactions/{txn['id']}/process",
        headers=headers,
    )
    return resp.json()


async def get_balance(client: httpx.AsyncClient, token: str) -> int:
    resp = await client.get(f"{BASE_URL}{API}/auth/balance", headers=auth_header(token))
    resp.raise_for_status()
    return resp.json()["balance_cents"]


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

async def seed(base_url: str, payments: int) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Health check
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn app.main:app --reload\n")
            sys.exit(1)

        # --- Admin ---
        print("Registering admin user...")
        admin = await register(client, ADMIN)
        log(f"Admin: {ADMIN['email']} / {ADMIN['password']} (role: {admin['user']['role']})")

        # --- Members ---
        users: list[dict] = []
        for member in MEMBERS:
            data = await register(client, member)
            users.append({
                "id": data["user"]["id"],
                "name": member["name"],
                "token": data["token"],
            })
            log(f"{member['name']}: {member['email']} / {member['password']}")

        # --- Payments ---
        print(f"\nCreating {payments} payments...")
        for _ in range(payments):
            sender, receiver = random.sample(users, 2)
            amount = random.randint(5_00, 150_00)
            result = await pay(
                client, sender["token"], receiver["id"], amount, random.choice(DESCRIPTIONS)
            )
            if "error_type" in result:
                log(f"{sender['name']} -> {receiver['name']}: skipped ({result['detail']})")
            else:
                log(f"{sender['name']} -> {receiver['name']}: {cents_to_dollars(amount)}")

        # One authorized payment left unprocessed, so the UI has something pending
        sender, receiver = users[0], users[1]
        await pay(client, sender["token"], receiver["id"], 42_00, "Pending demo payment", process=False)
        log(f"{sender['name']} -> {receiver['name']}: {cents_to_dollars(42_00)} (authorized, not processed)")

        # --- Balances ---
        print("\nBalances:")
        for user in users:
            balance = await get_balance(client, user["token"])
            log(f"{user['name']:<15s} {cents_to_dollars(balance)}")

    # --- Summary ---
    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Password':<20s}")
    print(f"  {'─' * 30} {'─' * 20}")
    print(f"  {ADMIN['email']:<30s} {ADMIN['password']:<20s}")
    for m in MEMBERS:
        print(f"  {m['email']:<30s} {m['password']:<20s}")
    print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Registers sample users and payments on a running server.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--payments", type=int, default=12,
        help="Number of random payments to create (default: 12)",
    )
    args = parser.parse_args()

    await seed(args.base_url, args.payments)


if __name__ == "__main__":
    asyncio.run(main())
