#!/usr/bin/env python3
"""
Demo seed script — populates the ledger with sample accounts and activity.

!! NOT FOR PRODUCTION !!
This script registers accounts with known names, mints bearer tokens for
them with the local SECRET_KEY and posts random activity. It is intended
ONLY for local demos and frontend development.

Account registration happens outside the ledger API, so the accounts are
written straight to the database; everything after that goes through the
HTTP endpoints like any other client.

Usage (after "pip install -e .[demo]"):
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Wipe all accounts and transactions first:
    python demo/seed.py --reset

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000
"""

import argparse
import asyncio
import random
import sys
import uuid

import httpx
from sqlalchemy import delete

from app.database import AsyncSessionLocal, engine
from app.models import Account, Transaction
from app.security import create_access_token
from app.services import account_store

BASE_URL = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Demo accounts
# ---------------------------------------------------------------------------

DEMO_ACCOUNTS = [
    {"name": "alice", "opening_balance_cents": 100},
    {"name": "bob", "opening_balance_cents": 0},
    {"name": "carol", "opening_balance_cents": 3_200_00},
    {"name": "dave", "opening_balance_cents": 600_00},
    {"name": "erin", "opening_balance_cents": 2_500_00},
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


async def reset_database() -> None:
    """Delete every transaction and account."""
    async with AsyncSessionLocal() as session:
        await session.execute(delete(Transaction))
        await session.execute(delete(Account))
        await session.commit()


async def register_accounts() -> dict[str, uuid.UUID]:
    """Open the demo accounts directly in the store and return their IDs by name."""
    ids: dict[str, uuid.UUID] = {}
    async with AsyncSessionLocal() as session:
        for info in DEMO_ACCOUNTS:
            account = await account_store.open_account(session, info["opening_balance_cents"])
            ids[info["name"]] = account.id
        await session.commit()
    return ids


async def post(client: httpx.AsyncClient, token: str, path: str, body: dict) -> dict:
    resp = await client.post(f"{BASE_URL}{path}", json=body, headers=auth_header(token))
    data = resp.json()
    if resp.status_code != 200:
        log(f"  {path} rejected ({resp.status_code}): {data.get('detail')}")
    return data


async def get_history(client: httpx.AsyncClient, token: str) -> dict:
    resp = await client.get(f"{BASE_URL}/transactions", headers=auth_header(token))
    resp.raise_for_status()
    return resp.json()


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def run_documented_example(
    client: httpx.AsyncClient, tokens: dict[str, str], ids: dict[str, uuid.UUID]
) -> None:
    """A starts at 100: +50, -30, then 20 to B (starting at 0)."""
    print("\nReplaying the worked example (alice -> bob)...")
    await post(client, tokens["alice"], "/deposit", {"amount_cents": 50})
    await post(client, tokens["alice"], "/withdraw", {"amount_cents": 30})
    await post(client, tokens["alice"], "/transfer", {
        "recipient_account_id": str(ids["bob"]),
        "amount_cents": 20,
    })

    alice = await get_history(client, tokens["alice"])
    bob = await get_history(client, tokens["bob"])
    log(f"alice: {alice['balance_cents']} cents, "
        f"amounts {[t['amount_cents'] for t in alice['transactions']]}")
    log(f"bob:   {bob['balance_cents']} cents, "
        f"amounts {[t['amount_cents'] for t in bob['transactions']]}")


async def seed_activity(
    client: httpx.AsyncClient, tokens: dict[str, str], ids: dict[str, uuid.UUID], rounds: int
) -> None:
    """Random deposits, withdrawals and transfers, sent concurrently."""
    print(f"\nPosting {rounds} rounds of random activity...")
    names = [info["name"] for info in DEMO_ACCOUNTS]

    for _ in range(rounds):
        requests = []
        for name in names:
            action = random.choice(["deposit", "withdraw", "transfer"])
            amount = random.randint(1_00, 150_00)
            if action == "transfer":
                recipient = random.choice([n for n in names if n != name])
                body = {"recipient_account_id": str(ids[recipient]), "amount_cents": amount}
            else:
                body = {"amount_cents": amount}
            requests.append(post(client, tokens[name], f"/{action}", body))
        await asyncio.gather(*requests)


async def seed(base_url: str, reset: bool, rounds: int) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Health check (the server also creates the tables on startup)
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn app.main:app --reload\n")
            sys.exit(1)

        if reset:
            print("Resetting database...")
            await reset_database()

        print("Registering accounts...")
        ids = await register_accounts()
        tokens = {name: create_access_token(data={"sub": str(account_id)})
                  for name, account_id in ids.items()}
        for info in DEMO_ACCOUNTS:
            log(f"{info['name']:<6} {ids[info['name']]}  "
                f"opening {cents_to_dollars(info['opening_balance_cents'])}")

        await run_documented_example(client, tokens, ids)
        await seed_activity(client, tokens, ids, rounds)

        print("\nFinal balances:")
        for name, token in tokens.items():
            resp = await client.get(f"{BASE_URL}/balance", headers=auth_header(token))
            check = resp.json()
            status = "ok" if check["match"] else "MISMATCH"
            log(f"{name:<6} {cents_to_dollars(check['balance_cents']):>12}  [{status}]")

    await engine.dispose()

    print("\nBearer tokens (valid for the configured expiry):")
    for name, token in tokens.items():
        log(f"{name:<6} {token}")
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the ledger with demo data")
    parser.add_argument("--base-url", default=BASE_URL, help="API server URL")
    parser.add_argument("--reset", action="store_true", help="Delete existing data first")
    parser.add_argument("--rounds", type=int, default=10, help="Rounds of random activity")
    args = parser.parse_args()
    asyncio.run(seed(args.base_url, args.reset, args.rounds))


if __name__ == "__main__":
    main()
