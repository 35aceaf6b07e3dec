"""
Lunch Rush Simulation Script

Fires concurrent student orders at a running API to check that queue
positions stay unique and totals stay correct under load, then walks one
order through the status pipeline and cancels another by SMS reply.

Run from project root: python scripts/simulate.py

Version: 1.0.0
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:3000"
TOTAL_ORDERS = 50

# Sample data for random orders
STUDENT_NAMES = ["Asha", "Ravi", "Meera", "Arjun", "Priya", "Kiran", "Neha", "Vikram", "Sana", "Rohan"]
MENU_ITEMS = [
    {"name": "Masala Dosa", "price": "45.00"},
    {"name": "Idli Vada", "price": "35.00"},
    {"name": "Veg Biryani", "price": "80.00"},
    {"name": "Paneer Roll", "price": "55.50"},
    {"name": "Filter Coffee", "price": "12.50"},
    {"name": "Masala Chai", "price": "10.00"},
]


def generate_random_student() -> dict[str, str]:
    """Generate random student contact info."""
    return {
        "studentName": random.choice(STUDENT_NAMES),
        "phoneNo": f"+1555{random.randint(1000000, 9999999)}",
    }


def generate_random_items(menu_ids: list[int]) -> list[dict]:
    """Generate random order lines from the seeded menu."""
    return [
        {"item_id": random.choice(menu_ids), "quantity": random.randint(1, 3)}
        for _ in range(random.randint(1, 4))
    ]


# =============================================================================
# SETUP
# =============================================================================

async def login_vendor(client: httpx.AsyncClient, username: str, password: str, canteen_id: int) -> dict[str, str]:
    """Register the vendor if needed and return auth headers."""
    response = await client.post(
        f"{API_BASE_URL}/vendor/register",
        json={"canteenId": canteen_id, "username": username, "password": password, "name": "Simulation Stall"},
    )
    if response.status_code not in (201, 409):
        raise RuntimeError(f"Registration failed: {response.text}")

    response = await client.post(
        f"{API_BASE_URL}/vendor/login",
        json={"username": username, "password": password},
    )
    response.raise_for_status()
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def seed_menu(client: httpx.AsyncClient, headers: dict[str, str]) -> list[int]:
    """Make sure every sample item is on the menu; return their ids."""
    response = await client.get(f"{API_BASE_URL}/menu", headers=headers)
    response.raise_for_status()
    existing = {item["name"]: item["id"] for item in response.json()}

    for item in MENU_ITEMS:
        if item["name"] in existing:
            continue
        response = await client.post(f"{API_BASE_URL}/menu", json=item, headers=headers)
        response.raise_for_status()
        existing[item["name"]] = response.json()["item"]["id"]

    return [existing[item["name"]] for item in MENU_ITEMS]


# =============================================================================
# ORDERS
# =============================================================================

async def send_order(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    menu_ids: list[int],
    order_num: int
) -> dict[str, Any]:
    """Place one order and time it."""
    payload = {**generate_random_student(), "items": generate_random_items(menu_ids)}
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/order",
            json=payload,
            headers=headers,
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data.get("orderId"),
                "queue_position": data.get("queuePosition"),
                "phone": payload["phoneNo"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": elapsed,
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    username: str,
    password: str,
    canteen_id: int,
    num_orders: int = TOTAL_ORDERS
) -> dict[str, Any]:
    """
    Run the lunch rush simulation.

    Args:
        username: Vendor account used for the run (created if missing)
        password: Its password
        canteen_id: Canteen the vendor belongs to
        num_orders: Number of concurrent orders
    """
    print("=" * 70)
    print("🔥 LUNCH RUSH SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient(timeout=30.0) as client:
        headers = await login_vendor(client, username, password, canteen_id)
        menu_ids = await seed_menu(client, headers)
        print(f"\n🍽️  Menu ready: {len(menu_ids)} items")

        print("\n🚀 Firing orders...\n")
        start_time = time.time()
        tasks = [send_order(client, headers, menu_ids, i + 1) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        print("=" * 70)
        print("📊 SIMULATION RESULTS")
        print("=" * 70)
        print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
        print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
        print(f"⏱️  Total Time: {total_time}s")

        if successful:
            positions = [r["queue_position"] for r in successful]
            avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
            print(f"\n📈 Performance Metrics:")
            print(f"   Average Response: {avg_time}s")
            print(f"   Fastest: {min(r['time'] for r in successful)}s")
            print(f"   Slowest: {max(r['time'] for r in successful)}s")
            if len(set(positions)) == len(positions):
                print(f"   ✅ Queue positions unique ({min(positions)}..{max(positions)})")
            else:
                print(f"   ❌ {len(positions) - len(set(positions))} duplicate queue positions!")

        if failed:
            print(f"\n⚠️  Failed Order Details (showing first 5):")
            for f in failed[:5]:
                print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

        if len(successful) >= 2:
            await exercise_pipeline(client, headers, successful[0], successful[1])

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION STEPS")
    print("=" * 70)
    print("1. Check the API (or Celery) log - every order should log an SMS")
    print(f"2. Run: python scripts/verify.py --username {username} --password <password>")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results
    }


async def exercise_pipeline(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    to_serve: dict[str, Any],
    to_drop: dict[str, Any],
) -> None:
    """Serve one order through every status and drop another by SMS."""
    print("\n" + "=" * 70)
    print("🧪 STATUS PIPELINE & SMS CANCELLATION")
    print("=" * 70)

    for status in ("preparing", "almost ready", "ready"):
        response = await client.put(
            f"{API_BASE_URL}/order/{to_serve['order_id']}/status",
            json={"status": status},
            headers=headers,
        )
        mark = "✅" if response.status_code == 200 else "❌"
        print(f"   {mark} Order #{to_serve['order_id']} → {status}")

    response = await client.post(
        f"{API_BASE_URL}/sms",
        data={"From": to_drop["phone"], "Body": "DROP"},
    )
    print(f"   📩 DROP from {to_drop['phone']}: HTTP {response.status_code}")

    response = await client.get(f"{API_BASE_URL}/orders", headers=headers)
    statuses = {o["id"]: o["status"] for o in response.json()}
    dropped = statuses.get(to_drop["order_id"])
    mark = "✅" if dropped == "cancelled" else "❌"
    print(f"   {mark} Order #{to_drop['order_id']} is now '{dropped}'")


async def preflight() -> bool:
    """Check the API is reachable before firing orders."""
    print("\n1️⃣ Health Check...")
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ API unreachable: {e}")
            return False

    if response.status_code != 200:
        print(f"   ❌ Failed: {response.text}")
        return False

    data = response.json()
    print(f"   ✅ Status: {data.get('status')}")
    print(f"   Database: {data.get('database')}")
    print(f"   Broker: {data.get('broker')}")
    print(f"   SMS: {data.get('notification_service')}")
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Lunch Rush Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--username", default="rush-vendor", help="Vendor username")
    parser.add_argument("--password", default="rush-password", help="Vendor password")
    parser.add_argument("--canteen", type=int, default=1, help="Canteen id")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")

    if not asyncio.run(preflight()):
        print("\n❌ Pre-flight check failed. Is the API running?")
        sys.exit(1)

    asyncio.run(run_simulation(args.username, args.password, args.canteen, num_orders=args.orders))
