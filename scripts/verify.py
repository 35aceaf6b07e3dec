"""
Order Verification Script

Checks a vendor's orders for integrity after a simulation run:
    - no two orders share a queue position
    - every total equals the sum of quantity x price_at_order

Run from project root: python scripts/verify.py --username rush-vendor --password ...

Version: 1.0.0
"""

import argparse
import sys
from collections import Counter
from datetime import datetime
from decimal import Decimal

import httpx

API_BASE_URL = "http://localhost:3000"


def fetch_orders(username: str, password: str) -> list[dict]:
    with httpx.Client(base_url=API_BASE_URL, timeout=30.0) as client:
        response = client.post("/vendor/login", json={"username": username, "password": password})
        response.raise_for_status()
        headers = {"Authorization": f"Bearer {response.json()['token']}"}

        response = client.get("/orders", headers=headers)
        response.raise_for_status()
        return response.json()


def verify_orders(orders: list[dict]) -> bool:
    """Print an integrity report; return whether every check passed."""

    print("=" * 60)
    print("🔍 ORDER VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"🎯 Target: {API_BASE_URL}")
    print("=" * 60)

    ok = True

    # Statistics
    statuses = Counter(o["status"] for o in orders)
    print(f"\n📊 STATISTICS:")
    print(f"   Total Orders: {len(orders)}")
    for status, count in sorted(statuses.items()):
        print(f"   {status}: {count}")

    # Queue positions
    positions = Counter(o["queue_position"] for o in orders if o["queue_position"] is not None)
    duplicates = {pos: n for pos, n in positions.items() if n > 1}
    if duplicates:
        ok = False
        print(f"\n⚠️ {len(duplicates)} duplicate queue positions found: {sorted(duplicates)[:10]}")
    else:
        print(f"\n✅ No duplicate queue positions")

    # Totals
    mismatched = []
    for order in orders:
        expected = sum(
            (Decimal(line["price_at_order"]) * line["quantity"] for line in order["items"]),
            Decimal("0"),
        ).quantize(Decimal("0.01"))
        if expected != Decimal(order["total_amount"]):
            mismatched.append((order["id"], order["total_amount"], expected))

    if mismatched:
        ok = False
        print(f"⚠️ {len(mismatched)} orders with wrong totals:")
        for order_id, stored, expected in mismatched[:5]:
            print(f"   Order #{order_id}: stored {stored}, lines add up to {expected}")
    else:
        print(f"✅ Every total matches its line items")

    empty = [o["id"] for o in orders if not o["items"]]
    if empty:
        ok = False
        print(f"⚠️ {len(empty)} orders without line items: {empty[:10]}")

    # Revenue
    revenue = sum((Decimal(o["total_amount"]) for o in orders if o["status"] != "cancelled"), Decimal("0"))
    print(f"\n💰 REVENUE (excluding cancelled):")
    print(f"   Total: {revenue:.2f}")

    # Sample data
    print(f"\n📋 RECENT ORDERS:")
    print("-" * 60)
    for order in orders[:5]:
        print(
            f"   #{order['id']:<6} queue {order['queue_position']!s:<6} "
            f"{order['student_name']:<10} {order['total_amount']:>8}  {order['status']}"
        )

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order Verification Script")
    parser.add_argument("--username", default="rush-vendor", help="Vendor username")
    parser.add_argument("--password", default="rush-password", help="Vendor password")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")

    try:
        orders = fetch_orders(args.username, args.password)
    except httpx.HTTPError as e:
        print(f"\n❌ Could not fetch orders: {e}")
        sys.exit(1)

    sys.exit(0 if verify_orders(orders) else 1)
