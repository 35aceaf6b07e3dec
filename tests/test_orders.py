"""Order endpoints: creation, listing and the status pipeline."""

from decimal import Decimal

import pytest

from canteen.core.config import Settings, get_settings
from canteen.main import app
from canteen.models import Order, OrderItem, OrderStatus, QueueTicket
from canteen.services.orders import CANCELLED_MESSAGE, STATUS_MESSAGES, order_placed_message
from tests.conftest import add_menu_item, count_rows, fail_store_writes, login_headers, place_order

PHONE = "+15550000001"


@pytest.fixture
def strict_transitions():
    strict = Settings(strict_status_transitions=True)
    app.dependency_overrides[get_settings] = lambda: strict
    yield strict
    app.dependency_overrides.pop(get_settings, None)


async def _orders(client, headers):
    response = await client.get("/orders", headers=headers)
    assert response.status_code == 200
    return response.json()


async def test_order_lifecycle_end_to_end(client, dispatcher, settings):
    headers = await login_headers(client)
    dosa = await add_menu_item(client, headers, name="Masala Dosa", price="50.00")

    response = await place_order(client, headers, [{"item_id": dosa["id"], "quantity": 2}], phone_no=PHONE)
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "pending"
    assert isinstance(created["orderId"], int)
    assert isinstance(created["queuePosition"], int)

    [order] = await _orders(client, headers)
    assert order["total_amount"] == "100.00"
    assert order["queue_position"] == created["queuePosition"]
    assert order["items"][0]["price_at_order"] == "50.00"
    assert order["items"][0]["menu_item_name"] == "Masala Dosa"

    assert dispatcher.messages_to(PHONE) == [
        order_placed_message(created["queuePosition"], settings.estimated_wait_minutes)
    ]

    for status in ("preparing", "ready"):
        response = await client.put(
            f"/order/{created['orderId']}/status", json={"status": status}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Status updated successfully"
        assert response.json()["order"]["status"] == status

    assert dispatcher.messages_to(PHONE)[1:] == [
        "🍴 Your order is being prepared.",
        "✅ Your order is ready for pickup!",
    ]
    [order] = await _orders(client, headers)
    assert order["status"] == "ready"


def test_placed_message_wording():
    assert order_placed_message(7, 15) == (
        "✅ Your order has been placed! Your queue position is #7. Estimated wait: 15 mins."
    )


async def test_total_sums_every_line(client):
    headers = await login_headers(client)
    coffee = await add_menu_item(client, headers, name="Coffee", price="10.10")
    biscuit = await add_menu_item(client, headers, name="Biscuit", price="0.05")

    response = await place_order(client, headers, [
        {"item_id": coffee["id"], "quantity": 3},
        {"item_id": biscuit["id"], "quantity": 1},
    ])
    assert response.status_code == 201

    [order] = await _orders(client, headers)
    assert order["total_amount"] == "30.35"
    assert sum(line["quantity"] for line in order["items"]) == 4
    assert sum(Decimal(line["price_at_order"]) * line["quantity"] for line in order["items"]) == Decimal("30.35")


async def test_same_item_on_two_lines_is_two_rows(client):
    headers = await login_headers(client)
    tea = await add_menu_item(client, headers, name="Tea", price="8")

    await place_order(client, headers, [
        {"item_id": tea["id"], "quantity": 1},
        {"item_id": tea["id"], "quantity": 2},
    ])
    [order] = await _orders(client, headers)
    assert [line["quantity"] for line in order["items"]] == [1, 2]
    assert order["total_amount"] == "24.00"


@pytest.mark.parametrize("problem", ["missing", "unavailable", "other_canteen"])
async def test_bad_item_writes_nothing(client, session_maker, dispatcher, problem):
    headers = await login_headers(client, username="a", canteen_id=1)
    good = await add_menu_item(client, headers, name="Dosa", price="50")

    if problem == "missing":
        bad_id = 9999
    elif problem == "unavailable":
        bad_id = (await add_menu_item(client, headers, name="Vada", price="20", is_available=False))["id"]
    else:
        other = await login_headers(client, username="b", canteen_id=2)
        bad_id = (await add_menu_item(client, other, name="Burger", price="80"))["id"]

    response = await place_order(client, headers, [
        {"item_id": good["id"], "quantity": 1},
        {"item_id": bad_id, "quantity": 1},
    ])
    assert response.status_code == 400
    assert response.json() == {
        "error": f"Failed to create order. Item with ID {bad_id} is not available or does not exist."
    }

    assert await count_rows(session_maker, Order) == 0
    assert await count_rows(session_maker, OrderItem) == 0
    assert await count_rows(session_maker, QueueTicket) == 0
    assert dispatcher.sent == []


async def test_order_request_validation(client):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)

    empty = await place_order(client, headers, [])
    assert empty.status_code == 400
    assert empty.json()["error"].startswith("items")

    zero = await place_order(client, headers, [{"item_id": item["id"], "quantity": 0}])
    assert zero.status_code == 400

    no_name = await client.post(
        "/order",
        json={"phoneNo": PHONE, "items": [{"item_id": item["id"], "quantity": 1}]},
        headers=headers,
    )
    assert no_name.status_code == 400
    assert no_name.json()["error"].startswith("studentName")


async def test_price_snapshot_survives_menu_edit(client):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers, price="50.00")
    await place_order(client, headers, [{"item_id": item["id"], "quantity": 2}])

    response = await client.put(f"/menu/{item['id']}", json={"price": "75.00"}, headers=headers)
    assert response.status_code == 200

    [order] = await _orders(client, headers)
    assert order["items"][0]["price_at_order"] == "50.00"
    assert order["total_amount"] == "100.00"


async def test_queue_positions_are_unique_and_increasing(client):
    first = await login_headers(client, username="a", canteen_id=1)
    second = await login_headers(client, username="b", canteen_id=2)
    item_one = await add_menu_item(client, first)
    item_two = await add_menu_item(client, second)

    positions = []
    for headers, item in [(first, item_one), (second, item_two), (first, item_one)]:
        response = await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}])
        positions.append(response.json()["queuePosition"])

    assert len(set(positions)) == 3
    assert positions == sorted(positions)


async def test_orders_listed_newest_first_and_only_own(client):
    mine = await login_headers(client, username="a")
    theirs = await login_headers(client, username="b")
    item = await add_menu_item(client, mine)

    ids = []
    for name in ("First", "Second", "Third"):
        response = await place_order(client, mine, [{"item_id": item["id"], "quantity": 1}], student_name=name)
        ids.append(response.json()["orderId"])
    await place_order(client, theirs, [{"item_id": item["id"], "quantity": 1}], student_name="Other")

    listed = await _orders(client, mine)
    assert [o["id"] for o in listed] == list(reversed(ids))
    assert [o["student_name"] for o in listed] == ["Third", "Second", "First"]


async def test_status_update_of_foreign_order_looks_like_missing(client):
    owner = await login_headers(client, username="a")
    stranger = await login_headers(client, username="b")
    item = await add_menu_item(client, owner)
    order_id = (await place_order(client, owner, [{"item_id": item["id"], "quantity": 1}])).json()["orderId"]

    foreign = await client.put(f"/order/{order_id}/status", json={"status": "ready"}, headers=stranger)
    missing = await client.put("/order/9999/status", json={"status": "ready"}, headers=owner)

    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json() == {
        "error": "Order not found or you do not have permission to update it."
    }
    [order] = await _orders(client, owner)
    assert order["status"] == "pending"


async def test_unknown_status_is_rejected(client):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)
    order_id = (await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}])).json()["orderId"]

    response = await client.put(f"/order/{order_id}/status", json={"status": "eaten"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"].startswith("status")


async def test_status_is_normalized(client, dispatcher):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)
    order_id = (await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}], phone_no=PHONE)).json()["orderId"]

    response = await client.put(
        f"/order/{order_id}/status", json={"status": "  Almost   READY "}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["order"]["status"] == "almost ready"
    assert dispatcher.messages_to(PHONE)[-1] == STATUS_MESSAGES[OrderStatus.ALMOST_READY]


async def test_pending_and_cancelled_send_no_sms(client, dispatcher):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)
    order_id = (await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}], phone_no=PHONE)).json()["orderId"]
    before = len(dispatcher.sent)

    for status in ("pending", "cancelled"):
        response = await client.put(f"/order/{order_id}/status", json={"status": status}, headers=headers)
        assert response.status_code == 200

    assert len(dispatcher.sent) == before
    assert CANCELLED_MESSAGE not in dispatcher.messages_to(PHONE)


async def test_repeating_a_status_notifies_again(client, dispatcher):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)
    order_id = (await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}], phone_no=PHONE)).json()["orderId"]

    for _ in range(2):
        await client.put(f"/order/{order_id}/status", json={"status": "ready"}, headers=headers)

    assert dispatcher.messages_to(PHONE).count(STATUS_MESSAGES[OrderStatus.READY]) == 2


async def test_backwards_move_is_allowed_by_default(client):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)
    order_id = (await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}])).json()["orderId"]

    await client.put(f"/order/{order_id}/status", json={"status": "ready"}, headers=headers)
    response = await client.put(f"/order/{order_id}/status", json={"status": "preparing"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["order"]["status"] == "preparing"


async def test_strict_transitions_refuse_backwards_move(client, strict_transitions, dispatcher):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)
    order_id = (await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}], phone_no=PHONE)).json()["orderId"]

    forward = await client.put(f"/order/{order_id}/status", json={"status": "ready"}, headers=headers)
    assert forward.status_code == 200
    sent = len(dispatcher.sent)

    backward = await client.put(f"/order/{order_id}/status", json={"status": "preparing"}, headers=headers)
    assert backward.status_code == 409
    assert backward.json() == {"error": "Cannot change order status from 'ready' to 'preparing'."}
    assert len(dispatcher.sent) == sent

    [order] = await _orders(client, headers)
    assert order["status"] == "ready"


async def test_order_endpoints_require_token(client):
    assert (await client.get("/orders")).status_code == 401
    assert (await client.post("/order", json={})).status_code == 401
    assert (await client.put("/order/1/status", json={"status": "ready"})).status_code == 401


async def test_store_failure_mid_order_rolls_back(client, engine, session_maker, dispatcher):
    headers = await login_headers(client)
    dosa = await add_menu_item(client, headers, name="Dosa", price="50")
    tea = await add_menu_item(client, headers, name="Tea", price="8")
    await fail_store_writes(engine, "order_items", "INSERT")

    response = await place_order(client, headers, [
        {"item_id": dosa["id"], "quantity": 1},
        {"item_id": tea["id"], "quantity": 2},
    ])

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create order."}
    assert await count_rows(session_maker, Order) == 0
    assert await count_rows(session_maker, OrderItem) == 0
    assert await count_rows(session_maker, QueueTicket) == 0
    assert dispatcher.sent == []


async def test_store_failure_on_status_update(client, engine, dispatcher):
    headers = await login_headers(client)
    item = await add_menu_item(client, headers)
    order_id = (await place_order(client, headers, [{"item_id": item["id"], "quantity": 1}], phone_no=PHONE)).json()["orderId"]
    sent = len(dispatcher.sent)
    await fail_store_writes(engine, "orders", "UPDATE")

    response = await client.put(f"/order/{order_id}/status", json={"status": "ready"}, headers=headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to update order status."}
    assert len(dispatcher.sent) == sent
    [order] = await _orders(client, headers)
    assert order["status"] == "pending"
