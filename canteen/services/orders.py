"""
Order Lifecycle Manager

Creates student orders and moves them through the status pipeline:

    pending → preparing → almost ready → ready
       └────→ cancelled

Order creation is one transaction: the order row, its queue ticket and every
line item are written together or not at all. Line prices are read from the
menu at that moment and copied into the line item, so later menu edits never
change an existing order.

SMS go out through the NotificationDispatcher after the change is committed;
a failed or slow SMS never fails the request.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from canteen.core.config import Settings
from canteen.core.errors import (
    CanteenError,
    ConflictError,
    ItemUnavailableError,
    NotFoundError,
    OrderCreationError,
    OrderUpdateError,
)
from canteen.core.security import VendorIdentity
from canteen.models import MenuItem, Order, OrderItem, OrderStatus, QueueTicket
from canteen.schemas import OrderLineCreate
from canteen.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

STATUS_MESSAGES = {
    OrderStatus.PREPARING: "🍴 Your order is being prepared.",
    OrderStatus.ALMOST_READY: "⚡ Almost ready! Please head to the counter.",
    OrderStatus.READY: "✅ Your order is ready for pickup!",
}

CANCELLED_MESSAGE = "❌ Your most recent order has been dropped."

# Moves allowed when strict transitions are on. Steps forward may be skipped;
# re-applying the current status is always allowed.
FORWARD_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.PREPARING,
        OrderStatus.ALMOST_READY,
        OrderStatus.READY,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PREPARING: {OrderStatus.ALMOST_READY, OrderStatus.READY},
    OrderStatus.ALMOST_READY: {OrderStatus.READY},
    OrderStatus.READY: set(),
    OrderStatus.CANCELLED: set(),
}

ORDER_NOT_FOUND = "Order not found or you do not have permission to update it."


def order_placed_message(queue_position: int, wait_minutes: int) -> str:
    return (
        f"✅ Your order has been placed! Your queue position is #{queue_position}. "
        f"Estimated wait: {wait_minutes} mins."
    )


def is_transition_allowed(current: OrderStatus, target: OrderStatus, strict: bool) -> bool:
    """Whether an order may move from current to target."""
    if not strict or current == target:
        return True
    return target in FORWARD_TRANSITIONS[current]


class OrderLifecycleManager:
    """
    Order creation, status changes and SMS cancellation.

    One instance per request: it holds that request's session.
    """

    def __init__(
        self,
        db: AsyncSession,
        dispatcher: NotificationDispatcher,
        settings: Settings,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.settings = settings

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(
        self,
        vendor: VendorIdentity,
        student_name: str,
        phone_no: str,
        lines: List[OrderLineCreate],
    ) -> Order:
        """
        Create an order with its line items in a single transaction.

        Raises:
            ItemUnavailableError: a line names a missing/unavailable item
            OrderCreationError: the store failed; nothing was written
        """
        try:
            order = Order(
                student_name=student_name,
                phone_no=phone_no,
                vendor_id=vendor.vendor_id,
                status=OrderStatus.PENDING,
                total_amount=Decimal("0"),
            )
            self.db.add(order)
            await self.db.flush()

            ticket = QueueTicket(order_id=order.id)
            self.db.add(ticket)
            await self.db.flush()
            order.queue_position = ticket.id

            total = Decimal("0")
            for line in lines:
                menu_item = await self._load_orderable_item(line.item_id, vendor.canteen_id)
                if menu_item is None:
                    raise ItemUnavailableError(line.item_id)

                price = Decimal(menu_item.price)
                total += price * line.quantity
                self.db.add(OrderItem(
                    order_id=order.id,
                    menu_item_id=menu_item.id,
                    quantity=line.quantity,
                    price_at_order=price,
                ))

            order.total_amount = total.quantize(CENTS, rounding=ROUND_HALF_UP)
            await self.db.commit()

        except CanteenError as e:
            await self.db.rollback()
            logger.warning(f"❌ Order for {student_name} rejected: {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"❌ Error creating order: {e}")
            raise OrderCreationError() from e

        logger.info(
            f"Order #{order.id} created for vendor {vendor.vendor_id} "
            f"(queue #{order.queue_position}, total {order.total_amount})"
        )

        self.dispatcher.dispatch(
            phone_no,
            order_placed_message(order.queue_position, self.settings.estimated_wait_minutes),
        )
        return order

    async def _load_orderable_item(self, item_id: int, canteen_id: int) -> Optional[MenuItem]:
        # Shared lock: a concurrent price/availability edit waits for this order
        result = await self.db.execute(
            select(MenuItem)
            .where(
                MenuItem.id == item_id,
                MenuItem.canteen_id == canteen_id,
                MenuItem.is_available.is_(True),
            )
            .with_for_update(read=True)
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # READ
    # =========================================================================

    async def list_orders(self, vendor: VendorIdentity) -> List[Order]:
        """All of a vendor's orders with their items, newest first."""
        result = await self.db.execute(
            select(Order)
            .where(Order.vendor_id == vendor.vendor_id)
            .options(selectinload(Order.items).selectinload(OrderItem.menu_item))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # =========================================================================
    # STATUS
    # =========================================================================

    async def update_status(
        self,
        vendor: VendorIdentity,
        order_id: int,
        status: OrderStatus,
    ) -> Order:
        """
        Move one of the vendor's orders to a new status.

        Raises:
            NotFoundError: no such order for this vendor
            ConflictError: strict transitions are on and the move is backwards
            OrderUpdateError: the store failed
        """
        try:
            result = await self.db.execute(
                select(Order)
                .where(Order.id == order_id, Order.vendor_id == vendor.vendor_id)
                .with_for_update()
            )
            order = result.scalar_one_or_none()
            if order is None:
                raise NotFoundError(ORDER_NOT_FOUND)

            previous = order.status
            if not is_transition_allowed(previous, status, self.settings.strict_status_transitions):
                raise ConflictError(
                    f"Cannot change order status from '{previous.value}' to '{status.value}'."
                )

            order.status = status
            await self.db.commit()

        except CanteenError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"❌ Error updating order: {e}")
            raise OrderUpdateError() from e

        logger.info(f"Order #{order.id}: {previous.value} → {status.value}")

        message = STATUS_MESSAGES.get(status)
        if message:
            self.dispatcher.dispatch(order.phone_no, message)
        return order

    # =========================================================================
    # SMS CANCELLATION
    # =========================================================================

    async def cancel_latest_pending(self, phone_no: str) -> Optional[int]:
        """
        Cancel the most recent pending order placed from this number.

        Runs as a single conditional UPDATE so two concurrent replies cannot
        cancel two different orders. Returns the cancelled order id, or None
        when there was nothing to cancel.
        """
        candidate = aliased(Order)
        latest_pending = (
            select(candidate.id)
            .where(candidate.phone_no == phone_no, candidate.status == OrderStatus.PENDING)
            .order_by(candidate.created_at.desc(), candidate.id.desc())
            .limit(1)
            .scalar_subquery()
        )
        result = await self.db.execute(
            update(Order)
            .where(Order.id == latest_pending, Order.status == OrderStatus.PENDING)
            .values(status=OrderStatus.CANCELLED)
            .returning(Order.id)
            .execution_options(synchronize_session=False)
        )
        cancelled_id = result.scalar_one_or_none()
        await self.db.commit()

        if cancelled_id is None:
            logger.info(f"Cancel request from {phone_no}: no pending order")
            return None

        logger.info(f"Order #{cancelled_id} cancelled by SMS from {phone_no}")
        self.dispatcher.dispatch(phone_no, CANCELLED_MESSAGE)
        return cancelled_id

    async def handle_inbound_sms(self, from_phone: Optional[str], body: Optional[str]) -> Optional[int]:
        """
        React to a student's reply SMS.

        Only the cancel keyword does anything; every other message, and any
        store failure, is logged and ignored.
        """
        keyword = (body or "").strip().upper()
        if not from_phone or keyword != self.settings.cancel_keyword:
            logger.debug(f"Ignoring SMS from {from_phone}: {keyword[:20]!r}")
            return None

        try:
            return await self.cancel_latest_pending(from_phone)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"❌ SMS drop error: {e}")
            return None
