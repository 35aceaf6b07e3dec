"""
SQLAlchemy Database Models

Vendors, their canteen's menu, and the student orders they take.

Canteens have no table of their own: canteen_id is a plain scoping value
shared by a canteen's vendors and menu items.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from canteen.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Order status pipeline: pending → preparing → almost ready → ready."""
    PENDING = "pending"
    PREPARING = "preparing"
    ALMOST_READY = "almost ready"
    READY = "ready"
    CANCELLED = "cancelled"


class Vendor(Base):
    """A canteen stall operator who logs into the dashboard."""
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    username = Column(String(50), nullable=False, unique=True, index=True)
    password_hash = Column(String(100), nullable=False)
    canteen_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    orders = relationship("Order", back_populates="vendor")

    def __repr__(self):
        return f"<Vendor #{self.id} - {self.username} - canteen {self.canteen_id}>"


class MenuItem(Base):
    """Something a canteen sells."""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    canteen_id = Column(Integer, nullable=False, index=True)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price}>"


class Order(Base):
    """
    A student's order, taken at the counter by a vendor.

    queue_position is copied from the QueueTicket issued in the same
    transaction; total_amount is the sum of the line items' snapshotted
    prices.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # STUDENT
    # =========================================================================
    student_name = Column(String(100), nullable=False)
    phone_no = Column(String(20), nullable=False, index=True)

    # =========================================================================
    # OWNERSHIP & STATUS
    # =========================================================================
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    status = Column(
        Enum(
            OrderStatus,
            name="order_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # PRICING & QUEUE
    # =========================================================================
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    queue_position = Column(Integer, nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    vendor = relationship("Vendor", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __repr__(self):
        return f"<Order #{self.id} - {self.student_name} - {self.status.value}>"


class OrderItem(Base):
    """One line of an order; price_at_order never changes after creation."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_at_order = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem")

    @property
    def menu_item_name(self):
        return self.menu_item.name if self.menu_item is not None else None

    def __repr__(self):
        return f"<OrderItem #{self.id} - order {self.order_id} - {self.quantity} x {self.menu_item_id}>"


class QueueTicket(Base):
    """
    Store-issued queue numbers.

    One row per order, inserted in the order's creation transaction. The
    auto-increment id is the queue position: a single global sequence that
    the database hands out, so concurrent orders never share a number.
    """
    __tablename__ = "queue_tickets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    issued_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<QueueTicket #{self.id} - order {self.order_id}>"
