"""
Pydantic Schemas for Request/Response Validation

Request bodies accept the field names the dashboard sends (canteenId,
studentName, phoneNo, items[].item_id); responses use the stored column
names. Money is Decimal and serializes as a two-decimal string.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from canteen.models import OrderStatus


def _strip_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


# =============================================================================
# VENDOR AUTH
# =============================================================================

class VendorRegister(BaseModel):
    """Request schema for registering a vendor."""
    model_config = ConfigDict(populate_by_name=True)

    canteen_id: int = Field(..., alias="canteenId", ge=1, examples=[1])
    username: str = Field(..., min_length=1, max_length=50, examples=["stall-7"])
    password: str = Field(..., min_length=1, examples=["hunter2"])
    name: str = Field(..., min_length=1, max_length=100, examples=["Dosa Corner"])

    @field_validator("username", "name")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class VendorLogin(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class VendorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class RegisterResponse(BaseModel):
    message: str
    vendor: VendorSummary


class LoginResponse(BaseModel):
    message: str
    token: str


# =============================================================================
# MENU
# =============================================================================

class MenuItemCreate(BaseModel):
    """Request schema for adding a menu item."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Masala Dosa"])
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2, examples=["45.00"])
    description: Optional[str] = Field(None, max_length=500)
    is_available: bool = Field(default=True)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v)


class MenuItemUpdate(BaseModel):
    """
    Partial update of a menu item.

    Only the fields present in the body are changed. The dashboard posts the
    whole item back (id, canteen_id, ...); anything not listed here is
    ignored.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    description: Optional[str] = Field(None, max_length=500)
    is_available: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _strip_required(v)


class MenuItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Decimal
    description: Optional[str]
    is_available: bool
    canteen_id: int


class MenuItemEnvelope(BaseModel):
    message: str
    item: MenuItemResponse


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# ORDERS
# =============================================================================

class OrderLineCreate(BaseModel):
    """Single line in an order request."""
    item_id: int = Field(..., ge=1, examples=[1])
    quantity: int = Field(..., ge=1, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    model_config = ConfigDict(populate_by_name=True)

    student_name: str = Field(..., alias="studentName", min_length=1, max_length=100, examples=["Asha"])
    phone_no: str = Field(..., alias="phoneNo", min_length=1, max_length=20, examples=["+15551234567"])
    items: List[OrderLineCreate] = Field(..., min_length=1)

    @field_validator("student_name", "phone_no")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class OrderCreateResponse(BaseModel):
    """Response after successfully creating an order."""
    model_config = ConfigDict(populate_by_name=True)

    order_id: int = Field(..., serialization_alias="orderId")
    status: OrderStatus
    queue_position: int = Field(..., serialization_alias="queuePosition")


class OrderStatusUpdate(BaseModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            return " ".join(v.split()).lower()
        return v


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    menu_item_name: Optional[str] = None
    quantity: int
    price_at_order: Decimal


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_name: str
    phone_no: str
    vendor_id: int
    status: OrderStatus
    total_amount: Decimal
    queue_position: Optional[int]
    created_at: datetime


class OrderWithItemsResponse(OrderResponse):
    items: List[OrderItemResponse]


class OrderStatusResponse(BaseModel):
    message: str
    order: OrderResponse


# =============================================================================
# ANALYTICS
# =============================================================================

class SalesToday(BaseModel):
    total_sales: Decimal
    total_orders: int


class PopularItem(BaseModel):
    name: str
    total_sold: int


class StatusCount(BaseModel):
    status: OrderStatus
    count: int


class AnalyticsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sales_today: SalesToday = Field(..., serialization_alias="salesToday")
    popular_items: List[PopularItem] = Field(..., serialization_alias="popularItems")
    status_breakdown: List[StatusCount] = Field(..., serialization_alias="statusBreakdown")


# =============================================================================
# SYSTEM
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    broker: str
    notification_service: str
    timestamp: datetime
