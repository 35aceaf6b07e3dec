"""
Dashboard analytics: today's sales, best sellers and the status breakdown.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.security import VendorIdentity
from canteen.models import MenuItem, Order, OrderItem, OrderStatus
from canteen.schemas import AnalyticsResponse, PopularItem, SalesToday, StatusCount

POPULAR_ITEMS_LIMIT = 5

# Cancelled orders are left out of the breakdown
ACTIVE_STATUSES = [
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.ALMOST_READY,
    OrderStatus.READY,
]


def start_of_today(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class AnalyticsService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def sales_today(self, vendor: VendorIdentity) -> SalesToday:
        """Revenue and order count for the vendor since UTC midnight."""
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(Order.total_amount), 0).label("total_sales"),
                func.count(Order.id).label("total_orders"),
            ).where(
                Order.vendor_id == vendor.vendor_id,
                Order.created_at >= start_of_today(),
            )
        )
        row = result.one()
        return SalesToday(
            total_sales=Decimal(str(row.total_sales)).quantize(Decimal("0.01")),
            total_orders=row.total_orders or 0,
        )

    async def popular_items(self, vendor: VendorIdentity) -> List[PopularItem]:
        """Top sellers by quantity across every vendor in the canteen."""
        total_sold = func.sum(OrderItem.quantity).label("total_sold")
        result = await self.db.execute(
            select(MenuItem.name, total_sold)
            .select_from(OrderItem)
            .join(MenuItem, OrderItem.menu_item_id == MenuItem.id)
            .where(MenuItem.canteen_id == vendor.canteen_id)
            .group_by(MenuItem.name)
            .order_by(total_sold.desc(), MenuItem.name.asc())
            .limit(POPULAR_ITEMS_LIMIT)
        )
        return [PopularItem(name=row.name, total_sold=row.total_sold) for row in result.all()]

    async def status_breakdown(self, vendor: VendorIdentity) -> List[StatusCount]:
        result = await self.db.execute(
            select(Order.status, func.count(Order.id).label("count"))
            .where(
                Order.vendor_id == vendor.vendor_id,
                Order.status.in_(ACTIVE_STATUSES),
            )
            .group_by(Order.status)
        )
        counts = [StatusCount(status=row.status, count=row.count) for row in result.all()]
        return sorted(counts, key=lambda c: ACTIVE_STATUSES.index(c.status))

    async def dashboard(self, vendor: VendorIdentity) -> AnalyticsResponse:
        return AnalyticsResponse(
            sales_today=await self.sales_today(vendor),
            popular_items=await self.popular_items(vendor),
            status_breakdown=await self.status_breakdown(vendor),
        )
