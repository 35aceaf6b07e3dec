"""
Menu catalog for a vendor's canteen.

Every query is scoped by canteen_id; an item from another canteen behaves
exactly like a missing one.
"""

import logging
from decimal import Decimal
from typing import Any, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import CanteenError, ConflictError, NotFoundError
from canteen.core.security import VendorIdentity
from canteen.models import MenuItem
from canteen.schemas import MenuItemCreate, MenuItemUpdate

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

ITEM_NOT_FOUND = "Item not found or you do not have permission to edit it."
ITEM_NOT_FOUND_DELETE = "Item not found or you do not have permission to delete it."
ITEM_IN_USE = "Failed to delete item. It may be part of an existing order."


class MenuService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_items(self, vendor: VendorIdentity) -> List[MenuItem]:
        result = await self.db.execute(
            select(MenuItem)
            .where(MenuItem.canteen_id == vendor.canteen_id)
            .order_by(MenuItem.name.asc(), MenuItem.id.asc())
        )
        return list(result.scalars().all())

    async def create_item(self, vendor: VendorIdentity, data: MenuItemCreate) -> MenuItem:
        item = MenuItem(
            name=data.name,
            price=data.price.quantize(CENTS),
            description=data.description,
            is_available=data.is_available,
            canteen_id=vendor.canteen_id,
        )
        self.db.add(item)
        await self._commit("adding menu item", "Failed to add item.")
        logger.info(f"Menu item #{item.id} '{item.name}' added to canteen {vendor.canteen_id}")
        return item

    async def update_item(self, vendor: VendorIdentity, item_id: int, data: MenuItemUpdate) -> MenuItem:
        """Apply the fields present in the request; others keep their value."""
        item = await self._get_owned(vendor, item_id)

        changes: dict[str, Any] = data.model_dump(exclude_unset=True)
        for field in ("name", "price", "is_available"):
            if changes.get(field, ...) is None:
                changes.pop(field)
        if "price" in changes:
            changes["price"] = changes["price"].quantize(CENTS)

        for field, value in changes.items():
            setattr(item, field, value)

        await self._commit("updating menu item", "Failed to update item.")
        logger.info(f"Menu item #{item.id} updated: {sorted(changes)}")
        return item

    async def delete_item(self, vendor: VendorIdentity, item_id: int) -> None:
        """
        Raises:
            NotFoundError: absent or belongs to another canteen
            ConflictError: an order line still references the item
        """
        item = await self._get_owned(vendor, item_id, not_found=ITEM_NOT_FOUND_DELETE)
        await self.db.delete(item)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Menu item #{item_id} is referenced by orders; not deleted")
            raise ConflictError(ITEM_IN_USE)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"❌ Error deleting menu item: {e}")
            raise CanteenError("Failed to delete item.") from e
        logger.info(f"Menu item #{item_id} deleted")

    async def _get_owned(self, vendor: VendorIdentity, item_id: int, not_found: str = ITEM_NOT_FOUND) -> MenuItem:
        result = await self.db.execute(
            select(MenuItem).where(MenuItem.id == item_id, MenuItem.canteen_id == vendor.canteen_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError(not_found)
        return item

    async def _commit(self, action: str, failure: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"❌ Error {action}: {e}")
            raise CanteenError(failure) from e
