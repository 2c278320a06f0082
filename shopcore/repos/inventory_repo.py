# shopcore/repos/inventory_repo.py
from sqlalchemy import select, update

from shopcore.data.models.product import ProductModel
from shopcore.domain.errors import InsufficientStock, ValidationError
from shopcore.repos.base import BaseRepo
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


class InventoryLedger(BaseRepo):
    """Per-product available stock, backed by the catalog's products table."""

    def find_active_product(self, product_id: int, lock: bool = False) -> ProductModel | None:
        stmt = select(ProductModel).where(
            ProductModel.id == product_id,
            ProductModel.is_active.is_(True),
        )
        return self._fetch_one(stmt, lock=lock)

    def decrement(self, product_id: int, quantity: int) -> None:
        """Take ``quantity`` units off the shelf or raise InsufficientStock.

        The WHERE clause makes the check and the write one statement, so two
        writers racing for the last units cannot both win.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        stmt = (
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(stock=ProductModel.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        rowcount = self._execute(stmt).rowcount
        self._expire_cached(ProductModel, product_id, ["stock"])
        if rowcount == 0:
            available = self._execute(
                select(ProductModel.stock).where(ProductModel.id == product_id)
            ).scalar_one_or_none()
            raise InsufficientStock(product_id, quantity, available)

        logger.info(f"Stock of product {product_id} decremented by {quantity}")

    def increment(self, product_id: int, quantity: int) -> None:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        stmt = (
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock=ProductModel.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        self._execute(stmt)
        self._expire_cached(ProductModel, product_id, ["stock"])
        logger.info(f"Stock of product {product_id} incremented by {quantity}")
