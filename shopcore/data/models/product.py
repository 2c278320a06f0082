# shopcore/data/models/product.py
from sqlalchemy import Boolean, CheckConstraint, Column, Integer, Numeric, String

from shopcore.data.database import Base


class ProductModel(Base):
    """Catalog row. The core only reads price/is_active and mutates stock."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)
