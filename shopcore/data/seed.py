# shopcore/data/seed.py
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from shopcore.data.database import SessionLocal
from shopcore.data.models import ProductModel, UserModel
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

DEMO_USERS = [
    {"id": 1, "name": "Alice"},
    {"id": 2, "name": "Bob"},
]

DEMO_PRODUCTS = [
    {"id": 1, "name": "Espresso beans 1kg", "price": Decimal("24.90"), "stock": 50},
    {"id": 2, "name": "Paper filters", "price": Decimal("4.50"), "stock": 200},
    {"id": 3, "name": "Hand grinder", "price": Decimal("89.00"), "stock": 10},
    {"id": 4, "name": "Discontinued kettle", "price": Decimal("39.00"), "stock": 0, "is_active": False},
]


def seed(session_factory: sessionmaker = SessionLocal) -> None:
    db = session_factory()
    try:
        # not forcing: only seed if empty
        if db.query(UserModel).first() or db.query(ProductModel).first():
            logger.info("Database already seeded, skipping")
            return
        db.add_all(UserModel(**u) for u in DEMO_USERS)
        db.add_all(ProductModel(**p) for p in DEMO_PRODUCTS)
        db.commit()
        logger.info(f"Seeded {len(DEMO_USERS)} users and {len(DEMO_PRODUCTS)} products")
    finally:
        db.close()
