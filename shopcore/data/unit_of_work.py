# shopcore/data/unit_of_work.py
"""Scoped transaction shared by every repo touched in one operation.

Usage::

    with UnitOfWork() as uow:
        order = order_service.create_order(uow, owner_id, items, address)

Services call ``uow.commit()`` once all their writes are staged. Leaving the
``with`` block without a commit (early return or exception) rolls back.
"""
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from shopcore.data.database import SessionLocal
from shopcore.domain.errors import ConflictError, LockTimeout
from shopcore.repos.cart_repo import CartRepo
from shopcore.repos.inventory_repo import InventoryLedger
from shopcore.repos.order_repo import OrderRepo
from shopcore.repos.payment_repo import PaymentRepo
from shopcore.utils.logging import get_logger
from shopcore.utils.settings import TRANSACTION_TIMEOUT_MS

logger = get_logger(__name__)


class UnitOfWork:
    session: Session
    carts: CartRepo
    orders: OrderRepo
    payments: PaymentRepo
    inventory: InventoryLedger

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        timeout_ms: int = TRANSACTION_TIMEOUT_MS,
    ):
        self.session_factory = session_factory or SessionLocal
        self.timeout_ms = timeout_ms
        self._committed = False

    def __enter__(self) -> "UnitOfWork":
        self.session = self.session_factory()
        self._committed = False
        self._apply_timeouts()

        self.carts = CartRepo(self.session)
        self.orders = OrderRepo(self.session)
        self.payments = PaymentRepo(self.session)
        self.inventory = InventoryLedger(self.session)
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if not self._committed:
                if exc_type is not None:
                    logger.info(f"Rolling back unit of work after {exc_type.__name__}")
                self.session.rollback()
        finally:
            self.session.close()
        return False

    def _apply_timeouts(self) -> None:
        # SET LOCAL lives as long as the transaction this unit of work opens
        if self.session.get_bind().dialect.name != "postgresql":
            return
        timeout = int(self.timeout_ms)
        self.session.execute(text(f"SET LOCAL lock_timeout = {timeout}"))
        self.session.execute(text(f"SET LOCAL statement_timeout = {timeout}"))

    def flush(self) -> None:
        try:
            self.session.flush()
        except IntegrityError as e:
            raise ConflictError("Write conflicts with existing data") from e
        except OperationalError as e:
            raise LockTimeout("Could not write changes in time") from e

    def commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError("Write conflicts with existing data") from e
        except OperationalError as e:
            self.session.rollback()
            raise LockTimeout("Transaction could not complete in time") from e
        self._committed = True
