# shopcore/repos/payment_repo.py
from sqlalchemy import func, select

from shopcore.data.models.payment import PaymentModel
from shopcore.domain.state import PaymentStatus
from shopcore.repos.base import BaseRepo

IN_FLIGHT = (PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value)


class PaymentRepo(BaseRepo):
    def create_payment(self, payment: PaymentModel) -> PaymentModel:
        return self._add(payment)

    def get_payment(self, payment_id: int, lock: bool = False) -> PaymentModel | None:
        return self._fetch_one(select(PaymentModel).where(PaymentModel.id == payment_id), lock=lock)

    def get_by_intent_id(self, intent_id: str, lock: bool = False) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.payment_intent_id == intent_id)
        return self._fetch_one(stmt, lock=lock)

    def count_for_order(self, order_id: int) -> int:
        stmt = select(func.count(PaymentModel.id)).where(PaymentModel.order_id == order_id)
        return self._execute(stmt).scalar_one()

    def has_in_flight(self, order_id: int) -> bool:
        stmt = select(PaymentModel.id).where(
            PaymentModel.order_id == order_id,
            PaymentModel.status.in_(IN_FLIGHT),
        )
        return self._execute(stmt.limit(1)).first() is not None
