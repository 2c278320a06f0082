# shopcore/api/deps.py
from functools import lru_cache

from fastapi import Depends, Request

from shopcore.data.unit_of_work import UnitOfWork
from shopcore.services.cart_service import CartService
from shopcore.services.lock_service import LockService
from shopcore.services.order_service import OrderService
from shopcore.services.payment_gateway import PaymentGateway, gateway_from_settings
from shopcore.services.payment_service import PaymentService


def get_uow():
    with UnitOfWork() as uow:
        yield uow


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return gateway_from_settings()


@lru_cache
def get_lock_service() -> LockService:
    return LockService()


def get_cart_service() -> CartService:
    return CartService()


def get_order_service() -> OrderService:
    return OrderService()


def get_payment_service(
    gateway: PaymentGateway = Depends(get_payment_gateway),
    lock_service: LockService = Depends(get_lock_service),
) -> PaymentService:
    return PaymentService(gateway, lock_service)


async def raw_body(request: Request) -> bytes:
    return await request.body()
