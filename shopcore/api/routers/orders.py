# shopcore/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Header, Query

from shopcore.api.deps import get_order_service, get_uow
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.domain.schemas import (
    OrderCreate,
    OrderFromCartIn,
    OrderOut,
    OrderPaymentStatusIn,
    OrderStatusIn,
)
from shopcore.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: int = Query(..., gt=0),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    uow: UnitOfWork = Depends(get_uow),
    svc: OrderService = Depends(get_order_service),
):
    """
    Places an order for explicit items. Prices come from the catalog.
    """
    return svc.create_order(
        uow,
        user_id,
        [item.model_dump() for item in payload.items],
        payload.shipping_address.model_dump(),
        idempotency_key=idempotency_key,
    )


@router.post("/from-cart", response_model=OrderOut, status_code=201)
def create_order_from_cart(
    payload: OrderFromCartIn,
    user_id: int = Query(..., gt=0),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    uow: UnitOfWork = Depends(get_uow),
    svc: OrderService = Depends(get_order_service),
):
    """
    Converts the user's active cart into an order.
    """
    return svc.create_order_from_cart(
        uow,
        user_id,
        payload.shipping_address.model_dump(),
        idempotency_key=idempotency_key,
    )


@router.get("", response_model=List[OrderOut])
def list_orders(
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_orders(uow, user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: OrderService = Depends(get_order_service),
):
    return svc.get_order(uow, order_id, user_id)


# admin endpoints; authorization happens upstream
@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(
    order_id: int,
    payload: OrderStatusIn,
    uow: UnitOfWork = Depends(get_uow),
    svc: OrderService = Depends(get_order_service),
):
    return svc.update_status(uow, order_id, payload.status.value)


@router.patch("/{order_id}/payment", response_model=OrderOut)
def update_payment_status(
    order_id: int,
    payload: OrderPaymentStatusIn,
    uow: UnitOfWork = Depends(get_uow),
    svc: OrderService = Depends(get_order_service),
):
    return svc.update_manual_payment_status(uow, order_id, payload.payment_status)
