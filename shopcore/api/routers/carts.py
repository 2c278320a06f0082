# shopcore/api/routers/carts.py
from fastapi import APIRouter, Depends, Query

from shopcore.api.deps import get_cart_service, get_uow
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.domain.schemas import CartOut, ItemIn, ItemQuantityIn
from shopcore.services.cart_service import CartService

router = APIRouter(prefix="/carts", tags=["carts"])


@router.get("", response_model=CartOut)
def get_cart(
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_cart(uow, user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: CartService = Depends(get_cart_service),
):
    return svc.add_item(uow, user_id, payload.product_id, payload.quantity)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: ItemQuantityIn,
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: CartService = Depends(get_cart_service),
):
    return svc.update_item_quantity(uow, user_id, item_id, payload.quantity)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: CartService = Depends(get_cart_service),
):
    return svc.remove_item(uow, user_id, item_id)


@router.delete("", response_model=CartOut)
def clear_cart(
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: CartService = Depends(get_cart_service),
):
    return svc.clear(uow, user_id)
