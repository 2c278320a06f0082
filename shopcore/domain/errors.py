# shopcore/domain/errors.py
from typing import Any


class ShopError(Exception):
    """Base class for every error the core reports to its callers."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ShopError):
    """Malformed input, caller's fault. ``details`` holds field errors."""

    status_code = 400
    code = "validation_error"


class NotFoundError(ShopError):
    """Entity missing or not owned by the caller."""

    status_code = 404
    code = "not_found"


class ConflictError(ShopError):
    """Request is well formed but clashes with current state."""

    status_code = 409
    code = "conflict"


class ExternalServiceError(ShopError):
    """The payment gateway failed; callers may decide to retry."""

    status_code = 502
    code = "external_service_error"


class InternalError(ShopError):
    pass


class ProductUnavailable(NotFoundError):
    code = "product_unavailable"

    def __init__(self, product_id: int):
        super().__init__(
            f"Product {product_id} not found or inactive",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class InsufficientStock(ConflictError):
    code = "insufficient_stock"

    def __init__(self, product_id: int, requested: int, available: int | None = None):
        super().__init__(
            f"Insufficient stock for product {product_id}",
            details={"product_id": product_id, "requested": requested, "available": available},
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class EmptyCart(ConflictError):
    code = "empty_cart"


class InvalidStatusTransition(ConflictError):
    code = "invalid_status_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'",
            details={"entity": entity, "current": current, "target": target},
        )
        self.current = current
        self.target = target


class PaymentManagedExternally(ConflictError):
    code = "payment_managed_externally"


class OrderNotPayable(ConflictError):
    code = "order_not_payable"


class NotRefundable(ConflictError):
    code = "not_refundable"


class LockTimeout(ConflictError):
    code = "lock_timeout"
