# shopcore/api/errors.py
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shopcore.domain.errors import InternalError, ShopError, ValidationError
from shopcore.utils import settings
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


def _envelope(status_code: int, error: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
        body = {"code": exc.code, "message": "The request could not be completed"}
        if settings.DEBUG:
            body = exc.to_dict()
            body["stack"] = traceback.format_exception(exc)
        return _envelope(exc.status_code, body)

    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return _envelope(exc.status_code, exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    error = ValidationError("Invalid request", details=details)
    return _envelope(error.status_code, error.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = InternalError("Internal Server Error")
    body = error.to_dict()
    if settings.DEBUG:
        body["message"] = str(exc)
        body["stack"] = traceback.format_exception(exc)
    return _envelope(error.status_code, body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
