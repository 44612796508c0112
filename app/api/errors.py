# app/api/errors.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.domain.errors import ShopError, GatewayError, InsufficientStock
from app.utils.logging import get_logger

logger = get_logger(__name__)


def error_body(code: str, message: str, **extra) -> dict:
    body = {"success": False, "code": code, "error": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


async def shop_error_handler(request: Request, exc: ShopError):
    extra = {"field": exc.field}
    if isinstance(exc, GatewayError):
        # klient ponawia sesje platnosci dla tego samego zamowienia
        extra["orderId"] = exc.order_id
    if isinstance(exc, InsufficientStock):
        extra["productId"] = exc.product_id
        extra["available"] = exc.available
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=error_body(exc.code, exc.message, **extra))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or None
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", message, field=field))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
