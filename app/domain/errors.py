# app/domain/errors.py
"""
Taksonomia bledow domeny sklepu.

Kazdy blad niesie kod (kontrakt z UI) i status HTTP, routery
tlumacza je na odpowiedz bez wlasnej logiki.
"""


class ShopError(Exception):
    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(ShopError):
    """Bledne lub brakujace dane wejsciowe - nigdy nie ponawiane automatycznie."""

    code = "VALIDATION_ERROR"
    http_status = 400


class EmptyCart(ValidationError):
    code = "EMPTY_CART"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class NotFound(ShopError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(ShopError):
    """Konflikt stanu (brak stanu magazynowego, przegrany wyscig) - klient ponawia ze swiezymi danymi."""

    code = "CONFLICT"
    http_status = 409


class InsufficientStock(ConflictError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}",
            field="productId",
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class GatewayError(ShopError):
    """Procesor platnosci niedostepny lub odrzucil zadanie - zamowienie zostaje pending."""

    code = "GATEWAY_UNAVAILABLE"
    http_status = 502

    def __init__(self, message: str, *, order_id: int | None = None, status_code: int | None = None):
        super().__init__(message)
        self.order_id = order_id
        self.status_code = status_code


class VerificationError(ShopError):
    code = "PAYMENT_VERIFICATION_FAILED"
    http_status = 400
    public_message = "Payment could not be confirmed"

    def __init__(self, reason: str):
        # reason trafia tylko do logow, klient dostaje public_message
        super().__init__(self.public_message)
        self.reason = reason


class StorageError(ShopError):
    """Baza niedostepna - fail closed, zadnych czesciowych zapisow."""

    code = "STORAGE_UNAVAILABLE"
    http_status = 503


class ConfigurationError(Exception):
    pass
