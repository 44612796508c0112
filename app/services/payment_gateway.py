# app/services/payment_gateway.py
"""
Cala komunikacja z zewnetrznym procesorem platnosci.

- RazorpayGateway: tryb live, REST przez requests, podpis HMAC-SHA256
- SyntheticGateway: tryb nieprodukcyjny, zamowienia z zarezerwowanym prefiksem

Tryb wybiera sie jawnie (PAYMENT_MODE). Brak kluczy w trybie live to blad
konfiguracji przy starcie, a nie ciche przejscie w tryb testowy.
"""
import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests

from app.domain.errors import ConfigurationError, GatewayError
from app.utils.retry import gateway_timeout_retry, http_retry
from app.utils.settings import (
    APP_ENV,
    GATEWAY_TIMEOUT_SECONDS,
    PAYMENT_MODE,
    RAZORPAY_API_URL,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
)
from app.utils.logging import get_logger

logger = get_logger(__name__)

SYNTHETIC_ORDER_PREFIX = "synthetic_order_"


@dataclass(frozen=True)
class RemoteOrder:
    external_order_id: str
    amount_minor_units: int
    currency: str
    receipt: str
    status: str = "created"


def receipt_for(order_id: int) -> str:
    # receipt = klucz idempotencji po stronie procesora
    return f"order_{order_id}"


def compute_signature(secret: str, external_order_id: str, external_payment_id: str) -> str:
    body = f"{external_order_id}|{external_payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def is_synthetic_order_id(external_order_id: str | None) -> bool:
    return bool(external_order_id) and external_order_id.startswith(SYNTHETIC_ORDER_PREFIX)


class PaymentGateway(ABC):
    mode: str = "live"
    public_key: str | None = None

    @abstractmethod
    def create_remote_order(self, order_id: int, amount_minor_units: int, currency: str, metadata: dict | None = None) -> RemoteOrder:
        """Otwiera zdalne zamowienie; bezpieczne do ponowienia z tym samym order_id."""

    @abstractmethod
    def verify_callback(self, external_order_id: str, external_payment_id: str, signature: str) -> bool:
        """Sprawdza podpis callbacku procesora. Bez efektow ubocznych."""

    @abstractmethod
    def fetch_payment(self, external_payment_id: str) -> dict:
        """Szczegoly platnosci z procesora."""


class RazorpayGateway(PaymentGateway):
    mode = "live"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = RAZORPAY_API_URL,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        if not key_id or not key_secret:
            raise ConfigurationError("Live payment mode requires RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET")
        self.public_key = key_id
        self._secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"Gateway {method} {url}")
        resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if resp.status_code >= 400:
            logger.error(f"Gateway {method} {path} rejected with {resp.status_code}")
            raise GatewayError(
                "Payment processor rejected the request",
                status_code=resp.status_code,
            )
        return resp.json()

    def create_remote_order(self, order_id, amount_minor_units, currency, metadata=None):
        receipt = receipt_for(order_id)
        notes = {str(k): str(v) for k, v in (metadata or {}).items()}
        try:
            data = self._find_or_create(receipt, amount_minor_units, currency, notes)
        except GatewayError as e:
            e.order_id = order_id
            raise
        except requests.RequestException as e:
            logger.error(f"Gateway unreachable while opening payment for order {order_id}: {e}")
            raise GatewayError("Payment processor unavailable", order_id=order_id) from e

        return RemoteOrder(
            external_order_id=data["id"],
            amount_minor_units=int(data["amount"]),
            currency=data["currency"],
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
        )

    @gateway_timeout_retry()
    def _find_or_create(self, receipt: str, amount_minor_units: int, currency: str, notes: dict) -> dict:
        # timeout mogl ukryc udane utworzenie - najpierw szukamy po receipt
        existing = self._find_by_receipt(receipt)
        if existing is not None:
            logger.info(f"Reusing remote order {existing['id']} for receipt {receipt}")
            return existing
        return self._request(
            "POST",
            "/orders",
            json={
                "amount": amount_minor_units,
                "currency": currency,
                "receipt": receipt,
                "notes": notes,
            },
        )

    def _find_by_receipt(self, receipt: str) -> dict | None:
        data = self._request("GET", "/orders", params={"receipt": receipt})
        for item in data.get("items", []):
            if item.get("receipt") == receipt:
                return item
        return None

    def verify_callback(self, external_order_id, external_payment_id, signature):
        if not external_order_id or not external_payment_id or not signature:
            return False
        expected = compute_signature(self._secret, external_order_id, external_payment_id)
        return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))

    def fetch_payment(self, external_payment_id):
        try:
            return self._get_payment(external_payment_id)
        except requests.RequestException as e:
            raise GatewayError("Payment processor unavailable") from e

    @http_retry()
    def _get_payment(self, external_payment_id: str) -> dict:
        # GET jest idempotentny, mozna ponawiac
        return self._request("GET", f"/payments/{external_payment_id}")


class SyntheticGateway(PaymentGateway):
    """
    Tryb bez procesora (dev/staging). Zdalne id sa deterministyczne i maja
    prefiks synthetic_order_; tylko takie id omijaja weryfikacje podpisu.
    """

    mode = "synthetic"
    public_key = None

    def create_remote_order(self, order_id, amount_minor_units, currency, metadata=None):
        return RemoteOrder(
            external_order_id=f"{SYNTHETIC_ORDER_PREFIX}{order_id}",
            amount_minor_units=amount_minor_units,
            currency=currency,
            receipt=receipt_for(order_id),
        )

    def verify_callback(self, external_order_id, external_payment_id, signature):
        if not is_synthetic_order_id(external_order_id) or not external_payment_id:
            return False
        logger.warning(f"SYNTHETIC PAYMENT MODE: accepting unsigned callback for {external_order_id}")
        return True

    def fetch_payment(self, external_payment_id):
        return {"id": external_payment_id, "method": "synthetic", "status": "captured"}


def build_gateway(
    mode: str = PAYMENT_MODE,
    app_env: str = APP_ENV,
    key_id: str = RAZORPAY_KEY_ID,
    key_secret: str = RAZORPAY_KEY_SECRET,
) -> PaymentGateway:
    mode = (mode or "").strip().lower()
    if mode == "live":
        return RazorpayGateway(key_id, key_secret)
    if mode == "synthetic":
        if app_env == "production":
            raise ConfigurationError("Synthetic payment mode is not allowed in production")
        logger.warning("=" * 80)
        logger.warning("SYNTHETIC PAYMENT MODE - no real payments, signature checks bypassed for synthetic orders")
        logger.warning("=" * 80)
        return SyntheticGateway()
    raise ConfigurationError(f"Unknown PAYMENT_MODE {mode!r}, expected 'live' or 'synthetic'")


_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
