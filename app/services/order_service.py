# app/services/order_service.py
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.database import storage_guard
from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel
from app.domain.errors import (
    ConflictError,
    EmptyCart,
    GatewayError,
    InsufficientStock,
    InvalidAmount,
    NotFound,
    ValidationError,
    VerificationError,
)
from app.domain.order_state import FailureReason, OrderStatus, ensure_transition
from app.repos.catalog_repo import CatalogRepo
from app.repos.order_repo import OrderRepo
from app.services.cart_service import CartService
from app.services.lock_service import LockService, payment_session_key
from app.services.payment_gateway import PaymentGateway, get_gateway
from app.utils.settings import (
    CURRENCY,
    MIN_ORDER_AMOUNT_MINOR,
    PAYMENT_SESSION_LOCK_TTL,
    PENDING_ORDER_TTL_SECONDS,
)
from app.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


@dataclass
class BillingInfo:
    billing_address: dict
    contact_email: str
    contact_phone: str
    shipping_address: dict | None = None
    total_amount: Decimal | None = None


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _new_order_number(now: datetime) -> str:
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def _normalize_lines(line_items) -> dict[str, int]:
    lines: dict[str, int] = {}
    for raw in line_items or []:
        if isinstance(raw, dict):
            product_id = raw.get("product_id", raw.get("productId"))
            quantity = raw.get("quantity")
        else:
            product_id = getattr(raw, "product_id", None)
            quantity = getattr(raw, "quantity", None)

        if not product_id:
            raise ValidationError("productId is required for every line item", field="productId")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(
                f"quantity for product {product_id} must be a positive integer",
                field="quantity",
            )
        # ten sam produkt dwa razy w zadaniu - sumujemy
        lines[str(product_id)] = lines.get(str(product_id), 0) + quantity
    return lines


def _validate_billing(billing: BillingInfo) -> None:
    if not billing.billing_address:
        raise ValidationError("billingAddress is required", field="billingAddress")
    if not billing.contact_email or "@" not in billing.contact_email:
        raise ValidationError("contactEmail must be a valid email address", field="contactEmail")
    if not billing.contact_phone or not billing.contact_phone.strip():
        raise ValidationError("contactPhone is required", field="contactPhone")


class OrderService:
    """
    Serwis odpowiedzialny za domene zamowien.
    create -> jedna transakcja (stan magazynowy + zamowienie)
    open_payment_session -> zdalne zamowienie w procesorze, idempotentne po order_id
    confirm_payment / cancel / expire -> przejscia stanu platnosci
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        lock_service: LockService | None = None,
        cart_service: CartService | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.catalog = CatalogRepo(db)
        self.gateway = gateway or get_gateway()
        self.lock_service = lock_service
        self.cart_service = cart_service or CartService(db)

    # =====================================================
    # COMMANDS
    # =====================================================
    def checkout(self, account_id: str, line_items, billing: BillingInfo) -> Dict[str, Any]:
        """
        Use Case: zamowienie + sesja platnosci.

        Blad procesora nie cofa zamowienia - zostaje pending, a klient
        ponawia open_payment_session z tym samym order_id.
        """
        order = self.create_order(account_id, line_items, billing)
        return self.open_payment_session(order.id, account_id)

    def create_order(self, account_id: str, line_items, billing: BillingInfo) -> OrderModel:
        if not account_id:
            raise ValidationError("accountId is required", field="accountId")
        _validate_billing(billing)

        lines = _normalize_lines(line_items)
        if not lines:
            raise EmptyCart("Cart is empty")

        now = datetime.now(timezone.utc)
        try:
            with storage_guard(self.db):
                order = self._create_order_tx(account_id, lines, billing, now)
        except IntegrityError as e:
            self.repo.rollback()
            logger.error(f"Order insert conflict for account {account_id}: {e}")
            raise ConflictError("Order could not be created, please retry") from e
        except Exception:
            self.repo.rollback()
            raise

        logger.info(
            f"Order {order.id} ({order.order_number}) created for account {account_id}, "
            f"total {order.total_amount} {order.currency}"
        )
        return order

    def _create_order_tx(self, account_id: str, lines: dict[str, int], billing: BillingInfo, now: datetime) -> OrderModel:
        # swiezy odczyt ceny i stanu dla kazdej linii
        products = self.catalog.get_products(lines.keys())
        for product_id in sorted(lines):
            if product_id not in products:
                raise ValidationError(f"Unknown product {product_id}", field="productId")

        for product_id in sorted(lines):
            available = products[product_id].stock_quantity
            if lines[product_id] > available:
                raise InsufficientStock(product_id, lines[product_id], available)

        items = []
        subtotal = Decimal("0.00")
        for product_id in sorted(lines):
            unit_price = Decimal(products[product_id].price).quantize(CENT)
            line_total = (unit_price * lines[product_id]).quantize(CENT)
            subtotal += line_total
            items.append(
                OrderItemModel(
                    product_id=product_id,
                    quantity=lines[product_id],
                    unit_price_snapshot=unit_price,
                    line_total=line_total,
                )
            )

        total = subtotal
        amount_minor = to_minor_units(total)
        if total <= 0:
            raise InvalidAmount("Order total must be greater than zero", field="totalAmount")
        if amount_minor < MIN_ORDER_AMOUNT_MINOR:
            raise InvalidAmount(
                f"Minimum order amount is {Decimal(MIN_ORDER_AMOUNT_MINOR) / 100} {CURRENCY}",
                field="totalAmount",
            )
        if billing.total_amount is not None and Decimal(billing.total_amount).quantize(CENT) != total:
            raise ValidationError(
                f"totalAmount {billing.total_amount} does not match current prices ({total})",
                field="totalAmount",
            )

        # posortowane po product_id - staly porzadek blokad wierszy
        for product_id in sorted(lines):
            if not self.catalog.decrement_stock(product_id, lines[product_id]):
                # ktos wykupil w miedzyczasie
                raise InsufficientStock(
                    product_id, lines[product_id], self.catalog.current_stock(product_id)
                )

        order = OrderModel(
            order_number=_new_order_number(now),
            account_id=account_id,
            status=OrderStatus.PENDING.value,
            subtotal=subtotal,
            total_amount=total,
            amount_minor_units=amount_minor,
            currency=CURRENCY,
            billing_address=billing.billing_address,
            shipping_address=billing.shipping_address,
            contact_email=billing.contact_email,
            contact_phone=billing.contact_phone,
            created_at=now,
            updated_at=now,
            items=items,
        )
        self.repo.add_order(order)
        self.repo.commit()
        return order

    def open_payment_session(self, order_id: int, account_id: str | None = None) -> Dict[str, Any]:
        order = self._load_order(order_id, account_id)

        if order.status != OrderStatus.PENDING.value:
            raise ConflictError(
                f"Order {order.id} is {order.status}; create a new order to pay again"
            )
        if order.external_payment_order_id:
            return self._session_payload(order)

        owner = uuid.uuid4().hex
        locked = self._acquire_session_lock(order.id, owner)
        if locked is False:
            raise ConflictError(f"Payment session for order {order.id} is already being opened, retry shortly")

        try:
            remote = self.gateway.create_remote_order(
                order.id,
                order.amount_minor_units,
                order.currency,
                metadata={
                    "order_number": order.order_number,
                    "customer_email": order.contact_email,
                    "customer_phone": order.contact_phone,
                    "billing_city": (order.billing_address or {}).get("city", "Not provided"),
                    "shipping_city": (order.shipping_address or {}).get("city", "Not provided"),
                    "items_count": len(order.items),
                },
            )

            with storage_guard(self.db):
                updated = self.repo.set_external_order_id(
                    order.id, remote.external_order_id, datetime.now(timezone.utc)
                )
                self.repo.commit()
            if not updated:
                logger.warning(f"Order {order.id} already had a remote order, keeping the first one")
            order = self.repo.refresh(order)
        except GatewayError as e:
            e.order_id = order.id
            logger.error(f"Payment session for order {order.id} not opened, order stays pending: {e.message}")
            raise
        finally:
            if locked:
                self._release_session_lock(order.id, owner)

        logger.info(f"Order {order.id} handed to gateway as {order.external_payment_order_id}")
        return self._session_payload(order)

    def confirm_payment(self, external_order_id: str, external_payment_id: str, signature: str) -> Dict[str, Any]:
        for field_name, value in (
            ("externalPaymentOrderId", external_order_id),
            ("externalPaymentId", external_payment_id),
            ("signature", signature),
        ):
            if not value:
                raise ValidationError(f"{field_name} is required", field=field_name)

        with storage_guard(self.db):
            order = self.repo.get_by_external_id(external_order_id)
        if order is None:
            raise VerificationError(f"no order for remote id {external_order_id}")

        if not self.gateway.verify_callback(external_order_id, external_payment_id, signature):
            # podpis nie pasuje - zamowienie bez zmian, nic nie zdradzamy klientowi
            logger.warning(f"Signature mismatch for order {order.id} ({external_order_id})")
            raise VerificationError("signature mismatch")

        if order.status == OrderStatus.CONFIRMED.value:
            if order.external_payment_id != external_payment_id:
                logger.error(
                    f"Order {order.id} already confirmed with payment {order.external_payment_id}, "
                    f"second payment {external_payment_id} needs a refund"
                )
            return {"order_id": order.id, "status": order.status}

        if order.status == OrderStatus.FAILED.value:
            logger.error(
                f"Verified payment {external_payment_id} arrived for closed order {order.id} "
                f"({order.failure_reason}); payment needs a refund"
            )
            return {"order_id": order.id, "status": order.status}

        target = ensure_transition(order.status, OrderStatus.CONFIRMED)
        payment_method = self._payment_method(external_payment_id)
        now = datetime.now(timezone.utc)

        try:
            with storage_guard(self.db):
                updated = self.repo.transition_from_pending(
                    order.id,
                    target,
                    {
                        "external_payment_id": external_payment_id,
                        "payment_signature": signature,
                        "payment_method": payment_method,
                        "paid_at": now,
                        "closed_at": now,
                        "updated_at": now,
                    },
                )
                if updated:
                    # zamowione linie opuszczaja koszyk konta
                    self.cart_service.clear_products(order.account_id, [i.product_id for i in order.items])
                self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        order = self.repo.refresh(order)
        if updated:
            logger.info(f"Order {order.id} confirmed with payment {external_payment_id}")
        return {"order_id": order.id, "status": order.status}

    def cancel_order(self, order_id: int, account_id: str) -> Dict[str, Any]:
        order = self._load_order(order_id, account_id)
        if order.status == OrderStatus.FAILED.value:
            return self._order_to_dict(order)
        ensure_transition(order.status, OrderStatus.FAILED)

        if not self._fail_order(order.id, FailureReason.CANCELLED):
            # przegrany wyscig - np. callback potwierdzil w miedzyczasie
            order = self.repo.refresh(order)
            if order.status != OrderStatus.FAILED.value:
                ensure_transition(order.status, OrderStatus.FAILED)
        return self._order_to_dict(self.repo.refresh(order))

    def expire_stale_orders(self, now: datetime | None = None, ttl_seconds: int = PENDING_ORDER_TTL_SECONDS, batch_size: int = 100) -> list[int]:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=ttl_seconds)

        with storage_guard(self.db):
            stale_ids = self.repo.get_stale_pending_ids(cutoff, batch_size)

        expired = [oid for oid in stale_ids if self._fail_order(oid, FailureReason.EXPIRED, now)]
        if expired:
            logger.info(f"Expired {len(expired)} pending orders older than {ttl_seconds}s")
        return expired

    def _fail_order(self, order_id: int, reason: FailureReason, now: datetime | None = None) -> bool:
        """pending -> failed i zwrot zarezerwowanego stanu, w jednej transakcji."""
        now = now or datetime.now(timezone.utc)
        try:
            with storage_guard(self.db):
                updated = self.repo.transition_from_pending(
                    order_id,
                    OrderStatus.FAILED,
                    {"failure_reason": reason.value, "closed_at": now, "updated_at": now},
                )
                if updated:
                    order = self.repo.get_order(order_id)
                    for item in order.items:
                        self.catalog.restore_stock(item.product_id, item.quantity)
                self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        if updated:
            logger.info(f"Order {order_id} failed ({reason.value}), stock restored")
        return bool(updated)

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, order_id: int, account_id: str) -> Dict[str, Any]:
        return self._order_to_dict(self._load_order(order_id, account_id))

    def get_payment_details(self, external_payment_id: str, account_id: str) -> Dict[str, Any]:
        """Szczegoly platnosci z procesora, tylko dla wlasciciela zamowienia."""
        with storage_guard(self.db):
            order = self.repo.get_by_payment_id(external_payment_id)
        if order is None:
            raise NotFound(f"Payment {external_payment_id} not found")
        if order.account_id != account_id:
            raise PermissionError("No access to this payment")

        details = self.gateway.fetch_payment(external_payment_id)
        return {
            "payment_id": external_payment_id,
            "order_id": order.id,
            "status": details.get("status"),
            "method": details.get("method") or order.payment_method,
            "amount_minor_units": details.get("amount", order.amount_minor_units),
            "currency": details.get("currency", order.currency),
        }

    def list_orders(self, account_id: str) -> list[Dict[str, Any]]:
        with storage_guard(self.db):
            orders = self.repo.list_for_account(account_id)
        return [self._order_to_dict(o) for o in orders]

    # =====================================================
    # helpers
    # =====================================================
    def _load_order(self, order_id: int, account_id: str | None) -> OrderModel:
        with storage_guard(self.db):
            order = self.repo.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        if account_id is not None and order.account_id != account_id:
            raise PermissionError("No access to this order")
        return order

    def _acquire_session_lock(self, order_id: int, owner: str) -> bool | None:
        if self.lock_service is None:
            return None
        try:
            return self.lock_service.acquire(payment_session_key(order_id), owner, PAYMENT_SESSION_LOCK_TTL)
        except RedisError as e:
            # lock jest pomocniczy - receipt + CAS w bazie wystarcza
            logger.warning(f"Lock service unavailable, opening payment session for order {order_id} without lock: {e}")
            return None

    def _release_session_lock(self, order_id: int, owner: str) -> None:
        try:
            self.lock_service.release(payment_session_key(order_id), owner)
        except RedisError as e:
            logger.warning(f"Failed to release payment session lock for order {order_id}: {e}")

    def _payment_method(self, external_payment_id: str) -> str | None:
        try:
            details = self.gateway.fetch_payment(external_payment_id)
        except GatewayError as e:
            logger.warning(f"Payment details for {external_payment_id} unavailable: {e.message}")
            return None
        return details.get("method")

    def _session_payload(self, order: OrderModel) -> Dict[str, Any]:
        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "external_payment_order_id": order.external_payment_order_id,
            "amount_minor_units": order.amount_minor_units,
            "currency": order.currency,
            "gateway_public_key": self.gateway.public_key,
            "status": order.status,
        }

    @staticmethod
    def _order_to_dict(order: OrderModel) -> Dict[str, Any]:
        return {
            "id": order.id,
            "order_number": order.order_number,
            "account_id": order.account_id,
            "status": order.status,
            "failure_reason": order.failure_reason,
            "line_items": [
                {
                    "product_id": i.product_id,
                    "quantity": i.quantity,
                    "unit_price_snapshot": i.unit_price_snapshot,
                    "line_total": i.line_total,
                }
                for i in order.items
            ],
            "subtotal": order.subtotal,
            "total_amount": order.total_amount,
            "currency": order.currency,
            "external_payment_order_id": order.external_payment_order_id,
            "created_at": order.created_at,
            "paid_at": order.paid_at,
        }
