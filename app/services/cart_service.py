from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any
from sqlalchemy.orm import Session
from app.domain.errors import ValidationError
from app.repos.cart_repo import CartRepo
from app.repos.catalog_repo import CatalogRepo
from app.data.database import storage_guard
from app.utils.logging import get_logger

logger = get_logger(__name__)


def _validate_ids(account_id: str, product_id: str) -> None:
    if not account_id or not str(account_id).strip():
        raise ValidationError("accountId is required", field="accountId")
    if not product_id or not str(product_id).strip():
        raise ValidationError("productId is required", field="productId")


class CartService:
    """
    Koszyk konta - trwaly, autorytatywny
    commands (add, set_quantity, remove) to pojedyncze atomowe polecenia sql
    query (get) laczy linie z aktualna cena/stanem z katalogu, tylko do wyswietlenia
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = CartRepo(db)
        self.catalog = CatalogRepo(db)

    #query - odczyt
    def get_cart(self, account_id: str) -> Dict[str, Any]:
        with storage_guard(self.db):
            rows = self.repo.get_items_with_products(account_id)

        items = []
        subtotal = Decimal("0.00")
        for item, product in rows:
            price = product.price if product is not None else None
            stock = product.stock_quantity if product is not None else 0
            if price is not None:
                subtotal += price * item.quantity
            items.append(
                {
                    "product_id": item.product_id,
                    "name": product.name if product is not None else None,
                    "quantity": item.quantity,
                    "added_at": item.added_at,
                    "price": price,
                    "stock_quantity": stock,
                    "available": product is not None and stock >= item.quantity,
                }
            )

        #dict przyksztalcany w jsona
        return {
            "account_id": account_id,
            "items": items,
            "subtotal": subtotal,
            "total_items": sum(i["quantity"] for i in items),
        }

    #commands
    def add_product(self, account_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        with storage_guard(self.db):
            self.apply_add(account_id, product_id, quantity)
            self.repo.commit()

        logger.info(f"Added {quantity} x {product_id} to cart of account {account_id}")
        return self.get_cart(account_id)

    def apply_add(self, account_id: str, product_id: str, delta: int, now: datetime | None = None) -> None:
        """
        Addytywny upsert bez commita - wolajacy decyduje o granicy transakcji
        (merge koszyka goscia dokleja tu swoj wpis idempotencji).
        """
        _validate_ids(account_id, product_id)
        if isinstance(delta, bool) or not isinstance(delta, int) or delta < 1:
            raise ValidationError(
                f"quantity for product {product_id} must be a positive integer",
                field="quantity",
            )

        if self.catalog.get_product(product_id) is None:
            raise ValidationError(f"Unknown product {product_id}", field="productId")

        now = now or datetime.now(timezone.utc)
        cart_id = self.repo.ensure_cart(account_id, now)
        self.repo.upsert_add(cart_id, account_id, product_id, delta, now)
        self.repo.touch_cart(account_id, now)

    def set_quantity(self, account_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        _validate_ids(account_id, product_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity must be an integer", field="quantity")

        # quantity <= 0 oznacza "brak linii"
        if quantity <= 0:
            return self.remove_product(account_id, product_id)

        with storage_guard(self.db):
            if self.catalog.get_product(product_id) is None:
                raise ValidationError(f"Unknown product {product_id}", field="productId")

            now = datetime.now(timezone.utc)
            cart_id = self.repo.ensure_cart(account_id, now)
            self.repo.upsert_set(cart_id, account_id, product_id, quantity, now)
            self.repo.touch_cart(account_id, now)
            self.repo.commit()

        logger.info(f"Set quantity of {product_id} to {quantity} for account {account_id}")
        return self.get_cart(account_id)

    def remove_product(self, account_id: str, product_id: str) -> Dict[str, Any]:
        _validate_ids(account_id, product_id)

        with storage_guard(self.db):
            removed = self.repo.delete_item(account_id, product_id)
            if removed:
                self.repo.touch_cart(account_id, datetime.now(timezone.utc))
            self.repo.commit()

        if removed:
            logger.info(f"Removed {product_id} from cart of account {account_id}")
        return self.get_cart(account_id)

    def clear_products(self, account_id: str, product_ids) -> int:
        # bez commita - wywolywane w transakcji potwierdzenia zamowienia
        return self.repo.delete_items(account_id, product_ids)
