# app/repos/cart_repo.py
from datetime import datetime

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from app.data.database import dialect_insert
from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.data.models.product import ProductModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def ensure_cart(self, account_id: str, now: datetime) -> int:
        # jeden koszyk na konto, rownolegle insert-y koncza sie na DO NOTHING
        stmt = dialect_insert(self.db, CartModel.__table__).values(
            account_id=account_id,
            created_at=now,
            updated_at=now,
        )
        self.db.execute(stmt.on_conflict_do_nothing(index_elements=["account_id"]))
        return self.db.execute(
            select(CartModel.id).where(CartModel.account_id == account_id)
        ).scalar_one()

    def get_items_with_products(self, account_id: str):
        return self.db.execute(
            select(CartItemModel, ProductModel)
            .outerjoin(ProductModel, ProductModel.id == CartItemModel.product_id)
            .where(CartItemModel.account_id == account_id)
            .order_by(CartItemModel.added_at, CartItemModel.id)
            .execution_options(populate_existing=True)
        ).all()

    def upsert_add(self, cart_id: int, account_id: str, product_id: str, delta: int, now: datetime) -> None:
        """INSERT albo quantity += delta - jedno atomowe polecenie."""
        table = CartItemModel.__table__
        stmt = dialect_insert(self.db, table).values(
            cart_id=cart_id,
            account_id=account_id,
            product_id=product_id,
            quantity=delta,
            added_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "product_id"],
            set_={
                "quantity": table.c.quantity + stmt.excluded.quantity,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.db.execute(stmt)

    def upsert_set(self, cart_id: int, account_id: str, product_id: str, quantity: int, now: datetime) -> None:
        """INSERT albo quantity = wartosc bezwzgledna, bez delete + insert."""
        table = CartItemModel.__table__
        stmt = dialect_insert(self.db, table).values(
            cart_id=cart_id,
            account_id=account_id,
            product_id=product_id,
            quantity=quantity,
            added_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["account_id", "product_id"],
            set_={
                "quantity": stmt.excluded.quantity,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        self.db.execute(stmt)

    def delete_item(self, account_id: str, product_id: str) -> int:
        result = self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.account_id == account_id,
                CartItemModel.product_id == product_id,
            )
        )
        return result.rowcount

    def delete_items(self, account_id: str, product_ids) -> int:
        ids = list(product_ids)
        if not ids:
            return 0
        result = self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.account_id == account_id,
                CartItemModel.product_id.in_(ids),
            )
        )
        return result.rowcount

    def touch_cart(self, account_id: str, now: datetime) -> None:
        self.db.execute(
            update(CartModel)
            .where(CartModel.account_id == account_id)
            .values(updated_at=now)
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
