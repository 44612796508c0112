# app/repos/catalog_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.product import ProductModel


class CatalogRepo:
    """Odczyt katalogu + jedyny zapis jaki robimy: stock_quantity."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_products(self, product_ids) -> dict[str, ProductModel]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(ProductModel)
            .where(ProductModel.id.in_(ids))
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {p.id: p for p in rows}

    def current_stock(self, product_id: str) -> int:
        return self.db.execute(
            select(ProductModel.stock_quantity).where(ProductModel.id == product_id)
        ).scalar_one_or_none() or 0

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        # warunkowy update - stan nigdy nie spadnie ponizej zera
        result = self.db.execute(
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.stock_quantity >= quantity,
            )
            .values(stock_quantity=ProductModel.stock_quantity - quantity)
        )
        return result.rowcount == 1

    def restore_stock(self, product_id: str, quantity: int) -> None:
        self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock_quantity=ProductModel.stock_quantity + quantity)
        )
