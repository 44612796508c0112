# app/data/models/product.py
from sqlalchemy import Column, String, Integer, Numeric, CheckConstraint

from app.data.database import Base


class ProductModel(Base):
    """Katalog - wlasnosc zewnetrznego serwisu, tutaj zapisujemy tylko stock_quantity."""

    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )
