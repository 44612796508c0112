from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from app.data.database import Base
from app.data.models.cart import _utcnow


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)

    quantity = Column(Integer, nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    cart = relationship("CartModel", back_populates="items")

    # jeden wiersz na produkt w koszyku konta - na tym opiera sie upsert
    __table_args__ = (
        UniqueConstraint("account_id", "product_id", name="u_cart_items_account_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
    )
