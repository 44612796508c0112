from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON
from sqlalchemy.orm import relationship

from app.data.database import Base
from app.data.models.cart import _utcnow


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(40), nullable=False, unique=True)
    account_id = Column(String(64), nullable=False, index=True)

    status = Column(String(16), nullable=False, default="pending")  # pending, confirmed, failed
    failure_reason = Column(String(32), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    amount_minor_units = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)

    billing_address = Column(JSON, nullable=False)
    shipping_address = Column(JSON, nullable=True)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(32), nullable=False)

    external_payment_order_id = Column(String(64), nullable=True, unique=True)
    external_payment_id = Column(String(64), nullable=True)
    payment_signature = Column(String(128), nullable=True)
    payment_method = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
