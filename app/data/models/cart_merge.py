from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint

from app.data.database import Base
from app.data.models.cart import _utcnow


class CartMergeModel(Base):
    """Zakonczony merge koszyka goscia - jeden wiersz na (konto, token snapshotu)."""

    __tablename__ = "cart_merges"

    id = Column(Integer, primary_key=True)
    account_id = Column(String(64), nullable=False)
    merge_token = Column(String(64), nullable=False)
    line_count = Column(Integer, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("account_id", "merge_token", name="u_cart_merges_account_token"),
    )


class CartMergeLineModel(Base):
    """Linia juz dodana w ramach danego tokenu - powtorzony merge ja pomija."""

    __tablename__ = "cart_merge_lines"

    id = Column(Integer, primary_key=True)
    merge_token = Column(String(64), nullable=False)
    product_id = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False)
    merged_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("merge_token", "product_id", name="u_cart_merge_lines_token_product"),
    )
