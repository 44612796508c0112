# app/repos/merge_repo.py
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.data.database import dialect_insert
from app.data.models.cart_merge import CartMergeModel, CartMergeLineModel


class MergeRepo:
    def __init__(self, db: Session):
        self.db = db

    def claim_line(self, merge_token: str, product_id: str, quantity: int, now: datetime) -> bool:
        """True gdy linia nie byla jeszcze dodana w ramach tego tokenu."""
        stmt = dialect_insert(self.db, CartMergeLineModel.__table__).values(
            merge_token=merge_token,
            product_id=product_id,
            quantity=quantity,
            merged_at=now,
        )
        result = self.db.execute(
            stmt.on_conflict_do_nothing(index_elements=["merge_token", "product_id"])
        )
        return result.rowcount == 1

    def is_complete(self, account_id: str, merge_token: str) -> bool:
        return self.db.execute(
            select(CartMergeModel.id).where(
                CartMergeModel.account_id == account_id,
                CartMergeModel.merge_token == merge_token,
            )
        ).first() is not None

    def record_complete(self, account_id: str, merge_token: str, line_count: int, now: datetime) -> None:
        stmt = dialect_insert(self.db, CartMergeModel.__table__).values(
            account_id=account_id,
            merge_token=merge_token,
            line_count=line_count,
            completed_at=now,
        )
        self.db.execute(
            stmt.on_conflict_do_nothing(index_elements=["account_id", "merge_token"])
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
