# app/repos/order_repo.py
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.domain.order_state import OrderStatus


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        # bez commita - wstawienie zamowienia i zdjecie stanu to jedna transakcja
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id, populate_existing=True)

    def refresh(self, order: OrderModel) -> OrderModel:
        self.db.refresh(order)
        return order

    def get_by_external_id(self, external_order_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.external_payment_order_id == external_order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_payment_id(self, external_payment_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.external_payment_id == external_payment_id)
            .execution_options(populate_existing=True)
        ).scalars().first()

    def list_for_account(self, account_id: str, limit: int = 50) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.account_id == account_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .limit(limit)
            ).scalars().all()
        )

    def set_external_order_id(self, order_id: int, external_order_id: str, now: datetime) -> int:
        # CAS - zapisuje tylko pierwszy zdalny identyfikator
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.external_payment_order_id.is_(None),
            )
            .values(external_payment_order_id=external_order_id, updated_at=now)
        )
        return result.rowcount

    def transition_from_pending(self, order_id: int, target: OrderStatus, values: dict) -> int:
        """
        Warunkowe przejscie ze stanu pending.
        Zwraca 0 gdy ktos inny zamknal zamowienie pierwszy.
        """
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status == OrderStatus.PENDING.value,
            )
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_stale_pending_ids(self, cutoff: datetime, limit: int) -> list[int]:
        return list(
            self.db.execute(
                select(OrderModel.id)
                .where(
                    OrderModel.status == OrderStatus.PENDING.value,
                    OrderModel.created_at < cutoff,
                )
                .order_by(OrderModel.created_at)
                .limit(limit)
            ).scalars().all()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
