#app/api/routers/carts.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.schemas import (
    ItemIn,
    QuantityIn,
    MergeIn,
    CartOut,
    MergeOut,
)
from app.services.cart_service import CartService
from app.services.cart_reconciler import CartReconciler

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(db: Session):
    return CartService(db)


@router.get("/{account_id}", response_model=CartOut)
def get_cart(account_id: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.get_cart(account_id)


@router.post("/{account_id}/items", response_model=CartOut)
def add_item(account_id: str, payload: ItemIn, db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.add_product(account_id, payload.product_id, payload.quantity)


@router.put("/{account_id}/items/{product_id}", response_model=CartOut)
def set_item_quantity(
    account_id: str,
    product_id: str,
    payload: QuantityIn,
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.set_quantity(account_id, product_id, payload.quantity)


@router.delete("/{account_id}/items/{product_id}", response_model=CartOut)
def remove_item(account_id: str, product_id: str, db: Session = Depends(get_db)):
    svc = get_service(db)
    return svc.remove_product(account_id, product_id)


@router.post("/{account_id}/merge", response_model=MergeOut)
def merge_guest_cart(account_id: str, payload: MergeIn, db: Session = Depends(get_db)):
    """
    Merge koszyka goscia po zalogowaniu.
    complete=false -> klient NIE czysci lokalnego koszyka i ponawia pozniej.
    """
    svc = get_service(db)
    result = CartReconciler(db, cart_service=svc).merge_guest_cart(
        account_id,
        [{"product_id": i.product_id, "quantity": i.quantity} for i in payload.items],
        device_id=payload.device_id,
        revision=payload.snapshot_id,
    )
    return {
        "merge_token": result.merge_token,
        "merged": result.merged,
        "skipped": result.skipped,
        "rejected": result.rejected,
        "failed": result.failed,
        "complete": result.complete,
        "cart": svc.get_cart(account_id),
    }
