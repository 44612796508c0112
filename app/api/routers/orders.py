# app/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.schemas import (
    OrderCreate,
    OrderOut,
    PaymentConfirmIn,
    PaymentConfirmOut,
    PaymentDetailsOut,
    PaymentSessionOut,
)
from app.services.lock_service import LockService
from app.services.order_service import BillingInfo, OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_lock_service() -> LockService:
    return LockService()


def get_service(db: Session = Depends(get_db), lock_service: LockService = Depends(get_lock_service)):
    return OrderService(db, lock_service=lock_service)


@router.post("/", response_model=PaymentSessionOut, status_code=201)
def create_order(
    payload: OrderCreate,
    account_id: str = Query(..., min_length=1),
    svc: OrderService = Depends(get_service),
):
    """
    Tworzy zamowienie (pending) i otwiera sesje platnosci w procesorze.
    """
    billing = BillingInfo(
        billing_address=payload.billing_address.model_dump(),
        shipping_address=payload.shipping_address.model_dump() if payload.shipping_address else None,
        contact_email=payload.contact_email,
        contact_phone=payload.contact_phone,
        total_amount=payload.total_amount,
    )
    return svc.checkout(
        account_id,
        [{"product_id": i.product_id, "quantity": i.quantity} for i in payload.line_items],
        billing,
    )


@router.put("/", response_model=PaymentConfirmOut)
def confirm_payment(payload: PaymentConfirmIn, svc: OrderService = Depends(get_service)):
    """
    Callback platnosci - podpis weryfikowany przed jakakolwiek zmiana stanu.
    """
    return svc.confirm_payment(
        payload.external_payment_order_id,
        payload.external_payment_id,
        payload.signature,
    )


@router.get("/", response_model=List[OrderOut])
def list_orders(account_id: str = Query(..., min_length=1), svc: OrderService = Depends(get_service)):
    return svc.list_orders(account_id)


@router.get("/payments/{payment_id}", response_model=PaymentDetailsOut)
def get_payment_details(
    payment_id: str,
    account_id: str = Query(..., min_length=1),
    svc: OrderService = Depends(get_service),
):
    """Status i metoda platnosci prosto z procesora."""
    try:
        return svc.get_payment_details(payment_id, account_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    account_id: str = Query(..., min_length=1),
    svc: OrderService = Depends(get_service),
):
    """
    Pobiera szczegoly zamowienia.
    """
    try:
        return svc.get_order(order_id, account_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/{order_id}/payment-session", response_model=PaymentSessionOut)
def retry_payment_session(
    order_id: int,
    account_id: str = Query(..., min_length=1),
    svc: OrderService = Depends(get_service),
):
    """Ponowienie po GATEWAY_UNAVAILABLE - ten sam order_id, to samo zdalne zamowienie."""
    try:
        return svc.open_payment_session(order_id, account_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    account_id: str = Query(..., min_length=1),
    svc: OrderService = Depends(get_service),
):
    try:
        return svc.cancel_order(order_id, account_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
