from fastapi import APIRouter, Depends, Request

from storefront.auth import CurrentUser, verify_token
from storefront.checkout import create_checkout_session, finalize_checkout, find_order_by_session
from storefront.coupons import get_active_coupon
from storefront.database import SessionLocal
from storefront.exceptions import OrderNotFoundError
from storefront.payment_gateway import PaymentGateway
from storefront.schemas import CheckoutRequest, CheckoutSuccessRequest

router = APIRouter()


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


@router.post("/api/payments/create-checkout-session")
def create_checkout_session_api(
    request: CheckoutRequest,
    user: CurrentUser = Depends(verify_token),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    db = SessionLocal()
    try:
        return create_checkout_session(db, gateway, user, request.products, request.coupon_code)
    finally:
        db.close()


@router.post("/api/payments/checkout-success")
def checkout_success_api(
    request: CheckoutSuccessRequest,
    user: CurrentUser = Depends(verify_token),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    db = SessionLocal()
    try:
        return finalize_checkout(db, gateway, request.session_id)
    finally:
        db.close()


@router.get("/api/coupons")
def get_coupon_api(user: CurrentUser = Depends(verify_token)):
    db = SessionLocal()
    try:
        coupon = get_active_coupon(db, user.id)
        return coupon.to_dict() if coupon else None
    finally:
        db.close()


@router.get("/api/orders/{session_id}")
def get_order_api(session_id: str, user: CurrentUser = Depends(verify_token)):
    db = SessionLocal()
    try:
        order = find_order_by_session(db, session_id)
        if not order or order.user_id != user.id:
            raise OrderNotFoundError()
        return order.to_dict()
    finally:
        db.close()
