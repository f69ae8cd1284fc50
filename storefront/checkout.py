"""Checkout pricing and fulfillment.

``create_checkout_session`` prices a cart, applies the user's coupon and
opens a Stripe Checkout Session carrying a snapshot of the cart in its
metadata. ``finalize_checkout`` turns a paid session into exactly one
order, using only what the gateway reports about that session.
"""
import logging
import traceback

import stripe
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront import config
from storefront.coupons import deactivate_coupon, find_active_coupon, issue_gift_coupon
from storefront.exceptions import (
    CheckoutFailedError, GatewayError, InvalidRequestError, OrderPersistenceError,
    PaymentNotCompletedError, StorefrontError,
)
from storefront.metadata import CheckoutMetadata
from storefront.models import Order, OrderItem, utcnow
from storefront.money import clamp_percent, from_minor_units, percent_of, to_minor_units
from storefront.payment_gateway import PaymentGateway
from storefront.schemas import parse_cart

logger = logging.getLogger(__name__)

PAID = "paid"

CREATE_FAILED = "Failed to create checkout session"
FINALIZE_FAILED = "Error processing successful checkout"


def build_line_item(line, unit_amount: int) -> dict:
    product_data = {"name": line.name or "Product"}
    if line.image:
        product_data["images"] = [line.image]
    if line.description and line.description.strip():
        product_data["description"] = line.description

    return {
        "price_data": {
            "currency": config.CHECKOUT_CURRENCY,
            "product_data": product_data,
            "unit_amount": unit_amount,
        },
        "quantity": line.quantity,
    }


def _create_discount(gateway: PaymentGateway, percent):
    try:
        return gateway.create_percent_discount(clamp_percent(percent), f"{percent}% Discount")
    except Exception:
        logger.exception("Failed to create Stripe coupon, continuing without discount")
        return None


def _error_details(exc: Exception) -> dict:
    extra = {}
    if config.is_development():
        extra["details"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        raw = getattr(exc, "json_body", None)
        if raw:
            extra["raw"] = raw
    return extra


def _gateway_error(message: str, exc: Exception) -> GatewayError:
    user_message = getattr(exc, "user_message", None) or str(exc)
    return GatewayError(message, error=user_message, **_error_details(exc))


def _unexpected_error(message: str, exc: Exception) -> CheckoutFailedError:
    return CheckoutFailedError(message, error=str(exc), **_error_details(exc))


def create_checkout_session(db: Session, gateway: PaymentGateway, user, products, coupon_code=None) -> dict:
    logger.info("Creating checkout session for user %s (%s products)",
                user.id, len(products) if isinstance(products, list) else 0)

    lines = parse_cart(products)
    try:
        return _open_session(db, gateway, user, lines, coupon_code)
    except StorefrontError:
        raise
    except stripe.StripeError as e:
        logger.error("Stripe rejected checkout session: %s", getattr(e, "json_body", None) or e)
        raise _gateway_error(CREATE_FAILED, e) from e
    except Exception as e:
        logger.exception("Error in create_checkout_session")
        raise _unexpected_error(CREATE_FAILED, e) from e


def _open_session(db: Session, gateway: PaymentGateway, user, lines, coupon_code) -> dict:
    total_amount = 0
    line_items = []
    for line in lines:
        unit_amount = to_minor_units(line.price)
        total_amount += unit_amount * line.quantity
        line_items.append(build_line_item(line, unit_amount))

    logger.info("Line items: %d, total: %s", len(line_items), from_minor_units(total_amount))

    applied_code = ""
    discount_id = None
    if coupon_code:
        coupon = find_active_coupon(db, coupon_code, user.id)
        if coupon:
            discount_id = _create_discount(gateway, coupon.discount_percentage)
        else:
            logger.info("Coupon %s not found or not active", coupon_code)
        # Metadata names the coupon only when Stripe applies the discount
        if discount_id:
            applied_code = coupon.code
            total_amount -= percent_of(total_amount, coupon.discount_percentage)
            logger.info("Coupon %s applied (%s%% off), new total: %s",
                        coupon.code, coupon.discount_percentage, from_minor_units(total_amount))

    metadata = CheckoutMetadata.from_cart(user.id, applied_code, lines)
    params = {
        "payment_method_types": ["card"],
        "line_items": line_items,
        "mode": "payment",
        "success_url": f"{config.CLIENT_URL}/purchase-success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{config.CLIENT_URL}/purchase-cancel",
        "metadata": metadata.to_stripe(),
        "shipping_address_collection": {"allowed_countries": list(config.SHIPPING_COUNTRIES)},
        "customer_email": user.email,
    }
    if discount_id:
        params["discounts"] = [{"coupon": discount_id}]

    session = gateway.create_session(params)

    if total_amount >= config.GIFT_COUPON_THRESHOLD:
        try:
            issue_gift_coupon(db, user.id)
        except Exception:
            logger.exception("Failed to create gift coupon")

    return {
        "success": True,
        "sessionId": session.id,
        "sessionUrl": session.url,
        "totalAmount": float(from_minor_units(total_amount)),
        "message": "Checkout session created successfully",
    }


def find_order_by_session(db: Session, session_id: str):
    return db.query(Order).filter(Order.stripe_session_id == session_id).first()


def _order_response(order: Order) -> dict:
    return {
        "success": True,
        "message": "Payment successful, order created, and coupon deactivated if used.",
        "orderId": order.id,
        "order": order.to_dict(),
    }


def _redeem_coupon(db: Session, metadata: CheckoutMetadata):
    logger.info("Deactivating coupon: %s", metadata.coupon_code)
    savepoint = db.begin_nested()
    try:
        deactivate_coupon(db, metadata.coupon_code, metadata.user_id, utcnow())
        savepoint.commit()
    except SQLAlchemyError:
        savepoint.rollback()
        logger.exception("Failed to deactivate coupon %s", metadata.coupon_code)


def finalize_checkout(db: Session, gateway: PaymentGateway, session_id) -> dict:
    if not isinstance(session_id, str) or not session_id.strip():
        raise InvalidRequestError("Session ID is required")
    session_id = session_id.strip()

    try:
        return _fulfill(db, gateway, session_id)
    except StorefrontError:
        raise
    except stripe.StripeError as e:
        raise _gateway_error(FINALIZE_FAILED, e) from e
    except Exception as e:
        db.rollback()
        logger.exception("Error in finalize_checkout for session %s", session_id)
        raise _unexpected_error(FINALIZE_FAILED, e) from e


def _fulfill(db: Session, gateway: PaymentGateway, session_id: str) -> dict:
    logger.info("Retrieving Stripe session: %s", session_id)
    session = gateway.retrieve_session(session_id)

    if session.payment_status != PAID:
        logger.info("Payment not completed, status: %s", session.payment_status)
        raise PaymentNotCompletedError(session.payment_status)

    existing = find_order_by_session(db, session_id)
    if existing:
        logger.info("Order %s already exists for session %s", existing.id, session_id)
        return _order_response(existing)

    metadata = CheckoutMetadata.from_stripe(session.metadata)

    try:
        if metadata.coupon_code:
            _redeem_coupon(db, metadata)

        order = Order(
            user_id=metadata.user_id,
            total_amount=from_minor_units(session.amount_total),
            stripe_session_id=session_id,
            status="completed",
            items=[
                OrderItem(product_id=p.id, name=p.name, quantity=p.quantity or 1, price=p.price)
                for p in metadata.products
            ],
        )
        db.add(order)
        db.commit()
    except IntegrityError:
        # Another request finalized the same session first
        db.rollback()
        existing = find_order_by_session(db, session_id)
        if existing is None:
            logger.exception("Order insert failed for session %s", session_id)
            raise OrderPersistenceError(error="Failed to save order")
        return _order_response(existing)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to save order for session %s", session_id)
        raise OrderPersistenceError(error=str(e), **_error_details(e)) from e

    db.refresh(order)
    logger.info("Order created: %s", order.id)
    return _order_response(order)
