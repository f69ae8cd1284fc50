import logging
import secrets
import string
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront import config
from storefront.models import Coupon, utcnow

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _redeemable(db: Session, user_id):
    return db.query(Coupon).filter(
        Coupon.user_id == str(user_id),
        Coupon.is_active.is_(True),
        Coupon.expiration_date > utcnow(),
    )


def find_active_coupon(db: Session, code: str, user_id):
    return _redeemable(db, user_id).filter(Coupon.code == code).first()


def get_active_coupon(db: Session, user_id):
    return _redeemable(db, user_id).order_by(Coupon.created_at.desc()).first()


def deactivate_coupon(db: Session, code: str, user_id, redeemed_at=None) -> int:
    """Mark the coupon redeemed. Already-inactive rows are left untouched."""
    return db.query(Coupon).filter(
        Coupon.code == code,
        Coupon.user_id == str(user_id),
        Coupon.is_active.is_(True),
    ).update(
        {Coupon.is_active: False, Coupon.used_at: redeemed_at or utcnow()},
        synchronize_session=False,
    )


def generate_gift_code() -> str:
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return config.GIFT_COUPON_PREFIX + suffix


def issue_gift_coupon(db: Session, user_id):
    """Return the user's live gift coupon, creating one if needed.

    Never raises: on a database error the session is rolled back and
    ``None`` comes back so the caller's checkout response is unaffected.
    """
    logger.info("Creating new gift coupon for user: %s", user_id)
    try:
        existing = _redeemable(db, user_id).filter(
            Coupon.code.startswith(config.GIFT_COUPON_PREFIX)
        ).first()
        if existing:
            logger.info("User already has active gift coupon: %s", existing.code)
            return existing

        now = utcnow()
        coupon = Coupon(
            code=generate_gift_code(),
            user_id=str(user_id),
            discount_percentage=config.GIFT_COUPON_PERCENT,
            is_active=True,
            expiration_date=now + timedelta(days=config.GIFT_COUPON_VALID_DAYS),
            created_at=now,
        )
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
        logger.info("Gift coupon created: %s", coupon.code)
        return coupon
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create gift coupon for user %s", user_id)
        return None
