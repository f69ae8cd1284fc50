from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from storefront.database import Base
from storefront.money import as_float


def utcnow():
    return datetime.now(timezone.utc)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("code", "user_id", name="uq_coupon_code_user"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    discount_percentage = Column(Integer, nullable=False)      # 1..100
    is_active = Column(Boolean, nullable=False, default=True)
    expiration_date = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "code": self.code,
            "discountPercentage": self.discount_percentage,
            "isActive": self.is_active,
            "expirationDate": self.expiration_date.isoformat() if self.expiration_date else None,
            "usedAt": self.used_at.isoformat() if self.used_at else None,
        }


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    stripe_session_id = Column(String, nullable=False, unique=True, index=True)
    status = Column(String, nullable=False, default="completed")   # completed
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user": self.user_id,
            "products": [item.to_dict() for item in self.items],
            "totalAmount": as_float(self.total_amount),
            "stripeSessionId": self.stripe_session_id,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(12, 2), nullable=True)              # unit price, major units

    order = relationship("Order", back_populates="items")

    def to_dict(self):
        return {
            "product": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": as_float(self.price),
        }
