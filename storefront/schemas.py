from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from storefront.exceptions import InvalidRequestError
from storefront.money import to_decimal


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Left untyped so shape errors become a 400 naming the bad line
    products: Any = None
    coupon_code: Optional[str] = Field(default=None, alias="couponCode")


class CheckoutSuccessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")


class CartLine(BaseModel):
    product_id: Optional[str] = None
    name: Optional[str] = None
    price: Decimal
    quantity: int = 1
    image: Optional[str] = None
    description: Optional[str] = None


class RawCartLine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: Any = Field(default=None, validation_alias=AliasChoices("productId", "_id", "id"))
    name: Any = None
    price: Any = None
    quantity: Any = None
    image: Any = None
    description: Any = None


def _optional_str(value):
    if value is None:
        return None
    return str(value)


def _parse_quantity(value):
    if value is None:
        return 1
    if isinstance(value, bool):
        raise ValueError("quantity must be a positive integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 1:
        raise ValueError("quantity must be a positive integer")
    return value


def parse_cart(products) -> List[CartLine]:
    if not isinstance(products, list) or not products:
        raise InvalidRequestError("Invalid or empty products array", received=products)

    lines = []
    for index, product in enumerate(products):
        if not isinstance(product, dict):
            raise InvalidRequestError(
                f"Invalid product at index {index}", index=index, product=product
            )
        raw = RawCartLine.model_validate(product)
        label = raw.name if raw.name else f"#{index}"

        try:
            price = to_decimal(raw.price) if raw.price is not None else None
        except (TypeError, ValueError):
            price = None
        if price is None or price <= 0:
            raise InvalidRequestError(
                f"Invalid price for product: {label}", index=index, product=product
            )

        try:
            quantity = _parse_quantity(raw.quantity)
        except ValueError:
            raise InvalidRequestError(
                f"Invalid quantity for product: {label}", index=index, product=product
            ) from None

        lines.append(CartLine(
            product_id=_optional_str(raw.product_id),
            name=_optional_str(raw.name),
            price=price,
            quantity=quantity,
            image=_optional_str(raw.image) or None,
            description=_optional_str(raw.description),
        ))
    return lines
