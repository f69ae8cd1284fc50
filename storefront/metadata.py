"""Typed view of the metadata bag stored on a Stripe Checkout Session.

Stripe metadata is a flat ``str -> str`` mapping, so the cart snapshot
travels as a JSON string. Version ``1`` layout::

    metadataVersion  "1"
    userId           purchasing user id
    couponCode       coupon applied, "" when none
    products         JSON list of {id, name, quantity, price}
    products_1 ...   continuation of the JSON when it exceeds one value

The snapshot is the only source used to build the order; nothing the
client sends at finalization time feeds into it.
"""
import json
import logging
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ValidationError, field_validator

from storefront.exceptions import InvalidRequestError

logger = logging.getLogger(__name__)

METADATA_VERSION = "1"

# Stripe caps metadata at 50 keys and 500 characters per value
MAX_VALUE_LENGTH = 500
MAX_KEYS = 50
PRODUCTS_KEY = "products"


class ProductSnapshot(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    quantity: int = 1
    price: Optional[Decimal] = None

    @field_validator("id", "name", mode="before")
    @classmethod
    def _stringify(cls, value):
        return None if value is None else str(value)


class CheckoutMetadata(BaseModel):
    user_id: str
    coupon_code: str = ""
    products: List[ProductSnapshot] = []
    version: str = METADATA_VERSION

    @classmethod
    def from_cart(cls, user_id, coupon_code, lines):
        return cls(
            user_id=str(user_id),
            coupon_code=coupon_code or "",
            products=[
                ProductSnapshot(id=line.product_id, name=line.name,
                                quantity=line.quantity, price=line.price)
                for line in lines
            ],
        )

    def to_stripe(self) -> dict:
        products = [
            {
                "id": p.id,
                "name": p.name,
                "quantity": p.quantity,
                "price": float(p.price) if p.price is not None else None,
            }
            for p in self.products
        ]
        bag = {
            "metadataVersion": self.version,
            "userId": self.user_id,
            "couponCode": self.coupon_code,
        }
        chunks = _split(json.dumps(products, separators=(",", ":")))
        if len(bag) + len(chunks) > MAX_KEYS:
            raise InvalidRequestError(
                "Cart is too large to check out in one session",
                products=len(self.products),
            )
        for index, chunk in enumerate(chunks):
            bag[_chunk_key(index)] = chunk
        return bag

    @classmethod
    def from_stripe(cls, metadata) -> "CheckoutMetadata":
        metadata = dict(metadata or {})
        version = metadata.get("metadataVersion") or METADATA_VERSION
        if version != METADATA_VERSION:
            logger.warning("Unknown checkout metadata version %s, parsing as %s",
                           version, METADATA_VERSION)

        return cls(
            user_id=str(metadata.get("userId") or ""),
            coupon_code=metadata.get("couponCode") or "",
            products=_parse_products(_join(metadata)),
            version=version,
        )


def _chunk_key(index: int) -> str:
    return PRODUCTS_KEY if index == 0 else f"{PRODUCTS_KEY}_{index}"


def _split(raw: str) -> List[str]:
    return [raw[i:i + MAX_VALUE_LENGTH] for i in range(0, len(raw), MAX_VALUE_LENGTH)] or ["[]"]


def _join(metadata: dict) -> Optional[str]:
    first = metadata.get(PRODUCTS_KEY)
    if first is None:
        return None
    parts = [first]
    index = 1
    while _chunk_key(index) in metadata:
        parts.append(metadata[_chunk_key(index)])
        index += 1
    return "".join(str(p) for p in parts)


def _parse_products(raw) -> List[ProductSnapshot]:
    try:
        entries = json.loads(raw or "[]")
    except (TypeError, ValueError):
        logger.error("Failed to parse products from session metadata: %r", raw)
        return []
    if not isinstance(entries, list):
        logger.error("Products metadata is not a list: %r", raw)
        return []

    products = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.error("Failed to parse products from session metadata: %r", raw)
            return []
        if entry.get("quantity") is None:
            entry = {**entry, "quantity": 1}
        try:
            products.append(ProductSnapshot.model_validate(entry))
        except ValidationError:
            logger.error("Failed to parse products from session metadata: %r", raw)
            return []
    return products
