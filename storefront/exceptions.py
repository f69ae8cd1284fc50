"""Errors surfaced to API callers.

Each carries the HTTP status it maps to; ``main.py`` renders them as
``{"success": false, "message": ...}`` bodies.
"""


class StorefrontError(Exception):

    def __init__(self, message: str, status_code: int = 500, error=None, **extra):
        self.message = message
        self.status_code = status_code
        self.error = error
        self.extra = extra
        super().__init__(message)

    def to_body(self, include_details: bool = False) -> dict:
        body = {"success": False, "message": self.message}
        if self.error is not None:
            body["error"] = self.error
        for key, value in self.extra.items():
            if key == "details" and not include_details:
                continue
            body[key] = value
        return body


class InvalidRequestError(StorefrontError):
    """Malformed client input (empty cart, bad price, missing session id)."""

    def __init__(self, message: str, **extra):
        super().__init__(message, status_code=400, error=message, **extra)


class PaymentNotCompletedError(StorefrontError):
    """The gateway has not settled the session yet; retry after paying."""

    def __init__(self, payment_status):
        self.payment_status = payment_status
        super().__init__(
            f"Payment not completed. Status: {payment_status}",
            status_code=400,
            paymentStatus=payment_status,
        )


class OrderNotFoundError(StorefrontError):

    def __init__(self, message: str = "Order not found"):
        super().__init__(message, status_code=404)


class GatewayError(StorefrontError):
    """A payment gateway call on the primary path failed."""

    def __init__(self, message: str, error=None, **extra):
        super().__init__(message, status_code=500, error=error, **extra)


class GatewayNotConfiguredError(GatewayError):

    def __init__(self, operation: str):
        super().__init__(
            "Payment gateway not configured",
            error=f"STRIPE_SECRET_KEY is missing; cannot {operation}",
        )


class OrderPersistenceError(StorefrontError):

    def __init__(self, error=None, **extra):
        super().__init__(
            "Error processing successful checkout", status_code=500, error=error, **extra
        )


class CheckoutFailedError(StorefrontError):
    """Unexpected failure (database, gateway transport) on the primary path."""

    def __init__(self, message: str, error=None, **extra):
        super().__init__(message, status_code=500, error=error, **extra)
