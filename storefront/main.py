import logging
from datetime import datetime, timezone

import stripe
from fastapi import Depends, FastAPI, Request, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from storefront import config
from storefront.checkout import finalize_checkout
from storefront.database import Base, engine, SessionLocal
from storefront.exceptions import PaymentNotCompletedError, StorefrontError
from storefront.payment_gateway import PaymentGateway, build_payment_gateway
from storefront.routes import get_payment_gateway, router

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront Checkout Service")
app.state.payment_gateway = build_payment_gateway()

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.exception_handler(StorefrontError)
async def storefront_exception_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(include_details=config.is_development()),
    )


@app.get("/health")
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.APP_ENV,
    }


FULFILLMENT_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")


def _fulfill_from_webhook(gateway, session_id):
    db = SessionLocal()
    try:
        result = finalize_checkout(db, gateway, session_id)
        logger.info("Webhook fulfilled session %s as order %s", session_id, result["orderId"])
    except PaymentNotCompletedError as e:
        logger.info("Webhook skipped session %s: %s", session_id, e.message)
    finally:
        db.close()


@app.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    payload = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload,
            stripe_signature,
            config.stripe_webhook_secret()
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    if event["type"] in FULFILLMENT_EVENTS:
        session_id = event["data"]["object"]["id"]
        await run_in_threadpool(_fulfill_from_webhook, gateway, session_id)

    return {"ok": True}
