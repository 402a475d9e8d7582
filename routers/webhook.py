from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.config import logger
from core.database import get_db
from utils.payments import GatewayError, WebhookVerificationError
from utils.settlement import (
    SettlementError,
    get_gateway,
    get_notifier,
    http_status_for,
    settle_payment,
)

router = APIRouter(prefix="/api/webhook", tags=["webhook"])

SETTLEMENT_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    notifier=Depends(get_notifier),
):
    """
    Stripe webhook endpoint.
    Non-2xx responses make Stripe redeliver, so settlement errors are surfaced
    while already-settled sessions are acknowledged normally.
    """
    raw_body = await request.body()
    signature = request.headers.get("stripe-signature") or ""

    # --- Step 1: Verify signature ---
    try:
        event = gateway.construct_event(raw_body, signature)
    except WebhookVerificationError as ex:
        logger.warning(f"[webhook] rejected: {ex}")
        return JSONResponse({"error": "invalid signature"}, status_code=400)
    except GatewayError as ex:
        logger.error(f"[webhook] cannot verify events: {ex}")
        return JSONResponse({"error": "webhook_not_configured"}, status_code=503)

    evt_type = str(event.get("type") or "").strip()
    logger.info(f"[webhook] received {evt_type} ({event.get('id')})")

    if evt_type not in SETTLEMENT_EVENTS:
        return {"received": True}

    # --- Step 2: Settle ---
    obj = (event.get("data") or {}).get("object") or {}
    session_id = str(obj.get("id") or "").strip()
    if not session_id:
        logger.warning(f"[webhook] {evt_type} without session id")
        return JSONResponse({"error": "missing session id"}, status_code=400)

    try:
        result = await run_in_threadpool(settle_payment, session_id, db, gateway=gateway, notifier=notifier)
    except SettlementError as ex:
        status = http_status_for(ex)
        logger.error(f"[webhook] settlement failed for {session_id} ({status}): {ex}")
        return JSONResponse({"error": str(ex)}, status_code=status)

    return {"received": True, "orderId": result.order_id, "duplicate": not result.created}
