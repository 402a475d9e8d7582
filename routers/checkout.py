import re
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.config import logger
from core.database import get_db
from utils.payments import GatewayError, build_checkout_params, generate_order_number
from utils.settlement import (
    SettlementError,
    get_gateway,
    get_notifier,
    http_status_for,
    settle_payment,
)

router = APIRouter(prefix="/api/checkout", tags=["checkout"])

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# --- Request Schemas (Pydantic) ---
class ShippingForm(BaseModel):
    name: str = Field(min_length=2)
    email: str
    phone: str = Field(min_length=10)
    address: str = Field(min_length=5)
    city: str = Field(min_length=2)
    state: str = Field(min_length=2)
    country: str = Field(min_length=2)
    postalCode: str = Field(min_length=3)
    shippingMethod: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _valid_email(cls, v: str) -> str:
        v = (v or "").strip()
        if not _EMAIL_RE.match(v):
            raise ValueError("Valid email is required")
        return v.lower()

    @field_validator("shippingMethod")
    @classmethod
    def _known_method(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if v not in ("standard", "express"):
            raise ValueError("Unknown shipping method")
        return v


class CartItem(BaseModel):
    id: str
    title: str
    price: Decimal = Field(gt=0, decimal_places=2)  # whole minor units only
    quantity: int = Field(ge=1)
    image: Optional[str] = None


class CheckoutRequest(BaseModel):
    shipping: ShippingForm
    items: List[CartItem] = Field(min_length=1)
    userId: str = Field(min_length=1)


@router.post("/session")
async def create_checkout_session(payload: CheckoutRequest, gateway=Depends(get_gateway)):
    """Create a hosted checkout session; settlement later reads everything from its metadata."""
    order_number = generate_order_number()
    params = build_checkout_params(
        shipping=payload.shipping.model_dump(),
        cart_items=[i.model_dump() for i in payload.items],
        user_id=payload.userId,
        order_number=order_number,
    )
    try:
        created = await run_in_threadpool(gateway.create_checkout_session, params)
    except GatewayError as ex:
        logger.error(f"[checkout] session create failed for {order_number}: {ex}")
        return JSONResponse({"error": "Failed to create checkout session"}, status_code=502)

    logger.info(f"[checkout] created session {created.get('sessionId')} for {order_number}")
    return {"sessionId": created.get("sessionId"), "sessionUrl": created.get("sessionUrl"), "orderNumber": order_number}


@router.get("/success")
async def checkout_success(
    session_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    notifier=Depends(get_notifier),
):
    """Success-page callback; settles directly in case the webhook is late."""
    try:
        result = await run_in_threadpool(settle_payment, session_id, db, gateway=gateway, notifier=notifier)
    except SettlementError as ex:
        status = http_status_for(ex)
        logger.warning(f"[checkout] success callback for {session_id} failed ({status}): {ex}")
        body = {"success": False, "error": str(ex)}
        if ex.retryable:
            body["status"] = "processing"
        return JSONResponse(body, status_code=status)
    return result.to_dict()
