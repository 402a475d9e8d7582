"""
Stripe gateway adapter
- retrieve checkout sessions with expanded line items, normalized into PaymentSession
- create hosted checkout sessions for the storefront
- verify webhook signatures
"""
import json
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

import stripe
from pydantic import BaseModel, Field

from core.config import (
    logger,
    APP_URL,
    STRIPE_SECRET_KEY,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_CURRENCY,
    EXPRESS_SHIPPING_COST,
    STANDARD_SHIPPING_COST,
)

stripe.api_key = STRIPE_SECRET_KEY


class GatewayError(Exception):
    """Gateway could not be reached or rejected the request."""


class SessionNotFound(GatewayError):
    """The gateway does not know the requested session id."""


class WebhookVerificationError(GatewayError):
    """Webhook payload or signature failed verification."""


# --- Normalized session shapes ---

class PaymentLineItem(BaseModel):
    product_id: Optional[str] = None  # marketplace product id from price/product metadata
    quantity: int = 1
    unit_amount: int = 0  # minor currency units
    description: Optional[str] = None


class PaymentSession(BaseModel):
    id: str
    payment_status: str
    amount_total: int = 0  # minor currency units
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    line_items: List[PaymentLineItem] = Field(default_factory=list)


def _as_dict(obj: Any) -> dict:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    return {}


def to_minor_units(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


def from_minor_units(amount: Optional[int]) -> Decimal:
    return (Decimal(int(amount or 0)) / Decimal(100)).quantize(Decimal("0.01"))


def shipping_cost_for(method: Optional[str]) -> Decimal:
    return EXPRESS_SHIPPING_COST if (method or "").strip().lower() == "express" else STANDARD_SHIPPING_COST


def generate_order_number() -> str:
    return f"ORDER-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class StripeGateway:
    """Thin wrapper over the Stripe SDK used by checkout and settlement."""

    def _product_id_from_price(self, price: dict) -> Optional[str]:
        product_data = price.get("product_data") if isinstance(price.get("product_data"), dict) else {}
        pid = (product_data.get("metadata") or {}).get("productId")
        if pid:
            return str(pid)

        product = price.get("product")
        if isinstance(product, dict):
            pid = (product.get("metadata") or {}).get("productId")
            return str(pid) if pid else None

        if isinstance(product, str) and product:
            # Product was not expanded; look it up
            try:
                prod = _as_dict(stripe.Product.retrieve(product))
                pid = (prod.get("metadata") or {}).get("productId")
                return str(pid) if pid else None
            except stripe.StripeError as ex:
                logger.error(f"[payments] failed to retrieve product {product}: {ex}")
        return None

    def _line_item_rows(self, session_id: str, data: dict) -> List[dict]:
        page = data.get("line_items") if isinstance(data.get("line_items"), dict) else {}
        rows = list(page.get("data") or [])
        if not page.get("has_more"):
            return rows
        # Expanded line_items is capped at one page; fetch the full list
        try:
            listing = stripe.checkout.Session.list_line_items(
                session_id,
                limit=100,
                expand=["data.price.product"],
            )
            return [_as_dict(li) for li in listing.auto_paging_iter()]
        except stripe.StripeError as ex:
            logger.error(f"[payments] line items for session {session_id} failed: {ex}")
            raise GatewayError(str(ex)) from ex

    def retrieve_session(self, session_id: str) -> PaymentSession:
        try:
            raw = stripe.checkout.Session.retrieve(
                session_id,
                expand=["line_items", "line_items.data.price.product"],
            )
        except stripe.InvalidRequestError as ex:
            logger.warning(f"[payments] session {session_id} not found: {ex}")
            raise SessionNotFound(session_id) from ex
        except stripe.StripeError as ex:
            logger.error(f"[payments] session {session_id} retrieve failed: {ex}")
            raise GatewayError(str(ex)) from ex

        data = _as_dict(raw)
        items: List[PaymentLineItem] = []
        for li in self._line_item_rows(session_id, data):
            price = li.get("price") if isinstance(li.get("price"), dict) else {}
            items.append(PaymentLineItem(
                product_id=self._product_id_from_price(price),
                quantity=int(li.get("quantity") or 1),
                unit_amount=int(price.get("unit_amount") or 0),
                description=li.get("description"),
            ))

        details = data.get("customer_details") if isinstance(data.get("customer_details"), dict) else {}
        return PaymentSession(
            id=str(data.get("id") or session_id),
            payment_status=str(data.get("payment_status") or ""),
            amount_total=int(data.get("amount_total") or 0),
            currency=data.get("currency"),
            customer_email=data.get("customer_email") or details.get("email"),
            metadata={k: str(v) for k, v in (data.get("metadata") or {}).items() if v is not None},
            line_items=items,
        )

    def create_checkout_session(self, params: Dict[str, Any]) -> Dict[str, Optional[str]]:
        try:
            session = _as_dict(stripe.checkout.Session.create(**params))
        except stripe.StripeError as ex:
            logger.error(f"[payments] checkout session create failed: {ex}")
            raise GatewayError(str(ex)) from ex
        return {"sessionId": session.get("id"), "sessionUrl": session.get("url")}

    def construct_event(self, payload: bytes, sig_header: str) -> dict:
        """Verify the Stripe-Signature header and parse the event."""
        if not STRIPE_WEBHOOK_SECRET:
            raise GatewayError("STRIPE_WEBHOOK_SECRET not configured")
        try:
            event = stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET)
        except ValueError as ex:
            raise WebhookVerificationError(f"invalid payload: {ex}") from ex
        except stripe.SignatureVerificationError as ex:
            raise WebhookVerificationError(f"invalid signature: {ex}") from ex
        return _as_dict(event)


def build_checkout_params(shipping: Dict[str, Any], cart_items: List[Dict[str, Any]], user_id: str, order_number: str) -> Dict[str, Any]:
    """Stripe Checkout payload; metadata carries everything settlement needs."""
    method = (shipping.get("shippingMethod") or "standard").strip().lower()
    express = method == "express"
    shipping_cost = shipping_cost_for(method)

    line_items = []
    for item in cart_items:
        product_data: Dict[str, Any] = {
            "name": item["title"],
            "metadata": {"productId": item["id"]},
        }
        if item.get("image"):
            product_data["images"] = [item["image"]]
        line_items.append({
            "price_data": {
                "currency": STRIPE_CURRENCY,
                "product_data": product_data,
                "unit_amount": to_minor_units(item["price"]),
            },
            "quantity": int(item["quantity"]),
        })

    return {
        "payment_method_types": ["card"],
        "line_items": line_items,
        "mode": "payment",
        "success_url": f"{APP_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{APP_URL}/checkout/cancel",
        "customer_email": shipping.get("email"),
        "shipping_options": [
            {
                "shipping_rate_data": {
                    "type": "fixed_amount",
                    "fixed_amount": {"amount": to_minor_units(shipping_cost), "currency": STRIPE_CURRENCY},
                    "display_name": "Express Shipping" if express else "Standard Shipping",
                    "delivery_estimate": {
                        "minimum": {"unit": "business_day", "value": 1 if express else 3},
                        "maximum": {"unit": "business_day", "value": 2 if express else 5},
                    },
                },
            },
        ],
        "metadata": {
            "orderNumber": order_number,
            "userId": user_id,
            "shippingDetails": json.dumps({**shipping, "shippingMethod": method}),
        },
    }


stripe_gateway = StripeGateway()
