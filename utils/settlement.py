"""
Order settlement for completed checkout sessions.

One paid session produces exactly one Order with its OrderItems, vendor Sales,
stock decrements and vendor balance/commission credits. The webhook and the
success-page callback both land here, possibly concurrently; the unique
orders.transaction_id column decides which call creates the order.

Phases:
  1. validate the session at the gateway
  2. return the existing order if this session was already settled
  3. write everything in one transaction (rolled back as a whole on failure)
  4. send the confirmation email; failures are logged and ignored
"""
import json
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import logger, COMMISSION_RATE
from models.order import Order, OrderItem, OrderStatus, PaymentStatus
from models.product import Product
from models.sale import Sale
from models.user import User
from utils.payments import (
    GatewayError,
    PaymentLineItem,
    PaymentSession,
    SessionNotFound,
    from_minor_units,
    shipping_cost_for,
    stripe_gateway,
)
from utils import emailing

CENT = Decimal("0.01")


class SettlementError(Exception):
    retryable = False


class PaymentNotFound(SettlementError):
    pass


class PaymentNotCompleted(SettlementError):
    retryable = True


class MissingOrderMetadata(SettlementError):
    pass


class GatewayUnavailable(SettlementError):
    retryable = True


class TransactionFailure(SettlementError):
    retryable = True


_HTTP_STATUS = {
    PaymentNotFound: 404,
    PaymentNotCompleted: 409,
    MissingOrderMetadata: 422,
    GatewayUnavailable: 502,
    TransactionFailure: 500,
}


def http_status_for(error: SettlementError) -> int:
    return _HTTP_STATUS.get(type(error), 500)


# FastAPI dependencies; tests override these
def get_gateway():
    return stripe_gateway


def get_notifier():
    return emailing


@dataclass
class SettlementResult:
    order_id: str
    order_number: str
    created: bool = True  # False when the session had already been settled
    items_settled: int = 0
    skipped_products: List[Optional[str]] = field(default_factory=list)
    oversold: List[str] = field(default_factory=list)
    notification_sent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "duplicate": not self.created,
        }


def compute_commission(gross: Decimal, rate: Decimal = COMMISSION_RATE) -> Decimal:
    return (Decimal(gross) * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)


def find_order_by_transaction(db: Session, transaction_id: str) -> Optional[Order]:
    return db.query(Order).filter(Order.transaction_id == transaction_id).first()


def _parse_shipping(raw: Optional[str]) -> Dict[str, Any]:
    try:
        data = json.loads(raw or "{}")
    except (TypeError, ValueError):
        logger.warning("[settlement] shippingDetails metadata is not valid JSON")
        return {}
    return data if isinstance(data, dict) else {}


def _load_paid_session(gateway, session_id: str) -> PaymentSession:
    try:
        session = gateway.retrieve_session(session_id)
    except SessionNotFound as ex:
        raise PaymentNotFound(f"Payment session {session_id} not found") from ex
    except GatewayError as ex:
        raise GatewayUnavailable(f"Payment gateway unavailable: {ex}") from ex

    if session.payment_status != "paid":
        raise PaymentNotCompleted(f"Payment not completed (status={session.payment_status})")

    meta = session.metadata or {}
    if not (meta.get("orderNumber") or "").strip() or not (meta.get("userId") or "").strip():
        raise MissingOrderMetadata("Missing order information in session metadata")
    return session


def _create_order(db: Session, session: PaymentSession, shipping: Dict[str, Any]) -> Order:
    meta = session.metadata
    method = (shipping.get("shippingMethod") or "standard").strip().lower()
    order = Order(
        id=uuid.uuid4().hex,
        order_number=meta["orderNumber"].strip(),
        user_id=meta["userId"].strip(),
        name=shipping.get("name"),
        email=shipping.get("email") or session.customer_email,
        phone=shipping.get("phone"),
        address=shipping.get("address"),
        city=shipping.get("city"),
        state=shipping.get("state"),
        country=shipping.get("country"),
        postal_code=shipping.get("postalCode"),
        shipping_method=method,
        shipping_cost=shipping_cost_for(method),
        # Charged amount as reported by the gateway, never recomputed from lines
        total_order_amount=from_minor_units(session.amount_total),
        payment_method="Stripe",
        payment_status=PaymentStatus.COMPLETED.value,
        transaction_id=session.id,
        order_status=OrderStatus.PROCESSING.value,
    )
    db.add(order)
    db.flush()
    return order


def _decrement_stock(db: Session, product: Product, quantity: int, order_number: str) -> bool:
    """Atomically decrement both stock counters, floored at zero. Returns True when oversold."""
    in_stock = db.query(Product).filter(
        Product.id == product.id,
        Product.product_stock >= quantity,
        Product.qty >= quantity,
    ).update(
        {
            Product.product_stock: Product.product_stock - quantity,
            Product.qty: Product.qty - quantity,
        },
        synchronize_session=False,
    )
    if not in_stock:
        db.query(Product).filter(Product.id == product.id).update(
            {
                Product.product_stock: case((Product.product_stock >= quantity, Product.product_stock - quantity), else_=0),
                Product.qty: case((Product.qty >= quantity, Product.qty - quantity), else_=0),
            },
            synchronize_session=False,
        )
    # Reload counters on next access (same product may appear on several lines)
    db.expire(product, ["product_stock", "qty"])
    if not in_stock:
        logger.warning(
            f"[settlement] order {order_number}: product {product.id} oversold "
            f"(purchased={quantity}); clamped at 0"
        )
        return True
    return False


def _credit_vendor(db: Session, vendor_id: str, net: Decimal, commission: Decimal) -> None:
    updated = db.query(User).filter(User.id == vendor_id).update(
        {
            User.balance: User.balance + net,
            User.commission: User.commission + commission,
        },
        synchronize_session=False,
    )
    if not updated:
        logger.warning(f"[settlement] vendor {vendor_id} not found; balance not credited")


def _vendor_rate(product: Product) -> Decimal:
    vendor = product.vendor
    if vendor is not None and vendor.commission_rate is not None:
        return Decimal(vendor.commission_rate)
    return COMMISSION_RATE


def _settle_line(db: Session, order: Order, line: PaymentLineItem, result: SettlementResult) -> None:
    product = db.query(Product).filter(Product.id == line.product_id).first() if line.product_id else None
    if product is None:
        # Payment is already captured; keep the order and drop only this line
        logger.warning(f"[settlement] order {order.order_number}: product {line.product_id!r} not found, skipping line")
        result.skipped_products.append(line.product_id)
        return

    quantity = int(line.quantity or 1)
    unit_price = from_minor_units(line.unit_amount)
    gross = unit_price * quantity

    db.add(OrderItem(
        order_id=order.id,
        product_id=product.id,
        vendor_id=product.vendor_id,
        title=product.title,
        image_url=product.image_url,
        sku=product.sku,
        quantity=quantity,
        price=unit_price,
        total=gross,
    ))

    if _decrement_stock(db, product, quantity, order.order_number):
        result.oversold.append(product.id)

    if product.vendor_id:
        commission = compute_commission(gross, _vendor_rate(product))
        db.add(Sale(
            order_id=order.id,
            product_id=product.id,
            vendor_id=product.vendor_id,
            total=gross,
            commission=commission,
            product_title=product.title,
            product_image=product.image_url or "",
            product_price=unit_price,
            product_qty=quantity,
        ))
        _credit_vendor(db, product.vendor_id, gross - commission, commission)

    result.items_settled += 1


def _duplicate_result(order: Order) -> SettlementResult:
    return SettlementResult(order_id=order.id, order_number=order.order_number, created=False)


def _notify(notifier, order: Order) -> bool:
    payload = order.to_dict(include_items=False)
    payload["items"] = [i.to_dict() for i in order.items]
    try:
        response = notifier.send_order_confirmation(order.email, payload) or {}
    except Exception as ex:
        logger.warning(f"[settlement] confirmation email for {order.order_number} raised: {ex}")
        return False
    if not response.get("success"):
        logger.warning(f"[settlement] confirmation email for {order.order_number} not sent: {response.get('error')}")
        return False
    return True


def settle_payment(session_id: str, db: Session, gateway=None, notifier=None) -> SettlementResult:
    """
    Settle a completed checkout session. Safe to call any number of times for
    the same session id: repeated calls return the original order untouched.

    Raises PaymentNotFound, PaymentNotCompleted, MissingOrderMetadata,
    GatewayUnavailable or TransactionFailure.
    """
    gateway = gateway or stripe_gateway
    notifier = notifier or emailing

    session = _load_paid_session(gateway, session_id)

    existing = find_order_by_transaction(db, session.id)
    if existing:
        logger.info(f"[settlement] session {session.id} already settled as order {existing.order_number}")
        return _duplicate_result(existing)

    shipping = _parse_shipping(session.metadata.get("shippingDetails"))
    result = None
    try:
        order = _create_order(db, session, shipping)
        result = SettlementResult(order_id=order.id, order_number=order.order_number)
        for line in session.line_items:
            _settle_line(db, order, line, result)
        db.commit()
    except IntegrityError as ex:
        db.rollback()
        # A concurrent call for the same session committed first
        winner = find_order_by_transaction(db, session.id)
        if winner:
            logger.info(f"[settlement] session {session.id} settled concurrently as order {winner.order_number}")
            return _duplicate_result(winner)
        logger.exception(f"[settlement] integrity error settling session {session.id}: {ex}")
        raise TransactionFailure(f"Failed to settle session {session.id}") from ex
    except Exception as ex:
        db.rollback()
        logger.exception(f"[settlement] transaction failed for session {session.id}: {ex}")
        raise TransactionFailure(f"Failed to settle session {session.id}") from ex

    logger.info(
        f"[settlement] session {session.id} settled: order={result.order_number} "
        f"items={result.items_settled} skipped={len(result.skipped_products)}"
    )

    order = db.query(Order).filter(Order.id == result.order_id).first()
    result.notification_sent = _notify(notifier, order)
    return result
