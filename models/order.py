"""
Order models
- orders: one row per settled payment session (transaction_id is unique)
- order_items: frozen product snapshot per purchased line
"""
import enum
from sqlalchemy import Column, String, Text, DateTime, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base


class OrderStatus(str, enum.Enum):
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


# Allowed order status transitions; DELIVERED and CANCELED are terminal
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELED: set(),
}


def can_transition(current: str, target: str) -> bool:
    try:
        return OrderStatus(target) in ORDER_STATUS_TRANSITIONS[OrderStatus(current)]
    except (ValueError, KeyError):
        return False


def _money(value) -> float:
    return float(value) if value is not None else 0.0


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    order_number = Column(String(128), unique=True, index=True, nullable=False)
    user_id = Column(String(128), index=True, nullable=False)

    # Shipping details
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    country = Column(String(64), nullable=True)
    postal_code = Column(String(32), nullable=True)
    shipping_method = Column(String(50), nullable=False, default="standard")
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)

    # Payment
    total_order_amount = Column(Numeric(10, 2), nullable=False, default=0)
    payment_method = Column(String(50), nullable=False, default="Stripe")
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    transaction_id = Column(String(255), unique=True, index=True, nullable=True)  # gateway session id

    order_status = Column(String(20), nullable=False, default=OrderStatus.PROCESSING.value, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")

    def to_dict(self, include_items: bool = True):
        """Convert to dict for API responses"""
        data = {
            "id": self.id,
            "orderNumber": self.order_number,
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "postalCode": self.postal_code,
            "shippingMethod": self.shipping_method,
            "shippingCost": _money(self.shipping_cost),
            "totalOrderAmount": _money(self.total_order_amount),
            "paymentMethod": self.payment_method,
            "paymentStatus": self.payment_status,
            "transactionId": self.transaction_id,
            "orderStatus": self.order_status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            data["orderItems"] = [i.to_dict() for i in (self.items or [])]
        return data


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String(128), ForeignKey("products.id"), index=True, nullable=False)
    vendor_id = Column(String(128), index=True, nullable=True)

    # Snapshot at time of sale; never follows later product edits
    title = Column(String(255), nullable=False)
    image_url = Column(Text, nullable=True)
    sku = Column(String(128), nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False, default=0)  # unit price charged at checkout
    total = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")

    def to_dict(self):
        return {
            "id": self.id,
            "orderId": self.order_id,
            "productId": self.product_id,
            "vendorId": self.vendor_id,
            "title": self.title,
            "imageUrl": self.image_url,
            "sku": self.sku,
            "quantity": self.quantity,
            "price": _money(self.price),
            "total": _money(self.total),
        }
