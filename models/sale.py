from sqlalchemy import Column, String, Text, DateTime, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base


class Sale(Base):
    """
    Vendor revenue attribution for one settled order item.
    Only written for items whose product has a vendor.
    """
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String(128), ForeignKey("products.id"), index=True, nullable=False)
    vendor_id = Column(String(128), index=True, nullable=True)

    total = Column(Numeric(10, 2), nullable=False, default=0)  # gross line amount
    commission = Column(Numeric(10, 2), nullable=False, default=0)

    product_title = Column(String(255), nullable=False)
    product_image = Column(Text, nullable=False, default="")
    product_price = Column(Numeric(10, 2), nullable=False, default=0)
    product_qty = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    order = relationship("Order")

    def to_dict(self):
        return {
            "id": self.id,
            "orderId": self.order_id,
            "productId": self.product_id,
            "vendorId": self.vendor_id,
            "total": float(self.total or 0),
            "commission": float(self.commission or 0),
            "net": float((self.total or 0) - (self.commission or 0)),
            "productTitle": self.product_title,
            "productImage": self.product_image,
            "productPrice": float(self.product_price or 0),
            "productQty": self.product_qty,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
