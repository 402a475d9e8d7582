"""
Catalog product model
Settlement only mutates stock counters; catalog CRUD lives elsewhere
"""
from sqlalchemy import Column, String, Text, DateTime, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(128), primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=True)
    sku = Column(String(128), nullable=True)
    image_url = Column(Text, nullable=True)

    product_price = Column(Numeric(10, 2), nullable=False, default=0)

    # Two stock counters kept in step: storefront stock and inventory qty
    product_stock = Column(Integer, nullable=False, default=0)
    qty = Column(Integer, nullable=False, default=0)

    vendor_id = Column(String(128), ForeignKey("users.id"), index=True, nullable=True)
    vendor = relationship("User", lazy="joined")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
