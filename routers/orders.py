from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session, selectinload

from core.auth import require_admin
from core.config import logger
from core.database import get_db
from models.order import Order, OrderStatus, PaymentStatus, can_transition
from utils.pagination import DateRange, pagination_meta, start_date_for

router = APIRouter(prefix="/api/orders", tags=["orders"])


class UpdateOrderStatusPayload(BaseModel):
    status: OrderStatus


@router.get("")
async def list_orders(
    user_id: Optional[str] = Query(None),
    date_range: Optional[DateRange] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    amount_sort: Optional[Literal["highest", "lowest"]] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List orders with their items, newest first unless sorted by amount"""
    filters = []
    if user_id:
        filters.append(Order.user_id == user_id)
    start = start_date_for(date_range)
    if start is not None:
        filters.append(Order.created_at >= start)
    if status:
        filters.append(Order.order_status == status.value)
    if payment_status:
        filters.append(Order.payment_status == payment_status.value)

    if amount_sort == "highest":
        ordering = Order.total_order_amount.desc()
    elif amount_sort == "lowest":
        ordering = Order.total_order_amount.asc()
    else:
        ordering = Order.created_at.desc()

    total = db.query(Order).filter(*filters).count()
    orders = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(*filters)
        .order_by(ordering, Order.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "orders": [o.to_dict() for o in orders],
        "pagination": pagination_meta(total, page, limit),
    }


@router.get("/{order_id}")
async def get_order(order_id: str, db: Session = Depends(get_db)):
    order = db.query(Order).options(selectinload(Order.items)).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order.to_dict()


@router.patch("/{order_id}/status")
async def update_order_status(
    request: Request,
    order_id: str,
    payload: UpdateOrderStatusPayload,
    db: Session = Depends(get_db),
):
    """Admin-only status change; PROCESSING -> SHIPPED -> DELIVERED or PROCESSING -> CANCELED"""
    denied = require_admin(request)
    if denied:
        return denied

    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    target = payload.status.value
    if not can_transition(order.order_status, target):
        return JSONResponse(
            {"error": "invalid_transition", "from": order.order_status, "to": target},
            status_code=409,
        )

    try:
        order.order_status = target
        db.commit()
    except Exception as ex:
        db.rollback()
        logger.error(f"[orders] status update failed for {order_id}: {ex}")
        raise HTTPException(status_code=500, detail="Failed to update order status")

    logger.info(f"[orders] order {order.order_number} -> {target}")
    db.refresh(order)
    return order.to_dict()
