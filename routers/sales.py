from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from core.database import get_db
from models.order import Order
from models.sale import Sale
from utils.pagination import DateRange, pagination_meta, start_date_for

router = APIRouter(prefix="/api/sales", tags=["sales"])


def _order_summary(order: Optional[Order]) -> Optional[dict]:
    if order is None:
        return None
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "orderStatus": order.order_status,
        "paymentStatus": order.payment_status,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
    }


@router.get("")
async def list_sales(
    vendor_id: Optional[str] = Query(None),
    date_range: Optional[DateRange] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Vendor sales with overview totals; top vendors only when not scoped to one vendor"""
    filters = []
    if vendor_id:
        filters.append(Sale.vendor_id == vendor_id)
    start = start_date_for(date_range)
    if start is not None:
        filters.append(Sale.created_at >= start)

    sales = (
        db.query(Sale)
        .options(selectinload(Sale.order))
        .filter(*filters)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    total_count = db.query(func.count(Sale.id)).filter(*filters).scalar() or 0
    total_amount = db.query(func.sum(Sale.total)).filter(*filters).scalar() or 0
    total_commission = db.query(func.sum(Sale.commission)).filter(*filters).scalar() or 0

    top_vendors = []
    if not vendor_id:
        rows = (
            db.query(
                Sale.vendor_id,
                func.sum(Sale.total).label("total_sales"),
                func.count(Sale.id).label("sales_count"),
            )
            .filter(Sale.vendor_id.isnot(None), *filters)
            .group_by(Sale.vendor_id)
            .order_by(func.sum(Sale.total).desc())
            .limit(5)
            .all()
        )
        top_vendors = [
            {"vendorId": r.vendor_id, "totalSales": float(r.total_sales or 0), "salesCount": int(r.sales_count or 0)}
            for r in rows
        ]

    return {
        "sales": [{**s.to_dict(), "order": _order_summary(s.order)} for s in sales],
        "pagination": pagination_meta(total_count, page, limit),
        "overview": {
            "totalSalesAmount": float(total_amount),
            "totalSalesCount": total_count,
            "totalCommission": float(total_commission),
            "topVendors": top_vendors,
        },
    }


@router.get("/{sale_id}")
async def get_sale(sale_id: int, db: Session = Depends(get_db)):
    sale = db.query(Sale).filter(Sale.id == sale_id).first()
    if not sale:
        raise HTTPException(status_code=404, detail="Sale not found")
    order = db.query(Order).options(selectinload(Order.items)).filter(Order.id == sale.order_id).first()
    data = sale.to_dict()
    data["order"] = order.to_dict() if order else None
    return data
