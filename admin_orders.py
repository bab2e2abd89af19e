import logging
from datetime import datetime, timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from admin import date_label
from auth import require_admin
from catalog import search_filter
from database import get_db, maybe_object_id, paginate, query_time, serialize_doc, serialize_value, utcnow
from delivery_tracking import set_order_status
from orders import find_order, with_tracking
from schemas import ORDER_STATUSES, PAYMENT_STATUSES

logger = logging.getLogger(__name__)

orders_router = APIRouter(prefix="/api/admin/orders", tags=["admin"], dependencies=[Depends(require_admin)])
analytics_router = APIRouter(prefix="/api/admin/analytics", tags=["admin"], dependencies=[Depends(require_admin)])

ORDER_SORT_FIELDS = {"created_at", "updated_at", "total", "order_number", "status"}
PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}
PAID = {"status": {"$ne": "cancelled"}, "payment_status": "paid"}


def date_range(start_date: Optional[datetime], end_date: Optional[datetime]) -> dict:
    if not start_date and not end_date:
        return {}
    created = {}
    if start_date:
        created["$gte"] = query_time(start_date)
    if end_date:
        created["$lte"] = query_time(end_date)
    return {"created_at": created}


def customer_of(db, order: dict) -> Optional[dict]:
    oid = maybe_object_id(order.get("user_id"))
    if not oid:
        return None
    user = db["user"].find_one({"_id": oid}, {"name": 1, "email": 1, "phone": 1})
    return serialize_doc(user) if user else None


def revenue(db, filt: dict) -> float:
    result = list(db["order"].aggregate([
        {"$match": {**filt, **PAID}},
        {"$group": {"_id": None, "total": {"$sum": "$total"}}},
    ]))
    return round(result[0]["total"], 2) if result else 0


# ----------------------- Models -----------------------
class OrderStatusBody(BaseModel):
    status: str
    notes: Optional[str] = None


class PaymentStatusBody(BaseModel):
    payment_status: str


# ----------------------- Orders -----------------------
@orders_router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db=Depends(get_db),
):
    filt = date_range(start_date, end_date)
    if search:
        filt.update(search_filter(search, ["order_number"]))
    if status:
        filt["status"] = status
    if payment_status:
        filt["payment_status"] = payment_status
    if sort_by not in ORDER_SORT_FIELDS:
        sort_by = "created_at"

    total = db["order"].count_documents(filt)
    cursor = (
        db["order"].find(filt)
        .sort(sort_by, 1 if sort_order == "asc" else -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    orders = []
    for order in cursor:
        item = serialize_doc(order)
        item["customer"] = customer_of(db, order)
        orders.append(item)
    return {"orders": orders, "pagination": paginate(total, page, limit, len(orders))}


@orders_router.get("/by-users")
def orders_by_users(db=Depends(get_db)):
    groups = db["order"].aggregate([
        {"$group": {
            "_id": "$user_id",
            "order_count": {"$sum": 1},
            "total_spent": {"$sum": "$total"},
            "last_order_date": {"$max": "$created_at"},
        }},
        {"$sort": {"last_order_date": -1}},
    ])
    result = []
    for g in groups:
        result.append({
            "user_id": g["_id"],
            "customer": customer_of(db, {"user_id": g["_id"]}),
            "order_count": g["order_count"],
            "total_spent": round(g["total_spent"], 2),
            "last_order_date": serialize_value(g["last_order_date"]),
        })
    return result


@orders_router.get("/stats")
def order_stats(start_date: Optional[datetime] = None, end_date: Optional[datetime] = None, db=Depends(get_db)):
    filt = date_range(start_date, end_date)
    orders = db["order"]
    return {
        "total_orders": orders.count_documents(filt),
        "pending_orders": orders.count_documents({**filt, "status": "pending"}),
        "shipped_orders": orders.count_documents({**filt, "status": "shipped"}),
        "delivered_orders": orders.count_documents({**filt, "status": "delivered"}),
        "cancelled_orders": orders.count_documents({**filt, "status": "cancelled"}),
        "total_revenue": revenue(db, filt),
    }


@orders_router.get("/{order_id}")
def get_order(order_id: str, db=Depends(get_db)):
    order = find_order(db, order_id)
    item = serialize_doc(with_tracking(db, order))
    item["customer"] = customer_of(db, order)
    return item


@orders_router.patch("/{order_id}/status")
def update_order_status(order_id: str, body: OrderStatusBody, db=Depends(get_db)):
    if body.status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid order status")
    order = find_order(db, order_id)
    extra = {"notes": body.notes} if body.notes is not None else {}
    set_order_status(db, order, body.status, **extra)
    logger.info("Order %s status %s -> %s", order["order_number"], order["status"], body.status)
    return {"message": "Order status updated successfully", "order": serialize_doc(find_order(db, order_id))}


@orders_router.patch("/{order_id}/payment-status")
def update_payment_status(order_id: str, body: PaymentStatusBody, db=Depends(get_db)):
    if body.payment_status not in PAYMENT_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid payment status")
    order = find_order(db, order_id)
    db["order"].update_one(
        {"_id": order["_id"]},
        {"$set": {"payment_status": body.payment_status, "updated_at": utcnow()}},
    )
    logger.info("Order %s payment %s -> %s", order["order_number"], order["payment_status"], body.payment_status)
    return {"message": "Payment status updated successfully", "order": serialize_doc(find_order(db, order_id))}


# ----------------------- Analytics -----------------------
@analytics_router.get("/sales")
def sales_analytics(
    period: Literal["week", "month", "year"] = "month",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db=Depends(get_db),
):
    filt = date_range(start_date, end_date) or {
        "created_at": {"$gte": query_time(utcnow() - timedelta(days=PERIOD_DAYS[period]))}
    }
    match = {**filt, **PAID}

    group_id = {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}}
    if period != "year":
        group_id["day"] = {"$dayOfMonth": "$created_at"}
    sales = db["order"].aggregate([
        {"$match": match},
        {"$group": {"_id": group_id, "sales": {"$sum": "$total"}, "orders": {"$sum": 1}}},
        {"$sort": {"_id.year": 1, "_id.month": 1, "_id.day": 1}},
    ])

    top_products = db["order"].aggregate([
        {"$match": match},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "total_sold": {"$sum": "$items.quantity"},
            "total_revenue": {"$sum": {"$multiply": ["$items.price", "$items.quantity"]}},
            "name": {"$first": "$items.name"},
            "image": {"$first": "$items.image"},
        }},
        {"$sort": {"total_sold": -1}},
        {"$limit": 10},
    ])

    return {
        "sales": [{"date": date_label(s["_id"]), "sales": s["sales"], "orders": s["orders"]} for s in sales],
        "top_products": [
            {
                "product_id": p["_id"],
                "name": p.get("name") or "Unknown",
                "total_sold": p["total_sold"],
                "total_revenue": p["total_revenue"],
                "image": p.get("image"),
            }
            for p in top_products
        ],
        "summary": {
            "total_revenue": revenue(db, filt),
            "total_orders": db["order"].count_documents(match),
            "total_users": db["user"].count_documents({"is_admin": False}),
            "total_products": db["product"].count_documents({"is_active": True}),
        },
    }
