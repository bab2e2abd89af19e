import logging
import time
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

import config
from auth import ensure_self_or_admin, get_current_user, is_admin_user
from coupons import compute_discount, validate_coupon
from database import create_document, get_db, maybe_object_id, serialize_doc, to_object_id, utcnow
from rewards import available_points, redeem
from schemas import Address, Order as OrderSchema, OrderItem, PaymentMethod
from user_details import add_order_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


def generate_order_number() -> str:
    return f"ORD{int(time.time() * 1000)}{uuid.uuid4().hex[:6].upper()}"


def find_order(db, order_id: str) -> dict:
    order = db["order"].find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def with_tracking(db, order: dict) -> dict:
    tracking_id = maybe_object_id(order.get("delivery_tracking"))
    if tracking_id is not None:
        order = dict(order)
        order["delivery_tracking"] = db["deliverytracking"].find_one({"_id": tracking_id})
    return order


def snapshot_items(db, items) -> List[OrderItem]:
    """Price each line from the live catalog."""
    lines = []
    for item in items:
        oid = maybe_object_id(item.product_id)
        product = db["product"].find_one({"_id": oid, "is_active": True}) if oid else None
        if not product:
            raise HTTPException(status_code=400, detail=f"Product {item.product_id} is not available")
        images = product.get("images") or []
        lines.append(OrderItem(
            product_id=item.product_id,
            name=product["name"],
            price=product["price"],
            quantity=item.quantity,
            size=item.size,
            color=item.color,
            image=images[0].get("url") if images else None,
        ))
    return lines


def eligible_amount(db, coupon: dict, lines: List[OrderItem]) -> float:
    categories = coupon.get("applicable_categories") or []
    if not categories:
        return sum(line.price * line.quantity for line in lines)
    amount = 0.0
    for line in lines:
        product = db["product"].find_one({"_id": to_object_id(line.product_id)}, {"category": 1})
        if product and product.get("category") in categories:
            amount += line.price * line.quantity
    return amount


# ----------------------- Models -----------------------
class CheckoutItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class CheckoutBody(BaseModel):
    items: List[CheckoutItem] = Field(..., min_length=1)
    shipping_address: Address
    payment_method: PaymentMethod
    coupon_code: Optional[str] = None
    reward_points: int = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    notes: Optional[str] = None


# ----------------------- Routes -----------------------
@router.post("", status_code=201)
def create_order(body: CheckoutBody, user=Depends(get_current_user), db=Depends(get_db)):
    lines = snapshot_items(db, body.items)
    subtotal = round(sum(line.price * line.quantity for line in lines), 2)

    discount = 0.0
    coupon = None
    if body.coupon_code:
        coupon, _ = validate_coupon(db, body.coupon_code, subtotal, user["id"])
        eligible = eligible_amount(db, coupon, lines)
        if eligible <= 0:
            raise HTTPException(status_code=400, detail="Coupon does not apply to the items in this order")
        discount = compute_discount(coupon, eligible)

    points_used = 0
    if body.reward_points:
        rewards_doc = db["rewardpoint"].find_one({"user_id": user["id"]})
        available = available_points(rewards_doc) if rewards_doc else 0
        if body.reward_points > available:
            raise HTTPException(status_code=400, detail=f"Insufficient points: {available} available")
        # never redeem more than the order is worth
        remaining = max(0.0, subtotal - discount)
        points_used = min(body.reward_points, int(round(remaining * config.POINTS_PER_CURRENCY_UNIT)))
    points_discount = points_used / config.POINTS_PER_CURRENCY_UNIT

    total = round(max(0.0, subtotal - discount - points_discount) + body.shipping + body.tax, 2)
    order = OrderSchema(
        order_number=generate_order_number(),
        user_id=user["id"],
        items=lines,
        subtotal=subtotal,
        discount=discount,
        coupon_code=coupon["code"] if coupon else None,
        coupon_id=str(coupon["_id"]) if coupon else None,
        reward_points_used=points_used,
        shipping=body.shipping,
        tax=body.tax,
        total=total,
        shipping_address=body.shipping_address,
        payment_method=body.payment_method,
        notes=body.notes,
    )
    order_id = create_document(db, "order", order)
    if points_used:
        try:
            redeem(db, user["id"], points_used, order_id=order_id)
        except HTTPException:
            db["order"].delete_one({"_id": to_object_id(order_id)})
            raise
    if coupon:
        db["coupon"].update_one({"_id": coupon["_id"]}, {"$inc": {"used_count": 1}})

    now = utcnow()
    db["user"].update_one(
        {"_id": to_object_id(user["id"], "User")},
        {"$push": {"purchase_history": {"order_id": order_id, "purchased_at": now}}, "$set": {"updated_at": now}},
    )
    add_order_summary(db, user["id"], order_id, [line.image for line in lines if line.image], total)

    logger.info("Order %s placed by %s (total %.2f)", order.order_number, user["email"], total)
    return serialize_doc(find_order(db, order_id))


@router.get("")
def list_my_orders(user=Depends(get_current_user), db=Depends(get_db)):
    cursor = db["order"].find({"user_id": user["id"]}).sort("created_at", -1)
    return [serialize_doc(o) for o in cursor]


@router.get("/user/{user_id}")
def list_user_orders(user_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    ensure_self_or_admin(user, user_id)
    cursor = db["order"].find({"user_id": user_id}).sort("created_at", -1)
    return [serialize_doc(o) for o in cursor]


@router.get("/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    order = find_order(db, order_id)
    if order["user_id"] != user["id"] and not is_admin_user(user):
        raise HTTPException(status_code=403, detail="Not allowed")
    return serialize_doc(with_tracking(db, order))
