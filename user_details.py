"""Per-user cart, wishlist and order-summary cache (the `userdetails` collection)."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from auth import get_current_user
from database import get_db, maybe_object_id, serialize_doc, to_object_id, utcnow
from schemas import SummaryStatus, UserDetails

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user-details", tags=["user-details"])


def get_or_create_user_details(db, user_id: str) -> dict:
    details = db["userdetails"].find_one({"user_id": user_id})
    if details:
        return details
    user = db["user"].find_one({"_id": to_object_id(user_id, "User")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    doc = UserDetails(user_id=user_id, username=user["name"], email=user["email"]).model_dump()
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    db["userdetails"].insert_one(doc)
    return doc


def save_lists(db, details: dict, **lists) -> dict:
    lists["updated_at"] = utcnow()
    db["userdetails"].update_one({"_id": details["_id"]}, {"$set": lists})
    details.update(lists)
    return details


def add_order_summary(db, user_id: str, order_id: str, product_images: List[str], total: Optional[float]) -> dict:
    details = get_or_create_user_details(db, user_id)
    orders = list(details.get("orders") or [])
    if any(o.get("order_id") == order_id for o in orders):
        return details
    orders.append({
        "order_id": order_id,
        "product_images": product_images or [],
        "order_date": utcnow(),
        "status": "pending",
        "total": total,
    })
    return save_lists(db, details, orders=orders)


def sync_order_summary(db, user_id: str, order_id: str, status: str) -> None:
    """Mirror an order status change into the owner's summary cache, if present."""
    details = db["userdetails"].find_one({"user_id": user_id})
    if not details:
        return
    orders = list(details.get("orders") or [])
    changed = False
    for summary in orders:
        if summary.get("order_id") == order_id and summary.get("status") != status:
            summary["status"] = status
            changed = True
    if changed:
        save_lists(db, details, orders=orders)


def _with_order_details(db, details: dict) -> dict:
    enriched = []
    for summary in details.get("orders") or []:
        summary = dict(summary)
        order_id = summary.get("order_id")
        if order_id and maybe_object_id(order_id):
            order = db["order"].find_one({"_id": to_object_id(order_id)})
            if order and order.get("delivery_tracking"):
                order["delivery_tracking"] = db["deliverytracking"].find_one(
                    {"_id": to_object_id(order["delivery_tracking"])}
                )
            summary["order_details"] = order
        enriched.append(summary)
    return serialize_doc({**details, "orders": enriched})


# ----------------------- Models -----------------------
class WishlistBody(BaseModel):
    product_id: str
    product_image: Optional[str] = None
    product_name: Optional[str] = None
    price: Optional[str] = None


class CartBody(WishlistBody):
    quantity: int = Field(1, ge=1)


class CartQuantityBody(BaseModel):
    product_id: str
    quantity: int


class OrderSummaryBody(BaseModel):
    order_id: str
    product_images: List[str] = []
    total: Optional[float] = None


class SummaryStatusBody(BaseModel):
    status: SummaryStatus


# ----------------------- Routes -----------------------
@router.get("")
def get_user_details(user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    return _with_order_details(db, details)


@router.post("/wishlist")
def add_to_wishlist(body: WishlistBody, user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    wishlist = list(details.get("wishlist") or [])
    if any(item.get("product_id") == body.product_id for item in wishlist):
        raise HTTPException(status_code=400, detail="Product already in wishlist")
    wishlist.append({**body.model_dump(), "added_at": utcnow()})
    return serialize_doc(save_lists(db, details, wishlist=wishlist))


@router.delete("/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    wishlist = [item for item in details.get("wishlist") or [] if item.get("product_id") != product_id]
    return serialize_doc(save_lists(db, details, wishlist=wishlist))


@router.post("/cart")
def add_to_cart(body: CartBody, user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    cart = list(details.get("cart") or [])
    existing = next((item for item in cart if item.get("product_id") == body.product_id), None)
    if existing:
        existing["quantity"] = existing.get("quantity", 1) + body.quantity
    else:
        cart.append({**body.model_dump(), "added_at": utcnow()})
    return serialize_doc(save_lists(db, details, cart=cart))


@router.put("/cart")
def update_cart_quantity(body: CartQuantityBody, user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    cart = list(details.get("cart") or [])
    if body.quantity <= 0:
        cart = [item for item in cart if item.get("product_id") != body.product_id]
    else:
        for item in cart:
            if item.get("product_id") == body.product_id:
                item["quantity"] = body.quantity
    return serialize_doc(save_lists(db, details, cart=cart))


@router.delete("/cart/{product_id}")
def remove_from_cart(product_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    cart = [item for item in details.get("cart") or [] if item.get("product_id") != product_id]
    return serialize_doc(save_lists(db, details, cart=cart))


@router.delete("/cart")
def clear_cart(user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    return serialize_doc(save_lists(db, details, cart=[]))


@router.post("/orders")
def add_order(body: OrderSummaryBody, user=Depends(get_current_user), db=Depends(get_db)):
    details = add_order_summary(db, user["id"], body.order_id, body.product_images, body.total)
    return serialize_doc(details)


@router.put("/orders/{order_id}/status")
def update_order_summary_status(order_id: str, body: SummaryStatusBody, user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    orders = list(details.get("orders") or [])
    for summary in orders:
        if summary.get("order_id") == order_id:
            summary["status"] = body.status
    return serialize_doc(save_lists(db, details, orders=orders))


@router.put("/orders/{order_id}/cancel")
def cancel_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    details = get_or_create_user_details(db, user["id"])
    orders = list(details.get("orders") or [])
    summary = next((o for o in orders if o.get("order_id") == order_id), None)
    if summary is None:
        raise HTTPException(status_code=404, detail="Order not found")
    summary["status"] = "cancelled"
    details = save_lists(db, details, orders=orders)

    oid = maybe_object_id(order_id)
    if oid is not None:
        db["order"].update_one(
            {"_id": oid, "user_id": user["id"]},
            {"$set": {"status": "cancelled", "updated_at": utcnow()}},
        )
    logger.info("Order %s cancelled by user %s", order_id, user["id"])
    return serialize_doc(details)
