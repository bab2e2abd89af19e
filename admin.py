"""Back-office authentication, dashboard and user management."""
import logging
from datetime import timedelta
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr, Field

import config
from auth import LoginBody, hash_password, is_admin_user, public_user, require_admin, token_for, verify_password
from catalog import search_filter
from database import (
    create_document,
    get_db,
    maybe_object_id,
    paginate,
    query_time,
    serialize_doc,
    serialize_value,
    to_object_id,
    utcnow,
)
from schemas import Address, User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])
users_router = APIRouter(prefix="/api/admin/users", tags=["admin"], dependencies=[Depends(require_admin)])

USER_SORT_FIELDS = {"created_at", "name", "email", "updated_at"}


def start_of_month():
    return utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def date_label(group_id: dict) -> str:
    label = f"{group_id['year']}-{group_id['month']:02d}"
    if "day" in group_id:
        label += f"-{group_id['day']:02d}"
    return label


def find_user(db, user_id: str) -> dict:
    user = db["user"].find_one({"_id": to_object_id(user_id, "User")})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ----------------------- Auth -----------------------
@router.post("/login")
def admin_login(body: LoginBody, db=Depends(get_db)):
    user = db["user"].find_one({"email": body.email.strip().lower()})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not is_admin_user(user):
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    if user.get("is_blocked"):
        raise HTTPException(status_code=403, detail="Your account has been blocked. Please contact support.")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Your account is inactive. Please contact support.")
    if not verify_password(body.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    logger.info("Admin login: %s", user["email"])
    return {"message": "Login successful", "token": token_for(user), "user": public_user(user)}


@router.get("/me")
def admin_me(admin=Depends(require_admin)):
    return admin


# ----------------------- Dashboard -----------------------
@router.get("/dashboard/overview", dependencies=[Depends(require_admin)])
def dashboard_overview(db=Depends(get_db)):
    orders = db["order"]
    paid = {"status": {"$ne": "cancelled"}, "payment_status": "paid"}

    revenue = list(orders.aggregate([
        {"$match": paid},
        {"$group": {"_id": None, "total": {"$sum": "$total"}}},
    ]))
    total_revenue = revenue[0]["total"] if revenue else 0

    recent_orders = []
    for order in orders.find().sort("created_at", -1).limit(10):
        uid = maybe_object_id(order.get("user_id"))
        customer = db["user"].find_one({"_id": uid}) if uid else None
        recent_orders.append({
            "id": str(order["_id"]),
            "order_number": order["order_number"],
            "customer": {
                "name": customer["name"] if customer else "Unknown",
                "email": customer["email"] if customer else "Unknown",
            },
            "items": len(order.get("items") or []),
            "total": order["total"],
            "status": order["status"],
            "payment_status": order["payment_status"],
            "created_at": serialize_value(order.get("created_at")),
        })

    trending = list(orders.aggregate([
        {"$match": {"status": {"$ne": "cancelled"}}},
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "total_sold": {"$sum": "$items.quantity"},
            "total_revenue": {"$sum": {"$multiply": ["$items.price", "$items.quantity"]}},
            "name": {"$first": "$items.name"},
            "image": {"$first": "$items.image"},
        }},
        {"$sort": {"total_sold": -1}},
        {"$limit": 5},
    ]))

    since = query_time(utcnow() - timedelta(days=7))
    sales_trend = orders.aggregate([
        {"$match": {**paid, "created_at": {"$gte": since}}},
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}, "day": {"$dayOfMonth": "$created_at"}},
            "sales": {"$sum": "$total"},
            "orders": {"$sum": 1},
        }},
        {"$sort": {"_id.year": 1, "_id.month": 1, "_id.day": 1}},
    ])

    breakdown = orders.aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])

    return {
        "summary": {
            "total_users": db["user"].count_documents({"is_admin": False}),
            "total_products": db["product"].count_documents({}),
            "total_orders": orders.count_documents({}),
            "total_categories": db["category"].count_documents({"is_active": True}),
            "total_revenue": round(total_revenue, 2),
            "new_users_this_month": db["user"].count_documents(
                {"is_admin": False, "created_at": {"$gte": query_time(start_of_month())}}
            ),
            "low_stock_products": db["product"].count_documents(
                {"stock": {"$gt": 0, "$lte": config.LOW_STOCK_THRESHOLD}, "is_active": True}
            ),
        },
        "recent_orders": recent_orders,
        "trending_products": [
            {
                "product_id": t["_id"],
                "name": t.get("name") or "Unknown",
                "total_sold": t["total_sold"],
                "total_revenue": t["total_revenue"],
                "image": t.get("image"),
            }
            for t in trending
        ],
        "sales_trend": [{"date": date_label(s["_id"]), "sales": s["sales"], "orders": s["orders"]} for s in sales_trend],
        "order_status_breakdown": {b["_id"]: b["count"] for b in breakdown},
    }


# ----------------------- Users -----------------------
class AdminUserCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    address: Optional[Address] = None
    is_admin: bool = False


class AdminUserUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    is_active: Optional[bool] = None


@users_router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_blocked: Optional[bool] = None,
    is_active: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db=Depends(get_db),
):
    filt = {"is_admin": False}
    if search:
        filt.update(search_filter(search, ["name", "email"]))
    if is_blocked is not None:
        filt["is_blocked"] = is_blocked
    if is_active is not None:
        filt["is_active"] = is_active
    if sort_by not in USER_SORT_FIELDS:
        sort_by = "created_at"

    total = db["user"].count_documents(filt)
    cursor = (
        db["user"].find(filt, {"browsing_history": 0})
        .sort(sort_by, 1 if sort_order == "asc" else -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    users = [serialize_doc(u) for u in cursor]
    return {"users": users, "pagination": paginate(total, page, limit, len(users))}


@users_router.post("", status_code=201)
def create_user(body: AdminUserCreateBody, db=Depends(get_db)):
    email = body.email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = UserSchema(
        name=body.name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        phone=body.phone,
        address=body.address,
        is_admin=body.is_admin,
    )
    user_id = create_document(db, "user", user)
    logger.info("Admin created user %s", email)
    return {"message": "User created successfully", "user": serialize_doc(find_user(db, user_id))}


@users_router.get("/stats")
def user_stats(db=Depends(get_db)):
    users = db["user"]
    return {
        "total_users": users.count_documents({"is_admin": False}),
        "active_users": users.count_documents({"is_admin": False, "is_active": True}),
        "blocked_users": users.count_documents({"is_admin": False, "is_blocked": True}),
        "new_users_this_month": users.count_documents(
            {"is_admin": False, "created_at": {"$gte": query_time(start_of_month())}}
        ),
    }


@users_router.get("/{user_id}")
def get_user(user_id: str, db=Depends(get_db)):
    return serialize_doc(find_user(db, user_id))


@users_router.put("/{user_id}")
def update_user(user_id: str, body: AdminUserUpdateBody, db=Depends(get_db)):
    user = find_user(db, user_id)
    update = body.model_dump(exclude_none=True)
    if "email" in update:
        update["email"] = update["email"].strip().lower()
        if update["email"] != user["email"] and db["user"].find_one({"email": update["email"]}):
            raise HTTPException(status_code=400, detail="Email already registered")
    update["updated_at"] = utcnow()
    db["user"].update_one({"_id": user["_id"]}, {"$set": update})
    return {"message": "User updated successfully", "user": serialize_doc(find_user(db, user_id))}


@users_router.patch("/{user_id}/block")
def toggle_block_user(user_id: str, db=Depends(get_db)):
    user = find_user(db, user_id)
    if is_admin_user(user):
        raise HTTPException(status_code=403, detail="Cannot block admin user")
    blocked = not user.get("is_blocked", False)
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"is_blocked": blocked, "updated_at": utcnow()}})
    logger.info("User %s %s", user["email"], "blocked" if blocked else "unblocked")
    return {
        "message": f"User {'blocked' if blocked else 'unblocked'} successfully",
        "user": serialize_doc(find_user(db, user_id)),
    }


@users_router.delete("/{user_id}")
def delete_user(user_id: str, db=Depends(get_db)):
    user = find_user(db, user_id)
    if is_admin_user(user):
        raise HTTPException(status_code=403, detail="Cannot delete admin user")
    db["user"].delete_one({"_id": user["_id"]})
    db["userdetails"].delete_one({"user_id": user_id})
    logger.info("User %s deleted", user["email"])
    return {"message": "User deleted successfully"}
