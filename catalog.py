import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

import config
from auth import get_current_user
from database import get_db, serialize_doc, to_object_id, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["catalog"])


def active_category_ids(db) -> list:
    return [str(c["_id"]) for c in db["category"].find({"is_active": True}, {"_id": 1})]


def search_filter(text: str, fields) -> dict:
    pattern = re.escape(text.strip())
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def find_product(db, product_id: str) -> dict:
    product = db["product"].find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db=Depends(get_db),
):
    active_ids = active_category_ids(db)
    filt = {"is_active": True, "category": {"$in": active_ids}}
    if category:
        if category not in active_ids:
            return {"products": [], "total": 0, "page": page, "limit": limit, "total_pages": 0}
        filt["category"] = category
    if search and search.strip():
        filt.update(search_filter(search, ["name", "description", "tags"]))

    total = db["product"].count_documents(filt)
    cursor = db["product"].find(filt, {"embedding": 0}).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    return {
        "products": [serialize_doc(p) for p in cursor],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


@router.get("/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    product = find_product(db, product_id)
    product.pop("embedding", None)
    return serialize_doc(product)


@router.post("/products/{product_id}/view")
def track_view(product_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    product = find_product(db, product_id)
    user_oid = to_object_id(user["id"], "User")
    doc = db["user"].find_one({"_id": user_oid}, {"browsing_history": 1}) or {}
    entry = {"product_id": product_id, "viewed_at": utcnow(), "category": product.get("category")}
    # newest first, capped
    history = [entry] + list(doc.get("browsing_history") or [])
    db["user"].update_one(
        {"_id": user_oid},
        {"$set": {"browsing_history": history[: config.BROWSING_HISTORY_LIMIT], "updated_at": utcnow()}},
    )
    return {"message": "Browsing tracked successfully"}


@router.get("/categories")
def list_categories(db=Depends(get_db)):
    cursor = db["category"].find({"is_active": True}).sort([("display_order", 1), ("name", 1)])
    return [serialize_doc(c) for c in cursor]
