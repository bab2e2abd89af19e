import logging
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from auth import get_current_user, require_admin
from database import as_utc, get_db, serialize_doc, to_object_id, utcnow
from schemas import Coupon

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/coupons", tags=["coupons"])
admin_router = APIRouter(prefix="/api/admin/coupons", tags=["admin"], dependencies=[Depends(require_admin)])


def coupon_is_exhausted(coupon: dict) -> bool:
    limit = coupon.get("usage_limit")
    return bool(limit) and coupon.get("used_count", 0) >= limit


def compute_discount(coupon: dict, amount: float) -> float:
    if coupon["discount_type"] == "percentage":
        discount = amount * coupon["discount_value"] / 100
        cap = coupon.get("max_discount_amount")
        if cap and discount > cap:
            discount = cap
    else:
        discount = min(coupon["discount_value"], amount)
    return round(discount, 2)


def validate_coupon(db, code: str, amount: float, user_id: Optional[str] = None):
    """Check a coupon against the checkout amount; returns (coupon, discount)."""
    coupon = db["coupon"].find_one({"code": code.strip().upper(), "is_active": True})
    if not coupon:
        raise HTTPException(status_code=404, detail="Invalid or expired coupon code")

    now = utcnow()
    if now < as_utc(coupon["valid_from"]) or now > as_utc(coupon["valid_until"]):
        raise HTTPException(status_code=400, detail="Coupon is not valid at this time")
    if coupon_is_exhausted(coupon):
        raise HTTPException(status_code=400, detail="Coupon usage limit reached")
    if amount < coupon.get("min_purchase_amount", 0):
        raise HTTPException(
            status_code=400,
            detail=f"Minimum purchase amount of ${coupon['min_purchase_amount']} required",
        )
    if user_id:
        used = db["order"].count_documents({"user_id": user_id, "coupon_id": str(coupon["_id"])})
        if used >= coupon.get("usage_limit_per_user", 1):
            raise HTTPException(status_code=400, detail="You have already used this coupon")

    return coupon, compute_discount(coupon, amount)


def coupon_response(coupon: dict, discount: float) -> dict:
    return {
        "valid": True,
        "coupon": {
            "id": str(coupon["_id"]),
            "code": coupon["code"],
            "discount_type": coupon["discount_type"],
            "discount_value": coupon["discount_value"],
        },
        "discount": discount,
    }


def find_coupon(db, coupon_id: str) -> dict:
    coupon = db["coupon"].find_one({"_id": to_object_id(coupon_id, "Coupon")})
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


# ----------------------- Models -----------------------
class ValidateBody(BaseModel):
    code: str
    amount: float = Field(..., ge=0)
    user_id: Optional[str] = None


class CouponCreateBody(BaseModel):
    code: str = Field(..., min_length=1)
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(..., ge=0)
    min_purchase_amount: float = Field(0, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_user: int = Field(1, ge=1)
    applicable_categories: List[str] = []
    is_active: bool = True


class CouponUpdateBody(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    discount_value: Optional[float] = Field(None, ge=0)
    min_purchase_amount: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_user: Optional[int] = Field(None, ge=1)
    applicable_categories: Optional[List[str]] = None
    is_active: Optional[bool] = None


# ----------------------- Storefront -----------------------
@router.post("/validate")
def validate(body: ValidateBody, user=Depends(get_current_user), db=Depends(get_db)):
    coupon, discount = validate_coupon(db, body.code, body.amount, user["id"])
    return coupon_response(coupon, discount)


# ----------------------- Admin -----------------------
@admin_router.get("")
def list_coupons(is_active: Optional[bool] = None, expired: Optional[bool] = None, db=Depends(get_db)):
    filt = {}
    if is_active is not None:
        filt["is_active"] = is_active
    coupons = list(db["coupon"].find(filt).sort("created_at", -1))
    if expired is not None:
        now = utcnow()

        def is_expired(c):
            return as_utc(c["valid_until"]) < now or coupon_is_exhausted(c)

        coupons = [c for c in coupons if is_expired(c) == expired]
    return [serialize_doc(c) for c in coupons]


@admin_router.post("/validate")
def admin_validate(body: ValidateBody, db=Depends(get_db)):
    coupon, discount = validate_coupon(db, body.code, body.amount, body.user_id)
    return coupon_response(coupon, discount)


@admin_router.get("/{coupon_id}")
def get_coupon(coupon_id: str, db=Depends(get_db)):
    return serialize_doc(find_coupon(db, coupon_id))


@admin_router.post("", status_code=201)
def create_coupon(body: CouponCreateBody, admin=Depends(require_admin), db=Depends(get_db)):
    code = body.code.strip().upper()
    if db["coupon"].find_one({"code": code}):
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    if as_utc(body.valid_until) <= as_utc(body.valid_from):
        raise HTTPException(status_code=400, detail="Valid until date must be after valid from date")

    coupon = Coupon(**body.model_dump(exclude={"code"}), code=code, created_by=admin["id"])
    data = coupon.model_dump()
    now = utcnow()
    data.update(created_at=now, updated_at=now)
    inserted = db["coupon"].insert_one(data).inserted_id
    logger.info("Coupon %s created by %s", code, admin["email"])
    return {"message": "Coupon created successfully", "coupon": serialize_doc(db["coupon"].find_one({"_id": inserted}))}


@admin_router.put("/{coupon_id}")
def update_coupon(coupon_id: str, body: CouponUpdateBody, db=Depends(get_db)):
    coupon = find_coupon(db, coupon_id)
    update = body.model_dump(exclude_none=True)

    if update.get("code"):
        update["code"] = update["code"].strip().upper()
        if update["code"] != coupon["code"] and db["coupon"].find_one({"code": update["code"]}):
            raise HTTPException(status_code=400, detail="Coupon code already exists")

    valid_from = as_utc(update.get("valid_from") or coupon["valid_from"])
    valid_until = as_utc(update.get("valid_until") or coupon["valid_until"])
    if valid_until <= valid_from:
        raise HTTPException(status_code=400, detail="Valid until date must be after valid from date")

    update["updated_at"] = utcnow()
    db["coupon"].update_one({"_id": coupon["_id"]}, {"$set": update})
    return {"message": "Coupon updated successfully", "coupon": serialize_doc(find_coupon(db, coupon_id))}


@admin_router.delete("/{coupon_id}")
def delete_coupon(coupon_id: str, db=Depends(get_db)):
    coupon = find_coupon(db, coupon_id)
    if db["order"].count_documents({"coupon_id": str(coupon["_id"])}) > 0:
        db["coupon"].update_one({"_id": coupon["_id"]}, {"$set": {"is_active": False, "updated_at": utcnow()}})
        return {"message": "Coupon deactivated (has been used)", "coupon": serialize_doc(find_coupon(db, coupon_id))}
    db["coupon"].delete_one({"_id": coupon["_id"]})
    logger.info("Coupon %s deleted", coupon["code"])
    return {"message": "Coupon deleted successfully"}
