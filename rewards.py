import logging
import math
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

import config
from auth import ensure_self_or_admin, get_current_user, require_admin
from database import as_utc, get_db, serialize_value, to_object_id, utcnow
from schemas import RewardPoint

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


def get_or_create_rewards(db, user_id: str) -> dict:
    doc = db["rewardpoint"].find_one({"user_id": user_id})
    if doc:
        return doc
    doc = RewardPoint(user_id=user_id).model_dump()
    now = utcnow()
    doc.update(created_at=now, updated_at=now)
    db["rewardpoint"].insert_one(doc)
    return doc


def available_points(doc: dict) -> int:
    """Earned points that have not expired, minus everything redeemed."""
    now = utcnow()
    transactions = doc.get("transactions") or []
    earned = sum(
        t["amount"] for t in transactions
        if t["type"] == "earned" and (not t.get("expires_at") or as_utc(t["expires_at"]) > now)
    )
    redeemed = sum(t["amount"] for t in transactions if t["type"] == "redeemed")
    return max(0, earned - redeemed)


def redeem(db, user_id: str, points: int, order_id: Optional[str] = None) -> float:
    doc = db["rewardpoint"].find_one({"user_id": user_id})
    if not doc:
        raise HTTPException(status_code=404, detail="No reward points found")
    available = available_points(doc)
    if points > available:
        raise HTTPException(status_code=400, detail=f"Insufficient points: {available} available, {points} requested")

    transaction = {
        "type": "redeemed",
        "amount": points,
        "order_id": order_id,
        "description": f"Redeemed {points} points",
        "expires_at": None,
        "created_at": utcnow(),
    }
    db["rewardpoint"].update_one(
        {"_id": doc["_id"]},
        {
            "$push": {"transactions": transaction},
            "$set": {"points": max(0, doc.get("points", 0) - points), "updated_at": utcnow()},
            "$inc": {"total_redeemed": points},
        },
    )
    logger.info("User %s redeemed %s points", user_id, points)
    return points / config.POINTS_PER_CURRENCY_UNIT


# ----------------------- Models -----------------------
class EarnBody(BaseModel):
    order_id: str


class RedeemBody(BaseModel):
    user_id: str
    points_to_redeem: int = Field(..., gt=0)


# ----------------------- Routes -----------------------
@router.post("/earn")
def earn_points(body: EarnBody, admin=Depends(require_admin), db=Depends(get_db)):
    order = db["order"].find_one({"_id": to_object_id(body.order_id, "Order")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("payment_status") != "paid":
        raise HTTPException(status_code=400, detail="Order not paid yet")

    user_id = order["user_id"]
    doc = get_or_create_rewards(db, user_id)
    if any(t.get("order_id") == body.order_id and t["type"] == "earned" for t in doc.get("transactions") or []):
        raise HTTPException(status_code=400, detail="Points already earned for this order")

    points = max(10, math.floor(order["total"]))
    now = utcnow()
    transaction = {
        "type": "earned",
        "amount": points,
        "order_id": body.order_id,
        "description": f"Earned {points} points for order {order['order_number']}",
        "expires_at": now + timedelta(days=365),
        "created_at": now,
    }
    db["rewardpoint"].update_one(
        {"_id": doc["_id"]},
        {
            "$push": {"transactions": transaction},
            "$inc": {"points": points, "total_earned": points},
            "$set": {"updated_at": now},
        },
    )
    logger.info("User %s earned %s points for order %s", user_id, points, order["order_number"])
    return {
        "message": f"Earned {points} reward points",
        "points_earned": points,
        "total_points": doc.get("points", 0) + points,
    }


@router.post("/redeem")
def redeem_points(body: RedeemBody, user=Depends(get_current_user), db=Depends(get_db)):
    ensure_self_or_admin(user, body.user_id)
    discount = redeem(db, body.user_id, body.points_to_redeem)
    doc = db["rewardpoint"].find_one({"user_id": body.user_id})
    return {
        "message": f"Redeemed {body.points_to_redeem} points",
        "points_redeemed": body.points_to_redeem,
        "discount_amount": discount,
        "remaining_points": available_points(doc),
    }


@router.get("/{user_id}")
def get_reward_points(user_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    ensure_self_or_admin(user, user_id)
    doc = get_or_create_rewards(db, user_id)
    transactions = list(doc.get("transactions") or [])
    return {
        "user_id": user_id,
        "total_points": doc.get("points", 0),
        "available_points": available_points(doc),
        "total_earned": doc.get("total_earned", 0),
        "total_redeemed": doc.get("total_redeemed", 0),
        "transactions": serialize_value(transactions[-10:][::-1]),
    }


@router.get("/{user_id}/history")
def get_points_history(
    user_id: str,
    limit: int = Query(20, ge=1, le=200),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    ensure_self_or_admin(user, user_id)
    doc = db["rewardpoint"].find_one({"user_id": user_id})
    if not doc:
        return {"transactions": []}
    transactions = sorted(doc.get("transactions") or [], key=lambda t: as_utc(t["created_at"]), reverse=True)
    return {"transactions": serialize_value(transactions[:limit])}
