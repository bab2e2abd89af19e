import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from auth import get_current_user, require_admin
from database import get_db, maybe_object_id, query_time, serialize_doc, to_object_id, utcnow
from schemas import Image, Notification, NotificationType, TargetAudience

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])
admin_router = APIRouter(prefix="/api/admin/notifications", tags=["admin"], dependencies=[Depends(require_admin)])


def find_notification(db, notification_id: str) -> dict:
    notification = db["notification"].find_one({"_id": to_object_id(notification_id, "Notification")})
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification


def browsed_categories(db, user: dict) -> List[str]:
    product_ids = [maybe_object_id(h.get("product_id")) for h in user.get("browsing_history") or []]
    product_ids = [pid for pid in product_ids if pid]
    if not product_ids:
        return []
    return list({p["category"] for p in db["product"].find({"_id": {"$in": product_ids}}, {"category": 1})})


def check_targets(db, audience: str, target_users: List[str], target_categories: List[str]) -> None:
    if audience == "specific_users":
        if not target_users:
            raise HTTPException(status_code=400, detail="Target users are required for specific_users notifications")
        ids = [maybe_object_id(u) for u in target_users]
        if None in ids or db["user"].count_documents({"_id": {"$in": ids}}) != len(set(target_users)):
            raise HTTPException(status_code=400, detail="One or more target users not found")
    if audience == "category_based":
        if not target_categories:
            raise HTTPException(status_code=400, detail="Target categories are required for category_based notifications")
        ids = [maybe_object_id(c) for c in target_categories]
        if None in ids or db["category"].count_documents({"_id": {"$in": ids}}) != len(set(target_categories)):
            raise HTTPException(status_code=400, detail="One or more target categories not found")


# ----------------------- Models -----------------------
class NotificationCreateBody(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    type: NotificationType = "info"
    target_audience: TargetAudience = "all"
    target_users: List[str] = []
    target_categories: List[str] = []
    link: Optional[str] = None
    image: Optional[Image] = None
    scheduled_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True


class NotificationUpdateBody(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    message: Optional[str] = Field(None, min_length=1, max_length=1000)
    type: Optional[NotificationType] = None
    target_audience: Optional[TargetAudience] = None
    target_users: Optional[List[str]] = None
    target_categories: Optional[List[str]] = None
    link: Optional[str] = None
    image: Optional[Image] = None
    scheduled_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None


# ----------------------- Storefront -----------------------
@router.get("")
def my_notifications(user=Depends(get_current_user), db=Depends(get_db)):
    now = query_time(utcnow())
    audience = [{"target_audience": "all"}, {"target_audience": "specific_users", "target_users": user["id"]}]
    categories = browsed_categories(db, user)
    if categories:
        audience.append({"target_audience": "category_based", "target_categories": {"$in": categories}})
    filt = {
        "is_active": True,
        "scheduled_at": {"$lte": now},
        "$and": [
            {"$or": audience},
            {"$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}]},
        ],
    }
    result = []
    for n in db["notification"].find(filt).sort("scheduled_at", -1):
        read_by = n.pop("read_by", None) or []
        n.pop("target_users", None)
        item = serialize_doc(n)
        item["is_read"] = any(r.get("user_id") == user["id"] for r in read_by)
        result.append(item)
    return result


@router.post("/{notification_id}/read")
def mark_as_read(notification_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    notification = find_notification(db, notification_id)
    if not any(r.get("user_id") == user["id"] for r in notification.get("read_by") or []):
        db["notification"].update_one(
            {"_id": notification["_id"]},
            {"$push": {"read_by": {"user_id": user["id"], "read_at": utcnow()}}},
        )
    return {"message": "Notification marked as read"}


# ----------------------- Admin -----------------------
@admin_router.get("")
def list_notifications(
    is_active: Optional[bool] = None,
    type: Optional[NotificationType] = None,
    target_audience: Optional[TargetAudience] = None,
    db=Depends(get_db),
):
    filt = {}
    if is_active is not None:
        filt["is_active"] = is_active
    if type:
        filt["type"] = type
    if target_audience:
        filt["target_audience"] = target_audience
    result = []
    for n in db["notification"].find(filt).sort("created_at", -1):
        item = serialize_doc(n)
        item["read_count"] = len(n.get("read_by") or [])
        result.append(item)
    return result


@admin_router.get("/stats")
def notification_stats(db=Depends(get_db)):
    now = query_time(utcnow())
    notifications = db["notification"]
    total_reads = sum(len(n.get("read_by") or []) for n in notifications.find({}, {"read_by": 1}))
    return {
        "total": notifications.count_documents({}),
        "active": notifications.count_documents({"is_active": True}),
        "scheduled": notifications.count_documents({"scheduled_at": {"$gt": now}}),
        "total_reads": total_reads,
    }


@admin_router.get("/{notification_id}")
def get_notification(notification_id: str, db=Depends(get_db)):
    return serialize_doc(find_notification(db, notification_id))


@admin_router.post("", status_code=201)
def create_notification(body: NotificationCreateBody, admin=Depends(require_admin), db=Depends(get_db)):
    check_targets(db, body.target_audience, body.target_users, body.target_categories)
    data = body.model_dump()
    data["scheduled_at"] = data["scheduled_at"] or utcnow()
    notification = Notification(**data, created_by=admin["id"])
    doc = notification.model_dump()
    now = utcnow()
    doc.update(created_at=now, updated_at=now)
    inserted = db["notification"].insert_one(doc).inserted_id
    logger.info("Notification '%s' created for %s", body.title, body.target_audience)
    return {
        "message": "Notification created successfully",
        "notification": serialize_doc(db["notification"].find_one({"_id": inserted})),
    }


@admin_router.put("/{notification_id}")
def update_notification(notification_id: str, body: NotificationUpdateBody, db=Depends(get_db)):
    notification = find_notification(db, notification_id)
    update = body.model_dump(exclude_none=True)
    check_targets(
        db,
        update.get("target_audience") or notification["target_audience"],
        update.get("target_users", notification.get("target_users") or []),
        update.get("target_categories", notification.get("target_categories") or []),
    )
    update["updated_at"] = utcnow()
    db["notification"].update_one({"_id": notification["_id"]}, {"$set": update})
    return {
        "message": "Notification updated successfully",
        "notification": serialize_doc(find_notification(db, notification_id)),
    }


@admin_router.delete("/{notification_id}")
def delete_notification(notification_id: str, db=Depends(get_db)):
    notification = find_notification(db, notification_id)
    db["notification"].delete_one({"_id": notification["_id"]})
    return {"message": "Notification deleted successfully"}
