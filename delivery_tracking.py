import logging
import uuid
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from auth import get_current_user, is_admin_user, require_admin
from database import get_db, maybe_object_id, serialize_doc, to_object_id, utcnow
from schemas import ACTIVE_DELIVERY_STATUSES, DeliveryAgent, DeliveryStatus, DeliveryTracking, Location
from user_details import sync_order_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/delivery-tracking", tags=["delivery-tracking"])

WAREHOUSE = Location(address="Warehouse", city="Mumbai", state="Maharashtra")
ESTIMATED_DELIVERY_DAYS = 3


def generate_tracking_number() -> str:
    return f"TRK{uuid.uuid4().hex[:8].upper()}"


def with_order(db, tracking: dict) -> dict:
    tracking = dict(tracking)
    oid = maybe_object_id(tracking.get("order_id"))
    tracking["order"] = db["order"].find_one({"_id": oid}) if oid else None
    return serialize_doc(tracking)


def set_order_status(db, order: dict, status: str, **extra) -> None:
    db["order"].update_one({"_id": order["_id"]}, {"$set": {"status": status, "updated_at": utcnow(), **extra}})
    sync_order_summary(db, order["user_id"], str(order["_id"]), status)


# ----------------------- Models -----------------------
class TrackingCreateBody(BaseModel):
    order_id: str
    courier_name: Optional[str] = None
    tracking_number: Optional[str] = None
    delivery_agent: Optional[DeliveryAgent] = None


class TrackingUpdateBody(BaseModel):
    status: Optional[DeliveryStatus] = None
    location: Optional[Location] = None
    description: Optional[str] = None


# ----------------------- Routes -----------------------
@router.post("", status_code=201)
def create_delivery_tracking(body: TrackingCreateBody, admin=Depends(require_admin), db=Depends(get_db)):
    order = db["order"].find_one({"_id": to_object_id(body.order_id, "Order")})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    tracking_number = body.tracking_number or generate_tracking_number()
    if db["deliverytracking"].find_one({"tracking_number": tracking_number}):
        raise HTTPException(status_code=400, detail="Tracking number already in use")

    now = utcnow()
    tracking = DeliveryTracking(
        order_id=body.order_id,
        courier_name=body.courier_name or "Standard Courier",
        tracking_number=tracking_number,
        current_location=WAREHOUSE,
        status="picked_up",
        logs=[{
            "status": "picked_up",
            "location": WAREHOUSE,
            "timestamp": now,
            "description": "Order picked up from warehouse",
        }],
        estimated_delivery=now + timedelta(days=ESTIMATED_DELIVERY_DAYS),
        delivery_agent=body.delivery_agent,
    )
    data = tracking.model_dump()
    data.update(created_at=now, updated_at=now)
    tracking_id = db["deliverytracking"].insert_one(data).inserted_id

    set_order_status(db, order, "shipped", delivery_tracking=str(tracking_id))
    logger.info("Tracking %s created for order %s", tracking_number, order["order_number"])
    return {
        "tracking": serialize_doc(db["deliverytracking"].find_one({"_id": tracking_id})),
        "message": "Delivery tracking created successfully",
    }


@router.get("")
def get_active_deliveries(user_id: Optional[str] = None, admin=Depends(require_admin), db=Depends(get_db)):
    filt = {"status": {"$in": ACTIVE_DELIVERY_STATUSES}}
    if user_id:
        order_ids = [str(o["_id"]) for o in db["order"].find({"user_id": user_id}, {"_id": 1})]
        filt["order_id"] = {"$in": order_ids}
    cursor = db["deliverytracking"].find(filt).sort("created_at", -1)
    return [with_order(db, t) for t in cursor]


@router.get("/order/{order_id}")
def get_delivery_tracking(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    tracking = db["deliverytracking"].find_one({"order_id": order_id})
    if not tracking:
        raise HTTPException(status_code=404, detail="Tracking not found")
    result = with_order(db, tracking)
    if result.get("order") and result["order"]["user_id"] != user["id"] and not is_admin_user(user):
        raise HTTPException(status_code=403, detail="Not allowed")
    return result


@router.get("/track/{tracking_number}")
def get_tracking_by_number(tracking_number: str, db=Depends(get_db)):
    tracking = db["deliverytracking"].find_one({"tracking_number": tracking_number.strip().upper()})
    if not tracking:
        raise HTTPException(status_code=404, detail="Tracking not found")
    return serialize_doc(tracking)


@router.put("/{tracking_id}")
def update_delivery_status(tracking_id: str, body: TrackingUpdateBody, admin=Depends(require_admin), db=Depends(get_db)):
    tracking = db["deliverytracking"].find_one({"_id": to_object_id(tracking_id, "Tracking")})
    if not tracking:
        raise HTTPException(status_code=404, detail="Tracking not found")

    now = utcnow()
    status = body.status or tracking["status"]
    location = body.location.model_dump() if body.location else tracking.get("current_location")
    entry = {
        "status": status,
        "location": location,
        "timestamp": now,
        "description": body.description or f"Status updated to {status}",
    }
    update = {"status": status, "updated_at": now}
    if body.location:
        update["current_location"] = location
    if status == "delivered":
        update["actual_delivery"] = now

    db["deliverytracking"].update_one({"_id": tracking["_id"]}, {"$push": {"logs": entry}, "$set": update})

    if status == "delivered":
        order = db["order"].find_one({"_id": maybe_object_id(tracking["order_id"])})
        if order:
            set_order_status(db, order, "delivered")

    logger.info("Tracking %s moved to %s", tracking["tracking_number"], status)
    return {
        "tracking": serialize_doc(db["deliverytracking"].find_one({"_id": tracking["_id"]})),
        "message": "Delivery status updated successfully",
    }
