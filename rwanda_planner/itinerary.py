"""
旅程（1日単位）の取得・追加・更新・削除。
Itinerary day CRUD for a single user.
"""

import datetime
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from rwanda_planner import catalog, geo, progress, realtime, subscription
from rwanda_planner.auth import UserContext
from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import Destination, Hotel, Itinerary
from rwanda_planner.schemas import ItineraryNotes, NewItineraryDay, first_error

logger = logging.getLogger(__name__)

TIME_FIELDS = ("wake_time", "breakfast_time", "lunch_time", "dinner_time")
COST_FIELDS = progress.COST_FIELDS
ID_FIELDS = ("destination_id", "origin_id", "hotel_id", "activity_id", "car_id")
FLAG_FIELDS = ("is_booked", "hotel_booked", "activity_booked", "all_confirmed")

# 1回のPATCHで更新できる項目
# Fields a single PATCH may change
UPDATABLE_FIELDS = frozenset(("date", "day_type", "notes") + TIME_FIELDS + COST_FIELDS + ID_FIELDS + FLAG_FIELDS)
TOGGLE_FIELDS = ("hotel_booked", "activity_booked")


def list_days(user_id: str) -> List[Dict[str, Any]]:
    db = SessionLocal()
    try:
        rows = (
            db.query(Itinerary)
            .filter(Itinerary.user_id == user_id)
            .order_by(Itinerary.date.asc(), Itinerary.created_at.asc())
            .all()
        )
        return [row.to_dict() for row in rows]
    finally:
        db.close()


def add_day(user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    try:
        day = NewItineraryDay(**payload)
    except ValidationError as e:
        raise ApiError(first_error(e), status=400)
    if day.day_type == "transfer" and not day.origin_id:
        raise ApiError("Transfer days need an origin", status=400)

    db = SessionLocal()
    try:
        row = Itinerary(user_id=user_id, **day.model_dump())
        db.add(row)
        db.commit()
        record = row.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    realtime.publish(realtime.itinerary_channel(user_id), "INSERT", record)
    return record


def _clean_value(field: str, value: Any) -> Any:
    if field == "notes":
        try:
            return ItineraryNotes(notes=value).notes
        except ValidationError as e:
            raise ApiError(first_error(e), status=400)
    if field == "date":
        try:
            return datetime.date.fromisoformat(str(value)[:10])
        except ValueError:
            raise ApiError("Invalid date", status=400)
    if field == "day_type":
        if value not in ("regular", "transfer"):
            raise ApiError("Invalid day type", status=400)
        return value
    if field in COST_FIELDS:
        if value in (None, ""):
            return None
        try:
            amount = float(value)
        except (TypeError, ValueError):
            raise ApiError("Cost must be a number", status=400)
        if amount < 0:
            raise ApiError("Cost cannot be negative", status=400)
        return amount
    if field in TIME_FIELDS:
        if not value:
            return None
        try:
            datetime.time.fromisoformat(str(value))
        except ValueError:
            raise ApiError("Time must use HH:MM", status=400)
        return str(value)[:5]
    if field in FLAG_FIELDS:
        return bool(value)
    return value or None


def _get_owned(db, user_id: str, itinerary_id: str) -> Itinerary:
    row = db.query(Itinerary).filter(Itinerary.id == itinerary_id, Itinerary.user_id == user_id).first()
    if row is None:
        raise ApiError("Itinerary day not found", status=404)
    return row


def update_field(user_id: str, itinerary_id: str, field: str, value: Any) -> Dict[str, Any]:
    """
    許可された1項目だけを更新する
    Update a single whitelisted field of a day.
    """
    if field not in UPDATABLE_FIELDS:
        raise ApiError("Field cannot be updated", status=400)
    cleaned = _clean_value(field, value)
    if field == "destination_id" and not cleaned:
        raise ApiError("Destination is required", status=400)

    db = SessionLocal()
    try:
        row = _get_owned(db, user_id, itinerary_id)
        setattr(row, field, cleaned)
        db.commit()
        return row.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def toggle_booking(user_id: str, itinerary_id: str, field: str) -> Dict[str, Any]:
    if field not in TOGGLE_FIELDS:
        raise ApiError("Invalid booking field", status=400)
    db = SessionLocal()
    try:
        row = _get_owned(db, user_id, itinerary_id)
        setattr(row, field, not bool(getattr(row, field)))
        db.commit()
        return row.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def delete_day(user_id: str, itinerary_id: str) -> None:
    db = SessionLocal()
    try:
        row = _get_owned(db, user_id, itinerary_id)
        db.delete(row)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def booking_link(user: UserContext, itinerary_id: str, kind: str = "destination") -> Dict[str, Any]:
    """
    予約リンクを返す（有効なサブスクリプションが必要）
    Booking URL for a day, behind the subscription gate.
    """
    subscription.require_subscription(user)

    db = SessionLocal()
    try:
        row = _get_owned(db, user.user_id, itinerary_id)
        url: Optional[str] = None
        if kind == "hotel" and row.hotel_id:
            hotel = db.query(Hotel).filter(Hotel.id == row.hotel_id).first()
            url = hotel.website if hotel else None
        if url is None:
            destination = db.query(Destination).filter(Destination.id == row.destination_id).first()
            url = catalog.destination_booking_url(destination.name if destination else "")
    finally:
        db.close()

    if not url:
        raise ApiError("No booking link available for this day", status=404)
    return {"url": url}


def summary(user_id: str) -> Dict[str, Any]:
    """費用・進捗・移動日の距離 / Costs, progress and transfer distances."""
    days = list_days(user_id)
    result = progress.summarize(days)
    destinations = catalog.list_destinations()
    result["transfers"] = [t for t in (geo.transfer_details(day, destinations) for day in days) if t]
    return result
