"""
当日の旅程をまとめたリマインダーメール。
Daily reminder email summarising today's itinerary.
"""

import datetime
import logging
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from rwanda_planner import constants, mailer
from rwanda_planner.auth import UserContext
from rwanda_planner.database import SessionLocal
from rwanda_planner.models import Activity, Destination, Hotel, Itinerary

logger = logging.getLogger(__name__)

TIME_LABELS = (
    ("wake_time", "⏰ Wake Up"),
    ("breakfast_time", "🍳 Breakfast"),
    ("lunch_time", "🍽️ Lunch"),
    ("dinner_time", "🍷 Dinner"),
)


def _names_by_id(db, model, ids) -> Dict[str, str]:
    ids = [i for i in set(ids) if i]
    if not ids:
        return {}
    return {row.id: row.name for row in db.query(model).filter(model.id.in_(ids)).all()}


def schedule_for_day(user_id: str, day: datetime.date) -> List[Dict[str, Any]]:
    """
    指定日の旅程を名前付きで返す
    Itinerary rows for one day with destination, hotel and activity names resolved.
    """
    db = SessionLocal()
    try:
        rows = (
            db.query(Itinerary)
            .filter(Itinerary.user_id == user_id, Itinerary.date == day)
            .order_by(Itinerary.created_at)
            .all()
        )
        destinations = _names_by_id(db, Destination, [r.destination_id for r in rows])
        hotels = _names_by_id(db, Hotel, [r.hotel_id for r in rows])
        activities = _names_by_id(db, Activity, [r.activity_id for r in rows])

        return [
            {
                "destination": destinations.get(row.destination_id, "Unknown"),
                "hotel": hotels.get(row.hotel_id),
                "activity": activities.get(row.activity_id),
                "is_transfer": row.day_type == "transfer",
                "times": [(label, getattr(row, field)) for field, label in TIME_LABELS if getattr(row, field)],
                "notes": row.notes,
            }
            for row in rows
        ]
    finally:
        db.close()


def send_daily_reminder(
    user: UserContext,
    user_email: Optional[str] = None,
    user_name: Optional[str] = None,
    today: Optional[datetime.date] = None,
) -> Dict[str, Any]:
    today = today or datetime.datetime.now(ZoneInfo(constants.TIMEZONE)).date()
    logger.info("Checking for itinerary on %s for user %s", today.isoformat(), user.user_id)

    items = schedule_for_day(user.user_id, today)
    if not items:
        return {"success": True, "message": "No activities scheduled for today"}

    formatted_date = f"{today:%A, %B} {today.day}, {today.year}"
    html = mailer.render(
        "daily_reminder.html",
        user_name=user_name or user.display_name,
        formatted_date=formatted_date,
        items=items,
    )
    recipient = mailer.resolve_recipient(user_email or user.email)
    data = mailer.send_email([recipient], f"🌅 Today's Rwanda Adventure - {formatted_date}", html)
    return {"success": True, "data": data, "itemsCount": len(items)}
