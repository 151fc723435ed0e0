"""
旅程に基づく通知（毎朝のリマインダー・起床・食事）のスケジュール管理。
Itinerary notification scheduling: daily reminder, wake-up and meal alarms.

通知キューは利用者ごとにRedisへ保存し、クライアントは1分ごとに期限の来た
通知を取得します。
The queue lives in Redis per user; clients poll once a minute for due items.
"""

import datetime
import logging
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from rwanda_planner import constants, redis_client

logger = logging.getLogger(__name__)

DAILY_REMINDER_TIME = datetime.time(7, 0)
DUE_WINDOW_SECONDS = 3600

# (時刻フィールド, タグ接頭辞, タイトル, 本文)
# (time field, tag prefix, title, body)
TIMED_NOTIFICATIONS = (
    ("wake_time", "wake", "⏰ Wake Up Time", "Good morning! Time to start your day in {destination}"),
    ("breakfast_time", "breakfast", "🍳 Breakfast Time", "Time for breakfast! Enjoy your meal."),
    ("lunch_time", "lunch", "🍽️ Lunch Time", "Time for lunch! Stay energized for your activities."),
    ("dinner_time", "dinner", "🍷 Dinner Time", "Time for dinner! Reflect on today's adventures."),
)


def _tz() -> ZoneInfo:
    return ZoneInfo(constants.TIMEZONE)


def alarm_type(tag: str) -> str:
    """タグからアラーム種別を判定する / Alarm sound type for a notification tag."""
    if tag.startswith("wake-"):
        return "wake"
    if tag.startswith(("breakfast-", "lunch-", "dinner-")):
        return "meal"
    return "reminder"


def _parse_hhmm(value: Optional[str]) -> Optional[datetime.time]:
    if not value:
        return None
    try:
        hours, minutes = value.split(":")[:2]
        return datetime.time(int(hours), int(minutes))
    except (ValueError, TypeError):
        logger.warning("Ignoring malformed time value: %s", value)
        return None


def _as_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value)[:10])


def _notification(day_date: datetime.date, at: datetime.time, title: str, body: str, tag: str) -> Dict[str, Any]:
    scheduled = datetime.datetime.combine(day_date, at, tzinfo=_tz())
    return {
        "date": scheduled.isoformat(),
        "title": title,
        "body": body,
        "tag": tag,
        "alarmType": alarm_type(tag),
    }


def schedule_itinerary_notifications(
    itinerary: List[Dict[str, Any]],
    destinations: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    旅程から通知一覧を作成する
    Build the notification list for an itinerary ordered by date.
    """
    names = {d.get("id"): d.get("name") for d in destinations}
    notifications: List[Dict[str, Any]] = []

    for index, day in enumerate(itinerary):
        destination_name = names.get(day.get("destination_id")) or "Unknown"
        day_date = _as_date(day.get("date"))
        day_id = day.get("id")

        if day.get("day_type") == "transfer":
            body = "Transfer day - Check your itinerary for details"
        else:
            body = "Your adventure continues! Check today's activities."
        notifications.append(
            _notification(day_date, DAILY_REMINDER_TIME, f"Day {index + 1}: {destination_name}", body, f"day-{day_id}")
        )

        for field, prefix, title, template in TIMED_NOTIFICATIONS:
            at = _parse_hhmm(day.get(field))
            if at is None:
                continue
            notifications.append(
                _notification(day_date, at, title, template.format(destination=destination_name), f"{prefix}-{day_id}")
            )

    return notifications


def is_due(notification: Dict[str, Any], now: datetime.datetime) -> bool:
    """予定時刻の1時間前から予定時刻までの間なら True / Due within the hour before it fires."""
    scheduled = datetime.datetime.fromisoformat(notification["date"])
    delta = (scheduled - now).total_seconds()
    return 0 <= delta <= DUE_WINDOW_SECONDS


def due_notifications(queue: List[Dict[str, Any]], now: datetime.datetime) -> List[Dict[str, Any]]:
    return [n for n in queue if is_due(n, now)]


def save_schedule(user_id: str, notifications: List[Dict[str, Any]]) -> int:
    redis_client.save_notification_queue(user_id, notifications)
    return len(notifications)


def pop_due(user_id: str, now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
    """
    期限の来た通知を返し、キューから取り除く
    Return due notifications and remove them from the user's queue.
    """
    now = now or datetime.datetime.now(_tz())
    queue = redis_client.get_notification_queue(user_id)
    due = due_notifications(queue, now)
    if due:
        triggered = {n["tag"] for n in due}
        redis_client.save_notification_queue(user_id, [n for n in queue if n["tag"] not in triggered])
    return due
