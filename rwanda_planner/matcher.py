"""
抽出された旅程テキストをカタログと照合し、旅程行として取り込む。
Match extracted itinerary text against the catalog and import it as days.

照合は大文字小文字を区別しない部分一致（双方向）で、最初に一致したものを採用します。
Matching is a case-insensitive substring test in either direction; the first
catalog entry that matches wins (not the best match).
"""

import datetime
import logging
import re
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from rwanda_planner import constants, realtime
from rwanda_planner.database import SessionLocal
from rwanda_planner.models import Activity, Destination, Hotel, Itinerary

logger = logging.getLogger(__name__)


def find_match(guess: Optional[str], catalog: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    推測テキストに一致する最初のカタログ項目を返す
    Return the first catalog entry whose name contains the guess, or vice versa.
    """
    needle = (guess or "").strip().lower()
    if not needle:
        return None
    for entry in catalog:
        name = (entry.get("name") or "").lower()
        if not name:
            continue
        if needle in name or name in needle:
            return entry
    return None


def match_day(
    day: Dict[str, Any],
    destinations: List[Dict[str, Any]],
    hotels: List[Dict[str, Any]],
    activities: List[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """
    1日分の抽出結果をカタログIDへ解決する（目的地が一致しなければ None）
    Resolve one extracted day to catalog ids; None when the destination has no match.

    ホテルとアクティビティは一致した目的地に属するものだけを対象にします。
    Hotels and activities are only searched within the matched destination.
    """
    destination = find_match(day.get("destination"), destinations)
    if destination is None:
        return None

    destination_id = destination.get("id")
    hotel = find_match(day.get("hotel"), [h for h in hotels if h.get("destination_id") == destination_id])
    activity = find_match(
        day.get("activity"), [a for a in activities if a.get("destination_id") == destination_id]
    )
    return {
        "destination_id": destination_id,
        "hotel_id": hotel.get("id") if hotel else None,
        "activity_id": activity.get("id") if activity else None,
        "notes": day.get("notes") or None,
    }


def today_in_kigali() -> datetime.date:
    return datetime.datetime.now(ZoneInfo(constants.TIMEZONE)).date()


def import_start_date(existing_dates: Iterable[datetime.date], today: Optional[datetime.date] = None) -> datetime.date:
    """
    取り込み開始日を決める（既存の最終日の翌日、なければ今日）
    First date of an import: the day after the latest existing date, else today.
    """
    dates = [d for d in existing_dates if d is not None]
    if dates:
        return max(dates) + datetime.timedelta(days=1)
    return today or today_in_kigali()


def build_import_rows(
    days: List[Dict[str, Any]],
    destinations: List[Dict[str, Any]],
    hotels: List[Dict[str, Any]],
    activities: List[Dict[str, Any]],
    start_date: datetime.date,
) -> List[Dict[str, Any]]:
    """
    抽出結果から挿入用の行を組み立てる
    Build insertable rows from extracted days.

    バッチ内 k 番目の日は start_date + k 日になります。目的地が一致しない日は
    警告を出して除外しますが、その日付は消費されます。
    Day k of the batch receives start_date + k. Unmatched days are dropped with a
    warning and still consume their date.
    """
    rows: List[Dict[str, Any]] = []
    for index, day in enumerate(days):
        matched = match_day(day, destinations, hotels, activities)
        if matched is None:
            logger.warning("Could not match destination: %s", day.get("destination"))
            continue
        matched["date"] = start_date + datetime.timedelta(days=index)
        matched["day_type"] = "regular"
        rows.append(matched)
    return rows


def load_catalogs() -> Dict[str, List[Dict[str, Any]]]:
    """カタログ全件を辞書のリストで取得する / Load the full catalog as lists of dicts."""
    db = SessionLocal()
    try:
        return {
            "destinations": [d.to_dict() for d in db.query(Destination).order_by(Destination.name).all()],
            "hotels": [h.to_dict() for h in db.query(Hotel).order_by(Hotel.name).all()],
            "activities": [a.to_dict() for a in db.query(Activity).order_by(Activity.name).all()],
        }
    finally:
        db.close()


def _existing_dates(user_id: str) -> List[datetime.date]:
    db = SessionLocal()
    try:
        latest = (
            db.query(Itinerary.date)
            .filter(Itinerary.user_id == user_id)
            .order_by(Itinerary.date.desc())
            .first()
        )
        return [latest[0]] if latest else []
    finally:
        db.close()


def _insert_row(user_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        item = Itinerary(user_id=user_id, **row)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def import_days(
    user_id: str,
    days: List[Dict[str, Any]],
    catalogs: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    today: Optional[datetime.date] = None,
) -> Dict[str, Any]:
    """
    抽出された日々を利用者の旅程へ取り込む
    Import extracted days into a user's itinerary.

    各行は個別にコミットされ、途中の失敗で先行の行は取り消されません。
    Each row commits on its own; a failed insert is logged and skipped without
    rolling back earlier rows.
    """
    catalogs = catalogs or load_catalogs()
    start_date = import_start_date(_existing_dates(user_id), today=today)
    rows = build_import_rows(
        days,
        catalogs.get("destinations", []),
        catalogs.get("hotels", []),
        catalogs.get("activities", []),
        start_date,
    )

    inserted: List[Dict[str, Any]] = []
    failed = 0
    for row in rows:
        try:
            record = _insert_row(user_id, row)
        except Exception as e:
            failed += 1
            logger.error("Error inserting day %s: %s", row.get("date"), e)
            continue
        inserted.append(record)
        realtime.publish(realtime.itinerary_channel(user_id), "INSERT", record)

    return {
        "inserted": len(inserted),
        "skipped": len(days) - len(rows),
        "failed": failed,
        "days": inserted,
    }


_DAY_HEADER = re.compile(r"^\s*Day\s+(\d+)\s*[:\-]?\s*(.*)$", re.IGNORECASE)
_FIELD_PATTERNS = {
    "destination": re.compile(r"^\s*(?:📍\s*)?Destination\s*:\s*(.+)$", re.IGNORECASE),
    "hotel": re.compile(r"^\s*(?:🏨\s*)?Hotel\s*:\s*(.+)$", re.IGNORECASE),
    "cost": re.compile(r"^\s*(?:💰\s*)?Estimated\s+Cost\s*:\s*(.+)$", re.IGNORECASE),
}
_ACTIVITIES_HEADER = re.compile(r"^\s*(?:🎯\s*)?Activities\s*:\s*(.*)$", re.IGNORECASE)
_SLOT_LINE = re.compile(r"^\s*(Morning|Afternoon|Evening)\s*:\s*(.+)$", re.IGNORECASE)


def _finish_day(current: Dict[str, Any], days: List[Dict[str, Any]]) -> None:
    if not current.get("destination"):
        return
    slots = current.pop("slots", [])
    notes = [current.pop("title", "")]
    notes.extend(f"{slot}: {activity}" for slot, activity in slots)
    cost = current.pop("cost", None)
    if cost:
        notes.append(f"Estimated cost: {cost}")
    if slots and not current.get("activity"):
        current["activity"] = slots[0][1]
    current["notes"] = "\n".join(n for n in notes if n) or None
    days.append(current)


def parse_chat_itinerary(text: str) -> List[Dict[str, Any]]:
    """
    AIプランナーの「Day N:」形式の回答を抽出結果の形へ変換する
    Parse the planner's "Day N:" answer format into extracted days.

    目的地のない日ブロックは無視します。
    Day blocks without a destination line are ignored.
    """
    days: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None
    in_activities = False

    for line in (text or "").splitlines():
        header = _DAY_HEADER.match(line)
        if header:
            if current is not None:
                _finish_day(current, days)
            current = {"title": header.group(2).strip(), "slots": []}
            in_activities = False
            continue
        if current is None:
            continue

        activities_header = _ACTIVITIES_HEADER.match(line)
        if activities_header:
            in_activities = True
            inline = activities_header.group(1).strip()
            if inline:
                current["activity"] = inline
            continue

        matched_field = False
        for field, pattern in _FIELD_PATTERNS.items():
            found = pattern.match(line)
            if found:
                current[field] = found.group(1).strip()
                in_activities = False
                matched_field = True
                break
        if matched_field:
            continue

        if in_activities:
            slot = _SLOT_LINE.match(line)
            if slot:
                current["slots"].append((slot.group(1).capitalize(), slot.group(2).strip()))

    if current is not None:
        _finish_day(current, days)
    return days
