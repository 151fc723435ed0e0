"""
ドラッグ＆ドロップによる旅程の並べ替え。
Drag-and-drop reordering of itinerary days.

移動した行を新しい位置に差し込み、各位置には「元々その位置にあった日付」を
割り当てます。日付の集合は変わらず、位置順に単調増加のままになります。
The moved row is spliced into its new index and every position keeps the date
that previously belonged to it, so the set of dates is unchanged and dates stay
ascending by position.
"""

import datetime
import logging
from typing import Any, Dict, List

from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import Itinerary
from rwanda_planner.session_request_lock import user_request_lock

logger = logging.getLogger(__name__)

REORDER_LOCK_SCOPE = "reorder"


def plan_reorder(items: List[Dict[str, Any]], source: int, destination: int) -> List[Dict[str, Any]]:
    """
    並べ替えで日付が変わる行だけを返す
    Return only the rows whose date changes when moving `source` to `destination`.

    `items` は日付順であること。同じ位置への移動は空リストを返します。
    `items` must be ordered by date. Moving to the same index returns [].
    """
    count = len(items)
    if not (0 <= source < count) or not (0 <= destination < count):
        raise ApiError("Invalid reorder position", status=400)
    if source == destination:
        return []

    position_dates = [item["date"] for item in items]
    reordered = list(items)
    moved = reordered.pop(source)
    reordered.insert(destination, moved)

    updates = []
    for index, item in enumerate(reordered):
        new_date = position_dates[index]
        if item["date"] != new_date:
            updates.append({"id": item["id"], "date": new_date})
    return updates


def _load_ordered(user_id: str) -> List[Dict[str, Any]]:
    db = SessionLocal()
    try:
        rows = (
            db.query(Itinerary)
            .filter(Itinerary.user_id == user_id)
            .order_by(Itinerary.date.asc(), Itinerary.created_at.asc())
            .all()
        )
        return [{"id": row.id, "date": row.date} for row in rows]
    finally:
        db.close()


def _update_date(user_id: str, itinerary_id: str, new_date: datetime.date) -> None:
    db = SessionLocal()
    try:
        row = (
            db.query(Itinerary)
            .filter(Itinerary.id == itinerary_id, Itinerary.user_id == user_id)
            .first()
        )
        if row is None:
            raise LookupError(f"Itinerary day {itinerary_id} not found")
        row.date = new_date
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def apply_reorder(user_id: str, source: int, destination: int) -> List[Dict[str, Any]]:
    """
    並べ替えを計画し、行ごとに独立して保存する
    Plan a reorder and persist each date change as its own update.

    途中で失敗した場合、それまでの更新は保持されたまま500を返します。
    A mid-sequence failure keeps the updates already committed and surfaces as a 500.
    """
    with user_request_lock(user_id, REORDER_LOCK_SCOPE) as acquired:
        if not acquired:
            raise ApiError("A reorder is already in progress. Please wait.", status=409)

        updates = plan_reorder(_load_ordered(user_id), source, destination)
        for update in updates:
            try:
                _update_date(user_id, update["id"], update["date"])
            except Exception as e:
                logger.error("Failed to update itinerary %s: %s", update["id"], e, exc_info=True)
                raise ApiError("Failed to reorder itinerary", status=500)
        return [{"id": u["id"], "date": u["date"].isoformat()} for u in updates]
