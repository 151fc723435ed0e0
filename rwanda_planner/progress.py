"""
旅程の費用集計と予約進捗の計算。
Cost aggregation and booking progress for an itinerary.
"""

from typing import Any, Dict, List

from rwanda_planner.geo import round_half_up

COST_FIELDS = ("hotel_cost", "activity_cost", "car_cost", "transport_cost", "other_cost")


def _cost(day: Dict[str, Any], field: str) -> float:
    try:
        return float(day.get(field) or 0)
    except (TypeError, ValueError):
        return 0.0


def has_costs(day: Dict[str, Any]) -> bool:
    return any(_cost(day, field) > 0 for field in COST_FIELDS)


def cost_totals(itinerary: List[Dict[str, Any]]) -> Dict[str, float]:
    """
    費用項目ごとの合計（未入力は0扱い）と総額を返す
    Per-field cost sums (missing values count as 0) plus a grand total.
    """
    totals = {field: sum(_cost(day, field) for day in itinerary) for field in COST_FIELDS}
    totals["grand_total"] = sum(totals[field] for field in COST_FIELDS)
    return totals


def _percent(part: int, whole: int) -> int:
    return round_half_up(part / whole * 100)


def booking_progress(itinerary: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    予約の進捗率を計算する
    Compute booking progress.

    全体 = (予約済みホテル + 予約済みアクティビティ + 費用入力済みの日)
         / (ホテルありの日 + アクティビティありの日 + 全日数)
    Overall = (booked hotels + booked activities + days with costs)
            / (days with a hotel + days with an activity + all days)

    ホテル・アクティビティが一つも選ばれていない場合、その項目は100%です。
    Hotels/activities report 100% when none are selected.
    """
    if not itinerary:
        return {"percentage": 0, "details": {"hotels": 0, "activities": 0, "costs": 0}}

    with_hotels = [day for day in itinerary if day.get("hotel_id")]
    booked_hotels = [day for day in with_hotels if day.get("hotel_booked")]
    with_activities = [day for day in itinerary if day.get("activity_id")]
    booked_activities = [day for day in with_activities if day.get("activity_booked")]
    with_costs = [day for day in itinerary if has_costs(day)]

    total = len(with_hotels) + len(with_activities) + len(itinerary)
    completed = len(booked_hotels) + len(booked_activities) + len(with_costs)

    return {
        "percentage": _percent(completed, total),
        "details": {
            "hotels": _percent(len(booked_hotels), len(with_hotels)) if with_hotels else 100,
            "activities": _percent(len(booked_activities), len(with_activities)) if with_activities else 100,
            "costs": _percent(len(with_costs), len(itinerary)),
        },
    }


def summarize(itinerary: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "days": len(itinerary),
        "costs": cost_totals(itinerary),
        "progress": booking_progress(itinerary),
    }
