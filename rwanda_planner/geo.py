"""
距離・移動時間の計算ヘルパー。
Distance and travel-time helpers for transfer days.
"""

import math
from typing import Any, Dict, Iterable, Optional

EARTH_RADIUS_KM = 6371
AVERAGE_SPEED_KMH = 45


def round_half_up(value: float) -> int:
    """0.5 を切り上げる丸め / Round with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    2点間の大円距離（km）をHaversine式で求める
    Great-circle distance in kilometres using the Haversine formula.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def estimate_travel_time(distance_km: float) -> str:
    """
    平均時速45kmで移動時間を見積もる
    Estimate road travel time at 45 km/h.

    例 / e.g.: "40 min", "2h", "2h 15min"
    """
    total_minutes = round_half_up(distance_km / AVERAGE_SPEED_KMH * 60)
    if total_minutes < 60:
        return f"{total_minutes} min"
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}min" if minutes > 0 else f"{hours}h"


def format_distance(distance_km: float) -> str:
    return f"{round_half_up(distance_km)} km"


def _coordinates(destination: Optional[Dict[str, Any]]):
    if not destination:
        return None
    lat, lon = destination.get("latitude"), destination.get("longitude")
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


def transfer_details(day: Dict[str, Any], destinations: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    移動日の距離と所要時間を返す（座標が揃わない場合は None）
    Distance and travel time for a transfer day, or None when coordinates are missing.
    """
    if day.get("day_type") != "transfer" or not day.get("origin_id"):
        return None
    by_id = {d.get("id"): d for d in destinations}
    origin = _coordinates(by_id.get(day.get("origin_id")))
    target = _coordinates(by_id.get(day.get("destination_id")))
    if origin is None or target is None:
        return None
    distance = haversine_km(origin[0], origin[1], target[0], target[1])
    return {
        "itineraryId": day.get("id"),
        "distanceKm": distance,
        "distance": format_distance(distance),
        "travelTime": estimate_travel_time(distance),
    }
