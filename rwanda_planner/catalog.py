"""
カタログ（目的地・ホテル・アクティビティ・車・ツアー会社）の参照とおすすめ。
Catalog queries, smart suggestions and operator booking URLs.
"""

import logging
from typing import Any, Dict, List, Optional

from rwanda_planner.database import SessionLocal
from rwanda_planner.models import Activity, Car, Destination, Hotel, TourCompany, TourCompanyImage

logger = logging.getLogger(__name__)

# よくある旅行パターンに基づく組み合わせ
# Popular combinations based on common travel patterns
DESTINATION_COMBOS: Dict[str, Dict[str, Any]] = {
    "volcanoes": {
        "recommended": ["musanze", "kigali"],
        "reason": "Gorilla trekking pairs well with Musanze town and Kigali cultural sites",
    },
    "musanze": {
        "recommended": ["volcanoes", "lake-kivu"],
        "reason": "After Musanze, visit nearby Volcanoes NP or relax at Lake Kivu",
    },
    "akagera": {
        "recommended": ["kigali", "nyungwe"],
        "reason": "Safari lovers often combine Akagera with Nyungwe for diverse wildlife",
    },
    "nyungwe": {
        "recommended": ["lake-kivu", "akagera"],
        "reason": "Nyungwe chimps + Lake Kivu views make a perfect combo",
    },
    "lake-kivu": {
        "recommended": ["nyungwe", "musanze"],
        "reason": "Lake relaxation pairs great with forest trekking",
    },
    "kigali": {
        "recommended": ["campaign-genocide", "kandt-house", "volcanoes"],
        "reason": "Start with Kigali museums before heading to national parks",
    },
}
DEFAULT_SUGGESTION_REASON = "Popular choices for this destination"

# 目的地名のキーワード → 予約サイト（上から順に判定）
# Destination keyword -> booking site, checked in order
BOOKING_URLS = [
    (("volcanoes", "gorilla"), "https://visitrwandabookings.rdb.rw/rdbportal/web/tourism/tourist-permit"),
    (("akagera",), "https://visitakagera.org/book-now/"),
    (("nyungwe",), "https://visitnyungwe.org/book-now/"),
    (("kivu",), "https://www.booking.com/region/rw/lake-kivu.html"),
    (("museum", "palace", "genocide"), "https://irembo.gov.rw/home/citizen/all_services"),
    (("kigali",), "https://www.booking.com/city/rw/kigali.html"),
    (("musanze",), "https://www.booking.com/city/rw/ruhengeri.html"),
]


def destination_booking_url(destination_name: str) -> Optional[str]:
    name = (destination_name or "").lower()
    for keywords, url in BOOKING_URLS:
        if any(keyword in name for keyword in keywords):
            return url
    return None


def _list(model, order_by, **filters) -> List[Dict[str, Any]]:
    db = SessionLocal()
    try:
        query = db.query(model)
        for column, value in filters.items():
            if value is not None:
                query = query.filter(getattr(model, column) == value)
        return [row.to_dict() for row in query.order_by(order_by).all()]
    finally:
        db.close()


def list_destinations() -> List[Dict[str, Any]]:
    return _list(Destination, Destination.name)


def list_hotels(destination_id: Optional[str] = None) -> List[Dict[str, Any]]:
    return _list(Hotel, Hotel.name, destination_id=destination_id)


def list_activities(destination_id: Optional[str] = None) -> List[Dict[str, Any]]:
    return _list(Activity, Activity.name, destination_id=destination_id)


def list_cars() -> List[Dict[str, Any]]:
    return _list(Car, Car.name)


def list_tour_companies() -> List[Dict[str, Any]]:
    """ツアー会社と画像一覧 / Tour companies with their image galleries."""
    db = SessionLocal()
    try:
        companies = db.query(TourCompany).order_by(TourCompany.name).all()
        images = db.query(TourCompanyImage).order_by(TourCompanyImage.sort_order).all()
        by_company: Dict[str, List[Dict[str, Any]]] = {}
        for image in images:
            by_company.setdefault(image.company_id, []).append(image.to_dict())
        result = []
        for company in companies:
            data = company.to_dict()
            data["images"] = by_company.get(company.id, [])
            result.append(data)
        return result
    finally:
        db.close()


def get_destination(destination_id: str) -> Optional[Dict[str, Any]]:
    db = SessionLocal()
    try:
        row = db.query(Destination).filter(Destination.id == destination_id).first()
        return row.to_dict() if row else None
    finally:
        db.close()


def smart_suggestions(
    destination_id: str,
    destinations: List[Dict[str, Any]],
    hotels: List[Dict[str, Any]],
    activities: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    目的地ごとのおすすめ（ホテル2件・アクティビティ3件・次の目的地）
    Suggestions for a destination: two hotels, three activities and next stops.
    """
    combo = DESTINATION_COMBOS.get(destination_id.lower(), {})
    by_id = {str(d.get("id", "")).lower(): d for d in destinations}
    next_destinations = [by_id[d] for d in combo.get("recommended", []) if d in by_id]
    return {
        "hotels": [h for h in hotels if h.get("destination_id") == destination_id][:2],
        "activities": [a for a in activities if a.get("destination_id") == destination_id][:3],
        "nextDestinations": next_destinations,
        "reason": combo.get("reason", DEFAULT_SUGGESTION_REASON),
    }


def suggestions_for(destination_id: str) -> Dict[str, Any]:
    return smart_suggestions(
        destination_id,
        list_destinations(),
        list_hotels(destination_id),
        list_activities(destination_id),
    )
