"""
スタッフ管理API（entity と action の組で処理を振り分ける）。
Staff back-office dispatcher keyed by (entity, action).

`auth/check_staff` 以外はすべて staff または admin ロールが必要で、
変更操作は監査ログに記録されます。
Everything except `auth/check_staff` requires the staff or admin role, and
every mutation writes an audit log row.
"""

import datetime
import logging
from typing import Any, Callable, Dict, Tuple

from sqlalchemy import func

from rwanda_planner import audit, messaging, subscription
from rwanda_planner.auth import UserContext, is_staff
from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import (
    Destination,
    Hotel,
    Itinerary,
    Review,
    SOSAlert,
    StaffAuditLog,
    Subscription,
    TourCompanyImage,
)

logger = logging.getLogger(__name__)

Handler = Callable[[UserContext, Dict[str, Any]], Any]

DESTINATION_FIELDS = ("name", "description", "latitude", "longitude")
HOTEL_FIELDS = ("name", "destination_id", "latitude", "longitude", "website")


def _require(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value in (None, ""):
        raise ApiError(f"Missing required field: {key}", status=400)
    return value


def _recent(db, model, limit: int = 50):
    rows = db.query(model).order_by(model.created_at.desc()).limit(limit).all()
    count = db.query(func.count(model.id)).scalar() or 0
    return [row.to_dict() for row in rows], count


def dashboard_stats(user: UserContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        subscriptions, subscriptions_count = _recent(db, Subscription)
        recent_reviews, reviews_count = _recent(db, Review)
        itineraries, itineraries_count = _recent(db, Itinerary)
        return {
            "subscriptions": subscriptions,
            "subscriptionsCount": subscriptions_count,
            "reviews": recent_reviews,
            "reviewsCount": reviews_count,
            "itineraries": itineraries,
            "itinerariesCount": itineraries_count,
        }
    finally:
        db.close()


def _create(user: UserContext, model, entity_type: str, values: Dict[str, Any], audit_changes: Dict[str, Any]):
    db = SessionLocal()
    try:
        row = model(**values)
        db.add(row)
        db.flush()
        audit.record(db, user.user_id, "create", entity_type, str(row.id), audit_changes)
        db.commit()
        return row.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _update(user: UserContext, model, entity_type: str, entity_id: str, updates: Dict[str, Any]):
    db = SessionLocal()
    try:
        row = db.query(model).filter(model.id == entity_id).first()
        if row is None:
            raise ApiError(f"{entity_type.replace('_', ' ').capitalize()} not found", status=404)
        for key, value in updates.items():
            setattr(row, key, value)
        audit.record(db, user.user_id, "update", entity_type, entity_id, updates)
        db.commit()
        return row.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _delete(user: UserContext, model, entity_type: str, entity_id: str) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        deleted = db.query(model).filter(model.id == entity_id).delete(synchronize_session=False)
        if not deleted:
            raise ApiError(f"{entity_type.replace('_', ' ').capitalize()} not found", status=404)
        audit.record(db, user.user_id, "delete", entity_type, entity_id)
        db.commit()
        return {"success": True}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _pick(payload: Dict[str, Any], fields) -> Dict[str, Any]:
    return {key: payload[key] for key in fields if key in payload}


def destination_create(user: UserContext, payload: Dict[str, Any]):
    values = {
        "id": _require(payload, "id"),
        "name": _require(payload, "name"),
        "description": payload.get("description") or "",
        "latitude": payload.get("latitude"),
        "longitude": payload.get("longitude"),
    }
    return _create(user, Destination, "destination", values, {"name": values["name"]})


def destination_update(user: UserContext, payload: Dict[str, Any]):
    return _update(user, Destination, "destination", _require(payload, "id"), _pick(payload, DESTINATION_FIELDS))


def destination_delete(user: UserContext, payload: Dict[str, Any]):
    return _delete(user, Destination, "destination", _require(payload, "id"))


def hotel_create(user: UserContext, payload: Dict[str, Any]):
    values = {
        "id": _require(payload, "id"),
        "name": _require(payload, "name"),
        "destination_id": _require(payload, "destination_id"),
        "latitude": payload.get("latitude"),
        "longitude": payload.get("longitude"),
        "website": payload.get("website") or None,
    }
    return _create(user, Hotel, "hotel", values, {"name": values["name"]})


def hotel_update(user: UserContext, payload: Dict[str, Any]):
    return _update(user, Hotel, "hotel", _require(payload, "id"), _pick(payload, HOTEL_FIELDS))


def hotel_delete(user: UserContext, payload: Dict[str, Any]):
    return _delete(user, Hotel, "hotel", _require(payload, "id"))


def tour_company_image_create(user: UserContext, payload: Dict[str, Any]):
    values = {
        "company_id": _require(payload, "company_id"),
        "image_url": _require(payload, "image_url"),
        "caption": payload.get("caption") or None,
        "sort_order": payload.get("sort_order") or 0,
    }
    return _create(user, TourCompanyImage, "tour_company_image", values, {"company_id": values["company_id"]})


def tour_company_image_delete(user: UserContext, payload: Dict[str, Any]):
    return _delete(user, TourCompanyImage, "tour_company_image", _require(payload, "id"))


def review_delete(user: UserContext, payload: Dict[str, Any]):
    return _delete(user, Review, "review", _require(payload, "id"))


def sos_alert_list(user: UserContext, payload: Dict[str, Any]):
    db = SessionLocal()
    try:
        rows = db.query(SOSAlert).order_by(SOSAlert.created_at.desc()).limit(100).all()
        audit.record(db, user.user_id, "list_alerts", "sos_alert")
        db.commit()
        return [row.to_dict() for row in rows]
    finally:
        db.close()


def sos_alert_resolve(user: UserContext, payload: Dict[str, Any]):
    db = SessionLocal()
    try:
        alert_id = _require(payload, "id")
        alert = db.query(SOSAlert).filter(SOSAlert.id == alert_id).first()
        if alert is None:
            raise ApiError("SOS alert not found", status=404)
        alert.status = "resolved"
        alert.resolved_at = datetime.datetime.now(datetime.timezone.utc)
        audit.record(db, user.user_id, "resolve", "sos_alert", alert_id)
        db.commit()
        return alert.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def conversation_list(user: UserContext, payload: Dict[str, Any]):
    return messaging.list_conversations()


def message_list(user: UserContext, payload: Dict[str, Any]):
    return messaging.list_messages(_require(payload, "conversation_id"))


def message_send(user: UserContext, payload: Dict[str, Any]):
    conversation_id = _require(payload, "conversation_id")
    return messaging.send_message(
        conversation_id,
        user.user_id,
        payload.get("content", ""),
        sender_type="staff",
        audit_staff_id=user.user_id,
    )


def message_mark_read(user: UserContext, payload: Dict[str, Any]):
    messaging.mark_read(_require(payload, "conversation_id"))
    return {"success": True}


def audit_log_list(user: UserContext, payload: Dict[str, Any]):
    db = SessionLocal()
    try:
        rows = db.query(StaffAuditLog).order_by(StaffAuditLog.created_at.desc()).limit(100).all()
        return [row.to_dict() for row in rows]
    finally:
        db.close()


def subscription_action(action: str) -> Handler:
    def handler(user: UserContext, payload: Dict[str, Any]):
        return subscription.manage(user, {**payload, "action": action})

    return handler


HANDLERS: Dict[Tuple[str, str], Handler] = {
    ("dashboard", "stats"): dashboard_stats,
    ("destination", "create"): destination_create,
    ("destination", "update"): destination_update,
    ("destination", "delete"): destination_delete,
    ("hotel", "create"): hotel_create,
    ("hotel", "update"): hotel_update,
    ("hotel", "delete"): hotel_delete,
    ("tour_company_image", "create"): tour_company_image_create,
    ("tour_company_image", "delete"): tour_company_image_delete,
    ("review", "delete"): review_delete,
    ("sos_alert", "list"): sos_alert_list,
    ("sos_alert", "resolve"): sos_alert_resolve,
    ("conversation", "list"): conversation_list,
    ("message", "list"): message_list,
    ("message", "send"): message_send,
    ("message", "mark_read"): message_mark_read,
    ("audit_log", "list"): audit_log_list,
    ("subscription", "staff_create"): subscription_action("staff_create"),
    ("subscription", "staff_update"): subscription_action("staff_update"),
    ("subscription", "staff_delete"): subscription_action("staff_delete"),
}


def dispatch(user: UserContext, payload: Dict[str, Any]) -> Any:
    """
    スタッフ操作を振り分ける
    Route a staff request to its handler.

    スタッフ以外は403、スタッフからの未知の組は400。
    Non-staff callers answer 403; unknown pairs from staff answer 400.
    """
    body = dict(payload or {})
    entity = body.pop("entity", None)
    action = body.pop("action", None)

    if (entity, action) == ("auth", "check_staff"):
        return {"isStaff": is_staff(user)}

    if not is_staff(user):
        raise ApiError("Forbidden", status=403)
    handler = HANDLERS.get((entity, action))
    if handler is None:
        raise ApiError("Invalid entity or action", status=400)
    return handler(user, body)
