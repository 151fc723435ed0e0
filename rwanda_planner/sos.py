"""
緊急SOSアラートの検証・保存・通知。
Emergency SOS alerts: validation, persistence and the emergency email.
"""

import datetime
import logging
import re
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from rwanda_planner import constants, limit_manager, mailer
from rwanda_planner.auth import UserContext
from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import SOSAlert

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]{7,20}$")
SOS_FROM_EMAIL = "Click to Rwanda Emergency <onboarding@resend.dev>"


def _optional_float(value: Any, name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ApiError(f"Invalid {name}", status=400)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ApiError(f"Invalid {name}", status=400)


def validate_alert(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    SOSリクエストを検証し、保存用の値を返す
    Validate an SOS payload and return normalised values.

    - 電話番号: ^\\+?[0-9\\s\\-()]{7,20}$ / phone format
    - 緯度 [-90, 90]・経度 [-180, 180] / coordinate bounds
    - 説明は1000文字まで / description length cap
    """
    phone = (payload.get("phoneNumber") or "").strip() or None
    if phone is not None and not PHONE_PATTERN.match(phone):
        raise ApiError("Invalid phone number format", status=400)

    latitude = _optional_float(payload.get("latitude"), "latitude")
    longitude = _optional_float(payload.get("longitude"), "longitude")
    if latitude is not None and not -90 <= latitude <= 90:
        raise ApiError("Invalid latitude", status=400)
    if longitude is not None and not -180 <= longitude <= 180:
        raise ApiError("Invalid longitude", status=400)

    description = (payload.get("description") or "").strip() or None
    if description is not None and len(description) > constants.MAX_SOS_DESCRIPTION_CHARS:
        raise ApiError(
            f"Description must be less than {constants.MAX_SOS_DESCRIPTION_CHARS} characters", status=400
        )

    location_available = payload.get("locationAvailable", latitude is not None and longitude is not None)
    if not location_available:
        latitude = longitude = None

    return {
        "phone_number": phone,
        "latitude": latitude,
        "longitude": longitude,
        "description": description,
        "has_voice_recording": bool(payload.get("hasVoiceRecording")),
    }


def maps_url(latitude: Optional[float], longitude: Optional[float]) -> Optional[str]:
    if latitude is None or longitude is None:
        return None
    return f"https://www.google.com/maps?q={latitude},{longitude}"


def kigali_timestamp(now: Optional[datetime.datetime] = None) -> str:
    now = (now or datetime.datetime.now(datetime.timezone.utc)).astimezone(ZoneInfo(constants.TIMEZONE))
    return f"{now:%A, %B} {now.day}, {now.year} at {now:%H:%M:%S} {now.tzname()}"


def _persist(user: UserContext, values: Dict[str, Any]) -> str:
    db = SessionLocal()
    try:
        alert = SOSAlert(user_id=user.user_id, user_email=user.email or None, status="pending", **values)
        db.add(alert)
        db.commit()
        return alert.id
    except Exception as e:
        db.rollback()
        logger.error("Error saving SOS alert: %s", e, exc_info=True)
        raise ApiError("Failed to record SOS alert", status=500)
    finally:
        db.close()


def send_sos_alert(user: UserContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    SOSアラートを保存し、緊急連絡先へメールする
    Record an SOS alert and email the emergency contact.

    レート制限はRedis障害時に通過させます。メール送信に失敗しても記録は残り、
    成功レスポンスに emailSent=False を含めます。
    The rate limit fails open when Redis is down. An email failure keeps the
    stored alert and is reported as emailSent=False.
    """
    allowed, _, _ = limit_manager.check_rate_limit(
        "sos",
        user.user_id,
        constants.SOS_RATE_LIMIT,
        constants.SOS_RATE_WINDOW_SECONDS,
        fail_open=True,
    )
    if not allowed:
        raise ApiError("Too many SOS alerts. Please call emergency services directly.", status=429)

    values = validate_alert(payload)
    alert_id = _persist(user, values)

    html = mailer.render(
        "sos_alert.html",
        user_name=user.display_name,
        user_email=user.email or "No email provided",
        user_id=user.user_id,
        alert_id=alert_id,
        phone_number=values["phone_number"],
        latitude=values["latitude"],
        longitude=values["longitude"],
        maps_url=maps_url(values["latitude"], values["longitude"]),
        description=values["description"],
        has_voice_recording=values["has_voice_recording"],
        timestamp=kigali_timestamp(),
    )
    try:
        mailer.send_email(
            [constants.EMERGENCY_EMAIL],
            f"🚨 EMERGENCY SOS ALERT - {user.display_name}",
            html,
            from_email=SOS_FROM_EMAIL,
        )
        email_sent = True
    except mailer.MailerError as e:
        logger.error("SOS alert %s stored but email failed: %s", alert_id, e)
        email_sent = False

    return {"success": True, "message": "SOS alert sent successfully", "alertId": alert_id, "emailSent": email_sent}
