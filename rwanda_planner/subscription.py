"""
サブスクリプション（ペイウォール）の判定と管理。
Subscription gate and the manage-subscription actions.

支払いの有効化は送信された参照番号をそのまま信用します（決済事業者への照会なし）。
Activation trusts the submitted payment reference as-is; nothing is verified
with the payment processor.
"""

import logging
from typing import Any, Dict, Optional

from rwanda_planner import audit, constants
from rwanda_planner.auth import UserContext, is_admin, is_staff
from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import Profile, Subscription

logger = logging.getLogger(__name__)

FREE_PRICE = 0
STAFF_CREATED_REFERENCE = "STAFF_CREATED"


def price_for(nationality: Optional[str]) -> int:
    """国籍区分ごとの料金（不明な区分は50） / Price for a nationality tier, 50 when unknown."""
    return constants.PRICING.get(nationality or "", constants.DEFAULT_PRICE)


def has_active_subscription(is_admin_user: bool, subscription: Optional[Dict[str, Any]]) -> bool:
    return bool(is_admin_user) or (subscription is not None and subscription.get("status") == "active")


def resolve_nationality(user_id: str, requested: Optional[str] = None) -> str:
    """
    プロフィールの国籍を優先し、なければリクエスト値、最後に既定値
    Profile nationality first, then the requested value, then the default.
    """
    db = SessionLocal()
    try:
        profile = db.query(Profile).filter(Profile.user_id == user_id).first()
        if profile and profile.nationality:
            return profile.nationality
    finally:
        db.close()
    if requested in constants.PRICING:
        return requested
    return constants.DEFAULT_NATIONALITY


def get_active_subscription(user_id: str) -> Optional[Dict[str, Any]]:
    db = SessionLocal()
    try:
        row = (
            db.query(Subscription)
            .filter(Subscription.user_id == user_id, Subscription.status == "active")
            .first()
        )
        return row.to_dict() if row else None
    finally:
        db.close()


def check(user: UserContext) -> Dict[str, Any]:
    if is_admin(user):
        return {"hasSubscription": True, "isAdmin": True, "message": "Admin account - full access"}
    subscription = get_active_subscription(user.user_id)
    return {"hasSubscription": subscription is not None, "subscription": subscription, "isAdmin": False}


def paywall_details(user: UserContext) -> Dict[str, Any]:
    nationality = resolve_nationality(user.user_id)
    return {
        "nationality": nationality,
        "price": price_for(nationality),
        "paymentUrl": constants.PAYPAL_PAYMENT_URL,
    }


def require_subscription(user: UserContext) -> None:
    """
    ペイウォールが閉じている場合は402を送出する
    Raise a 402 carrying price and payment URL when the gate is closed.
    """
    status = check(user)
    if has_active_subscription(status.get("isAdmin", False), status.get("subscription")):
        return
    raise ApiError("An active subscription is required", status=402, extra=paywall_details(user))


def _upsert(db, user_id: str, payment_reference: Optional[str], amount: float, method: str) -> Subscription:
    row = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if row is None:
        row = Subscription(user_id=user_id)
        db.add(row)
    row.status = "active"
    row.payment_reference = payment_reference
    row.payment_method = method
    row.amount = amount
    return row


def activate(user: UserContext, payment_reference: Optional[str], nationality: Optional[str] = None) -> Dict[str, Any]:
    """
    サブスクリプションを有効化する（利用者ごとに1行をupsert）
    Activate the user's subscription, upserting the single row per user.

    無料区分（料金0）は参照番号なしで有効化できます。
    Free-tier nationalities activate without a payment reference.
    """
    resolved = resolve_nationality(user.user_id, nationality)
    price = price_for(resolved)
    reference = (payment_reference or "").strip()
    if price > FREE_PRICE and not reference:
        raise ApiError("Payment reference required", status=400)

    method = "paypal" if price > FREE_PRICE else "free"
    db = SessionLocal()
    try:
        _upsert(db, user.user_id, reference or None, float(price), method)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("Error activating subscription: %s", e, exc_info=True)
        raise ApiError("Failed to update subscription", status=500)
    finally:
        db.close()

    logger.info("Subscription activated for user %s with reference %s", user.user_id, reference or "-")
    return {"success": True, "message": "Subscription activated successfully"}


def _require_staff(user: UserContext) -> None:
    if not is_staff(user):
        raise ApiError("Staff access required", status=403)


def staff_update(user: UserContext, subscription_id: str, new_status: str) -> Dict[str, Any]:
    _require_staff(user)
    if new_status not in ("active", "inactive"):
        raise ApiError("Invalid status", status=400)
    db = SessionLocal()
    try:
        row = db.query(Subscription).filter(Subscription.id == subscription_id).first()
        if row is None:
            raise ApiError("Subscription not found", status=404)
        row.status = new_status
        audit.record(db, user.user_id, "update", "subscription", subscription_id, {"status": new_status})
        db.commit()
        return {"success": True, "subscription": row.to_dict()}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def staff_delete(user: UserContext, subscription_id: str) -> Dict[str, Any]:
    _require_staff(user)
    db = SessionLocal()
    try:
        deleted = db.query(Subscription).filter(Subscription.id == subscription_id).delete()
        if not deleted:
            raise ApiError("Subscription not found", status=404)
        audit.record(db, user.user_id, "delete", "subscription", subscription_id)
        db.commit()
        return {"success": True}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def staff_create(user: UserContext, target_user_id: str, payment_reference: Optional[str] = None) -> Dict[str, Any]:
    _require_staff(user)
    target = (target_user_id or "").strip()
    if not target:
        raise ApiError("User ID is required", status=400)
    reference = (payment_reference or "").strip() or STAFF_CREATED_REFERENCE
    nationality = resolve_nationality(target)
    db = SessionLocal()
    try:
        row = _upsert(db, target, reference, float(price_for(nationality)), "staff")
        db.flush()
        audit.record(db, user.user_id, "create", "subscription", row.id, {"user_id": target, "payment_reference": reference})
        db.commit()
        return {"success": True, "subscription": row.to_dict()}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def manage(user: UserContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    """manage-subscription のアクション振り分け / Dispatch a manage-subscription action."""
    action = payload.get("action")
    if action == "check":
        return check(user)
    if action == "activate":
        return activate(user, payload.get("payment_reference"), payload.get("nationality"))
    if action == "staff_update":
        return staff_update(user, payload.get("subscription_id", ""), payload.get("new_status", ""))
    if action == "staff_delete":
        return staff_delete(user, payload.get("subscription_id", ""))
    if action == "staff_create":
        return staff_create(user, payload.get("target_user_id", ""), payload.get("payment_reference"))
    raise ApiError("Invalid action", status=400)
