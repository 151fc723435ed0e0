from flask import Blueprint, jsonify, request
import logging

from rwanda_planner import catalog, itinerary, notifications, redis_client, security
from rwanda_planner.auth import UserContext, require_user
from rwanda_planner.errors import ResponseOrTuple, error_response

logger = logging.getLogger(__name__)

# Blueprintの定義: 旅程通知のスケジュールと取得
# Blueprint for scheduling and polling itinerary notifications
notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@notifications_bp.route('', methods=['POST'])
@require_user
def schedule(user: UserContext) -> ResponseOrTuple:
    """
    現在の旅程から通知キューを作り直す
    Rebuild the user's notification queue from the current itinerary.
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response("Invalid request", status=403)
        items = notifications.schedule_itinerary_notifications(
            itinerary.list_days(user.user_id),
            catalog.list_destinations(),
        )
        count = notifications.save_schedule(user.user_id, items)
        return jsonify({"scheduled": count, "notifications": items})
    except Exception as e:
        logger.error(f"Error scheduling notifications: {e}", exc_info=True)
        return error_response("Failed to schedule notifications", status=500)


@notifications_bp.route('', methods=['GET'])
@require_user
def queue(user: UserContext) -> ResponseOrTuple:
    try:
        return jsonify(redis_client.get_notification_queue(user.user_id))
    except Exception as e:
        logger.error(f"Error loading notifications: {e}", exc_info=True)
        return error_response("Failed to load notifications", status=500)


@notifications_bp.route('', methods=['DELETE'])
@require_user
def clear(user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response("Invalid request", status=403)
        redis_client.clear_notification_queue(user.user_id)
        return jsonify({"success": True})
    except Exception as e:
        logger.error(f"Error clearing notifications: {e}", exc_info=True)
        return error_response("Failed to clear notifications", status=500)


@notifications_bp.route('/due', methods=['GET'])
@require_user
def due(user: UserContext) -> ResponseOrTuple:
    """期限が来た通知を取り出す / Pop the notifications that are due now."""
    try:
        return jsonify(notifications.pop_due(user.user_id))
    except Exception as e:
        logger.error(f"Error polling notifications: {e}", exc_info=True)
        return error_response("Failed to load notifications", status=500)
