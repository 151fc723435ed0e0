from flask import Blueprint, Response, jsonify, request, stream_with_context
import datetime
import logging
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from rwanda_planner import (
    constants,
    extraction,
    guard,
    limit_manager,
    mailer,
    planner,
    reminders,
    security,
    sos,
    staff,
    subscription,
)
from rwanda_planner.auth import UserContext, require_user
from rwanda_planner.errors import (
    ApiError,
    ResponseOrTuple,
    api_error_response,
    error_response,
    read_json_object,
)
from rwanda_planner.schemas import PackageEmailRequest, PlannerRequest, first_error

logger = logging.getLogger(__name__)

# Blueprintの定義: サーバー側の関数群（AIプランナー、メール、SOSなど）
# Blueprint for the server-side functions (AI planner, email, SOS, staff)
functions_bp = Blueprint('functions', __name__, url_prefix='/functions')

INVALID_REQUEST = "Invalid request"
SERVICE_UNAVAILABLE_MESSAGE = "Service temporarily unavailable. Please try again later."


def _enforce_rate_limit(scope: str, user: UserContext, max_requests: int, window_seconds: int) -> None:
    """
    利用制限を確認し、超過時は429、Redis障害時は503を送出する
    Raise 429 when over the limit, 503 when the limiter is unavailable.
    """
    allowed, _, error_code = limit_manager.check_rate_limit(scope, user.user_id, max_requests, window_seconds)
    if allowed:
        return
    if error_code == "redis_unavailable":
        raise ApiError(SERVICE_UNAVAILABLE_MESSAGE, status=503)
    raise ApiError(planner.RATE_LIMIT_MESSAGE, status=429)


@functions_bp.route('/ai-planner', methods=['POST'])
@require_user
def ai_planner(user: UserContext) -> ResponseOrTuple:
    """
    AIプランナーとの会話（Server-Sent Eventsでストリーミング）
    Chat with the AI planner, streamed back as Server-Sent Events.
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)

        try:
            payload = PlannerRequest(**data)
        except ValidationError as e:
            return error_response(first_error(e), status=400)

        messages = [message.model_dump() for message in payload.messages]
        rejection = guard.check_user_messages(messages)
        if rejection:
            return error_response(rejection, status=400)

        _enforce_rate_limit("ai-planner", user, constants.PLANNER_RATE_LIMIT, constants.PLANNER_RATE_WINDOW_SECONDS)

        events = planner.stream_chat(messages, payload.destinations, payload.hotels, payload.activities)
        return Response(
            stream_with_context(events),
            mimetype=security.EVENT_STREAM_MIMETYPE,
        )
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error in ai-planner: {e}", exc_info=True)
        return error_response(planner.SERVICE_ERROR_MESSAGE, status=500)


@functions_bp.route('/extract-itinerary', methods=['POST'])
@require_user
def extract_itinerary(user: UserContext) -> ResponseOrTuple:
    """
    アップロードされた文書から旅程を抽出する
    Extract itinerary days from an uploaded document (base64).
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)

        _enforce_rate_limit("extract-itinerary", user, constants.EXTRACT_RATE_LIMIT, constants.EXTRACT_RATE_WINDOW_SECONDS)

        result = extraction.extract_itinerary(
            data.get('fileContent') or "",
            data.get('fileName') or "",
            data.get('fileType') or "",
            data.get('destinations'),
            data.get('hotels'),
            data.get('activities'),
        )
        return jsonify(result)
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error extracting itinerary: {e}", exc_info=True)
        return error_response("Failed to process document", status=500)


@functions_bp.route('/manage-subscription', methods=['POST'])
@require_user
def manage_subscription(user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)
        return jsonify(subscription.manage(user, data))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error managing subscription: {e}", exc_info=True)
        return error_response("Failed to process subscription request", status=500)


@functions_bp.route('/send-sos-alert', methods=['POST'])
@require_user
def send_sos_alert(user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)
        return jsonify(sos.send_sos_alert(user, data))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error sending SOS alert: {e}", exc_info=True)
        return error_response("Failed to send SOS alert", status=500)


@functions_bp.route('/send-package-email', methods=['POST'])
@require_user
def send_package_email(user: UserContext) -> ResponseOrTuple:
    """
    旅行パッケージ／旅程をメールで送る
    Email a tour package or itinerary to the user.
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)

        try:
            payload = PackageEmailRequest(**data)
        except ValidationError as e:
            return error_response(first_error(e), status=400)

        today = datetime.datetime.now(ZoneInfo(constants.TIMEZONE)).date()
        result = mailer.send_package_email(
            payload.email,
            payload.userName,
            payload.packageTitle,
            payload.packageContent,
            payload.packageType,
            f"{today:%B} {today.day}, {today.year}",
        )
        return jsonify({"success": True, "data": result})
    except mailer.MailerError as e:
        logger.error(f"Package email failed: {e}")
        return error_response(str(e), status=500)
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error sending package email: {e}", exc_info=True)
        return error_response("Failed to send email", status=500)


@functions_bp.route('/send-daily-reminder', methods=['POST'])
@require_user
def send_daily_reminder(user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request, required=False)
        return jsonify(reminders.send_daily_reminder(user, data.get('userEmail'), data.get('userName')))
    except mailer.MailerError as e:
        logger.error(f"Daily reminder email failed: {e}")
        return error_response(str(e), status=500)
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error sending daily reminder: {e}", exc_info=True)
        return error_response("Failed to send reminder", status=500)


@functions_bp.route('/staff-management', methods=['POST'])
@require_user
def staff_management(user: UserContext) -> ResponseOrTuple:
    """
    スタッフ管理（entity と action で操作を指定）
    Staff management, body {"entity": ..., "action": ..., ...}.
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)
        return jsonify(staff.dispatch(user, data))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error in staff-management: {e}", exc_info=True)
        return error_response("Failed to process staff request", status=500)
