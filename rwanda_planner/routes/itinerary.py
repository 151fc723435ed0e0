from flask import Blueprint, jsonify, request
import logging

from pydantic import ValidationError

from rwanda_planner import itinerary, matcher, reorder, security
from rwanda_planner.auth import UserContext, require_user
from rwanda_planner.errors import (
    ApiError,
    INVALID_JSON,
    ResponseOrTuple,
    api_error_response,
    error_response,
    read_json_object,
)
from rwanda_planner.schemas import ExtractedDay, first_error

logger = logging.getLogger(__name__)

# Blueprintの定義: 旅程（itinerary）のルートを管理
# Blueprint for itinerary routes
itinerary_bp = Blueprint('itinerary', __name__, url_prefix='/api/itinerary')

INVALID_REQUEST = "Invalid request"


@itinerary_bp.route('', methods=['GET'])
@require_user
def list_days(user: UserContext) -> ResponseOrTuple:
    try:
        return jsonify(itinerary.list_days(user.user_id))
    except Exception as e:
        logger.error(f"Error listing itinerary: {e}", exc_info=True)
        return error_response("Failed to load itinerary", status=500)


@itinerary_bp.route('', methods=['POST'])
@require_user
def add_day(user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)
        return jsonify(itinerary.add_day(user.user_id, data)), 201
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error adding itinerary day: {e}", exc_info=True)
        return error_response("Failed to add day", status=500)


@itinerary_bp.route('/<itinerary_id>', methods=['PATCH'])
@require_user
def update_day(itinerary_id: str, user: UserContext) -> ResponseOrTuple:
    """
    1項目だけを更新する（{"field": ..., "value": ...}）
    Update one field, body {"field": ..., "value": ...}.
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)
        if 'field' not in data:
            return error_response(INVALID_JSON, status=400)
        return jsonify(itinerary.update_field(user.user_id, itinerary_id, data['field'], data.get('value')))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error updating itinerary day: {e}", exc_info=True)
        return error_response("Failed to update day", status=500)


@itinerary_bp.route('/<itinerary_id>', methods=['DELETE'])
@require_user
def delete_day(itinerary_id: str, user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        itinerary.delete_day(user.user_id, itinerary_id)
        return jsonify({"success": True})
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error deleting itinerary day: {e}", exc_info=True)
        return error_response("Failed to delete day", status=500)


@itinerary_bp.route('/<itinerary_id>/toggle-booking', methods=['POST'])
@require_user
def toggle_booking(itinerary_id: str, user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request, required=False)
        return jsonify(itinerary.toggle_booking(user.user_id, itinerary_id, data.get('field', '')))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error toggling booking: {e}", exc_info=True)
        return error_response("Failed to update booking", status=500)


@itinerary_bp.route('/<itinerary_id>/booking-link', methods=['GET'])
@require_user
def booking_link(itinerary_id: str, user: UserContext) -> ResponseOrTuple:
    try:
        return jsonify(itinerary.booking_link(user, itinerary_id, request.args.get('kind', 'destination')))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error resolving booking link: {e}", exc_info=True)
        return error_response("Failed to load booking link", status=500)


@itinerary_bp.route('/reorder', methods=['POST'])
@require_user
def reorder_days(user: UserContext) -> ResponseOrTuple:
    """
    ドラッグ＆ドロップの並べ替え（{"source": i, "destination": j}）
    Drag-and-drop reorder, body {"source": i, "destination": j}.
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request, required=False)
        source, destination = data.get('source'), data.get('destination')
        # bool は int のサブクラスなので除外する / bool is an int subclass
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in (source, destination)):
            return error_response("source and destination must be integers", status=400)
        updates = reorder.apply_reorder(user.user_id, source, destination)
        return jsonify({"updated": updates, "days": itinerary.list_days(user.user_id)})
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error reordering itinerary: {e}", exc_info=True)
        return error_response("Failed to reorder itinerary", status=500)


@itinerary_bp.route('/import', methods=['POST'])
@require_user
def import_days(user: UserContext) -> ResponseOrTuple:
    """
    抽出済みの日程（days）またはプランナーの回答テキスト（text）を取り込む
    Import extracted days, or planner chat text under "text".
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response(INVALID_REQUEST, status=403)
        data = read_json_object(request)

        if data.get('text'):
            days = matcher.parse_chat_itinerary(data['text'])
        else:
            try:
                days = [ExtractedDay(**day).model_dump() for day in data.get('days') or []]
            except (ValidationError, TypeError) as e:
                message = first_error(e) if isinstance(e, ValidationError) else INVALID_REQUEST
                return error_response(message, status=400)
        if not days:
            return error_response("No itinerary days to import", status=400)

        return jsonify(matcher.import_days(user.user_id, days))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error importing itinerary: {e}", exc_info=True)
        return error_response("Failed to import itinerary", status=500)


@itinerary_bp.route('/summary', methods=['GET'])
@require_user
def summary(user: UserContext) -> ResponseOrTuple:
    try:
        return jsonify(itinerary.summary(user.user_id))
    except Exception as e:
        logger.error(f"Error building summary: {e}", exc_info=True)
        return error_response("Failed to load summary", status=500)
