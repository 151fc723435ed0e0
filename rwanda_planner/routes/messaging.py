from flask import Blueprint, jsonify, request
import logging

from rwanda_planner import messaging, security
from rwanda_planner.auth import UserContext, require_user
from rwanda_planner.errors import (
    ApiError,
    ResponseOrTuple,
    api_error_response,
    error_response,
    read_json_object,
)

logger = logging.getLogger(__name__)

# Blueprintの定義: 利用者とスタッフのメッセージ
# Blueprint for traveler-to-staff conversations
messaging_bp = Blueprint('messaging', __name__, url_prefix='/api/conversations')


@messaging_bp.route('', methods=['GET'])
@require_user
def list_conversations(user: UserContext) -> ResponseOrTuple:
    try:
        return jsonify(messaging.list_conversations(user.user_id))
    except Exception as e:
        logger.error(f"Error listing conversations: {e}", exc_info=True)
        return error_response("Failed to load conversations", status=500)


@messaging_bp.route('', methods=['POST'])
@require_user
def create_conversation(user: UserContext) -> ResponseOrTuple:
    """
    会話を作成する。最初のメッセージ（message）があれば同時に送信する
    Start a conversation, optionally sending a first `message`.
    """
    try:
        if not security.is_csrf_valid(request):
            return error_response("Invalid request", status=403)
        data = read_json_object(request, required=False)
        conversation = messaging.start_conversation(user.user_id, data.get('subject'), data.get('message'))
        return jsonify(conversation), 201
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error creating conversation: {e}", exc_info=True)
        return error_response("Failed to create conversation", status=500)


@messaging_bp.route('/<conversation_id>/messages', methods=['GET'])
@require_user
def list_messages(conversation_id: str, user: UserContext) -> ResponseOrTuple:
    try:
        return jsonify(messaging.list_messages(conversation_id, user.user_id))
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error listing messages: {e}", exc_info=True)
        return error_response("Failed to load messages", status=500)


@messaging_bp.route('/<conversation_id>/messages', methods=['POST'])
@require_user
def send_message(conversation_id: str, user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response("Invalid request", status=403)
        data = read_json_object(request, required=False)
        message = messaging.send_message(
            conversation_id,
            user.user_id,
            data.get('content', ''),
            owner_id=user.user_id,
        )
        return jsonify(message), 201
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error sending message: {e}", exc_info=True)
        return error_response("Failed to send message", status=500)
