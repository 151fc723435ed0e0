from flask import Blueprint, jsonify, request
import logging

from rwanda_planner import reviews, security
from rwanda_planner.auth import UserContext, require_user
from rwanda_planner.errors import (
    ApiError,
    ResponseOrTuple,
    api_error_response,
    error_response,
    read_json_object,
)

logger = logging.getLogger(__name__)

# Blueprintの定義: 目的地レビュー
# Blueprint for destination reviews
reviews_bp = Blueprint('reviews', __name__, url_prefix='/api/reviews')


@reviews_bp.route('', methods=['GET'])
def list_reviews() -> ResponseOrTuple:
    try:
        return jsonify(reviews.list_reviews(request.args.get('destination_id')))
    except Exception as e:
        logger.error(f"Error listing reviews: {e}", exc_info=True)
        return error_response("Failed to load reviews", status=500)


@reviews_bp.route('', methods=['POST'])
@require_user
def create_review(user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response("Invalid request", status=403)
        data = read_json_object(request)
        return jsonify(reviews.create_review(user.user_id, data, user.display_name)), 201
    except ApiError as err:
        return api_error_response(err)
    except Exception as e:
        logger.error(f"Error creating review: {e}", exc_info=True)
        return error_response("Failed to submit review", status=500)


@reviews_bp.route('/<review_id>', methods=['DELETE'])
@require_user
def delete_review(review_id: str, user: UserContext) -> ResponseOrTuple:
    try:
        if not security.is_csrf_valid(request):
            return error_response("Invalid request", status=403)
        if not reviews.delete_review(review_id, user.user_id):
            return error_response("Review not found", status=404)
        return jsonify({"success": True})
    except Exception as e:
        logger.error(f"Error deleting review: {e}", exc_info=True)
        return error_response("Failed to delete review", status=500)
