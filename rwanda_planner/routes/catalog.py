from flask import Blueprint, jsonify, request
import logging

from rwanda_planner import catalog
from rwanda_planner.errors import ResponseOrTuple, error_response

logger = logging.getLogger(__name__)

# Blueprintの定義: カタログ参照（認証不要）
# Blueprint for public catalog reads
catalog_bp = Blueprint('catalog', __name__, url_prefix='/api')


@catalog_bp.route('/destinations', methods=['GET'])
def destinations() -> ResponseOrTuple:
    try:
        return jsonify(catalog.list_destinations())
    except Exception as e:
        logger.error(f"Error listing destinations: {e}", exc_info=True)
        return error_response("Failed to load destinations", status=500)


@catalog_bp.route('/hotels', methods=['GET'])
def hotels() -> ResponseOrTuple:
    try:
        return jsonify(catalog.list_hotels(request.args.get('destination_id')))
    except Exception as e:
        logger.error(f"Error listing hotels: {e}", exc_info=True)
        return error_response("Failed to load hotels", status=500)


@catalog_bp.route('/activities', methods=['GET'])
def activities() -> ResponseOrTuple:
    try:
        return jsonify(catalog.list_activities(request.args.get('destination_id')))
    except Exception as e:
        logger.error(f"Error listing activities: {e}", exc_info=True)
        return error_response("Failed to load activities", status=500)


@catalog_bp.route('/cars', methods=['GET'])
def cars() -> ResponseOrTuple:
    try:
        return jsonify(catalog.list_cars())
    except Exception as e:
        logger.error(f"Error listing cars: {e}", exc_info=True)
        return error_response("Failed to load cars", status=500)


@catalog_bp.route('/tour-companies', methods=['GET'])
def tour_companies() -> ResponseOrTuple:
    try:
        return jsonify(catalog.list_tour_companies())
    except Exception as e:
        logger.error(f"Error listing tour companies: {e}", exc_info=True)
        return error_response("Failed to load tour companies", status=500)


@catalog_bp.route('/destinations/<destination_id>/suggestions', methods=['GET'])
def suggestions(destination_id: str) -> ResponseOrTuple:
    """
    目的地ごとのおすすめ（ホテル・アクティビティ・次の目的地）
    Smart suggestions for a destination.
    """
    try:
        if catalog.get_destination(destination_id) is None:
            return error_response("Destination not found", status=404)
        return jsonify(catalog.suggestions_for(destination_id))
    except Exception as e:
        logger.error(f"Error building suggestions: {e}", exc_info=True)
        return error_response("Failed to load suggestions", status=500)
