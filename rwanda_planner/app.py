"""
Flaskアプリケーションの生成。
Flask application factory.
"""

import os

from flask import Flask, jsonify
from flask_cors import CORS

from rwanda_planner import security
from rwanda_planner.routes.catalog import catalog_bp
from rwanda_planner.routes.functions import functions_bp
from rwanda_planner.routes.itinerary import itinerary_bp
from rwanda_planner.routes.messaging import messaging_bp
from rwanda_planner.routes.notifications import notifications_bp
from rwanda_planner.routes.reviews import reviews_bp


def create_app() -> Flask:
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "change-me")
    app.json.ensure_ascii = False

    # 許可したオリジンのみCORSを有効化
    # Enable CORS for the configured origins only
    CORS(
        app,
        resources=security.cors_resources(),
        allow_headers=["Authorization", "Content-Type"],
    )

    # Blueprintの登録
    app.register_blueprint(catalog_bp)
    app.register_blueprint(itinerary_bp)
    app.register_blueprint(functions_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(messaging_bp)
    app.register_blueprint(reviews_bp)

    @app.route('/api/health', methods=['GET'])
    def health():
        return jsonify({"status": "ok"})

    @app.after_request
    def add_security_headers(response):
        return security.apply_security_headers(response)

    return app
