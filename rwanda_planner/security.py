"""
オリジン検証（CSRF対策）とレスポンスのセキュリティヘッダー。
Origin checks against CSRF and security headers for API responses.
"""

import logging
import os
from typing import Any, Dict, List
from urllib.parse import urlparse

from flask import Request, Response

from rwanda_planner.constants import _env_bool

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_ORIGINS = ("https://aclicktorwanda.com", "http://localhost:8080")
STATE_CHANGING_METHODS = ("POST", "PUT", "PATCH", "DELETE")
EVENT_STREAM_MIMETYPE = "text/event-stream"

# JSON APIのためリソース読み込みは一切許可しない
# JSON-only API: nothing may be loaded or framed
DEFAULT_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"


def get_allowed_origins() -> List[str]:
    """
    許可されたオリジンのリストを取得する

    環境変数 `ALLOWED_ORIGINS`（なければ `FRONTEND_ORIGIN`）と既定値をマージします。
    Merges `ALLOWED_ORIGINS` (or `FRONTEND_ORIGIN`) with the built-in origins.
    """
    frontend_origin = os.getenv("FRONTEND_ORIGIN", DEFAULT_ALLOWED_ORIGINS[0])
    raw_origins = os.getenv("ALLOWED_ORIGINS", frontend_origin).split(",")
    allowed = [origin.strip().rstrip("/") for origin in raw_origins if origin.strip()]
    for origin in DEFAULT_ALLOWED_ORIGINS:
        if origin not in allowed:
            allowed.append(origin)
    return allowed


def cors_resources() -> Dict[str, Any]:
    """flask-cors に渡すリソース設定 / Resource map handed to flask-cors."""
    origins = get_allowed_origins()
    return {
        r"/api/*": {"origins": origins},
        r"/functions/*": {"origins": origins},
    }


def request_origin(request: Request) -> str:
    """
    リクエスト元のオリジンを返す（Origin、なければRefererから）
    Origin of the request, taken from `Origin` or derived from `Referer`.
    """
    origin = request.headers.get("Origin")
    if origin:
        return origin.rstrip("/")
    referer = request.headers.get("Referer")
    if referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            return f"{parsed.scheme}://{parsed.netloc}"
    return ""


def is_csrf_valid(request: Request) -> bool:
    """
    CSRF（クロスサイトリクエストフォージェリ）検証を行う

    1. 安全なメソッド（GET, HEAD, OPTIONS）はスルー
    2. Origin（なければReferer）が許可リストにあるか確認
    3. どちらもない場合は `ALLOW_MISSING_ORIGIN` に従う
    """
    if request.method not in STATE_CHANGING_METHODS:
        return True

    origin = request_origin(request)
    if not origin:
        if request.headers.get("Origin") or request.headers.get("Referer"):
            logger.warning("Rejected %s %s with an unparseable referer", request.method, request.path)
            return False
        return _env_bool("ALLOW_MISSING_ORIGIN", False)

    if origin in get_allowed_origins():
        return True
    logger.warning("Rejected %s %s from origin %s", request.method, request.path, origin)
    return False


def apply_security_headers(response: Response) -> Response:
    """
    レスポンスに各種セキュリティヘッダーを付与する

    利用者ごとの旅程や支払い状況を返すため、JSONはキャッシュさせません。
    SSE（AIプランナー）はプロキシのバッファリングも無効にします。
    Per-user JSON is never cached; event streams also disable proxy buffering.
    """
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cross-Origin-Resource-Policy", "same-site")
    response.headers.setdefault("Content-Security-Policy", os.getenv("CONTENT_SECURITY_POLICY", DEFAULT_CSP))

    if response.mimetype == EVENT_STREAM_MIMETYPE:
        response.headers.setdefault("Cache-Control", "no-cache")
        response.headers.setdefault("X-Accel-Buffering", "no")
    else:
        response.headers.setdefault("Cache-Control", "no-store")

    if _env_bool("ENABLE_HSTS", True):
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")

    return response
