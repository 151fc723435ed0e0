"""
APIエラーとエラーレスポンスのヘルパー。
API error type and error response helper.
"""

from typing import Any, Dict, Optional, Tuple, Union

from flask import Response, jsonify

ResponseOrTuple = Union[Response, Tuple[Response, int]]


class ApiError(Exception):
    """
    ユーザーに表示できるエラー（メッセージとHTTPステータス）
    User-facing error carrying a message and an HTTP status.

    `extra` はレスポンスJSONへそのまま追加されます（例: 支払い案内）。
    `extra` is merged into the JSON body (e.g. payment details on a 402).
    """

    def __init__(self, message: str, status: int = 400, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.extra = extra or {}


def error_response(message: str, status: int = 400, extra: Optional[Dict[str, Any]] = None) -> ResponseOrTuple:
    """エラーレスポンスを返すヘルパー関数 / Build a JSON error response."""
    body: Dict[str, Any] = {"error": message}
    if extra:
        body.update(extra)
    return jsonify(body), status


def api_error_response(err: ApiError) -> ResponseOrTuple:
    return error_response(err.message, status=err.status, extra=err.extra)


INVALID_JSON = "Request body must be JSON"


def read_json_object(req, required: bool = True) -> Dict[str, Any]:
    """
    リクエストボディをJSONオブジェクトとして読み取る。
    Read the request body as a JSON object; lists and scalars are rejected.

    required=False の場合、ボディなしは空の辞書として扱います。
    With required=False a missing body is treated as an empty object.
    """
    data = req.get_json(silent=True)
    if data is None and not required:
        return {}
    if not isinstance(data, dict):
        raise ApiError(INVALID_JSON, status=400)
    return data
