"""
Bearerトークンからユーザーコンテキストを解決する認証ユーティリティ。
Resolve an explicit user context from a bearer token.

認証そのものはホスト型の認証サービスが担い、ここではトークンを検証して
ビュー関数へ明示的に `user` 引数として渡します。
Authentication itself is owned by the hosted auth service; this module only
verifies the token and hands the resulting context to each view explicitly.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests
from flask import request

from rwanda_planner import constants
from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import error_response
from rwanda_planner.models import UserRole

logger = logging.getLogger(__name__)

STAFF_ROLES = ("staff", "admin")


@dataclass
class UserContext:
    """
    リクエスト単位のユーザー情報（ログインからログアウトまで有効）
    Per-request user identity, valid from login to logout.
    """
    user_id: str
    email: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    access_token: str = ""

    @property
    def display_name(self) -> str:
        name = self.metadata.get("full_name") or self.metadata.get("name")
        if name:
            return str(name)
        if self.email:
            return self.email.split("@")[0]
        return "Unknown User"


def _bearer_token(header: Optional[str]) -> str:
    if not header:
        return ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def verify_access_token(token: str) -> Optional[UserContext]:
    """
    認証サービスへ問い合わせてトークンを検証する
    Verify a token against the hosted auth service's user endpoint.
    """
    if not token or not constants.SUPABASE_URL:
        return None
    try:
        resp = requests.get(
            f"{constants.SUPABASE_URL}/auth/v1/user",
            headers={
                "Authorization": f"Bearer {token}",
                "apikey": constants.SUPABASE_ANON_KEY,
            },
            timeout=constants.AUTH_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error("Auth service request failed: %s", e)
        return None
    if resp.status_code != 200:
        return None
    data = resp.json()
    user_id = data.get("id")
    if not user_id:
        return None
    return UserContext(
        user_id=str(user_id),
        email=data.get("email") or "",
        metadata=data.get("user_metadata") or {},
        access_token=token,
    )


def current_user() -> Optional[UserContext]:
    """現在のリクエストのユーザーを解決する / Resolve the user of the current request."""
    token = _bearer_token(request.headers.get("Authorization"))
    if not token:
        return None
    return verify_access_token(token)


def require_user(view: Callable) -> Callable:
    """
    認証必須のビューに `user` 引数を注入するデコレータ
    Decorator injecting `user` into views that require authentication.
    """
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        if not request.headers.get("Authorization"):
            return error_response("Authentication required", status=401)
        user = current_user()
        if user is None:
            return error_response("Invalid or expired session", status=401)
        return view(*args, user=user, **kwargs)

    return wrapper


def has_role(user_id: str, *roles: str) -> bool:
    """ユーザーが指定ロールを持つか判定する / Check whether a user holds one of the roles."""
    db = SessionLocal()
    try:
        row = (
            db.query(UserRole)
            .filter(UserRole.user_id == user_id, UserRole.role.in_(roles))
            .first()
        )
        return row is not None
    finally:
        db.close()


def is_staff(user: UserContext) -> bool:
    try:
        return has_role(user.user_id, *STAFF_ROLES)
    except Exception as e:
        logger.error("Error checking staff role: %s", e)
        return False


def is_admin(user: UserContext) -> bool:
    if user.email and user.email.lower() in {email.lower() for email in constants.ADMIN_EMAILS}:
        return True
    try:
        return has_role(user.user_id, "admin")
    except Exception as e:
        logger.error("Error checking admin role: %s", e)
        return False
