"""
Resend APIによるメール送信。
Transactional email through the Resend HTTP API.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import requests
from flask import render_template

from rwanda_planner import constants

logger = logging.getLogger(__name__)


class MailerError(Exception):
    """メール送信の失敗 / Raised when the email provider rejects or cannot be reached."""


def is_test_mode(from_email: Optional[str] = None) -> bool:
    """
    送信元がResendのテスト用ドメインならテストモード
    Test mode when sending from Resend's shared onboarding domain.
    """
    return "resend.dev" in (from_email or constants.RESEND_FROM_EMAIL)


def resolve_recipient(requested: str, from_email: Optional[str] = None) -> str:
    """
    実際の宛先を決める（テストモードでは検証済みアドレスへ送る）
    Pick the real recipient; test mode redirects to the verified/admin address.
    """
    if not is_test_mode(from_email):
        return requested
    for candidate in [constants.VERIFIED_EMAIL, *constants.ADMIN_EMAILS]:
        if candidate and "@" in candidate:
            if candidate != requested:
                logger.warning("Resend test mode: sending to %s instead of %s", candidate, requested)
            return candidate
    return requested


def render(template: str, **context: Any) -> str:
    return render_template(f"emails/{template}", **context)


def send_email(to: List[str], subject: str, html: str, from_email: Optional[str] = None) -> Dict[str, Any]:
    """
    メールを送信し、Resendの応答を返す
    Send an email and return the provider response.
    """
    api_key = os.getenv("RESEND_API_KEY")
    if not api_key:
        raise MailerError("RESEND_API_KEY is not configured")
    recipients = [address for address in to if address]
    if not recipients:
        raise MailerError("No recipient email configured.")

    try:
        resp = requests.post(
            constants.RESEND_API_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json={
                "from": from_email or constants.RESEND_FROM_EMAIL,
                "to": recipients,
                "subject": subject,
                "html": html,
            },
            timeout=constants.RESEND_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise MailerError(f"Email provider unreachable: {e}") from e

    try:
        data = resp.json()
    except ValueError:
        data = {}
    if not resp.ok:
        raise MailerError(data.get("message") or f"Failed to send email ({resp.status_code})")

    logger.info("Email sent to %s: %s", ", ".join(recipients), subject)
    return data


def send_package_email(
    email: str,
    user_name: str,
    package_title: str,
    package_content: str,
    package_type: str,
    generated_on: str,
) -> Dict[str, Any]:
    """旅行パッケージ／旅程のコピーを送る / Email a copy of a saved package or itinerary."""
    label = "Tour Package" if package_type == "ai-planner" else "Itinerary"
    html = render(
        "package.html",
        user_name=user_name,
        package_title=package_title,
        package_lines=package_content.splitlines(),
        package_kind="tour package" if package_type == "ai-planner" else "travel itinerary",
        generated_on=generated_on,
    )
    return send_email([resolve_recipient(email)], f"Your Rwanda {label}: {package_title}", html)
