"""
アプリ全体で共有する設定値・定数。
Shared configuration and constants read from the environment.
"""

import os
from typing import List


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# LLMゲートウェイ設定
# LLM gateway configuration
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://ai.gateway.lovable.dev/v1")
LLM_MODEL_NAME = os.getenv("LLM_MODEL_NAME", "google/gemini-2.5-flash")
LLM_GUARD_MODEL_NAME = os.getenv("LLM_GUARD_MODEL_NAME", LLM_MODEL_NAME)
GUARD_LLM_ENABLED = _env_bool("GUARD_LLM_ENABLED", False)
EXTRACTION_TEMPERATURE = _env_float("EXTRACTION_TEMPERATURE", 0.1)
MAX_EXTRACTED_TEXT_CHARS = _env_int("MAX_EXTRACTED_TEXT_CHARS", 10000)

# 入力制限
# Input limits
MAX_PLANNER_MESSAGE_CHARS = 5000
MAX_PLANNER_MESSAGES = 50
MAX_NOTES_CHARS = 500
MAX_SOS_DESCRIPTION_CHARS = 1000

# レート制限（回数 / 秒）
# Rate limits (requests / window seconds)
PLANNER_RATE_LIMIT = _env_int("PLANNER_RATE_LIMIT", 20)
PLANNER_RATE_WINDOW_SECONDS = _env_int("PLANNER_RATE_WINDOW_SECONDS", 60)
EXTRACT_RATE_LIMIT = _env_int("EXTRACT_RATE_LIMIT", 10)
EXTRACT_RATE_WINDOW_SECONDS = _env_int("EXTRACT_RATE_WINDOW_SECONDS", 3600)
SOS_RATE_LIMIT = _env_int("SOS_RATE_LIMIT", 3)
SOS_RATE_WINDOW_SECONDS = _env_int("SOS_RATE_WINDOW_SECONDS", 3600)

# 認証サービス
# Hosted auth service
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
AUTH_TIMEOUT_SECONDS = _env_float("AUTH_TIMEOUT_SECONDS", 5.0)

# メール送信（Resend）
# Transactional email (Resend)
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "A Click to Rwanda <onboarding@resend.dev>")
RESEND_TIMEOUT_SECONDS = _env_float("RESEND_TIMEOUT_SECONDS", 10.0)
EMERGENCY_EMAIL = os.getenv("EMERGENCY_EMAIL", "emergency@clicktorwanda.com")
VERIFIED_EMAIL = os.getenv("VERIFIED_EMAIL", "")

# サブスクリプション
# Subscription / paywall
ADMIN_EMAILS = _env_list("ADMIN_EMAILS", os.getenv("ADMIN_EMAIL", ""))
PAYPAL_PAYMENT_URL = os.getenv("PAYPAL_PAYMENT_URL", "https://www.paypal.com/ncp/payment/YD6M888AMR5XW")
PRICING = {
    "rwandan": 0,
    "east_african": 10,
    "foreigner": 50,
}
DEFAULT_PRICE = 50
DEFAULT_NATIONALITY = "foreigner"

TIMEZONE = os.getenv("APP_TIMEZONE", "Africa/Kigali")
