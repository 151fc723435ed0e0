"""
Redisアクセスと簡易フォールバック（インメモリ）の管理。
Redis access and a lightweight in-memory fallback.
"""

import os
import json
import redis
import logging
import time
import threading
from typing import Any, Dict, List, Optional, Tuple

from rwanda_planner.constants import _env_bool, _env_float, _env_int

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

REDIS_QUEUE_TTL_SECONDS = _env_int("REDIS_QUEUE_TTL_SECONDS", 86400 * 30)
REDIS_SOCKET_TIMEOUT_SECONDS = _env_float("REDIS_SOCKET_TIMEOUT_SECONDS", 2.0)
REDIS_CONNECT_TIMEOUT_SECONDS = _env_float("REDIS_CONNECT_TIMEOUT_SECONDS", 2.0)
REDIS_HEALTH_CHECK_INTERVAL = _env_int("REDIS_HEALTH_CHECK_INTERVAL", 30)
REDIS_RECONNECT_RETRIES = _env_int("REDIS_RECONNECT_RETRIES", 3)
REDIS_RECONNECT_INITIAL_DELAY_SECONDS = _env_float("REDIS_RECONNECT_INITIAL_DELAY_SECONDS", 0.5)
REDIS_RECONNECT_MAX_DELAY_SECONDS = _env_float("REDIS_RECONNECT_MAX_DELAY_SECONDS", 5.0)
REDIS_RECONNECT_MIN_INTERVAL_SECONDS = _env_float("REDIS_RECONNECT_MIN_INTERVAL_SECONDS", 2.0)
REDIS_ALLOW_FALLBACK = _env_bool("REDIS_ALLOW_FALLBACK", True)

# Redisクライアントの状態管理
# Redis client state tracking
redis_client: Optional[Any] = None
_redis_lock = threading.Lock()
_last_health_check = 0.0
_last_reconnect_attempt = 0.0

# Redisが使えない場合の簡易フォールバック（単一プロセス限定）
# In-memory fallback when Redis is unavailable (single-process only)
_memory_store: Dict[str, Tuple[str, Optional[float]]] = {}


def should_use_fallback() -> bool:
    return REDIS_ALLOW_FALLBACK


def _ping_if_available(client: Any) -> None:
    if hasattr(client, "ping") and callable(getattr(client, "ping")):
        client.ping()


def _create_redis_client() -> Optional[Any]:
    try:
        client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_CONNECT_TIMEOUT_SECONDS,
            retry_on_timeout=True,
            health_check_interval=REDIS_HEALTH_CHECK_INTERVAL,
        )
        _ping_if_available(client)
        return client
    except Exception as e:
        logger.error("Failed to connect to Redis: %s", e)
        return None


def _connect_with_retries() -> Optional[Any]:
    retries = max(1, REDIS_RECONNECT_RETRIES)
    delay = max(0.0, REDIS_RECONNECT_INITIAL_DELAY_SECONDS)

    for attempt in range(1, retries + 1):
        client = _create_redis_client()
        if client is not None:
            return client
        if attempt < retries:
            sleep_for = min(delay, REDIS_RECONNECT_MAX_DELAY_SECONDS)
            if sleep_for > 0:
                time.sleep(sleep_for)
            delay = min(max(delay * 2, 0.1), REDIS_RECONNECT_MAX_DELAY_SECONDS)
    return None


def _health_check_due(now: float) -> bool:
    if REDIS_HEALTH_CHECK_INTERVAL <= 0:
        return False
    return now - _last_health_check >= REDIS_HEALTH_CHECK_INTERVAL


def _mark_unhealthy(reason: str, err: Optional[Exception] = None) -> None:
    global redis_client, _last_health_check
    if err is not None:
        logger.error("Redis %s failed: %s", reason, err, exc_info=True)
    else:
        logger.error("Redis %s failed", reason)
    with _redis_lock:
        redis_client = None
        _last_health_check = 0.0


def get_redis_client() -> Optional[Any]:
    """
    接続済みのRedisクライアントを返す（必要なら再接続）
    Return a connected Redis client, reconnecting when needed.

    再接続は最小間隔で間引き、失敗時は None を返します。
    Reconnects are throttled; returns None when Redis is unavailable.
    """
    global redis_client, _last_health_check, _last_reconnect_attempt
    now = time.time()

    with _redis_lock:
        client = redis_client
        if client is not None:
            if _health_check_due(now):
                _last_health_check = now
                try:
                    _ping_if_available(client)
                except Exception as e:
                    redis_client = None
                    client = None
                    logger.warning("Redis health check failed: %s", e)

        if client is not None:
            return client

        if now - _last_reconnect_attempt < REDIS_RECONNECT_MIN_INTERVAL_SECONDS:
            return None
        _last_reconnect_attempt = now

        client = _connect_with_retries()
        if client is not None:
            redis_client = client
            _last_health_check = now
        return client


def _memory_set(key: str, value: str, ttl: Optional[int]) -> None:
    expires_at = time.time() + ttl if ttl else None
    _memory_store[key] = (value, expires_at)


def _memory_get(key: str) -> Optional[str]:
    item = _memory_store.get(key)
    if not item:
        return None
    value, expires_at = item
    if expires_at and time.time() > expires_at:
        _memory_store.pop(key, None)
        return None
    return value


def _memory_delete(*keys: str) -> None:
    for key in keys:
        _memory_store.pop(key, None)


def notification_queue_key(user_id: str) -> str:
    """
    ユーザーの通知キュー用Redisキーを生成する
    Build the Redis key holding a user's notification queue.

    例: notifications:abc-123
    """
    return f"notifications:{user_id}"


def _get_value(key: str) -> Optional[str]:
    try:
        client = get_redis_client()
        if client:
            return client.get(key)
        if should_use_fallback():
            logger.warning("Redis client is not available; using in-memory fallback.")
            return _memory_get(key)
        return None
    except Exception as e:
        _mark_unhealthy("get", e)
        if should_use_fallback():
            return _memory_get(key)
        return None


def _set_with_ttl(key: str, value: str, ttl: int) -> None:
    """
    TTL（有効期限）付きで値を設定するヘルパー関数
    Helper to set a value with TTL.
    """
    client = get_redis_client()
    if not client:
        if should_use_fallback():
            _memory_set(key, value, ttl)
        return
    try:
        if ttl > 0:
            client.setex(key, ttl, value)
        else:
            client.set(key, value)
    except Exception as e:
        _mark_unhealthy("set", e)
        if should_use_fallback():
            _memory_set(key, value, ttl)


def get_notification_queue(user_id: str) -> List[Dict[str, Any]]:
    """
    ユーザーの通知キューを取得する
    Fetch the scheduled notification queue for a user.
    """
    data = _get_value(notification_queue_key(user_id))
    if not data:
        return []
    try:
        items = json.loads(data)
    except json.JSONDecodeError:
        logger.warning("Discarding malformed notification queue for %s", user_id)
        return []
    return items if isinstance(items, list) else []


def save_notification_queue(user_id: str, items: List[Dict[str, Any]]) -> None:
    """
    ユーザーの通知キューを保存する
    Save the scheduled notification queue for a user.
    """
    key = notification_queue_key(user_id)
    try:
        _set_with_ttl(key, json.dumps(items, ensure_ascii=False), REDIS_QUEUE_TTL_SECONDS)
    except Exception as e:
        logger.error(f"Error saving notification queue for {user_id}: {e}")


def clear_notification_queue(user_id: str) -> None:
    """ユーザーの通知キューを削除する / Delete a user's notification queue."""
    key = notification_queue_key(user_id)
    try:
        client = get_redis_client()
        if client:
            client.delete(key)
        elif should_use_fallback():
            _memory_delete(key)
    except Exception as e:
        _mark_unhealthy("delete", e)
        if should_use_fallback():
            _memory_delete(key)


def publish(channel: str, payload: Dict[str, Any]) -> None:
    """
    他プロセス向けにイベントをRedisへ配信する（Redis未接続時は何もしない）
    Publish an event to Redis for other worker processes; no-op without Redis.
    """
    client = get_redis_client()
    if not client or not hasattr(client, "publish"):
        return
    try:
        client.publish(channel, json.dumps(payload, ensure_ascii=False, default=str))
    except Exception as e:
        _mark_unhealthy("publish", e)


# 初期接続（失敗時はフォールバック）
# Initial connection (fallback on failure)
if redis_client is None:
    redis_client = _create_redis_client()
