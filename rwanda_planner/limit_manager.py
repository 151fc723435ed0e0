"""
利用制限（レートリミット）を管理するモジュール。
Module for enforcing per-user rate limits.

固定ウィンドウ方式で、ユーザー・機能ごとのカウンタをRedisで管理します。
Fixed-window counters per (scope, user) are kept in Redis.
"""

import logging
import threading
import time
from typing import Dict, Optional, Tuple

from rwanda_planner import redis_client

logger = logging.getLogger(__name__)

# Luaスクリプト: カウンタを加算し、上限超過なら元に戻して -1 を返す
# Lua script: increment, roll back and return -1 when over the limit
# KEYS[1]: カウンタキー / counter key
# ARGV[1]: 上限 / limit
# ARGV[2]: 有効期限（秒） / TTL in seconds
RATE_LIMIT_LUA = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local expire_time = tonumber(ARGV[2])

local current = redis.call("incr", key)
if current == 1 then
    redis.call("expire", key, expire_time)
end

if current > limit then
    redis.call("decr", key)
    return -1
end

return current
"""

# Redisが使えない場合のプロセス内カウンタ
# In-process counters used when Redis is unavailable
# "<scope>:<user_id>" -> (ウィンドウ終了時刻 / window end, カウント / count)
_memory_counters: Dict[str, Tuple[float, int]] = {}
_memory_guard = threading.Lock()


def rate_limit_key(scope: str, user_id: str, window_seconds: int, now: Optional[float] = None) -> str:
    """
    ウィンドウ開始時刻を含むカウンタキーを生成する
    Build the counter key for the window containing `now`.

    例: rate_limit:ai-planner:user-1:28333320
    """
    now = time.time() if now is None else now
    window_index = int(now // window_seconds)
    return f"rate_limit:{scope}:{user_id}:{window_index}"


def _memory_increment(scope: str, user_id: str, limit: int, window_seconds: int, now: float) -> int:
    window_end = float((int(now // window_seconds) + 1) * window_seconds)
    counter_id = f"{scope}:{user_id}"
    with _memory_guard:
        # 終了したウィンドウのカウンタを捨てる / drop counters of finished windows
        for stale in [k for k, (end, _) in _memory_counters.items() if end <= now]:
            del _memory_counters[stale]
        _, current = _memory_counters.get(counter_id, (window_end, 0))
        if current + 1 > limit:
            return -1
        _memory_counters[counter_id] = (window_end, current + 1)
        return current + 1


def check_rate_limit(
    scope: str,
    user_id: str,
    max_requests: int,
    window_seconds: int,
    fail_open: bool = False,
) -> Tuple[bool, int, Optional[str]]:
    """
    利用制限を確認し、カウントをインクリメントする
    Check the limit for (scope, user) and increment its counter.

    戻り値 / Returns:
    - allowed: 許可されるかどうか / whether the request may proceed
    - count: 現在のカウント / current count (0 when unknown)
    - error_code: "redis_unavailable" など / e.g. "redis_unavailable"

    Redisが使えない場合、フォールバック許可時はプロセス内カウンタを使用し、
    それ以外は fail_open に従います。
    Without Redis the in-process counter is used when fallback is allowed,
    otherwise the result follows `fail_open`.
    """
    now = time.time()
    key = rate_limit_key(scope, user_id, window_seconds, now=now)
    client = redis_client.get_redis_client()
    if not client:
        if redis_client.should_use_fallback():
            result = _memory_increment(scope, user_id, max_requests, window_seconds, now)
            return (result != -1), max(result, 0), None
        logger.error("Redis client is not available. Rate limit check for %s skipped.", scope)
        return fail_open, 0, "redis_unavailable"

    try:
        result = client.eval(RATE_LIMIT_LUA, 1, key, max_requests, window_seconds)
    except Exception as e:
        logger.error(f"Error accessing Redis limit: {e}")
        return fail_open, 0, "redis_unavailable"

    if result == -1:
        return False, max_requests, None
    return True, int(result), None
