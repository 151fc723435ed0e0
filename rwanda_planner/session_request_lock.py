"""
利用者単位の排他ロック。
User-scoped request locks.

並べ替えのような複数行の書き込みが、同じ利用者から重ねて実行されるのを防ぎます。
Redisがあれば `SET NX EX` でワーカー間のロックを取り、なければプロセス内の
ロックで代用します。
Rejects overlapping multi-row writes (such as a reorder) from the same user.
With Redis the lock is shared by every worker through `SET NX EX`; without it
an in-process lock is used instead.
"""

from contextlib import contextmanager
import logging
import threading
import uuid
from typing import Dict, Iterator

from rwanda_planner import redis_client
from rwanda_planner.constants import _env_int

logger = logging.getLogger(__name__)

# ロックの最大保持時間（処理が異常終了しても解放されるように）
# Upper bound on how long a lock is held if its owner dies
USER_LOCK_TTL_SECONDS = _env_int("USER_LOCK_TTL_SECONDS", 30)

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()

# Redisロックごとの所有トークン / owner token per Redis lock held by this process
_tokens: Dict[str, str] = {}

# Luaスクリプト: トークンが一致する場合のみ削除する
# Lua script: delete the key only while it still holds our token
# KEYS[1]: ロックキー / lock key
# ARGV[1]: 所有トークン / owner token
RELEASE_LOCK_LUA = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def user_lock_key(user_id: str, scope: str) -> str:
    """
    ロック用のキーを生成する
    Build the lock key, e.g. lock:reorder:abc-123
    """
    return f"lock:{scope}:{user_id}"


def _acquire_local(key: str) -> bool:
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
    return lock.acquire(blocking=False)


def _release_local(key: str) -> None:
    with _locks_guard:
        lock = _locks.get(key)
    if lock is None:
        return
    if lock.locked():
        try:
            lock.release()
        except RuntimeError:
            return
    with _locks_guard:
        existing = _locks.get(key)
        if existing is lock and not existing.locked():
            _locks.pop(key, None)


def acquire_user_lock(user_id: str, scope: str = "default") -> bool:
    """
    ノンブロッキングでロックを取得する（他の処理が実行中なら False）
    Try to take the lock without blocking; False while another request holds it.
    """
    if not user_id:
        return False

    key = user_lock_key(user_id, scope)
    client = redis_client.get_redis_client()
    if client is not None:
        token = uuid.uuid4().hex
        try:
            acquired = bool(client.set(key, token, nx=True, ex=USER_LOCK_TTL_SECONDS))
        except Exception as e:
            logger.warning("Redis lock for %s unavailable, using local lock: %s", key, e)
        else:
            if acquired:
                with _locks_guard:
                    _tokens[key] = token
            return acquired
    return _acquire_local(key)


def release_user_lock(user_id: str, scope: str = "default") -> None:
    """
    ロックを解放する。TTL切れ後に他者が取得したRedisロックは削除しない
    Release the lock; a Redis lock re-taken by someone else after our TTL is left alone.
    """
    if not user_id:
        return

    key = user_lock_key(user_id, scope)
    with _locks_guard:
        token = _tokens.pop(key, None)
    if token is not None:
        client = redis_client.get_redis_client()
        if client is not None:
            try:
                client.eval(RELEASE_LOCK_LUA, 1, key, token)
            except Exception as e:
                logger.warning("Failed to release Redis lock %s: %s", key, e)
    _release_local(key)


@contextmanager
def user_request_lock(user_id: str, scope: str = "default") -> Iterator[bool]:
    """
    ロックを取得し、取得できた場合のみ終了時に解放するコンテキストマネージャ
    Acquire the lock and release it on exit, only when it was acquired.
    """
    acquired = acquire_user_lock(user_id, scope)
    try:
        yield acquired
    finally:
        if acquired:
            release_user_lock(user_id, scope)
