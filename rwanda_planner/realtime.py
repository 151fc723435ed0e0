"""
プロセス内のリアルタイムイベント配信（購読・解除が明示的なチャンネル）。
In-process realtime event bus with explicit subscribe / unsubscribe.

購読者は変更通知を受け取ったら自分でデータを再取得します。
Subscribers are expected to refetch on notification; events carry the new row.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

from rwanda_planner import redis_client

logger = logging.getLogger(__name__)

Subscriber = Callable[[Dict[str, Any]], None]


class Channel:
    """名前付きチャンネル / A named channel holding its subscribers."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        購読を登録し、解除用の関数を返す
        Register a subscriber and return its unsubscribe function.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Dict[str, Any]) -> int:
        """
        全購読者へイベントを配信し、配信できた数を返す
        Deliver an event to every subscriber; returns the number delivered.

        購読者の例外はログに残し、残りの購読者への配信は続けます。
        A failing subscriber is logged and does not stop the fan-out.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for callback in subscribers:
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                logger.error("Subscriber on %s failed: %s", self.name, e, exc_info=True)
        return delivered


_channels: Dict[str, Channel] = {}
_channels_guard = threading.Lock()


def get_channel(name: str) -> Channel:
    with _channels_guard:
        channel = _channels.get(name)
        if channel is None:
            channel = Channel(name)
            _channels[name] = channel
        return channel


def subscribe(name: str, callback: Subscriber) -> Callable[[], None]:
    return get_channel(name).subscribe(callback)


def publish(name: str, event_type: str, record: Dict[str, Any]) -> int:
    """
    イベントをプロセス内とRedisの両方へ配信する
    Publish an insert/update event locally and to Redis for other workers.
    """
    event = {"type": event_type, "channel": name, "record": record}
    redis_client.publish(name, event)
    with _channels_guard:
        channel = _channels.get(name)
    if channel is None:
        return 0
    return channel.publish(event)


def itinerary_channel(user_id: str) -> str:
    return f"itinerary:{user_id}"


def conversation_channel(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"
