"""
利用者とスタッフ間のメッセージ（会話とメッセージ）。
Traveler/staff messaging: conversations and their messages.

新しいメッセージは `conversation:<id>` チャンネルへ配信されます。
New messages are published on the `conversation:<id>` channel.
"""

import datetime
import logging
from typing import Any, Dict, List, Optional

from rwanda_planner import audit, realtime
from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import Conversation, Message

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "General Inquiry"
MAX_MESSAGE_CHARS = 2000


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _clean_message(content: Optional[str]) -> str:
    text = content.strip() if isinstance(content, str) else ""
    if not text:
        raise ApiError("Message cannot be empty", status=400)
    if len(text) > MAX_MESSAGE_CHARS:
        raise ApiError(f"Message must be less than {MAX_MESSAGE_CHARS} characters", status=400)
    return text


def _add_message(db, conversation: Conversation, sender_id: str, sender_type: str, text: str) -> Message:
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        sender_type=sender_type,
        content=text,
        read=False,
    )
    db.add(message)
    conversation.updated_at = _now()
    db.flush()
    return message


def start_conversation(user_id: str, subject: Optional[str] = None, message: Optional[str] = None) -> Dict[str, Any]:
    """
    会話を作成し、最初のメッセージがあれば同じトランザクションで保存する
    Create a conversation and, when given, its first message in one transaction.

    メッセージが不正な場合は会話も作成されません。
    An invalid first message leaves no conversation behind.
    """
    text = _clean_message(message) if message else None

    db = SessionLocal()
    try:
        conversation = Conversation(
            user_id=user_id,
            subject=(subject.strip()[:200] if isinstance(subject, str) else "") or DEFAULT_SUBJECT,
            updated_at=_now(),
        )
        db.add(conversation)
        db.flush()
        first = _add_message(db, conversation, user_id, "user", text) if text else None
        db.commit()
        result = conversation.to_dict()
        record = first.to_dict() if first is not None else None
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    if record is not None:
        realtime.publish(realtime.conversation_channel(result["id"]), "INSERT", record)
    return result


def list_conversations(user_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    """
    会話一覧（更新の新しい順）。user_id 省略時は全件（スタッフ用）
    Conversations, latest activity first; all users when `user_id` is None (staff view).
    """
    db = SessionLocal()
    try:
        query = db.query(Conversation)
        if user_id is not None:
            query = query.filter(Conversation.user_id == user_id)
        rows = query.order_by(Conversation.updated_at.desc()).limit(limit).all()
        return [row.to_dict() for row in rows]
    finally:
        db.close()


def _owned_conversation(db, conversation_id: str, user_id: Optional[str]) -> Conversation:
    query = db.query(Conversation).filter(Conversation.id == conversation_id)
    if user_id is not None:
        query = query.filter(Conversation.user_id == user_id)
    conversation = query.first()
    if conversation is None:
        raise ApiError("Conversation not found", status=404)
    return conversation


def list_messages(conversation_id: str, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    db = SessionLocal()
    try:
        _owned_conversation(db, conversation_id, user_id)
        rows = (
            db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
            .all()
        )
        return [row.to_dict() for row in rows]
    finally:
        db.close()


def send_message(
    conversation_id: str,
    sender_id: str,
    content: str,
    sender_type: str = "user",
    owner_id: Optional[str] = None,
    audit_staff_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    メッセージを追加し、会話の更新日時を進める
    Add a message and bump the conversation's `updated_at`.

    `owner_id` を指定すると、その利用者の会話であることを確認します。
    When `owner_id` is given the conversation must belong to that user.
    `audit_staff_id` があれば監査ログも同じトランザクションで記録します。
    With `audit_staff_id` the audit row is written in the same transaction.
    """
    text = _clean_message(content)

    db = SessionLocal()
    try:
        conversation = _owned_conversation(db, conversation_id, owner_id)
        message = _add_message(db, conversation, sender_id, sender_type, text)
        if audit_staff_id:
            audit.record(
                db, audit_staff_id, "send_message", "message", message.id,
                {"conversation_id": conversation_id},
            )
        db.commit()
        record = message.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    realtime.publish(realtime.conversation_channel(conversation_id), "INSERT", record)
    return record


def mark_read(conversation_id: str) -> int:
    """利用者からのメッセージを既読にする / Mark the traveler's messages as read."""
    db = SessionLocal()
    try:
        updated = (
            db.query(Message)
            .filter(Message.conversation_id == conversation_id, Message.sender_type == "user")
            .update({Message.read: True}, synchronize_session=False)
        )
        db.commit()
        return updated
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
