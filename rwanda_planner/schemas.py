"""
リクエスト検証用のpydanticスキーマ。
Pydantic request schemas shared by several endpoints.
"""

import datetime
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from rwanda_planner import constants

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def first_error(err: ValidationError) -> str:
    """検証エラーから最初のメッセージを取り出す / First readable message of a validation error."""
    errors = err.errors()
    if not errors:
        return "Invalid request"
    message = str(errors[0].get("msg", "Invalid request"))
    return message.removeprefix("Value error, ")


class ReviewIn(BaseModel):
    destination_id: str = Field(description="目的地ID", min_length=1)
    rating: int = Field(description="評価（1〜5）", ge=1, le=5)
    comment: str = Field(description="コメント")
    display_name: Optional[str] = Field(description="表示名", default=None, max_length=100)

    @field_validator("comment")
    @classmethod
    def validate_comment(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 10:
            raise ValueError("Review must be at least 10 characters")
        if len(value) > 1000:
            raise ValueError("Review must be less than 1000 characters")
        return value


def _clean_notes(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if len(value) > constants.MAX_NOTES_CHARS:
        raise ValueError(f"Notes must be less than {constants.MAX_NOTES_CHARS} characters")
    return value


class ItineraryNotes(BaseModel):
    notes: Optional[str] = Field(description="メモ", default=None)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_notes(value)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(max_length=constants.MAX_PLANNER_MESSAGE_CHARS)


class PlannerRequest(BaseModel):
    messages: List[ChatMessage] = Field(max_length=constants.MAX_PLANNER_MESSAGES)
    destinations: Optional[List[Dict[str, Any]]] = None
    hotels: Optional[List[Dict[str, Any]]] = None
    activities: Optional[List[Dict[str, Any]]] = None


class PackageEmailRequest(BaseModel):
    email: str = Field(description="宛先メールアドレス")
    userName: str = Field(min_length=1, max_length=100)
    packageTitle: str = Field(min_length=1, max_length=200)
    packageContent: str = Field(min_length=1, max_length=50000)
    packageType: Literal["ai-planner", "itinerary"]

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email address")
        return value


class ExtractedDay(BaseModel):
    """文書・チャットから抽出された1日分 / One day extracted from a document or chat."""
    date: Optional[str] = None
    destination: str = Field(min_length=1)
    hotel: Optional[str] = None
    activity: Optional[str] = None
    notes: Optional[str] = None


class NewItineraryDay(BaseModel):
    date: datetime.date
    destination_id: str = Field(min_length=1)
    day_type: Literal["regular", "transfer"] = "regular"
    origin_id: Optional[str] = None
    hotel_id: Optional[str] = None
    activity_id: Optional[str] = None
    car_id: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_notes(value)
