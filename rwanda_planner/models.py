"""
SQLAlchemyモデル定義。
SQLAlchemy model definitions.
"""

import datetime
import uuid
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from rwanda_planner.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class SerializableMixin:
    """
    行をJSON互換の辞書へ変換するミックスイン
    Mixin turning a row into a JSON-compatible dict.
    """

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (datetime.date, datetime.datetime)):
                value = value.isoformat()
            result[column.name] = value
        return result


class Destination(SerializableMixin, Base):
    __tablename__ = "destinations"

    id: Column = Column(String(64), primary_key=True)  # slug
    name: Column = Column(String(200), nullable=False)
    description: Column = Column(Text, nullable=False, default="")
    latitude: Column = Column(Float, nullable=True)
    longitude: Column = Column(Float, nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Hotel(SerializableMixin, Base):
    __tablename__ = "hotels"

    id: Column = Column(String(64), primary_key=True)
    name: Column = Column(String(200), nullable=False)
    destination_id: Column = Column(String(64), ForeignKey("destinations.id"), nullable=False, index=True)
    latitude: Column = Column(Float, nullable=True)
    longitude: Column = Column(Float, nullable=True)
    website: Column = Column(String(500), nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Activity(SerializableMixin, Base):
    __tablename__ = "activities"

    id: Column = Column(String(64), primary_key=True)
    name: Column = Column(String(200), nullable=False)
    destination_id: Column = Column(String(64), ForeignKey("destinations.id"), nullable=False, index=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Car(SerializableMixin, Base):
    __tablename__ = "cars"

    id: Column = Column(String(64), primary_key=True)
    name: Column = Column(String(200), nullable=False)
    destination_id: Column = Column(String(64), nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Itinerary(SerializableMixin, Base):
    """
    旅程の1日分を表すモデル
    One planned day of a user's trip.

    (user_id, date) ごとに1行を想定しているが、一意制約は設けていない。
    One row per (user_id, date) is expected but not enforced.
    """
    __tablename__ = "itineraries"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    user_id: Column = Column(String(64), index=True, nullable=False)
    date: Column = Column(Date, nullable=False)
    day_type: Column = Column(String(16), nullable=False, default="regular")  # regular | transfer
    destination_id: Column = Column(String(64), nullable=False)
    origin_id: Column = Column(String(64), nullable=True)  # 移動日の出発地 / transfer origin
    hotel_id: Column = Column(String(64), nullable=True)
    activity_id: Column = Column(String(64), nullable=True)
    car_id: Column = Column(String(64), nullable=True)

    # 予約状況
    # Booking flags
    is_booked: Column = Column(Boolean, nullable=True, default=False)
    hotel_booked: Column = Column(Boolean, nullable=True, default=False)
    activity_booked: Column = Column(Boolean, nullable=True, default=False)
    all_confirmed: Column = Column(Boolean, nullable=True, default=False)

    # 費用
    # Costs
    hotel_cost: Column = Column(Float, nullable=True)
    activity_cost: Column = Column(Float, nullable=True)
    car_cost: Column = Column(Float, nullable=True)
    transport_cost: Column = Column(Float, nullable=True)
    other_cost: Column = Column(Float, nullable=True)

    notes: Column = Column(Text, nullable=True)
    wake_time: Column = Column(String(5), nullable=True)  # HH:MM
    breakfast_time: Column = Column(String(5), nullable=True)
    lunch_time: Column = Column(String(5), nullable=True)
    dinner_time: Column = Column(String(5), nullable=True)

    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())
    updated_at: Column = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Subscription(SerializableMixin, Base):
    __tablename__ = "subscriptions"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    user_id: Column = Column(String(64), index=True, nullable=False)
    status: Column = Column(String(16), nullable=False, default="inactive")  # active | inactive
    amount: Column = Column(Float, nullable=False, default=0)
    payment_method: Column = Column(String(32), nullable=False, default="paypal")
    payment_reference: Column = Column(String(200), nullable=True)
    expires_at: Column = Column(DateTime(timezone=True), nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Profile(SerializableMixin, Base):
    __tablename__ = "profiles"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    user_id: Column = Column(String(64), unique=True, nullable=False)
    full_name: Column = Column(String(200), nullable=True)
    nationality: Column = Column(String(32), nullable=False, default="foreigner")
    avatar_url: Column = Column(String(500), nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())
    updated_at: Column = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SOSAlert(SerializableMixin, Base):
    __tablename__ = "sos_alerts"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    user_id: Column = Column(String(64), index=True, nullable=False)
    user_email: Column = Column(String(320), nullable=True)
    phone_number: Column = Column(String(32), nullable=True)
    description: Column = Column(Text, nullable=True)
    latitude: Column = Column(Float, nullable=True)
    longitude: Column = Column(Float, nullable=True)
    has_voice_recording: Column = Column(Boolean, nullable=True, default=False)
    status: Column = Column(String(16), nullable=False, default="pending")  # pending | resolved
    resolved_at: Column = Column(DateTime(timezone=True), nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Conversation(SerializableMixin, Base):
    __tablename__ = "conversations"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    user_id: Column = Column(String(64), index=True, nullable=False)
    subject: Column = Column(String(200), nullable=True)
    status: Column = Column(String(16), nullable=False, default="open")
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())
    updated_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Message(SerializableMixin, Base):
    __tablename__ = "messages"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    conversation_id: Column = Column(String(36), ForeignKey("conversations.id"), index=True, nullable=False)
    sender_id: Column = Column(String(64), nullable=False)
    sender_type: Column = Column(String(16), nullable=False)  # user | staff
    content: Column = Column(Text, nullable=False)
    read: Column = Column(Boolean, nullable=True, default=False)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class Review(SerializableMixin, Base):
    __tablename__ = "reviews"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    user_id: Column = Column(String(64), index=True, nullable=False)
    destination_id: Column = Column(String(64), nullable=False)
    rating: Column = Column(Integer, nullable=False)
    comment: Column = Column(Text, nullable=False)
    display_name: Column = Column(String(100), nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class TourCompany(SerializableMixin, Base):
    __tablename__ = "tour_companies"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    name: Column = Column(String(200), nullable=False)
    description: Column = Column(Text, nullable=False, default="")
    email: Column = Column(String(320), nullable=True)
    phone: Column = Column(String(32), nullable=True)
    website: Column = Column(String(500), nullable=True)
    image_url: Column = Column(String(500), nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())
    updated_at: Column = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class TourCompanyImage(SerializableMixin, Base):
    __tablename__ = "tour_company_images"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    company_id: Column = Column(String(36), ForeignKey("tour_companies.id"), index=True, nullable=False)
    image_url: Column = Column(String(500), nullable=False)
    caption: Column = Column(String(300), nullable=True)
    sort_order: Column = Column(Integer, nullable=True, default=0)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())


class UserRole(SerializableMixin, Base):
    __tablename__ = "user_roles"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    user_id: Column = Column(String(64), index=True, nullable=False)
    role: Column = Column(String(16), nullable=False)  # staff | admin


class StaffAuditLog(SerializableMixin, Base):
    __tablename__ = "staff_audit_log"

    id: Column = Column(String(36), primary_key=True, default=_uuid)
    staff_user_id: Column = Column(String(64), index=True, nullable=False)
    action: Column = Column(String(32), nullable=False)
    entity_type: Column = Column(String(32), nullable=False)
    entity_id: Column = Column(String(64), nullable=True)
    changes: Column = Column(JSON, nullable=True)
    created_at: Column = Column(DateTime(timezone=True), server_default=func.now())
