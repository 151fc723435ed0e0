"""
目的地レビュー。
Destination reviews.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from rwanda_planner.database import SessionLocal
from rwanda_planner.errors import ApiError
from rwanda_planner.models import Review
from rwanda_planner.schemas import ReviewIn, first_error

logger = logging.getLogger(__name__)


def create_review(user_id: str, payload: Dict[str, Any], default_name: Optional[str] = None) -> Dict[str, Any]:
    try:
        review = ReviewIn(**payload)
    except ValidationError as e:
        raise ApiError(first_error(e), status=400)

    db = SessionLocal()
    try:
        row = Review(
            user_id=user_id,
            destination_id=review.destination_id,
            rating=review.rating,
            comment=review.comment,
            display_name=review.display_name or default_name,
        )
        db.add(row)
        db.commit()
        return row.to_dict()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def list_reviews(destination_id: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
    db = SessionLocal()
    try:
        query = db.query(Review)
        if destination_id:
            query = query.filter(Review.destination_id == destination_id)
        return [row.to_dict() for row in query.order_by(Review.created_at.desc()).limit(limit).all()]
    finally:
        db.close()


def delete_review(review_id: str, user_id: Optional[str] = None) -> bool:
    """
    レビューを削除する（user_id 指定時は本人のものに限る）
    Delete a review; restricted to the author when `user_id` is given.
    """
    db = SessionLocal()
    try:
        query = db.query(Review).filter(Review.id == review_id)
        if user_id is not None:
            query = query.filter(Review.user_id == user_id)
        deleted = query.delete(synchronize_session=False)
        db.commit()
        return bool(deleted)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
