"""
スタッフ操作の監査ログ。
Audit trail for staff mutations.
"""

import logging
from typing import Any, Dict, Optional

from rwanda_planner.models import StaffAuditLog

logger = logging.getLogger(__name__)


def record(
    db,
    staff_user_id: str,
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    changes: Optional[Dict[str, Any]] = None,
) -> None:
    """
    監査ログ行を呼び出し元のセッションへ追加する（コミットは呼び出し元）
    Add an audit row to the caller's session; the caller commits.
    """
    db.add(
        StaffAuditLog(
            staff_user_id=staff_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            changes=changes,
        )
    )
    logger.info("Staff %s: %s %s %s", staff_user_id, action, entity_type, entity_id or "")
