# =======================================================================================
# keytrack/services/audit_service.py - Key Activity Log
# =======================================================================================
import logging

from sqlalchemy.exc import SQLAlchemyError

from ..database import DatabaseManager
from ..models.schemas import TransitionEvent
from ..schema import key_logs

logger = logging.getLogger(__name__)


class AuditService:
    """Writes one key_logs row per transition event.

    Recording happens after the mutation committed, in its own transaction;
    a failure here is logged and never undoes or fails the mutation.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def record(self, event: TransitionEvent) -> bool:
        try:
            with self.db.get_connection() as conn:
                conn.execute(key_logs.insert().values(
                    key_id=event.key.id,
                    key_number=event.key.key_number,
                    action=event.action.value,
                    user_id=event.user_id,
                    scanner_id=event.scanner_id,
                    original_holder_id=event.original_holder.user_id if event.original_holder else None,
                    reason=event.reason,
                    is_batch=event.batch,
                    created_at=event.timestamp,
                ))
            return True
        except SQLAlchemyError:
            logger.exception("Failed to write audit log for %s on key %s",
                             event.action.value, event.key.key_number)
            return False
