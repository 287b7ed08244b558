# =======================================================================================
# keytrack/services/key_store.py - Key Record Store
# =======================================================================================
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, not_, or_, select, true, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from ..database import DatabaseManager
from ..models.enums import KeyStatus, Transition
from ..models.schemas import Holder, Key, KeyCreateRequest, KeyFilter, KeyUpdateRequest
from ..schema import key_usage, keys
from ..utils.clock import utcnow
from ..utils.exceptions import (
    DuplicateKeyNumber,
    HolderMismatch,
    KeyInUse,
    KeyNotAvailable,
    KeyNotFound,
    KeyNotTaken,
    KeyTrackError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionOutcome:
    """Key state immediately before and after one committed transition."""
    before: Key
    after: Key


class KeyStore:
    """Sole writer of key state.

    Each transition runs in one transaction: the row is read with FOR UPDATE
    (ignored by SQLite, whose writers are serialized by BEGIN IMMEDIATE) and
    then changed with an UPDATE that repeats the precondition in its WHERE
    clause, so two transitions on the same key can never both succeed.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @staticmethod
    def _load(conn: Connection, key_id: str, lock: bool = False) -> Optional[Key]:
        query = select(keys).where(keys.c.id == key_id, keys.c.is_active == true())
        if lock:
            query = query.with_for_update()
        row = conn.execute(query).mappings().first()
        return Key.from_row(row) if row else None

    def get_key(self, key_id: str) -> Key:
        with self.db.get_connection() as conn:
            key = self._load(conn, key_id)
        if key is None:
            raise KeyNotFound()
        return key

    def list_keys(self, key_filter: Optional[KeyFilter] = None) -> List[Key]:
        key_filter = key_filter or KeyFilter()
        query = select(keys).where(keys.c.is_active == true())

        if key_filter.status is not None:
            query = query.where(keys.c.status == key_filter.status.value)
        if key_filter.category is not None:
            query = query.where(keys.c.category == key_filter.category)
        if key_filter.department:
            query = query.where(keys.c.department == key_filter.department)
        if key_filter.frequently_used:
            query = query.where(keys.c.frequently_used == true())
        if key_filter.search and key_filter.search.strip():
            like = f"%{key_filter.search.strip()}%"
            query = query.where(or_(
                keys.c.key_number.ilike(like),
                keys.c.key_name.ilike(like),
                keys.c.location.ilike(like),
            ))

        with self.db.get_connection() as conn:
            rows = conn.execute(query.order_by(keys.c.key_number)).mappings().all()
        return [Key.from_row(r) for r in rows]

    def list_taken_by(self, user_id: str) -> List[Key]:
        """Keys currently held by one user, most recently taken first."""
        query = (
            select(keys)
            .where(
                keys.c.is_active == true(),
                keys.c.status == KeyStatus.UNAVAILABLE.value,
                keys.c.holder_user_id == user_id,
            )
            .order_by(keys.c.taken_at.desc())
        )
        with self.db.get_connection() as conn:
            rows = conn.execute(query).mappings().all()
        return [Key.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    @staticmethod
    def _precondition_failure(
        transition: Transition, key: Key, expected_holder_id: Optional[str]
    ) -> Optional[KeyTrackError]:
        if transition == Transition.TAKE and key.is_taken:
            return KeyNotAvailable(f"Key {key.key_number} is already taken")
        if transition == Transition.RETURN:
            if not key.is_taken:
                return KeyNotTaken(f"Key {key.key_number} is already available")
            if expected_holder_id is not None and key.holder.user_id != expected_holder_id:
                return HolderMismatch(
                    f"Key {key.key_number} is not currently taken by the specified user"
                )
        return None

    @staticmethod
    def _changes(transition: Transition, before: Key, holder: Optional[Holder]):
        """(extra WHERE guard, SET values) for one transition."""
        now = utcnow()
        if transition == Transition.TAKE:
            if holder is None:
                raise ValueError("take requires a holder")
            guard = keys.c.status == KeyStatus.AVAILABLE.value
            values = {
                "status": KeyStatus.UNAVAILABLE.value,
                "holder_user_id": holder.user_id,
                "holder_name": holder.name,
                "holder_email": holder.email,
                "taken_at": now,
                "returned_at": None,
                "updated_at": now,
            }
        elif transition == Transition.RETURN:
            guard = and_(
                keys.c.status == KeyStatus.UNAVAILABLE.value,
                keys.c.holder_user_id == before.holder.user_id,
            )
            values = {
                "status": KeyStatus.AVAILABLE.value,
                "holder_user_id": None,
                "holder_name": None,
                "holder_email": None,
                "taken_at": None,
                "returned_at": now,
                "updated_at": now,
            }
        elif transition == Transition.TOGGLE_FREQUENT:
            guard = true()
            values = {"frequently_used": not_(keys.c.frequently_used), "updated_at": now}
        else:
            raise ValueError(f"Unsupported transition: {transition}")
        return guard, values

    def apply_transition(
        self,
        key_id: str,
        transition: Transition,
        *,
        holder: Optional[Holder] = None,
        expected_holder_id: Optional[str] = None,
    ) -> TransitionOutcome:
        """Check the precondition and mutate as one atomic step.

        ``holder`` is the new holder for TAKE; ``expected_holder_id`` makes a
        RETURN fail with HolderMismatch unless that user holds the key.
        Failed preconditions never leave a partial mutation behind.
        """
        with self.db.get_connection() as conn:
            before = self._load(conn, key_id, lock=True)
            if before is None:
                raise KeyNotFound()

            failure = self._precondition_failure(transition, before, expected_holder_id)
            if failure is not None:
                raise failure

            guard, values = self._changes(transition, before, holder)
            result = conn.execute(
                update(keys)
                .where(keys.c.id == key_id, keys.c.is_active == true(), guard)
                .values(**values)
            )
            if result.rowcount != 1:
                # lost a race on an engine without row locks
                current = self._load(conn, key_id)
                if current is None:
                    raise KeyNotFound()
                failure = self._precondition_failure(transition, current, expected_holder_id)
                if failure is None:
                    failure = (KeyNotAvailable() if transition == Transition.TAKE
                               else KeyNotTaken("Key changed hands while being returned"))
                raise failure

            after = self._load(conn, key_id)

        logger.debug("Key %s: %s -> %s (%s)", after.key_number, before.status.value,
                     after.status.value, transition.value)
        return TransitionOutcome(before=before, after=after)

    # ------------------------------------------------------------------
    # Provisioning (descriptive attributes only)
    # ------------------------------------------------------------------
    @staticmethod
    def _number_taken(conn: Connection, key_number: str, exclude_id: Optional[str] = None) -> bool:
        query = select(keys.c.id).where(keys.c.key_number == key_number)
        if exclude_id:
            query = query.where(keys.c.id != exclude_id)
        return conn.execute(query).first() is not None

    def create_key(self, request: KeyCreateRequest) -> Key:
        key_id = uuid.uuid4().hex
        now = utcnow()
        try:
            with self.db.get_connection() as conn:
                if self._number_taken(conn, request.key_number):
                    raise DuplicateKeyNumber()
                conn.execute(keys.insert().values(
                    id=key_id,
                    key_number=request.key_number,
                    key_name=request.key_name,
                    location=request.location,
                    category=request.category,
                    department=request.department,
                    description=request.description,
                    status=KeyStatus.AVAILABLE.value,
                    frequently_used=request.frequently_used,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                ))
                return self._load(conn, key_id)
        except IntegrityError as exc:
            raise DuplicateKeyNumber() from exc

    def update_key(self, key_id: str, request: KeyUpdateRequest) -> Key:
        changes: Dict[str, Any] = request.model_dump(exclude_unset=True, exclude_none=True)
        try:
            with self.db.get_connection() as conn:
                if self._load(conn, key_id, lock=True) is None:
                    raise KeyNotFound()
                if "key_number" in changes and self._number_taken(conn, changes["key_number"], key_id):
                    raise DuplicateKeyNumber()
                if changes:
                    changes["updated_at"] = utcnow()
                    conn.execute(update(keys).where(keys.c.id == key_id).values(**changes))
                return self._load(conn, key_id)
        except IntegrityError as exc:
            raise DuplicateKeyNumber() from exc

    def deactivate_key(self, key_id: str) -> Key:
        """Soft delete; refused while someone holds the key."""
        with self.db.get_connection() as conn:
            result = conn.execute(
                update(keys)
                .where(
                    keys.c.id == key_id,
                    keys.c.is_active == true(),
                    keys.c.status == KeyStatus.AVAILABLE.value,
                )
                .values(is_active=False, updated_at=utcnow())
            )
            if result.rowcount != 1:
                if self._load(conn, key_id) is None:
                    raise KeyNotFound()
                raise KeyInUse()
            row = conn.execute(select(keys).where(keys.c.id == key_id)).mappings().first()
        return Key.from_row(row)

    # ------------------------------------------------------------------
    # Per-user usage counters
    # ------------------------------------------------------------------
    def record_usage(self, user_id: str, key_id: str) -> None:
        with self.db.get_connection() as conn:
            result = conn.execute(
                update(key_usage)
                .where(key_usage.c.user_id == user_id, key_usage.c.key_id == key_id)
                .values(use_count=key_usage.c.use_count + 1)
            )
            if result.rowcount == 0:
                conn.execute(key_usage.insert().values(user_id=user_id, key_id=key_id, use_count=1))

    def most_used_by(self, user_id: str, limit: int = 10) -> List[Key]:
        query = (
            select(keys)
            .join(key_usage, key_usage.c.key_id == keys.c.id)
            .where(key_usage.c.user_id == user_id, keys.c.is_active == true())
            .order_by(key_usage.c.use_count.desc(), keys.c.key_number)
            .limit(limit)
        )
        with self.db.get_connection() as conn:
            rows = conn.execute(query).mappings().all()
        return [Key.from_row(r) for r in rows]
