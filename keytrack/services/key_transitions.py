# =======================================================================================
# keytrack/services/key_transitions.py - Key State Transition Engine
# =======================================================================================
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models.enums import KeyAction, KeyStatus, Transition
from ..models.schemas import (
    Actor,
    BatchReturnItem,
    BatchReturnResponse,
    Key,
    KeyActionResponse,
    KeyFilter,
    TransitionEvent,
)
from ..models.tokens import BatchReturnToken, RequestToken, ReturnToken
from ..utils.exceptions import Forbidden, KeyTrackError
from ..utils.validators import PermissionValidator
from . import qr_tokens
from .audit_service import AuditService
from .auth_service import AuthService
from .fanout import FanoutHub
from .key_store import KeyStore

logger = logging.getLogger(__name__)


def announce(event: TransitionEvent, fanout: FanoutHub, audit: Optional[AuditService]) -> None:
    """Hand a committed mutation to subscribers and the audit log.

    Called after commit. Neither side can fail the mutation.
    """
    try:
        fanout.publish(event)
    except Exception:
        logger.exception("Broadcast of %s for key %s failed", event.action.value, event.key.key_number)
    if audit is not None:
        audit.record(event)


def _label(key: Key) -> str:
    return f"Key {key.key_number} ({key.key_name})"


class KeyTransitionService:
    """Take / return / collective return / QR handoffs / toggle-frequent.

    Every successful operation commits exactly one key mutation and announces
    exactly one TransitionEvent before returning.
    """

    def __init__(self, store: KeyStore, users: AuthService, fanout: FanoutHub,
                 audit: Optional[AuditService] = None):
        self.store = store
        self.users = users
        self.fanout = fanout
        self.audit = audit

    def _record_usage(self, user_id: str, key_id: str) -> None:
        try:
            self.store.record_usage(user_id, key_id)
        except SQLAlchemyError:
            logger.exception("Could not update usage counter for user %s, key %s", user_id, key_id)

    # ------------------------------------------------------------------
    # Direct transitions
    # ------------------------------------------------------------------
    def take(self, key_id: str, actor: Actor) -> KeyActionResponse:
        PermissionValidator.require_role(actor.role, PermissionValidator.TAKE, "taking keys")

        outcome = self.store.apply_transition(key_id, Transition.TAKE, holder=actor.as_holder())
        self._record_usage(actor.user_id, key_id)

        event = TransitionEvent(action=KeyAction.TAKE, key=outcome.after, user_id=actor.user_id)
        announce(event, self.fanout, self.audit)
        logger.info("%s taken by %s", _label(outcome.after), actor.email)
        return KeyActionResponse(message=f"{_label(outcome.after)} taken successfully", data=outcome.after)

    def return_key(self, key_id: str, actor: Actor) -> KeyActionResponse:
        """Holder returns their own key; security and admin may return any key."""
        privileged = PermissionValidator.can_return_any(actor.role)
        if not privileged:
            current = self.store.get_key(key_id)
            if current.is_taken and current.holder.user_id != actor.user_id:
                raise Forbidden("You can only return keys that you have taken")

        outcome = self.store.apply_transition(
            key_id, Transition.RETURN,
            expected_holder_id=None if privileged else actor.user_id,
        )

        event = TransitionEvent(
            action=KeyAction.RETURN,
            key=outcome.after,
            user_id=actor.user_id,
            original_holder=outcome.before.holder,
        )
        announce(event, self.fanout, self.audit)
        logger.info("%s returned by %s", _label(outcome.after), actor.email)
        return KeyActionResponse(
            message=f"{_label(outcome.after)} returned successfully",
            data=outcome.after,
            original_holder=outcome.before.holder,
        )

    def collective_return(self, key_id: str, actor: Actor, reason: Optional[str] = None) -> KeyActionResponse:
        """Return a key on behalf of its holder; the holder is kept on the event."""
        PermissionValidator.require_role(actor.role, PermissionValidator.COLLECTIVE_RETURN,
                                         "collective return")

        outcome = self.store.apply_transition(key_id, Transition.RETURN)
        original = outcome.before.holder

        event = TransitionEvent(
            action=KeyAction.COLLECTIVE_RETURN,
            key=outcome.after,
            user_id=actor.user_id,
            original_holder=original,
            reason=reason,
        )
        announce(event, self.fanout, self.audit)
        logger.info("%s collected by %s for %s (%s)", _label(outcome.after), actor.email,
                    original.email if original else "?", reason or "no reason given")
        return KeyActionResponse(
            message=f"{_label(outcome.after)} returned successfully by {actor.name}",
            data=outcome.after,
            original_holder=original,
        )

    def toggle_frequent(self, key_id: str, actor: Actor) -> KeyActionResponse:
        outcome = self.store.apply_transition(key_id, Transition.TOGGLE_FREQUENT)

        event = TransitionEvent(action=KeyAction.TOGGLE_FREQUENT, key=outcome.after, user_id=actor.user_id)
        announce(event, self.fanout, self.audit)
        verb = "added to" if outcome.after.frequently_used else "removed from"
        return KeyActionResponse(message=f"Key {verb} frequently used", data=outcome.after)

    # ------------------------------------------------------------------
    # QR handoffs (scanner side)
    # ------------------------------------------------------------------
    def scan_request(self, raw, scanner: Actor) -> KeyActionResponse:
        """Security scans a faculty member's request code and hands the key over."""
        PermissionValidator.require_role(scanner.role, PermissionValidator.SCAN, "QR scanning")
        token: RequestToken = qr_tokens.expect(qr_tokens.parse(raw), RequestToken)

        requester = self.users.get_user(token.user_id)
        outcome = self.store.apply_transition(token.key_id, Transition.TAKE, holder=requester.as_holder())
        self._record_usage(requester.user_id, token.key_id)

        event = TransitionEvent(
            action=KeyAction.QR_REQUEST,
            key=outcome.after,
            user_id=requester.user_id,
            scanner_id=scanner.user_id,
        )
        announce(event, self.fanout, self.audit)
        logger.info("%s assigned to %s via QR (scanned by %s, token %s)", _label(outcome.after),
                    requester.email, scanner.email, token.token_id)
        return KeyActionResponse(
            message=f"{_label(outcome.after)} assigned successfully via QR scan",
            data=outcome.after,
            scanned_by=scanner.user_id,
        )

    def scan_return(self, raw, scanner: Actor) -> KeyActionResponse:
        """Security scans a return code; the key must be held by the code's user."""
        PermissionValidator.require_role(scanner.role, PermissionValidator.SCAN, "QR scanning")
        token: ReturnToken = qr_tokens.expect(qr_tokens.parse(raw), ReturnToken)

        outcome = self.store.apply_transition(token.key_id, Transition.RETURN,
                                              expected_holder_id=token.user_id)

        event = TransitionEvent(
            action=KeyAction.QR_RETURN,
            key=outcome.after,
            user_id=token.user_id,
            scanner_id=scanner.user_id,
            original_holder=outcome.before.holder,
        )
        announce(event, self.fanout, self.audit)
        logger.info("%s returned via QR (scanned by %s, token %s)", _label(outcome.after),
                    scanner.email, token.token_id)
        return KeyActionResponse(
            message=f"{_label(outcome.after)} returned successfully via QR scan",
            data=outcome.after,
            original_holder=outcome.before.holder,
            scanned_by=scanner.user_id,
        )

    def batch_return(self, raw, scanner: Actor) -> BatchReturnResponse:
        """Return every key in a volunteer's batch code, each one independently.

        The holder is not checked; the volunteer returns keys on behalf of
        absent holders. A key that fails does not stop the others.
        """
        PermissionValidator.require_role(scanner.role, PermissionValidator.SCAN, "QR scanning")
        token: BatchReturnToken = qr_tokens.expect(qr_tokens.parse(raw), BatchReturnToken)

        results: List[BatchReturnItem] = []
        for key_id in token.key_ids:
            try:
                outcome = self.store.apply_transition(key_id, Transition.RETURN)
            except KeyTrackError as exc:
                results.append(BatchReturnItem(key_id=key_id, success=False,
                                               message=exc.message, code=exc.code))
                continue

            event = TransitionEvent(
                action=KeyAction.QR_RETURN,
                key=outcome.after,
                user_id=token.user_id,
                scanner_id=scanner.user_id,
                original_holder=outcome.before.holder,
                batch=True,
            )
            announce(event, self.fanout, self.audit)
            results.append(BatchReturnItem(key_id=key_id, success=True,
                                           message=f"{_label(outcome.after)} returned", key=outcome.after))

        returned = sum(1 for r in results if r.success)
        logger.info("Batch return %s: %d of %d key(s) returned (scanned by %s)",
                    token.token_id, returned, len(results), scanner.email)
        return BatchReturnResponse(
            success=returned > 0,
            message=f"{returned} of {len(results)} key(s) returned successfully",
            results=results,
        )

    # ------------------------------------------------------------------
    # Per-user reads
    # ------------------------------------------------------------------
    def my_taken(self, actor: Actor) -> List[Key]:
        return self.store.list_taken_by(actor.user_id)

    def all_taken(self, actor: Actor) -> List[Key]:
        PermissionValidator.require_role(actor.role, PermissionValidator.VIEW_ALL_TAKEN,
                                         "viewing all taken keys")
        return self.store.list_keys(KeyFilter(status=KeyStatus.UNAVAILABLE))

    def most_used(self, actor: Actor, limit: int = 10) -> List[Key]:
        return self.store.most_used_by(actor.user_id, limit=limit)
