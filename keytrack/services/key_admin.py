# =======================================================================================
# keytrack/services/key_admin.py - Key Provisioning
# =======================================================================================
import logging
from typing import Optional

from ..models.enums import KeyAction
from ..models.schemas import Actor, Key, KeyCreateRequest, KeyUpdateRequest, TransitionEvent
from ..utils.validators import PermissionValidator
from .audit_service import AuditService
from .fanout import FanoutHub
from .key_store import KeyStore
from .key_transitions import announce

logger = logging.getLogger(__name__)


class KeyAdminService:
    """Create, edit and retire key records. Status and holder are never touched here."""

    def __init__(self, store: KeyStore, fanout: FanoutHub, audit: Optional[AuditService] = None):
        self.store = store
        self.fanout = fanout
        self.audit = audit

    def create(self, request: KeyCreateRequest, actor: Actor) -> Key:
        PermissionValidator.require_role(actor.role, PermissionValidator.PROVISION, "creating keys")
        key = self.store.create_key(request)
        announce(TransitionEvent(action=KeyAction.CREATE, key=key, user_id=actor.user_id),
                 self.fanout, self.audit)
        logger.info("Key %s created by %s", key.key_number, actor.email)
        return key

    def update(self, key_id: str, request: KeyUpdateRequest, actor: Actor) -> Key:
        PermissionValidator.require_role(actor.role, PermissionValidator.PROVISION, "updating keys")
        key = self.store.update_key(key_id, request)
        announce(TransitionEvent(action=KeyAction.UPDATE, key=key, user_id=actor.user_id),
                 self.fanout, self.audit)
        return key

    def delete(self, key_id: str, actor: Actor) -> Key:
        PermissionValidator.require_role(actor.role, PermissionValidator.PROVISION, "deleting keys")
        key = self.store.deactivate_key(key_id)
        announce(TransitionEvent(action=KeyAction.DELETE, key=key, user_id=actor.user_id),
                 self.fanout, self.audit)
        logger.info("Key %s deactivated by %s", key.key_number, actor.email)
        return key
