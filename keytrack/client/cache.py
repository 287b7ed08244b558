# =======================================================================================
# keytrack/client/cache.py - Client Key Cache
# =======================================================================================
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from ..models.enums import RETURN_ACTIONS, TAKE_ACTIONS, KeyAction
from ..models.schemas import Key, TransitionEvent
from .api import KeysApiClient

logger = logging.getLogger(__name__)


class KeyCache:
    """One session's view of the keys.

    ``all`` mirrors ``GET /keys``; ``mine`` mirrors ``GET /keys/my-taken`` and
    has its own fetch path. Events are applied in arrival order, last write
    wins. Events missed while disconnected are only recovered by re-fetching.
    """

    def __init__(self, api: Optional[KeysApiClient] = None, user_id: Optional[str] = None):
        self.api = api
        self.user_id = user_id
        self._all: Dict[str, Key] = {}
        self._mine: Optional[Dict[str, Key]] = None

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def load_all(self, keys: List[Key]) -> None:
        self._all = {key.id: key for key in keys}

    def load_mine(self, keys: List[Key]) -> None:
        self._mine = {key.id: key for key in keys}

    async def fetch_all(self) -> List[Key]:
        self.load_all(await self.api.list_keys())
        return self.keys()

    async def fetch_mine(self) -> List[Key]:
        self.load_mine(await self.api.my_taken())
        return self.taken_by_me()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def keys(self) -> List[Key]:
        return sorted(self._all.values(), key=lambda k: k.key_number)

    def get(self, key_id: str) -> Optional[Key]:
        return self._all.get(key_id)

    @property
    def degraded(self) -> bool:
        """True until the "taken by me" view has been fetched once."""
        return self._mine is None

    def taken_by_me(self) -> List[Key]:
        if self._mine is not None:
            return list(self._mine.values())
        # degraded mode: derived from the primary view
        logger.debug("taken_by_me served from the primary view")
        return [k for k in self.keys() if k.holder is not None and k.holder.user_id == self.user_id]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def apply_event(self, event: Union[TransitionEvent, Mapping[str, Any]]) -> None:
        if not isinstance(event, TransitionEvent):
            event = TransitionEvent.model_validate(event)
        key = event.key

        if event.action == KeyAction.DELETE:
            self._all.pop(key.id, None)
            if self._mine is not None:
                self._mine.pop(key.id, None)
            return

        if event.action == KeyAction.TOGGLE_FREQUENT:
            for view in (self._all, self._mine or {}):
                if key.id in view:
                    view[key.id] = view[key.id].model_copy(update={"frequently_used": key.frequently_used})
            return

        self._all[key.id] = key

        if self._mine is None:
            return
        if event.action in TAKE_ACTIONS:
            if key.holder is not None and key.holder.user_id == self.user_id:
                self._mine[key.id] = key
        elif event.action in RETURN_ACTIONS:
            self._mine.pop(key.id, None)
        elif key.id in self._mine:
            # create/update: refresh descriptive fields of a key we hold
            self._mine[key.id] = key
