# =======================================================================================
# keytrack/client/__init__.py - Client Package
# =======================================================================================
from .api import KeysApiClient
from .cache import KeyCache
from .channel import RealtimeChannel
from .session import ClientSession

__all__ = ["KeysApiClient", "KeyCache", "RealtimeChannel", "ClientSession"]
