# =======================================================================================
# keytrack/models/__init__.py - Models Package
# =======================================================================================
from .schemas import *
from .enums import *
from .tokens import *

__all__ = [
    "Key", "Holder", "Actor", "KeyFilter", "TransitionEvent",
    "KeyStatus", "Role", "KeyAction", "Transition",
    "RequestToken", "ReturnToken", "BatchReturnToken", "HandoffToken",
]
