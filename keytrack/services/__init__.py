# =======================================================================================
# keytrack/services/__init__.py - Services Package
# =======================================================================================
from .audit_service import AuditService
from .auth_service import AuthService
from .dashboard_service import DashboardService
from .fanout import FanoutHub
from .key_admin import KeyAdminService
from .key_store import KeyStore
from .key_transitions import KeyTransitionService

__all__ = [
    "AuditService", "AuthService", "DashboardService", "FanoutHub",
    "KeyAdminService", "KeyStore", "KeyTransitionService",
]
