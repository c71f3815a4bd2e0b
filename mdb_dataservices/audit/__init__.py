"""
Audit field management and user context providers.
"""

from .audit_fields import AuditFieldManager, has_creation_timestamp
from .user_context import DelegateUserContext, SystemUserContext, UserContext

__all__ = [
    "AuditFieldManager",
    "has_creation_timestamp",
    "UserContext",
    "SystemUserContext",
    "DelegateUserContext",
]
