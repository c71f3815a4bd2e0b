"""
Audit field stamping.

Sets created/updated timestamps, actor identity and the soft-delete flag on
documents for create, update, upsert and bulk flows.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from ..constants import SYSTEM_USER
from ..models.enums import OperationKind
from .user_context import SystemUserContext, UserContext

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def has_creation_timestamp(item: Any) -> bool:
    """True when created_on_utc holds a real value (not None, not datetime.min)."""
    created = getattr(item, "created_on_utc", None)
    if created is None:
        return False
    return created.replace(tzinfo=None) != datetime.min


class AuditFieldManager:
    """
    Stamps audit metadata on documents.

    The clock is injectable so tests can pin timestamps.
    """

    def __init__(
        self,
        user_context: Optional[UserContext] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._user_context = user_context or SystemUserContext()
        self._clock = clock

    def current_user(self) -> str:
        try:
            user = self._user_context.get_current_user()
        except Exception as e:  # noqa: BLE001
            logger.warning(f"User context raised, stamping as '{SYSTEM_USER}': {e}")
            return SYSTEM_USER
        return user or SYSTEM_USER

    def set_create_audit_fields(self, item: Any) -> None:
        now = self._clock()
        user = self.current_user()
        item.created_on_utc = now
        item.updated_on_utc = now
        item.created_by = user
        item.updated_by = user
        item.deleted = False

    def set_update_audit_fields(self, item: Any) -> None:
        """Stamp an update, backfilling created fields when they are missing."""
        now = self._clock()
        user = self.current_user()
        item.updated_on_utc = now
        item.updated_by = user
        if not has_creation_timestamp(item):
            logger.warning(
                f"Backfilling created_on_utc for {type(item).__name__} "
                f"'{getattr(item, 'id', None)}' during update"
            )
            item.created_on_utc = now
            item.created_by = user

    def set_upsert_audit_fields(
        self, item: Any, operation_kind: Optional[OperationKind] = None
    ) -> None:
        """
        Stamp an upsert.

        With an explicit ``operation_kind`` that decides the stamping. Without
        one, an item that already carries a creation timestamp is treated as
        an update and anything else as a create.
        """
        if operation_kind is None:
            operation_kind = (
                OperationKind.UPDATE if has_creation_timestamp(item) else OperationKind.CREATE
            )
        if operation_kind == OperationKind.UPDATE:
            self.set_update_audit_fields(item)
        else:
            self.set_create_audit_fields(item)

    def set_bulk_audit_fields(self, items: Iterable[Any], is_create_operation: bool) -> None:
        for item in items:
            if is_create_operation:
                self.set_create_audit_fields(item)
            else:
                self.set_upsert_audit_fields(item)
