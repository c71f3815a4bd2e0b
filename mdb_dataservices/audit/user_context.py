"""
User context providers for audit stamping.

Implementations answer ``get_current_user()`` and must never raise.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..constants import SYSTEM_USER

logger = logging.getLogger(__name__)


class UserContext(ABC):
    """Supplies the actor identity recorded in created_by / updated_by."""

    @abstractmethod
    def get_current_user(self) -> Optional[str]:
        pass


class SystemUserContext(UserContext):
    """Always reports a fixed system identity (background jobs, migrations)."""

    def __init__(self, user: str = SYSTEM_USER):
        self._user = user

    def get_current_user(self) -> Optional[str]:
        return self._user


class DelegateUserContext(UserContext):
    """
    Wraps a callable that resolves the current user.

    Provider failures and empty answers fall back to ``fallback_user``.

    Example:
        context = DelegateUserContext(lambda: request_state.get("user_id"))
    """

    def __init__(
        self,
        provider: Callable[[], Optional[str]],
        fallback_user: str = SYSTEM_USER,
    ):
        self._provider = provider
        self._fallback_user = fallback_user

    def get_current_user(self) -> Optional[str]:
        try:
            user = self._provider()
        except Exception as e:  # noqa: BLE001
            logger.warning(
                f"User context provider failed, using '{self._fallback_user}': {e}",
                exc_info=True,
            )
            return self._fallback_user
        if not user or not str(user).strip():
            return self._fallback_user
        return str(user)
