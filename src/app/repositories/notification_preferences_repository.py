from abc import ABC, abstractmethod
from typing import Optional

from src.domain.entities import NotificationPreferences


class INotificationPreferencesRepository(ABC):
    """NotificationPreferences repository interface - application layer"""

    @abstractmethod
    async def get_by_user_id(self, user_id: str) -> Optional[NotificationPreferences]:
        """Get stored preferences, None when the user has never changed them"""
        pass

    @abstractmethod
    async def save(self, preferences: NotificationPreferences) -> NotificationPreferences:
        """Insert or update preferences"""
        pass
