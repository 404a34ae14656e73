from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.notification_preferences_repository import (
    INotificationPreferencesRepository,
)
from src.domain.entities import NotificationPreferences


class NotificationPreferencesRepository(INotificationPreferencesRepository):
    """NotificationPreferences repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_user_id(self, user_id: str) -> Optional[NotificationPreferences]:
        """Get stored preferences for a user"""
        stmt = select(NotificationPreferences).where(NotificationPreferences.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, preferences: NotificationPreferences) -> NotificationPreferences:
        """Insert or update preferences"""
        merged = await self.session.merge(preferences)
        await self.session.flush()
        await self.session.refresh(merged)
        return merged
