"""Avatar and Voice repositories for tutorcast backend."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorcast.models.catalog import Avatar, Voice


class AvatarRepository:
    """Repository for Avatar catalog entries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, avatar_id: UUID) -> Avatar | None:
        result = await self.session.execute(select(Avatar).where(Avatar.id == avatar_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def add(self, avatar: Avatar) -> Avatar:
        self.session.add(avatar)
        await self.session.flush()
        return avatar


class VoiceRepository:
    """Repository for Voice catalog entries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, voice_id: UUID) -> Voice | None:
        result = await self.session.execute(select(Voice).where(Voice.id == voice_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def add(self, voice: Voice) -> Voice:
        self.session.add(voice)
        await self.session.flush()
        return voice
