"""
Generation Persistence Service.

Prompts are encrypted at rest by EncryptedType and decrypted on load.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldvault.models import Generation

logger = logging.getLogger(__name__)


async def record_generation(db: AsyncSession, user_id: str, prompt: str) -> Generation:
    """
    Persist a generation request.

    Args:
        db: Database session (caller commits).
        user_id: Owner's public user identifier.
        prompt: Prompt text, stored encrypted.

    Returns:
        The new Generation record.
    """
    generation = Generation(user_id=user_id, prompt=prompt)
    db.add(generation)
    await db.flush()

    logger.debug(f"Generation recorded: {generation.generation_id}")
    return generation


async def list_generations(db: AsyncSession, user_id: str, limit: int = 20) -> list[Generation]:
    """Most recent generations of a user, prompts decrypted."""
    result = await db.execute(
        select(Generation)
        .where(Generation.user_id == user_id)
        .order_by(Generation.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
