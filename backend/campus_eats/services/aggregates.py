"""Store rating aggregates derived from approved reviews."""

import logging
import uuid

from campus_eats.database import async_session
from campus_eats.services.entity_store import EntityStore

logger = logging.getLogger(__name__)


async def refresh_store_aggregate(store_id: uuid.UUID) -> tuple[float, int]:
    """Recompute ``average_rating``/``total_reviews`` over the approved set.

    A full recompute rather than an increment, so concurrent approvals and
    deletions converge on the same result whichever writes last.
    """
    async with async_session() as session:
        entities = EntityStore(session)
        average, total = await entities.compute_store_aggregate(store_id)
        await entities.update_store_aggregate(store_id, average, total)
        await session.commit()

    logger.info(
        "Refreshed aggregate for store %s: average=%.2f total=%d", store_id, average, total
    )
    return average, total
