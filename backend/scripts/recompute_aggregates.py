"""Recompute average_rating/total_reviews for every live store.

The API keeps aggregates current as reviews are approved, edited or deleted,
but a recompute that failed after its request committed leaves the store
stale until the next change. This script repairs that in bulk.

Run from the backend directory:
    PYTHONPATH=. python scripts/recompute_aggregates.py [--dry-run]
"""

import argparse
import asyncio
import logging

from sqlalchemy import select

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


async def recompute_aggregates(dry_run: bool = False) -> int:
    from campus_eats.database import async_session
    from campus_eats.models import Store
    from campus_eats.services.aggregates import refresh_store_aggregate
    from campus_eats.services.entity_store import EntityStore

    async with async_session() as session:
        result = await session.execute(select(Store).where(Store.deleted_at.is_(None)))
        stores = list(result.scalars().all())
        logger.info("Loaded %d stores.", len(stores))

        stale = []
        entities = EntityStore(session)
        for store in stores:
            average, total = await entities.compute_store_aggregate(store.id)
            if (average, total) != (store.average_rating, store.total_reviews):
                logger.info(
                    "  %s: %.2f/%d -> %.2f/%d",
                    store.name, store.average_rating, store.total_reviews, average, total,
                )
                stale.append(store.id)

    if dry_run:
        logger.info("[DRY RUN] %d stores would be updated.", len(stale))
        return len(stale)

    for store_id in stale:
        await refresh_store_aggregate(store_id)
    logger.info("Updated %d stores.", len(stale))
    return len(stale)


def main():
    parser = argparse.ArgumentParser(
        description="Recompute store rating aggregates from approved reviews."
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without modifying the DB.",
    )
    args = parser.parse_args()
    asyncio.run(recompute_aggregates(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
