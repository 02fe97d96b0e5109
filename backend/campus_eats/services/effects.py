"""Best-effort side effects that run after a transaction has committed.

Services queue work on an :class:`AfterCommit` instead of calling it inline.
The API layer hands :meth:`AfterCommit.run` to FastAPI ``BackgroundTasks`` so
the effects execute once the response is on its way. Each effect is isolated:
a failure is logged and the remaining effects still run.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from campus_eats.services.aggregates import refresh_store_aggregate
from campus_eats.storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Effect:
    func: Callable[..., Awaitable[Any]]
    args: tuple
    description: str


@dataclass
class AfterCommit:
    _effects: list[_Effect] = field(default_factory=list)

    def add(self, func: Callable[..., Awaitable[Any]], *args, description: str = "") -> None:
        self._effects.append(_Effect(func, args, description or func.__name__))

    def refresh_store_aggregate(self, store_id: uuid.UUID) -> None:
        # Several queued recomputes for one store collapse into one.
        for effect in self._effects:
            if effect.func is refresh_store_aggregate and effect.args == (store_id,):
                return
        self.add(refresh_store_aggregate, store_id, description=f"aggregate refresh for store {store_id}")

    def delete_blobs(self, storage: FileStorage, keys: Iterable[str]) -> None:
        keys = [k for k in keys if k]
        if keys:
            self.add(delete_blobs, storage, keys, description=f"delete {len(keys)} blob(s)")

    def __len__(self) -> int:
        return len(self._effects)

    def clear(self) -> None:
        self._effects.clear()

    async def run(self) -> None:
        effects, self._effects = self._effects, []
        for effect in effects:
            try:
                await effect.func(*effect.args)
            except Exception:
                logger.exception("Post-commit effect failed: %s", effect.description)


async def delete_blobs(storage: FileStorage, keys: list[str]) -> None:
    for key in keys:
        try:
            await storage.delete(key)
        except Exception:
            logger.exception("Failed to delete blob %s from storage", key)
