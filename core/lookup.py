"""
core/lookup.py -- Resource lookup used by ownership checks.

StoreResourceLookup adapts synchronous repository getters to the async
find_by_id(model, id) interface that auth.authorization.authorize_owner
awaits. The blocking query runs in Starlette's threadpool so it never stalls
the event loop.

Usage:
    lookup = StoreResourceLookup(task=task_store.get_task)
    task = await lookup.find_by_id("task", "42")

Layer rule: core/ does not import from api/, auth/ or tasks/. Getters are
passed in, so this module stays ignorant of what the resources are.
"""

from collections.abc import Callable
from typing import Any, Optional

from starlette.concurrency import run_in_threadpool


class StoreResourceLookup:
    def __init__(self, **getters: Callable[[int], Optional[Any]]) -> None:
        self._getters = getters

    async def find_by_id(self, model: str, resource_id: Any) -> Optional[Any]:
        """Return the record, or None when the id is unknown or not an integer.

        An unregistered model name is a wiring bug, not a missing resource,
        and raises KeyError.
        """
        getter = self._getters[model]
        try:
            key = int(resource_id)
        except (TypeError, ValueError):
            return None
        return await run_in_threadpool(getter, key)
