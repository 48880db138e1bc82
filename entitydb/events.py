"""
Event facility for EntityDB.

An EventManager keeps an observer list per event name. fire() calls every
observer of every named event in order, passing (event_name, context,
payload). Coroutine observers are scheduled on the running loop and not
awaited; they are issued, not necessarily completed, when fire() returns.

Invariants:
    - Observers run in registration order, events in the order given
    - A failing observer is logged and never interrupts the firer
    - The manager owns its EventManager; there is no global instance
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

logger = logging.getLogger(__name__)

Observer = Callable[[str, Any, Any], Union[None, Awaitable[None]]]


class EventManager:
    """Named observer lists.

    Example:
        >>> events = EventManager()
        >>> events.on("entity.construct", lambda name, manager, entity: seen.append(entity))
        >>> events.fire(["entity[article].construct", "entity.construct"], manager, entity)
    """

    def __init__(self) -> None:
        self._observers: Dict[str, List[Observer]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()

    def on(self, name: str, observer: Observer) -> None:
        """Register an observer for an event name."""
        self._observers[name].append(observer)

    def off(self, name: str, observer: Observer) -> None:
        """Unregister an observer; unknown observers are ignored."""
        observers = self._observers.get(name)
        if observers and observer in observers:
            observers.remove(observer)

    def observers(self, name: str) -> List[Observer]:
        return list(self._observers.get(name, ()))

    def fire(self, names: Iterable[str], context: Any = None, payload: Any = None) -> None:
        """Notify the observers of each event name in turn.

        Args:
            names: Event names, fired in order
            context: Object firing the event (usually the manager)
            payload: Event payload (e.g. the constructed entity)
        """
        for name in names:
            for observer in self.observers(name):
                try:
                    result = observer(name, context, payload)
                except Exception as e:
                    logger.error(f"Observer for '{name}' failed: {e}", exc_info=True)
                    continue

                if inspect.isawaitable(result):
                    self._schedule(name, result)

    def _schedule(self, name: str, awaitable: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; dropping async observer for '{name}'")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(self._run(name, awaitable))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, name: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.error(f"Async observer for '{name}' failed: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for every scheduled async observer to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def construct_event_names(entity_type: Optional[str]) -> List[str]:
    """Event names fired when an entity is constructed."""
    return [f"entity[{entity_type}].construct", "entity.construct"]
