"""Keeps outstanding platform notifications in step with the event store.

Every path that changes an event's start, the pattern bound to it, or
(under the eager policy) a bound pattern's offsets goes through
:class:`SynchronizationDriver`, which always cancels the whole previous
set before scheduling a fresh one. Operations on the same event id are
serialized with a per-id lock, so the last call to start is the last one
to write.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator

from alarmcal.domain.events import EventBus, RemindersCanceled
from alarmcal.domain.models import Event, PatternKey
from alarmcal.repos.memory import EventStore, ReminderHandleRepository
from alarmcal.services.patterns import PatternRegistry
from alarmcal.services.reminders import ReminderScheduler

logger = logging.getLogger(__name__)


class SynchronizationDriver:
    def __init__(
        self,
        store: EventStore,
        registry: PatternRegistry,
        scheduler: ReminderScheduler,
        handle_repo: ReminderHandleRepository,
        bus: EventBus | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.scheduler = scheduler
        self.handle_repo = handle_repo
        self.bus = bus
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @asynccontextmanager
    async def _lock(self, event_id: str) -> AsyncIterator[None]:
        """Hold the per-event lock; it is dropped once no task holds or awaits it."""
        lock = self._locks.setdefault(event_id, asyncio.Lock())
        self._lock_users[event_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[event_id] -= 1
            if not self._lock_users[event_id]:
                del self._lock_users[event_id]
                del self._locks[event_id]

    @property
    def busy_event_ids(self) -> list[str]:
        return list(self._locks)

    async def _cancel(self, event_id: str) -> list[str]:
        handles = self.handle_repo.pop(event_id)
        for handle in handles:
            try:
                await self.scheduler.platform.cancel(handle)
            except Exception:
                # An orphaned platform notification beats a stuck entry.
                logger.warning(f"Failed to cancel notification {handle}", exc_info=True)
        if handles:
            logger.info(f"Canceled {len(handles)} reminder(s) for event {event_id}")
            if self.bus is not None:
                self.bus.publish(RemindersCanceled(event_id=event_id, handles=handles))
        return handles

    async def cancel_for_event(self, event_id: str) -> list[str]:
        """Cancel every outstanding reminder for *event_id* and drop its entry."""
        async with self._lock(event_id):
            return await self._cancel(event_id)

    async def reschedule_for_event(
        self, event: Event | str, pattern_key: PatternKey | None = None
    ) -> list[str]:
        """Cancel-then-reschedule the reminders of one event.

        The pattern is the explicit *pattern_key*, else the event's bound
        pattern, else the default. An unregistered slot is bound as the
        default; the registry then applies its gating rule. The event is
        re-read from the store under the lock, so a deleted event ends with
        no reminders.
        """
        event_id = event if isinstance(event, str) else event.id
        async with self._lock(event_id):
            await self._cancel(event_id)
            current = self.store.get(event_id)
            if current is None:
                logger.debug(f"Event {event_id} no longer exists, nothing to schedule")
                return []

            requested = pattern_key or self.registry.binding_for(event_id)
            key = self.registry.bindable_key(requested)
            self.registry.bind(event_id, key)
            resolved = self.registry.resolve(key)
            return await self.scheduler.schedule_for_event(
                current, resolved.offsets_min, resolved.sound_id
            )

    async def remove_event(self, event_id: str) -> bool:
        """Cancel reminders, forget the binding, then delete from the store."""
        async with self._lock(event_id):
            await self._cancel(event_id)
            self.registry.unbind(event_id)
            removed = self.store.remove(event_id)
        return removed

    async def reschedule_bound_events(self, pattern_key: PatternKey) -> dict[str, list[str]]:
        """Reschedule every live event currently bound to *pattern_key*."""
        results: dict[str, list[str]] = {}
        for event_id in self.registry.bindings_for_key(pattern_key):
            if self.store.get(event_id) is not None:
                results[event_id] = await self.reschedule_for_event(event_id)
        return results

    async def reschedule_all(self) -> dict[str, list[str]]:
        """Reschedule every stored event with its bound pattern (after a restart)."""
        results: dict[str, list[str]] = {}
        for event in self.store.list_all():
            results[event.id] = await self.reschedule_for_event(event.id)
        return results

    async def drop_orphans(self) -> list[str]:
        """Cancel handle entries whose event no longer exists."""
        live = {e.id for e in self.store.list_all()}
        orphans = [eid for eid in self.handle_repo.snapshot() if eid not in live]
        for event_id in orphans:
            await self.cancel_for_event(event_id)
            self.registry.unbind(event_id)
        return orphans
