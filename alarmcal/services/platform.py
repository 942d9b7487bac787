"""Boundary to the platform's local notification service."""

from __future__ import annotations

import itertools
import logging
from datetime import datetime
from typing import Protocol

from alarmcal.domain.models import NotificationRequest

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised by a platform when a notification call fails."""


class PermissionDenied(NotificationError):
    """The user has not granted (or has revoked) notification permission."""


class NotificationPlatform(Protocol):
    async def initialize(self) -> None: ...

    async def request_permission(self) -> bool: ...

    async def schedule_one_shot(self, request: NotificationRequest) -> str | None: ...

    async def cancel(self, handle: str) -> None: ...

    async def list_scheduled(self) -> list[str]: ...


class InMemoryNotificationPlatform:
    """In-process notification service.

    Keeps pending one-shot notifications in a dict and delivers them
    (by logging) when :meth:`fire_due` is called with a time at or past
    their fire time.
    """

    def __init__(self, permission_granted: bool = True) -> None:
        self.permission_granted = permission_granted
        self.initialized = False
        self.pending: dict[str, NotificationRequest] = {}
        self.delivered: list[NotificationRequest] = []
        self._ids = itertools.count(1)

    async def initialize(self) -> None:
        if self.initialized:
            return
        self.initialized = True
        logger.info("Notification platform initialized")

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def schedule_one_shot(self, request: NotificationRequest) -> str | None:
        if not self.permission_granted:
            raise PermissionDenied("notification permission not granted")
        handle = f"notif-{next(self._ids)}"
        self.pending[handle] = request
        logger.debug(f"Scheduled {handle} at {request.fire_at.isoformat()}: {request.title}")
        return handle

    async def cancel(self, handle: str) -> None:
        self.pending.pop(handle, None)

    async def list_scheduled(self) -> list[str]:
        return list(self.pending)

    def fire_due(self, now: datetime) -> list[str]:
        """Deliver every pending notification whose fire time has passed."""
        due = sorted(
            (h for h, r in self.pending.items() if r.fire_at <= now),
            key=lambda h: self.pending[h].fire_at,
        )
        for handle in due:
            request = self.pending.pop(handle)
            self.delivered.append(request)
            logger.info(f"Reminder {handle}: {request.title} ({request.body})")
        return due
