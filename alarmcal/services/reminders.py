"""Service for turning an event and a set of offsets into platform notifications."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from alarmcal.domain.events import EventBus, RemindersScheduled
from alarmcal.domain.models import Event, NotificationRequest, SoundId, sound_tag
from alarmcal.repos.memory import ReminderHandleRepository
from alarmcal.services.patterns import normalize_offsets
from alarmcal.services.platform import NotificationPlatform, PermissionDenied

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440


def format_offset_label(minutes: int) -> str:
    """Human-readable label for an offset, shown as the notification body."""
    if minutes == 0:
        return "開始時"
    if minutes % MINUTES_PER_DAY == 0:
        return f"{minutes // MINUTES_PER_DAY}日前"
    if minutes >= 60:
        hours, rest = divmod(minutes, 60)
        if rest == 0:
            return f"{hours}時間前"
        return f"{hours}時間{rest}分前"
    return f"{minutes}分前"


def compute_fire_times(
    event: Event, offsets_min: list[int], now: datetime
) -> list[tuple[int, datetime]]:
    """Return ``(offset, fire_at)`` pairs for the offsets still in the future.

    Fire times are absolute instants; anything at or before *now* is dropped.
    """
    candidates = [(m, event.start_at - timedelta(minutes=m)) for m in normalize_offsets(offsets_min)]
    return [(m, fire_at) for m, fire_at in candidates if fire_at > now]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReminderScheduler:
    """Requests one-shot notifications for an event and records their handles."""

    def __init__(
        self,
        platform: NotificationPlatform,
        handle_repo: ReminderHandleRepository,
        bus: EventBus | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.platform = platform
        self.handle_repo = handle_repo
        self.bus = bus
        self.now = now

    async def _permitted(self) -> bool:
        try:
            await self.platform.initialize()
            return await self.platform.request_permission()
        except PermissionDenied:
            logger.info("Notification permission denied by the platform")
            return False
        except Exception:
            logger.warning("Notification permission check failed", exc_info=True)
            return False

    async def schedule_for_event(
        self,
        event: Event,
        offsets_min: list[int],
        sound_id: SoundId = SoundId.DEFAULT,
    ) -> list[str]:
        """Schedule reminders for *event* and replace its recorded handles.

        The caller must already have canceled the previous handles. Returns
        the new handles; an empty list when permission is denied or every
        candidate is in the past.
        """
        if not await self._permitted():
            logger.info(f"Notifications not permitted, no reminders for {event.id}")
            self.handle_repo.replace(event.id, [])
            return []

        handles: list[str] = []
        for minutes, fire_at in compute_fire_times(event, offsets_min, self.now()):
            request = NotificationRequest(
                fire_at=fire_at,
                title=event.title,
                body=format_offset_label(minutes),
                sound_tag=sound_tag(sound_id),
            )
            try:
                handle = await self.platform.schedule_one_shot(request)
            except PermissionDenied:
                logger.info(f"Permission revoked while scheduling reminders for {event.id}")
                break
            except Exception:
                logger.warning(
                    f"Failed to schedule reminder for {event.id} at {fire_at.isoformat()}",
                    exc_info=True,
                )
                continue
            if handle:
                handles.append(handle)

        self.handle_repo.replace(event.id, handles)
        logger.info(f"Scheduled {len(handles)} reminder(s) for event {event.id}")
        if self.bus is not None:
            self.bus.publish(RemindersScheduled(event_id=event.id, handles=handles))
        return handles
