"""Durable key/value storage for the event map, patterns and bindings.

Each blob is JSON with a ``schema_version``; older shapes are upgraded on
load by the ``migrate_*`` functions instead of being discarded.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError

from alarmcal.domain.models import (
    AlarmPattern,
    Event,
    PatternKey,
    resolve_color_id,
    resolve_pattern_key,
)
from alarmcal.services.patterns import factory_pattern

logger = logging.getLogger(__name__)

EVENT_STORE_KEY = "event-store"
NOTIFICATION_STORE_KEY = "notification-store"

EVENT_SCHEMA_VERSION = 2
NOTIFICATION_SCHEMA_VERSION = 3

_V1_PATTERN_KEYS = ("default", "A", "B", "C")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """All keys in one JSON file, rewritten atomically on every set."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)

    def get(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class EventStoreSnapshot(BaseModel):
    schema_version: int = EVENT_SCHEMA_VERSION
    events: dict[str, Event] = Field(default_factory=dict)


class NotificationStoreSnapshot(BaseModel):
    schema_version: int = NOTIFICATION_SCHEMA_VERSION
    patterns: dict[PatternKey, AlarmPattern] = Field(default_factory=dict)
    bindings: dict[str, PatternKey] = Field(default_factory=dict)
    scheduled: dict[str, list[str]] = Field(default_factory=dict)
    last_used_key: PatternKey | None = None


def _as_dict(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def _version(data: dict, *names: str) -> int:
    for name in names:
        value = data.get(name)
        if isinstance(value, int) and value > 0:
            return value
    return 1


def migrate_event_blob(data: dict) -> dict:
    """Upgrade a persisted event map to the current schema."""
    version = _version(data, "schema_version", "schemaVersion")
    if version < 2:
        # v1: camelCase keys under eventsById, start only, legacy color tags.
        events = {}
        for event_id, raw in _as_dict(data.get("eventsById")).items():
            if not isinstance(raw, dict) or "startAt" not in raw:
                logger.warning(f"Dropping unreadable v1 event {event_id!r}")
                continue
            events[event_id] = {
                "id": event_id,
                "title": raw.get("title") or "",
                "start_at": raw["startAt"],
                "end_at": raw.get("endAt"),
                "color_id": resolve_color_id(raw.get("colorId")),
                "memo": raw.get("memo"),
            }
        data = {"schema_version": 2, "events": events}
    return data


def migrate_notification_blob(data: dict) -> dict:
    """Upgrade persisted patterns/bindings to the current seven-slot schema."""
    version = _version(data, "schema_version")
    if version < 2:
        # v1: camelCase keys and no sound selection.
        patterns = {}
        for key, raw in _as_dict(data.get("patterns")).items():
            if not isinstance(raw, dict):
                continue
            patterns[key] = {
                "name": raw.get("name") or "",
                "offsets_min": raw.get("offsetsMin") or [],
                "registered": bool(raw.get("registered")),
                "sound_id": "default",
            }
        data = {
            "patterns": patterns,
            "bindings": data.get("eventPatternKeyByEventId"),
            "scheduled": data.get("scheduledByEventId"),
            "last_used_key": data.get("lastUsedPatternKey"),
        }
        version = 2
    if version < 3:
        # v2 had slots default/A/B/C only; D-F join with factory values.
        patterns = {
            k: p for k, p in _as_dict(data.get("patterns")).items() if k in _V1_PATTERN_KEYS
        }
        for key in PatternKey:
            if key.value not in patterns:
                patterns[key.value] = factory_pattern(key).model_dump(mode="json")
        data["patterns"] = patterns
        version = 3
    data["bindings"] = {
        eid: resolve_pattern_key(k if isinstance(k, str) else None)
        for eid, k in _as_dict(data.get("bindings")).items()
    }
    last_used = data.get("last_used_key")
    data["last_used_key"] = resolve_pattern_key(last_used) if isinstance(last_used, str) else None
    data["schema_version"] = version
    return data


def _load_json(kv: KeyValueStore, key: str) -> dict | None:
    raw = kv.get(key)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Corrupt blob under {key!r}: {e}")
        return None
    return data if isinstance(data, dict) else None


def load_event_snapshot(kv: KeyValueStore) -> EventStoreSnapshot:
    """Load the event map; unreadable records are skipped one by one."""
    data = _load_json(kv, EVENT_STORE_KEY)
    if data is None:
        return EventStoreSnapshot()
    data = migrate_event_blob(data)
    raw_events = data.get("events")
    if not isinstance(raw_events, dict):
        logger.error("Event store has no event map, starting empty")
        return EventStoreSnapshot()

    events: dict[str, Event] = {}
    for event_id, raw in raw_events.items():
        if not isinstance(raw, dict):
            logger.warning(f"Skipping unreadable event {event_id!r}")
            continue
        try:
            events[event_id] = Event.model_validate({**raw, "id": event_id})
        except ValidationError as e:
            logger.warning(f"Skipping unreadable event {event_id!r}: {e}")
    return EventStoreSnapshot(events=events)


def load_notification_snapshot(kv: KeyValueStore) -> NotificationStoreSnapshot:
    """Load patterns, bindings and handles; unreadable entries are skipped one by one."""
    data = _load_json(kv, NOTIFICATION_STORE_KEY)
    if data is None:
        return NotificationStoreSnapshot()
    data = migrate_notification_blob(data)

    patterns: dict[PatternKey, AlarmPattern] = {}
    for key, raw in _as_dict(data.get("patterns")).items():
        if not isinstance(raw, dict):
            logger.warning(f"Skipping unreadable pattern {key!r}")
            continue
        try:
            pattern = AlarmPattern.model_validate({**raw, "key": key})
        except ValidationError as e:
            logger.warning(f"Skipping unreadable pattern {key!r}: {e}")
            continue
        patterns[pattern.key] = pattern

    scheduled: dict[str, list[str]] = {}
    for event_id, handles in _as_dict(data.get("scheduled")).items():
        if isinstance(handles, list):
            scheduled[event_id] = [h for h in handles if isinstance(h, str)]

    return NotificationStoreSnapshot(
        schema_version=data["schema_version"],
        patterns=patterns,
        bindings=data["bindings"],
        scheduled=scheduled,
        last_used_key=data["last_used_key"],
    )


def save_snapshot(kv: KeyValueStore, key: str, snapshot: BaseModel) -> None:
    kv.set(key, snapshot.model_dump_json())
