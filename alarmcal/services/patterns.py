"""Named reminder patterns and the event -> pattern bindings."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from alarmcal.domain.events import (
    EventBus,
    PatternBound,
    PatternReset,
    PatternSaved,
    PatternUnbound,
)
from alarmcal.domain.models import (
    MAX_OFFSET_MINUTES,
    MAX_OFFSETS,
    AlarmPattern,
    PatternInput,
    PatternKey,
    ResolvedPattern,
)

logger = logging.getLogger(__name__)


def normalize_offsets(offsets: Iterable[float]) -> list[int]:
    """Round, clamp to ``[0, 4320]``, dedupe, sort ascending, keep the first 5."""
    clamped = {max(0, min(MAX_OFFSET_MINUTES, round(m))) for m in offsets}
    return sorted(clamped)[:MAX_OFFSETS]


def factory_pattern(key: PatternKey) -> AlarmPattern:
    if key == PatternKey.DEFAULT:
        return AlarmPattern(key=key, name="デフォルト", offsets_min=[60, 5], registered=True)
    position = list(PatternKey).index(key)
    return AlarmPattern(key=key, name=f"カスタム{position}")


def factory_patterns() -> dict[PatternKey, AlarmPattern]:
    return {key: factory_pattern(key) for key in PatternKey}


class PatternRegistry:
    """Owns the seven pattern slots and which slot each event is bound to.

    ``customization_enabled`` is the feature gate: while it returns False,
    every resolution yields the default pattern and edits are ignored,
    whatever key the caller asks for.
    """

    def __init__(
        self,
        bus: EventBus | None = None,
        customization_enabled: Callable[[], bool] = lambda: True,
        fixed_keys: Iterable[PatternKey] = (),
    ) -> None:
        self._bus = bus
        self._customization_enabled = customization_enabled
        self._fixed = {PatternKey.DEFAULT, *fixed_keys}
        self._patterns = factory_patterns()
        self._bindings: dict[str, PatternKey] = {}
        self.last_used_key: PatternKey | None = None

    @property
    def customization_enabled(self) -> bool:
        return bool(self._customization_enabled())

    def get(self, key: PatternKey) -> AlarmPattern:
        return self._patterns[key].model_copy(deep=True)

    def list_patterns(self) -> list[AlarmPattern]:
        return [self.get(key) for key in PatternKey]

    def selectable_keys(self) -> list[PatternKey]:
        if not self.customization_enabled:
            return [PatternKey.DEFAULT]
        return [key for key, p in self._patterns.items() if p.registered]

    def is_editable(self, key: PatternKey) -> bool:
        return self.customization_enabled and key not in self._fixed

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def save_pattern(self, key: PatternKey, data: PatternInput) -> AlarmPattern | None:
        """Store a custom pattern; returns None when the slot can't be edited."""
        if not self.is_editable(key):
            logger.info(f"Ignoring edit of locked pattern slot {key}")
            return None
        offsets = normalize_offsets(data.offsets_min)
        if not offsets:
            self.reset_pattern(key)
            return None
        current = self._patterns[key]
        pattern = AlarmPattern(
            key=key,
            name=data.name or current.name,
            offsets_min=offsets,
            registered=True,
            sound_id=data.sound_id,
        )
        self._patterns[key] = pattern
        self._publish(PatternSaved(key=key))
        return self.get(key)

    def reset_pattern(self, key: PatternKey) -> None:
        if not self.is_editable(key):
            return
        self._patterns[key] = factory_pattern(key)
        self._publish(PatternReset(key=key))

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def effective_key(self, key: PatternKey | None) -> PatternKey:
        if not self.customization_enabled:
            return PatternKey.DEFAULT
        return self.bindable_key(key)

    def bindable_key(self, key: PatternKey | None) -> PatternKey:
        """The slot an event may be bound to; unregistered slots bind as default.

        The customization gate is not applied here, so bindings made before
        a downgrade are kept and resolve to their pattern again afterwards.
        """
        if key is None:
            return PatternKey.DEFAULT
        pattern = self._patterns.get(key)
        if pattern is None or not pattern.registered or not pattern.offsets_min:
            return PatternKey.DEFAULT
        return key

    def resolve(self, key: PatternKey | None) -> ResolvedPattern:
        """Offsets and sound to schedule with; anything unusable degrades to default."""
        pattern = self._patterns[self.effective_key(key)]
        return ResolvedPattern(
            key=pattern.key,
            offsets_min=list(pattern.offsets_min),
            sound_id=pattern.sound_id,
        )

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def bind(self, event_id: str, key: PatternKey) -> None:
        self._bindings[event_id] = key
        self.last_used_key = key
        self._publish(PatternBound(event_id=event_id, key=key))

    def binding_for(self, event_id: str) -> PatternKey | None:
        return self._bindings.get(event_id)

    def unbind(self, event_id: str) -> None:
        if self._bindings.pop(event_id, None) is not None:
            self._publish(PatternUnbound(event_id=event_id))

    def bindings_for_key(self, key: PatternKey) -> list[str]:
        return [eid for eid, k in self._bindings.items() if k == key]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "patterns": {k.value: p.model_dump(mode="json") for k, p in self._patterns.items()},
            "bindings": {eid: k.value for eid, k in self._bindings.items()},
            "last_used_key": self.last_used_key.value if self.last_used_key else None,
        }

    def restore(
        self,
        patterns: dict[PatternKey, AlarmPattern],
        bindings: dict[str, PatternKey],
        last_used_key: PatternKey | None = None,
    ) -> None:
        restored = factory_patterns()
        for key, pattern in patterns.items():
            if key == PatternKey.DEFAULT:
                continue
            pattern.offsets_min = normalize_offsets(pattern.offsets_min)
            pattern.registered = pattern.registered and bool(pattern.offsets_min)
            restored[key] = pattern
        self._patterns = restored
        self._bindings = dict(bindings)
        self.last_used_key = last_used_key

    def _publish(self, event: object) -> None:
        if self._bus is not None:
            self._bus.publish(event)
