"""Slot manager for extension components.

A slot is a named place in the UI that extensions contribute components to.
Each slot keeps at most one registration per source, ordered by descending
priority.
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .base import ResolvedComponent, SlotRegistration

logger = logging.getLogger(__name__)


class SlotManager:
    """Registry of components per slot.

    Example:
        >>> slots = SlotManager()
        >>> slots.register("app.footer", SlotRegistration(component=Banner, source="cookie-consent"))
        >>> slots.has_components("app.footer")
        True
        >>> slots.unregister_by_source("cookie-consent")
        1
    """

    def __init__(self) -> None:
        self._slots: dict[str, list[SlotRegistration]] = {}
        self._lock = threading.RLock()

    def register(self, slot_id: str, registration: SlotRegistration) -> None:
        """Register a component, replacing any earlier one from the same source."""
        with self._lock:
            entries = [r for r in self._slots.get(slot_id, []) if r.source != registration.source]
            replaced = len(entries) != len(self._slots.get(slot_id, []))
            entries.append(registration)
            entries.sort(key=lambda r: r.priority, reverse=True)
            self._slots[slot_id] = entries

        if replaced:
            logger.debug("Replaced component in slot %s from %s", slot_id, registration.source)
        else:
            logger.debug("Registered component in slot %s from %s", slot_id, registration.source)

    def register_many(self, slot_id: str, registrations: Iterable[SlotRegistration]) -> None:
        for registration in registrations:
            self.register(slot_id, registration)

    def unregister(self, slot_id: str, source: str) -> bool:
        """Remove the component a source registered in one slot."""
        with self._lock:
            entries = self._slots.get(slot_id)
            if not entries:
                return False
            remaining = [r for r in entries if r.source != source]
            if len(remaining) == len(entries):
                return False
            if remaining:
                self._slots[slot_id] = remaining
            else:
                del self._slots[slot_id]
            return True

    def unregister_by_source(self, source: str) -> int:
        """Remove every component a source registered.

        Returns:
            Number of registrations removed.
        """
        removed = 0
        with self._lock:
            for slot_id in list(self._slots):
                if self.unregister(slot_id, source):
                    removed += 1
        if removed:
            logger.debug("Removed %d slot registrations from %s", removed, source)
        return removed

    def get_components(self, slot_id: str) -> tuple[SlotRegistration, ...]:
        with self._lock:
            return tuple(self._slots.get(slot_id, ()))

    def _passes(self, registration: SlotRegistration, props: Mapping[str, Any]) -> bool:
        if registration.condition is None:
            return True
        try:
            return bool(registration.condition(props))
        except Exception:
            logger.warning(
                "Condition failed for component from %s", registration.source, exc_info=True
            )
            return False

    def has_components(self, slot_id: str, props: Mapping[str, Any] | None = None) -> bool:
        """Whether any component in the slot would render for ``props``."""
        props = props or {}
        return any(self._passes(r, props) for r in self.get_components(slot_id))

    def resolve(self, slot_id: str, props: Mapping[str, Any] | None = None) -> list[ResolvedComponent]:
        """Components to render in a slot, highest priority first.

        Registration props are overridden by the caller's props.
        """
        props = props or {}
        resolved = []
        for registration in self.get_components(slot_id):
            if not self._passes(registration, props):
                continue
            resolved.append(
                ResolvedComponent(
                    component=registration.component,
                    source=registration.source,
                    name=registration.name,
                    props=MappingProxyType({**registration.props, **props}),
                )
            )
        return resolved

    def clear(self, slot_id: str) -> None:
        with self._lock:
            self._slots.pop(slot_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._slots.clear()

    def slot_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._slots)

    def snapshot(self) -> Mapping[str, tuple[SlotRegistration, ...]]:
        """Read-only copy of every slot."""
        with self._lock:
            return MappingProxyType({slot_id: tuple(entries) for slot_id, entries in self._slots.items()})

    def stats(self) -> dict[str, Any]:
        with self._lock:
            counts = {slot_id: len(entries) for slot_id, entries in self._slots.items()}
        return {
            "totalSlots": len(counts),
            "totalComponents": sum(counts.values()),
            "slots": counts,
        }

    def __contains__(self, slot_id: str) -> bool:
        with self._lock:
            return slot_id in self._slots

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)
