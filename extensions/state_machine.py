"""Lifecycle transitions for installed extensions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from extensions.errors import ValidationError
from extensions.manifest import ExtensionType, LifecycleState


@dataclass
class Transition:
    """Defines a valid lifecycle transition."""

    from_state: LifecycleState
    to_state: LifecycleState
    condition: Callable[[ExtensionType], bool] | None = None


def _themes_only(extension_type: ExtensionType) -> bool:
    return extension_type == ExtensionType.THEME


def _plugins_only(extension_type: ExtensionType) -> bool:
    return extension_type == ExtensionType.PLUGIN


class LifecycleStateMachine:
    """Checks lifecycle transitions against the allowed table.

    Plugins move through installed -> enabled <-> disabled. Themes use
    active in place of enabled, and only one theme is active at a time
    (enforced by the lifecycle manager, not here).
    """

    TRANSITIONS: list[Transition] = [
        # Install
        Transition(LifecycleState.UPLOADED, LifecycleState.INSTALLED),
        # Plugins
        Transition(LifecycleState.INSTALLED, LifecycleState.ENABLED, _plugins_only),
        Transition(LifecycleState.DISABLED, LifecycleState.ENABLED, _plugins_only),
        Transition(LifecycleState.ENABLED, LifecycleState.DISABLED, _plugins_only),
        Transition(LifecycleState.INSTALLED, LifecycleState.DISABLED),
        # Themes
        Transition(LifecycleState.INSTALLED, LifecycleState.ACTIVE, _themes_only),
        Transition(LifecycleState.DISABLED, LifecycleState.ACTIVE, _themes_only),
        Transition(LifecycleState.ACTIVE, LifecycleState.DISABLED, _themes_only),
        # Uninstall
        Transition(LifecycleState.INSTALLED, LifecycleState.UNINSTALLED),
        Transition(LifecycleState.ENABLED, LifecycleState.UNINSTALLED),
        Transition(LifecycleState.DISABLED, LifecycleState.UNINSTALLED),
        Transition(LifecycleState.ACTIVE, LifecycleState.UNINSTALLED),
    ]

    def __init__(self) -> None:
        self._transition_map: dict[tuple[LifecycleState, LifecycleState], Transition] = {
            (t.from_state, t.to_state): t for t in self.TRANSITIONS
        }

    def can_transition(
        self,
        from_state: LifecycleState,
        to_state: LifecycleState,
        extension_type: ExtensionType,
    ) -> bool:
        """Check if a transition is allowed for the given extension type."""
        transition = self._transition_map.get((from_state, to_state))
        if transition is None:
            return False
        if transition.condition and not transition.condition(extension_type):
            return False
        return True

    def check(
        self,
        extension_id: str,
        from_state: LifecycleState,
        to_state: LifecycleState,
        extension_type: ExtensionType,
    ) -> None:
        """Raise ValidationError if the transition is not allowed."""
        if not self.can_transition(from_state, to_state, extension_type):
            raise ValidationError(
                f"Invalid transition for {extension_id}: "
                f"{from_state.value} -> {to_state.value} ({extension_type.value})",
                extension_id=extension_id,
            )

    @staticmethod
    def enabled_state(extension_type: ExtensionType) -> LifecycleState:
        """The 'on' state for an extension type."""
        if extension_type == ExtensionType.THEME:
            return LifecycleState.ACTIVE
        return LifecycleState.ENABLED
