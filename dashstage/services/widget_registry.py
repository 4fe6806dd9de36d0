"""
Widget registry for the layout engine.

Maps component names to WidgetDefinition entries:
- Built-in layout components (Container, LayoutGridContainer)
- Widgets registered by installed packages

Consumers read an immutable snapshot; only register/unregister change the
registry.
"""

import logging
from types import MappingProxyType
from typing import Any, Mapping

from dashstage.core.exceptions import NodeNotFoundError
from dashstage.models.contracts.layout import LayoutNode
from dashstage.models.contracts.widgets import WidgetDefinition

logger = logging.getLogger(__name__)

BUILTIN_WIDGETS = (
    WidgetDefinition(component="Container", kind="container", workspace="layout"),
    WidgetDefinition(component="LayoutContainer", kind="container", workspace="layout"),
    WidgetDefinition(component="LayoutGridContainer", kind="grid", workspace="layout"),
)


class WidgetRegistry:
    """
    Registry of widget definitions keyed by component name.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, WidgetDefinition] = {}

        for definition in BUILTIN_WIDGETS:
            self.register(definition)

    def register(self, definition: WidgetDefinition) -> None:
        """
        Register (or re-register) a component.

        Args:
            definition: Widget definition; its component name is the key.
        """
        self._definitions[definition.component] = definition.model_copy(deep=True)
        logger.debug(f"Registered widget: {definition.component}")

    def unregister(self, component: str) -> None:
        if component not in self._definitions:
            raise NodeNotFoundError(component, f"Widget not registered: {component}")
        del self._definitions[component]
        logger.debug(f"Unregistered widget: {component}")

    def get(self, component: str) -> WidgetDefinition | None:
        definition = self._definitions.get(component)
        return definition.model_copy(deep=True) if definition else None

    def snapshot(self) -> Mapping[str, WidgetDefinition]:
        """
        Read-only view of the registry at this moment.

        Later register/unregister calls do not affect a snapshot already taken.
        """
        return MappingProxyType(
            {name: d.model_copy(deep=True) for name, d in self._definitions.items()}
        )


# Global registry instance
_registry: WidgetRegistry | None = None


def get_widget_registry() -> WidgetRegistry:
    """
    Get the global widget registry.

    Creates the registry on first access.
    """
    global _registry
    if _registry is None:
        _registry = WidgetRegistry()
    return _registry


def node_from_definition(
    definition: WidgetDefinition,
    user_config_values: dict[str, Any] | None = None,
) -> LayoutNode:
    """
    Build an unattached node for a registered component.

    The node gets a placeholder id; LayoutTree.add_child assigns the real id,
    parent and order. User preferences start from the declared defaults and
    are overridden by user_config_values.
    """
    prefs = {
        key: field.default
        for key, field in definition.user_config.items()
        if field.default is not None
    }
    prefs.update(user_config_values or {})

    return LayoutNode(
        id=-1,
        kind=definition.kind,
        component=definition.component,
        workspace=definition.workspace,
        parent_workspace_name=definition.workspace if definition.kind == "widget" else None,
        user_prefs=prefs,
    )


def missing_user_config(definition: WidgetDefinition, user_prefs: dict[str, Any]) -> list[str]:
    """Required user configuration keys that have no value."""
    return [
        key
        for key, field in definition.user_config.items()
        if field.required and user_prefs.get(key) in (None, "")
    ]
