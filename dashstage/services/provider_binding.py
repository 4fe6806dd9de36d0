"""
Provider Binding Resolver

Widget provider selections are stored twice: on the widget node
(node.selected_providers) and on the workspace, keyed by the widget's uuid
(workspace.selected_providers). bind() is the only writer and produces both
in one new Workspace value.
"""

import logging

from dashstage.core.exceptions import IllegalTargetError, NodeNotFoundError
from dashstage.models.contracts.layout import LayoutNode
from dashstage.models.contracts.widgets import ProviderRequirement
from dashstage.models.contracts.workspaces import Workspace

logger = logging.getLogger(__name__)


def _find_widget(workspace: Workspace, widget_uuid: str) -> LayoutNode:
    for node in workspace.layout:
        if node.uuid == widget_uuid:
            if node.kind != "widget":
                raise IllegalTargetError(
                    f"Node {node.id} ({widget_uuid}) is a {node.kind}, not a widget"
                )
            return node
    raise NodeNotFoundError(widget_uuid, f"No widget with uuid {widget_uuid} in workspace {workspace.id}")


def bind(
    workspace: Workspace,
    widget_uuid: str,
    provider_type: str,
    provider_name: str,
) -> Workspace:
    """
    Select `provider_name` for the widget's `provider_type` requirement.

    Returns a new workspace whose widget node and workspace-level map both
    carry the selection.

    Raises:
        NodeNotFoundError: If no node has widget_uuid
        IllegalTargetError: If the node is not a widget
    """
    widget = _find_widget(workspace, widget_uuid)

    bound_node = widget.model_copy(
        update={"selected_providers": {**widget.selected_providers, provider_type: provider_name}}
    )
    layout = [bound_node if node.id == widget.id else node for node in workspace.layout]

    selections = {uuid: dict(types) for uuid, types in workspace.selected_providers.items()}
    selections.setdefault(widget_uuid, {})[provider_type] = provider_name

    logger.debug(f"Bound {provider_type}={provider_name} on widget {widget_uuid}")
    return workspace.model_copy(update={"layout": layout, "selected_providers": selections})


def unresolved_requirements(
    node: LayoutNode,
    requirements: list[ProviderRequirement],
) -> list[str]:
    """Declared provider types with no (or an empty) selection on the node."""
    return [
        requirement.type
        for requirement in requirements
        if not node.selected_providers.get(requirement.type)
    ]


def resolve_selection(workspace: Workspace, node: LayoutNode, provider_type: str) -> str | None:
    """Provider chosen for a widget: node-level first, then the workspace map."""
    selected = node.selected_providers.get(provider_type)
    if selected:
        return selected
    if node.uuid is None:
        return None
    return workspace.selected_providers.get(node.uuid, {}).get(provider_type) or None


def prune_bindings(workspace: Workspace) -> Workspace:
    """Drop workspace-level selections whose widget is no longer in the layout."""
    live = {node.uuid for node in workspace.layout if node.uuid}
    kept = {
        uuid: dict(types)
        for uuid, types in workspace.selected_providers.items()
        if uuid in live
    }
    if len(kept) == len(workspace.selected_providers):
        return workspace
    logger.debug(
        f"Pruned {len(workspace.selected_providers) - len(kept)} stale binding(s) "
        f"from workspace {workspace.id}"
    )
    return workspace.model_copy(update={"selected_providers": kept})
