"""
Widget definition contracts.

What the widget registry knows about a component: where it may live, which
data providers it needs, and which user configuration keys it declares.
"""

from typing import Any, Literal

from pydantic import Field

from dashstage.models.contracts.layout import ContractModel, NodeKind


ProviderClass = Literal["credential", "mcp"]


class ProviderRequirement(ContractModel):
    """A provider type a widget declares it needs."""

    type: str = Field(description='Provider type name, e.g. "algolia"')
    required: bool = Field(default=False)
    provider_class: ProviderClass = Field(default="credential")


class UserConfigField(ContractModel):
    """A user-configurable key declared by a widget."""

    type: str = Field(default="text")
    required: bool = Field(default=False)
    default: Any = Field(default=None)
    display_name: str | None = Field(default=None)


class WidgetDefinition(ContractModel):
    """Registry entry for one component."""

    component: str = Field(description="Component name referenced by layout nodes")
    kind: NodeKind = Field(default="widget")
    workspace: str = Field(
        default="layout",
        description=(
            "For containers and grids the workspace-name they declare; for widgets "
            "the workspace-name of the container they must be placed in"
        ),
    )
    providers: list[ProviderRequirement] = Field(default_factory=list)
    user_config: dict[str, UserConfigField] = Field(default_factory=dict)
