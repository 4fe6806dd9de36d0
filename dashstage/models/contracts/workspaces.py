"""
Workspace and Tab contract models.

A Workspace is one dashboard definition; a Tab is the in-memory session
wrapper the session manager keeps per open workspace. Tabs are never
persisted.
"""

import time

from pydantic import Field

from dashstage.models.contracts.layout import ContractModel, LayoutNode


def timestamp_ms() -> int:
    """Current time in milliseconds, used for workspace ids and versions."""
    return int(time.time() * 1000)


class Workspace(ContractModel):
    """One dashboard: a flattened node tree plus bindings and overrides."""

    id: int = Field(default_factory=timestamp_ms, description="Workspace id")
    name: str = Field(default="New Dashboard")
    label: str = Field(default="New Dashboard")
    type: str = Field(default="workspace")
    menu_id: int = Field(default=1, description="Folder the workspace is filed under")
    theme_key: str | None = Field(default=None, description="Theme override")
    layout: list[LayoutNode] = Field(default_factory=list)
    version: int = Field(
        default=1, description="Save timestamp, strictly increasing across saves"
    )
    selected_providers: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Widget uuid -> {provider type: provider name}",
    )


class Tab(ContractModel):
    """An open workspace. The tab id equals the workspace id."""

    id: int
    name: str = "Untitled"
    workspace: Workspace
