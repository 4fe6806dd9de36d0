"""
Dashstage - Workspace Layout & Session Engine

Layout tree, grid algebra, drag-and-drop reparenting, provider binding,
edit mode and tab sessions for multi-workspace dashboards.

Usage:
    from dashstage import DashboardApiClient, InMemoryDashboardApi, SessionManager
    from dashstage import get_template

Example:
    client = DashboardApiClient(InMemoryDashboardApi())
    session = SessionManager(client)

    # New dashboard from a template, opened in edit mode
    tab = session.create_from_template(get_template("two-by-two"), name="Ops")
    session.add_widget(parent_id=1, component="Container")

    # Persist; the result arrives asynchronously
    session.save()
    await client.join()
"""

from dashstage.config import Settings, get_settings
from dashstage.core.exceptions import (
    CollaboratorError,
    EditModeError,
    IllegalTargetError,
    LayoutError,
    NodeNotFoundError,
    SpanOutOfBoundsError,
    StructureError,
    UnknownCellError,
)
from dashstage.core.log import configure_logging
from dashstage.models.contracts.dashboard_api import (
    ApiFailure,
    ApiResult,
    ApiSuccess,
    DispatchAccepted,
    DispatchOutcome,
    DispatchRejected,
)
from dashstage.models.contracts.layout import CellSpan, GridCell, GridSpec, LayoutNode
from dashstage.models.contracts.templates import GridTemplate, TemplateCell
from dashstage.models.contracts.widgets import ProviderRequirement, UserConfigField, WidgetDefinition
from dashstage.models.contracts.workspaces import Tab, Workspace
from dashstage.services.dashboard_api import DashboardApi, DashboardApiClient, InMemoryDashboardApi
from dashstage.services.edit_mode import EditMode, EditModeMachine
from dashstage.services.layout_templates import get_template, list_templates
from dashstage.services.layout_tree import LayoutTree
from dashstage.services.session import SessionManager
from dashstage.services.widget_registry import WidgetRegistry, get_widget_registry

__all__ = [
    # Configuration
    'Settings',
    'get_settings',
    'configure_logging',
    # Errors
    'LayoutError',
    'StructureError',
    'NodeNotFoundError',
    'IllegalTargetError',
    'SpanOutOfBoundsError',
    'UnknownCellError',
    'EditModeError',
    'CollaboratorError',
    # Contracts
    'LayoutNode',
    'GridSpec',
    'GridCell',
    'CellSpan',
    'GridTemplate',
    'TemplateCell',
    'Workspace',
    'Tab',
    'WidgetDefinition',
    'ProviderRequirement',
    'UserConfigField',
    'DispatchAccepted',
    'DispatchRejected',
    'DispatchOutcome',
    'ApiSuccess',
    'ApiFailure',
    'ApiResult',
    # Services
    'LayoutTree',
    'get_template',
    'list_templates',
    'DashboardApi',
    'DashboardApiClient',
    'InMemoryDashboardApi',
    'EditMode',
    'EditModeMachine',
    'SessionManager',
    'WidgetRegistry',
    'get_widget_registry',
]
