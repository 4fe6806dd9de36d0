"""
Dashboard API Collaborator

The engine persists workspaces, folders, themes, settings and providers and
drives MCP servers through an external Dashboard API:

- DashboardApi: async interface every backend implements
- DashboardApiClient: dispatch layer turning calls into DispatchOutcome now
  and ApiResult later
- InMemoryDashboardApi: complete in-process backend for tests and local runs
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable
from uuid import uuid4

from dashstage.config import get_settings
from dashstage.core.exceptions import CollaboratorError
from dashstage.models.contracts.dashboard_api import (
    ApiFailure,
    ApiResult,
    ApiSuccess,
    DispatchAccepted,
    DispatchOutcome,
    DispatchRejected,
    event_name,
)

logger = logging.getLogger(__name__)

ResultHandler = Callable[[ApiResult], None]
Operation = Callable[..., Awaitable[dict[str, Any]]]


# =============================================================================
# Interface
# =============================================================================


class DashboardApi(ABC):
    """
    Async Dashboard API.

    Every method takes the application id first and returns the payload of
    its success event, or raises (CollaboratorError or any other exception)
    on failure.
    """

    # Workspaces
    @abstractmethod
    async def list_workspaces(self, app_id: str) -> dict[str, Any]:
        """Returns {"workspaces": [...]}."""

    @abstractmethod
    async def save_workspace(self, app_id: str, workspace: dict[str, Any]) -> dict[str, Any]:
        """Upsert one workspace; returns the whole refreshed {"workspaces": [...]}."""

    @abstractmethod
    async def delete_workspace(self, app_id: str, workspace_id: int) -> dict[str, Any]:
        ...

    # Menu items (folders)
    @abstractmethod
    async def list_menu_items(self, app_id: str) -> dict[str, Any]:
        """Returns {"menuItems": [...]}."""

    @abstractmethod
    async def save_menu_item(self, app_id: str, menu_item: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    async def delete_menu_item(self, app_id: str, menu_item_id: int) -> dict[str, Any]:
        ...

    # Themes
    @abstractmethod
    async def list_themes(self, app_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def save_theme(self, app_id: str, theme_key: str, theme: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    async def delete_theme(self, app_id: str, theme_key: str) -> dict[str, Any]:
        ...

    # Settings
    @abstractmethod
    async def get_settings(self, app_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def save_settings(self, app_id: str, settings: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    async def get_data_directory(self, app_id: str) -> dict[str, Any]:
        ...

    # Providers
    @abstractmethod
    async def list_providers(self, app_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def get_provider(self, app_id: str, name: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def save_provider(self, app_id: str, provider: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    async def delete_provider(self, app_id: str, name: str) -> dict[str, Any]:
        ...

    # MCP tool bridge
    @abstractmethod
    async def start_server(self, app_id: str, server_name: str, config: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    async def stop_server(self, app_id: str, server_name: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def call_tool(
        self, app_id: str, server_name: str, tool_name: str, arguments: dict[str, Any]
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    async def list_tools(self, app_id: str, server_name: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def list_resources(self, app_id: str, server_name: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def read_resource(self, app_id: str, server_name: str, uri: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def server_status(self, app_id: str, server_name: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def get_catalog(self, app_id: str) -> dict[str, Any]:
        ...


# =============================================================================
# Dispatch
# =============================================================================


class DashboardApiClient:
    """
    Runs Dashboard API calls without blocking the caller.

    dispatch() returns DispatchAccepted once the call is scheduled on the
    running event loop, or DispatchRejected when it cannot be started. The
    call's ApiSuccess / ApiFailure is handed to `handler` when it completes.
    """

    def __init__(self, api: DashboardApi, app_id: str | None = None):
        self.api = api
        self.app_id = app_id or get_settings().app_id
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(
        self,
        feature: str,
        action: str,
        operation: Operation,
        *args: Any,
        handler: ResultHandler | None = None,
    ) -> DispatchOutcome:
        """
        Schedule operation(app_id, *args).

        Args:
            feature: Boundary feature name, e.g. "workspace"
            action: Boundary action name, e.g. "save"
            operation: Bound DashboardApi coroutine method
            handler: Receives the ApiResult when the call completes
        """
        event = event_name(feature, action)
        if self._closed:
            return DispatchRejected(event, CollaboratorError("Dashboard API client is closed", event))
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return DispatchRejected(event, CollaboratorError("No running event loop", event))

        request_id = str(uuid4())
        task = loop.create_task(self._run(feature, action, request_id, operation, args, handler))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Dispatched {event} ({request_id})")
        return DispatchAccepted(request_id, event)

    async def _run(
        self,
        feature: str,
        action: str,
        request_id: str,
        operation: Operation,
        args: tuple,
        handler: ResultHandler | None,
    ) -> None:
        result: ApiResult
        try:
            payload = await operation(self.app_id, *args)
            result = ApiSuccess(event_name(feature, action, "complete"), request_id, payload or {})
        except Exception as e:
            error_event = event_name(feature, action, "error")
            error = e if isinstance(e, CollaboratorError) else CollaboratorError(str(e), error_event)
            if error.event is None:
                error.event = error_event
            logger.error(f"{error_event} ({request_id}): {error.message}")
            result = ApiFailure(error_event, request_id, error)

        if handler is not None:
            handler(result)

    async def join(self) -> None:
        """Wait until every dispatched call (and its handler) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def close(self) -> None:
        """Reject further dispatches; calls already running still complete."""
        self._closed = True


# =============================================================================
# In-memory backend
# =============================================================================


class InMemoryDashboardApi(DashboardApi):
    """
    Dashboard API kept in process memory.

    Payloads are deep-copied in and out so callers never share state with
    the store.
    """

    def __init__(
        self,
        workspaces: list[dict[str, Any]] | None = None,
        menu_items: list[dict[str, Any]] | None = None,
        data_directory: str = "/tmp/dashstage",
    ):
        self.workspaces: dict[int, dict[str, Any]] = {
            w["id"]: copy.deepcopy(w) for w in workspaces or []
        }
        self.menu_items: dict[int, dict[str, Any]] = {
            m["id"]: copy.deepcopy(m) for m in menu_items or []
        }
        self.themes: dict[str, dict[str, Any]] = {}
        self.settings: dict[str, Any] = {}
        self.providers: dict[str, dict[str, Any]] = {}
        self.servers: dict[str, dict[str, Any]] = {}
        self.data_directory = data_directory
        self.calls: list[tuple[str, tuple]] = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def _workspace_list(self) -> dict[str, Any]:
        return {"workspaces": copy.deepcopy(list(self.workspaces.values()))}

    def _menu_list(self) -> dict[str, Any]:
        return {"menuItems": copy.deepcopy(list(self.menu_items.values()))}

    def _server(self, server_name: str) -> dict[str, Any]:
        server = self.servers.get(server_name)
        if server is None or server["status"] != "running":
            raise CollaboratorError(f"MCP server not running: {server_name}")
        return server

    # Workspaces
    async def list_workspaces(self, app_id: str) -> dict[str, Any]:
        self._record("list_workspaces", app_id)
        return self._workspace_list()

    async def save_workspace(self, app_id: str, workspace: dict[str, Any]) -> dict[str, Any]:
        self._record("save_workspace", app_id, workspace.get("id"))
        self.workspaces[workspace["id"]] = copy.deepcopy(workspace)
        return self._workspace_list()

    async def delete_workspace(self, app_id: str, workspace_id: int) -> dict[str, Any]:
        self._record("delete_workspace", app_id, workspace_id)
        if workspace_id not in self.workspaces:
            raise CollaboratorError(f"Workspace not found: {workspace_id}")
        del self.workspaces[workspace_id]
        return {"message": f"Deleted workspace {workspace_id}", **self._workspace_list()}

    # Menu items
    async def list_menu_items(self, app_id: str) -> dict[str, Any]:
        self._record("list_menu_items", app_id)
        return self._menu_list()

    async def save_menu_item(self, app_id: str, menu_item: dict[str, Any]) -> dict[str, Any]:
        self._record("save_menu_item", app_id, menu_item.get("id"))
        item = copy.deepcopy(menu_item)
        item.setdefault("id", max(self.menu_items, default=0) + 1)
        self.menu_items[item["id"]] = item
        return self._menu_list()

    async def delete_menu_item(self, app_id: str, menu_item_id: int) -> dict[str, Any]:
        self._record("delete_menu_item", app_id, menu_item_id)
        if self.menu_items.pop(menu_item_id, None) is None:
            raise CollaboratorError(f"Menu item not found: {menu_item_id}")
        return self._menu_list()

    # Themes
    async def list_themes(self, app_id: str) -> dict[str, Any]:
        return {"themes": copy.deepcopy(self.themes)}

    async def save_theme(self, app_id: str, theme_key: str, theme: dict[str, Any]) -> dict[str, Any]:
        self.themes[theme_key] = copy.deepcopy(theme)
        return {"themes": copy.deepcopy(self.themes), "key": theme_key}

    async def delete_theme(self, app_id: str, theme_key: str) -> dict[str, Any]:
        if self.themes.pop(theme_key, None) is None:
            raise CollaboratorError(f"Theme not found: {theme_key}")
        return {"themes": copy.deepcopy(self.themes)}

    # Settings
    async def get_settings(self, app_id: str) -> dict[str, Any]:
        return {"settings": copy.deepcopy(self.settings)}

    async def save_settings(self, app_id: str, settings: dict[str, Any]) -> dict[str, Any]:
        self.settings = copy.deepcopy(settings)
        return {"settings": copy.deepcopy(self.settings)}

    async def get_data_directory(self, app_id: str) -> dict[str, Any]:
        return {"dataDirectory": self.data_directory}

    # Providers
    async def list_providers(self, app_id: str) -> dict[str, Any]:
        return {"providers": copy.deepcopy(list(self.providers.values()))}

    async def get_provider(self, app_id: str, name: str) -> dict[str, Any]:
        provider = self.providers.get(name)
        if provider is None:
            raise CollaboratorError(f"Provider not found: {name}")
        return {"provider": copy.deepcopy(provider)}

    async def save_provider(self, app_id: str, provider: dict[str, Any]) -> dict[str, Any]:
        if not provider.get("name"):
            raise CollaboratorError("Provider name is required")
        self.providers[provider["name"]] = copy.deepcopy(provider)
        return {"provider": copy.deepcopy(provider)}

    async def delete_provider(self, app_id: str, name: str) -> dict[str, Any]:
        if self.providers.pop(name, None) is None:
            raise CollaboratorError(f"Provider not found: {name}")
        return {"name": name}

    # MCP tool bridge
    async def start_server(self, app_id: str, server_name: str, config: dict[str, Any]) -> dict[str, Any]:
        self.servers[server_name] = {
            "status": "running",
            "tools": list(config.get("tools", [])),
            "resources": dict(config.get("resources", {})),
        }
        return {"serverName": server_name, "status": "running"}

    async def stop_server(self, app_id: str, server_name: str) -> dict[str, Any]:
        self._server(server_name)["status"] = "stopped"
        return {"serverName": server_name, "status": "stopped"}

    async def call_tool(
        self, app_id: str, server_name: str, tool_name: str, arguments: dict[str, Any]
    ) -> dict[str, Any]:
        server = self._server(server_name)
        if tool_name not in server["tools"]:
            raise CollaboratorError(f"Unknown tool {tool_name} on {server_name}")
        return {"result": {"tool": tool_name, "arguments": copy.deepcopy(arguments)}}

    async def list_tools(self, app_id: str, server_name: str) -> dict[str, Any]:
        return {"tools": list(self._server(server_name)["tools"])}

    async def list_resources(self, app_id: str, server_name: str) -> dict[str, Any]:
        return {"resources": sorted(self._server(server_name)["resources"])}

    async def read_resource(self, app_id: str, server_name: str, uri: str) -> dict[str, Any]:
        resources = self._server(server_name)["resources"]
        if uri not in resources:
            raise CollaboratorError(f"Unknown resource {uri} on {server_name}")
        return {"uri": uri, "contents": resources[uri]}

    async def server_status(self, app_id: str, server_name: str) -> dict[str, Any]:
        server = self.servers.get(server_name)
        return {"serverName": server_name, "status": server["status"] if server else "stopped"}

    async def get_catalog(self, app_id: str) -> dict[str, Any]:
        return {"catalog": sorted(self.servers)}
