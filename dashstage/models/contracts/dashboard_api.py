"""
Dashboard API result types.

Dispatching a collaborator call yields a DispatchOutcome right away:
DispatchAccepted (result pending) or DispatchRejected (never started). The
call's completion is delivered later as an ApiResult: ApiSuccess carrying the
event payload or ApiFailure carrying a CollaboratorError.

Event names follow "<FEATURE>_<ACTION>_<COMPLETE|ERROR>", e.g.
WORKSPACE_SAVE_COMPLETE or PROVIDER_DELETE_ERROR.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from dashstage.core.exceptions import CollaboratorError

Outcome = Literal["complete", "error"]


def event_name(feature: str, action: str, outcome: Outcome | None = None) -> str:
    """Build a boundary event name, e.g. ("workspace", "save", "complete")."""
    parts = [feature, action] if outcome is None else [feature, action, outcome]
    return "_".join(p.replace("-", "_") for p in parts).upper()


@dataclass(frozen=True)
class DispatchAccepted:
    """The call was started; its ApiResult will arrive later."""

    request_id: str
    event: str

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class DispatchRejected:
    """The call could not be started; no ApiResult will follow."""

    event: str
    error: CollaboratorError

    @property
    def accepted(self) -> bool:
        return False


DispatchOutcome = DispatchAccepted | DispatchRejected


@dataclass
class ApiSuccess:
    """Completion of an accepted call."""

    event: str
    request_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True


@dataclass
class ApiFailure:
    """Failure of an accepted call."""

    event: str
    request_id: str
    error: CollaboratorError

    @property
    def ok(self) -> bool:
        return False


ApiResult = ApiSuccess | ApiFailure
