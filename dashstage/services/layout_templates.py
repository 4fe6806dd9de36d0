"""
Built-in grid templates offered when creating a new dashboard.
"""

from dashstage.core.exceptions import NodeNotFoundError
from dashstage.models.contracts.templates import GridTemplate

_TEMPLATE_DATA = [
    {
        "id": "single",
        "name": "Single",
        "description": "One full-size panel for a single focused widget.",
        "rows": 1,
        "cols": 1,
        "cells": [{"key": "1.1"}],
    },
    {
        "id": "two-columns",
        "name": "Two Columns",
        "description": "Side-by-side panels, e.g. a list next to a detail view.",
        "rows": 1,
        "cols": 2,
        "cells": [{"key": "1.1"}, {"key": "1.2"}],
    },
    {
        "id": "two-rows",
        "name": "Two Rows",
        "description": "Stacked panels with a summary on top and details below.",
        "rows": 2,
        "cols": 1,
        "cells": [{"key": "1.1"}, {"key": "2.1"}],
    },
    {
        "id": "two-by-two",
        "name": "2x2 Grid",
        "description": "Four equal panels.",
        "rows": 2,
        "cols": 2,
        "cells": [{"key": "1.1"}, {"key": "1.2"}, {"key": "2.1"}, {"key": "2.2"}],
    },
    {
        "id": "three-columns",
        "name": "Three Columns",
        "description": "Three equal columns for status boards.",
        "rows": 1,
        "cols": 3,
        "cells": [{"key": "1.1"}, {"key": "1.2"}, {"key": "1.3"}],
    },
    {
        "id": "header-two-cols",
        "name": "Header + Two Columns",
        "description": "Full-width header row over two columns.",
        "rows": 2,
        "cols": 2,
        "cells": [
            {"key": "1.1", "span": {"row": 1, "col": 2}},
            {"key": "1.2", "hide": True},
            {"key": "2.1"},
            {"key": "2.2"},
        ],
    },
    {
        "id": "sidebar-content",
        "name": "Sidebar + Content",
        "description": "Full-height left sidebar beside two stacked panels.",
        "rows": 2,
        "cols": 2,
        "cells": [
            {"key": "1.1", "span": {"row": 2, "col": 1}},
            {"key": "1.2"},
            {"key": "2.1", "hide": True},
            {"key": "2.2"},
        ],
    },
    {
        "id": "three-by-three",
        "name": "3x3 Grid",
        "description": "Nine equal panels.",
        "rows": 3,
        "cols": 3,
        "cells": [{"key": f"{r}.{c}"} for r in range(1, 4) for c in range(1, 4)],
    },
]

TEMPLATES: tuple[GridTemplate, ...] = tuple(
    GridTemplate.model_validate(data) for data in _TEMPLATE_DATA
)


def list_templates() -> list[GridTemplate]:
    return [template.model_copy(deep=True) for template in TEMPLATES]


def get_template(template_id: str) -> GridTemplate:
    """Look up a built-in template by id (e.g. "two-by-two")."""
    for template in TEMPLATES:
        if template.id == template_id:
            return template.model_copy(deep=True)
    raise NodeNotFoundError(template_id, f"Unknown layout template: {template_id}")
