"""
Grid template contracts.

Templates are static, declarative descriptions of a grid used to start a new
dashboard. Coverage is declared, not inferred: a cell covered by another
cell's span must be listed with hide=True by the template author.
"""

from pydantic import Field

from dashstage.models.contracts.layout import CELL_KEY_PATTERN, CellSpan, ContractModel


class TemplateCell(ContractModel):
    """One declared cell of a template."""

    key: str = Field(pattern=CELL_KEY_PATTERN.pattern, description='Cell key, e.g. "1.2"')
    span: CellSpan | None = None
    hide: bool = False


class GridTemplate(ContractModel):
    """A row/column grid with optional merged cells."""

    id: str | None = Field(default=None, description="Catalog identifier")
    name: str = Field(default="Untitled")
    description: str = Field(default="")
    rows: int = Field(ge=1)
    cols: int = Field(ge=1)
    cells: list[TemplateCell] = Field(default_factory=list)
