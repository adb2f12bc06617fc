"""
Table Renderer
==============

Turns ReportSections into a format-neutral grid of styled cells, and from
there into HTML tables or sheet rows.

Rendering reads a section and never modifies it; every format asks the
same rules about the same raw values, so highlight flags agree across
formats.
"""

import html
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .highlighting import StyleTag, resolve_style
from .sections import ReportSection, SectionKind

PIVOT_COLUMNS = ("Property", "Value")


def format_value(value, separator: str = "; ") -> str:
    """Display text for a raw cell value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, (list, tuple, set, frozenset)):
        return separator.join(format_value(v) for v in value)
    return str(value)


@dataclass(frozen=True)
class RenderedCell:
    """One output cell.

    Attributes:
        text: Display text
        value: Raw value (kept for typed spreadsheet cells)
        style: Highlight tag, or None
    """
    text: str
    value: object = None
    style: Optional[StyleTag] = None


@dataclass(frozen=True)
class RenderedTable:
    """A section laid out as header plus rows of RenderedCells."""
    title: str
    columns: tuple
    rows: tuple
    description: str = ""

    @property
    def styles(self) -> list[list[Optional[StyleTag]]]:
        """Style grid, handy for comparing renders."""
        return [[cell.style for cell in row] for row in self.rows]


def render_table(section: ReportSection) -> RenderedTable:
    """Lay out a section.

    Table sections keep the row order they were built with. Pivot sections
    become one Property/Value row per field; the rules see the field name as
    the column and the whole entity as the row.
    """
    if section.kind == SectionKind.PIVOT:
        entity = section.rows[0] if section.rows else {}
        rows = []
        for name in section.columns:
            value = entity.get(name)
            rows.append((
                RenderedCell(name, name),
                RenderedCell(format_value(value), value, resolve_style(section.rules, name, value, entity)),
            ))
        return RenderedTable(section.title, PIVOT_COLUMNS, tuple(rows), section.description)

    rows = []
    for row in section.rows:
        cells = []
        for column in section.columns:
            value = row.get(column)
            cells.append(RenderedCell(format_value(value), value, resolve_style(section.rules, column, value, row)))
        rows.append(tuple(cells))
    return RenderedTable(section.title, tuple(section.columns), tuple(rows), section.description)


def render_html_table(section: ReportSection, table_class: str = "report-table") -> str:
    """Inline-styled HTML table for one section."""
    table = render_table(section)
    if not table.rows:
        return '<p class="empty">No entries.</p>'

    header = "".join(f"<th>{html.escape(c)}</th>" for c in table.columns)
    body = []
    for row in table.rows:
        cells = []
        for cell in row:
            if cell.style is None:
                cells.append(f"<td>{html.escape(cell.text)}</td>")
            else:
                cells.append(
                    f'<td class="hl-{cell.style.value}" data-style="{cell.style.value}" '
                    f'style="{cell.style.css}">{html.escape(cell.text)}</td>'
                )
        body.append(f"<tr>{''.join(cells)}</tr>")

    return (
        f'<table class="{table_class}">\n'
        f"<thead><tr>{header}</tr></thead>\n"
        f"<tbody>\n" + "\n".join(body) + "\n</tbody>\n</table>"
    )


def sheet_value(cell: RenderedCell):
    """Value to store in a spreadsheet cell.

    Numbers stay numeric; timezone-aware datetimes are written as text since
    spreadsheet engines reject tzinfo.
    """
    value = cell.value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return cell.text


def render_sheet(section: ReportSection) -> tuple[list[str], list[list[RenderedCell]]]:
    """Header and cell rows for a spreadsheet or CSV export."""
    table = render_table(section)
    return list(table.columns), [list(row) for row in table.rows]
