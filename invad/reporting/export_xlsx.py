"""
Workbook Export Module
======================

Writes a ReportDocument as a multi-sheet Excel workbook.

Layout:
- "Table of Contents" sheet with hyperlinks and row counts
- One sheet per section, in document order

Design Decisions:
-----------------
1. Sheet names are the section titles with the characters Excel forbids
   removed, cut to 31 characters, and given a " (n)" suffix when two titles
   collide case-insensitively
2. Highlighted cells get the fill and font of their StyleTag
3. Header row is styled, frozen and auto-filtered; column widths follow the
   longest value (capped)
"""

import logging
import re
from pathlib import Path

try:
    from openpyxl import Workbook
    from openpyxl.styles import Font, PatternFill, Alignment
    from openpyxl.utils import get_column_letter
    from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
    OPENPYXL_AVAILABLE = True
except ImportError:
    OPENPYXL_AVAILABLE = False

from ..errors import UnsupportedFormatBackend
from .sections import ReportDocument
from .table_renderer import render_sheet, sheet_value

logger = logging.getLogger(__name__)

MAX_SHEET_NAME = 31
TOC_SHEET = "Table of Contents"
INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")
MAX_COLUMN_WIDTH = 80


def sanitize_sheet_name(title: str) -> str:
    """Make a section title acceptable as a sheet name."""
    name = INVALID_SHEET_CHARS.sub("", title)
    name = " ".join(name.split()).strip("'")
    name = name[:MAX_SHEET_NAME].rstrip().rstrip("'")
    return name or "Sheet"


def unique_sheet_names(titles, reserved=(TOC_SHEET,)) -> list[str]:
    """Sanitized, case-insensitively unique names for titles, in order.

    The first holder of a name keeps it; later ones get " (2)", " (3)" ...
    with the base shortened so the result still fits.
    """
    used = {r.lower() for r in reserved}
    names = []
    for title in titles:
        base = sanitize_sheet_name(title)
        name = base
        counter = 2
        while name.lower() in used:
            suffix = f" ({counter})"
            name = base[:MAX_SHEET_NAME - len(suffix)].rstrip() + suffix
            counter += 1
        used.add(name.lower())
        names.append(name)
    return names


def _clean(value):
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _set_text(cell, value) -> None:
    """Assign a value, keeping strings that start with "=" out of formula parsing."""
    cell.value = _clean(value)
    if isinstance(cell.value, str):
        cell.data_type = "s"


class XLSXExporter:
    """Exports report documents to .xlsx.

    Usage:
        exporter = XLSXExporter("output")
        path = exporter.export(document)
    """

    def __init__(self, output_dir: str = "output"):
        """Initialize the workbook exporter.

        Args:
            output_dir: Directory for output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(self, document: ReportDocument, filename: str = "") -> str:
        """Write the document to a workbook.

        Returns:
            Path to the generated file

        Raises:
            UnsupportedFormatBackend: If openpyxl is not installed
        """
        if not OPENPYXL_AVAILABLE:
            raise UnsupportedFormatBackend(
                "openpyxl is required for xlsx output. Install with: pip install openpyxl", "xlsx"
            )

        output_path = self.output_dir / (filename or f"{document.file_stem}.xlsx")
        sections = document.ordered_sections
        names = unique_sheet_names(s.title for s in sections)

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="2D3748", end_color="2D3748", fill_type="solid")
        left_alignment = Alignment(horizontal='left', vertical='top')

        wb = Workbook()
        toc_ws = wb.active
        toc_ws.title = TOC_SHEET
        toc_ws.append([document.title])
        toc_ws["A1"].font = Font(bold=True, size=14)
        toc_ws.append([f"Generated: {document.generated_at.strftime('%Y-%m-%d %H:%M:%S %Z')}"])
        toc_ws.append([])
        toc_ws.append(["Sheet Name", "Rows"])
        for cell in toc_ws[4]:
            cell.font = header_font
            cell.fill = header_fill

        for section, sheet_name in zip(sections, names):
            toc_ws.append([None, section.row_count])
            link = toc_ws.cell(row=toc_ws.max_row, column=1)
            _set_text(link, sheet_name)
            quoted = sheet_name.replace("'", "''")
            link.hyperlink = f"#'{quoted}'!A1"
            link.font = Font(color="0563C1", underline="single")

            self._write_section(wb, section, sheet_name, header_font, header_fill, left_alignment)

        toc_ws.column_dimensions["A"].width = max(
            [len(document.title)] + [len(n) for n in names] + [10]
        ) + 2
        toc_ws.column_dimensions["B"].width = 10

        wb.save(output_path)
        wb.close()

        logger.info(f"[+] Workbook saved to: {output_path} ({len(sections)} sheets)")
        return str(output_path)

    def _write_section(self, wb, section, sheet_name, header_font, header_fill, left_alignment) -> None:
        ws = wb.create_sheet(sheet_name)
        header, rows = render_sheet(section)

        widths = [len(str(h)) for h in header]
        ws.append(header)
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = left_alignment

        for row_idx, row in enumerate(rows, start=2):
            for col_idx, rendered in enumerate(row, start=1):
                cell = ws.cell(row=row_idx, column=col_idx)
                _set_text(cell, sheet_value(rendered))
                cell.alignment = left_alignment
                if rendered.style is not None:
                    cell.fill = PatternFill(
                        start_color=rendered.style.fill_color,
                        end_color=rendered.style.fill_color,
                        fill_type="solid"
                    )
                    cell.font = Font(color=rendered.style.font_color)
                widths[col_idx - 1] = max(widths[col_idx - 1], len(rendered.text))

        for col_idx, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(col_idx)].width = min(width + 2, MAX_COLUMN_WIDTH)

        ws.freeze_panes = "A2"
        if rows:
            ws.auto_filter.ref = ws.dimensions
