"""
CSV Export Module
=================

Writes each section of a ReportDocument to its own CSV file, inside a
directory named after the document. File names follow the workbook sheet
names, so the two formats line up one to one.
"""

import csv
import re
import logging
from pathlib import Path

from .export_xlsx import unique_sheet_names
from .sections import ReportDocument
from .table_renderer import render_sheet

logger = logging.getLogger(__name__)

UNSAFE_FILE_CHARS = re.compile(r"[^A-Za-z0-9._()-]+")
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def csv_text(text: str) -> str:
    """Cell text with a leading quote when a spreadsheet would read it as a formula."""
    if not text.startswith(FORMULA_PREFIXES):
        return text
    try:
        float(text)
    except ValueError:
        return "'" + text
    return text


class CSVExporter:
    """Exports report documents as a directory of CSV files.

    Usage:
        exporter = CSVExporter("output")
        paths = exporter.export(document)
    """

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(self, document: ReportDocument) -> list[str]:
        """Write one CSV per section.

        Returns:
            Paths of the written files, in section order
        """
        csv_dir = self.output_dir / f"{document.file_stem}_csv"
        csv_dir.mkdir(parents=True, exist_ok=True)

        sections = document.ordered_sections
        names = unique_sheet_names(s.title for s in sections)
        paths = []

        for index, (section, name) in enumerate(zip(sections, names), start=1):
            header, rows = render_sheet(section)
            filename = csv_dir / f"{index:02d}_{UNSAFE_FILE_CHARS.sub('_', name)}.csv"
            with open(filename, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(header)
                for row in rows:
                    writer.writerow([csv_text(cell.text) for cell in row])
            logger.debug(f"[*] Exported {filename.name} ({len(rows)} records)")
            paths.append(str(filename))

        logger.info(f"[+] CSV files saved to: {csv_dir} ({len(paths)} files)")
        return paths
