"""
invAD Reporting Module
======================

Report sections, rendering and output formats.

Components:
- sections.py: Section/document model and the forest/domain section builders
- highlighting.py: Conditional highlight rules
- table_renderer.py: Sections -> styled cell grids, HTML tables, sheet rows
- report_builder.py: Emits documents in every requested format
- export_html.py / export_xlsx.py / export_csv.py: Per-format writers
- diagram.py / visualization.py: Topology side-cars (DOT, pyvis)
"""

from .sections import ReportSection, ReportDocument, SectionKind, build_forest_document, build_domain_document
from .highlighting import HighlightRule, StyleTag, resolve_style
from .table_renderer import render_table, render_html_table, render_sheet
from .report_builder import ReportAssembler, AssemblyResult
from .export_html import HTMLExporter
from .export_xlsx import XLSXExporter
from .export_csv import CSVExporter
