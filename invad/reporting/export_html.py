"""
HTML Export Module
==================

Exports a ReportDocument as a single standalone HTML file.

Features:
- Self-contained HTML with embedded styles
- Table of contents linking every section
- Inline-styled highlight cells (survive copy/paste into mail or wikis)

Design Decisions:
-----------------
1. Single-file HTML for easy sharing
2. No external dependencies (CSS inline)
3. Sections are concatenated in document order
4. Print-friendly styling
"""

import html
import re
from pathlib import Path

from .sections import ReportDocument, ReportSection
from .table_renderer import render_html_table
from .. import __version__


def anchor_for(section: ReportSection) -> str:
    """Stable in-page anchor for a section."""
    slug = re.sub(r"[^a-z0-9]+", "-", section.title.lower()).strip("-")
    return f"s{section.index}-{slug}"


class HTMLExporter:
    """Exports report documents to HTML format.

    Usage:
        exporter = HTMLExporter("output")
        html_path = exporter.export(document)
    """

    # CSS styles for the report
    CSS = """
    :root {
        --bg-page: #f7fafc;
        --bg-card: #ffffff;
        --border: #e2e8f0;
        --text-primary: #1a202c;
        --text-secondary: #4a5568;
        --accent: #2b6cb0;
        --header-bg: #2d3748;
    }

    * {
        box-sizing: border-box;
    }

    body {
        font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
        background-color: var(--bg-page);
        color: var(--text-primary);
        line-height: 1.5;
        margin: 0;
        padding: 2rem;
    }

    .container {
        max-width: 1400px;
        margin: 0 auto;
    }

    .header {
        border-bottom: 3px solid var(--accent);
        margin-bottom: 2rem;
    }

    .header h1 {
        color: var(--accent);
        margin-bottom: 0.25rem;
    }

    .header .subtitle {
        color: var(--text-secondary);
        margin: 0.25rem 0;
    }

    .toc {
        background: var(--bg-card);
        border: 1px solid var(--border);
        border-radius: 6px;
        padding: 1rem 1.5rem;
        margin-bottom: 2rem;
    }

    .toc ol {
        margin: 0;
        columns: 2;
    }

    .section {
        background: var(--bg-card);
        border: 1px solid var(--border);
        border-radius: 6px;
        padding: 1rem 1.5rem;
        margin-bottom: 1.5rem;
        overflow-x: auto;
    }

    .section h2 {
        margin-top: 0;
        font-size: 1.3rem;
    }

    .section .lead {
        color: var(--text-secondary);
    }

    .report-table {
        width: 100%;
        border-collapse: collapse;
        font-size: 0.85rem;
    }

    .report-table th {
        background: var(--header-bg);
        color: #ffffff;
        text-align: left;
        padding: 0.4rem 0.6rem;
        white-space: nowrap;
    }

    .report-table td {
        padding: 0.35rem 0.6rem;
        border-bottom: 1px solid var(--border);
        vertical-align: top;
    }

    .report-table.pivot td:first-child {
        font-weight: 600;
        width: 30%;
    }

    .empty {
        color: var(--text-secondary);
        font-style: italic;
    }

    .footer {
        margin-top: 3rem;
        text-align: center;
        color: var(--text-secondary);
        font-size: 0.85rem;
        padding-top: 1rem;
        border-top: 1px solid var(--border);
    }

    @media print {
        body {
            background: white;
            padding: 0;
        }
        .section {
            page-break-inside: avoid;
            border: none;
        }
    }
    """

    def __init__(self, output_dir: str = "output"):
        """Initialize the HTML exporter.

        Args:
            output_dir: Directory for output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(self, document: ReportDocument, filename: str = "") -> str:
        """Export a document to HTML.

        Args:
            document: ReportDocument to render
            filename: Output filename (defaults to the document's file stem)

        Returns:
            Path to generated HTML file
        """
        output_path = self.output_dir / (filename or f"{document.file_stem}.html")

        html_content = self.render(document)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(html_content)

        return str(output_path)

    def render(self, document: ReportDocument) -> str:
        """Generate the complete HTML document."""
        sections = document.ordered_sections

        parts = [
            self._generate_header(document),
            self._generate_toc(sections),
        ]
        parts.extend(self._generate_section(s) for s in sections)
        parts.append(self._generate_footer())

        body_content = "\n".join(parts)

        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(document.title)}</title>
    <style>
    {self.CSS}
    </style>
</head>
<body>
    <div class="container">
        {body_content}
    </div>
</body>
</html>"""

    def _generate_header(self, document: ReportDocument) -> str:
        """Generate report header."""
        timestamp = document.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        return f"""
        <div class="header">
            <h1>{html.escape(document.title)}</h1>
            <p class="subtitle">Scope: {html.escape(document.scope)} &middot; {html.escape(document.subject)}</p>
            <p class="subtitle">Generated: {html.escape(timestamp)}</p>
        </div>
        """

    def _generate_toc(self, sections: list[ReportSection]) -> str:
        """Generate the table of contents."""
        items = "".join(
            f'<li><a href="#{anchor_for(s)}">{html.escape(s.title)}</a> ({s.row_count})</li>'
            for s in sections
        )
        return f"""
        <div class="toc">
            <h2>Contents</h2>
            <ol>{items}</ol>
        </div>
        """

    def _generate_section(self, section: ReportSection) -> str:
        """Generate one section block."""
        lead = f'<p class="lead">{html.escape(section.description)}</p>' if section.description else ""
        table_class = "report-table pivot" if section.kind.value == "pivot" else "report-table"
        return f"""
        <div class="section" id="{anchor_for(section)}">
            <h2>{html.escape(section.title)}</h2>
            {lead}
            {render_html_table(section, table_class)}
        </div>
        """

    def _generate_footer(self) -> str:
        """Generate report footer."""
        return f"""
        <div class="footer">
            <p>Generated by invAD {__version__} - Active Directory Forest &amp; Domain Inventory</p>
            <p>Read-only inventory. No directory objects were modified.</p>
        </div>
        """
