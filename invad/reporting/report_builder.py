"""
Report Assembler Module
=======================

Turns a ReportDocument into output artifacts.

Each requested format is produced independently from the same document:
- html: one standalone document
- xlsx: one workbook, one sheet per section
- csv: one file per section

Design Decisions:
-----------------
1. A failing format (missing backend, unwritable path, exporter error) is recorded and the
   remaining formats still run
2. Side-cars (DOT diagram, interactive topology) are written only when
   requested and a topology graph is supplied; they fail the same way
3. The assembler never touches section data, so a document can be
   assembled again in another format later
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..config import ReportFormat
from ..errors import InventoryError, OutputFailed
from .diagram import DiagramExporter
from .export_csv import CSVExporter
from .export_html import HTMLExporter
from .export_xlsx import XLSXExporter
from .sections import ReportDocument
from .visualization import TopologyVisualizer

logger = logging.getLogger(__name__)


@dataclass
class AssemblyResult:
    """Outcome of ReportAssembler.assemble().

    Attributes:
        artifacts: Output name ("html", "xlsx", "csv", "dot", "topology") ->
            list of written paths
        failures: Output name -> exception that stopped it
    """
    artifacts: dict = field(default_factory=dict)
    failures: dict = field(default_factory=dict)

    @property
    def paths(self) -> list[str]:
        return [p for paths in self.artifacts.values() for p in paths]

    @property
    def ok(self) -> bool:
        return not self.failures


class ReportAssembler:
    """Emits a ReportDocument in every requested format.

    Usage:
        assembler = ReportAssembler("output")
        result = assembler.assemble(document, [ReportFormat.HTML, ReportFormat.XLSX])
        for path in result.paths:
            print(path)
    """

    def __init__(self, output_dir: str = "output"):
        """Initialize the assembler.

        Args:
            output_dir: Directory for output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.exporters = {
            ReportFormat.HTML: HTMLExporter(output_dir),
            ReportFormat.XLSX: XLSXExporter(output_dir),
            ReportFormat.CSV: CSVExporter(output_dir),
        }

    def assemble(
        self,
        document: ReportDocument,
        formats,
        topology=None,
        diagrams: bool = False
    ) -> AssemblyResult:
        """Write the document in each format, then any side-cars.

        Args:
            document: Document to emit
            formats: ReportFormat, list of them, or a selector string
            topology: NetworkX topology graph for side-cars (forest reports)
            diagrams: Whether to emit the side-cars

        Returns:
            AssemblyResult with written paths and per-output failures
        """
        result = AssemblyResult()

        for fmt in ReportFormat.parse_list(formats):
            self._run(result, fmt.value, lambda fmt=fmt: self._export(fmt, document))

        if diagrams and topology is not None:
            prefix = document.file_stem
            self._run(result, "dot", lambda: [DiagramExporter(self.output_dir).export(topology, prefix)])
            self._run(result, "topology", lambda: [TopologyVisualizer(self.output_dir).export(topology, prefix)])
        elif diagrams:
            logger.debug(f"[*] No topology for {document.file_stem}; side-cars skipped")

        return result

    def _export(self, fmt: ReportFormat, document: ReportDocument) -> list[str]:
        output = self.exporters[fmt].export(document)
        return output if isinstance(output, list) else [output]

    def _run(self, result: AssemblyResult, name: str, produce) -> Optional[list]:
        """Run one output step, recording its paths or its failure."""
        try:
            paths = produce()
        except (InventoryError, OSError) as e:
            logger.error(f"[!] {name} output failed: {e}")
            result.failures[name] = e
            return None
        except Exception as e:
            logger.exception(f"[!] {name} output failed unexpectedly")
            failure = OutputFailed(f"{name} output failed: {type(e).__name__}: {e}", subject=name)
            failure.__cause__ = e
            result.failures[name] = failure
            return None
        result.artifacts[name] = paths
        for path in paths:
            logger.info(f"[+] Wrote {path}")
        return paths
