"""Tests for report assembly across output formats."""

import csv
from html.parser import HTMLParser
from pathlib import Path

import pytest
from openpyxl import load_workbook

from invad.analysis.normalizer import AttributeNormalizer
from invad.analysis.privileged import PrivilegedMembershipResolver
from invad.config import ReportFormat
from invad.errors import OutputFailed, UnsupportedFormatBackend
from invad.model.tree_builder import TreeBuilder
from invad.reporting.diagram import build_topology_graph, to_dot
from invad.reporting.export_html import HTMLExporter, anchor_for
from invad.reporting.export_xlsx import TOC_SHEET, sanitize_sheet_name, unique_sheet_names
from invad.reporting.highlighting import StyleTag
from invad.reporting.report_builder import ReportAssembler
from invad.reporting.sections import (
    ReportDocument, ReportSection, build_domain_document, build_forest_document,
)

from conftest import AS_OF


@pytest.fixture
def domain_document(corp_records, inventory_config):
    dataset = AttributeNormalizer(inventory_config, as_of=AS_OF).normalize_all(corp_records)
    resolver = PrivilegedMembershipResolver(inventory_config)
    resolution = resolver.resolve(dataset)
    resolver.apply(resolution, dataset.accounts)
    return build_domain_document("corp.local", dataset, resolution, name_prefix="test")


@pytest.fixture
def forest_parts(forest_tree_records):
    tree = TreeBuilder().build(forest_tree_records, root_name="corp.local")
    dataset = AttributeNormalizer(as_of=AS_OF).normalize_all(forest_tree_records)
    document = build_forest_document("corp.local", dataset, tree, name_prefix="test")
    return document, build_topology_graph(tree, dataset)


class SectionTableParser(HTMLParser):
    """Collects (text, data-style) cells of the table inside one section div."""

    def __init__(self, anchor):
        super().__init__()
        self.anchor = anchor
        self.inside = False
        self.depth = 0
        self.rows = []
        self._cell = None

    def handle_starttag(self, tag, attrs):
        attrs = dict(attrs)
        if tag == "div":
            if self.inside:
                self.depth += 1
            elif attrs.get("id") == self.anchor:
                self.inside = True
                self.depth = 0
        if not self.inside:
            return
        if tag == "tr":
            self.rows.append([])
        elif tag == "td":
            self._cell = ["", attrs.get("data-style")]

    def handle_endtag(self, tag):
        if not self.inside:
            return
        if tag == "td" and self._cell is not None:
            self.rows[-1].append(tuple(self._cell))
            self._cell = None
        elif tag == "div":
            if self.depth == 0:
                self.inside = False
            else:
                self.depth -= 1

    def handle_data(self, data):
        if self._cell is not None:
            self._cell[0] += data


def html_cells(markup, section):
    parser = SectionTableParser(anchor_for(section))
    parser.feed(markup)
    # Header row has no <td> cells
    return [row for row in parser.rows if row]


def sheet_cells(path, sheet_name):
    fills = {tag.fill_color: tag.value for tag in StyleTag}
    wb = load_workbook(path)
    ws = wb[sheet_name]
    rows = []
    for row in ws.iter_rows(min_row=2):
        cells = []
        for cell in row:
            color = cell.fill.fgColor.rgb if cell.fill is not None and cell.fill.fill_type == "solid" else None
            style = next((v for fill, v in fills.items() if isinstance(color, str) and color.endswith(fill)), None)
            cells.append(("" if cell.value is None else str(cell.value), style))
        rows.append(cells)
    wb.close()
    return rows


class TestSheetNames:
    def test_forbidden_characters_removed(self):
        assert sanitize_sheet_name("Users: [All]*?") == "Users All"
        assert sanitize_sheet_name("a/b\\c") == "abc"

    def test_truncated_to_31(self):
        assert len(sanitize_sheet_name("x" * 50)) == 31

    def test_empty_falls_back(self):
        assert sanitize_sheet_name("[]") == "Sheet"

    def test_collisions_case_insensitive(self):
        assert unique_sheet_names(["Users", "users", "USERS"]) == ["Users", "users (2)", "USERS (3)"]

    def test_collision_after_truncation(self):
        first = "Privileged Accounts Nested Group Members A"
        second = "Privileged Accounts Nested Group Members B"
        names = unique_sheet_names([first, second])

        assert names[0] == first[:31]
        assert names[1].endswith(" (2)")
        assert len(names[1]) <= 31
        assert names[0].lower() != names[1].lower()

    def test_reserved_name(self):
        assert unique_sheet_names(["Table of Contents"]) == ["Table of Contents (2)"]


class TestAssembler:
    def test_html_single_document(self, domain_document, tmp_path):
        result = ReportAssembler(str(tmp_path)).assemble(domain_document, "html")

        assert result.ok
        [path] = result.artifacts["html"]
        assert Path(path).name == "test_domain_corp.local.html"
        markup = Path(path).read_text(encoding="utf-8")
        for section in domain_document.sections:
            assert f'id="{anchor_for(section)}"' in markup

    def test_xlsx_sheet_per_section(self, domain_document, tmp_path):
        result = ReportAssembler(str(tmp_path)).assemble(domain_document, [ReportFormat.XLSX])

        [path] = result.artifacts["xlsx"]
        wb = load_workbook(path)
        assert wb.sheetnames == [TOC_SHEET] + [s.title for s in domain_document.ordered_sections]
        users = wb["Users"]
        assert users.freeze_panes == "A2"
        assert [c.value for c in users[1]][:3] == ["Account", "Display Name", "User Principal Name"]
        wb.close()

    def test_csv_file_per_section(self, domain_document, tmp_path):
        result = ReportAssembler(str(tmp_path)).assemble(domain_document, "csv")

        paths = result.artifacts["csv"]
        assert len(paths) == len(domain_document.sections)
        assert Path(paths[0]).name == "01_Domain_Summary.csv"
        with open(paths[2], newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[0][:2] == ["Seed Group", "Account"]
        assert [r[1] for r in rows[1:]] == ["alice", "carol", "alice"]

    def test_formats_agree_on_highlights(self, domain_document, tmp_path):
        result = ReportAssembler(str(tmp_path)).assemble(domain_document, "html,xlsx")
        markup = Path(result.artifacts["html"][0]).read_text(encoding="utf-8")

        for section in domain_document.ordered_sections:
            if section.kind.value != "table":
                continue
            from_html = html_cells(markup, section)
            from_sheet = sheet_cells(result.artifacts["xlsx"][0], section.title)
            assert [[style for _, style in row] for row in from_html] == \
                [[style for _, style in row] for row in from_sheet], section.title
            assert len(from_html) == len(section.rows)

    def test_failed_backend_does_not_stop_other_formats(self, domain_document, tmp_path, monkeypatch):
        monkeypatch.setattr("invad.reporting.export_xlsx.OPENPYXL_AVAILABLE", False)

        result = ReportAssembler(str(tmp_path)).assemble(domain_document, "html,xlsx,csv")

        assert isinstance(result.failures["xlsx"], UnsupportedFormatBackend)
        assert "html" in result.artifacts
        assert "csv" in result.artifacts
        assert not result.ok

    def test_unwritable_output_recorded(self, domain_document, tmp_path):
        assembler = ReportAssembler(str(tmp_path))
        (tmp_path / "test_domain_corp.local.html").mkdir()

        result = assembler.assemble(domain_document, "html")

        assert isinstance(result.failures["html"], OSError)

    def test_assembling_twice_gives_same_html(self, domain_document, tmp_path):
        exporter = HTMLExporter(str(tmp_path))
        assert exporter.render(domain_document) == exporter.render(domain_document)

    def test_empty_document(self, tmp_path):
        document = ReportDocument("test", "Empty", "domain", "empty.local")
        document.add_section(ReportSection.table("Nothing", [], columns=("A",)))

        result = ReportAssembler(str(tmp_path)).assemble(document, "all")

        assert result.ok
        assert "No entries." in Path(result.artifacts["html"][0]).read_text(encoding="utf-8")

    def test_formula_like_values_stay_text(self, tmp_path):
        document = ReportDocument("test", "Formulas", "domain", "corp.local")
        document.add_section(ReportSection.table("Users", [
            {"Account": "mallory", "Description": "=1+1"},
            {"Account": "-5", "Description": "@SUM(A1)"},
        ], columns=("Account", "Description")))

        result = ReportAssembler(str(tmp_path)).assemble(document, "xlsx,csv")

        ws = load_workbook(result.artifacts["xlsx"][0])["Users"]
        assert ws["B2"].value == "=1+1"
        assert ws["B2"].data_type == "s"
        with open(result.artifacts["csv"][0], newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[1] == ["mallory", "'=1+1"]
        assert rows[2] == ["-5", "'@SUM(A1)"]

    def test_toc_link_quotes_apostrophes(self, tmp_path):
        document = ReportDocument("test", "Quotes", "domain", "corp.local")
        document.add_section(ReportSection.table("O'Brien", [{"A": 1}], columns=("A",)))

        result = ReportAssembler(str(tmp_path)).assemble(document, "xlsx")

        toc = load_workbook(result.artifacts["xlsx"][0])[TOC_SHEET]
        [link] = [row[0].hyperlink for row in toc.iter_rows() if row[0].value == "O'Brien"]
        assert (link.target or link.location) == "#'O''Brien'!A1"

    def test_unexpected_exporter_error_fails_only_that_format(self, domain_document, tmp_path, monkeypatch):
        def broken_export(self, document, filename=""):
            raise ValueError("engine rejected a value")

        monkeypatch.setattr("invad.reporting.export_xlsx.XLSXExporter.export", broken_export)

        result = ReportAssembler(str(tmp_path)).assemble(domain_document, "html,xlsx,csv")

        failure = result.failures["xlsx"]
        assert isinstance(failure, OutputFailed)
        assert failure.kind == "output_failed"
        assert failure.subject == "xlsx"
        assert isinstance(failure.__cause__, ValueError)
        assert set(result.artifacts) == {"html", "csv"}


class TestSideCars:
    def test_dot_side_car_written_on_request(self, forest_parts, tmp_path):
        document, topology = forest_parts

        result = ReportAssembler(str(tmp_path)).assemble(document, "html", topology=topology, diagrams=True)

        [dot_path] = result.artifacts["dot"]
        assert Path(dot_path).name == "test_forest_corp.local_topology.dot"
        text = Path(dot_path).read_text(encoding="utf-8")
        assert text.startswith('digraph "test_forest_corp.local"')
        assert '"domain:partner.com"' in text
        assert 'label="Bidirectional, transitive"' in text
        assert "topology" in result.artifacts

    def test_no_side_cars_without_request(self, forest_parts, tmp_path):
        document, topology = forest_parts
        result = ReportAssembler(str(tmp_path)).assemble(document, "html", topology=topology)
        assert set(result.artifacts) == {"html"}

    def test_topology_graph_shape(self, forest_parts):
        _, topology = forest_parts

        assert topology.nodes["forest:corp.local"]["kind"] == "forest"
        assert topology.nodes["dc=corp,dc=local"]["kind"] == "domain"
        assert topology.has_edge("forest:corp.local", "site:default-first-site-name")
        assert topology.edges["dc=corp,dc=local", "domain:partner.com"]["kind"] == "trust"

    def test_dot_output_is_stable(self, forest_parts):
        _, topology = forest_parts
        assert to_dot(topology) == to_dot(topology.copy())

    def test_forest_document_sections(self, forest_parts):
        document, _ = forest_parts
        assert [s.title for s in document.sections] == [
            "Forest Summary", "Domains", "Sites", "Trusts", "Container Tree", "Organizational Units",
        ]
        trusts = next(s for s in document.sections if s.title == "Trusts")
        assert trusts.rows[0]["Partner"] == "partner.com"
