"""
Report Section Model
====================

Sections are the unit every output format is built from.

Design Decisions:
-----------------
1. A section is either a table (rows in upstream order) or a pivot (one
   entity's properties, transposed at render time)
2. Rows are read-only mappings holding raw values; formatting belongs to the
   renderer, so one section can feed HTML, workbook and CSV output alike
3. A ReportDocument owns its sections; section order is the index assigned
   when the section is added
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Optional

from ..model.dn import fqdn_to_dn
from ..model.schemas import DomainStats, NormalizedDataset
from ..model.tree_builder import TreeBuildResult, flatten_tree
from .highlighting import ACCOUNT_RULES, TRUST_RULES, TREE_RULES, GROUP_RULES, NOTE_RULES


class SectionKind(Enum):
    TABLE = "table"
    PIVOT = "pivot"


@dataclass(frozen=True)
class ReportSection:
    """A titled block of report content.

    Attributes:
        title: Section heading (also the sheet / CSV name)
        kind: TABLE or PIVOT
        columns: Column order for TABLE; property order for PIVOT
        rows: Read-only row mappings
        rules: Highlight rules, evaluated in order
        index: Position within the owning document
        description: Optional lead-in text
    """
    title: str
    kind: SectionKind
    columns: tuple
    rows: tuple
    rules: tuple = ()
    index: int = 0
    description: str = ""

    @classmethod
    def table(cls, title: str, rows, columns=None, rules=(), description: str = "") -> "ReportSection":
        """Build a tabular section. Columns default to the first row's keys."""
        frozen = tuple(MappingProxyType(dict(row)) for row in rows)
        if columns is None:
            columns = tuple(frozen[0].keys()) if frozen else ()
        return cls(title, SectionKind.TABLE, tuple(columns), frozen, tuple(rules), description=description)

    @classmethod
    def pivot(cls, title: str, properties: dict, rules=(), description: str = "") -> "ReportSection":
        """Build a property/value section for a single entity."""
        row = MappingProxyType(dict(properties))
        return cls(title, SectionKind.PIVOT, tuple(row.keys()), (row,), tuple(rules), description=description)

    @property
    def row_count(self) -> int:
        return len(self.columns) if self.kind == SectionKind.PIVOT else len(self.rows)


@dataclass
class ReportDocument:
    """An ordered set of sections rendered into one or more artifacts.

    Attributes:
        name_prefix: Prefix for every artifact produced from this document
        title: Document heading
        scope: "forest" or "domain"
        subject: Forest or domain DNS name
        sections: Sections, ordered by their index
        notes: Skip and warning lines collected while building
        generated_at: Build time, shown in headers
    """
    name_prefix: str
    title: str
    scope: str
    subject: str
    sections: list = field(default_factory=list)
    notes: list = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def add_section(self, section: ReportSection) -> ReportSection:
        """Append a section, assigning it the next index."""
        placed = ReportSection(
            section.title, section.kind, section.columns, section.rows,
            section.rules, index=len(self.sections), description=section.description
        )
        self.sections.append(placed)
        return placed

    @property
    def ordered_sections(self) -> list[ReportSection]:
        return sorted(self.sections, key=lambda s: s.index)

    @property
    def file_stem(self) -> str:
        """Base file name, e.g. ``invad_domain_corp.local``."""
        return f"{self.name_prefix}_{self.scope}_{self.subject}"


@dataclass(frozen=True)
class RunNote:
    """One skip or warning shown in the Run Notes section."""
    kind: str
    subject: str
    detail: str

    @classmethod
    def from_error(cls, error) -> "RunNote":
        return cls(getattr(error, "kind", "error"), getattr(error, "subject", ""), str(error))


def add_notes_section(document: ReportDocument) -> Optional[ReportSection]:
    """Append the Run Notes section when the document carries notes."""
    if not document.notes:
        return None
    rows = [
        {"Kind": note.kind, "Subject": note.subject, "Detail": note.detail}
        for note in document.notes
    ]
    return document.add_section(ReportSection.table(
        "Run Notes", rows, columns=("Kind", "Subject", "Detail"), rules=NOTE_RULES,
        description="Records skipped and branches truncated while building this report."
    ))


def build_forest_document(
    forest: str,
    dataset: NormalizedDataset,
    tree: TreeBuildResult,
    name_prefix: str = "invad"
) -> ReportDocument:
    """Sections of the forest topology report."""
    document = ReportDocument(
        name_prefix=name_prefix,
        title=f"Forest Inventory: {forest}",
        scope="forest",
        subject=forest,
    )
    document.notes.extend(RunNote.from_error(e) for e in tree.skipped)

    document.add_section(ReportSection.pivot("Forest Summary", {
        "Forest": forest,
        "Root Distinguished Name": fqdn_to_dn(forest),
        "Domains": len(dataset.domains),
        "Sites": len(dataset.sites),
        "Trusts": len(dataset.trusts),
        "Containers": sum(1 for c in dataset.containers if c.kind == "Container"),
        "Organizational Units": sum(1 for c in dataset.containers if c.kind == "Organizational Unit"),
        "Tree Nodes": tree.node_count,
        "Skipped Records": len(tree.skipped),
        "Generated": document.generated_at,
    }))

    document.add_section(ReportSection.table("Domains", [
        {
            "Domain": d.dns_name,
            "NetBIOS Name": d.netbios_name,
            "Functional Level": d.functional_level,
            "Created": d.created,
            "Distinguished Name": d.identifier,
        }
        for d in sorted(dataset.domains, key=lambda d: d.dns_name.lower())
    ], columns=("Domain", "NetBIOS Name", "Functional Level", "Created", "Distinguished Name")))

    document.add_section(ReportSection.table("Sites", [
        {"Site": s.name, "Location": s.location, "Description": s.description}
        for s in sorted(dataset.sites, key=lambda s: s.name.lower())
    ], columns=("Site", "Location", "Description")))

    document.add_section(ReportSection.table("Trusts", [
        {
            "Source Domain": t.source_domain,
            "Partner": t.partner,
            "Direction": t.direction,
            "Type": t.trust_type,
            "Transitive": t.transitive,
            "Created": t.created,
        }
        for t in sorted(dataset.trusts, key=lambda t: (t.source_domain.lower(), t.partner.lower()))
    ], columns=("Source Domain", "Partner", "Direction", "Type", "Transitive", "Created"), rules=TRUST_RULES))

    document.add_section(ReportSection.table(
        "Container Tree", flatten_tree(tree.root),
        columns=("Depth", "Name", "Kind", "Users", "Groups", "Computers", "Objects", "Subtree Objects", "Path"),
        rules=TREE_RULES,
    ))

    document.add_section(ReportSection.table("Organizational Units", [
        {"Name": c.name, "Kind": c.kind, "Description": c.description, "Distinguished Name": c.identifier}
        for c in dataset.containers if c.kind == "Organizational Unit"
    ], columns=("Name", "Kind", "Description", "Distinguished Name")))

    return document


def privileged_account_rows(resolution) -> list[dict]:
    """Rows of the privileged-accounts table, in resolver order."""
    rows = []
    for m in resolution.memberships:
        account = m.account
        rows.append({
            "Seed Group": m.seed,
            "Account": m.account_name,
            "Depth": m.depth,
            "Via Group": "; ".join(m.via),
            "Enabled": account.enabled if account else None,
            "Locked": account.locked if account else None,
            "Password Never Expires": account.password_never_expires if account else None,
            "Stale": account.stale if account else None,
            "Last Logon": account.last_logon if account else None,
            "Password Last Set": account.password_last_set if account else None,
            "Distinguished Name": m.identifier,
        })
    return rows


PRIVILEGED_ACCOUNT_COLUMNS = (
    "Seed Group", "Account", "Depth", "Via Group", "Enabled", "Locked",
    "Password Never Expires", "Stale", "Last Logon", "Password Last Set", "Distinguished Name",
)

USER_COLUMNS = (
    "Account", "Display Name", "User Principal Name", "Enabled", "Locked",
    "Password Never Expires", "Stale", "Privileged", "Privileged Via", "Admin Count",
    "Last Logon", "Password Last Set", "Service Principal Names", "Description",
    "Distinguished Name",
)


def build_domain_document(
    domain: str,
    dataset: NormalizedDataset,
    resolution,
    name_prefix: str = "invad",
    export_all_accounts: bool = True,
    list_separator: str = "; "
) -> ReportDocument:
    """Sections of the per-domain privileged inventory report.

    Args:
        domain: Domain DNS name
        dataset: Normalized records with privileged flags already applied
        resolution: PrivilegedResolution for the dataset
        name_prefix: Artifact name prefix
        export_all_accounts: Include full user, group and computer tables
        list_separator: Separator for multi-valued cells
    """
    document = ReportDocument(
        name_prefix=name_prefix,
        title=f"Domain Inventory: {domain}",
        scope="domain",
        subject=domain,
    )
    document.notes.extend(RunNote.from_error(w) for w in resolution.warnings)

    summary = {"Domain": domain}
    summary.update(DomainStats.from_dataset(dataset).to_dict())
    summary["Truncated Nesting Branches"] = len(resolution.warnings)
    summary["Generated"] = document.generated_at
    document.add_section(ReportSection.pivot("Domain Summary", summary))

    document.add_section(ReportSection.table("Privileged Groups", [
        {
            "Seed Group": g.seed,
            "Group": g.name,
            "Depth": g.depth,
            "Direct Members": len(g.members),
            "Distinguished Name": g.identifier,
        }
        for g in resolution.groups
    ], columns=("Seed Group", "Group", "Depth", "Direct Members", "Distinguished Name"), rules=GROUP_RULES))

    document.add_section(ReportSection.table(
        "Privileged Accounts", privileged_account_rows(resolution),
        columns=PRIVILEGED_ACCOUNT_COLUMNS, rules=ACCOUNT_RULES,
        description="Accounts reachable from each privileged group, grouped by seed group.",
    ))

    if export_all_accounts:
        separator = list_separator
        document.add_section(ReportSection.table("Users", [
            {
                "Account": a.account_name,
                "Display Name": a.display_name,
                "User Principal Name": a.user_principal_name,
                "Enabled": a.enabled,
                "Locked": a.locked,
                "Password Never Expires": a.password_never_expires,
                "Stale": a.stale,
                "Privileged": a.privileged,
                "Privileged Via": separator.join(a.privileged_via),
                "Admin Count": a.admin_count,
                "Last Logon": a.last_logon,
                "Password Last Set": a.password_last_set,
                "Service Principal Names": separator.join(a.service_principal_names),
                "Description": a.description,
                "Distinguished Name": a.identifier,
            }
            for a in sorted(dataset.accounts, key=lambda a: a.account_name.lower())
        ], columns=USER_COLUMNS, rules=ACCOUNT_RULES))

        document.add_section(ReportSection.table("Groups", [
            {
                "Group": g.name,
                "Scope": g.scope,
                "Security": g.security_enabled,
                "Members": len(g.members),
                "Admin Count": g.admin_count,
                "Description": g.description,
                "Distinguished Name": g.identifier,
            }
            for g in sorted(dataset.groups, key=lambda g: g.name.lower())
        ], columns=("Group", "Scope", "Security", "Members", "Admin Count", "Description", "Distinguished Name")))

        document.add_section(ReportSection.table("Computers", [
            {
                "Computer": c.name,
                "DNS Host Name": c.dns_hostname,
                "Operating System": c.operating_system,
                "OS Version": c.operating_system_version,
                "Enabled": c.enabled,
                "Domain Controller": c.is_domain_controller,
                "Stale": c.stale,
                "Last Logon": c.last_logon,
                "Distinguished Name": c.identifier,
            }
            for c in sorted(dataset.computers, key=lambda c: c.name.lower())
        ], columns=(
            "Computer", "DNS Host Name", "Operating System", "OS Version", "Enabled",
            "Domain Controller", "Stale", "Last Logon", "Distinguished Name",
        ), rules=ACCOUNT_RULES))

    return document
