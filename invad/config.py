"""
invAD Configuration Module
==========================

Centralized configuration management for the invAD framework.

Design Decision:
- InventoryConfig is immutable and shared read-only by every pipeline
  (privileged-group seeds, staleness threshold, depth cap)
- Run-time toggles (formats, scope, save/load) live in RunOptions
- LDAP credentials never live here; they are passed to the adapter directly
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Optional


# Default seed list. Operators are expected to override it for their forest.
DEFAULT_PRIVILEGED_GROUPS = (
    "Domain Admins",
    "Enterprise Admins",
    "Schema Admins",
    "Administrators",
    "Account Operators",
    "Backup Operators",
    "Server Operators",
    "Print Operators",
    "DnsAdmins",
    "Group Policy Creator Owners",
    "Key Admins",
    "Enterprise Key Admins",
)


class ReportFormat(Enum):
    """Output formats understood by the report assembler."""
    HTML = "html"    # single document
    XLSX = "xlsx"    # multi-sheet workbook
    CSV = "csv"      # one file per section

    @classmethod
    def parse_list(cls, value) -> tuple:
        """Parse a format selector into an ordered tuple of formats.

        Accepts a ReportFormat, a string such as "html", "xlsx,csv" or
        "all", or an iterable of either. Duplicates are dropped.
        """
        if isinstance(value, cls):
            return (value,)
        if isinstance(value, str):
            if value.strip().lower() in ("all", "both"):
                return (cls.HTML, cls.XLSX)
            items = [v for v in value.split(",") if v.strip()]
        else:
            items = list(value)

        formats = []
        for item in items:
            fmt = item if isinstance(item, cls) else cls(str(item).strip().lower())
            if fmt not in formats:
                formats.append(fmt)
        return tuple(formats)


class ReportScope(Enum):
    """Which report families to produce."""
    FOREST = "forest"
    DOMAIN = "domain"
    BOTH = "both"

    @property
    def includes_forest(self) -> bool:
        return self in (ReportScope.FOREST, ReportScope.BOTH)

    @property
    def includes_domain(self) -> bool:
        return self in (ReportScope.DOMAIN, ReportScope.BOTH)


@dataclass(frozen=True)
class InventoryConfig:
    """Read-only settings consumed by the normalizer, tree builder and resolver.

    Attributes:
        privileged_groups: Seed group names for the privileged closure
        stale_after_days: Accounts with no logon inside this window are stale
        max_membership_depth: Nesting depth at which closure branches stop
        tree_depth_warning: Tree depth above which records are logged
        list_separator: Separator for flattened multi-valued display fields
    """
    privileged_groups: tuple = DEFAULT_PRIVILEGED_GROUPS
    stale_after_days: int = 90
    max_membership_depth: int = 10
    tree_depth_warning: int = 32
    list_separator: str = "; "

    def __post_init__(self):
        # Lists from JSON/CLI input are frozen so the config stays hashable
        object.__setattr__(self, "privileged_groups", tuple(self.privileged_groups))
        if self.max_membership_depth < 1:
            raise ValueError("max_membership_depth must be at least 1")
        if self.stale_after_days < 0:
            raise ValueError("stale_after_days must not be negative")


@dataclass
class LDAPConfig:
    """Configuration for the LDAP query adapter.

    Attributes:
        use_ssl: Whether to use LDAPS (port 636) vs LDAP (port 389)
        page_size: Page size for LDAP queries
        timeout: Connection timeout in seconds
    """
    use_ssl: bool = False
    port: Optional[int] = None  # Auto-detect based on use_ssl
    page_size: int = 1000
    timeout: int = 30

    def __post_init__(self):
        if self.port is None:
            self.port = 636 if self.use_ssl else 389


@dataclass
class OutputConfig:
    """Configuration for output and reporting.

    Attributes:
        output_dir: Directory for report artifacts
        name_prefix: Prefix for every artifact file name
    """
    output_dir: str = "output"
    name_prefix: str = "invad"

    def __post_init__(self):
        """Ensure output directory exists."""
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)


@dataclass
class RunOptions:
    """Per-run toggles.

    Attributes:
        formats: Report formats to emit (see ReportFormat.parse_list)
        scope: Forest report, domain reports, or both
        export_all_accounts: Include full user/group/computer tables
        diagrams: Emit topology side-car files with the forest report
        save_dataset: Persist the gathered record sets
        load_dataset: Read record sets from disk instead of querying
        dataset_name: Base name for persisted datasets
        domains: Restrict domain reports to these DNS names (None = all)
        scope_timeout: Seconds before a single scope pipeline is abandoned
        max_workers: Concurrent scope pipelines
    """
    formats: tuple = (ReportFormat.HTML,)
    scope: ReportScope = ReportScope.BOTH
    export_all_accounts: bool = True
    diagrams: bool = False
    save_dataset: bool = False
    load_dataset: bool = False
    dataset_name: str = "inventory"
    domains: Optional[tuple] = None
    scope_timeout: Optional[float] = None
    max_workers: int = 4

    def __post_init__(self):
        self.formats = ReportFormat.parse_list(self.formats)
        if not isinstance(self.scope, ReportScope):
            self.scope = ReportScope(str(self.scope).lower())
        if self.domains is not None:
            self.domains = tuple(d.lower() for d in self.domains)


@dataclass
class InvadConfig:
    """Main configuration container for the invAD framework.

    Usage:
        config = InvadConfig()  # Uses all defaults
        config = InvadConfig(run=RunOptions(formats="html,xlsx"))
    """
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    ldap: LDAPConfig = field(default_factory=LDAPConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    run: RunOptions = field(default_factory=RunOptions)

    verbose: bool = False

    @classmethod
    def from_dict(cls, config_dict: dict) -> "InvadConfig":
        """Create configuration from a dictionary (JSON file or CLI input)."""
        return cls(
            inventory=InventoryConfig(**config_dict.get("inventory", {})),
            ldap=LDAPConfig(**config_dict.get("ldap", {})),
            output=OutputConfig(**config_dict.get("output", {})),
            run=RunOptions(**config_dict.get("run", {})),
            verbose=config_dict.get("verbose", False),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for serialization."""
        data = asdict(self)
        data["run"]["formats"] = [f.value for f in self.run.formats]
        data["run"]["scope"] = self.run.scope.value
        return data
