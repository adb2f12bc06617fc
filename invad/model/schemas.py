"""
invAD Data Schemas
==================

Typed dataclasses representing directory objects at each pipeline stage.

Design Decisions:
-----------------
1. DirectoryRecord is the immutable raw form returned by query adapters
2. Attribute names are case-insensitive, as they are in LDAP
3. Normalized* records carry the canonical report schema per object class
4. Only the privileged resolver touches NormalizedAccount after creation

Schema Hierarchy:
- DirectoryRecord (raw)
- NormalizedAccount / NormalizedGroup / NormalizedComputer (domain report)
- NormalizedDomain / NormalizedSite / NormalizedTrust / NormalizedContainer
  (forest report)
- PrivilegedGroup, PrivilegedMembership (resolver output)
- NormalizedDataset: bucketed normalizer output for one scope
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Optional, Mapping


class ObjectClass(Enum):
    """Object-class tags for directory records."""
    CONTAINER = "container"
    ORGANIZATIONAL_UNIT = "organizationalUnit"
    USER = "user"
    GROUP = "group"
    COMPUTER = "computer"
    SITE = "site"
    TRUST = "trust"
    DOMAIN = "domain"
    UNKNOWN = "unknown"

    @classmethod
    def from_values(cls, values) -> "ObjectClass":
        """Pick the most specific tag from a raw multi-valued objectClass.

        computer derives from user in the AD schema, so it is checked first.
        """
        lowered = {str(v).strip().lower() for v in values}

        precedence = [
            ("computer", cls.COMPUTER),
            ("group", cls.GROUP),
            ("user", cls.USER),
            ("inetorgperson", cls.USER),
            ("trusteddomain", cls.TRUST),
            ("site", cls.SITE),
            ("domaindns", cls.DOMAIN),
            ("domain", cls.DOMAIN),
            ("organizationalunit", cls.ORGANIZATIONAL_UNIT),
            ("container", cls.CONTAINER),
            ("builtindomain", cls.CONTAINER),
        ]
        for raw, tag in precedence:
            if raw in lowered:
                return tag
        return cls.UNKNOWN

    @classmethod
    def from_string(cls, s: str) -> "ObjectClass":
        """Convert a stored tag back to an ObjectClass."""
        normalized = (s or "").strip().lower()
        for object_class in cls:
            if object_class.value.lower() == normalized:
                return object_class
        return cls.UNKNOWN

    @property
    def is_container(self) -> bool:
        return self in (ObjectClass.CONTAINER, ObjectClass.ORGANIZATIONAL_UNIT, ObjectClass.DOMAIN)


def _coerce_values(value) -> tuple:
    """Coerce a raw attribute value into a tuple of strings."""
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        items = [value]

    result = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, bytes):
            item = item.decode("utf-8", errors="replace")
        elif isinstance(item, datetime):
            item = item.strftime("%Y%m%d%H%M%S.0Z")
        result.append(str(item))
    return tuple(result)


@dataclass(frozen=True)
class DirectoryRecord:
    """A raw directory object as returned by a query adapter.

    Attributes:
        identifier: Distinguished name, unique within a query scope
        attributes: Read-only mapping of lower-cased attribute name to values
        object_class: Object-class tag

    Use DirectoryRecord.create() rather than the constructor; it coerces
    values and lower-cases attribute names.
    """
    identifier: str
    attributes: Mapping[str, tuple]
    object_class: ObjectClass = ObjectClass.UNKNOWN

    @classmethod
    def create(
        cls,
        identifier: str,
        attributes: Optional[dict] = None,
        object_class: Optional[ObjectClass] = None
    ) -> "DirectoryRecord":
        normalized = {}
        for name, value in (attributes or {}).items():
            values = _coerce_values(value)
            key = name.lower()
            # Ranged/duplicate keys from different casings are merged
            normalized[key] = normalized.get(key, ()) + values

        if object_class is None:
            object_class = ObjectClass.from_values(normalized.get("objectclass", ()))

        return cls(
            identifier=str(identifier),
            attributes=MappingProxyType(normalized),
            object_class=object_class,
        )

    def values(self, name: str) -> tuple:
        """All values of an attribute, or an empty tuple."""
        return self.attributes.get(name.lower(), ())

    def first(self, name: str, default: str = "") -> str:
        """First value of an attribute, or the default."""
        values = self.values(name)
        return values[0] if values else default

    def has(self, name: str) -> bool:
        """Whether the attribute is present with at least one value."""
        return bool(self.values(name))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "identifier": self.identifier,
            "object_class": self.object_class.value,
            "attributes": {k: list(v) for k, v in self.attributes.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DirectoryRecord":
        return cls.create(
            data["identifier"],
            data.get("attributes", {}),
            ObjectClass.from_string(data.get("object_class", "")),
        )


@dataclass
class NormalizedAccount:
    """Canonical user-account row for the domain report.

    privileged and privileged_via are only ever set by the
    PrivilegedMembershipResolver.
    """
    identifier: str
    account_name: str
    display_name: str = ""
    description: str = ""
    user_principal_name: str = ""
    enabled: bool = True
    locked: bool = False
    password_never_expires: bool = False
    password_last_set: Optional[datetime] = None
    last_logon: Optional[datetime] = None
    member_of: tuple = ()
    service_principal_names: tuple = ()
    admin_count: bool = False
    stale: bool = False
    privileged: bool = False
    privileged_via: tuple = ()


@dataclass(frozen=True)
class NormalizedGroup:
    """Canonical group row."""
    identifier: str
    name: str
    description: str = ""
    scope: str = ""
    security_enabled: bool = True
    members: tuple = ()
    member_of: tuple = ()
    admin_count: bool = False


@dataclass(frozen=True)
class NormalizedComputer:
    """Canonical computer row."""
    identifier: str
    name: str
    dns_hostname: str = ""
    operating_system: str = ""
    operating_system_version: str = ""
    enabled: bool = True
    last_logon: Optional[datetime] = None
    stale: bool = False
    is_domain_controller: bool = False
    member_of: tuple = ()


@dataclass(frozen=True)
class NormalizedDomain:
    """A domain head (domainDNS object)."""
    identifier: str
    dns_name: str
    netbios_name: str = ""
    functional_level: str = ""
    created: Optional[datetime] = None


@dataclass(frozen=True)
class NormalizedSite:
    """A replication site from the configuration partition."""
    identifier: str
    name: str
    description: str = ""
    location: str = ""


@dataclass(frozen=True)
class NormalizedTrust:
    """A trustedDomain object. Recorded, never validated."""
    identifier: str
    source_domain: str
    partner: str
    direction: str = ""
    trust_type: str = ""
    transitive: bool = False
    created: Optional[datetime] = None


@dataclass(frozen=True)
class NormalizedContainer:
    """A container or organizational unit."""
    identifier: str
    name: str
    kind: str
    description: str = ""


@dataclass
class PrivilegedGroup:
    """A group discovered while expanding a seed group.

    Attributes:
        identifier: DN of the group
        name: Display name of the group
        seed: Seed group through which it was discovered
        depth: Nesting depth from the seed (seed itself is 0)
        members: Direct member identifiers
    """
    identifier: str
    name: str
    seed: str
    depth: int
    members: tuple = ()


@dataclass
class PrivilegedMembership:
    """One account reached from one seed group.

    Attributes:
        seed: Seed group name
        identifier: Account DN
        account_name: Account name for display and ordering
        depth: Shortest nesting depth from the seed (direct member is 1)
        via: Names of the groups that directly contain the account at its
            shortest depth, in discovery order
        account: NormalizedAccount when the account is in the dataset
    """
    seed: str
    identifier: str
    account_name: str
    depth: int
    via: tuple = ()
    account: Optional[NormalizedAccount] = None


@dataclass
class NormalizedDataset:
    """Normalizer output for one scope, bucketed by record type."""
    accounts: list = field(default_factory=list)
    groups: list = field(default_factory=list)
    computers: list = field(default_factory=list)
    domains: list = field(default_factory=list)
    sites: list = field(default_factory=list)
    trusts: list = field(default_factory=list)
    containers: list = field(default_factory=list)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in (
            self.accounts, self.groups, self.computers, self.domains,
            self.sites, self.trusts, self.containers
        ))


@dataclass
class DomainStats:
    """Headline counts for the domain summary section."""
    total_users: int = 0
    enabled_users: int = 0
    disabled_users: int = 0
    locked_users: int = 0
    stale_users: int = 0
    password_never_expires: int = 0
    privileged_users: int = 0
    total_groups: int = 0
    total_computers: int = 0
    domain_controllers: int = 0
    stale_computers: int = 0

    @classmethod
    def from_dataset(cls, dataset: NormalizedDataset) -> "DomainStats":
        accounts = dataset.accounts
        computers = dataset.computers
        return cls(
            total_users=len(accounts),
            enabled_users=sum(1 for a in accounts if a.enabled),
            disabled_users=sum(1 for a in accounts if not a.enabled),
            locked_users=sum(1 for a in accounts if a.locked),
            stale_users=sum(1 for a in accounts if a.enabled and a.stale),
            password_never_expires=sum(1 for a in accounts if a.password_never_expires),
            privileged_users=sum(1 for a in accounts if a.privileged),
            total_groups=len(dataset.groups),
            total_computers=len(computers),
            domain_controllers=sum(1 for c in computers if c.is_domain_controller),
            stale_computers=sum(1 for c in computers if c.enabled and c.stale),
        )

    def to_dict(self) -> dict:
        """Convert to an ordered property mapping for pivot rendering."""
        return {
            "Users": self.total_users,
            "Enabled Users": self.enabled_users,
            "Disabled Users": self.disabled_users,
            "Locked Users": self.locked_users,
            "Stale Enabled Users": self.stale_users,
            "Password Never Expires": self.password_never_expires,
            "Privileged Users": self.privileged_users,
            "Groups": self.total_groups,
            "Computers": self.total_computers,
            "Domain Controllers": self.domain_controllers,
            "Stale Enabled Computers": self.stale_computers,
        }
