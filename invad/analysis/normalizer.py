"""
Attribute Normalizer
====================

Maps raw directory attributes onto the canonical report schema.

Every field has an explicit presence check and a documented default:
strings default to "", timestamps to None, flags to False and membership
lists to (). Derived flags come from fixed predicates:

- enabled:                 userAccountControl & 0x0002 (ACCOUNTDISABLE) clear
- locked:                  userAccountControl & 0x0010 (LOCKOUT) or lockoutTime > 0
- password_never_expires:  userAccountControl & 0x10000 (DONT_EXPIRE_PASSWORD)
- is_domain_controller:    userAccountControl & 0x2000 (SERVER_TRUST_ACCOUNT)
- stale:                   no last logon, or last logon older than
                           stale_after_days before the normalizer's as_of

as_of is captured once per normalizer, so normalizing the same record twice
always yields identical output.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import InventoryConfig
from ..model.dn import dn_to_fqdn, common_name
from ..model.schemas import (
    DirectoryRecord, ObjectClass, NormalizedDataset,
    NormalizedAccount, NormalizedGroup, NormalizedComputer,
    NormalizedDomain, NormalizedSite, NormalizedTrust, NormalizedContainer
)

logger = logging.getLogger(__name__)

# UserAccountControl flags
UAC_ACCOUNTDISABLE = 0x0002
UAC_LOCKOUT = 0x0010
UAC_SERVER_TRUST_ACCOUNT = 0x2000
UAC_DONT_EXPIRE_PASSWORD = 0x10000

# groupType flags
GROUP_TYPE_BUILTIN = 0x1
GROUP_TYPE_GLOBAL = 0x2
GROUP_TYPE_DOMAIN_LOCAL = 0x4
GROUP_TYPE_UNIVERSAL = 0x8
GROUP_TYPE_SECURITY = 0x80000000

TRUST_DIRECTION = {
    0: "Disabled",
    1: "Inbound",
    2: "Outbound",
    3: "Bidirectional",
}

TRUST_TYPE = {
    1: "Downlevel",
    2: "Uplevel",
    3: "MIT",
    4: "DCE",
}

TRUST_ATTRIBUTE_NON_TRANSITIVE = 0x1

FUNCTIONAL_LEVELS = {
    0: "Windows 2000",
    1: "Windows Server 2003 Interim",
    2: "Windows Server 2003",
    3: "Windows Server 2008",
    4: "Windows Server 2008 R2",
    5: "Windows Server 2012",
    6: "Windows Server 2012 R2",
    7: "Windows Server 2016",
    10: "Windows Server 2025",
}

FILETIME_NEVER = 9223372036854775807
FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


def windows_timestamp_to_datetime(timestamp: int) -> Optional[datetime]:
    """Convert Windows FILETIME to an aware UTC datetime."""
    if timestamp is None or timestamp <= 0 or timestamp == FILETIME_NEVER:
        return None
    try:
        # FILETIME is 100-nanosecond intervals since January 1, 1601
        return FILETIME_EPOCH + timedelta(microseconds=timestamp // 10)
    except (ValueError, OverflowError):
        return None


def generalized_time_to_datetime(time_str: str) -> Optional[datetime]:
    """Convert LDAP Generalized Time to an aware UTC datetime."""
    if not time_str:
        return None
    try:
        if time_str.endswith("Z"):
            time_str = time_str[:-1]
        if "." in time_str:
            parsed = datetime.strptime(time_str, "%Y%m%d%H%M%S.%f")
        else:
            parsed = datetime.strptime(time_str, "%Y%m%d%H%M%S")
        return parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse either timestamp encoding found in directory attributes.

    Integer strings are FILETIME; anything else is tried as generalized
    time, then ISO 8601 (as written by some export tools).
    """
    value = (value or "").strip()
    if not value:
        return None
    if value.lstrip("-").isdigit() and len(value) != 14:
        return windows_timestamp_to_datetime(int(value))

    parsed = generalized_time_to_datetime(value)
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)

    # Schema-decoded zero FILETIMEs arrive as the 1601 epoch
    if parsed <= FILETIME_EPOCH:
        return None
    return parsed


def safe_int(val, default=0):
    """Safely convert a value to int."""
    if val is None or val == "":
        return default
    try:
        return int(val)
    except (ValueError, TypeError):
        return default


def sorted_values(values) -> tuple:
    """Deterministic, case-insensitive ordering for multi-valued attributes."""
    return tuple(sorted(values, key=lambda v: (v.lower(), v)))


class AttributeNormalizer:
    """Converts DirectoryRecords into normalized report records.

    Usage:
        normalizer = AttributeNormalizer(config)
        account = normalizer.normalize(record)
        dataset = normalizer.normalize_all(records)
    """

    def __init__(self, config: Optional[InventoryConfig] = None, as_of: Optional[datetime] = None):
        """Initialize the normalizer.

        Args:
            config: Inventory configuration (uses defaults if None)
            as_of: Reference time for staleness, fixed for the lifetime of
                the normalizer (defaults to now, UTC)
        """
        self.config = config or InventoryConfig()
        self.as_of = as_of or datetime.now(timezone.utc)
        if self.as_of.tzinfo is None:
            self.as_of = self.as_of.replace(tzinfo=timezone.utc)
        self.stale_cutoff = self.as_of - timedelta(days=self.config.stale_after_days)

        self._handlers = {
            ObjectClass.USER: self.normalize_account,
            ObjectClass.GROUP: self.normalize_group,
            ObjectClass.COMPUTER: self.normalize_computer,
            ObjectClass.DOMAIN: self.normalize_domain,
            ObjectClass.SITE: self.normalize_site,
            ObjectClass.TRUST: self.normalize_trust,
            ObjectClass.CONTAINER: self.normalize_container,
            ObjectClass.ORGANIZATIONAL_UNIT: self.normalize_container,
        }

    def normalize(self, record: DirectoryRecord):
        """Normalize one record according to its object class.

        Returns:
            A Normalized* record, or None for object classes that are not
            modeled
        """
        handler = self._handlers.get(record.object_class)
        if handler is None:
            return None
        return handler(record)

    def normalize_all(self, records) -> NormalizedDataset:
        """Normalize a record set into a bucketed dataset.

        Buckets are sorted by identifier so the result does not depend on
        the order the adapter returned records in.
        """
        dataset = NormalizedDataset()
        buckets = {
            NormalizedAccount: dataset.accounts,
            NormalizedGroup: dataset.groups,
            NormalizedComputer: dataset.computers,
            NormalizedDomain: dataset.domains,
            NormalizedSite: dataset.sites,
            NormalizedTrust: dataset.trusts,
            NormalizedContainer: dataset.containers,
        }

        ignored = 0
        for record in records:
            normalized = self.normalize(record)
            if normalized is None:
                ignored += 1
                logger.debug(f"[*] No normalizer for {record.object_class.value}: {record.identifier}")
                continue
            buckets[type(normalized)].append(normalized)

        for bucket in buckets.values():
            bucket.sort(key=lambda r: r.identifier.lower())

        logger.info(
            f"[+] Normalized {len(dataset)} records "
            f"({len(dataset.accounts)} users, {len(dataset.groups)} groups, "
            f"{len(dataset.computers)} computers, {ignored} ignored)"
        )
        return dataset

    def _name(self, record: DirectoryRecord) -> str:
        return (
            record.first("sAMAccountName")
            or record.first("cn")
            or record.first("name")
            or common_name(record.identifier)
        )

    def _last_logon(self, record: DirectoryRecord) -> Optional[datetime]:
        """Latest of lastLogonTimestamp (replicated) and lastLogon (per DC)."""
        candidates = [
            parse_timestamp(record.first("lastLogonTimestamp")),
            parse_timestamp(record.first("lastLogon")),
        ]
        candidates = [c for c in candidates if c is not None]
        return max(candidates) if candidates else None

    def is_stale(self, last_logon: Optional[datetime]) -> bool:
        return last_logon is None or last_logon < self.stale_cutoff

    def flatten(self, values) -> str:
        """Join a multi-valued attribute for display."""
        return self.config.list_separator.join(sorted_values(values))

    def normalize_account(self, record: DirectoryRecord) -> NormalizedAccount:
        uac = safe_int(record.first("userAccountControl"))
        last_logon = self._last_logon(record)

        return NormalizedAccount(
            identifier=record.identifier,
            account_name=self._name(record),
            display_name=record.first("displayName"),
            description=self.flatten(record.values("description")),
            user_principal_name=record.first("userPrincipalName"),
            enabled=not (uac & UAC_ACCOUNTDISABLE),
            locked=bool(uac & UAC_LOCKOUT) or parse_timestamp(record.first("lockoutTime")) is not None,
            password_never_expires=bool(uac & UAC_DONT_EXPIRE_PASSWORD),
            password_last_set=parse_timestamp(record.first("pwdLastSet")),
            last_logon=last_logon,
            member_of=sorted_values(record.values("memberOf")),
            service_principal_names=sorted_values(record.values("servicePrincipalName")),
            admin_count=record.first("adminCount") == "1",
            stale=self.is_stale(last_logon),
        )

    def normalize_group(self, record: DirectoryRecord) -> NormalizedGroup:
        group_type = safe_int(record.first("groupType")) & 0xFFFFFFFF

        if group_type & GROUP_TYPE_BUILTIN:
            scope = "Builtin Local"
        elif group_type & GROUP_TYPE_GLOBAL:
            scope = "Global"
        elif group_type & GROUP_TYPE_DOMAIN_LOCAL:
            scope = "Domain Local"
        elif group_type & GROUP_TYPE_UNIVERSAL:
            scope = "Universal"
        else:
            scope = ""

        return NormalizedGroup(
            identifier=record.identifier,
            name=self._name(record),
            description=self.flatten(record.values("description")),
            scope=scope,
            security_enabled=bool(group_type & GROUP_TYPE_SECURITY) if group_type else True,
            members=sorted_values(record.values("member")),
            member_of=sorted_values(record.values("memberOf")),
            admin_count=record.first("adminCount") == "1",
        )

    def normalize_computer(self, record: DirectoryRecord) -> NormalizedComputer:
        uac = safe_int(record.first("userAccountControl"))
        last_logon = self._last_logon(record)
        name = record.first("cn") or self._name(record).rstrip("$")

        return NormalizedComputer(
            identifier=record.identifier,
            name=name,
            dns_hostname=record.first("dNSHostName"),
            operating_system=record.first("operatingSystem"),
            operating_system_version=record.first("operatingSystemVersion"),
            enabled=not (uac & UAC_ACCOUNTDISABLE),
            last_logon=last_logon,
            stale=self.is_stale(last_logon),
            is_domain_controller=bool(uac & UAC_SERVER_TRUST_ACCOUNT),
            member_of=sorted_values(record.values("memberOf")),
        )

    def normalize_domain(self, record: DirectoryRecord) -> NormalizedDomain:
        level = record.first("msDS-Behavior-Version")
        return NormalizedDomain(
            identifier=record.identifier,
            dns_name=dn_to_fqdn(record.identifier) or record.first("name"),
            netbios_name=record.first("nETBIOSName") or record.first("name").upper(),
            functional_level=FUNCTIONAL_LEVELS.get(safe_int(level, -1), level),
            created=parse_timestamp(record.first("whenCreated")),
        )

    def normalize_site(self, record: DirectoryRecord) -> NormalizedSite:
        return NormalizedSite(
            identifier=record.identifier,
            name=record.first("cn") or common_name(record.identifier),
            description=self.flatten(record.values("description")),
            location=record.first("location"),
        )

    def normalize_trust(self, record: DirectoryRecord) -> NormalizedTrust:
        direction = safe_int(record.first("trustDirection"), -1)
        trust_type = safe_int(record.first("trustType"), -1)
        attributes = safe_int(record.first("trustAttributes"))

        return NormalizedTrust(
            identifier=record.identifier,
            source_domain=dn_to_fqdn(record.identifier),
            partner=record.first("trustPartner") or common_name(record.identifier),
            direction=TRUST_DIRECTION.get(direction, "Unknown"),
            trust_type=TRUST_TYPE.get(trust_type, "Unknown"),
            transitive=not (attributes & TRUST_ATTRIBUTE_NON_TRANSITIVE),
            created=parse_timestamp(record.first("whenCreated")),
        )

    def normalize_container(self, record: DirectoryRecord) -> NormalizedContainer:
        kind = (
            "Organizational Unit"
            if record.object_class == ObjectClass.ORGANIZATIONAL_UNIT
            else "Container"
        )
        return NormalizedContainer(
            identifier=record.identifier,
            name=record.first("ou") or record.first("cn") or common_name(record.identifier),
            kind=kind,
            description=self.flatten(record.values("description")),
        )
