"""
Directory Query Adapters
========================

Sources of raw DirectoryRecords for the forest and domain pipelines.

Features:
- DirectoryQueryAdapter: the interface the pipeline consumes
- LDAPDirectoryAdapter: live, read-only collection over LDAP/LDAPS
- StaticDirectoryAdapter: in-memory record sets (reloaded datasets, tests)

Design Decisions:
-----------------
1. Uses ldap3 library for cross-platform LDAP support
2. Attribute values are taken raw (bytes -> str), so timestamps and flag
   words reach the normalizer exactly as stored in the directory
3. A scope either returns its complete record set or raises
   DirectoryUnavailable; there is no partial result and no retry here
4. Paging follows the simple paged results control cookie until exhausted
5. One connection is shared by every scope pipeline, so searches are
   serialized with a lock; ldap3 keeps the last result on the connection

Security Consideration:
This module performs read-only operations. No modifications are made to the AD.
"""

import logging
import threading
from typing import Optional, Callable

# LDAP library
try:
    from ldap3 import Server, Connection, ALL, SUBTREE, NTLM, SIMPLE
    from ldap3.core.exceptions import LDAPException
    LDAP3_AVAILABLE = True
except ImportError:
    LDAP3_AVAILABLE = False

from ..config import LDAPConfig
from ..errors import DirectoryUnavailable
from ..model.dn import dn_to_fqdn, fqdn_to_dn
from ..model.schemas import DirectoryRecord, ObjectClass

logger = logging.getLogger(__name__)

PAGED_RESULTS_OID = "1.2.840.113556.1.4.319"

# crossRef systemFlags bit for domain naming contexts
FLAG_CR_NTDS_DOMAIN = 0x2

FOREST_FILTER = (
    "(|(objectClass=organizationalUnit)(objectClass=container)"
    "(objectClass=trustedDomain)(objectCategory=domainDNS))"
)
DOMAIN_FILTER = (
    "(|(&(objectClass=user)(objectCategory=person))"
    "(objectClass=group)(objectClass=computer)(objectCategory=domainDNS))"
)

CONTAINER_ATTRIBUTES = [
    'objectClass', 'cn', 'ou', 'name', 'description',
    'whenCreated', 'msDS-Behavior-Version',
    'trustPartner', 'trustDirection', 'trustType', 'trustAttributes',
]

SITE_ATTRIBUTES = ['objectClass', 'cn', 'description', 'location', 'whenCreated']

PRINCIPAL_ATTRIBUTES = [
    'objectClass', 'sAMAccountName', 'cn', 'name', 'displayName', 'description',
    'userPrincipalName', 'userAccountControl', 'lockoutTime', 'adminCount',
    'memberOf', 'member', 'servicePrincipalName', 'pwdLastSet', 'lastLogon',
    'lastLogonTimestamp', 'groupType', 'dNSHostName', 'operatingSystem',
    'operatingSystemVersion', 'whenCreated', 'msDS-Behavior-Version',
]


class DirectoryQueryAdapter:
    """Interface between the report pipeline and a directory source.

    Implementations handle authentication, paging and retry. Every fetch
    returns a complete record list or raises DirectoryUnavailable.
    """

    def forest_name(self) -> str:
        raise NotImplementedError

    def list_domains(self) -> list[str]:
        """DNS names of the domains in the forest, sorted."""
        raise NotImplementedError

    def fetch_forest(self) -> list[DirectoryRecord]:
        """Domain heads, sites, trusts and containers of the whole forest."""
        raise NotImplementedError

    def fetch_domain(self, domain: str) -> list[DirectoryRecord]:
        """Users, groups, computers and the domain head of one domain."""
        raise NotImplementedError

    def close(self) -> None:
        """Release any connection held by the adapter."""


class LDAPDirectoryAdapter(DirectoryQueryAdapter):
    """Collects directory records via LDAP.

    Usage:
        adapter = LDAPDirectoryAdapter(
            server_ip="192.168.1.100",
            domain="corp.local",
            username="user",
            password="password"
        )
        records = adapter.fetch_domain("corp.local")

    All queries are read-only SUBTREE searches of the configuration and
    domain naming contexts.
    """

    def __init__(
        self,
        server_ip: str,
        domain: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        config: Optional[LDAPConfig] = None,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the LDAP adapter.

        Args:
            server_ip: IP address or hostname of the domain controller
            domain: Domain the credentials belong to (e.g., "corp.local")
            username: Username for authentication (domain\\user or user@domain)
            password: Password for authentication
            config: LDAPConfig object for connection settings
            progress_callback: Optional callback for progress updates
        """
        if not LDAP3_AVAILABLE:
            raise ImportError("ldap3 library is required. Install with: pip install ldap3")

        self.server_ip = server_ip
        self.domain = domain.lower()
        self.username = username
        self.password = password
        self.config = config or LDAPConfig()
        self.progress_callback = progress_callback

        # Connection state
        self.connection: Optional[Connection] = None
        self.base_dn: str = fqdn_to_dn(domain)
        self.config_dn: str = ""
        self.root_dn: str = ""

        self._domains: Optional[list[str]] = None
        self._netbios: dict[str, str] = {}
        self._lock = threading.RLock()

    def _log(self, message: str) -> None:
        """Log a message and forward it to the progress callback."""
        logger.info(message)
        if self.progress_callback:
            self.progress_callback(message)

    def connect(self) -> None:
        """Establish connection to the LDAP server.

        Raises:
            DirectoryUnavailable: If the server cannot be reached or the bind
                is rejected
        """
        port = self.config.port or (636 if self.config.use_ssl else 389)
        try:
            server = Server(
                self.server_ip,
                port=port,
                use_ssl=self.config.use_ssl,
                get_info=ALL,
                connect_timeout=self.config.timeout
            )

            if self.username and self.password:
                # Format username for NTLM
                if '\\' not in self.username and '@' not in self.username:
                    ntlm_user = f"{self.domain.split('.')[0].upper()}\\{self.username}"
                else:
                    ntlm_user = self.username

                self._log(f"[*] Connecting to {self.server_ip}:{port} as {ntlm_user}")
                try:
                    self.connection = Connection(
                        server,
                        user=ntlm_user,
                        password=self.password,
                        authentication=NTLM,
                        auto_bind=True,
                        receive_timeout=self.config.timeout
                    )
                except LDAPException:
                    self._log("[*] NTLM auth failed, trying simple bind...")
                    self.connection = Connection(
                        server,
                        user=self.username if '@' in self.username else f"{self.username}@{self.domain}",
                        password=self.password,
                        authentication=SIMPLE,
                        auto_bind=True,
                        receive_timeout=self.config.timeout
                    )
            else:
                self._log(f"[*] Connecting anonymously to {self.server_ip}:{port}")
                self.connection = Connection(
                    server,
                    auto_bind=True,
                    receive_timeout=self.config.timeout
                )
        except LDAPException as e:
            raise DirectoryUnavailable(f"Connection to {self.server_ip}:{port} failed: {e}", self.server_ip) from e

        self._log(f"[+] Connected successfully to {self.server_ip}")
        self._get_root_dse()

    def _get_root_dse(self) -> None:
        """Read naming contexts from the root DSE."""
        info = self.connection.server.info
        if info is not None and hasattr(info, 'other'):
            other = info.other
            if 'defaultNamingContext' in other:
                self.base_dn = str(other['defaultNamingContext'][0])
            if 'configurationNamingContext' in other:
                self.config_dn = str(other['configurationNamingContext'][0])
            if 'rootDomainNamingContext' in other:
                self.root_dn = str(other['rootDomainNamingContext'][0])

        if not self.config_dn:
            self.config_dn = f"CN=Configuration,{self.base_dn}"
        if not self.root_dn:
            self.root_dn = self.base_dn

        logger.debug(f"[*] Base DN: {self.base_dn}, Config DN: {self.config_dn}")

    def _ensure_connected(self) -> None:
        with self._lock:
            if self.connection is None:
                self.connect()

    def _search(self, search_base: str, search_filter: str, attributes: list) -> list[DirectoryRecord]:
        """Paged SUBTREE search returning DirectoryRecords.

        Raises:
            DirectoryUnavailable: If any page fails
        """
        self._ensure_connected()
        records = []
        cookie = None

        try:
            with self._lock:
                while True:
                    self.connection.search(
                        search_base=search_base,
                        search_filter=search_filter,
                        search_scope=SUBTREE,
                        attributes=attributes,
                        paged_size=self.config.page_size,
                        paged_cookie=cookie
                    )
                    for entry in self.connection.entries:
                        records.append(DirectoryRecord.create(entry.entry_dn, entry.entry_raw_attributes))

                    cookie = (
                        self.connection.result.get('controls', {})
                        .get(PAGED_RESULTS_OID, {})
                        .get('value', {})
                        .get('cookie')
                    )
                    if not cookie:
                        break
        except LDAPException as e:
            raise DirectoryUnavailable(f"Search of {search_base} failed: {e}", search_base) from e

        logger.debug(f"[*] {len(records)} entries under {search_base} for {search_filter}")
        return records

    def forest_name(self) -> str:
        self._ensure_connected()
        return dn_to_fqdn(self.root_dn)

    def list_domains(self) -> list[str]:
        """Enumerate domain crossRefs in the partitions container."""
        with self._lock:
            if self._domains is None:
                self._domains = self._read_partitions()
        return list(self._domains)

    def _read_partitions(self) -> list[str]:
        self._ensure_connected()
        partitions = self._search(
            f"CN=Partitions,{self.config_dn}",
            "(objectClass=crossRef)",
            ['nCName', 'dnsRoot', 'nETBIOSName', 'systemFlags']
        )
        domains = []
        for record in partitions:
            flags = int(record.first('systemFlags', '0') or 0)
            if not flags & FLAG_CR_NTDS_DOMAIN:
                continue
            dns_root = (record.first('dnsRoot') or dn_to_fqdn(record.first('nCName'))).lower()
            if dns_root:
                domains.append(dns_root)
                self._netbios[dns_root] = record.first('nETBIOSName')

        found = sorted(set(domains)) or [self.domain]
        self._log(f"[+] Found {len(found)} domains in forest")
        return found

    def _with_netbios(self, records: list[DirectoryRecord]) -> list[DirectoryRecord]:
        """Attach the crossRef NetBIOS name to domain heads."""
        result = []
        for record in records:
            netbios = self._netbios.get(dn_to_fqdn(record.identifier))
            if record.object_class == ObjectClass.DOMAIN and netbios and not record.has('nETBIOSName'):
                attributes = dict(record.attributes)
                attributes['netbiosname'] = netbios
                record = DirectoryRecord.create(record.identifier, attributes, record.object_class)
            result.append(record)
        return result

    def fetch_forest(self) -> list[DirectoryRecord]:
        self._log("[*] Collecting forest topology...")
        records = []
        for domain in self.list_domains():
            records.extend(self._search(fqdn_to_dn(domain), FOREST_FILTER, CONTAINER_ATTRIBUTES))

        records.extend(self._search(f"CN=Sites,{self.config_dn}", "(objectClass=site)", SITE_ATTRIBUTES))
        self._log(f"[+] Forest collection complete: {len(records)} records")
        return self._with_netbios(records)

    def fetch_domain(self, domain: str) -> list[DirectoryRecord]:
        self._log(f"[*] Collecting principals of {domain}...")
        self.list_domains()
        records = self._search(fqdn_to_dn(domain), DOMAIN_FILTER, PRINCIPAL_ATTRIBUTES)
        self._log(f"[+] {domain}: {len(records)} records")
        return self._with_netbios(records)

    def close(self) -> None:
        """Close the LDAP connection."""
        if self.connection:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logger.debug(f"[*] Unbind failed: {e}")
            self.connection = None


FOREST_CLASSES = (
    ObjectClass.DOMAIN, ObjectClass.SITE, ObjectClass.TRUST,
    ObjectClass.CONTAINER, ObjectClass.ORGANIZATIONAL_UNIT,
)
DOMAIN_CLASSES = (ObjectClass.DOMAIN, ObjectClass.USER, ObjectClass.GROUP, ObjectClass.COMPUTER)


class StaticDirectoryAdapter(DirectoryQueryAdapter):
    """Adapter over record sets already held in memory.

    Used when a saved dataset is reloaded and in tests. Scopes listed in
    ``unavailable`` raise DirectoryUnavailable, mimicking an unreachable DC.

    Usage:
        adapter = StaticDirectoryAdapter.from_records("corp.local", records)
    """

    def __init__(
        self,
        forest: str,
        forest_records: Optional[list] = None,
        domain_records: Optional[dict] = None,
        unavailable: tuple = ()
    ):
        self._forest = forest.lower()
        self._forest_records = list(forest_records or [])
        self._domain_records = {k.lower(): list(v) for k, v in (domain_records or {}).items()}
        self.unavailable = {u.lower() for u in unavailable}

    @classmethod
    def from_records(cls, forest: str, records, unavailable: tuple = ()) -> "StaticDirectoryAdapter":
        """Split a flat record list into forest and per-domain sets by DN suffix."""
        forest_records = []
        domain_records: dict[str, list] = {}
        for record in records:
            if record.object_class in FOREST_CLASSES:
                forest_records.append(record)
            if record.object_class in DOMAIN_CLASSES:
                domain = dn_to_fqdn(record.identifier).lower()
                domain_records.setdefault(domain, []).append(record)
        return cls(forest, forest_records, domain_records, unavailable)

    def _check(self, scope: str) -> None:
        if scope.lower() in self.unavailable:
            raise DirectoryUnavailable(f"Directory for {scope} is unavailable", scope)

    def forest_name(self) -> str:
        return self._forest

    def list_domains(self) -> list[str]:
        return sorted(self._domain_records)

    def fetch_forest(self) -> list[DirectoryRecord]:
        self._check(self._forest)
        return list(self._forest_records)

    def fetch_domain(self, domain: str) -> list[DirectoryRecord]:
        self._check(domain)
        return list(self._domain_records.get(domain.lower(), []))
