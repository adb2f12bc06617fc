"""Shared fixtures: a small two-domain forest built from raw directory records."""

from datetime import datetime, timedelta, timezone

import pytest

from invad.config import InvadConfig, InventoryConfig, OutputConfig, RunOptions
from invad.model.schemas import DirectoryRecord

AS_OF = datetime(2026, 1, 1, tzinfo=timezone.utc)
FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)

CORP = "DC=corp,DC=local"
EMEA = "DC=emea,DC=corp,DC=local"


def filetime(moment: datetime) -> str:
    """Windows FILETIME string for an aware datetime."""
    return str((moment - FILETIME_EPOCH) // timedelta(microseconds=1) * 10)


def user(dn, sam, uac=512, days_since_logon=10, member_of=(), **extra):
    attributes = {
        "objectClass": ["top", "person", "organizationalPerson", "user"],
        "sAMAccountName": sam,
        "userAccountControl": str(uac),
        "memberOf": list(member_of),
    }
    if days_since_logon is not None:
        attributes["lastLogonTimestamp"] = filetime(AS_OF - timedelta(days=days_since_logon))
    attributes.update(extra)
    return DirectoryRecord.create(dn, attributes)


def group(dn, sam, members=(), group_type="-2147483646", **extra):
    attributes = {
        "objectClass": ["top", "group"],
        "sAMAccountName": sam,
        "groupType": group_type,
        "member": list(members),
    }
    attributes.update(extra)
    return DirectoryRecord.create(dn, attributes)


def container(dn, object_class="organizationalUnit", **extra):
    attributes = {"objectClass": ["top", object_class]}
    attributes.update(extra)
    return DirectoryRecord.create(dn, attributes)


def corp_domain_records() -> list:
    """Principals of corp.local.

    Domain Admins contains alice and the nested Tier0 Operators group
    (carol). Enterprise Admins contains alice. bob is disabled and stale,
    dave is locked out.
    """
    domain_admins = f"CN=Domain Admins,CN=Users,{CORP}"
    enterprise_admins = f"CN=Enterprise Admins,CN=Users,{CORP}"
    tier0 = f"CN=Tier0 Operators,OU=Admins,{CORP}"

    alice = f"CN=Alice Admin,OU=Admins,{CORP}"
    bob = f"CN=Bob Old,OU=Staff,{CORP}"
    carol = f"CN=Carol Ops,OU=Admins,{CORP}"
    dave = f"CN=Dave Locked,OU=Staff,{CORP}"
    smith = f"CN=Smith\\, John,OU=Staff,{CORP}"

    return [
        DirectoryRecord.create(CORP, {
            "objectClass": ["top", "domain", "domainDNS"],
            "name": "corp",
            "msDS-Behavior-Version": "7",
            "whenCreated": "20200101000000.0Z",
        }),
        user(alice, "alice", member_of=[domain_admins, enterprise_admins], adminCount="1"),
        user(bob, "bob", uac=514, days_since_logon=400),
        user(carol, "carol", uac=66048, member_of=[tier0]),
        user(dave, "dave", lockoutTime=filetime(AS_OF - timedelta(hours=1))),
        user(smith, "jsmith", adminCount="1", description=["beta", "Alpha"]),
        group(domain_admins, "Domain Admins", members=[alice, tier0], adminCount="1"),
        group(enterprise_admins, "Enterprise Admins", members=[alice], group_type="-2147483640"),
        group(tier0, "Tier0 Operators", members=[carol]),
        DirectoryRecord.create(f"CN=DC01,OU=Domain Controllers,{CORP}", {
            "objectClass": ["top", "person", "organizationalPerson", "user", "computer"],
            "sAMAccountName": "DC01$",
            "cn": "DC01",
            "userAccountControl": "532480",
            "dNSHostName": "dc01.corp.local",
            "operatingSystem": "Windows Server 2022 Standard",
            "lastLogonTimestamp": filetime(AS_OF - timedelta(days=1)),
        }),
    ]


def emea_domain_records() -> list:
    emea_admins = f"CN=Domain Admins,CN=Users,{EMEA}"
    erin = f"CN=Erin,OU=Staff,{EMEA}"
    return [
        DirectoryRecord.create(EMEA, {"objectClass": ["domainDNS"], "name": "emea"}),
        user(erin, "erin", member_of=[emea_admins]),
        group(emea_admins, "Domain Admins", members=[erin]),
    ]


def forest_records() -> list:
    config_dn = f"CN=Configuration,{CORP}"
    return [
        DirectoryRecord.create(CORP, {"objectClass": ["domainDNS"], "name": "corp"}),
        DirectoryRecord.create(EMEA, {"objectClass": ["domainDNS"], "name": "emea"}),
        container(f"OU=Admins,{CORP}", ou="Admins"),
        container(f"OU=Staff,{CORP}", ou="Staff", description="Regular staff"),
        container(f"OU=Domain Controllers,{CORP}", ou="Domain Controllers"),
        container(f"CN=Users,{CORP}", object_class="container", cn="Users"),
        container(f"OU=Staff,{EMEA}", ou="Staff"),
        DirectoryRecord.create(f"CN=Default-First-Site-Name,CN=Sites,{config_dn}", {
            "objectClass": ["top", "site"],
            "cn": "Default-First-Site-Name",
            "location": "HQ",
        }),
        DirectoryRecord.create(f"CN=partner.com,CN=System,{CORP}", {
            "objectClass": ["top", "leaf", "trustedDomain"],
            "trustPartner": "partner.com",
            "trustDirection": "3",
            "trustType": "2",
            "trustAttributes": "8",
        }),
    ]


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def inventory_config():
    return InventoryConfig(privileged_groups=("Domain Admins", "Enterprise Admins", "Schema Admins"))


@pytest.fixture
def corp_records():
    return corp_domain_records()


@pytest.fixture
def emea_records():
    return emea_domain_records()


@pytest.fixture
def forest_tree_records():
    return forest_records()


@pytest.fixture
def all_records():
    return forest_records() + corp_domain_records() + emea_domain_records()


@pytest.fixture
def make_config(tmp_path, inventory_config):
    """Factory for an InvadConfig writing into the test's tmp directory."""
    def _make(**run_options):
        return InvadConfig(
            inventory=inventory_config,
            output=OutputConfig(output_dir=str(tmp_path / "out"), name_prefix="test"),
            run=RunOptions(**run_options),
        )
    return _make
