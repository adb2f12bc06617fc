"""Tests for distinguished-name parsing."""

import pytest

from invad.errors import MalformedIdentifier
from invad.model.dn import (
    common_name, dn_to_fqdn, fqdn_to_dn, parse_dn, rdn_attribute, rdn_value,
    split_domain_suffix,
)


class TestParseDN:
    def test_simple_dn_innermost_first(self):
        assert parse_dn("CN=John,OU=Staff,DC=corp,DC=local") == [
            "CN=John", "OU=Staff", "DC=corp", "DC=local"
        ]

    def test_escaped_comma_stays_in_value(self):
        components = parse_dn(r"CN=Smith\, John,OU=Staff,DC=corp,DC=local")
        assert components[0] == r"CN=Smith\, John"
        assert len(components) == 4
        assert rdn_value(components[0]) == "Smith, John"

    def test_quoted_value_keeps_delimiters(self):
        components = parse_dn('CN="Doe, Jane",DC=corp')
        assert components == ['CN="Doe, Jane"', "DC=corp"]
        assert rdn_value(components[0]) == "Doe, Jane"

    def test_hex_escape_decoded(self):
        components = parse_dn(r"CN=a\2Cb,DC=corp")
        assert len(components) == 2
        assert rdn_value(components[0]) == "a,b"

    def test_semicolon_delimiter(self):
        assert parse_dn("CN=a;OU=b;DC=c") == ["CN=a", "OU=b", "DC=c"]

    def test_insignificant_whitespace_trimmed(self):
        assert parse_dn("CN=a , OU=b") == ["CN=a", "OU=b"]

    def test_escaped_trailing_space_kept(self):
        components = parse_dn(r"CN=abc\ ,DC=corp")
        assert components[0] == r"CN=abc\ "
        assert rdn_value(components[0]) == "abc "
        assert common_name(r"CN=abc\ ,DC=corp") == "abc "

    def test_escaped_backslash_before_trailing_space(self):
        assert rdn_value("CN=abc\\\\ ") == "abc\\"
        assert rdn_value("CN=abc  ") == "abc"

    def test_attribute_type_lowercased(self):
        assert rdn_attribute("OU=Staff") == "ou"

    @pytest.mark.parametrize("identifier", [
        "",
        "   ",
        'CN="unterminated,DC=corp',
        "CN=trailing\\",
        "CN=a,,DC=corp",
        "justtext",
        "=value,DC=corp",
    ])
    def test_malformed_identifiers_rejected(self, identifier):
        with pytest.raises(MalformedIdentifier) as exc_info:
            parse_dn(identifier)
        assert exc_info.value.kind == "malformed_identifier"


class TestDomainHelpers:
    def test_split_domain_suffix(self):
        relative, domain = split_domain_suffix(parse_dn("CN=u,OU=Staff,DC=corp,DC=local"))
        assert relative == ["CN=u", "OU=Staff"]
        assert domain == ["DC=corp", "DC=local"]

    def test_dn_to_fqdn(self):
        assert dn_to_fqdn("CN=u,OU=Staff,DC=emea,DC=corp,DC=local") == "emea.corp.local"

    def test_dn_to_fqdn_without_domain(self):
        assert dn_to_fqdn("CN=Schema") == ""

    def test_dn_to_fqdn_malformed(self):
        assert dn_to_fqdn('CN="broken') == ""

    def test_fqdn_to_dn(self):
        assert fqdn_to_dn("corp.local") == "DC=corp,DC=local"

    def test_common_name_fallback(self):
        assert common_name(r"CN=Smith\, John,DC=corp") == "Smith, John"
        assert common_name("not a dn") == "not a dn"
