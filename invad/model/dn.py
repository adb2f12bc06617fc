"""
Distinguished-Name Parsing
==========================

Splits distinguished names into their relative components.

A DN such as ``CN=Smith\\, John,OU=Staff,DC=corp,DC=local`` is written
innermost component first. Values may contain literal delimiters when they
are backslash-escaped or enclosed in double quotes, so a naive
``str.split(',')`` is wrong for real directory data.
"""

from ..errors import MalformedIdentifier

DELIMITERS = (",", ";")


def parse_dn(identifier: str) -> list[str]:
    """Split a DN into components, innermost first.

    Args:
        identifier: Distinguished name string

    Returns:
        List of components such as ``["CN=John", "OU=Staff", "DC=corp"]``

    Raises:
        MalformedIdentifier: On unbalanced quotes, a dangling escape, an
            empty component or a component without ``=``
    """
    if not identifier or not identifier.strip():
        raise MalformedIdentifier("Empty distinguished name", identifier or "")

    components = []
    current = []
    in_quotes = False
    i = 0
    length = len(identifier)

    while i < length:
        ch = identifier[i]

        if ch == "\\":
            if i + 1 >= length:
                raise MalformedIdentifier(
                    f"Dangling escape at end of '{identifier}'", identifier
                )
            current.append(identifier[i:i + 2])
            i += 2
            continue

        if ch == '"':
            in_quotes = not in_quotes
        elif ch in DELIMITERS and not in_quotes:
            components.append(_finish_component("".join(current), identifier))
            current = []
            i += 1
            continue

        current.append(ch)
        i += 1

    if in_quotes:
        raise MalformedIdentifier(f"Unbalanced quotes in '{identifier}'", identifier)

    components.append(_finish_component("".join(current), identifier))
    return components


def _rstrip_unescaped(text: str) -> str:
    """Drop trailing blanks unless the last one is escaped."""
    while text.endswith(" "):
        body = text[:-1]
        backslashes = len(body) - len(body.rstrip("\\"))
        if backslashes % 2:
            break
        text = body
    return text


def _finish_component(raw: str, identifier: str) -> str:
    """Trim and validate one component."""
    component = _rstrip_unescaped(raw.lstrip())

    if not component:
        raise MalformedIdentifier(f"Empty component in '{identifier}'", identifier)

    attribute, sep, _ = component.partition("=")
    if not sep or not attribute.strip() or "\\" in attribute:
        raise MalformedIdentifier(
            f"Component '{component}' has no attribute type in '{identifier}'",
            identifier
        )
    return component


def rdn_attribute(component: str) -> str:
    """Attribute type of a component, lower-cased (``cn``, ``ou``, ``dc``)."""
    return component.partition("=")[0].strip().lower()


def rdn_value(component: str) -> str:
    """Unescaped value of a component.

    Handles quoted values, ``\\,``-style escapes and ``\\2C``-style hex pairs.
    """
    value = _rstrip_unescaped(component.partition("=")[2].lstrip())
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]

    out = bytearray()
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value):
            pair = value[i + 1:i + 3]
            if len(pair) == 2 and all(c in "0123456789abcdefABCDEF" for c in pair):
                out.append(int(pair, 16))
                i += 3
                continue
            out.extend(value[i + 1].encode("utf-8"))
            i += 2
            continue
        out.extend(ch.encode("utf-8"))
        i += 1
    return out.decode("utf-8", errors="replace")


def is_domain_component(component: str) -> bool:
    return rdn_attribute(component) == "dc"


def split_domain_suffix(components: list[str]) -> tuple[list[str], list[str]]:
    """Separate the trailing run of DC components.

    Args:
        components: Components innermost first, as returned by parse_dn

    Returns:
        (relative components, domain components), both innermost first
    """
    index = len(components)
    while index > 0 and is_domain_component(components[index - 1]):
        index -= 1
    return components[:index], components[index:]


def domain_dns_name(domain_components: list[str]) -> str:
    """``["DC=corp", "DC=local"]`` -> ``corp.local``."""
    return ".".join(rdn_value(c) for c in domain_components)


def dn_to_fqdn(identifier: str) -> str:
    """DNS name of the domain that holds a DN, or "" when it has none."""
    try:
        _, domain = split_domain_suffix(parse_dn(identifier))
    except MalformedIdentifier:
        return ""
    return domain_dns_name(domain)


def fqdn_to_dn(fqdn: str) -> str:
    """``corp.local`` -> ``DC=corp,DC=local``."""
    return ",".join(f"DC={label}" for label in fqdn.split(".") if label)


def common_name(identifier: str) -> str:
    """Value of the innermost component, falling back to the raw string."""
    try:
        return rdn_value(parse_dn(identifier)[0])
    except MalformedIdentifier:
        return identifier
