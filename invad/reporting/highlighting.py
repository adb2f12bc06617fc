"""
Conditional Highlighting
========================

Highlight rules mark individual report cells with a style tag.

A rule is a pure predicate over (column, value, row) paired with a
StyleTag. Rules are evaluated in their declared order and the first match
wins; there is no other conflict resolution. Values are the raw row values
(bools, datetimes, ints), not their rendered text, so the same rules give
the same answer for every output format.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Mapping, Any


class StyleTag(Enum):
    """Presentation styles a rule can assign."""
    ALERT = "alert"
    WARNING = "warning"
    PRIVILEGED = "privileged"
    MUTED = "muted"
    OK = "ok"

    @property
    def css(self) -> str:
        """Inline CSS for HTML cells."""
        return STYLE_CSS[self]

    @property
    def fill_color(self) -> str:
        """RGB fill for spreadsheet cells."""
        return STYLE_FILLS[self][0]

    @property
    def font_color(self) -> str:
        return STYLE_FILLS[self][1]


STYLE_CSS = {
    StyleTag.ALERT: "background-color: #fed7d7; color: #9b2c2c; font-weight: 600;",
    StyleTag.WARNING: "background-color: #fefcbf; color: #744210;",
    StyleTag.PRIVILEGED: "background-color: #e9d8fd; color: #44337a; font-weight: 600;",
    StyleTag.MUTED: "background-color: #edf2f7; color: #718096;",
    StyleTag.OK: "background-color: #c6f6d5; color: #22543d;",
}

# (fill, font) per tag
STYLE_FILLS = {
    StyleTag.ALERT: ("FED7D7", "9B2C2C"),
    StyleTag.WARNING: ("FEFCBF", "744210"),
    StyleTag.PRIVILEGED: ("E9D8FD", "44337A"),
    StyleTag.MUTED: ("EDF2F7", "718096"),
    StyleTag.OK: ("C6F6D5", "22543D"),
}


@dataclass(frozen=True)
class HighlightRule:
    """A named predicate that assigns one StyleTag.

    Attributes:
        name: Rule identifier, shown in logs and tests
        style: Tag assigned when the predicate matches
        predicate: Callable (column, value, row) -> bool, must be pure
    """
    name: str
    style: StyleTag
    predicate: Callable[[str, Any, Mapping], bool]

    def matches(self, column: str, value, row: Mapping) -> bool:
        return bool(self.predicate(column, value, row))


def resolve_style(rules, column: str, value, row: Mapping) -> Optional[StyleTag]:
    """Style of one cell: the first matching rule's tag, or None."""
    for rule in rules:
        if rule.matches(column, value, row):
            return rule.style
    return None


def when(column: str, expected) -> Callable[[str, Any, Mapping], bool]:
    """Predicate matching one column holding exactly ``expected``.

    Booleans compare by identity so that 1/0 counts never match True/False.
    """
    if isinstance(expected, bool):
        return lambda c, v, row: c == column and v is expected
    return lambda c, v, row: c == column and not isinstance(v, bool) and v == expected


ACCOUNT_RULES = (
    HighlightRule("disabled", StyleTag.MUTED, when("Enabled", False)),
    HighlightRule("locked", StyleTag.ALERT, when("Locked", True)),
    HighlightRule("password-never-expires", StyleTag.ALERT, when("Password Never Expires", True)),
    HighlightRule("stale", StyleTag.WARNING, when("Stale", True)),
    HighlightRule("privileged", StyleTag.PRIVILEGED, when("Privileged", True)),
    HighlightRule(
        "orphaned-admin-count", StyleTag.WARNING,
        lambda c, v, row: c == "Admin Count" and v is True and row.get("Privileged") is False
    ),
    HighlightRule("domain-controller", StyleTag.PRIVILEGED, when("Domain Controller", True)),
)

TRUST_RULES = (
    HighlightRule("trust-disabled", StyleTag.MUTED, when("Direction", "Disabled")),
    HighlightRule("bidirectional", StyleTag.WARNING, when("Direction", "Bidirectional")),
    HighlightRule("transitive", StyleTag.WARNING, when("Transitive", True)),
    HighlightRule("non-transitive", StyleTag.OK, when("Transitive", False)),
)

TREE_RULES = (
    HighlightRule("domain-root", StyleTag.PRIVILEGED, when("Kind", "domain")),
    HighlightRule(
        "empty-container", StyleTag.MUTED,
        lambda c, v, row: c == "Subtree Objects" and v == 0
    ),
)

GROUP_RULES = (
    HighlightRule("seed-group", StyleTag.PRIVILEGED, when("Depth", 0)),
    HighlightRule(
        "deep-nesting", StyleTag.WARNING,
        lambda c, v, row: c == "Depth" and isinstance(v, int) and v >= 3
    ),
)

NOTE_RULES = (
    HighlightRule(
        "scope-failure", StyleTag.ALERT,
        lambda c, v, row: c == "Kind" and v in ("directory_unavailable", "cancelled", "error")
    ),
    HighlightRule("warning", StyleTag.WARNING, lambda c, v, row: c == "Kind" and bool(v)),
)
