"""
invAD Membership Graph
======================

NetworkX-based representation of group membership.

Design Decisions:
-----------------
1. Uses a NetworkX DiGraph with edges pointing group -> member, the
   direction in which the privileged closure is walked
2. Node keys are lower-cased DNs; the original DN and display name are kept
   as node attributes
3. Edges come from both sides of the link (group.member and
   member.memberOf), since either may be missing from a partial query
4. Cycles and diamonds are legal here; the resolver deals with them
"""

from typing import Iterator, Optional

import networkx as nx

from .dn import common_name
from .schemas import NormalizedDataset, NormalizedGroup


def member_key(identifier: str) -> str:
    """Graph key for a DN."""
    return identifier.strip().lower()


class MembershipGraph:
    """Abstraction layer over NetworkX for membership queries.

    Example Usage:
        graph = MembershipGraph.from_dataset(dataset)
        for member_id in graph.get_members(group_id):
            ...
    """

    def __init__(self):
        """Initialize empty membership graph."""
        self._graph = nx.DiGraph()
        self._groups_by_name: dict[str, str] = {}  # name.lower() -> key

    @property
    def nx_graph(self) -> nx.DiGraph:
        """Access underlying NetworkX graph for advanced operations."""
        return self._graph

    @classmethod
    def from_dataset(cls, dataset: NormalizedDataset) -> "MembershipGraph":
        """Build the graph from normalized groups, accounts and computers."""
        graph = cls()

        for group in dataset.groups:
            graph.add_group(group)

        for principal in list(dataset.accounts) + list(dataset.computers):
            name = getattr(principal, "account_name", None) or getattr(principal, "name", "")
            graph.add_principal(principal.identifier, name)

        for group in dataset.groups:
            for member in group.members:
                graph.add_membership(group.identifier, member)

        for principal in list(dataset.accounts) + list(dataset.computers) + list(dataset.groups):
            for parent in principal.member_of:
                graph.add_membership(parent, principal.identifier)

        return graph

    def add_group(self, group: NormalizedGroup) -> None:
        key = member_key(group.identifier)
        self._graph.add_node(key, identifier=group.identifier, name=group.name, is_group=True)
        self._groups_by_name[group.name.lower()] = key

        # CN can differ from sAMAccountName; both resolve seeds
        cn = common_name(group.identifier).lower()
        self._groups_by_name.setdefault(cn, key)

    def add_principal(self, identifier: str, name: str) -> None:
        key = member_key(identifier)
        if not self._graph.has_node(key):
            self._graph.add_node(key, identifier=identifier, name=name, is_group=False)

    def add_membership(self, group_identifier: str, member_identifier: str) -> None:
        """Add a group -> member edge, creating placeholder nodes as needed.

        Placeholders stand for members outside the queried scope (foreign
        security principals, other domains) and are never groups.
        """
        group_key = member_key(group_identifier)
        member = member_key(member_identifier)

        if not self._graph.has_node(group_key):
            self._graph.add_node(
                group_key, identifier=group_identifier,
                name=common_name(group_identifier), is_group=True
            )
        if not self._graph.has_node(member):
            self._graph.add_node(
                member, identifier=member_identifier,
                name=common_name(member_identifier), is_group=False
            )
        self._graph.add_edge(group_key, member)

    def find_group(self, name: str) -> Optional[str]:
        """Key of the group with this sAMAccountName or CN (case-insensitive)."""
        return self._groups_by_name.get(name.lower())

    def get_members(self, key: str) -> Iterator[str]:
        """Direct members of a group, sorted for deterministic traversal."""
        if self._graph.has_node(key):
            yield from sorted(self._graph.successors(key))

    def is_group(self, key: str) -> bool:
        return bool(self._graph.nodes[key].get("is_group")) if self._graph.has_node(key) else False

    def get_name(self, key: str) -> str:
        if self._graph.has_node(key):
            return self._graph.nodes[key].get("name") or key
        return key

    def get_identifier(self, key: str) -> str:
        if self._graph.has_node(key):
            return self._graph.nodes[key].get("identifier") or key
        return key

    def has_cycle(self) -> bool:
        """Whether any group is (transitively) a member of itself."""
        return not nx.is_directed_acyclic_graph(self._graph)

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()
