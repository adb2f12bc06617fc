"""
invAD Container Tree Builder
============================

Rebuilds the container hierarchy of a forest from the flat distinguished
names returned by directory queries.

Design Decisions:
-----------------
1. Components are attached outer-to-inner; the trailing run of DC=
   components folds into a single domain-root node per domain
2. Nodes are indexed by their lower-cased full path, so each insertion is
   one dict lookup per component instead of a walk from the root
3. Construction and traversal are iterative; deep trees cannot exhaust the
   interpreter's recursion limit
4. Records with malformed DNs are skipped and reported, never fatal

The parent pointer on TreeNode is a lookup-only back-reference used to
rebuild paths. Ownership flows strictly parent -> children.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .dn import parse_dn, split_domain_suffix, domain_dns_name, rdn_value
from .schemas import DirectoryRecord, ObjectClass
from ..config import InventoryConfig
from ..errors import MalformedIdentifier

logger = logging.getLogger(__name__)

ROOT = "root"
DOMAIN = "domain"
CONTAINER = "container"


@dataclass(eq=False)
class TreeNode:
    """One node of the container tree.

    Attributes:
        name: Display name (unescaped RDN value, or DNS name for domains)
        segment: Path segment this node contributes to a DN
        kind: root, domain or container
        children: Child nodes keyed by lower-cased segment
        records: Leaf records attached at this node
        parent: Non-owning back-reference, None for the root
        depth: Distance from the root
    """
    name: str
    segment: str
    kind: str = CONTAINER
    children: dict = field(default_factory=dict)
    records: list = field(default_factory=list)
    parent: Optional["TreeNode"] = field(default=None, repr=False)
    depth: int = 0

    def child(self, segment: str) -> Optional["TreeNode"]:
        return self.children.get(segment.lower())

    def path_components(self) -> list[str]:
        """Components this node stands for, innermost first.

        A domain-root node contributes all of its DC components.
        """
        components = []
        node = self
        while node is not None and node.kind != ROOT:
            if node.kind == DOMAIN:
                components.extend(parse_dn(node.segment))
            else:
                components.append(node.segment)
            node = node.parent
        return components

    @property
    def distinguished_name(self) -> str:
        return ",".join(self.path_components())

    def iter_depth_first(self) -> Iterator["TreeNode"]:
        """Pre-order walk with children sorted by name (iterative)."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            ordered = sorted(node.children.values(), key=lambda n: n.name.lower())
            stack.extend(reversed(ordered))

    def iter_records(self) -> Iterator[tuple["TreeNode", DirectoryRecord]]:
        """All (node, record) pairs in the subtree."""
        for node in self.iter_depth_first():
            for record in node.records:
                yield node, record

    @property
    def subtree_record_count(self) -> int:
        return sum(len(node.records) for node in self.iter_depth_first())


@dataclass
class TreeBuildResult:
    """Output of TreeBuilder.build().

    Attributes:
        root: Root node of the forest tree
        skipped: MalformedIdentifier for each record that was not attached
        node_count: Number of nodes, root included
        deep_records: Records deeper than the configured warning depth
    """
    root: TreeNode
    skipped: list = field(default_factory=list)
    node_count: int = 1
    deep_records: int = 0

    @property
    def record_count(self) -> int:
        return self.root.subtree_record_count

    def domain_nodes(self) -> list[TreeNode]:
        return sorted(
            (n for n in self.root.children.values() if n.kind == DOMAIN),
            key=lambda n: n.name.lower()
        )


class TreeBuilder:
    """Builds a TreeNode hierarchy from DirectoryRecords.

    Usage:
        builder = TreeBuilder(config)
        result = builder.build(records, root_name="corp.local")
        for node, record in result.root.iter_records():
            ...
    """

    def __init__(self, config: Optional[InventoryConfig] = None):
        self.config = config or InventoryConfig()

    def build(self, records, root_name: str = "Forest") -> TreeBuildResult:
        """Attach every record under the node chain implied by its DN.

        Args:
            records: Iterable of DirectoryRecord, any order
            root_name: Display name of the root node

        Returns:
            TreeBuildResult with the root and the skipped records
        """
        root = TreeNode(name=root_name, segment="", kind=ROOT)
        result = TreeBuildResult(root=root)
        index: dict[str, TreeNode] = {"": root}

        for record in records:
            try:
                components = parse_dn(record.identifier)
            except MalformedIdentifier as e:
                logger.warning(f"[!] Skipping record with malformed DN: {e}")
                result.skipped.append(e)
                continue

            relative, domain = split_domain_suffix(components)

            if not relative:
                # Domain head: the record is the domain-root node itself
                node = self._ensure_domain(index, root, domain, result)
                node.records.append(record)
                continue

            parent_chain = relative[1:]
            node = self._ensure_path(index, root, domain, parent_chain, result)
            node.records.append(record)

            if record.object_class.is_container:
                self._ensure_path(index, root, domain, relative, result)

            if node.depth + 1 > self.config.tree_depth_warning:
                result.deep_records += 1
                logger.debug(f"[*] Deep record at depth {node.depth + 1}: {record.identifier}")

        logger.info(
            f"[+] Container tree: {result.node_count} nodes, "
            f"{result.record_count} records, {len(result.skipped)} skipped"
        )
        return result

    def _ensure_domain(self, index, root, domain, result) -> TreeNode:
        """Return the node for a DC suffix, creating it if needed."""
        if not domain:
            return root

        segment = ",".join(domain)
        key = segment.lower()
        node = index.get(key)
        if node is None:
            node = TreeNode(
                name=domain_dns_name(domain),
                segment=segment,
                kind=DOMAIN,
                parent=root,
                depth=1,
            )
            root.children[key] = node
            index[key] = node
            result.node_count += 1
        return node

    def _ensure_path(self, index, root, domain, chain, result) -> TreeNode:
        """Return the node for ``chain`` (innermost first) under a domain.

        Walks outer-to-inner, reusing the longest existing prefix.
        """
        node = self._ensure_domain(index, root, domain, result)
        key = node.segment.lower()

        for component in reversed(chain):
            key = f"{component.lower()},{key}" if key else component.lower()
            existing = index.get(key)
            if existing is None:
                existing = TreeNode(
                    name=rdn_value(component),
                    segment=component,
                    kind=CONTAINER,
                    parent=node,
                    depth=node.depth + 1,
                )
                node.children[component.lower()] = existing
                index[key] = existing
                result.node_count += 1
            node = existing
        return node


def record_path(node: TreeNode, record: DirectoryRecord) -> list[str]:
    """Component sequence (innermost first) that locates a leaf record.

    Reproduces parse_dn(record.identifier) for every record attached by
    TreeBuilder.
    """
    own = parse_dn(record.identifier)
    node_path = node.path_components()
    if len(own) == len(node_path):
        # Domain head attached at its own domain-root node
        return node_path
    return [own[0]] + node_path


def flatten_tree(root: TreeNode) -> list[dict]:
    """Flatten a tree into ordered rows for the container-tree section.

    Rows are pre-order, children by name, so indentation by depth reads as a
    tree.
    """
    ordered = list(root.iter_depth_first())

    # Children always follow their parent in pre-order, so a reverse pass
    # accumulates subtree totals in one sweep
    subtree = {}
    for node in reversed(ordered):
        subtree[id(node)] = len(node.records) + sum(
            subtree[id(child)] for child in node.children.values()
        )

    rows = []
    for node in ordered:
        if node.kind == ROOT:
            continue
        counts = {}
        for record in node.records:
            counts[record.object_class] = counts.get(record.object_class, 0) + 1
        rows.append({
            "Depth": node.depth,
            "Name": ("    " * (node.depth - 1)) + node.name,
            "Kind": node.kind,
            "Path": node.distinguished_name,
            "Users": counts.get(ObjectClass.USER, 0),
            "Groups": counts.get(ObjectClass.GROUP, 0),
            "Computers": counts.get(ObjectClass.COMPUTER, 0),
            "Objects": len(node.records),
            "Subtree Objects": subtree[id(node)],
        })
    return rows
