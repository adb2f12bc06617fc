"""
Topology Diagram Module
=======================

Derives a node/edge topology from the container tree and the recorded
sites and trusts, and writes it as Graphviz DOT text.

Design Decisions:
-----------------
1. The topology is a NetworkX DiGraph so both side-cars (DOT text and the
   interactive pyvis page) are produced from one structure
2. Everything comes from the tree builder output and the normalized forest
   dataset; no extra directory queries
3. Trust partners outside the forest appear as "external" nodes
4. DOT output is sorted, so the same input always produces the same text
"""

import logging
from pathlib import Path

import networkx as nx

from ..model.schemas import NormalizedDataset
from ..model.tree_builder import TreeBuildResult, ROOT, DOMAIN

logger = logging.getLogger(__name__)

# Shapes and colors per node kind
NODE_STYLES = {
    "forest": {"shape": "doubleoctagon", "color": "#2b6cb0"},
    "domain": {"shape": "box3d", "color": "#9f7aea"},
    "container": {"shape": "folder", "color": "#ecc94b"},
    "site": {"shape": "ellipse", "color": "#48bb78"},
    "external": {"shape": "diamond", "color": "#a0aec0"},
}

EDGE_STYLES = {
    "contains": {"style": "solid", "color": "#718096"},
    "site": {"style": "dotted", "color": "#48bb78"},
    "trust": {"style": "dashed", "color": "#e53e3e"},
}


def _node_key(node) -> str:
    if node.kind == ROOT:
        return f"forest:{node.name.lower()}"
    return node.distinguished_name.lower()


def build_topology_graph(tree: TreeBuildResult, dataset: NormalizedDataset) -> nx.DiGraph:
    """Build the forest topology graph.

    Args:
        tree: Container tree of the forest
        dataset: Normalized forest records (sites, trusts)

    Returns:
        DiGraph with ``label`` and ``kind`` node attributes and ``kind``
        (plus ``label`` for trusts) edge attributes
    """
    graph = nx.DiGraph()
    root_key = _node_key(tree.root)
    domains = {}

    for node in tree.root.iter_depth_first():
        key = _node_key(node)
        kind = "forest" if node.kind == ROOT else node.kind
        graph.add_node(key, label=node.name, kind=kind)
        if node.parent is not None:
            graph.add_edge(_node_key(node.parent), key, kind="contains")
        if node.kind == DOMAIN:
            domains[node.name.lower()] = key

    for site in dataset.sites:
        key = f"site:{site.name.lower()}"
        graph.add_node(key, label=site.name, kind="site")
        graph.add_edge(root_key, key, kind="site")

    for trust in dataset.trusts:
        source = domains.get(trust.source_domain.lower())
        if source is None:
            source = f"domain:{trust.source_domain.lower()}"
            graph.add_node(source, label=trust.source_domain, kind="external")

        target = domains.get(trust.partner.lower())
        if target is None:
            target = f"domain:{trust.partner.lower()}"
            if not graph.has_node(target):
                graph.add_node(target, label=trust.partner, kind="external")

        graph.add_edge(
            source, target, kind="trust",
            label=f"{trust.direction}, {'transitive' if trust.transitive else 'non-transitive'}"
        )

    logger.debug(f"[*] Topology graph: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges")
    return graph


def _quote(text: str) -> str:
    return '"' + str(text).replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ") + '"'


def to_dot(graph: nx.DiGraph, name: str = "topology") -> str:
    """Render a topology graph as DOT text."""
    lines = [
        f"digraph {_quote(name)} {{",
        "    rankdir=LR;",
        '    node [fontname="Helvetica", style=filled, fillcolor=white];',
    ]

    for key in sorted(graph.nodes()):
        data = graph.nodes[key]
        style = NODE_STYLES.get(data.get("kind"), NODE_STYLES["external"])
        lines.append(
            f"    {_quote(key)} [label={_quote(data.get('label', key))}, "
            f"shape={style['shape']}, color={_quote(style['color'])}];"
        )

    for source, target in sorted(graph.edges()):
        data = graph.edges[source, target]
        style = EDGE_STYLES.get(data.get("kind"), EDGE_STYLES["contains"])
        attrs = [f"style={style['style']}", f"color={_quote(style['color'])}"]
        if data.get("label"):
            attrs.append(f"label={_quote(data['label'])}")
        lines.append(f"    {_quote(source)} -> {_quote(target)} [{', '.join(attrs)}];")

    lines.append("}")
    return "\n".join(lines) + "\n"


class DiagramExporter:
    """Writes topology graphs as DOT side-car files.

    Usage:
        exporter = DiagramExporter("output")
        path = exporter.export(graph, "invad_forest_corp.local")
    """

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(self, graph: nx.DiGraph, prefix: str) -> str:
        output_path = self.output_dir / f"{prefix}_topology.dot"
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(to_dot(graph, prefix))
        logger.info(f"[+] Topology diagram saved to: {output_path}")
        return str(output_path)
