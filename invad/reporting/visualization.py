"""
Topology Visualization Module
=============================

Creates an interactive HTML view of the forest topology (pyvis).

Design Decisions:
-----------------
1. Same topology graph as the DOT side-car, so both views agree
2. Color coding per node kind, dashed edges for trusts
3. Node count is capped for browser performance; the DOT file is complete
"""

import logging
from pathlib import Path

import networkx as nx

from ..errors import UnsupportedFormatBackend
from .diagram import NODE_STYLES, EDGE_STYLES

logger = logging.getLogger(__name__)


class TopologyVisualizer:
    """Creates interactive visualizations of a topology graph.

    Usage:
        visualizer = TopologyVisualizer(output_dir="output")
        html_path = visualizer.export(graph, "invad_forest_corp.local")
    """

    def __init__(self, output_dir: str = "output", max_nodes: int = 500):
        """Initialize the visualizer.

        Args:
            output_dir: Directory for output files
            max_nodes: Maximum nodes to include (for performance)
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.max_nodes = max_nodes

    def export(self, graph: nx.DiGraph, prefix: str) -> str:
        """Write ``<prefix>_topology.html``.

        Raises:
            UnsupportedFormatBackend: If pyvis is not installed
        """
        try:
            from pyvis.network import Network
        except ImportError as e:
            raise UnsupportedFormatBackend(
                "pyvis is required for the interactive topology. Install with: pip install pyvis",
                "topology-html"
            ) from e

        output_path = self.output_dir / f"{prefix}_topology.html"

        net = Network(
            height="800px",
            width="100%",
            bgcolor="#ffffff",
            font_color="#1a202c",
            directed=True
        )

        net.set_options("""
        {
            "layout": {
                "hierarchical": {"enabled": true, "direction": "UD", "sortMethod": "directed"}
            },
            "physics": {"enabled": false},
            "interaction": {
                "hideEdgesOnDrag": true,
                "navigationButtons": true
            }
        }
        """)

        # Breadth-first from the roots keeps the top of the tree when capped
        ordered = []
        seen = set()
        roots = sorted(n for n in graph.nodes() if graph.in_degree(n) == 0)
        for root in roots:
            for key in [root] + [v for _, v in nx.bfs_edges(graph, root)]:
                if key not in seen:
                    seen.add(key)
                    ordered.append(key)
        ordered.extend(sorted(n for n in graph.nodes() if n not in seen))
        included = set(ordered[:self.max_nodes])

        for key in ordered[:self.max_nodes]:
            data = graph.nodes[key]
            style = NODE_STYLES.get(data.get("kind"), NODE_STYLES["external"])
            net.add_node(
                key,
                label=str(data.get("label", key))[:40],
                title=f"{data.get('kind', '')}: {key}",
                color=style["color"],
                size=20 if data.get("kind") in ("forest", "domain") else 12,
            )

        for source, target, data in graph.edges(data=True):
            if source in included and target in included:
                style = EDGE_STYLES.get(data.get("kind"), EDGE_STYLES["contains"])
                net.add_edge(
                    source, target,
                    title=data.get("label") or data.get("kind", ""),
                    color=style["color"],
                    dashes=style["style"] != "solid",
                )

        if graph.number_of_nodes() > self.max_nodes:
            logger.warning(
                f"[!] Topology view limited to {self.max_nodes} of {graph.number_of_nodes()} nodes"
            )

        net.save_graph(str(output_path))
        logger.info(f"[+] Topology view saved to: {output_path}")
        return str(output_path)
