"""
invAD Model Module
==================

Core data models and structural representations of directory data.

Key Components:
- schemas.py: Typed dataclasses for raw and normalized directory objects
- dn.py: Distinguished-name parsing
- tree_builder.py: Container tree reconstruction from flat DNs
- membership_graph.py: NetworkX-based group membership graph
"""

from .schemas import (
    ObjectClass,
    DirectoryRecord,
    NormalizedAccount,
    NormalizedGroup,
    NormalizedComputer,
    NormalizedDomain,
    NormalizedSite,
    NormalizedTrust,
    NormalizedContainer,
    NormalizedDataset,
    PrivilegedGroup,
    PrivilegedMembership,
    DomainStats,
)
from .dn import parse_dn, rdn_value
from .tree_builder import TreeBuilder, TreeNode, TreeBuildResult, record_path, flatten_tree
from .membership_graph import MembershipGraph
