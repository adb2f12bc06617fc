"""
invAD - Active Directory Forest & Domain Inventory Reporter
===========================================================

A Python framework for inventorying an Active Directory forest and its
domains, and rendering the findings as a styled report bundle.

Architecture Overview:
----------------------
- model/: Directory records, DN parsing, container tree and membership graph
- analysis/: Attribute normalization and privileged-membership resolution
- ingestion/: Directory query adapters (LDAP, static) and dataset persistence
- reporting/: Section model, table rendering and multi-format report assembly
- pipeline/: Per-scope orchestration and the concurrent multi-domain runner

Design Decisions:
-----------------
1. Stages 1-4 (records, tree, normalizer, resolver) are pure data transforms
2. All data models use Python dataclasses
3. NetworkX backs the membership graph and the topology side-car
4. The same normalized dataset can be rendered to several formats

License: Research/Educational Use Only
"""

__version__ = "1.0.0"
__author__ = "invAD Research Team"

from .config import InvadConfig, InventoryConfig, RunOptions
