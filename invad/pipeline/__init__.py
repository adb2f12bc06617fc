"""
invAD Pipeline Module
=====================

Orchestrates the per-scope report pipelines.

This module provides the entry points the CLI calls:
- run_inventory: every requested scope, concurrently
- run_forest_report / run_domain_report: one scope
"""

from .runner import (
    RunContext,
    RunSummary,
    ScopeResult,
    SkippedItem,
    run_inventory,
    run_forest_report,
    run_domain_report,
)
