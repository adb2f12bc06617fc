"""
Inventory Pipeline Runner
=========================

High-level entry points that wire the stages together per scope.

A scope is either the forest or one domain. Each scope runs:
1. Record fetch (directory adapter or saved dataset)
2. Optional dataset save
3. Tree building (forest) / normalization
4. Privileged closure (domain)
5. Section building
6. Report assembly in every requested format

Design Decisions:
-----------------
1. Scopes share nothing but the frozen InventoryConfig, so run_inventory
   runs them on a thread pool without locks
2. Every scope gets a child RunContext; cancelling the parent stops all of
   them, a timeout stops only the scope it belongs to
3. Stages check the context between steps. A directory call that is already
   in flight is not interrupted; the scope stops when it returns
4. A scope error never escapes run_inventory: DirectoryUnavailable and
   PipelineCancelled mark the scope failed, MissingDataset marks it skipped
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Callable

from ..config import InvadConfig
from ..errors import InventoryError, MissingDataset, PipelineCancelled
from ..analysis.normalizer import AttributeNormalizer
from ..analysis.privileged import PrivilegedMembershipResolver
from ..ingestion.dataset_store import DatasetStore, SavedDatasetAdapter, domain_dataset_name
from ..model.tree_builder import TreeBuilder
from ..reporting.diagram import build_topology_graph
from ..reporting.report_builder import ReportAssembler
from ..reporting.sections import (
    RunNote, add_notes_section, build_forest_document, build_domain_document
)

logger = logging.getLogger(__name__)

FOREST_SCOPE = "forest"


class RunContext:
    """Cancellation and deadline shared by the stages of a run.

    Usage:
        context = RunContext()
        scope_context = context.child(timeout=300)
        scope_context.check("normalize")   # raises PipelineCancelled
        context.cancel()                    # stops every child
    """

    def __init__(self, timeout: Optional[float] = None, parent: Optional["RunContext"] = None):
        self.parent = parent
        self._cancelled = threading.Event()
        self.deadline = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.parent.cancelled if self.parent is not None else False

    @property
    def expired(self) -> bool:
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return True
        return self.parent.expired if self.parent is not None else False

    def child(self, timeout: Optional[float] = None) -> "RunContext":
        return RunContext(timeout=timeout, parent=self)

    def check(self, stage: str = "") -> None:
        """Raise PipelineCancelled if the run was cancelled or timed out."""
        if self.cancelled:
            raise PipelineCancelled(f"Cancelled before {stage or 'next stage'}", stage)
        if self.expired:
            raise PipelineCancelled(f"Timed out before {stage or 'next stage'}", stage)


@dataclass(frozen=True)
class SkippedItem:
    """Something the run left out, and why."""
    scope: str
    kind: str
    detail: str


@dataclass
class ScopeResult:
    """Outcome of one forest or domain pipeline.

    Attributes:
        scope: "forest" or the domain DNS name
        artifacts: Written file paths
        skipped: Skipped records, truncated branches and failed formats
        error: The error that stopped the scope, if any
    """
    scope: str
    artifacts: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    error: Optional[InventoryError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunSummary:
    """What a run produced, what failed and what was skipped."""
    scopes: list = field(default_factory=list)

    @property
    def artifacts(self) -> dict:
        return {s.scope: list(s.artifacts) for s in self.scopes if s.artifacts}

    @property
    def failed(self) -> dict:
        """Scopes that aborted, with the error that stopped them."""
        return {
            s.scope: s.error for s in self.scopes
            if s.error is not None and not isinstance(s.error, MissingDataset)
        }

    @property
    def skipped(self) -> list[SkippedItem]:
        items = []
        for s in self.scopes:
            if isinstance(s.error, MissingDataset):
                items.append(SkippedItem(s.scope, s.error.kind, str(s.error)))
            items.extend(s.skipped)
        return items

    def get(self, scope: str) -> Optional[ScopeResult]:
        for result in self.scopes:
            if result.scope == scope:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "artifacts": self.artifacts,
            "failed": {scope: str(error) for scope, error in self.failed.items()},
            "skipped": [
                {"scope": s.scope, "kind": s.kind, "detail": s.detail} for s in self.skipped
            ],
        }


def _make_log(progress_callback: Optional[Callable[[str], None]]):
    def log(message: str):
        """Log message and forward it to the callback if provided."""
        logger.info(message)
        if progress_callback:
            progress_callback(message)
    return log


def _skipped_from(scope: str, errors) -> list[SkippedItem]:
    return [SkippedItem(scope, getattr(e, "kind", "error"), str(e)) for e in errors]


def run_forest_report(
    adapter,
    config: InvadConfig,
    context: Optional[RunContext] = None,
    store: Optional[DatasetStore] = None,
    as_of: Optional[datetime] = None,
    progress_callback: Optional[Callable[[str], None]] = None
) -> ScopeResult:
    """Build and emit the forest topology report.

    Args:
        adapter: DirectoryQueryAdapter providing the forest record set
        config: Run configuration
        context: Cancellation context (a fresh one if None)
        store: Dataset store, used when config.run.save_dataset is set
        as_of: Reference time for staleness
        progress_callback: Optional callback for progress updates

    Returns:
        ScopeResult for the forest

    Raises:
        DirectoryUnavailable, MissingDataset, PipelineCancelled
    """
    context = context or RunContext()
    log = _make_log(progress_callback)
    options = config.run

    context.check("forest query")
    forest = adapter.forest_name()
    log(f"[*] Forest report: {forest}")
    records = adapter.fetch_forest()
    log(f"[+] {len(records)} forest records")

    context.check("dataset save")
    if options.save_dataset and store is not None and not options.load_dataset:
        store.save("forest", options.dataset_name, records, subject=forest)

    context.check("tree build")
    tree = TreeBuilder(config.inventory).build(records, root_name=forest)

    context.check("normalization")
    dataset = AttributeNormalizer(config.inventory, as_of).normalize_all(records)

    context.check("section build")
    document = build_forest_document(forest, dataset, tree, config.output.name_prefix)
    add_notes_section(document)
    topology = build_topology_graph(tree, dataset) if options.diagrams else None

    context.check("report assembly")
    assembly = ReportAssembler(config.output.output_dir).assemble(
        document, options.formats, topology=topology, diagrams=options.diagrams
    )

    result = ScopeResult(scope=FOREST_SCOPE, artifacts=assembly.paths)
    result.skipped.extend(_skipped_from(FOREST_SCOPE, tree.skipped))
    result.skipped.extend(_skipped_from(FOREST_SCOPE, assembly.failures.values()))
    log(f"[+] Forest report complete: {len(result.artifacts)} artifacts")
    return result


def run_domain_report(
    adapter,
    domain: str,
    config: InvadConfig,
    context: Optional[RunContext] = None,
    store: Optional[DatasetStore] = None,
    as_of: Optional[datetime] = None,
    progress_callback: Optional[Callable[[str], None]] = None
) -> ScopeResult:
    """Build and emit the privileged inventory report of one domain.

    Args:
        adapter: DirectoryQueryAdapter providing the domain record set
        domain: Domain DNS name
        config: Run configuration
        context: Cancellation context (a fresh one if None)
        store: Dataset store, used when config.run.save_dataset is set
        as_of: Reference time for staleness
        progress_callback: Optional callback for progress updates

    Returns:
        ScopeResult for the domain

    Raises:
        DirectoryUnavailable, MissingDataset, PipelineCancelled
    """
    context = context or RunContext()
    log = _make_log(progress_callback)
    options = config.run

    context.check("domain query")
    log(f"[*] Domain report: {domain}")
    records = adapter.fetch_domain(domain)
    log(f"[+] {domain}: {len(records)} records")

    context.check("dataset save")
    if options.save_dataset and store is not None and not options.load_dataset:
        store.save("domain", domain_dataset_name(options.dataset_name, domain), records, subject=domain)

    context.check("normalization")
    dataset = AttributeNormalizer(config.inventory, as_of).normalize_all(records)

    context.check("privileged closure")
    resolver = PrivilegedMembershipResolver(config.inventory)
    resolution = resolver.resolve(dataset)
    marked = resolver.apply(resolution, dataset.accounts)
    log(f"[+] {domain}: {marked} privileged accounts")

    context.check("section build")
    document = build_domain_document(
        domain, dataset, resolution,
        name_prefix=config.output.name_prefix,
        export_all_accounts=options.export_all_accounts,
        list_separator=config.inventory.list_separator,
    )
    document.notes.extend(
        RunNote("unresolved_seed", seed, f"Privileged group '{seed}' not found in {domain}")
        for seed in resolution.unresolved_seeds
    )
    add_notes_section(document)

    context.check("report assembly")
    assembly = ReportAssembler(config.output.output_dir).assemble(document, options.formats)

    result = ScopeResult(scope=domain, artifacts=assembly.paths)
    result.skipped.extend(_skipped_from(domain, resolution.warnings))
    result.skipped.extend(_skipped_from(domain, assembly.failures.values()))
    log(f"[+] Domain report complete for {domain}: {len(result.artifacts)} artifacts")
    return result


def _guarded(scope: str, func, *args, **kwargs) -> ScopeResult:
    """Run one scope pipeline, turning its failure into a ScopeResult."""
    try:
        return func(*args, **kwargs)
    except MissingDataset as e:
        logger.warning(f"[!] Skipping {scope}: {e}")
        return ScopeResult(scope=scope, error=e)
    except InventoryError as e:
        logger.error(f"[!] {scope} failed: {e}")
        return ScopeResult(scope=scope, error=e)
    except Exception as e:
        logger.exception(f"[!] {scope} failed unexpectedly")
        return ScopeResult(scope=scope, error=InventoryError(f"Unexpected error: {e}", scope))


def run_inventory(
    adapter,
    config: Optional[InvadConfig] = None,
    store: Optional[DatasetStore] = None,
    context: Optional[RunContext] = None,
    progress_callback: Optional[Callable[[str], None]] = None
) -> RunSummary:
    """Main entry point: run every requested scope concurrently.

    Args:
        adapter: DirectoryQueryAdapter (ignored when config.run.load_dataset
            is set; saved datasets are read instead)
        config: Run configuration (defaults if None)
        store: Dataset store (defaults to the output directory)
        context: Parent cancellation context
        progress_callback: Optional callback for progress updates

    Returns:
        RunSummary with artifacts, failed scopes and skipped items

    Example:
        adapter = LDAPDirectoryAdapter("192.168.1.100", "corp.local", "user", "pass")
        summary = run_inventory(adapter, InvadConfig(run=RunOptions(formats="html,xlsx")))
    """
    config = config or InvadConfig()
    options = config.run
    context = context or RunContext()
    log = _make_log(progress_callback)
    summary = RunSummary()

    if store is None and (options.save_dataset or options.load_dataset):
        store = DatasetStore(config.output.output_dir)
    if options.load_dataset:
        log(f"[*] Loading saved dataset '{options.dataset_name}' from {store.directory}")
        adapter = SavedDatasetAdapter(store, options.dataset_name)

    # One reference time for the whole run keeps staleness consistent
    as_of = datetime.now(timezone.utc)

    domains = []
    if options.scope.includes_domain:
        if options.domains is not None:
            domains = list(options.domains)
        else:
            try:
                domains = adapter.list_domains()
            except InventoryError as e:
                logger.error(f"[!] Could not enumerate domains: {e}")
                summary.scopes.append(ScopeResult(scope="domains", error=e))
        log(f"[*] Domains in scope: {', '.join(domains) or 'none'}")

    jobs = []
    if options.scope.includes_forest:
        jobs.append((FOREST_SCOPE, run_forest_report, (adapter, config)))
    for domain in domains:
        jobs.append((domain, run_domain_report, (adapter, domain, config)))

    with ThreadPoolExecutor(max_workers=max(1, options.max_workers)) as executor:
        futures = []
        for scope, func, args in jobs:
            scope_context = context.child(timeout=options.scope_timeout)
            futures.append(executor.submit(
                _guarded, scope, func, *args,
                context=scope_context, store=store, as_of=as_of,
                progress_callback=progress_callback,
            ))
        for future in futures:
            summary.scopes.append(future.result())

    total = sum(len(paths) for paths in summary.artifacts.values())
    log(
        f"[+] Run complete: {total} artifacts, {len(summary.failed)} failed scopes, "
        f"{len(summary.skipped)} skipped items"
    )
    return summary
