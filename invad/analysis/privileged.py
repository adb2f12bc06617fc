"""
invAD Privileged-Membership Resolver
====================================

Computes the transitive membership of the configured privileged groups.

Design Decisions:
-----------------
1. Breadth-first per seed group, so the first time a member is reached is
   also its shortest nesting depth
2. One visited set per seed, keyed by lower-cased DN: a cycle (A -> B -> A)
   terminates and a diamond (two paths to one account) counts once
3. A group at the depth cap that still has members is not expanded; a
   MembershipDepthExceeded warning is recorded for that branch only
4. Results are grouped by seed in configured order, then sorted by account
   name; an account under several seeds appears once per seed
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from ..config import InventoryConfig
from ..errors import MembershipDepthExceeded
from ..model.membership_graph import MembershipGraph, member_key
from ..model.schemas import NormalizedDataset, PrivilegedGroup, PrivilegedMembership

logger = logging.getLogger(__name__)


@dataclass
class PrivilegedResolution:
    """Output of PrivilegedMembershipResolver.resolve().

    Attributes:
        memberships: One entry per (seed, account), seed order then name
        groups: Every group discovered per seed, seed order then BFS order
        warnings: MembershipDepthExceeded instances for truncated branches
        unresolved_seeds: Configured seeds with no matching group
    """
    memberships: list = field(default_factory=list)
    groups: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    unresolved_seeds: list = field(default_factory=list)

    def for_seed(self, seed: str) -> list[PrivilegedMembership]:
        return [m for m in self.memberships if m.seed == seed]

    @property
    def account_identifiers(self) -> set:
        """Distinct accounts reached from any seed (lower-cased DNs)."""
        return {member_key(m.identifier) for m in self.memberships}


class PrivilegedMembershipResolver:
    """Resolves seed groups to the accounts they transitively contain.

    Usage:
        resolver = PrivilegedMembershipResolver(config)
        resolution = resolver.resolve(dataset)
        resolver.apply(resolution, dataset.accounts)
    """

    def __init__(self, config: Optional[InventoryConfig] = None):
        self.config = config or InventoryConfig()
        self.max_depth = self.config.max_membership_depth

    def resolve(self, dataset: NormalizedDataset, graph: Optional[MembershipGraph] = None) -> PrivilegedResolution:
        """Expand every configured seed group.

        Args:
            dataset: Normalized records of one domain
            graph: Prebuilt membership graph (built from dataset if None)

        Returns:
            PrivilegedResolution
        """
        graph = graph or MembershipGraph.from_dataset(dataset)
        accounts = {member_key(a.identifier): a for a in dataset.accounts}
        resolution = PrivilegedResolution()

        if graph.has_cycle():
            logger.info("[*] Membership graph contains nested-group cycles")

        for seed in self.config.privileged_groups:
            seed_key = graph.find_group(seed)
            if seed_key is None:
                logger.debug(f"[*] Privileged group not present: {seed}")
                resolution.unresolved_seeds.append(seed)
                continue

            memberships, groups, warnings = self._expand(graph, seed, seed_key, accounts)
            memberships.sort(key=lambda m: (m.account_name.lower(), m.identifier.lower()))

            resolution.memberships.extend(memberships)
            resolution.groups.extend(groups)
            resolution.warnings.extend(warnings)

        logger.info(
            f"[+] Privileged closure: {len(resolution.account_identifiers)} accounts "
            f"across {len(resolution.groups)} groups, {len(resolution.warnings)} truncated branches"
        )
        return resolution

    def _expand(self, graph: MembershipGraph, seed: str, seed_key: str, accounts: dict):
        """BFS from one seed group.

        An account reached again at its shortest depth through another
        group gains that group in ``via``; longer paths are ignored.
        """
        reached = {}
        groups = [PrivilegedGroup(
            identifier=graph.get_identifier(seed_key),
            name=graph.get_name(seed_key),
            seed=seed,
            depth=0,
            members=tuple(graph.get_identifier(m) for m in graph.get_members(seed_key)),
        )]
        warnings = []

        visited = {seed_key}
        queue = deque([(seed_key, 0)])

        while queue:
            group_key, depth = queue.popleft()
            members = list(graph.get_members(group_key))

            if depth >= self.max_depth:
                if members:
                    name = graph.get_name(group_key)
                    warning = MembershipDepthExceeded(
                        f"Nesting under '{seed}' exceeds depth {self.max_depth} at group '{name}'",
                        subject=graph.get_identifier(group_key),
                        seed=seed,
                        depth=depth,
                    )
                    logger.warning(f"[!] {warning.message}")
                    warnings.append(warning)
                continue

            via = graph.get_name(group_key)
            for member in members:
                if member in visited:
                    membership = reached.get(member)
                    if membership and membership.depth == depth + 1 and via not in membership.via:
                        membership.via += (via,)
                    continue
                visited.add(member)

                if graph.is_group(member):
                    groups.append(PrivilegedGroup(
                        identifier=graph.get_identifier(member),
                        name=graph.get_name(member),
                        seed=seed,
                        depth=depth + 1,
                        members=tuple(graph.get_identifier(m) for m in graph.get_members(member)),
                    ))
                    queue.append((member, depth + 1))
                    continue

                account = accounts.get(member)
                reached[member] = PrivilegedMembership(
                    seed=seed,
                    identifier=graph.get_identifier(member),
                    account_name=account.account_name if account else graph.get_name(member),
                    depth=depth + 1,
                    via=(via,),
                    account=account,
                )

        return list(reached.values()), groups, warnings

    def apply(self, resolution: PrivilegedResolution, accounts) -> int:
        """Set privileged/privileged_via on the accounts the closure reached.

        Accounts not reached are reset, so applying twice is harmless.

        Returns:
            Number of accounts marked privileged
        """
        via = {}
        for membership in resolution.memberships:
            seeds = via.setdefault(member_key(membership.identifier), [])
            if membership.seed not in seeds:
                seeds.append(membership.seed)

        marked = 0
        for account in accounts:
            seeds = via.get(member_key(account.identifier))
            account.privileged = bool(seeds)
            account.privileged_via = tuple(seeds or ())
            marked += bool(seeds)
        return marked
