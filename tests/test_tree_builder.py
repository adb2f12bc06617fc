"""Tests for the container tree builder."""

import random

from invad.config import InventoryConfig
from invad.model.dn import parse_dn
from invad.model.schemas import DirectoryRecord
from invad.model.tree_builder import CONTAINER, DOMAIN, TreeBuilder, flatten_tree, record_path

from conftest import CORP, container, user


def find(root, *names):
    node = root
    for name in names:
        node = next(child for child in node.children.values() if child.name == name)
    return node


class TestTreeBuilder:
    def test_every_record_reachable_and_path_round_trips(self, all_records):
        result = TreeBuilder().build(all_records, root_name="corp.local")

        assert result.skipped == []
        attached = list(result.root.iter_records())
        assert len(attached) == len(all_records)
        for node, record in attached:
            assert record_path(node, record) == parse_dn(record.identifier)

    def test_order_does_not_change_shape(self, all_records):
        shuffled = list(all_records)
        random.Random(7).shuffle(shuffled)

        first = flatten_tree(TreeBuilder().build(all_records).root)
        second = flatten_tree(TreeBuilder().build(shuffled).root)
        assert first == second

    def test_domains_fold_into_single_nodes(self, all_records):
        result = TreeBuilder().build(all_records)
        domains = result.domain_nodes()

        assert [d.name for d in domains] == ["corp.local", "emea.corp.local"]
        assert all(d.kind == DOMAIN for d in domains)

    def test_case_insensitive_dedup(self):
        records = [
            user(f"CN=u1,OU=Staff,{CORP}", "u1"),
            user("CN=u2,ou=STAFF,dc=Corp,dc=LOCAL", "u2"),
        ]
        result = TreeBuilder().build(records)

        assert len(result.domain_nodes()) == 1
        staff = find(result.root, "corp.local", "Staff")
        assert len(staff.records) == 2
        # root + domain + OU
        assert result.node_count == 3

    def test_malformed_record_skipped_not_fatal(self, corp_records):
        broken = DirectoryRecord.create(f'CN="Broken,OU=Staff,{CORP}', {"objectClass": ["user"]})
        records = corp_records + [broken]

        result = TreeBuilder().build(records)

        assert len(result.skipped) == 1
        assert result.skipped[0].subject == broken.identifier
        assert result.record_count == len(corp_records)

    def test_empty_container_materialized(self):
        result = TreeBuilder().build([container(f"OU=Empty,{CORP}")])

        empty = find(result.root, "corp.local", "Empty")
        assert empty.kind == CONTAINER
        assert empty.records == []

    def test_domain_head_attached_at_domain_node(self, corp_records):
        result = TreeBuilder().build(corp_records)
        domain = find(result.root, "corp.local")

        assert [r.identifier for r in domain.records] == [CORP]

    def test_escaped_name_unescaped_in_display(self):
        result = TreeBuilder().build([container(f"OU=Sales\\, EMEA,{CORP}")])
        node = find(result.root, "corp.local", "Sales, EMEA")
        assert node.distinguished_name == f"OU=Sales\\, EMEA,{CORP}"

    def test_deep_tree_built_without_recursion(self):
        depth = 1500
        chain = ",".join(f"OU=L{i}" for i in range(depth))
        record = user(f"CN=leaf,{chain},{CORP}", "leaf")

        result = TreeBuilder(InventoryConfig(tree_depth_warning=32)).build([record])

        # root + domain + one node per OU
        assert result.node_count == depth + 2
        assert result.deep_records == 1
        node, attached = next(result.root.iter_records())
        assert node.depth == depth + 1
        assert record_path(node, attached) == parse_dn(record.identifier)
        assert len(flatten_tree(result.root)) == depth + 1


class TestFlattenTree:
    def test_rows_pre_order_with_counts(self, all_records):
        rows = flatten_tree(TreeBuilder().build(all_records).root)

        assert rows[0]["Name"] == "corp.local"
        assert rows[0]["Kind"] == DOMAIN
        assert rows[0]["Subtree Objects"] == sum(
            1 for r in all_records if r.identifier.lower().endswith("dc=corp,dc=local")
            and "dc=emea" not in r.identifier.lower()
        )

        staff = next(r for r in rows if r["Path"] == f"OU=Staff,{CORP}")
        assert staff["Users"] == 3
        assert staff["Depth"] == 2
        assert staff["Name"] == "    Staff"

    def test_rows_sorted_by_name_within_parent(self, all_records):
        rows = flatten_tree(TreeBuilder().build(all_records).root)
        corp_children = [r["Name"].strip() for r in rows if r["Depth"] == 2 and r["Path"].endswith(CORP)
                         and "DC=emea" not in r["Path"]]
        assert corp_children == sorted(corp_children, key=str.lower)
