"""Tests for dataset persistence and the saved-dataset adapter."""

import pytest

from invad.errors import MissingDataset
from invad.ingestion.dataset_store import (
    DatasetStore, SavedDatasetAdapter, domain_dataset_name, safe_file_name,
)
from invad.ingestion.ldap_loader import StaticDirectoryAdapter
from invad.errors import DirectoryUnavailable
from invad.model.schemas import ObjectClass


class TestDatasetStore:
    def test_round_trip(self, corp_records, tmp_path):
        store = DatasetStore(str(tmp_path))

        path = store.save("domain", domain_dataset_name("inventory", "corp.local"), corp_records, subject="corp.local")
        loaded = store.load("domain", "inventory_corp.local")

        assert path.name == "domain_inventory_corp.local.json"
        assert [r.to_dict() for r in loaded] == [r.to_dict() for r in corp_records]
        assert loaded[-1].object_class == ObjectClass.COMPUTER

    def test_metadata(self, forest_tree_records, tmp_path):
        store = DatasetStore(str(tmp_path))
        store.save("forest", "inventory", forest_tree_records, subject="corp.local")

        saved = store.read("forest", "inventory")

        assert saved.subject == "corp.local"
        assert saved.scope == "forest"
        assert saved.saved_at

    def test_missing_file(self, tmp_path):
        with pytest.raises(MissingDataset) as exc_info:
            DatasetStore(str(tmp_path)).load("domain", "nope")
        assert exc_info.value.kind == "missing_dataset"

    def test_corrupt_file(self, tmp_path):
        store = DatasetStore(str(tmp_path))
        store.path_for("forest", "broken").write_text("{not json", encoding="utf-8")

        with pytest.raises(MissingDataset):
            store.load("forest", "broken")

    def test_unknown_scope(self, tmp_path):
        with pytest.raises(ValueError):
            DatasetStore(str(tmp_path)).path_for("site", "x")

    def test_list_subjects(self, corp_records, emea_records, tmp_path):
        store = DatasetStore(str(tmp_path))
        store.save("domain", domain_dataset_name("inventory", "corp.local"), corp_records, subject="corp.local")
        store.save("domain", domain_dataset_name("inventory", "EMEA.corp.local"), emea_records,
                   subject="EMEA.corp.local")
        store.save("domain", domain_dataset_name("other", "x.local"), [], subject="x.local")

        assert store.list_subjects("domain", "inventory") == ["corp.local", "emea.corp.local"]

    def test_list_subjects_ignores_datasets_sharing_a_prefix(self, corp_records, tmp_path):
        store = DatasetStore(str(tmp_path))
        store.save("domain", domain_dataset_name("inv", "corp.local"), corp_records, subject="corp.local")
        store.save("domain", domain_dataset_name("inv_2", "other.local"), [], subject="other.local")
        store.save("domain", domain_dataset_name("inv", "x.y"), [], subject="x.y")
        store.save("domain", domain_dataset_name("inv_x", "y"), [], subject="y")

        assert store.list_subjects("domain", "inv") == ["corp.local", "x.y"]
        assert store.list_subjects("domain", "inv_2") == ["other.local"]
        assert SavedDatasetAdapter(store, "inv").list_domains() == ["corp.local", "x.y"]

    def test_safe_file_name(self):
        assert safe_file_name("corp/../etc") == "corp_.._etc"
        assert safe_file_name("...") == "dataset"


class TestSavedDatasetAdapter:
    def test_serves_saved_records(self, corp_records, forest_tree_records, tmp_path):
        store = DatasetStore(str(tmp_path))
        store.save("forest", "inventory", forest_tree_records, subject="corp.local")
        store.save("domain", domain_dataset_name("inventory", "corp.local"), corp_records, subject="corp.local")

        adapter = SavedDatasetAdapter(store, "inventory")

        assert adapter.forest_name() == "corp.local"
        assert adapter.list_domains() == ["corp.local"]
        assert len(adapter.fetch_forest()) == len(forest_tree_records)
        assert len(adapter.fetch_domain("corp.local")) == len(corp_records)

    def test_missing_domain_raises_missing_dataset(self, tmp_path):
        adapter = SavedDatasetAdapter(DatasetStore(str(tmp_path)), "inventory")

        assert adapter.forest_name() == "inventory"
        with pytest.raises(MissingDataset):
            adapter.fetch_domain("corp.local")


class TestStaticDirectoryAdapter:
    def test_from_records_splits_by_domain(self, all_records):
        adapter = StaticDirectoryAdapter.from_records("corp.local", all_records)

        assert adapter.list_domains() == ["corp.local", "emea.corp.local"]
        domain_ids = {r.identifier for r in adapter.fetch_domain("emea.corp.local")}
        assert "CN=Erin,OU=Staff,DC=emea,DC=corp,DC=local" in domain_ids
        assert all(r.object_class != ObjectClass.USER for r in adapter.fetch_forest())

    def test_unavailable_domain(self, all_records):
        adapter = StaticDirectoryAdapter.from_records("corp.local", all_records, unavailable=["emea.corp.local"])

        with pytest.raises(DirectoryUnavailable):
            adapter.fetch_domain("emea.corp.local")
