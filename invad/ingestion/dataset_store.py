"""
Dataset Store
=============

Saves and reloads the pre-normalization record set of a scope so reports can
be re-rendered without querying the directory again.

Files are JSON, one per scope:
    forest_<dataset>.json
    domain_<dataset>_<domain>.json

Each file records the forest or domain name it was gathered from, so a
reload can rebuild the run without any directory access.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ..errors import MissingDataset
from ..model.schemas import DirectoryRecord
from .ldap_loader import DirectoryQueryAdapter

logger = logging.getLogger(__name__)

SCOPES = ("forest", "domain")
FORMAT_VERSION = 1


def safe_file_name(name: str) -> str:
    """Replace characters that are unsafe in file names."""
    cleaned = re.sub(r'[^A-Za-z0-9._-]+', '_', name.strip())
    return cleaned.strip('._') or "dataset"


@dataclass
class SavedDataset:
    """Contents of one dataset file."""
    scope: str
    name: str
    subject: str
    saved_at: str
    records: list


class DatasetStore:
    """JSON persistence for DirectoryRecord sets.

    Usage:
        store = DatasetStore("output")
        store.save("domain", "inventory_corp.local", records, subject="corp.local")
        records = store.load("domain", "inventory_corp.local")
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def path_for(self, scope: str, name: str) -> Path:
        if scope not in SCOPES:
            raise ValueError(f"Unknown dataset scope: {scope}")
        return self.directory / f"{scope}_{safe_file_name(name)}.json"

    def save(self, scope: str, name: str, records, subject: str = "") -> Path:
        """Write a record set and return the file path."""
        path = self.path_for(scope, name)
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = {
            "version": FORMAT_VERSION,
            "scope": scope,
            "name": name,
            "subject": subject or name,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "records": [record.to_dict() for record in records],
        }
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)

        logger.info(f"[+] Saved {len(payload['records'])} records to {path}")
        return path

    def read(self, scope: str, name: str) -> SavedDataset:
        """Read a dataset file with its metadata.

        Raises:
            MissingDataset: If the file does not exist or cannot be parsed
        """
        return self._read_path(scope, self.path_for(scope, name))

    def _read_path(self, scope: str, path: Path) -> SavedDataset:
        if not path.is_file():
            raise MissingDataset(f"No saved {scope} dataset at {path}", str(path))

        try:
            with open(path, 'r', encoding='utf-8') as f:
                payload = json.load(f)
            records = [DirectoryRecord.from_dict(item) for item in payload["records"]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise MissingDataset(f"Saved {scope} dataset {path} is unreadable: {e}", str(path)) from e

        logger.info(f"[+] Loaded {len(records)} records from {path}")
        return SavedDataset(
            scope=payload.get("scope", scope),
            name=payload.get("name", ""),
            subject=payload.get("subject", ""),
            saved_at=payload.get("saved_at", ""),
            records=records,
        )

    def load(self, scope: str, name: str) -> list[DirectoryRecord]:
        """Records saved by save().

        Raises:
            MissingDataset: If the file does not exist or cannot be parsed
        """
        return self.read(scope, name).records

    def exists(self, scope: str, name: str) -> bool:
        return self.path_for(scope, name).is_file()

    def list_subjects(self, scope: str, dataset: str) -> list[str]:
        """Subjects (domain names) saved under a dataset name, sorted."""
        prefix = f"{scope}_{safe_file_name(dataset)}_"
        subjects = set()
        for path in sorted(self.directory.glob(f"{prefix}*.json")):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    payload = json.load(f)
                subject = payload.get("subject", "")
                name = payload.get("name", "")
            except (OSError, ValueError, AttributeError) as e:
                logger.warning(f"[!] Ignoring unreadable dataset {path}: {e}")
                continue
            # Other datasets can share the file-name prefix (inv, inv_2)
            if subject and name == domain_dataset_name(dataset, subject):
                subjects.add(subject.lower())
            else:
                logger.debug(f"[*] {path.name} belongs to another dataset")
        return sorted(subjects)


def domain_dataset_name(dataset: str, domain: str) -> str:
    """File-name key of one domain's saved record set."""
    return f"{dataset}_{domain.lower()}"


class SavedDatasetAdapter(DirectoryQueryAdapter):
    """Directory adapter backed by previously saved datasets.

    Fetches raise MissingDataset instead of DirectoryUnavailable, so the run
    skips a scope whose file is absent rather than failing it.
    """

    def __init__(self, store: DatasetStore, dataset: str):
        self.store = store
        self.dataset = dataset
        self._forest = None

    def _forest_dataset(self) -> SavedDataset:
        if self._forest is None:
            self._forest = self.store.read("forest", self.dataset)
        return self._forest

    def forest_name(self) -> str:
        try:
            return self._forest_dataset().subject or self.dataset
        except MissingDataset:
            return self.dataset

    def list_domains(self) -> list[str]:
        return self.store.list_subjects("domain", self.dataset)

    def fetch_forest(self) -> list[DirectoryRecord]:
        return list(self._forest_dataset().records)

    def fetch_domain(self, domain: str) -> list[DirectoryRecord]:
        return self.store.load("domain", domain_dataset_name(self.dataset, domain))
