"""
invAD Ingestion Module
======================

Sources of raw directory records.

Supported Sources:
- Live LDAP collection (ldap_loader.LDAPDirectoryAdapter)
- In-memory record sets (ldap_loader.StaticDirectoryAdapter)
- Saved datasets (dataset_store.DatasetStore, SavedDatasetAdapter)
"""

from .ldap_loader import DirectoryQueryAdapter, LDAPDirectoryAdapter, StaticDirectoryAdapter, LDAP3_AVAILABLE
from .dataset_store import DatasetStore, SavedDatasetAdapter, domain_dataset_name
