"""
invAD Analysis Module
=====================

Pure transformation stages between raw records and report sections.

Key Components:
- normalizer.py: Raw attributes -> canonical report records
- privileged.py: Transitive closure of privileged-group membership
"""

from .normalizer import AttributeNormalizer, parse_timestamp
from .privileged import PrivilegedMembershipResolver, PrivilegedResolution
