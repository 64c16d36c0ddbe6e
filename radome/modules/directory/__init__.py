"""
Directory Module - Black Box Interface

Purpose: Own the in-memory view of provisioned workloads and their status
Interface: lookup(), lookup_or_hydrate(), sync_all(), upsert(), remove(),
           refresh_status(), create_instance(), remove_instance()
Hidden: Kubernetes object shapes, copy-on-write snapshots, refresh dedup

Replaceable with any store implementing InstanceStore (e.g. an in-memory fake).
"""

from .directory import InstanceDirectory, is_valid_instance_id
from .interfaces import InstanceStore
from .poller import StatusPoller
from .status import derive_status, latest_pod

__all__ = [
    "InstanceDirectory",
    "InstanceStore",
    "StatusPoller",
    "derive_status",
    "is_valid_instance_id",
    "latest_pod",
]
