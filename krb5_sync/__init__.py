"""Propagate Kerberos account changes to Active Directory, with a durable
on-disk queue for changes that can't be delivered right away."""

__version__ = "0.1.0"

from krb5_sync.core.settings import Settings  # noqa: E402
from krb5_sync.model import Change, Principal, QueueEntry  # noqa: E402
from krb5_sync.operation import (  # noqa: E402
    DrainResult,
    ReplayOperation,
    SyncOperation,
    SyncResult,
)
from krb5_sync.storage import DirectoryLock, QueueStore  # noqa: E402

__all__ = [
    "Change",
    "DirectoryLock",
    "DrainResult",
    "Principal",
    "QueueEntry",
    "QueueStore",
    "ReplayOperation",
    "Settings",
    "SyncOperation",
    "SyncResult",
]
