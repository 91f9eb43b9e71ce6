"""Storage layer: the queue directory and its lock.

Single purpose, no knowledge of delivery or policy.
"""

from krb5_sync.storage.lock import DirectoryLock
from krb5_sync.storage.queue import QueueStore, read_entry, remove_entry

__all__ = ["DirectoryLock", "QueueStore", "read_entry", "remove_entry"]
