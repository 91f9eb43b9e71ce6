"""Operations: the delivery attempt policy and queue replay.

They combine the queue with the delivery backend and are triggered by the
host hook or the command line.
"""

from krb5_sync.operation.replay import DrainResult, ReplayOperation
from krb5_sync.operation.sync import SyncOperation, SyncResult

__all__ = ["DrainResult", "ReplayOperation", "SyncOperation", "SyncResult"]
