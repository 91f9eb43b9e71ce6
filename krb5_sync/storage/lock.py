"""DirectoryLock - advisory exclusive lock for a queue directory."""

import contextlib
import fcntl
import os
from pathlib import Path
from typing import Self

from krb5_sync.core.conventions import path
from krb5_sync.exceptions import SyncSystemError


class DirectoryLock:
    """
    Whole-file exclusive `flock` on the `.lock` file of a queue directory.

    Acquiring blocks without timeout until any other holder releases. The lock
    file is created on first use and never deleted; only its lock state
    matters. A crashed holder's lock is dropped by the OS when its descriptor
    is closed.

    The lock is not reentrant: a second `acquire` from the same process
    through another `DirectoryLock` instance blocks forever.

    Example:
        ```python
        with DirectoryLock("/var/spool/krb5-sync"):
            ...
        ```
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.path = self.directory / path.LOCK
        self.fd: int | None = None

    def acquire(self) -> int:
        """
        Open (or create) the lock file and block until the exclusive lock is
        held.

        Raises:
            SyncSystemError: If the lock file cannot be opened or locked

        Returns:
            The file descriptor holding the lock
        """
        try:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, path.LOCK_MODE)
        except OSError as e:
            raise SyncSystemError(f"cannot open lock file {self.path}", e) from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError as e:
            os.close(fd)
            raise SyncSystemError(f"cannot flock lock file {self.path}", e) from e
        self.fd = fd
        return fd

    def release(self) -> None:
        """Close the descriptor and therefore the lock. Never fails."""
        if self.fd is None:
            return
        with contextlib.suppress(OSError):
            os.close(self.fd)
        self.fd = None

    @property
    def locked(self) -> bool:
        return self.fd is not None

    def __enter__(self) -> Self:
        self.acquire()
        return self

    def __exit__(self, *args) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.path})>"
