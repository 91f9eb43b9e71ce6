"""QueueStore - durable on-disk queue of pending account changes."""

import contextlib
import os
from datetime import datetime
from pathlib import Path
from typing import Generator, TextIO

from krb5_sync.core.conventions import path
from krb5_sync.exceptions import ConfigError, ParseError, SyncSystemError
from krb5_sync.mixins import LogMixin
from krb5_sync.model import Change, Principal, QueueEntry
from krb5_sync.storage.lock import DirectoryLock


class QueueStore(LogMixin):
    """
    Durable queue of account changes that couldn't (or shouldn't) be
    delivered right away.

    Every structural operation (conflict scan, entry creation, listing) runs
    while holding the [DirectoryLock][krb5_sync.storage.lock.DirectoryLock].
    Entries are created with exclusive-create semantics, never modified and
    only removed by a successful replay.

    Layout: see [krb5_sync.core.conventions.path][]

    Example:
        ```python
        queue = QueueStore("/var/spool/krb5-sync")
        change = Change(principal="test@EXAMPLE.COM", operation="disable")
        if queue.has_conflict(change.principal, "ad", "disable"):
            queue.enqueue(change)
        ```
    """

    def __init__(self, uri: str | Path | None) -> None:
        self.uri = Path(uri) if uri is not None else None

    @property
    def directory(self) -> Path:
        """
        Raises:
            ConfigError: If no queue directory is configured
        """
        if self.uri is None:
            raise ConfigError("configuration setting queue_dir missing")
        return self.uri

    def lock(self) -> DirectoryLock:
        return DirectoryLock(self.directory)

    def has_conflict(
        self, principal: Principal | str, domain: str, operation: str
    ) -> bool:
        """
        Check whether a change for the same user, domain and change class is
        already queued. This is a point-in-time answer only, use
        `check_and_enqueue` to act on it atomically.
        """
        return self.has_conflict_prefix(
            path.queue_prefix(principal, domain, operation)
        )

    def has_conflict_prefix(self, prefix: str) -> bool:
        """Check for a queued entry whose name starts with `prefix`"""
        with self.lock():
            return self._scan(prefix)

    def enqueue(self, change: Change, now: datetime | None = None) -> str:
        """
        Write a new queue entry for the change.

        Args:
            change: The change to harden
            now: Timestamp to use, omit to use current time

        Raises:
            ConfigError: If no queue directory is configured
            SyncSystemError: If the entry cannot be created or written

        Returns:
            The file name of the new entry
        """
        directory = self.directory
        with self.lock():
            name = self._write(change, now)
        self.log.info(
            f"Queued `{change.operation}` for `{change.account}`",
            entry=name,
            directory=str(directory),
        )
        return name

    def check_and_enqueue(
        self, change: Change, now: datetime | None = None
    ) -> str | None:
        """
        Queue the change only if a conflicting entry is already queued. Check
        and write happen within one locked section.

        Returns:
            The file name of the new entry or `None` if there was no conflict
        """
        with self.lock():
            if not self._scan(change.key):
                return None
            name = self._write(change, now)
        self.log.info(
            f"Queued `{change.operation}` for `{change.account}` behind "
            "pending change",
            entry=name,
        )
        return name

    def iterate_entries(self) -> Generator[str, None, None]:
        """
        Iterate the names of all queued entries in sorted order. Within one
        conflict key this is the order the entries were created in.
        """
        with self.lock():
            names = sorted(self._list())
        yield from names

    def get_path(self, name: str) -> Path:
        return self.directory / name

    def read(self, name: str) -> QueueEntry:
        return read_entry(self.get_path(name))

    def delete(self, name: str) -> None:
        """Remove an entry (without holding the lock)"""
        remove_entry(self.get_path(name))

    def _list(self) -> Generator[str, None, None]:
        try:
            with os.scandir(self.directory) as entries:
                for entry in entries:
                    if path.is_entry(entry.name) and entry.is_file():
                        yield entry.name
        except OSError as e:
            raise SyncSystemError(f"cannot open {self.directory}", e) from e

    def _scan(self, prefix: str) -> bool:
        try:
            with os.scandir(self.directory) as entries:
                for entry in entries:
                    if entry.name.startswith(prefix):
                        return True
        except OSError as e:
            raise SyncSystemError(f"cannot open {self.directory}", e) from e
        return False

    def _next_seq(self, prefix: str, ts: str) -> int:
        # continue after the highest sequence of this second, freed numbers
        # are not reused
        stem = f"{prefix}{ts}-"
        seq = 0
        try:
            with os.scandir(self.directory) as entries:
                for entry in entries:
                    suffix = entry.name[len(stem) :]
                    if entry.name.startswith(stem) and suffix.isdigit():
                        seq = max(seq, int(suffix) + 1)
        except OSError as e:
            raise SyncSystemError(f"cannot open {self.directory}", e) from e
        return seq

    def _create(self, prefix: str, ts: str) -> tuple[int, Path]:
        for seq in range(self._next_seq(prefix, ts), path.MAX_QUEUE):
            fp = self.directory / path.entry_name(prefix, ts, seq)
            try:
                flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL
                fd = os.open(fp, flags, path.ENTRY_MODE)
            except FileExistsError:
                continue
            except OSError as e:
                raise SyncSystemError(f"cannot create queue file {fp}", e) from e
            return fd, fp
        raise SyncSystemError(f"too many queue files for {prefix}{ts}")

    def _write(self, change: Change, now: datetime | None = None) -> str:
        try:
            data = "".join(f"{line}\n" for line in change.lines()).encode("utf-8")
        except UnicodeEncodeError as e:
            raise SyncSystemError(f"cannot encode change for {change.account}") from e
        # the lock is held, so the timestamp is taken after any earlier writer
        ts = path.timestamp(now)
        fd, fp = self._create(change.key, ts)
        try:
            try:
                if os.write(fd, data) != len(data):
                    raise SyncSystemError(f"cannot write queue file {fp}")
                os.fchmod(fd, path.ENTRY_MODE)
            finally:
                os.close(fd)
        except OSError as e:
            _discard(fp)
            raise SyncSystemError(f"cannot write queue file {fp}", e) from e
        except SyncSystemError:
            _discard(fp)
            raise
        return fp.name

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.uri})>"


def _discard(fp: Path) -> None:
    with contextlib.suppress(OSError):
        os.unlink(fp)


def _read_line(fh: TextIO, fp: Path) -> str:
    line = fh.readline()
    if not line:
        raise ParseError(f"missing line in queue file {fp}")
    if not line.endswith("\n"):
        raise ParseError(f"unterminated line in queue file {fp}")
    return line[:-1]


def read_entry(fp: str | Path) -> QueueEntry:
    """
    Read and validate a queue file.

    Raises:
        SyncSystemError: If the file cannot be read
        ParseError: If a required line is missing or unterminated, or the
            domain or operation is unknown
    """
    fp = Path(fp)
    try:
        with open(fp, encoding="utf-8", newline="") as fh:
            account = _read_line(fh, fp)
            domain = _read_line(fh, fp)
            if domain not in path.DOMAINS:
                raise ParseError(f"unknown target system {domain} in queue file {fp}")
            operation = _read_line(fh, fp)
            if operation not in path.OPERATIONS:
                raise ParseError(f"unknown action {operation} in queue file {fp}")
            password = None
            if operation == "password":
                password = _read_line(fh, fp)
    except UnicodeDecodeError as e:
        raise ParseError(f"cannot decode queue file {fp}: {e.reason}") from e
    except OSError as e:
        raise SyncSystemError(f"cannot read queue file {fp}", e) from e
    return QueueEntry(
        path=fp,
        account=account,
        domain=domain,
        operation=operation,
        password=password,
    )


def remove_entry(fp: str | Path) -> None:
    """
    Raises:
        SyncSystemError: If the file cannot be removed
    """
    try:
        os.unlink(fp)
    except OSError as e:
        raise SyncSystemError(f"unable to unlink queue file {fp}", e) from e
