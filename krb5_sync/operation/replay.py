"""Replay queued changes against the delivery backend."""

from pathlib import Path

from anystore.model import BaseModel

from krb5_sync.core.conventions import path
from krb5_sync.delivery import Delivery
from krb5_sync.exceptions import (
    ConfigError,
    DeliveryError,
    ParseError,
    SyncSystemError,
)
from krb5_sync.mixins import LogMixin
from krb5_sync.model import Principal, QueueEntry
from krb5_sync.storage.queue import QueueStore, read_entry, remove_entry


class DrainResult(BaseModel):
    replayed: list[str] = []
    """Entries delivered and removed"""
    failed: list[str] = []
    """Entries that failed and are kept"""
    skipped: list[str] = []
    """Entries kept because an earlier entry with the same key failed"""

    @property
    def ok(self) -> bool:
        return not self.failed


class ReplayOperation(LogMixin):
    """
    Deliver queued changes. An entry is removed only after the delivery
    backend accepted it; on any failure the file stays untouched for a later
    attempt. There is no retry here, retrying means running the replay again
    (by an operator or a timer).

    Example:
        ```python
        replay = ReplayOperation(deliver, default_realm="EXAMPLE.COM")
        replay.replay("/var/spool/krb5-sync/test-ad-password-20240101T000000Z-00")
        ```
    """

    def __init__(
        self,
        deliver: Delivery,
        default_realm: str | None = None,
        queue: QueueStore | None = None,
    ) -> None:
        self.deliver = deliver
        self.default_realm = default_realm
        self.queue = queue
        self.uri = queue.uri if queue is not None else None

    def replay(self, fp: str | Path) -> QueueEntry:
        """
        Replay a single queue file and remove it on success.

        Raises:
            ParseError: The file is malformed (it is kept)
            DeliveryError: Delivery failed (the file is kept)
            SyncSystemError: The file could not be read or removed
        """
        entry = read_entry(fp)
        try:
            principal = Principal.parse(entry.account, self.default_realm)
        except ValueError as e:
            raise ParseError(
                f"cannot parse user {entry.account} into principal: {e}"
            ) from e
        account = principal.unparse()
        log = self.log.bind(entry=entry.name, account=account)
        log.info(f"Replaying `{entry.operation}` for `{account}` ...")
        self.deliver(account, entry.operation, entry.password)
        remove_entry(entry.path)
        log.info(f"AD {_describe(entry)} change for `{account}` succeeded")
        return entry

    def drain(self) -> DrainResult:
        """
        Replay all queued entries in name order. If an entry fails, later
        entries with the same conflict key are left alone in this run so that
        they are never applied before it.

        Raises:
            ConfigError: If no queue is configured
            SyncSystemError: On failures other than a vanished entry
        """
        if self.queue is None:
            raise ConfigError("configuration setting queue_dir missing")
        result = DrainResult()
        blocked: set[str] = set()
        for name in self.queue.iterate_entries():
            try:
                key = path.entry_key(name)
            except ValueError:
                key = name
            if key in blocked:
                self.log.info("Skipping, earlier change pending", entry=name)
                result.skipped.append(name)
                continue
            try:
                self.replay(self.queue.get_path(name))
            except (DeliveryError, ParseError) as e:
                self.log.error(f"{e.__class__.__name__}: {e}", entry=name)
                result.failed.append(name)
                blocked.add(key)
            except SyncSystemError as e:
                if not isinstance(e.error, FileNotFoundError):
                    raise
                # replayed concurrently by another process
                self.log.debug("Entry vanished", entry=name)
            else:
                result.replayed.append(name)
        self.log.info(
            "Queue drained.",
            replayed=len(result.replayed),
            failed=len(result.failed),
            skipped=len(result.skipped),
        )
        return result


def _describe(entry: QueueEntry) -> str:
    if entry.operation == "password":
        return "password"
    return "status"
