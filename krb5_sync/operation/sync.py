"""Decide whether a change is delivered now or queued for later."""

from enum import Enum

from pydantic import ValidationError

from krb5_sync.core.settings import Settings
from krb5_sync.delivery import Delivery, InstanceExists
from krb5_sync.exceptions import DeliveryError, ParseError
from krb5_sync.mixins import LogMixin
from krb5_sync.model import Change, Operation, Principal, ensure_principal
from krb5_sync.storage.queue import QueueStore


class SyncResult(str, Enum):
    SKIPPED = "skipped"
    DONE = "done"
    QUEUE_FORCED = "queue_forced"
    QUEUE_CONFLICT = "queue_conflict"
    QUEUE_ON_FAILURE = "queue_on_failure"

    @property
    def queued(self) -> bool:
        return self in (
            SyncResult.QUEUE_FORCED,
            SyncResult.QUEUE_CONFLICT,
            SyncResult.QUEUE_ON_FAILURE,
        )


class SyncOperation(LogMixin):
    """
    Propagate an administrative change downstream, falling back to the queue.

    - A change is always queued if a change of the same class for the same
      account is already queued, so that queued changes are never overtaken.
    - With `queue_only` set, changes are queued without attempting delivery.
    - Otherwise delivery is attempted and the change is queued if it fails.

    Errors of the queue itself (`ConfigError`, `SyncSystemError`) are never
    recovered from: without a working queue there is no fallback.

    Principals with an instance are only propagated if the instance is listed
    in `ad_instances` or is the `ad_base_instance`. A password change for a
    single component principal is skipped if `ad_base_instance` is set and
    that instance of the principal exists, as its password is propagated in
    place of the base account.
    """

    def __init__(
        self,
        settings: Settings,
        deliver: Delivery | None = None,
        queue: QueueStore | None = None,
        instance_exists: InstanceExists | None = None,
    ) -> None:
        self.settings = settings
        self.deliver = deliver
        self.queue = queue or QueueStore(settings.queue_dir)
        self.uri = self.queue.uri
        self.instance_exists = instance_exists

    def chpass(self, principal: Principal | str, password: str | None) -> SyncResult:
        """
        Propagate a password change. Without a password (key randomization)
        there is nothing to propagate.

        Raises:
            ParseError: If the principal or password is invalid
        """
        if password is None:
            self.log.debug(
                "No password, keys randomized, skipping ...", account=str(principal)
            )
            return SyncResult.SKIPPED
        return self.propagate(make_change(principal, "password", password))

    def status(self, principal: Principal | str, enabled: bool) -> SyncResult:
        """
        Propagate an account status (enable or disable) change

        Raises:
            ParseError: If the principal is invalid
        """
        operation: Operation = "enable" if enabled else "disable"
        return self.propagate(make_change(principal, operation))

    def propagate(self, change: Change) -> SyncResult:
        if not self.is_allowed(change):
            return SyncResult.SKIPPED
        if self.settings.queue_only:
            self.queue.enqueue(change)
            return SyncResult.QUEUE_FORCED
        deliver = self.deliver
        if deliver is None:
            self.log.debug("No delivery configured, skipping ...")
            return SyncResult.SKIPPED
        if self.queue.check_and_enqueue(change) is not None:
            return SyncResult.QUEUE_CONFLICT

        account = change.principal.unparse()
        try:
            deliver(account, change.operation, change.password)
        except DeliveryError as e:
            kind = "password" if change.operation == "password" else "status"
            self.log.warning(
                f"AD {kind} change failed, queuing: {e}", account=account
            )
            self.queue.enqueue(change)
            return SyncResult.QUEUE_ON_FAILURE
        self.log.info(f"Propagated `{change.operation}` for `{account}`")
        return SyncResult.DONE

    def is_allowed(self, change: Change) -> bool:
        """Check if the principal of this change should be propagated"""
        principal = change.principal
        base_instance = self.settings.ad_base_instance
        instance = principal.instance
        if instance is not None:
            if instance == base_instance or instance in self.settings.ad_instances:
                return True
            self.log.debug(
                f'Ignoring principal "{principal}" with non-null instance'
            )
            return False
        if (
            change.operation == "password"
            and base_instance
            and self.instance_exists is not None
            and self.instance_exists(principal, base_instance)
        ):
            self.log.debug(
                f'Ignoring principal "{principal}" because {base_instance} '
                "instance exists"
            )
            return False
        return True


def make_change(
    principal: Principal | str, operation: Operation, password: str | None = None
) -> Change:
    """
    Build a validated change

    Raises:
        ParseError: If the principal or password is invalid
    """
    try:
        return Change(
            principal=ensure_principal(principal),
            operation=operation,
            password=password,
        )
    except ValidationError as e:
        reason = "; ".join(err["msg"] for err in e.errors())
        raise ParseError(
            f"invalid {operation} change for {principal}: {reason}"
        ) from e
    except ValueError as e:
        raise ParseError(f"cannot parse {principal} into principal: {e}") from e
