"""
Delivery collaborator boundary.

The queue never talks to the downstream directory itself. A delivery backend
is any callable matching [Delivery][krb5_sync.delivery.Delivery] that raises
[DeliveryError][krb5_sync.exceptions.DeliveryError] when the change could not
be applied. Backends are configured by import path, e.g.
`KRB5_SYNC_DELIVERY=mypackage.ad:deliver`.
"""

from importlib import import_module
from typing import Callable, Protocol

from krb5_sync.core.settings import Settings
from krb5_sync.exceptions import ConfigError
from krb5_sync.model import Operation, Principal

InstanceExists = Callable[[Principal, str], bool]
"""Check whether `principal` with the given instance exists in the KDC"""


class Delivery(Protocol):
    def __call__(
        self, account: str, operation: Operation, password: str | None = None
    ) -> None:
        """
        Apply a change downstream.

        Args:
            account: Principal name (with realm)
            operation: `password`, `enable` or `disable`
            password: The new password for `password` operations

        Raises:
            DeliveryError: If the change was not applied
        """
        ...


def load_delivery(import_path: str) -> Delivery:
    """
    Load a delivery backend from an import path `package.module:attribute`

    Raises:
        ConfigError: If the path is invalid or doesn't point to a callable
    """
    module_name, _, attr = import_path.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Invalid delivery import path: `{import_path}`")
    try:
        module = import_module(module_name)
    except ImportError as e:
        raise ConfigError(
            f"Cannot import delivery module `{module_name}`: {e}"
        ) from e
    deliver = getattr(module, attr, None)
    if not callable(deliver):
        raise ConfigError(f"Delivery `{import_path}` is not callable")
    return deliver


def get_delivery(settings: Settings) -> Delivery | None:
    """Get the configured delivery backend, if any"""
    if settings.delivery:
        return load_delivery(settings.delivery)
    return None
