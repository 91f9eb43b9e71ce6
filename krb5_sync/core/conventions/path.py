"""
Path conventions for the krb5-sync change queue.

The queue is a single flat directory. Every pending change is one file whose
name encodes the account, the downstream system and the change class, so that
conflicting changes can be found by a plain prefix scan.

Queue Layout
------------

::

    queue/
        .lock                                       # advisory lock, never deleted
        test-ad-password-20240101T000000Z-00        # pending password change
        test-ad-password-20240101T000000Z-01        # same second, same key
        host.service-ad-enable-20240101T000102Z-00  # pending enable or disable

Entry name grammar::

    <user>-<domain>-<class>-<YYYYMMDD>T<HHMMSS>Z-<NN>

Entry content (newline terminated fields)::

    <account>
    <domain>
    <enable|disable|password>
    [<password>]
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from krb5_sync.model import Principal

LOCK = ".lock"
"""Lock file name inside the queue directory"""

DOMAIN = "ad"
"""Active Directory, the only downstream system"""

DOMAINS = (DOMAIN,)
"""Known downstream systems"""

OPERATIONS = ("password", "enable", "disable")
"""Known operations"""

TS_FORMAT = "%Y%m%dT%H%M%SZ"
"""Timestamp format for queue entry names (UTC, second resolution)"""

MAX_QUEUE = 100
"""Maximum number of entries per key within the same second"""

LOCK_MODE = 0o644
ENTRY_MODE = 0o600


def change_class(operation: str) -> str:
    """
    Get the change class of an operation. Enable and disable share one class
    so that they always conflict with each other.

    Examples:
        >>> change_class("disable")
        "enable"
    """
    if operation not in OPERATIONS:
        raise ValueError(f"Invalid operation: `{operation}`")
    if operation == "disable":
        return "enable"
    return operation


def strip_realm(name: str) -> str:
    """
    Cut off the realm of an unparsed principal name. An escaped `@` is part of
    the name and not a realm separator.

    Examples:
        >>> strip_realm("test@EXAMPLE.COM")
        "test"
        >>> strip_realm(r"te\\@st@EXAMPLE.COM")
        "te\\@st"
    """
    escaped = False
    for ix, char in enumerate(name):
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "@":
            return name[:ix]
    return name


def normalize_user(principal: "Principal | str") -> str:
    """
    Get the file name safe user part of a queue key: the display name without
    realm and with component separators replaced by `.`

    Examples:
        >>> normalize_user("host/service@EXAMPLE.COM")
        "host.service"
    """
    from krb5_sync.model import ensure_principal

    name = strip_realm(ensure_principal(principal).unparse())
    return name.replace("/", ".")


def queue_prefix(principal: "Principal | str", domain: str, operation: str) -> str:
    """
    Derive the conflict key for a change. The key is also the file name prefix
    of all queue entries for this (user, domain, change class).

    Layout: <user>-<domain>-<class>-

    Args:
        principal: Principal or its unparsed name
        domain: Downstream system identifier
        operation: `password`, `enable` or `disable`

    Returns:
        Prefix like "test-ad-password-"
    """
    if domain not in DOMAINS:
        raise ValueError(f"Invalid domain: `{domain}`")
    return f"{normalize_user(principal)}-{domain}-{change_class(operation)}-"


def timestamp(now: datetime | None = None) -> str:
    """
    Get the UTC timestamp used in queue entry names. Naive datetimes are
    interpreted as UTC.

    Examples:
        >>> timestamp(datetime(2024, 1, 1))
        "20240101T000000Z"
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime(TS_FORMAT)


def entry_name(prefix: str, ts: str, seq: int) -> str:
    """
    Get a queue entry name for the given key prefix, timestamp and sequence

    Layout: <prefix><timestamp>-<NN>
    """
    if not 0 <= seq < MAX_QUEUE:
        raise ValueError(f"Invalid sequence: `{seq}`")
    return f"{prefix}{ts}-{seq:02d}"


def entry_key(name: str) -> str:
    """
    Get the conflict key prefix back from a queue entry name

    Examples:
        >>> entry_key("test-ad-password-20240101T000000Z-00")
        "test-ad-password-"
    """
    parts = name.rsplit("-", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid queue entry name: `{name}`")
    return f"{parts[0]}-"


def is_entry(name: str) -> bool:
    """Dot files (the lock file) are not queue entries"""
    return not name.startswith(".")
