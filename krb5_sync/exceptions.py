class SyncError(Exception):
    """
    Base error for all krb5-sync failures. Carries a human readable message
    and optionally the underlying OS error.
    """

    def __init__(self, message: str, error: OSError | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error = error

    def __str__(self) -> str:
        if self.error is not None:
            reason = self.error.strerror or str(self.error)
            return f"{self.message}: {reason}"
        return self.message


class ConfigError(SyncError):
    """Required configuration is missing"""


class SyncSystemError(SyncError):
    """An operating system level failure (open, lock, write, unlink, scan)"""


class ParseError(SyncError):
    """A queue file or an incoming change is malformed"""


class DeliveryError(SyncError):
    """The downstream directory rejected the change or could not be reached"""
