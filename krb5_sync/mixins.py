from functools import cached_property
from pathlib import Path

from anystore.logging import BoundLogger, get_logger


class LogMixin:
    uri: Path | None

    @cached_property
    def log(self) -> BoundLogger:
        """Get a struct logger with prepopulated context"""
        name = f"krb5_sync.{self.__class__.__name__}"
        return get_logger(name, queue=str(self.uri) if self.uri else None)
