from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process wide configuration, read from `KRB5_SYNC_*` environment variables
    or a `.env` file. Immutable once loaded.
    """

    model_config = SettingsConfigDict(
        env_prefix="krb5_sync_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    queue_dir: str | None = None
    """Directory holding queued changes and the `.lock` file"""

    queue_only: bool = False
    """Always queue changes instead of attempting delivery"""

    realm: str | None = None
    """Default realm to qualify account names read from queue files"""

    delivery: str | None = None
    """Delivery backend as import path, e.g. `mypackage.ad:deliver`"""

    ad_instances: Annotated[list[str], NoDecode] = []
    """Principal instances that are propagated (space separated)"""

    ad_base_instance: str | None = None
    """Instance whose password is propagated as the base account instead"""

    debug: bool = False
    log_level: str = "INFO"

    @field_validator("ad_instances", mode="before")
    @classmethod
    def split_instances(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split()
        return value
