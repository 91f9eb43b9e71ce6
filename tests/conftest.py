from pathlib import Path

import pytest

from krb5_sync.core.settings import Settings
from krb5_sync.storage.queue import QueueStore
from tests import shared
from tests.shared import REALM, RecordingDelivery


@pytest.fixture(scope="function")
def queue_dir(tmp_path) -> Path:
    path = tmp_path / "queue"
    path.mkdir()
    return path


@pytest.fixture(scope="function")
def queue(queue_dir) -> QueueStore:
    return QueueStore(queue_dir)


@pytest.fixture(scope="function")
def settings(queue_dir) -> Settings:
    return Settings(queue_dir=str(queue_dir), realm=REALM)


@pytest.fixture(scope="function")
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture(scope="function")
def failing_delivery() -> RecordingDelivery:
    return RecordingDelivery(fail=True)


@pytest.fixture(autouse=True, scope="function")
def clean_env(monkeypatch):
    for key in (
        "KRB5_SYNC_QUEUE_DIR",
        "KRB5_SYNC_QUEUE_ONLY",
        "KRB5_SYNC_REALM",
        "KRB5_SYNC_DELIVERY",
        "KRB5_SYNC_AD_INSTANCES",
        "KRB5_SYNC_AD_BASE_INSTANCE",
    ):
        monkeypatch.delenv(key, raising=False)
    shared.CALLS.clear()
    yield
