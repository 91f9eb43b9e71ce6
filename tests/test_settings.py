import pytest
from pydantic import ValidationError

from krb5_sync.core.settings import Settings


def test_settings_defaults():
    settings = Settings()
    assert settings.queue_dir is None
    assert settings.queue_only is False
    assert settings.delivery is None
    assert settings.ad_instances == []
    assert settings.ad_base_instance is None


def test_settings_env(monkeypatch, tmp_path):
    monkeypatch.setenv("KRB5_SYNC_QUEUE_DIR", str(tmp_path))
    monkeypatch.setenv("KRB5_SYNC_QUEUE_ONLY", "true")
    monkeypatch.setenv("KRB5_SYNC_REALM", "EXAMPLE.COM")
    monkeypatch.setenv("KRB5_SYNC_AD_INSTANCES", "ipass  admin")
    monkeypatch.setenv("KRB5_SYNC_AD_BASE_INSTANCE", "ipass")
    settings = Settings()
    assert settings.queue_dir == str(tmp_path)
    assert settings.queue_only is True
    assert settings.realm == "EXAMPLE.COM"
    assert settings.ad_instances == ["ipass", "admin"]
    assert settings.ad_base_instance == "ipass"

    # explicit arguments win
    settings = Settings(queue_dir="/tmp/other", ad_instances=["x"])
    assert settings.queue_dir == "/tmp/other"
    assert settings.ad_instances == ["x"]


def test_settings_frozen():
    settings = Settings(queue_dir="/tmp/queue")
    with pytest.raises(ValidationError):
        settings.queue_dir = "/tmp/other"
