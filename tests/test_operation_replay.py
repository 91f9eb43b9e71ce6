from datetime import datetime, timezone

import pytest

from krb5_sync.exceptions import (
    ConfigError,
    DeliveryError,
    ParseError,
    SyncSystemError,
)
from krb5_sync.model import Change
from krb5_sync.operation.replay import ReplayOperation
from tests.shared import REALM, RecordingDelivery, entries

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_operation_replay(queue, queue_dir, delivery):
    change = Change(
        principal="test@EXAMPLE.COM", operation="password", password="foobar"
    )
    name = queue.enqueue(change, now=NOW)
    assert name == "test-ad-password-20240101T000000Z-00"

    replay = ReplayOperation(delivery, default_realm=REALM)
    entry = replay.replay(queue_dir / name)
    assert entry.operation == "password"
    assert delivery.calls == [("test@EXAMPLE.COM", "password", "foobar")]
    assert not (queue_dir / name).exists()
    assert [p.name for p in queue_dir.iterdir()] == [".lock"]


def test_operation_replay_status(queue, queue_dir, delivery):
    queue.enqueue(Change(principal="host/service", operation="disable"), now=NOW)
    queue.enqueue(Change(principal="other", operation="enable"), now=NOW)
    replay = ReplayOperation(delivery, default_realm=REALM)
    for name in entries(queue_dir):
        replay.replay(queue_dir / name)
    assert delivery.calls == [
        ("host/service@EXAMPLE.COM", "disable", None),
        ("other@EXAMPLE.COM", "enable", None),
    ]
    assert entries(queue_dir) == []


def test_operation_replay_without_realm(queue, queue_dir, delivery):
    name = queue.enqueue(Change(principal="test@EXAMPLE.COM", operation="enable"))
    ReplayOperation(delivery).replay(queue_dir / name)
    assert delivery.calls == [("test", "enable", None)]


def test_operation_replay_failure(queue, queue_dir, failing_delivery):
    change = Change(
        principal="test@EXAMPLE.COM", operation="password", password="foobar"
    )
    name = queue.enqueue(change, now=NOW)
    fp = queue_dir / name
    before = fp.read_bytes()
    mode = fp.stat().st_mode

    replay = ReplayOperation(failing_delivery, default_realm=REALM)
    with pytest.raises(DeliveryError):
        replay.replay(fp)
    assert failing_delivery.calls == [("test@EXAMPLE.COM", "password", "foobar")]
    assert fp.read_bytes() == before
    assert fp.stat().st_mode == mode


@pytest.mark.parametrize(
    "content",
    [
        b"",
        b"test",
        b"test\nad",
        b"test\nad\n",
        b"test\nad\npassword",
        b"test\nad\npassword\n",
        b"test\nad\npassword\nfoobar",
        b"test\nad\nenable",
        b"test\nldap\nenable\n",
        b"test\nad\nrename\n",
        b"\\\nad\nenable\n",
        b"\xff\xfe\nad\nenable\n",
    ],
)
def test_operation_replay_malformed(queue_dir, delivery, content):
    fp = queue_dir / "test-ad-password-20240101T000000Z-00"
    fp.write_bytes(content)
    with pytest.raises(ParseError):
        ReplayOperation(delivery, default_realm=REALM).replay(fp)
    assert delivery.calls == []
    assert fp.read_bytes() == content


def test_operation_replay_missing_file(queue_dir, delivery):
    fp = queue_dir / "test-ad-enable-20240101T000000Z-00"
    with pytest.raises(SyncSystemError):
        ReplayOperation(delivery).replay(fp)


def test_operation_drain(queue, queue_dir):
    delivery = RecordingDelivery(fail_accounts={"alice@EXAMPLE.COM"})
    queue.enqueue(
        Change(principal="alice", operation="password", password="first"), now=NOW
    )
    queue.enqueue(
        Change(principal="alice", operation="password", password="second"), now=NOW
    )
    queue.enqueue(Change(principal="alice", operation="disable"), now=NOW)
    queue.enqueue(Change(principal="bob", operation="disable"), now=NOW)
    queue.enqueue(Change(principal="bob", operation="enable"), now=NOW)

    replay = ReplayOperation(delivery, default_realm=REALM, queue=queue)
    result = replay.drain()
    assert not result.ok
    # alice's second password change stays behind the failed first one
    assert result.failed == [
        "alice-ad-enable-20240101T000000Z-00",
        "alice-ad-password-20240101T000000Z-00",
    ]
    assert result.skipped == ["alice-ad-password-20240101T000000Z-01"]
    assert result.replayed == [
        "bob-ad-enable-20240101T000000Z-00",
        "bob-ad-enable-20240101T000000Z-01",
    ]
    assert delivery.calls == [
        ("alice@EXAMPLE.COM", "disable", None),
        ("alice@EXAMPLE.COM", "password", "first"),
        ("bob@EXAMPLE.COM", "disable", None),
        ("bob@EXAMPLE.COM", "enable", None),
    ]
    assert entries(queue_dir) == [
        "alice-ad-enable-20240101T000000Z-00",
        "alice-ad-password-20240101T000000Z-00",
        "alice-ad-password-20240101T000000Z-01",
    ]

    # once the downstream directory is back, the backlog drains in order
    delivery.fail_accounts.clear()
    delivery.calls.clear()
    result = replay.drain()
    assert result.ok
    assert len(result.replayed) == 3
    assert delivery.calls == [
        ("alice@EXAMPLE.COM", "disable", None),
        ("alice@EXAMPLE.COM", "password", "first"),
        ("alice@EXAMPLE.COM", "password", "second"),
    ]
    assert entries(queue_dir) == []


def test_operation_drain_malformed(queue, queue_dir, delivery):
    (queue_dir / "broken-ad-enable-20240101T000000Z-00").write_text("broken\n")
    queue.enqueue(Change(principal="test", operation="enable"), now=NOW)
    result = ReplayOperation(delivery, queue=queue).drain()
    assert result.failed == ["broken-ad-enable-20240101T000000Z-00"]
    assert result.replayed == ["test-ad-enable-20240101T000000Z-00"]


def test_operation_drain_not_configured(delivery):
    with pytest.raises(ConfigError):
        ReplayOperation(delivery).drain()


def test_operation_drain_order_after_replay(queue, queue_dir, delivery):
    def enqueue(password: str) -> str:
        change = Change(principal="alice", operation="password", password=password)
        return queue.enqueue(change, now=NOW)

    replay = ReplayOperation(delivery, default_realm=REALM, queue=queue)
    first = enqueue("first")
    enqueue("second")
    replay.replay(queue_dir / first)
    enqueue("third")

    assert replay.drain().ok
    assert delivery.calls == [
        ("alice@EXAMPLE.COM", "password", "first"),
        ("alice@EXAMPLE.COM", "password", "second"),
        ("alice@EXAMPLE.COM", "password", "third"),
    ]
    assert entries(queue_dir) == []
