from __future__ import annotations

import json

import pytest

from vivestream.config import StreamConfig, load_config
from vivestream.device import DEVICE_CLASS_GENERIC_TRACKER


def test_defaults() -> None:
    config = load_config()
    assert config == StreamConfig()
    assert config.port == 12345
    assert config.reject_threshold == 0.05
    assert config.active_poll_ms == 5.0
    assert config.idle_poll_ms == 50.0
    assert config.restamp_on_send is True
    assert config.device_class_ids == [DEVICE_CLASS_GENERIC_TRACKER]


def test_load_from_file(tmp_path) -> None:
    path = tmp_path / "vivestream.json"
    path.write_text(json.dumps({
        "port": 23456,
        "reject_threshold": 0.1,
        "restamp_on_send": False,
        "device_classes": ["tracker", "controller"],
    }))

    config = load_config(str(path))
    assert config.port == 23456
    assert config.reject_threshold == 0.1
    assert config.restamp_on_send is False
    assert config.device_class_ids == [3, 2]
    # Unspecified keys keep their defaults
    assert config.client_host == "127.0.0.1"
    assert config.idle_poll_ms == 50.0


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.json"))


def test_non_object_raises(tmp_path) -> None:
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")
    with pytest.raises(ValueError):
        load_config(str(path))


@pytest.mark.parametrize(
    "overrides",
    [
        {"port": 70000},
        {"reject_threshold": 0.0},
        {"active_poll_ms": -1.0},
        {"device_classes": ["lighthouse"]},
    ],
)
def test_invalid_values_raise(overrides) -> None:
    with pytest.raises(ValueError):
        StreamConfig(**overrides)


@pytest.mark.parametrize("key", ["restamp_on_send", "quiet"])
@pytest.mark.parametrize("value", ["false", 0, None])
def test_non_boolean_flags_in_file_raise(tmp_path, key, value) -> None:
    path = tmp_path / "flags.json"
    path.write_text(json.dumps({key: value}))
    with pytest.raises(ValueError):
        load_config(str(path))
