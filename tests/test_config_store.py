from functools import reduce

import pytest

from dav_panel.errors import ValidationError
from dav_panel.models import CertConfig, Config
from dav_panel.store import ConfigStore


def test_store_starts_empty(store):
    assert store.get_config() == Config()
    assert store.cert.is_empty()


def test_patches_apply_as_left_fold(store):
    patches = [
        lambda c: c.model_copy(update={"ip": "127.0.0.1"}),
        lambda c: c.model_copy(update={"port": 8080}),
        Config(ip="0.0.0.0", root="/srv"),
        lambda c: c.model_copy(update={"port": (c.port or 0) + 1}),
        lambda c: c.model_copy(update={"enable_tls": True}),
    ]

    expected = reduce(lambda acc, p: p(acc) if callable(p) else p, patches, Config())
    for patch in patches:
        store.set_config(patch)

    assert store.get_config() == expected
    assert store.get_config() == Config(ip="0.0.0.0", root="/srv", port=1, enable_tls=True)


def test_set_config_rejects_non_config_result(store):
    with pytest.raises(TypeError):
        store.set_config(lambda c: {"ip": "1.2.3.4"})
    assert store.get_config() == Config()


def test_update_merges_fields(store):
    store.update(ip="::1")
    store.update(port=8080)

    assert store.get_config() == Config(ip="::1", port=8080)


def test_update_reports_invalid_fields_as_validation_error(store):
    store.update(port=80)

    with pytest.raises(ValidationError) as excinfo:
        store.update(port=-1)

    assert "port" in str(excinfo.value)
    assert store.get_config().port == 80


@pytest.mark.parametrize("username, password", [("", "x"), ("u", "")])
def test_set_auth_requires_both_fields(store, username, password):
    with pytest.raises(ValidationError):
        store.set_auth(True, username, password)

    assert store.get_config().auth is None


def test_set_auth_enables_and_disables(store):
    store.set_auth(True, "u", "p")
    assert store.get_config().auth == ("u", "p")

    store.set_auth(False, "", "")
    assert store.get_config().auth is None

    store.set_auth(True, "u", "p")
    store.set_auth(False, "u", "p")
    assert store.get_config().auth is None


def test_failed_set_auth_keeps_previous_credentials(store):
    store.set_auth(True, "u", "p")

    with pytest.raises(ValidationError):
        store.set_auth(True, "u", "")

    assert store.get_config().auth == ("u", "p")


def test_set_cert_path_merges_fields(store):
    store.set_cert_path({"certPath": "a"})
    store.set_cert_path({"keyPath": "b"})

    assert store.cert == CertConfig(cert_path="a", key_path="b")

    store.set_cert_path(CertConfig(cert_path="c"))
    assert store.cert == CertConfig(cert_path="c", key_path="b")


def test_set_cert_path_rejects_empty_patch(store):
    store.set_cert_path({"certPath": "a"})

    with pytest.raises(ValidationError):
        store.set_cert_path({})

    assert store.cert == CertConfig(cert_path="a")


def test_listeners_receive_snapshots_until_unsubscribed(store):
    seen: list[Config] = []
    unsubscribe = store.subscribe(seen.append)

    store.update(ip="127.0.0.1")
    unsubscribe()
    store.update(port=80)

    assert seen == [Config(ip="127.0.0.1")]


def test_failing_listener_does_not_block_others(store):
    seen: list[Config] = []

    def broken(config):
        raise RuntimeError("listener failure")

    store.subscribe(broken)
    store.subscribe(seen.append)

    store.update(root="/srv")

    assert store.get_config().root == "/srv"
    assert seen == [Config(root="/srv")]


def test_store_can_be_seeded():
    store = ConfigStore(Config(port=8080))
    assert store.get_config().port == 8080
