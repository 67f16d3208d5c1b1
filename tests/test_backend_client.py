import pytest

from dav_panel.errors import ServerError, ValidationError
from dav_panel.models import CertConfig, Config, Liveness
from dav_panel.rpc import BackendClient, Command, load_invoker


@pytest.mark.asyncio
async def test_get_config_decodes_backend_payload(invoker):
    invoker.responses[Command.GET_CONFIG] = {"ip": "0.0.0.0", "port": 80, "enable_tls": False}
    client = BackendClient(invoker)

    config = await client.get_config()

    assert config == Config(ip="0.0.0.0", port=80, enable_tls=False)
    assert invoker.calls == [("get_config", {})]


@pytest.mark.asyncio
async def test_get_config_treats_missing_payload_as_empty(invoker):
    client = BackendClient(invoker)

    assert await client.get_config() == Config()


@pytest.mark.asyncio
async def test_get_config_rejects_malformed_payload(invoker):
    invoker.responses[Command.GET_CONFIG] = {"port": "not-a-port"}
    client = BackendClient(invoker)

    with pytest.raises(ServerError) as excinfo:
        await client.get_config()

    assert excinfo.value.command == Command.GET_CONFIG


@pytest.mark.asyncio
async def test_update_config_sends_wire_names(invoker):
    client = BackendClient(invoker)

    await client.update_config(Config(port=8443, auth=("u", "p"), enable_tls=True))

    assert invoker.calls == [
        ("update_config", {"config": {"port": 8443, "auth": ["u", "p"], "enableTls": True}}),
    ]


@pytest.mark.asyncio
async def test_import_tls_cert_rejects_empty_patch_locally(invoker):
    client = BackendClient(invoker)

    with pytest.raises(ValidationError):
        await client.import_tls_cert(CertConfig())

    assert invoker.calls == []


@pytest.mark.asyncio
async def test_import_tls_cert_sends_only_present_paths(invoker):
    client = BackendClient(invoker)

    await client.import_tls_cert(CertConfig(key_path="/etc/key.pem"))

    assert invoker.calls == [("import_tls_or_cert_from_path", {"keyPath": "/etc/key.pem"})]


@pytest.mark.asyncio
async def test_invoker_failures_become_server_errors(invoker):
    invoker.failures[Command.START_SERVER] = RuntimeError("port in use")
    client = BackendClient(invoker)

    with pytest.raises(ServerError) as excinfo:
        await client.start_server()

    assert str(excinfo.value) == "port in use"
    assert excinfo.value.command == "start_server"


@pytest.mark.asyncio
async def test_server_errors_pass_through_unchanged(invoker):
    original = ServerError("denied", command="custom")
    invoker.failures[Command.STOP_SERVER] = original
    client = BackendClient(invoker)

    with pytest.raises(ServerError) as excinfo:
        await client.stop_server()

    assert excinfo.value is original


@pytest.mark.asyncio
@pytest.mark.parametrize("payload, expected", [("running", Liveness.RUNNING), ("stopped", Liveness.STOPPED)])
async def test_check_server_status_decodes_liveness(invoker, payload, expected):
    invoker.responses[Command.CHECK_SERVER_STATUS] = payload
    client = BackendClient(invoker)

    assert await client.check_server_status() is expected


@pytest.mark.asyncio
async def test_check_server_status_rejects_unknown_value(invoker):
    invoker.responses[Command.CHECK_SERVER_STATUS] = "starting"
    client = BackendClient(invoker)

    with pytest.raises(ServerError):
        await client.check_server_status()


def test_load_invoker_resolves_callable():
    import asyncio

    assert load_invoker("asyncio:sleep") is asyncio.sleep


@pytest.mark.parametrize("target", [None, "", "asyncio", "asyncio:", ":sleep"])
def test_load_invoker_rejects_malformed_target(target):
    with pytest.raises(ValueError):
        load_invoker(target)


def test_load_invoker_rejects_missing_or_non_callable_attribute():
    with pytest.raises(ValueError):
        load_invoker("math:does_not_exist")
    with pytest.raises(ValueError):
        load_invoker("math:pi")
