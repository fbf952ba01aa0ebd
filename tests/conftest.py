import typing
from unittest.mock import MagicMock, patch

import pytest
from docker.models.containers import ExecResult

from fdbtest.common.types import ServerConfig
from fdbtest.server import ServerRegistry

CONTAINER_ID = "3f4e9c1b2a7d" + "0" * 52
CONTAINER_IP = "172.17.0.2"
INIT_OUTPUT = b"Database created\n"


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(
        launch_timeout=5, init_timeout=5, inspect_timeout=5, teardown_timeout=5
    )


@pytest.fixture
def mock_container() -> MagicMock:
    container = MagicMock()
    container.id = CONTAINER_ID
    container.short_id = CONTAINER_ID[:12]
    container.exec_run.return_value = ExecResult(exit_code=0, output=INIT_OUTPUT)
    container.attrs = {
        "NetworkSettings": {"Networks": {"bridge": {"IPAddress": CONTAINER_IP}}}
    }
    return container


@pytest.fixture
def mock_client(mock_container: MagicMock) -> MagicMock:
    client = MagicMock()
    client.containers.run.return_value = mock_container
    client.containers.list.return_value = [mock_container]
    return client


@pytest.fixture
def mock_fdb() -> typing.Generator[MagicMock, None, None]:
    with patch("fdbtest.server.fdb") as fdb_module:
        fdb_module.is_api_version_selected.return_value = False
        fdb_module.get_api_version.return_value = 730
        yield fdb_module


@pytest.fixture
def clean_registry() -> typing.Generator[None, None, None]:
    ServerRegistry._server = None
    with patch("fdbtest.server.atexit"), patch.object(
        ServerRegistry, "_atexit_registered", False
    ):
        yield
    ServerRegistry._server = None
