import pytest

from fdbtest.common.types import ServerConfig
from fdbtest.server import FdbServer, ServerRegistry


def pytest_addoption(parser):
    group = parser.getgroup("fdbtest")
    group.addoption(
        "--verbose-fdb",
        action="store_true",
        default=False,
        help="make foundationdb verbose",
    )
    group.addoption(
        "--fdb-version",
        default=None,
        help="foundationdb docker image version to test against",
    )


def _config_from_options(config: pytest.Config) -> ServerConfig:
    overrides = {}
    if config.getoption("verbose_fdb"):
        overrides["verbose"] = True
    if config.getoption("fdb_version"):
        overrides["version"] = config.getoption("fdb_version")
    return ServerConfig.from_env(**overrides)


@pytest.fixture(scope="session")
def fdb_server(pytestconfig):
    server = ServerRegistry.get_or_start(_config_from_options(pytestconfig))
    yield server
    ServerRegistry.reset()


@pytest.fixture
def fdb_database(fdb_server: FdbServer):
    fdb_server.must_clear()
    return fdb_server.db


@pytest.fixture
def fdb_isolated_server(request, pytestconfig, tmp_path):
    server = FdbServer(_config_from_options(pytestconfig), cluster_dir=str(tmp_path))
    server.must_start(finalizer=request.addfinalizer)
    return server
