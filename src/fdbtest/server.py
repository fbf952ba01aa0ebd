import atexit
import logging
import os
import shutil
from typing import Callable, Optional

import docker
import fdb
import pytest

from fdbtest.cluster_file import write_cluster_file
from fdbtest.common.constants import (
    FDB_INIT_COMMAND,
    FDB_INIT_SUCCESS_MARKER,
    KEYSPACE_BEGIN,
    KEYSPACE_END,
)
from fdbtest.common.docker_utils import (
    get_container_address,
    initialize_database,
    is_container_running,
    launch_container,
    remove_container,
)
from fdbtest.common.errors import (
    AlreadyDestroyedError,
    ClientOpenError,
    FdbTestError,
    InvalidStateError,
    LaunchError,
)
from fdbtest.common.types import ConnectionDescriptor, ServerConfig, ServerState

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


class FdbServer:
    """
    A single-node FoundationDB running in a throwaway docker container.

    `start` launches the container, configures storage, looks up its address,
    writes a cluster file and opens the database. Until every step succeeded
    `container_id`, `cluster_file` and `db` stay None.

    Lifecycle methods are not thread safe; do not call `start` and `destroy`
    concurrently on one server. The `db` handle itself may be shared.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        client: Optional[docker.DockerClient] = None,
        cluster_dir: Optional[str] = None,
    ):
        self._logger = logging.getLogger(__class__.__name__)
        self._config = config or ServerConfig()
        self._client = client
        self._cluster_dir = cluster_dir
        self._owns_cluster_dir = False
        self._state = ServerState.UNSTARTED
        self._container = None
        self._cluster_file: Optional[str] = None
        self._db = None
        self._trace = self._logger.info if self._config.verbose else self._logger.debug

    def __repr__(self):
        return f"FdbServer(version={self._config.version!r}, state={self._state.value})"

    def __enter__(self) -> "FdbServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.destroy_quietly()

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def container_id(self) -> Optional[str]:
        if self._state != ServerState.STARTED:
            return None
        return self._container.id

    @property
    def short_id(self) -> Optional[str]:
        if self._state != ServerState.STARTED:
            return None
        return self._container.short_id

    @property
    def cluster_file(self) -> Optional[str]:
        if self._state != ServerState.STARTED:
            return None
        return self._cluster_file

    @property
    def db(self):
        if self._state != ServerState.STARTED:
            return None
        return self._db

    def start(self, finalizer: Optional[Callable[[Callable[[], None]], None]] = None):
        """
        Bring the server up. Nothing is retried.

        Args:
            finalizer (Optional[Callable], optional): Cleanup registrar such as
                pytest's `request.addfinalizer`. It receives `destroy_quietly`
                as soon as the container exists.

        Raises:
            InvalidStateError: If the server was already started.
            FdbTestError: The error of the phase that failed. The container is
                removed before it propagates.
        """
        if self._state != ServerState.UNSTARTED:
            raise InvalidStateError(f"cannot start a {self._state.value} server")

        self._state = ServerState.STARTING
        try:
            self._start(finalizer)
        except BaseException:
            self._state = ServerState.FAILED
            self._cleanup_failed_start()
            raise
        self._state = ServerState.STARTED

    def must_start(self, finalizer: Optional[Callable[[Callable[[], None]], None]] = None):
        try:
            self.start(finalizer)
        except Exception as e:
            pytest.fail(f"FdbServer.must_start(): start failed with {e}", pytrace=False)

    def clear(self):
        """Delete every key in a single transaction. Clearing an empty database is a no-op."""
        if self._state != ServerState.STARTED:
            raise InvalidStateError(f"cannot clear a {self._state.value} server")
        self._db.clear_range(KEYSPACE_BEGIN, KEYSPACE_END)

    def must_clear(self):
        try:
            self.clear()
        except Exception as e:
            pytest.fail(f"FdbServer.must_clear(): clear failed with {e}", pytrace=False)

    def destroy(self) -> bool:
        """
        Force-remove the container and the cluster file this server wrote.

        Safe to call repeatedly.

        Returns:
            bool: True if a container was removed, False if none was left.

        Raises:
            InvalidStateError: If the server was never started.
            TeardownError: If docker failed to remove the container.
        """
        if self._state == ServerState.DESTROYED:
            self._logger.debug("server already destroyed")
            return False
        if self._state in (ServerState.UNSTARTED, ServerState.STARTING):
            raise InvalidStateError(f"cannot destroy a {self._state.value} server")

        removed = False
        if self._container is not None:
            try:
                remove_container(self._container, self._config.teardown_timeout)
                removed = True
                self._logger.info("foundationdb container destroyed: %s", self._container.short_id)
            except AlreadyDestroyedError as e:
                self._logger.info("%s", e)
            self._container = None

        self._db = None
        self._remove_cluster_dir()
        self._state = ServerState.DESTROYED
        return removed

    def destroy_quietly(self):
        """Destroy, logging failures instead of raising them."""
        try:
            self.destroy()
        except FdbTestError as e:
            self._logger.error("destroy failed: %s", e)

    def is_running(self) -> bool:
        if self._container is None or self._client is None:
            return False
        return is_container_running(self._client, self._container.id)

    # Private methods
    def _start(self, finalizer):
        config = self._config
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as e:
                raise LaunchError("docker is not available", output=str(e)) from e

        self._trace("+docker run --rm --detach %s", config.image_ref)
        self._container = launch_container(
            self._client, config.image_ref, config.launch_timeout
        )
        self._logger.info("foundationdb container started: %s", self._container.id)
        if finalizer is not None:
            finalizer(self.destroy_quietly)

        self._trace("+docker exec %s %s", self._container.short_id, " ".join(FDB_INIT_COMMAND))
        output = initialize_database(
            self._container,
            FDB_INIT_COMMAND,
            FDB_INIT_SUCCESS_MARKER,
            config.init_timeout,
        )
        self._trace("database initialize command succeeded: %s", output.strip())

        self._trace("+docker inspect %s (network %s)", self._container.short_id, config.network)
        address = get_container_address(
            self._container, config.network, config.inspect_timeout
        )

        descriptor = ConnectionDescriptor(
            username=config.username,
            password=config.password,
            address=address,
            port=config.port,
        )
        self._cluster_file = write_cluster_file(descriptor, self._cluster_dir)
        self._owns_cluster_dir = self._cluster_dir is None
        self._logger.info("cluster available: %s", descriptor)

        self._db = self._open_database(self._cluster_file)

    def _open_database(self, cluster_file: str):
        # fdb only exposes its error types once an api version is selected
        try:
            if not fdb.is_api_version_selected():
                fdb.api_version(self._config.api_version)
            self._logger.info("foundationdb client api version: %s", fdb.get_api_version())
            return fdb.open(cluster_file)
        except Exception as e:
            raise ClientOpenError(f"error opening database: {e}") from e

    def _cleanup_failed_start(self):
        if self._container is not None:
            try:
                remove_container(self._container, self._config.teardown_timeout)
            except AlreadyDestroyedError:
                pass
            except FdbTestError as e:
                self._logger.error("cleanup after failed start: %s", e)
            self._container = None
        self._db = None
        self._remove_cluster_dir()

    def _remove_cluster_dir(self):
        if self._cluster_file:
            try:
                os.remove(self._cluster_file)
            except FileNotFoundError:
                pass
            if self._owns_cluster_dir:
                shutil.rmtree(os.path.dirname(self._cluster_file), ignore_errors=True)
        self._cluster_file = None
        self._owns_cluster_dir = False


class ServerRegistry:
    """
    Holds the one FdbServer shared by a whole test process.

    The first `get_or_start` creates and starts it, later calls return the
    same server. A registered server that was destroyed or failed is replaced
    on the next call. The shared server is destroyed at interpreter exit.

    There is no locking: first calls racing from several threads may each
    start a server. Call it from a single setup path (a session fixture).
    """

    _server: Optional[FdbServer] = None
    _atexit_registered: bool = False

    @classmethod
    def get_or_start(cls, config: Optional[ServerConfig] = None) -> FdbServer:
        """
        Return the shared server, starting it if needed.

        `config` only applies when a new server is started.
        """
        server = cls._server
        if server is not None and server.state == ServerState.STARTED:
            return server

        server = FdbServer(config or ServerConfig.from_env())
        server.start()
        cls._server = server
        if not cls._atexit_registered:
            atexit.register(cls.reset)
            cls._atexit_registered = True
        return server

    @classmethod
    def get(cls) -> Optional[FdbServer]:
        return cls._server

    @classmethod
    def reset(cls):
        """Destroy and forget the shared server."""
        server, cls._server = cls._server, None
        if server is not None:
            server.destroy_quietly()


def start(config: Optional[ServerConfig] = None) -> FdbServer:
    return ServerRegistry.get_or_start(config)


def must_start(config: Optional[ServerConfig] = None) -> FdbServer:
    try:
        return ServerRegistry.get_or_start(config)
    except Exception as e:
        pytest.fail(f"must_start(): start failed with {e}", pytrace=False)
