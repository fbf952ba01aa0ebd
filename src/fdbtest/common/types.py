import os
from enum import Enum

from pydantic import BaseModel, field_validator

from fdbtest.common.constants import (
    DOCKER_NETWORK_NAME,
    ENV_API_VERSION,
    ENV_IMAGE,
    ENV_VERBOSE,
    ENV_VERSION,
    FDB_CLUSTER_PASSWORD,
    FDB_CLUSTER_PORT,
    FDB_CLUSTER_USERNAME,
    FDB_DEFAULT_API_VERSION,
    FDB_DEFAULT_VERSION,
    FDB_IMAGE_NAME,
    INIT_TIMEOUT,
    INSPECT_TIMEOUT,
    LAUNCH_TIMEOUT,
    TEARDOWN_TIMEOUT,
)


class ServerState(str, Enum):
    UNSTARTED = "unstarted"
    STARTING = "starting"
    STARTED = "started"
    FAILED = "failed"
    DESTROYED = "destroyed"


class ServerConfig(BaseModel):
    image: str = FDB_IMAGE_NAME
    version: str = FDB_DEFAULT_VERSION
    username: str = FDB_CLUSTER_USERNAME
    password: str = FDB_CLUSTER_PASSWORD
    port: int = FDB_CLUSTER_PORT
    network: str = DOCKER_NETWORK_NAME
    api_version: int = FDB_DEFAULT_API_VERSION
    launch_timeout: float = LAUNCH_TIMEOUT
    init_timeout: float = INIT_TIMEOUT
    inspect_timeout: float = INSPECT_TIMEOUT
    teardown_timeout: float = TEARDOWN_TIMEOUT
    verbose: bool = False

    @field_validator("version", mode="before")
    @classmethod
    def _default_version(cls, value):
        return value or FDB_DEFAULT_VERSION

    @property
    def image_ref(self) -> str:
        return f"{self.image}:{self.version}"

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Build a config from FDBTEST_* environment variables.

        Keyword overrides win over the environment; unset variables keep the
        defaults.
        """
        values = {}
        if os.environ.get(ENV_IMAGE):
            values["image"] = os.environ[ENV_IMAGE]
        if os.environ.get(ENV_VERSION):
            values["version"] = os.environ[ENV_VERSION]
        if os.environ.get(ENV_API_VERSION):
            values["api_version"] = os.environ[ENV_API_VERSION]
        if os.environ.get(ENV_VERBOSE):
            values["verbose"] = os.environ[ENV_VERBOSE]
        values.update(overrides)
        return cls.model_validate(values)


class ConnectionDescriptor(BaseModel):
    username: str
    password: str
    address: str
    port: int

    def render(self) -> str:
        # format is read by the fdb client library, do not change
        return f"{self.username}:{self.password}@{self.address}:{self.port}"

    def __str__(self) -> str:
        return self.render()
