import logging
import re
from concurrent import futures
from typing import Callable, List, Optional, TypeVar

import docker
import requests
from docker.models.containers import Container

from fdbtest.common.constants import DOCKER_ID_LENGTH
from fdbtest.common.errors import (
    AlreadyDestroyedError,
    InitializationError,
    LaunchError,
    NetworkDiscoveryError,
    PhaseTimeoutError,
    TeardownError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONTAINER_ID_RE = re.compile(rf"[0-9a-f]{{{DOCKER_ID_LENGTH}}}")
_IPV4_RE = re.compile(r"[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}")


def call_with_timeout(
    phase: str,
    timeout: float,
    func: Callable[..., T],
    *args,
    on_abandon: Optional[Callable[[futures.Future], None]] = None,
    **kwargs,
) -> T:
    """
    Run a blocking runtime call, giving up after `timeout` seconds.

    The call runs on a single worker thread while the caller waits on it. A
    call that overruns is abandoned, not interrupted. `on_abandon` is attached
    to its future and runs once the abandoned call finally returns.

    Args:
        phase (str): Lifecycle phase name, used in the raised error.
        timeout (float): Seconds to wait for the call.
        func (Callable): The blocking call.
        on_abandon (Optional[Callable], optional): Done-callback for an overrun call.

    Returns:
        Whatever `func` returns.

    Raises:
        PhaseTimeoutError: If the call did not finish in time.
    """
    executor = futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(func, *args, **kwargs)
        try:
            return future.result(timeout=timeout)
        except futures.TimeoutError:
            if on_abandon is not None:
                future.add_done_callback(on_abandon)
            raise PhaseTimeoutError(phase, timeout) from None
    finally:
        executor.shutdown(wait=False)


def launch_container(
    client: docker.DockerClient, image_ref: str, timeout: float
) -> Container:
    """
    Start a detached, self-removing container from `image_ref`.

    Args:
        client (docker.DockerClient): Docker client to launch with.
        image_ref (str): Full image reference, e.g. "foundationdb/foundationdb:7.3.43".
        timeout (float): Seconds allowed for pull and start.

    Returns:
        docker.models.containers.Container: The running container.

    Raises:
        LaunchError: If docker refused to start it or reported a malformed id.
    """
    try:
        container = call_with_timeout(
            "launch",
            timeout,
            client.containers.run,
            image_ref,
            detach=True,  # run in background
            auto_remove=True,  # --rm, backstop for any failed teardown
            on_abandon=_remove_late_container,
        )
    except docker.errors.DockerException as e:
        raise LaunchError(f"docker run {image_ref} failed", output=str(e)) from e
    except requests.exceptions.RequestException as e:
        raise LaunchError(f"docker run {image_ref} failed", output=str(e)) from e

    container_id = (getattr(container, "id", None) or "").strip()
    if not _CONTAINER_ID_RE.fullmatch(container_id):
        raise LaunchError(f"invalid docker id: {container_id!r}")
    return container


def _remove_late_container(future: futures.Future):
    # a timed out `docker run` may still create the container; fdbserver never
    # exits, so auto_remove would not fire
    if future.cancelled() or future.exception() is not None:
        return
    container = future.result()
    try:
        container.remove(force=True)
        logger.info("removed container %s started after launch timeout", container.short_id)
    except docker.errors.DockerException as e:
        logger.error("could not remove late container %s: %s", container.short_id, e)


def initialize_database(
    container: Container, command: List[str], marker: str, timeout: float
) -> str:
    """
    Run the one-shot storage configuration command inside the container.

    This is not idempotent: a second run against a configured database prints
    something else and is reported as a failure.

    Returns:
        str: The combined stdout/stderr of the command.

    Raises:
        InitializationError: On a non-zero exit or when `marker` is missing.
    """
    try:
        result = call_with_timeout("initialize", timeout, container.exec_run, command)
    except docker.errors.DockerException as e:
        raise InitializationError("docker exec failed", output=str(e)) from e
    except requests.exceptions.RequestException as e:
        raise InitializationError("docker exec failed", output=str(e)) from e

    output = (result.output or b"").decode("utf-8", errors="replace")
    if result.exit_code != 0:
        raise InitializationError(
            f"{' '.join(command)} exited with {result.exit_code}", output=output
        )
    if marker not in output:
        raise InitializationError("unexpected configure database output", output=output)
    return output


def get_container_address(container: Container, network: str, timeout: float) -> str:
    """
    Get the IPv4 address docker assigned to the container on `network`.

    Raises:
        NetworkDiscoveryError: If the lookup failed or returned anything that
            is not a dotted quad.
    """
    try:
        call_with_timeout("discover address", timeout, container.reload)
    except docker.errors.DockerException as e:
        raise NetworkDiscoveryError("docker inspect failed", output=str(e)) from e
    except requests.exceptions.RequestException as e:
        raise NetworkDiscoveryError("docker inspect failed", output=str(e)) from e

    try:
        networks = container.attrs["NetworkSettings"]["Networks"]
        address = (networks[network]["IPAddress"] or "").strip()
    except (KeyError, TypeError) as e:
        raise NetworkDiscoveryError(f"container has no {network} network") from e

    if not _IPV4_RE.fullmatch(address):
        raise NetworkDiscoveryError(f"invalid ip address: {address!r}")
    return address


def remove_container(container: Container, timeout: float):
    """
    Forcibly kill and remove a container.

    Raises:
        AlreadyDestroyedError: If the container no longer exists.
        TeardownError: If docker failed to remove it.
    """
    try:
        call_with_timeout("destroy", timeout, container.remove, force=True)
    except docker.errors.NotFound as e:
        raise AlreadyDestroyedError(f"container {container.short_id} not found") from e
    except docker.errors.APIError as e:
        # auto_remove may already be tearing it down
        if e.status_code == 409 and "already in progress" in str(e):
            raise AlreadyDestroyedError(
                f"removal of {container.short_id} already in progress"
            ) from e
        raise TeardownError(f"docker rm {container.short_id} failed", output=str(e)) from e
    except requests.exceptions.RequestException as e:
        raise TeardownError(f"docker rm {container.short_id} failed", output=str(e)) from e


def is_container_running(client: docker.DockerClient, container_id: str) -> bool:
    """
    Check whether the container shows up in the runtime's running list.

    Args:
        client (docker.DockerClient): Docker client.
        container_id (str): Full or short container id.

    Returns:
        bool: True if docker lists it as running.
    """
    return bool(client.containers.list(filters={"id": container_id}))
