from typing import Optional


class FdbTestError(Exception):
    """Base class for every provisioning failure.

    Carries the lifecycle phase that failed and the raw output captured from
    the container runtime, so a failure can be diagnosed without re-running.
    """

    phase: str = "fdbtest"

    def __init__(self, message: str, output: Optional[str] = None):
        self.message = message
        self.output = output
        text = f"{self.phase}: {message}"
        if output:
            text = f"{text}\n{output.strip()}"
        super().__init__(text)


class LaunchError(FdbTestError):
    phase = "launch"


class InitializationError(FdbTestError):
    phase = "initialize"


class NetworkDiscoveryError(FdbTestError):
    phase = "discover address"


class DescriptorWriteError(FdbTestError):
    phase = "write cluster file"


class ClientOpenError(FdbTestError):
    phase = "open database"


class TeardownError(FdbTestError):
    phase = "destroy"


class AlreadyDestroyedError(TeardownError):
    """The container was already gone when teardown ran."""


class InvalidStateError(FdbTestError):
    phase = "state"


class PhaseTimeoutError(FdbTestError, TimeoutError):
    def __init__(self, phase: str, timeout: float):
        self.phase = phase
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:g}s")
