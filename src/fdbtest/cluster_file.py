import os
import shutil
import tempfile
from typing import Optional

from fdbtest.common.constants import FDB_CLUSTER_FILE_NAME
from fdbtest.common.errors import DescriptorWriteError
from fdbtest.common.types import ConnectionDescriptor


def write_cluster_file(
    descriptor: ConnectionDescriptor, directory: Optional[str] = None
) -> str:
    """
    Write `descriptor` as a single-line fdb cluster file.

    Args:
        descriptor (ConnectionDescriptor): Credentials, address and port.
        directory (Optional[str], optional): Directory to create the file in.
            Defaults to a fresh temporary directory.

    Returns:
        str: Path of the written cluster file. It is flushed and closed, so the
            client library can open it right away.

    Raises:
        DescriptorWriteError: On any filesystem failure.
    """
    created = None
    try:
        if directory is None:
            directory = created = tempfile.mkdtemp(prefix="fdbtest-")
        path = os.path.join(directory, FDB_CLUSTER_FILE_NAME)
        # "x" so an existing cluster file is never reused
        with open(path, "x", encoding="utf-8") as f:
            f.write(descriptor.render())
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        if created is not None:
            shutil.rmtree(created, ignore_errors=True)
        raise DescriptorWriteError(f"writing cluster file contents: {e}") from e
    return path
