FDB_IMAGE_NAME = "foundationdb/foundationdb"
# fdbcli output is version sensitive, keep this pinned
FDB_DEFAULT_VERSION = "7.3.43"
FDB_DEFAULT_API_VERSION = 730

FDB_CLUSTER_USERNAME = "docker"
FDB_CLUSTER_PASSWORD = "docker"
FDB_CLUSTER_PORT = 4500
FDB_CLUSTER_FILE_NAME = "fdb.cluster"

FDB_INIT_COMMAND = ["fdbcli", "--exec", "configure new single ssd"]
FDB_INIT_SUCCESS_MARKER = "Database created"

DOCKER_NETWORK_NAME = "bridge"
DOCKER_ID_LENGTH = 64
DOCKER_SHORT_ID_LENGTH = 12

# seconds
LAUNCH_TIMEOUT = 300.0
INIT_TIMEOUT = 60.0
INSPECT_TIMEOUT = 10.0
TEARDOWN_TIMEOUT = 30.0

KEYSPACE_BEGIN = b""
KEYSPACE_END = b"\xff"

ENV_VERSION = "FDBTEST_VERSION"
ENV_IMAGE = "FDBTEST_IMAGE"
ENV_API_VERSION = "FDBTEST_API_VERSION"
ENV_VERBOSE = "FDBTEST_VERBOSE"
