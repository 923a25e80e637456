"""
Configuration Defaults - Single source of truth for all default values.

FAIL-FAST DESIGN:
Tenant-specific defaults use INTENTIONALLY INVALID placeholder values so a
deployment without the required environment variables fails loudly instead
of writing bundles to somebody else's storage account.

Organization:
    - StorageDefaults.DEFAULT_ACCOUNT_NAME: MUST be overridden (fail-fast)
    - All other *Defaults: Safe universal defaults

Required Environment Variables (will fail if not set):
    STORAGE_ACCOUNT_NAME - Azure storage account holding deployment bundles
        (or AZURE_STORAGE_CONNECTION_STRING)

Usage:
    from config.defaults import DeploymentDefaults

    # In Pydantic Field definitions:
    poll_interval_seconds: float = Field(default=DeploymentDefaults.STATUS_POLL_INTERVAL_SECONDS, ...)
"""


# =============================================================================
# STORAGE DEFAULTS
# =============================================================================

class StorageDefaults:
    """
    Object storage defaults for bundles, manifests and graphs.

    Layout inside the container:
        <BUNDLE_PREFIX>/<project_id>/<deployment_id>/<job_id>/bundle.zip
        <BUNDLE_PREFIX>/<project_id>/<clean project name>-latest.zip
    """

    # Override: STORAGE_ACCOUNT_NAME
    DEFAULT_ACCOUNT_NAME = "your-storage-account-name"

    DEFAULT_CONTAINER = "otp-deployments"
    BUNDLE_PREFIX = "bundles"

    # Graph builds run for up to a few hours and the builder writes the graph
    # back with the same signed URL, so SAS tokens outlive the longest build.
    SAS_VALIDITY_HOURS = 24

    # Large bundles are uploaded in blocks with this many parallel connections
    UPLOAD_MAX_CONCURRENCY = 4


# =============================================================================
# DEPLOYMENT DEFAULTS
# =============================================================================

class DeploymentDefaults:
    """
    Fleet deployment defaults.

    Timeouts are in seconds. The fleet join timeout bounds the whole run
    server startup fan-out, not each monitor.
    """

    EC2_ENABLED = False
    EBS_OPTIMIZED = False

    # otp-runner installed on every instance from this git branch
    RUNNER_BRANCH = "master"
    RUNNER_REPO_URL = "https://github.com/ibi-group/otp-runner.git"
    NODE_VERSION = "v12.16.3"

    JAR_REPO_URL = "https://opentripplanner-builds.s3.amazonaws.com"
    DEFAULT_OTP_VERSION = "otp-v1.4.0"

    # Instance-side status file: path on disk and path served over HTTP
    INSTANCE_WEB_DIR = "/usr/share/nginx/client"
    STATUS_FILE_NAME = "status.json"
    STATUS_PATH = "/status.json"

    STATUS_POLL_INTERVAL_SECONDS = 5.0
    STATUS_REQUEST_TIMEOUT_SECONDS = 10.0
    GRAPH_BUILD_TIMEOUT_SECONDS = 4 * 60 * 60
    SERVER_START_TIMEOUT_SECONDS = 60 * 60
    RUNNER_SERVER_STARTUP_TIMEOUT_SECONDS = 3300

    IP_CHECK_INTERVAL_SECONDS = 10.0
    IP_ASSIGNMENT_TIMEOUT_SECONDS = 10 * 60

    FLEET_JOIN_TIMEOUT_SECONDS = 4 * 60 * 60

    IMAGE_RECREATION_POLL_SECONDS = 1.0
    IMAGE_RECREATION_TIMEOUT_SECONDS = 2 * 60 * 60
    IMAGE_RECREATION_FAILURE_POLICY = "warn"

    DEFAULT_INSTANCE_TYPE = "t2.medium"

    WIRE_TRANSFER_TIMEOUT_SECONDS = 60 * 60


# =============================================================================
# APPLICATION DEFAULTS
# =============================================================================

class AppDefaults:
    """Process-wide defaults."""

    ENVIRONMENT = "dev"
    LOG_LEVEL = "INFO"
    DEBUG_MODE = False

    # Worker threads for top-level job trees
    JOB_EXECUTOR_MAX_WORKERS = 4

    AWS_DEFAULT_REGION = "us-east-1"
    # Assumed-role sessions are refreshed this long before they expire
    AWS_SESSION_REFRESH_MARGIN_SECONDS = 5 * 60
    AWS_SESSION_DURATION_SECONDS = 60 * 60
