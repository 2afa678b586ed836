"""Default tunables for intentflow."""

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_CAP = 30.0
DEFAULT_STEP_DELAY = 0.5

DEFAULT_FAILURE_THRESHOLD = 25
DEFAULT_BREAKER_TIMEOUT = 60.0
DEFAULT_SUCCESS_THRESHOLD = 2

DEFAULT_MAX_PRIMARY_FAILURES = 3
DEFAULT_COOLDOWN_SECONDS = 60.0

DEFAULT_COMMUNICATION_TOOLS = ("send_email",)
DEFAULT_STATUS_TTL_SECONDS = 86400

WORKFLOW_TOPIC = "workflows"
