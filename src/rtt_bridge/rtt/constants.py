"""Shared constants used by the rtt_bridge RTT API client."""

RTT_BASE_URL = "https://api.rtt.io/api/v1/json"
RTT_SERVICE_NAME = "rtt_api"
AUTH_ERROR_STATUSES = {401, 403}
CIRCUIT_OPEN_STATUS = 503
