"""
constants.py – defaults, SQS hard limits and configuration keys.
Everything that tunes the consumer reads from here.
"""

from typing import Dict


# ============================================================================
# CONSUMER DEFAULTS (applied once, at construction)
# ============================================================================

DEFAULT_CONCURRENCY = 1
DEFAULT_MAX_NUMBER_OF_MESSAGES = 10
DEFAULT_VISIBILITY_TIMEOUT = 30  # seconds
DEFAULT_WAIT_TIME_SECONDS = 20  # long-poll seconds


# ============================================================================
# SQS LIMITS
# ============================================================================

SQS_MIN_MESSAGES = 1
SQS_MAX_MESSAGES = 10
SQS_MAX_WAIT_SECONDS = 20
SQS_MAX_VISIBILITY = 43_200  # 12h hard SQS limit
SQS_MAX_BODY_BYTES = 256 * 1024
SQS_BATCH_SIZE = 10

# Client-side retries for transient errors
RETRY_ATTEMPTS = 5
RETRIABLE_ERROR_CODES = {
    "Throttling", "ThrottlingException", "ServiceUnavailable",
    "RequestThrottled", "InternalError", "InternalFailure",
    "RequestTimeout",
    "500", "502", "503", "504",
}


# ============================================================================
# CONFIGURATION KEYS
# ============================================================================

# Recognised keys of a config mapping -> ConsumerConfig field
CONFIG_KEYS: Dict[str, str] = {
    "queue": "queue",
    "concurrency": "concurrency",
    "maxNumberOfMessages": "max_number_of_messages",
    "visibilityTimeout": "visibility_timeout",
    "waitTimeSeconds": "wait_time_seconds",
}

# Environment variables (override file values)
ENV_VARS: Dict[str, str] = {
    "queue": "SQS_QUEUE",
    "concurrency": "SQS_CONCURRENCY",
    "max_number_of_messages": "SQS_MAX_NUMBER_OF_MESSAGES",
    "visibility_timeout": "SQS_VISIBILITY_TIMEOUT",
    "wait_time_seconds": "SQS_WAIT_TIME_SECONDS",
}

CONFIG_PATH_ENV = "SQS_CONSUMER_CONFIG"
LOG_LEVEL_ENV = "LOG_LEVEL"
ENDPOINT_URL_ENV = "AWS_ENDPOINT_URL"
