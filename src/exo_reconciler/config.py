"""Configuration management with validation.

Credentials and endpoints are read from the environment once at startup and
validated eagerly, so a misconfigured run fails before the first API call.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from .timeouts import DEFAULT_OPERATION_TIMEOUT_SECONDS, OperationTimeouts


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_COMPUTE_ENDPOINT = "https://api.exoscale.com/compute"
DEFAULT_DNS_ENDPOINT = "https://api.exoscale.com/dns"

DEFAULT_TIMEOUT_SECONDS = DEFAULT_OPERATION_TIMEOUT_SECONDS
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 7200

DEFAULT_ASYNC_POLL_INTERVAL_SECONDS = 2.0
MIN_ASYNC_POLL_INTERVAL_SECONDS = 0.1
MAX_ASYNC_POLL_INTERVAL_SECONDS = 60.0

# Plan and state files are small YAML documents
MAX_PLAN_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max plan file
MAX_STATE_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB max state file
MAX_PLAN_RESOURCES = 500

# Input validation patterns
VALID_API_KEY_PATTERN = r"^EXO[0-9a-f]{24}$"
VALID_ENDPOINT_PATTERN = r"^https?://[^\s/$.?#].[^\s]*$"


@dataclass(frozen=True)
class Config:
    """Reconciler configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    api_key: str
    api_secret: str = field(repr=False)

    compute_endpoint: str = DEFAULT_COMPUTE_ENDPOINT
    dns_endpoint: str = DEFAULT_DNS_ENDPOINT

    # Per-operation deadlines, each defaulting to the shared value
    timeouts: OperationTimeouts = field(default_factory=OperationTimeouts)

    async_poll_interval_seconds: float = DEFAULT_ASYNC_POLL_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.api_key:
            errors.append("EXOSCALE_API_KEY is required")
        elif not re.match(VALID_API_KEY_PATTERN, self.api_key):
            errors.append("EXOSCALE_API_KEY must look like EXO followed by 24 hex digits")

        if not self.api_secret:
            errors.append("EXOSCALE_API_SECRET is required")

        for name, endpoint in (
            ("EXOSCALE_COMPUTE_ENDPOINT", self.compute_endpoint),
            ("EXOSCALE_DNS_ENDPOINT", self.dns_endpoint),
        ):
            if not re.match(VALID_ENDPOINT_PATTERN, endpoint):
                errors.append(f"{name} must be an http(s) URL: {endpoint}")

        for operation, seconds in self.timeouts.as_dict().items():
            if not (MIN_TIMEOUT_SECONDS <= seconds <= MAX_TIMEOUT_SECONDS):
                errors.append(
                    f"{operation} timeout must be between {MIN_TIMEOUT_SECONDS} "
                    f"and {MAX_TIMEOUT_SECONDS} seconds"
                )

        if not (
            MIN_ASYNC_POLL_INTERVAL_SECONDS
            <= self.async_poll_interval_seconds
            <= MAX_ASYNC_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"EXOSCALE_ASYNC_POLL_INTERVAL must be between "
                f"{MIN_ASYNC_POLL_INTERVAL_SECONDS} and {MAX_ASYNC_POLL_INTERVAL_SECONDS} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            EXOSCALE_API_KEY: API key (required)
            EXOSCALE_API_SECRET: API secret (required)
            EXOSCALE_COMPUTE_ENDPOINT: Compute API base URL
            EXOSCALE_DNS_ENDPOINT: DNS API base URL
            EXOSCALE_TIMEOUT: Shared per-operation timeout in seconds (default: 300)
            EXOSCALE_CREATE_TIMEOUT: Create timeout override
            EXOSCALE_READ_TIMEOUT: Read timeout override
            EXOSCALE_UPDATE_TIMEOUT: Update timeout override
            EXOSCALE_DELETE_TIMEOUT: Delete timeout override
            EXOSCALE_ASYNC_POLL_INTERVAL: Async job polling interval (default: 2)
        """

        def get_float(key: str) -> float | None:
            value = os.environ.get(key)
            if not value:
                return None
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        default_timeout = get_float("EXOSCALE_TIMEOUT")
        poll_interval = get_float("EXOSCALE_ASYNC_POLL_INTERVAL")

        return cls(
            api_key=os.environ.get("EXOSCALE_API_KEY", ""),
            api_secret=os.environ.get("EXOSCALE_API_SECRET", ""),
            compute_endpoint=os.environ.get("EXOSCALE_COMPUTE_ENDPOINT", DEFAULT_COMPUTE_ENDPOINT),
            dns_endpoint=os.environ.get("EXOSCALE_DNS_ENDPOINT", DEFAULT_DNS_ENDPOINT),
            timeouts=OperationTimeouts(
                default=default_timeout if default_timeout is not None else DEFAULT_TIMEOUT_SECONDS,
                create=get_float("EXOSCALE_CREATE_TIMEOUT"),
                read=get_float("EXOSCALE_READ_TIMEOUT"),
                update=get_float("EXOSCALE_UPDATE_TIMEOUT"),
                delete=get_float("EXOSCALE_DELETE_TIMEOUT"),
            ),
            async_poll_interval_seconds=(
                poll_interval if poll_interval is not None else DEFAULT_ASYNC_POLL_INTERVAL_SECONDS
            ),
        )
