"""API clients for the Exoscale compute and DNS services.

Both clients sit on an azure-core PipelineClient. Retries are disabled in the
pipeline: a failed call surfaces immediately and the next reconciliation
pass decides what to do.

COMPUTE API (CloudStack-style):
- Every call is a signed query string: parameters sorted by name, values
  URL-encoded, the whole query lower-cased and signed with HMAC-SHA1.
  Signature version 3 adds an ``expires`` timestamp.
- Responses are wrapped in a ``<command>response`` envelope.
- Mutating commands return a ``jobid``; the client polls
  ``queryAsyncJobResult`` (0 pending, 1 success, 2 failure) until the job
  finishes or the caller's timeout runs out.

DNS API (REST):
- ``/v1/domains[/<name>[/records[/<id>]]]`` with an ``X-DNS-Token`` header.
- Objects are wrapped in ``{"domain": ...}`` / ``{"record": ...}``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol
from urllib.parse import quote

from azure.core import PipelineClient
from azure.core.pipeline.policies import (
    HeadersPolicy,
    NetworkTraceLoggingPolicy,
    RetryPolicy,
    UserAgentPolicy,
)
from azure.core.rest import HttpRequest

from .config import Config
from .entities import AsyncJob, DNSDomain, DNSRecord
from .errors import APIError, DNSAPIError, OperationTimeoutError

logger = logging.getLogger(__name__)

USER_AGENT = "exo-reconciler/0.1.0"

SIGNATURE_VERSION = "3"
SIGNATURE_EXPIRES_SECONDS = 600

QUERY_ASYNC_JOB_RESULT = "queryAsyncJobResult"

JOB_SUCCEEDED = 1
JOB_FAILED = 2

# Bounds a single HTTP exchange when the caller gives no timeout
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0


class ComputeAPI(Protocol):
    """Compute API as consumed by resource kinds."""

    def request(
        self,
        command: str,
        params: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Run a command and return its unwrapped result (async jobs awaited)."""
        ...


class DNSAPI(Protocol):
    """DNS API as consumed by resource kinds."""

    def get_domains(self, *, timeout: float | None = None) -> list[DNSDomain]: ...

    def get_domain(self, name: str, *, timeout: float | None = None) -> DNSDomain: ...

    def create_domain(self, name: str, *, timeout: float | None = None) -> DNSDomain: ...

    def delete_domain(self, name: str, *, timeout: float | None = None) -> None: ...

    def get_records(self, domain: str, *, timeout: float | None = None) -> list[DNSRecord]: ...

    def get_record(
        self, domain: str, record_id: int, *, timeout: float | None = None
    ) -> DNSRecord: ...

    def create_record(
        self, domain: str, record: Mapping[str, Any], *, timeout: float | None = None
    ) -> DNSRecord: ...

    def update_record(
        self,
        domain: str,
        record_id: int,
        record: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> DNSRecord: ...

    def delete_record(self, domain: str, record_id: int, *, timeout: float | None = None) -> None: ...


# =============================================================================
# Request signing and envelopes
# =============================================================================


def flatten_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Convert structured parameters into CloudStack query parameters.

    - None values are dropped
    - booleans become "true"/"false"
    - lists of strings are comma-joined
    - lists of mappings become ``name[i].key=value`` (e.g. tags)
    """
    flat: dict[str, str] = {}
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            flat[name] = "true" if value else "false"
        elif isinstance(value, list | tuple):
            if value and all(isinstance(item, Mapping) for item in value):
                for index, item in enumerate(value):
                    for key, sub_value in item.items():
                        flat[f"{name}[{index}].{key}"] = str(sub_value)
            elif value:
                flat[name] = ",".join(str(item) for item in value)
        else:
            flat[name] = str(value)
    return flat


def build_query(params: Mapping[str, str]) -> str:
    """Canonical query string: keys sorted case-insensitively, values fully quoted."""
    return "&".join(
        f"{key}={quote(params[key], safe='')}"
        for key in sorted(params, key=str.lower)
    )


def sign_query(query: str, api_secret: str) -> str:
    """HMAC-SHA1 signature of the lower-cased canonical query, base64-encoded."""
    digest = hmac.new(api_secret.encode("utf-8"), query.lower().encode("utf-8"), hashlib.sha1)
    return base64.b64encode(digest.digest()).decode("ascii")


def signed_query(
    command: str,
    params: Mapping[str, Any],
    api_key: str,
    api_secret: str,
    now: datetime | None = None,
) -> str:
    """Build the full signed query string for a compute command."""
    now = now or datetime.now(UTC)
    expires = now + timedelta(seconds=SIGNATURE_EXPIRES_SECONDS)
    flat = flatten_params(params)
    flat.update({
        "command": command,
        "apikey": api_key,
        "response": "json",
        "signatureversion": SIGNATURE_VERSION,
        "expires": expires.strftime("%Y-%m-%dT%H:%M:%S+0000"),
    })
    query = build_query(flat)
    return f"{query}&signature={quote(sign_query(query, api_secret), safe='')}"


def parse_compute_response(command: str, status_code: int, body: Any) -> dict[str, Any]:
    """Unwrap a compute API envelope.

    Args:
        command: Command that produced the response.
        status_code: HTTP status.
        body: Decoded JSON body.

    Returns:
        The inner result mapping.

    Raises:
        APIError: For error envelopes or non-2xx responses.
    """
    envelope_key = f"{command.lower()}response"
    if isinstance(body, Mapping):
        inner = body.get(envelope_key)
        if inner is None and len(body) == 1:
            # Some errors come back under a generic envelope name
            inner = next(iter(body.values()))
    else:
        inner = None

    if isinstance(inner, Mapping) and "errorcode" in inner:
        raise APIError(
            str(inner.get("errortext", "unknown error")),
            error_code=int(inner["errorcode"]),
            cs_error_code=int(inner.get("cserrorcode", 0)),
            command=command,
            status_code=status_code,
        )
    if not 200 <= status_code < 300 or not isinstance(inner, Mapping):
        raise APIError(
            f"unexpected response (HTTP {status_code})",
            error_code=status_code,
            command=command,
            status_code=status_code,
        )
    return dict(inner)


def job_failure(command: str, job: AsyncJob) -> APIError:
    """Build the error raised for a failed async job."""
    result = job.job_result or {}
    return APIError(
        str(result.get("errortext", "async job failed")),
        error_code=int(result.get("errorcode", 0)),
        cs_error_code=int(result.get("cserrorcode", 0)),
        command=command,
    )


def _pipeline_policies(headers: Mapping[str, str]) -> list[Any]:
    return [
        HeadersPolicy(base_headers=dict(headers)),
        UserAgentPolicy(base_user_agent=USER_AGENT),
        RetryPolicy.no_retries(),
        NetworkTraceLoggingPolicy(),
    ]


# =============================================================================
# Compute client
# =============================================================================


class ExoscaleComputeClient:
    """Signed CloudStack-style client for the compute API.

    Args:
        endpoint: Compute API base URL.
        api_key: API key.
        api_secret: API secret used for signing, never logged.
        poll_interval: Seconds between async job polls.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        api_secret: str,
        *,
        poll_interval: float = 2.0,
        **kwargs: Any,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._api_secret = api_secret
        self._poll_interval = poll_interval
        self._client = PipelineClient(
            base_url=self._endpoint,
            policies=_pipeline_policies({"Accept": "application/json"}),
            **kwargs,
        )

    @classmethod
    def from_config(cls, config: Config) -> ExoscaleComputeClient:
        return cls(
            config.compute_endpoint,
            config.api_key,
            config.api_secret,
            poll_interval=config.async_poll_interval_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def request(
        self,
        command: str,
        params: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        budget = timeout if timeout is not None else DEFAULT_REQUEST_TIMEOUT_SECONDS
        deadline_at = time.monotonic() + budget

        result = self._call(command, params or {}, budget)
        job_id = result.get("jobid")
        if job_id is None or command == QUERY_ASYNC_JOB_RESULT:
            return result
        return self._wait_for_job(command, str(job_id), deadline_at, budget)

    def _call(self, command: str, params: Mapping[str, Any], timeout: float) -> dict[str, Any]:
        query = signed_query(command, params, self._api_key, self._api_secret)
        request = HttpRequest("GET", f"{self._endpoint}?{query}")

        logger.debug("Compute API call", extra={"command": command})
        response = self._client.send_request(
            request,
            connection_timeout=timeout,
            read_timeout=timeout,
        )
        try:
            body = response.json()
        except ValueError:
            body = None
        return parse_compute_response(command, response.status_code, body)

    def _wait_for_job(
        self,
        command: str,
        job_id: str,
        deadline_at: float,
        budget: float,
    ) -> dict[str, Any]:
        while True:
            remaining = deadline_at - time.monotonic()
            if remaining <= 0:
                raise OperationTimeoutError(command, budget)

            job = AsyncJob.model_validate(
                self._call(QUERY_ASYNC_JOB_RESULT, {"jobid": job_id}, remaining)
            )
            if job.job_status == JOB_SUCCEEDED:
                return job.job_result or {}
            if job.job_status == JOB_FAILED:
                raise job_failure(command, job)

            logger.debug(
                "Async job pending",
                extra={"command": command, "job_id": job_id, "status": job.job_status},
            )
            time.sleep(min(self._poll_interval, max(0.0, deadline_at - time.monotonic())))


# =============================================================================
# DNS client
# =============================================================================


class ExoscaleDNSClient:
    """REST client for the DNS API."""

    def __init__(self, endpoint: str, api_key: str, api_secret: str, **kwargs: Any) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._client = PipelineClient(
            base_url=self._endpoint,
            policies=_pipeline_policies({
                "Accept": "application/json",
                "Content-Type": "application/json",
                "X-DNS-Token": f"{api_key}:{api_secret}",
            }),
            **kwargs,
        )

    @classmethod
    def from_config(cls, config: Config) -> ExoscaleDNSClient:
        return cls(config.dns_endpoint, config.api_key, config.api_secret)

    def close(self) -> None:
        self._client.close()

    def _send(
        self,
        method: str,
        path: str,
        payload: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        budget = timeout if timeout is not None else DEFAULT_REQUEST_TIMEOUT_SECONDS
        request = HttpRequest(
            method,
            f"{self._endpoint}{path}",
            content=json.dumps(payload) if payload is not None else None,
        )
        logger.debug("DNS API call", extra={"method": method, "path": path})
        response = self._client.send_request(
            request,
            connection_timeout=budget,
            read_timeout=budget,
        )
        text = response.text()
        try:
            body = json.loads(text) if text else None
        except ValueError:
            body = None

        if not 200 <= response.status_code < 300:
            raise dns_error(response.status_code, body, text)
        return body

    def get_domains(self, *, timeout: float | None = None) -> list[DNSDomain]:
        body = self._send("GET", "/v1/domains", timeout=timeout) or []
        return [DNSDomain.model_validate(item["domain"]) for item in body]

    def get_domain(self, name: str, *, timeout: float | None = None) -> DNSDomain:
        body = self._send("GET", f"/v1/domains/{quote(name, safe='')}", timeout=timeout)
        return DNSDomain.model_validate(body["domain"])

    def create_domain(self, name: str, *, timeout: float | None = None) -> DNSDomain:
        body = self._send("POST", "/v1/domains", {"domain": {"name": name}}, timeout=timeout)
        return DNSDomain.model_validate(body["domain"])

    def delete_domain(self, name: str, *, timeout: float | None = None) -> None:
        self._send("DELETE", f"/v1/domains/{quote(name, safe='')}", timeout=timeout)

    def get_records(self, domain: str, *, timeout: float | None = None) -> list[DNSRecord]:
        body = self._send(
            "GET", f"/v1/domains/{quote(domain, safe='')}/records", timeout=timeout
        ) or []
        return [DNSRecord.model_validate(item["record"]) for item in body]

    def get_record(self, domain: str, record_id: int, *, timeout: float | None = None) -> DNSRecord:
        body = self._send(
            "GET", f"/v1/domains/{quote(domain, safe='')}/records/{record_id}", timeout=timeout
        )
        return DNSRecord.model_validate(body["record"])

    def create_record(
        self, domain: str, record: Mapping[str, Any], *, timeout: float | None = None
    ) -> DNSRecord:
        body = self._send(
            "POST",
            f"/v1/domains/{quote(domain, safe='')}/records",
            {"record": dict(record)},
            timeout=timeout,
        )
        return DNSRecord.model_validate(body["record"])

    def update_record(
        self,
        domain: str,
        record_id: int,
        record: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> DNSRecord:
        body = self._send(
            "PUT",
            f"/v1/domains/{quote(domain, safe='')}/records/{record_id}",
            {"record": dict(record)},
            timeout=timeout,
        )
        return DNSRecord.model_validate(body["record"])

    def delete_record(self, domain: str, record_id: int, *, timeout: float | None = None) -> None:
        self._send(
            "DELETE", f"/v1/domains/{quote(domain, safe='')}/records/{record_id}", timeout=timeout
        )


def dns_error(status_code: int, body: Any, text: str = "") -> DNSAPIError:
    """Map a failed DNS API response to DNSAPIError."""
    message = ""
    errors: dict[str, list[str]] = {}
    if isinstance(body, Mapping):
        message = str(body.get("message") or body.get("error") or "")
        raw_errors = body.get("errors")
        if isinstance(raw_errors, Mapping):
            errors = {
                str(field): [str(m) for m in (msgs if isinstance(msgs, list) else [msgs])]
                for field, msgs in raw_errors.items()
            }
    return DNSAPIError(message or text or f"HTTP {status_code}", status_code=status_code, errors=errors)
