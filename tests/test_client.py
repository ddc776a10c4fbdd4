"""Tests for the compute and DNS API clients.

Wire-level helpers are tested directly. Job polling is tested by stubbing
the single HTTP exchange of the compute client.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import UTC, datetime
from typing import Any
from urllib.parse import parse_qsl

import pytest

from exo_reconciler.client import (
    QUERY_ASYNC_JOB_RESULT,
    ExoscaleComputeClient,
    build_query,
    dns_error,
    flatten_params,
    parse_compute_response,
    sign_query,
    signed_query,
)
from exo_reconciler.errors import (
    APIError,
    ErrorClass,
    OperationTimeoutError,
    classify,
)

API_KEY = "EXO" + "0123456789abcdef01234567"


class TestFlattenParams:
    """Tests for CloudStack parameter flattening."""

    def test_scalars(self) -> None:
        assert flatten_params({"name": "web", "size": 10, "ip6": True, "expunge": False}) == {
            "name": "web",
            "size": "10",
            "ip6": "true",
            "expunge": "false",
        }

    def test_none_and_empty_lists_dropped(self) -> None:
        assert flatten_params({"keypair": None, "securitygroupnames": []}) == {}

    def test_string_lists_joined(self) -> None:
        assert flatten_params({"securitygroupnames": ["default", "web"]}) == {
            "securitygroupnames": "default,web"
        }

    def test_mapping_lists_indexed(self) -> None:
        flat = flatten_params({"tags": [{"key": "env", "value": "prod"}, {"key": "team"}]})
        assert flat == {
            "tags[0].key": "env",
            "tags[0].value": "prod",
            "tags[1].key": "team",
        }


class TestSigning:
    """Tests for request signing."""

    def test_query_sorted_and_quoted(self) -> None:
        query = build_query({"name": "my web", "Command": "deploy", "apikey": "k"})
        assert query == "apikey=k&Command=deploy&name=my%20web"

    def test_signature_over_lowercased_query(self) -> None:
        expected = base64.b64encode(
            hmac.new(b"secret", b"apikey=k&command=listzones", hashlib.sha1).digest()
        ).decode()
        assert sign_query("apikey=k&command=listZones", "secret") == expected

    def test_signed_query(self) -> None:
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
        query = signed_query("listZones", {"name": "ch-gva-2"}, API_KEY, "secret", now=now)
        params = dict(parse_qsl(query))

        assert params["command"] == "listZones"
        assert params["apikey"] == API_KEY
        assert params["signatureversion"] == "3"
        assert params["expires"] == "2024-01-01T12:10:00+0000"
        assert params["signature"]
        assert "secret" not in query

        unsigned = query.rsplit("&signature=", 1)[0]
        assert params["signature"] == sign_query(unsigned, "secret")


class TestParseComputeResponse:
    """Tests for envelope unwrapping."""

    def test_success(self) -> None:
        body = {"listzonesresponse": {"count": 1, "zone": [{"id": "z", "name": "ch-gva-2"}]}}
        assert parse_compute_response("listZones", 200, body)["zone"][0]["name"] == "ch-gva-2"

    def test_error_envelope(self) -> None:
        body = {"listvirtualmachinesresponse": {
            "errorcode": 431, "cserrorcode": 9999, "errortext": "invalid id",
        }}
        with pytest.raises(APIError) as exc_info:
            parse_compute_response("listVirtualMachines", 431, body)

        error = exc_info.value
        assert error.error_code == 431
        assert error.cs_error_code == 9999
        assert error.command == "listVirtualMachines"
        assert classify(error) is ErrorClass.NOT_FOUND
        assert "invalid id" in str(error)

    def test_generic_error_envelope(self) -> None:
        body = {"errorresponse": {"errorcode": 401, "errortext": "unable to verify credentials"}}
        with pytest.raises(APIError) as exc_info:
            parse_compute_response("listZones", 401, body)
        assert classify(exc_info.value) is ErrorClass.FATAL

    def test_non_json_failure(self) -> None:
        with pytest.raises(APIError, match="HTTP 502"):
            parse_compute_response("listZones", 502, None)


class TestDNSError:
    """Tests for DNS error mapping."""

    def test_not_found(self) -> None:
        error = dns_error(404, {"error": "Record not found"})
        assert error.status_code == 404
        assert classify(error) is ErrorClass.NOT_FOUND

    def test_validation_errors(self) -> None:
        error = dns_error(400, {"message": "Validation failed", "errors": {"name": "taken"}})
        assert error.errors == {"name": ["taken"]}
        assert "name: taken" in str(error)
        assert classify(error) is ErrorClass.FATAL

    def test_plain_text(self) -> None:
        assert "Bad Gateway" in str(dns_error(502, None, "Bad Gateway"))


class StubbedComputeClient(ExoscaleComputeClient):
    """Compute client answering from a script instead of the network."""

    def __init__(self, responses: list[dict[str, Any]]) -> None:
        super().__init__("https://api.example.test/compute", API_KEY, "secret", poll_interval=0.01)
        self.responses = responses
        self.sent: list[tuple[str, dict[str, Any]]] = []

    def _call(self, command: str, params: Any, timeout: float) -> dict[str, Any]:
        self.sent.append((command, dict(params)))
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]


class TestComputeClientJobs:
    """Tests for async job polling."""

    def test_synchronous_command(self) -> None:
        client = StubbedComputeClient([{"zone": []}])
        assert client.request("listZones") == {"zone": []}
        assert [c for c, _ in client.sent] == ["listZones"]

    def test_job_polled_until_success(self) -> None:
        client = StubbedComputeClient([
            {"jobid": "j-1"},
            {"jobid": "j-1", "jobstatus": 0},
            {"jobid": "j-1", "jobstatus": 1, "jobresult": {"securitygroup": {"id": "sg"}}},
        ])

        result = client.request("createSecurityGroup", {"name": "web"}, timeout=5)

        assert result == {"securitygroup": {"id": "sg"}}
        assert [c for c, _ in client.sent] == [
            "createSecurityGroup", QUERY_ASYNC_JOB_RESULT, QUERY_ASYNC_JOB_RESULT,
        ]
        assert client.sent[1][1] == {"jobid": "j-1"}

    def test_job_failure(self) -> None:
        client = StubbedComputeClient([
            {"jobid": "j-2"},
            {"jobid": "j-2", "jobstatus": 2, "jobresult": {
                "errorcode": 530, "cserrorcode": 4250, "errortext": "capacity exceeded",
            }},
        ])
        with pytest.raises(APIError) as exc_info:
            client.request("deployVirtualMachine", {}, timeout=5)
        assert exc_info.value.error_code == 530
        assert exc_info.value.command == "deployVirtualMachine"

    def test_job_outlives_timeout(self) -> None:
        """A job still pending when the budget runs out is a timeout."""
        client = StubbedComputeClient([{"jobid": "j-3"}, {"jobid": "j-3", "jobstatus": 0}])
        with pytest.raises(OperationTimeoutError):
            client.request("deployVirtualMachine", {}, timeout=0.05)
