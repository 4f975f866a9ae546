"""Tests for the FHIR repository client against a mocked HTTP transport."""

import asyncio
import json

import httpx
import pytest

from fhir_intake.fhir.client import (
    FhirClient,
    MalformedRequestError,
    RateLimitedError,
    RemoteAuthError,
    RemoteUnavailableError,
    ResourceNotFoundError,
    TransactionResult,
)

BASE_URL = "https://fhir.example.com/fhir/R4"
TOKEN_URL = "https://fhir.example.com/oauth2/token"


def _token_response():
    return httpx.Response(200, json={"access_token": "token-abc", "expires_in": 3600})


def _run(handler, call, *, credentials=True):
    """Run ``call(client)`` against a client whose HTTP layer is ``handler``."""

    async def main():
        client = FhirClient(
            base_url=BASE_URL,
            token_url=TOKEN_URL,
            client_id="client" if credentials else "",
            client_secret="secret" if credentials else "",
            timeout=5,
            transport=httpx.MockTransport(handler),
        )
        async with client:
            return await call(client)

    return asyncio.run(main())


def test_transaction_posts_bundle_to_base_url():
    requests = []

    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "resourceType": "Bundle",
                "id": "bundle-1",
                "type": "transaction-response",
                "entry": [
                    {"response": {"status": "201 Created", "location": "Patient/p-1/_history/1"}},
                    {"response": {"status": "201 Created", "location": "Observation/o-1/_history/1"}},
                ],
            },
        )

    bundle = {"resourceType": "Bundle", "type": "transaction", "entry": []}
    result = _run(handler, lambda client: client.write_atomic_batch(bundle))

    assert result == TransactionResult(
        batch_id="bundle-1",
        locations=["Patient/p-1/_history/1", "Observation/o-1/_history/1"],
    )
    assert result.patient_id == "p-1"
    assert len(requests) == 1
    assert requests[0].method == "POST"
    assert str(requests[0].url) == BASE_URL
    assert requests[0].headers["Authorization"] == "Bearer token-abc"
    assert requests[0].headers["Content-Type"] == "application/fhir+json"
    assert json.loads(requests[0].content) == bundle


def test_token_is_fetched_once_and_reused():
    token_calls = []

    def handler(request):
        if str(request.url) == TOKEN_URL:
            token_calls.append(request)
            return _token_response()
        return httpx.Response(200, json={"resourceType": "Patient", "id": "p-1"})

    async def call(client):
        await client.read_by_id("Patient", "p-1")
        return await client.read_by_id("Patient", "p-1")

    assert _run(handler, call)["id"] == "p-1"
    assert len(token_calls) == 1
    assert b"grant_type=client_credentials" in token_calls[0].content


def test_no_credentials_sends_unauthenticated_requests():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"resourceType": "Patient", "id": "p-1"})

    _run(handler, lambda client: client.read_by_id("Patient", "p-1"), credentials=False)

    assert len(seen) == 1
    assert "Authorization" not in seen[0].headers


def test_rejected_token_request_is_auth_error():
    def handler(request):
        return httpx.Response(401, json={"error": "invalid_client"})

    with pytest.raises(RemoteAuthError) as exc_info:
        _run(handler, lambda client: client.read_by_id("Patient", "p-1"))
    assert exc_info.value.status_code == 401


def test_search_sends_reference_sort_and_count():
    seen = []

    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "resourceType": "Bundle",
                "type": "searchset",
                "entry": [{"resource": {"resourceType": "Observation", "id": "o-1"}}],
            },
        )

    results = _run(
        handler,
        lambda client: client.search("Observation", subject_ref="Patient/p-1", limit=100),
    )

    assert results == [{"resourceType": "Observation", "id": "o-1"}]
    params = seen[0].url.params
    assert seen[0].url.path.endswith("/Observation")
    assert params["subject"] == "Patient/p-1"
    assert params["_sort"] == "-_lastUpdated"
    assert params["_count"] == "100"


def test_search_with_no_matches_returns_empty_list():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        return httpx.Response(200, json={"resourceType": "Bundle", "type": "searchset"})

    results = _run(
        handler,
        lambda client: client.search("AllergyIntolerance", subject_ref="Patient/p-1", param="patient"),
    )
    assert results == []


@pytest.mark.parametrize(
    "status, error_class",
    [
        (400, MalformedRequestError),
        (422, MalformedRequestError),
        (401, RemoteAuthError),
        (403, RemoteAuthError),
        (404, ResourceNotFoundError),
        (429, RateLimitedError),
        (500, RemoteUnavailableError),
        (503, RemoteUnavailableError),
    ],
)
def test_error_status_classification(status, error_class):
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        return httpx.Response(status, json={"resourceType": "OperationOutcome", "issue": []})

    with pytest.raises(error_class) as exc_info:
        _run(handler, lambda client: client.write_atomic_batch({"resourceType": "Bundle"}))
    assert exc_info.value.status_code == status


def test_operation_outcome_diagnostics_are_extracted():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        return httpx.Response(
            400,
            json={
                "resourceType": "OperationOutcome",
                "issue": [
                    {"severity": "error", "diagnostics": "Invalid birthDate"},
                    {"severity": "error", "details": {"text": "Missing Observation.code"}},
                ],
            },
        )

    with pytest.raises(MalformedRequestError) as exc_info:
        _run(handler, lambda client: client.write_atomic_batch({"resourceType": "Bundle"}))
    assert exc_info.value.diagnostics == ["Invalid birthDate", "Missing Observation.code"]


def test_rate_limit_parses_retry_after():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        return httpx.Response(429, headers={"Retry-After": "15"}, text="slow down")

    with pytest.raises(RateLimitedError) as exc_info:
        _run(handler, lambda client: client.write_atomic_batch({"resourceType": "Bundle"}))
    assert exc_info.value.retry_after == 15.0


def test_transport_timeout_is_flagged():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RemoteUnavailableError) as exc_info:
        _run(handler, lambda client: client.write_atomic_batch({"resourceType": "Bundle"}))
    assert exc_info.value.timed_out
    assert exc_info.value.status_code == 0


def test_connection_failure_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RemoteUnavailableError) as exc_info:
        _run(handler, lambda client: client.read_by_id("Patient", "p-1"), credentials=False)
    assert not exc_info.value.timed_out


def test_request_before_connect_raises():
    client = FhirClient(base_url=BASE_URL, client_id="", client_secret="")
    with pytest.raises(RuntimeError):
        asyncio.run(client.read_by_id("Patient", "p-1"))


def test_non_json_success_reply_is_unavailable():
    """A 2xx reply that is not FHIR JSON (e.g. a proxy error page) is still a classified error."""

    def handler(request):
        if str(request.url) == TOKEN_URL:
            return _token_response()
        return httpx.Response(200, text="<html>proxy error</html>")

    with pytest.raises(RemoteUnavailableError) as exc_info:
        _run(handler, lambda client: client.write_atomic_batch({"resourceType": "Bundle"}))
    assert exc_info.value.status_code == 200
    assert "proxy error" in exc_info.value.body


def test_token_reply_without_access_token_is_unavailable():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return httpx.Response(200, json={"token_type": "bearer"})
        return httpx.Response(200, json={"resourceType": "Patient", "id": "p-1"})

    with pytest.raises(RemoteUnavailableError):
        _run(handler, lambda client: client.read_by_id("Patient", "p-1"))


def test_non_json_token_reply_is_unavailable():
    def handler(request):
        return httpx.Response(200, text="<html>login</html>")

    with pytest.raises(RemoteUnavailableError):
        _run(handler, lambda client: client.read_by_id("Patient", "p-1"))
