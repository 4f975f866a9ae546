"""
Async FHIR R4 repository client.

One long-lived ``FhirClient`` is created per process (see ``main.py``) and
passed explicitly to the submission gateway and the chart reader; nothing in
this module keeps global state.

OAuth2 client-credentials flow:
  1. ``POST {token_url}`` with ``grant_type=client_credentials``; the bearer
     token is cached and refreshed 30 s before it expires.
  2. Every FHIR request carries the token in the Authorization header.
  3. Without configured credentials requests are sent unauthenticated (local
     HAPI / Medplum dev servers).

Usage:
    async with FhirClient() as client:
        result = await client.write_atomic_batch(bundle)
        patient = await client.read_by_id("Patient", result.patient_id)

Every non-2xx response or transport failure is raised as one of the
``FhirClientError`` subclasses below, so callers classify on type alone.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from fhir_intake.config import settings

logger = logging.getLogger(__name__)

# Seconds before token expiry at which a proactive refresh is triggered.
_TOKEN_REFRESH_BUFFER_S = 30

FHIR_JSON = "application/fhir+json"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class FhirClientError(Exception):
    """Raised when a repository call fails; carries the HTTP status (0 = no response)."""

    def __init__(self, status_code: int, body: str = "", diagnostics: list[str] | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.diagnostics = diagnostics or []
        super().__init__(f"FHIR repository error {status_code}: {body[:300]}")


class MalformedRequestError(FhirClientError):
    """The repository rejected the shape or content of the request (400/422)."""


class RemoteAuthError(FhirClientError):
    """Credentials were rejected, the token could not be obtained, or access was denied."""


class ResourceNotFoundError(FhirClientError):
    """404 from the repository."""


class RateLimitedError(FhirClientError):
    """429 from the repository."""

    def __init__(self, status_code: int, body: str = "", retry_after: float | None = None) -> None:
        super().__init__(status_code, body)
        self.retry_after = retry_after


class RemoteUnavailableError(FhirClientError):
    """Unreachable, timed out, or a 5xx / unexpected status."""

    def __init__(self, status_code: int, body: str = "", timed_out: bool = False) -> None:
        super().__init__(status_code, body)
        self.timed_out = timed_out


def operation_outcome_diagnostics(body: Any) -> list[str]:
    """Pull human-readable text out of an OperationOutcome body."""
    if not isinstance(body, dict):
        return []
    messages = []
    for issue in body.get("issue") or []:
        text = issue.get("diagnostics") or (issue.get("details") or {}).get("text")
        if text:
            messages.append(text)
    return messages


def _parse_retry_after(value: Optional[str]) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def classify_response(response: httpx.Response) -> FhirClientError:
    """Map a non-2xx response to the matching error class."""
    status = response.status_code
    body = response.text
    if status in (400, 422):
        try:
            diagnostics = operation_outcome_diagnostics(response.json())
        except ValueError:
            diagnostics = []
        return MalformedRequestError(status, body, diagnostics)
    if status in (401, 403):
        return RemoteAuthError(status, body)
    if status == 404:
        return ResourceNotFoundError(status, body)
    if status == 429:
        return RateLimitedError(
            status, body, retry_after=_parse_retry_after(response.headers.get("Retry-After"))
        )
    return RemoteUnavailableError(status, body)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class TransactionResult:
    """Outcome of a successful transaction: the response Bundle id and created locations."""

    batch_id: str | None
    locations: list[str] = field(default_factory=list)

    @property
    def patient_id(self) -> str | None:
        for location in self.locations:
            parts = location.split("/")
            if len(parts) >= 2 and parts[0] == "Patient":
                return parts[1]
        return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class FhirClient:
    """
    Async FHIR R4 client for a Medplum-compatible repository.

    Args:
        base_url:      FHIR base URL, e.g. ``https://api.medplum.com/fhir/R4``.
        token_url:     OAuth2 token endpoint.
        client_id:     OAuth2 client id; empty disables authentication.
        client_secret: OAuth2 client secret.
        timeout:       HTTP timeout in seconds.
        transport:     Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.FHIR_BASE_URL).rstrip("/")
        self.token_url = token_url or settings.FHIR_TOKEN_URL
        self.client_id = client_id if client_id is not None else settings.FHIR_CLIENT_ID
        self.client_secret = (
            client_secret if client_secret is not None else settings.FHIR_CLIENT_SECRET
        )
        self.timeout = timeout or settings.FHIR_TIMEOUT_SECONDS
        self._transport = transport

        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._http: Optional[httpx.AsyncClient] = None

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the underlying HTTP connection pool."""
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            logger.debug("FhirClient: HTTP transport initialised for %s", self.base_url)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.debug("FhirClient: HTTP transport closed")

    async def __aenter__(self) -> "FhirClient":
        await self.connect()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    # ── OAuth2 ───────────────────────────────────────────────────────────────

    async def _fetch_token(self) -> None:
        try:
            resp = await self._http.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
        except httpx.TimeoutException as exc:
            raise RemoteUnavailableError(0, str(exc), timed_out=True) from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(0, str(exc)) from exc

        if resp.status_code != 200:
            raise RemoteAuthError(resp.status_code, f"Token endpoint rejected client: {resp.text}")

        try:
            token_data = resp.json()
            self._access_token = token_data["access_token"]
            expires_in = int(token_data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise RemoteUnavailableError(resp.status_code, resp.text) from exc
        self._token_expires_at = time.monotonic() + expires_in
        logger.info("FhirClient: bearer token obtained (expires_in=%ds)", expires_in)

    async def _auth_headers(self) -> dict[str, str]:
        headers = {"Accept": FHIR_JSON}
        if not self.has_credentials:
            return headers
        if not (
            self._access_token
            and time.monotonic() < self._token_expires_at - _TOKEN_REFRESH_BUFFER_S
        ):
            await self._fetch_token()
        headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    # ── Transport ────────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Execute one FHIR request and return the parsed JSON body.

        Raises:
            RuntimeError:     if ``connect()`` / ``__aenter__`` was not called.
            FhirClientError:  a classified subclass for any failure.
        """
        if self._http is None:
            raise RuntimeError(
                "FhirClient is not connected. "
                "Use 'async with FhirClient() as client:' or call connect() first."
            )

        headers = await self._auth_headers()
        if json is not None:
            headers["Content-Type"] = FHIR_JSON

        try:
            resp = await self._http.request(
                method, f"{self.base_url}{path}", headers=headers, params=params, json=json
            )
        except httpx.TimeoutException as exc:
            raise RemoteUnavailableError(0, str(exc), timed_out=True) from exc
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(0, str(exc)) from exc

        if resp.status_code not in range(200, 300):
            raise classify_response(resp)

        if not resp.content:
            return {}
        try:
            body = resp.json()
        except ValueError as exc:
            raise RemoteUnavailableError(resp.status_code, resp.text) from exc
        if not isinstance(body, dict):
            raise RemoteUnavailableError(resp.status_code, resp.text)
        return body

    # ── Repository contract ──────────────────────────────────────────────────

    async def write_atomic_batch(self, bundle: dict[str, Any]) -> TransactionResult:
        """
        POST a ``transaction`` Bundle to the FHIR base URL.

        The repository applies every entry or none of them; this method makes
        exactly one request and never splits the bundle.
        """
        body = await self._request("POST", "", json=bundle)
        locations = [
            entry.get("response", {}).get("location", "")
            for entry in body.get("entry") or []
        ]
        return TransactionResult(batch_id=body.get("id"), locations=[loc for loc in locations if loc])

    async def read_by_id(self, collection: str, resource_id: str) -> dict[str, Any]:
        """``GET /{collection}/{id}``; raises ``ResourceNotFoundError`` when absent."""
        return await self._request("GET", f"/{collection}/{resource_id}")

    async def search(
        self,
        collection: str,
        *,
        subject_ref: str,
        param: str = "subject",
        sort: str = "-_lastUpdated",
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Search ``collection`` for records linked to ``subject_ref``; returns the resources."""
        params = {param: subject_ref, "_sort": sort}
        if limit is not None:
            params["_count"] = str(limit)
        body = await self._request("GET", f"/{collection}", params=params)
        return [entry["resource"] for entry in body.get("entry") or [] if "resource" in entry]
