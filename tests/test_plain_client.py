"""Tests for the Plain GraphQL client and webhook signatures."""

import json

import httpx
import pytest

from plain_triage.core.errors import (
    ConfigurationError,
    ExternalServiceError,
    SignatureVerificationError,
    TransportError,
)
from plain_triage.domain.models import PriorityBand
from plain_triage.infra.plain_client import PlainApiClient
from plain_triage.infra.webhook_verification import compute_signature, verify_signature

API_URL = "https://plain.test/graphql/v1"
LABELS = {PriorityBand.P0: "lt_p0", PriorityBand.P2: "lt_p2"}


def _client(handler) -> PlainApiClient:
    return PlainApiClient(API_URL, "token-123", LABELS, transport=httpx.MockTransport(handler))


class TestPlainApiClient:
    """Tests for PlainApiClient."""

    @pytest.mark.asyncio
    async def test_add_priority_label_sends_mutation(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": {"addLabels": {"thread": {"id": "th_1", "labels": []}}}})

        client = _client(handler)
        thread = await client.add_priority_label("th_1", PriorityBand.P0)
        await client.aclose()

        assert thread == {"id": "th_1", "labels": []}
        (request,) = seen
        assert str(request.url) == API_URL
        assert request.headers["Authorization"] == "Bearer token-123"
        body = json.loads(request.content)
        assert body["operationName"] == "AddLabels"
        assert body["variables"] == {"threadId": "th_1", "labelTypeIds": ["lt_p0"]}

    @pytest.mark.asyncio
    async def test_mutation_error_is_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"addLabels": {"message": "Thread not found", "code": "not_found"}}})

        with pytest.raises(ExternalServiceError, match="Thread not found"):
            await _client(handler).add_priority_label("th_1", PriorityBand.P2)

    @pytest.mark.asyncio
    async def test_graphql_errors_are_raised(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": [{"message": "bad query"}]})

        with pytest.raises(ExternalServiceError, match="GraphQL errors"):
            await _client(handler).execute_graphql("query { x }")

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="unauthorized")

        with pytest.raises(ExternalServiceError, match="401"):
            await _client(handler).execute_graphql("query { x }")

    @pytest.mark.asyncio
    async def test_non_json_body_is_external_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(ExternalServiceError, match="non-JSON"):
            await _client(handler).add_priority_label("th_1", PriorityBand.P0)

    @pytest.mark.asyncio
    async def test_network_error_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route to host")

        with pytest.raises(TransportError):
            await _client(handler).execute_graphql("query { x }")

    @pytest.mark.asyncio
    async def test_unconfigured_band_is_configuration_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not be called")

        with pytest.raises(ConfigurationError, match="P1"):
            await _client(handler).add_priority_label("th_1", PriorityBand.P1)

    def test_priority_for_label_type(self) -> None:
        client = _client(lambda request: httpx.Response(200))

        assert client.priority_for_label_type("lt_p2") == PriorityBand.P2
        assert client.priority_for_label_type("lt_other") is None
        assert client.priority_for_label_type(None) is None


class TestVerifySignature:
    """Tests for webhook HMAC verification."""

    def test_valid_signature(self) -> None:
        body = b'{"payload": {}}'

        verify_signature(body, compute_signature(body, "s3cret"), "s3cret")

    def test_prefixed_signature(self) -> None:
        body = b"{}"

        verify_signature(body, "sha256=" + compute_signature(body, "s3cret"), "s3cret")

    def test_tampered_body(self) -> None:
        signature = compute_signature(b"{}", "s3cret")

        with pytest.raises(SignatureVerificationError):
            verify_signature(b'{"x": 1}', signature, "s3cret")

    @pytest.mark.parametrize("signature", [None, "", "not-hex-at-all", "é"])
    def test_missing_or_garbage_signature(self, signature: str | None) -> None:
        with pytest.raises(SignatureVerificationError):
            verify_signature(b"{}", signature, "s3cret")
