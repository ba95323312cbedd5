import logging
from typing import Any, Final, Mapping

import httpx

from plain_triage.core.errors import ConfigurationError, ExternalServiceError, TransportError
from plain_triage.domain.models import PriorityBand

logger = logging.getLogger(__name__)

_ADD_LABELS_MUTATION: Final[str] = """
mutation AddLabels($threadId: ID!, $labelTypeIds: [ID!]!) {
  addLabels(threadId: $threadId, labelTypeIds: $labelTypeIds) {
    ... on AddLabelsSuccess {
      thread {
        id
        title
        labels {
          id
          labelType {
            id
            name
          }
        }
      }
    }
    ... on MutationError {
      message
      type
      code
    }
  }
}
"""


class PlainApiClient:
    """Thin GraphQL client for the Plain support platform."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        label_ids: Mapping[PriorityBand, str],
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url
        self._label_ids = dict(label_ids)
        self._client = httpx.AsyncClient(
            headers={"Authorization": f"Bearer {api_token}", "Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def label_id_for(self, band: PriorityBand) -> str | None:
        return self._label_ids.get(band)

    def priority_for_label_type(self, label_type_id: str | None) -> PriorityBand | None:
        for band, label_id in self._label_ids.items():
            if label_id == label_type_id:
                return band
        return None

    async def execute_graphql(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        operation_name: str | None = None,
    ) -> dict[str, Any]:
        payload = {"query": query, "variables": variables or {}, "operationName": operation_name}
        try:
            response = await self._client.post(self._api_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Plain API %s returned HTTP %s: %s", operation_name, e.response.status_code, e.response.text)
            raise ExternalServiceError(f"Plain API returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Plain API request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error("Plain API %s returned a non-JSON body: %.200s", operation_name, response.text)
            raise ExternalServiceError("Plain API returned a non-JSON response") from e
        if not isinstance(body, dict):
            raise ExternalServiceError("Plain API returned an unexpected response shape")

        if body.get("errors"):
            logger.error("GraphQL errors from Plain API (%s): %s", operation_name, body["errors"])
            raise ExternalServiceError(f"GraphQL errors: {body['errors']}")
        return body.get("data") or {}

    async def add_priority_label(self, thread_id: str, band: PriorityBand) -> dict[str, Any]:
        label_type_id = self.label_id_for(band)
        if not label_type_id:
            raise ConfigurationError(f"No label type ID configured for priority: {band}")

        logger.info("Adding priority label %s to thread %s", band, thread_id)
        data = await self.execute_graphql(
            _ADD_LABELS_MUTATION,
            {"threadId": thread_id, "labelTypeIds": [label_type_id]},
            "AddLabels",
        )

        result = data.get("addLabels") or {}
        if result.get("message"):
            raise ExternalServiceError(f"Failed to add label: {result['message']}")
        return result.get("thread") or {}

    async def aclose(self) -> None:
        await self._client.aclose()
