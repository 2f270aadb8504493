import json
import logging
from typing import Any, Optional

import httpx

from gradchat.config.config import (
    HEALTH_TIMEOUT_SECONDS,
    QUERY_API_BASE_URL,
    QUERY_MODEL,
    QUERY_TIMEOUT_SECONDS,
    QUERY_TOP_K,
)
from gradchat.core.exceptions import RemoteQueryError
from gradchat.model.query.query_request import QueryRequest, RemoteFeedbackRequest
from gradchat.model.query.query_response import QueryResult

logger = logging.getLogger(__name__)


def normalize_text(payload: Any) -> str:
    """Reduce whatever the service put in ``response`` to display text."""
    if isinstance(payload, str):
        return payload
    if payload is None:
        return ""
    if isinstance(payload, dict):
        for key in ("content", "text"):
            if key in payload:
                inner = payload[key]
                return inner if isinstance(inner, str) else json.dumps(inner)
    if isinstance(payload, (int, float, bool)):
        return str(payload)
    return json.dumps(payload)


def _parse_query_result(data: Any) -> QueryResult:
    if not isinstance(data, dict):
        raise RemoteQueryError("query response is not a JSON object")
    docs = data.get("retrieved_docs")
    if docs is not None and not isinstance(docs, list):
        docs = [docs]
    model_used = data.get("model_used")
    return QueryResult(
        response=normalize_text(data.get("response")),
        retrieved_docs=docs,
        model_used=str(model_used) if model_used is not None else None,
    )


class QueryApiClient:
    """Calls the external question-answering service. Holds no chat state."""

    def __init__(
        self,
        base_url: str = QUERY_API_BASE_URL,
        timeout: float = QUERY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def query(
        self, query: str, api_key: str, k: int = QUERY_TOP_K, model: str = QUERY_MODEL
    ) -> QueryResult:
        body = QueryRequest(query=query, api_key=api_key, k=k, model=model)
        try:
            response = await self._client.post("/query", json=body.model_dump())
        except httpx.TimeoutException as exc:
            raise RemoteQueryError("query request timed out") from exc
        except httpx.RequestError as exc:
            raise RemoteQueryError(f"query request failed: {exc}") from exc

        if not response.is_success:
            logger.warning("query failed status=%s body=%s", response.status_code, response.text)
            raise RemoteQueryError(
                f"API request failed: {response.reason_phrase}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            data = response.json()
        except ValueError as exc:
            logger.warning("query returned non-JSON body=%s", response.text)
            raise RemoteQueryError("query response is not JSON", status_code=response.status_code) from exc
        return _parse_query_result(data)

    async def submit_feedback(self, payload: RemoteFeedbackRequest) -> None:
        try:
            response = await self._client.post("/feedback", json=payload.model_dump(exclude_none=True))
        except httpx.RequestError as exc:
            raise RemoteQueryError(f"feedback request failed: {exc}") from exc
        if not response.is_success:
            logger.warning("feedback failed status=%s body=%s", response.status_code, response.text)
            raise RemoteQueryError(
                f"Feedback submission failed: {response.reason_phrase}",
                status_code=response.status_code,
                body=response.text,
            )

    async def wake_up_server(self) -> bool:
        """Ping /health so an idle backend starts spinning up. Never raises."""
        logger.info("sending health check to wake up %s", self.base_url)
        try:
            response = await self._client.get("/health", timeout=HEALTH_TIMEOUT_SECONDS)
        except httpx.RequestError:
            logger.exception("health check failed, server may be sleeping or unreachable")
            return False
        if response.status_code == 200:
            logger.info("query server is awake")
            return True
        logger.warning("health check status=%s body=%s", response.status_code, response.text)
        return False

    async def aclose(self) -> None:
        await self._client.aclose()


query_client = QueryApiClient()
