"""
Square Catalog API client.
One configured httpx.AsyncClient shared by every catalog call, with bearer auth,
a pinned Square-Version header, a fixed timeout and exponential-backoff retries.
Supports list (cursor pagination), batch-retrieve, batch-delete and batch-upsert.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from catalog_sync.config import Settings
from catalog_sync.integrations.square.models import (
    BatchRetrieveResponse,
    ListCatalogResponse,
    UpdatePayload,
)
from catalog_sync.utils.retry import (
    PermanentError,
    RetryPolicy,
    TransientError,
    call_with_retry,
)

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


class SquareAPIError(Exception):
    """Raised when a Square API call fails after the retry policy gives up."""

    def __init__(self, status_code: int, message: str, body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.body = body
        super().__init__(f"Square API error {status_code}: {message}")


class CatalogSchemaError(Exception):
    """Raised when a Square response does not match the expected object shape."""

    pass


@dataclass(frozen=True)
class SquareClientConfig:
    """Immutable client configuration, built once at startup."""

    access_token: str = field(repr=False)
    base_url: str = "https://connect.squareup.com"
    api_version: str = "2025-10-16"
    timeout_seconds: float = 30.0
    retry_policy: RetryPolicy = RetryPolicy()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SquareClientConfig":
        return cls(
            access_token=settings.square_access_token.get_secret_value(),
            base_url=settings.square_api_base_url.rstrip("/"),
            api_version=settings.square_api_version,
            timeout_seconds=settings.request_timeout_seconds,
            retry_policy=RetryPolicy(
                max_retries=settings.max_retry_attempts,
                initial_delay=settings.retry_initial_delay_seconds,
                multiplier=settings.retry_backoff_multiplier,
                max_delay=settings.retry_max_delay_seconds,
            ),
        )


class SquareCatalogClient:
    """Async client for the Square Catalog API."""

    def __init__(
        self,
        config: SquareClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Square catalog client.

        Args:
            config: Immutable client configuration
            transport: Optional httpx transport override (used by tests)
        """
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={
                "Authorization": f"Bearer {config.access_token}",
                "Square-Version": config.api_version,
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        response = await self.client.request(method, path, params=params, json=json)
        response.raise_for_status()
        return response

    async def _request(
        self,
        method: str,
        path: str,
        response_model: type[ModelT] | None = None,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Issue one request through the retry policy and decode the JSON body.

        Raises:
            SquareAPIError: transport failure or non-2xx status after retries
            CatalogSchemaError: body is not JSON or does not fit ``response_model``
        """
        try:
            response = await call_with_retry(
                self._send, method, path, params=params, json=json, policy=self.config.retry_policy
            )
        except (TransientError, PermanentError) as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError):
                logger.error(
                    "Square API error",
                    method=method,
                    path=path,
                    status_code=cause.response.status_code,
                    body=cause.response.text[:500],
                )
                raise SquareAPIError(
                    cause.response.status_code,
                    f"{method} {path} failed",
                    body=cause.response.text,
                ) from e
            logger.error("Square API request failed", method=method, path=path, error=str(cause or e))
            raise SquareAPIError(0, str(cause or e)) from e

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogSchemaError(f"{method} {path} returned a non-JSON body") from e

        if response_model is None:
            return data
        try:
            return response_model.model_validate(data)
        except ValidationError as e:
            raise CatalogSchemaError(
                f"{method} {path} returned an unexpected {response_model.__name__} shape: {e}"
            ) from e

    async def list_catalog(
        self, object_type: str, cursor: Optional[str] = None
    ) -> ListCatalogResponse:
        """
        Fetch one page of catalog objects.

        GET /v2/catalog/list?types=<object_type>[&cursor=<cursor>]
        """
        params = {"types": object_type}
        if cursor:
            params["cursor"] = cursor
        return await self._request(
            "GET", "/v2/catalog/list", ListCatalogResponse, params=params
        )

    async def batch_retrieve_items(self, item_ids: List[str]) -> BatchRetrieveResponse:
        """
        Fetch parent ITEM objects by id.

        POST /v2/catalog/batch-retrieve
        """
        return await self._request(
            "POST",
            "/v2/catalog/batch-retrieve",
            BatchRetrieveResponse,
            json={
                "object_ids": item_ids,
                "include_category_path_to_root": False,
                "include_related_objects": False,
            },
        )

    async def batch_delete(self, object_ids: List[str]) -> List[str]:
        """
        Delete catalog objects by id (at most 200 per call).

        POST /v2/catalog/batch-delete

        Returns:
            Ids Square reports as deleted
        """
        data = await self._request(
            "POST", "/v2/catalog/batch-delete", json={"object_ids": object_ids}
        )
        return data.get("deleted_object_ids", []) if isinstance(data, dict) else []

    async def batch_upsert(
        self, batches: List[List[UpdatePayload]], idempotency_key: str
    ) -> Dict[str, Any]:
        """
        Upsert catalog objects in one request.

        POST /v2/catalog/batch-upsert

        The idempotency key is fixed by the caller so every retry of this
        request carries the same key.
        """
        payload = {
            "batches": [
                {"objects": [obj.model_dump(exclude_none=True) for obj in batch]}
                for batch in batches
            ],
            "idempotency_key": idempotency_key,
        }
        return await self._request("POST", "/v2/catalog/batch-upsert", json=payload)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
