"""JSON-over-HTTP gateway backed by an :class:`aiohttp.ClientSession`.

Expected backend routes (relative to ``base_url``)::

    GET   /providers            -> [ {...}, ... ]   (or {"items": [...]})
    GET   /providers/default    -> {...}
    GET   /providers/{id}       -> {...}            (404 = not found)
    PATCH /providers/{id}       -> {...}            (post-write record)

Records use camelCase keys and are parsed with ``entity_factory``
(``Provider.model_validate`` by default).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from pyprov.exceptions import PersistenceError
from pyprov.models.provider import Provider

_logger = logging.getLogger(__name__)

_DEFAULT_HEADERS: dict[str, str] = {
    "accept": "application/json",
    "content-type": "application/json; charset=UTF-8",
}


def _camelize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, Mapping):
        return {to_camel(str(k)): _camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_camelize(v) for v in value]
    return value


class HttpGateway:
    """Gateway talking to a REST backend that owns the provider table."""

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        resource: str = "providers",
        headers: Mapping[str, str] | None = None,
        entity_factory: Callable[[Any], Any] = Provider.model_validate,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._resource = resource.strip("/")
        self._headers = {**_DEFAULT_HEADERS, **(headers or {})}
        self._entity_factory = entity_factory

    def _endpoint(self, *parts: str) -> str:
        suffix = "".join(f"/{quote(part, safe='')}" for part in parts)
        return f"/{self._resource}{suffix}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        operation: str,
        entity_id: str | None = None,
        body: Any = None,
        allow_not_found: bool = False,
    ) -> Any | None:
        url = f"{self._base_url}{endpoint}"
        data = json.dumps(body, separators=(",", ":")) if body is not None else None

        _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(method, url, data=data, headers=self._headers) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise PersistenceError(
                f"Request to {endpoint} failed: {exc}",
                operation=operation,
                entity_id=entity_id,
                endpoint=endpoint,
            ) from exc

        if status == 404 and allow_not_found:
            return None
        if not 200 <= status < 300:
            raise PersistenceError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                operation=operation,
                entity_id=entity_id,
                status_code=status,
                endpoint=endpoint,
            )

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                operation=operation,
                entity_id=entity_id,
                status_code=status,
                endpoint=endpoint,
            ) from exc

    def _parse(self, payload: Any, *, operation: str, endpoint: str, entity_id: str | None = None) -> Any:
        if not isinstance(payload, dict):
            raise PersistenceError(
                f"Expected an object from {endpoint}",
                operation=operation,
                entity_id=entity_id,
                endpoint=endpoint,
            )
        try:
            return self._entity_factory(payload)
        except ValidationError as exc:
            raise PersistenceError(
                f"Invalid record from {endpoint}: {exc.error_count()} validation error(s)",
                operation=operation,
                entity_id=entity_id,
                endpoint=endpoint,
            ) from exc

    async def fetch_entity(self, entity_id: str) -> Any | None:
        endpoint = self._endpoint(entity_id)
        payload = await self._request(
            "GET",
            endpoint,
            operation="fetch_entity",
            entity_id=entity_id,
            allow_not_found=True,
        )
        if payload is None:
            return None
        return self._parse(payload, operation="fetch_entity", endpoint=endpoint, entity_id=entity_id)

    async def fetch_default_entity(self) -> Any:
        endpoint = self._endpoint("default")
        payload = await self._request("GET", endpoint, operation="fetch_default_entity")
        return self._parse(payload, operation="fetch_default_entity", endpoint=endpoint)

    async def write_entity(self, entity_id: str, change: Mapping[str, Any]) -> Any:
        endpoint = self._endpoint(entity_id)
        payload = await self._request(
            "PATCH",
            endpoint,
            operation="write_entity",
            entity_id=entity_id,
            body=_camelize(change),
        )
        return self._parse(payload, operation="write_entity", endpoint=endpoint, entity_id=entity_id)

    async def list_entities(self) -> list[Any]:
        endpoint = self._endpoint()
        payload = await self._request("GET", endpoint, operation="list_entities")
        if isinstance(payload, dict):
            payload = payload.get("items")
        if not isinstance(payload, list):
            raise PersistenceError(f"Expected a list from {endpoint}", operation="list_entities", endpoint=endpoint)
        return [self._parse(item, operation="list_entities", endpoint=endpoint) for item in payload]
