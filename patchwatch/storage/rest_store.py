"""
REST Record Store
=================

Client for a PostgREST-style HTTP store (``{url}/rest/v1/{resource}``).
Filters are rendered as ``field=op.value`` query parameters, ordering as
``order=field.asc`` and the row cap as ``limit=N``.
"""

import asyncio
import ssl
from typing import Any, Dict, List, Optional

import aiohttp
import certifi

from ..utils.exceptions import DuplicateRecordError, ErrorCode, StoreError
from ..utils.logging import get_logger_for_component
from .base import StoreQuery, check_identifier

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


def _render_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_query(query: StoreQuery) -> Dict[str, str]:
    """Render a StoreQuery as PostgREST query parameters."""
    params: Dict[str, str] = {"select": ",".join(query.selected_fields())}
    for field_name, op, value in query.filters:
        if value is None and op == "eq":
            params[field_name] = "is.null"
        else:
            params[field_name] = f"{op}.{_render_value(value)}"
    if query.order_by:
        direction = "desc" if query.descending else "asc"
        params["order"] = f"{query.order_by}.{direction}"
    if query.limit is not None:
        params["limit"] = str(query.limit)
    return params


class RestStore:
    """Store backend speaking the PostgREST dialect over aiohttp."""

    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize the REST store client.

        Args:
            base_url: Store base URL, without the ``/rest/v1`` suffix
            service_key: Credential sent as ``apikey`` and bearer token
            timeout: Total timeout per request in seconds
            session: Optional externally managed session
        """
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self.logger = get_logger_for_component("rest_store")

    @classmethod
    def from_settings(cls, store_settings) -> "RestStore":
        return cls(
            base_url=store_settings.url,
            service_key=store_settings.service_key,
            timeout=store_settings.request_timeout,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=ssl_context),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    def _url(self, resource: str) -> str:
        return f"{self.base_url}/rest/v1/{check_identifier(resource)}"

    async def query(self, resource: str, query: StoreQuery) -> List[Dict[str, Any]]:
        params = render_query(query)
        self.logger.debug(f"Querying {resource} with {params}")

        try:
            async with self._get_session().get(
                self._url(resource), params=params, headers=self._headers()
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise StoreError(
                        f"Store error {response.status}: {body}",
                        resource=resource,
                        status=response.status,
                        error_code=ErrorCode.STORE_QUERY,
                    )
                if response.status == 204:
                    return []
                data = await response.json(content_type=None)
        except StoreError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StoreError(
                f"Store query failed for {resource}: {e}",
                resource=resource,
                error_code=ErrorCode.STORE_CONNECTION,
            ) from e

        if not isinstance(data, list):
            raise StoreError(
                f"Unexpected query response for {resource}: {type(data).__name__}",
                resource=resource,
                error_code=ErrorCode.STORE_RESPONSE,
            )
        return data

    async def insert(self, resource: str, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._get_session().post(
                self._url(resource), json=record, headers=self._headers()
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    if UNIQUE_VIOLATION in body:
                        raise DuplicateRecordError(
                            f"Duplicate record rejected by {resource}: {body}",
                            resource=resource,
                            status=response.status,
                        )
                    raise StoreError(
                        f"Store error {response.status}: {body}",
                        resource=resource,
                        status=response.status,
                        error_code=ErrorCode.STORE_INSERT,
                        recoverable=True,
                    )
                if response.status == 204:
                    return dict(record)
                data = await response.json(content_type=None)
        except StoreError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StoreError(
                f"Store insert failed for {resource}: {e}",
                resource=resource,
                error_code=ErrorCode.STORE_INSERT,
                recoverable=True,
            ) from e

        # return=representation yields a one-element list
        if isinstance(data, list):
            return data[0] if data else dict(record)
        return data

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
