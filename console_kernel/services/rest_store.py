"""
RestEntityStore -- RemoteStore speaking PostgREST over HTTP.

Responsibility:
    Maps gateway requests onto the hosted store's REST surface:

        CREATE  POST   /rest/v1/<table>
        UPDATE  PATCH  /rest/v1/<table>?id=eq.<id>
        DELETE  DELETE /rest/v1/<table>?id=eq.<id>
        FETCH   GET    /rest/v1/<table>?id=eq.<id>&select=*

    Every call asks for ``return=representation`` so an empty body means
    the row does not exist.

Architecture position:
    Kernel > Services.  Reached only through the ActionGateway, which owns
    the timeout; the httpx client timeout is a backstop.

Failure modes (raised, translated by the gateway):
    - EntityNotFoundError: empty representation on update/delete/fetch.
    - StoreConfigurationError: 401/403, unknown table (404), or an entity
      type with no table mapping.
    - StoreRejectedError: 409 -> CONFLICT, other 4xx -> HTTP_<status>.
    - StoreUnavailableError: 5xx and transport errors.
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from console_kernel.domain.gateway import GatewayAction, GatewayRequest
from console_kernel.exceptions import (
    EntityNotFoundError,
    StoreConfigurationError,
    StoreRejectedError,
    StoreUnavailableError,
)
from console_kernel.logging_config import get_logger

logger = get_logger("services.rest_store")

DEFAULT_TABLES: dict[str, str] = {
    "budget": "budgets",
    "license": "user_licenses",
}


class RestEntityStore:
    """
    PostgREST client used as the console's source of truth.

    Example:
        >>> with RestEntityStore("https://project.example.co", api_key="anon") as store:
        ...     gateway = ActionGateway(store)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        tables: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._tables = dict(tables or DEFAULT_TABLES)
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Prefer": "return=representation",
        }
        self._client = client or httpx.Client(timeout=timeout)

    def __enter__(self) -> "RestEntityStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _table_url(self, entity_type: str) -> str:
        table = self._tables.get(entity_type)
        if table is None:
            raise StoreConfigurationError(
                f"No table mapped for entity type '{entity_type}'"
            )
        return f"{self.base_url}/rest/v1/{table}"

    def apply(self, request: GatewayRequest) -> Mapping[str, Any] | None:
        url = self._table_url(request.entity_type)
        headers = {**self._headers, "Idempotency-Key": request.idempotency_key}
        by_id = {"id": f"eq.{request.entity_id}"}

        try:
            if request.action == GatewayAction.CREATE:
                resp = self._client.post(
                    url,
                    json={"id": request.entity_id, **request.patch},
                    headers=headers,
                )
            elif request.action == GatewayAction.UPDATE:
                resp = self._client.patch(
                    url, params=by_id, json=dict(request.patch), headers=headers,
                )
            elif request.action == GatewayAction.DELETE:
                resp = self._client.delete(url, params=by_id, headers=headers)
            else:
                resp = self._client.get(
                    url, params={**by_id, "select": "*"}, headers=headers,
                )
        except httpx.TransportError as exc:
            raise StoreUnavailableError(
                f"{type(exc).__name__} talking to {self.base_url}: {exc}"
            ) from exc

        self._raise_for_status(request, resp)
        return self._single_row(request, resp)

    def _raise_for_status(
        self, request: GatewayRequest, resp: httpx.Response,
    ) -> None:
        if resp.is_success:
            return
        status = resp.status_code
        detail = _error_detail(resp)
        logger.info(
            "rest_store_error_response",
            extra={
                "entity_type": request.entity_type,
                "entity_id": request.entity_id,
                "status_code": status,
            },
        )
        if status in (401, 403):
            raise StoreConfigurationError(f"Store refused credentials ({status}): {detail}")
        if status == 404:
            raise StoreConfigurationError(f"Store collection not found: {detail}")
        if status == 409:
            raise StoreRejectedError("CONFLICT", detail)
        if 400 <= status < 500:
            raise StoreRejectedError(f"HTTP_{status}", detail)
        raise StoreUnavailableError(f"Store returned {status}: {detail}")

    @staticmethod
    def _single_row(
        request: GatewayRequest, resp: httpx.Response,
    ) -> Mapping[str, Any] | None:
        if not resp.content:
            if request.action == GatewayAction.CREATE:
                return None
            raise EntityNotFoundError(request.entity_type, request.entity_id)
        body = resp.json()
        if isinstance(body, list):
            if not body:
                raise EntityNotFoundError(request.entity_type, request.entity_id)
            return body[0]
        return body


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
