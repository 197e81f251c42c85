"""Salesforce REST query executor."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from common.errors import ExecutionError
from common.models.query_result import QueryResult
from common.sanitization import redact_sensitive_info
from dal.salesforce.config import SalesforceConfig
from dal.salesforce.models import QueryResponse, SalesforceApiError, strip_attributes
from dal.tracing import trace_query_operation

logger = logging.getLogger(__name__)

PING_STATEMENT = "SELECT Id FROM User LIMIT 1"


def _parse_page(body: Any) -> QueryResponse:
    try:
        return QueryResponse.model_validate(body)
    except ValidationError as exc:
        raise ExecutionError("MALFORMED_RESPONSE: unexpected query response shape") from exc


def _error_from_response(response: httpx.Response) -> ExecutionError:
    """Translate an HTTP error response into an ExecutionError.

    Salesforce answers with a JSON list of ``{"errorCode", "message"}`` objects;
    anything else falls back to the status line.
    """
    payload: Any = None
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        payload = [payload]
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        try:
            first = SalesforceApiError.model_validate(payload[0])
            return ExecutionError(
                first.render(), error_code=first.error_code, status_code=response.status_code
            )
        except ValidationError:
            pass

    fallback_codes = {401: "INVALID_SESSION_ID", 403: "INSUFFICIENT_ACCESS", 404: "NOT_FOUND"}
    code = fallback_codes.get(response.status_code, "HTTP_ERROR")
    text = redact_sensitive_info(response.text or response.reason_phrase or "")
    return ExecutionError(
        f"{code}: HTTP {response.status_code} {text}".strip(),
        error_code=code,
        status_code=response.status_code,
    )


class SalesforceQueryExecutor:
    """Runs SOQL statements through the Salesforce REST ``query`` resource."""

    provider = "salesforce"

    def __init__(
        self,
        config: SalesforceConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize with connection settings and an optional preconfigured client."""
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

    @property
    def config(self) -> SalesforceConfig:
        """Connection settings in use."""
        return self._config

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.access_token}",
            "Accept": "application/json",
        }

    async def get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        """GET a REST resource and return its JSON body.

        Raises:
            ExecutionError: On transport failures and non-2xx responses.
        """
        try:
            response = await self._client.get(url, params=params, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise ExecutionError(f"REQUEST_TIMEOUT: {redact_sensitive_info(str(exc))}") from exc
        except httpx.HTTPError as exc:
            message = redact_sensitive_info(str(exc)) or exc.__class__.__name__
            raise ExecutionError(f"CONNECTION_FAILED: {message}") from exc

        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.warning(
                "Salesforce request failed",
                extra={"status_code": response.status_code, "error_code": error.error_code},
            )
            raise error
        try:
            return response.json()
        except ValueError as exc:
            raise ExecutionError("MALFORMED_RESPONSE: response body is not JSON") from exc

    async def _run_query(self, statement: str) -> QueryResult:
        body = await self.get_json(f"{self._config.data_url}/query", params={"q": statement})
        page = _parse_page(body)
        records: List[Dict[str, Any]] = [strip_attributes(r) for r in page.records]

        while page.next_records_url and len(records) < self._config.max_rows:
            next_url = urljoin(self._config.instance_url + "/", page.next_records_url.lstrip("/"))
            page = _parse_page(await self.get_json(next_url))
            records.extend(strip_attributes(r) for r in page.records)

        is_truncated = len(records) > self._config.max_rows or bool(page.next_records_url)
        return QueryResult(
            records=records[: self._config.max_rows],
            total_size=page.total_size,
            is_truncated=is_truncated,
        )

    async def execute(self, statement: str) -> QueryResult:
        """Execute a SOQL statement, following pagination up to ``max_rows``."""
        return await trace_query_operation(
            "salesforce.query", self.provider, statement, self._run_query(statement)
        )

    async def ping(self) -> bool:
        """Check that the session is usable."""
        try:
            await self.execute(PING_STATEMENT)
        except ExecutionError as exc:
            logger.warning("Salesforce ping failed: %s", exc)
            return False
        return True

    async def current_user_id(self) -> Optional[str]:
        """Return the configured or session user id, if it can be determined."""
        if self._config.user_id:
            return self._config.user_id
        try:
            info = await self.get_json(f"{self._config.instance_url}/services/oauth2/userinfo")
        except ExecutionError as exc:
            logger.warning("Could not resolve current user: %s", exc)
            return None
        if isinstance(info, dict):
            return info.get("user_id")
        return None

    async def aclose(self) -> None:
        """Close the HTTP client if this executor created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SalesforceQueryExecutor":
        """Enter async context."""
        return self

    async def __aexit__(self, *exc_info) -> None:
        """Close on exit."""
        await self.aclose()
