"""
Cloudflare D1 over HTTP.

D1 is only reachable through the Cloudflare REST API outside a Worker, so every
statement is one POST to the database's /query endpoint. The response envelope:

    {"success": true, "errors": [], "result": [{"success": true, "results": [...], "meta": {...}}]}
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from opendots.config import settings

logger = logging.getLogger(__name__)

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"


class D1Error(Exception):
    """Raised for transport, HTTP and SQL failures reported by D1."""


class D1Client:
    def __init__(
        self,
        account_id: str,
        database_id: str,
        api_token: str,
        timeout: float = 20.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.database_id = database_id
        self._http = httpx.Client(
            base_url=f"{CLOUDFLARE_API_BASE}/accounts/{account_id}/d1/database/{database_id}",
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=timeout,
            transport=transport,
        )

    def _run(self, sql: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """POST one statement and return its entry from the result envelope."""
        try:
            r = self._http.post("/query", json={"sql": sql, "params": list(params or [])})
        except httpx.HTTPError as e:
            raise D1Error(f"D1 request failed: {e}") from e

        try:
            payload = r.json()
        except ValueError as e:
            raise D1Error(f"D1 returned a non-JSON response ({r.status_code})") from e

        if r.status_code >= 400 or not payload.get("success", False):
            raise D1Error(_error_message(payload, r.status_code))

        results = payload.get("result") or []
        if not results:
            return {}
        statement = results[0]
        if not statement.get("success", True):
            raise D1Error(statement.get("error") or "D1 statement failed")
        return statement

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Run one statement and return its result rows."""
        return self._run(sql, params).get("results") or []

    def first(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Dict[str, Any]:
        """Run a write and return the statement meta (changes, last_row_id, ...)."""
        return self._run(sql, params).get("meta") or {}

    def close(self) -> None:
        self._http.close()


def _error_message(payload: Dict[str, Any], status_code: int) -> str:
    errors = payload.get("errors") or []
    messages = [e.get("message", "") for e in errors if isinstance(e, dict) and e.get("message")]
    if messages:
        return "; ".join(messages)
    return f"D1 request failed with status {status_code}"


class D1Database:
    _client: Optional[D1Client] = None

    @classmethod
    def get_client(cls) -> Optional[D1Client]:
        """Shared client, or None when D1 is switched off or missing credentials."""
        if not settings.d1_configured:
            return None
        if cls._client is None:
            cls._client = D1Client(
                settings.cloudflare_account_id,
                settings.d1_database_id,
                settings.cloudflare_api_token,
                timeout=settings.d1_timeout_seconds,
            )
            logger.info("D1 client initialised for database %s", settings.d1_database_id)
        return cls._client

    @classmethod
    def reset_client(cls):
        if cls._client is not None:
            cls._client.close()
        cls._client = None


def get_d1() -> Optional[D1Client]:
    return D1Database.get_client()
