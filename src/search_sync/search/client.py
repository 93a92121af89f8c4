"""
Elasticsearch Client

A thin synchronous wrapper over the Elasticsearch REST API, responsible for:

- Index existence checks and creation
- Mapping definition
- Document upsert / delete (delete tolerates already-absent documents)
- Bulk requests (NDJSON)
- Index refresh

Transport and HTTP failures are raised as `SearchServiceError`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote

import httpx

from ..config import settings
from ..core.errors import SearchServiceError

logger = logging.getLogger("search_sync.client")


class ElasticsearchClient:
    """
    Synchronous Elasticsearch REST client.

    Safe to reuse across calls; close it (or use it as a context manager)
    to release the connection pool.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        auth: Optional[httpx.Auth | tuple[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize a client.

        Parameters
        ----------
        base_url : Optional[str]
            Cluster URL. Defaults to settings.elasticsearch_url.

        timeout : Optional[float]
            HTTP timeout per request. Defaults to settings.http_timeout.

        auth : Optional[httpx.Auth | tuple[str, str]]
            Credentials. Defaults to settings.elasticsearch_username /
            settings.elasticsearch_password when both are set.

        transport : Optional[httpx.BaseTransport]
            Custom transport, e.g. `httpx.MockTransport` in tests.
        """
        if auth is None and settings.elasticsearch_username and settings.elasticsearch_password:
            auth = (
                settings.elasticsearch_username,
                settings.elasticsearch_password.get_secret_value(),
            )

        self.base_url = str(base_url or settings.elasticsearch_url).rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout or settings.http_timeout,
            auth=auth,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        allow_missing: bool = False,
    ) -> Optional[Dict[str, Any]]:
        try:
            resp = self._client.request(
                method,
                path,
                json=json_body,
                content=content,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise SearchServiceError(
                f"{method} {path} failed: {type(exc).__name__}"
            ) from exc

        if allow_missing and resp.status_code == 404:
            return None

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SearchServiceError(
                f"{method} {path} returned {resp.status_code}: {resp.text[:500]}"
            ) from exc

        if not resp.content:
            return {}
        return resp.json()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def index_exists(self, index: str) -> bool:
        return self._request("HEAD", f"/{index}", allow_missing=True) is not None

    def create_index(self, index: str, body: Optional[Dict[str, Any]] = None) -> None:
        self._request("PUT", f"/{index}", json_body=body or {})

    def put_mapping(self, index: str, properties: Dict[str, Dict[str, Any]]) -> None:
        self._request("PUT", f"/{index}/_mapping", json_body={"properties": properties})

    def _doc_path(self, index: str, doc_id: str) -> str:
        # One path segment, whatever the identifier contains
        return f"/{index}/_doc/{quote(doc_id, safe='')}"

    def put_document(self, index: str, doc_id: str, source: Dict[str, Any]) -> None:
        self._request("PUT", self._doc_path(index, doc_id), json_body=source)

    def delete_document(self, index: str, doc_id: str) -> bool:
        """
        Delete a document. Returns False when it was already absent.
        """
        result = self._request("DELETE", self._doc_path(index, doc_id), allow_missing=True)
        return result is not None

    def bulk(self, actions: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Send a bulk request.

        `actions` alternates action lines and (for index actions) sources,
        exactly as the NDJSON body expects.

        Raises
        ------
        SearchServiceError
            If the request fails or any item reports an error.
        """
        lines = [json.dumps(action, separators=(",", ":")) for action in actions]
        if not lines:
            return {"items": [], "errors": False}

        body = ("\n".join(lines) + "\n").encode("utf-8")
        result = self._request(
            "POST",
            "/_bulk",
            content=body,
            headers={"Content-Type": "application/x-ndjson"},
        ) or {}

        if result.get("errors"):
            failed = [
                item
                for item in result.get("items", [])
                for outcome in item.values()
                if outcome.get("error")
            ]
            raise SearchServiceError(
                f"Bulk request reported {len(failed)} failed item(s): {failed[:1]}"
            )

        return result

    def refresh(self, index: Optional[str] = None) -> None:
        path = f"/{index}/_refresh" if index else "/_refresh"
        self._request("POST", path)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ElasticsearchClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
