from __future__ import annotations

import json
import time
from abc import ABC
from typing import Any

import httpx

from models.search import (
    DetailOutcome,
    DocumentDetail,
    ErrorKind,
    FilterSet,
    Query,
    ResultRecord,
    SearchFailure,
    SearchOutcome,
    SearchSuccess,
    SourceId,
    parse_yyyymmdd,
)
from orchestrator.source_registry import SourceEndpoint
from utils.logger import get_logger

from . import payloads

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 10.0
USER_AGENT = "korlaw-search/0.1"
RAW_BODY_EXCERPT = 200


class BaseLegalClient(ABC):
    """
    Shared client for one law.go.kr style search API.

    Subclasses only declare where things live in the provider's JSON (envelope
    keys, list key, field names) and which filters the backend understands.

    search() and get_detail() perform exactly one HTTP call and never raise for
    provider problems: every failure comes back as a classified SearchFailure.
    """

    source_id: SourceId
    envelope_keys: tuple[str, ...] = ()
    list_key: str = ""
    detail_envelope_keys: tuple[str, ...] = ()
    detail_info_key: str | None = None
    detail_id_param: str = "ID"
    content_keys: tuple[str, ...] = ()

    # Unified field -> candidate provider keys, first non-empty wins
    field_map: dict[str, tuple[str, ...]] = {}
    # metadata name -> candidate provider keys
    metadata_map: dict[str, tuple[str, ...]] = {}

    def __init__(
        self,
        api_key: str | None,
        endpoint: SourceEndpoint,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        base_url: str | None = None,
        detail_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: OC key issued by open.law.go.kr; None or empty means unconfigured
            endpoint: Registry entry with URLs and the upstream target code
            timeout_s: Per-request timeout
            base_url: Override for the search URL
            detail_url: Override for the detail URL; derived from a lawSearch.do
                base_url when omitted
            http_client: Shared AsyncClient; when omitted the client owns one
        """
        self.api_key = (api_key or "").strip()
        self.endpoint = endpoint
        self.timeout_s = timeout_s
        self.search_url = base_url or endpoint.search_url
        if detail_url:
            self.detail_url = detail_url
        elif base_url and "lawSearch.do" in base_url:
            self.detail_url = base_url.replace("lawSearch.do", "lawService.do")
        else:
            self.detail_url = endpoint.detail_url
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def provider_name(self) -> str:
        return self.source_id.value

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def build_search_params(self, query: Query) -> dict[str, str]:
        # Upstream "page" is a 1-based record offset, not a page number
        offset = (query.page - 1) * query.page_size + 1
        params = {
            "OC": self.api_key,
            "target": self.endpoint.target,
            "type": "JSON",
            "query": query.text.strip(),
            "page": str(offset),
            "display": str(query.page_size),
        }
        params.update(self.filter_params(query.filters))
        return params

    def filter_params(self, filters: FilterSet) -> dict[str, str]:
        """Backend-side filters this source supports. Default: none."""
        return {}

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _pick(item: dict[str, Any], keys: tuple[str, ...]) -> str:
        for key in keys:
            value = payloads.text(item.get(key))
            if value:
                return value
        return ""

    def _detail_link(self, link: str) -> str:
        if not link:
            return ""
        if link.startswith("http://") or link.startswith("https://"):
            return link
        return self.endpoint.web_url.rstrip("/") + "/" + link.lstrip("/")

    def parse_item(self, item: dict[str, Any], query_text: str) -> ResultRecord | None:
        record_id = self._pick(item, self.field_map.get("id", ()))
        title = self._pick(item, self.field_map.get("title", ()))
        if not record_id or not title:
            return None

        metadata = {}
        for name, keys in self.metadata_map.items():
            value = self._pick(item, keys)
            if value:
                metadata[name] = value

        return ResultRecord(
            id=record_id,
            title=title,
            source_type=self.source_id,
            department=self._pick(item, self.field_map.get("department", ())),
            effective_date=parse_yyyymmdd(
                self._pick(item, self.field_map.get("effective_date", ()))
            ),
            detail_url=self._detail_link(self._pick(item, self.field_map.get("detail_url", ()))),
            relevance_score=payloads.relevance_score(title, query_text),
            metadata=metadata,
        )

    def parse_search_payload(self, payload: Any, query: Query) -> SearchSuccess:
        """
        Map a decoded search body onto SearchSuccess.

        Raises:
            TypeError: If the body does not have the expected shape
        """
        body = payloads.unwrap_envelope(payload, self.envelope_keys)
        if self.list_key not in body and "totalCnt" not in body:
            # Upstream reports key and quota problems as 200 with a bare message object
            raise TypeError(f"response has neither '{self.list_key}' nor 'totalCnt'")

        items = payloads.as_list(body.get(self.list_key))
        records = []
        for item in items:
            record = self.parse_item(item, query.text)
            if record is not None:
                records.append(record)

        total = payloads.to_int(body.get("totalCnt"), default=len(records))
        return SearchSuccess(records=tuple(records), total_count=total)

    def extract_content(self, body: dict[str, Any], info: dict[str, Any]) -> str:
        parts = [payloads.text(info.get(key) or body.get(key)) for key in self.content_keys]
        return "\n\n".join(p for p in parts if p)

    def parse_detail_payload(self, payload: Any, record_id: str) -> DocumentDetail:
        body = payloads.unwrap_envelope(payload, self.detail_envelope_keys)
        if self.detail_info_key and isinstance(body.get(self.detail_info_key), dict):
            info = body[self.detail_info_key]
        else:
            info = body

        title = self._pick(info, self.field_map.get("title", ()))
        if not title:
            raise TypeError("detail body has no title")

        metadata = {}
        for name, keys in self.metadata_map.items():
            value = self._pick(info, keys)
            if value:
                metadata[name] = value

        return DocumentDetail(
            id=self._pick(info, self.field_map.get("id", ())) or record_id,
            title=title,
            source_type=self.source_id,
            department=self._pick(info, self.field_map.get("department", ())),
            effective_date=parse_yyyymmdd(
                self._pick(info, self.field_map.get("effective_date", ()))
            ),
            content=self.extract_content(body, info),
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Error normalization
    # ------------------------------------------------------------------

    def _failure(
        self, kind: ErrorKind, message: str, retriable: bool, **details: Any
    ) -> SearchFailure:
        return SearchFailure(
            kind=kind,
            message=message,
            retriable=retriable,
            details={"source": self.provider_name, **details},
        )

    def _normalize_error(self, exc: Exception) -> SearchFailure:
        """Classify a transport-level exception."""
        if isinstance(exc, httpx.TimeoutException):
            return self._failure(
                ErrorKind.NETWORK,
                f"Request timed out after {self.timeout_s}s",
                True,
                exception_type=type(exc).__name__,
            )
        if isinstance(exc, httpx.TransportError):
            return self._failure(
                ErrorKind.NETWORK,
                f"Network error: {exc!s}",
                True,
                exception_type=type(exc).__name__,
            )
        return self._failure(
            ErrorKind.CLIENT_ERROR,
            f"Unexpected error: {exc!s}",
            False,
            exception_type=type(exc).__name__,
        )

    def _classify_status(self, response: httpx.Response) -> SearchFailure | None:
        status = response.status_code
        if status < 400:
            return None
        if status in (401, 403):
            return self._failure(
                ErrorKind.AUTH, f"Authentication failed (HTTP {status})", False, status=status
            )
        if status == 429:
            return self._failure(ErrorKind.SERVER_ERROR, "Rate limit exceeded", True, status=status)
        if status >= 500:
            return self._failure(
                ErrorKind.SERVER_ERROR, f"Server returned status {status}", True, status=status
            )
        return self._failure(
            ErrorKind.CLIENT_ERROR, f"API request failed with status {status}", False, status=status
        )

    def _decode_body(self, response: httpx.Response) -> Any | SearchFailure:
        body = response.text
        content_type = response.headers.get("content-type", "")

        if "text/html" in content_type or body.lstrip().startswith("<"):
            # law.go.kr answers an unknown OC key with an HTML error page
            return self._failure(
                ErrorKind.AUTH,
                "API returned HTML instead of JSON; the API key is probably invalid",
                False,
            )

        if not body.strip():
            logger.error(
                f"{self.provider_name} returned an empty body",
                extra={"extra_fields": {"source": self.provider_name, "status": response.status_code}},
            )
            return self._failure(ErrorKind.PARSE_ERROR, "API returned an empty response", False)

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            excerpt = body[:RAW_BODY_EXCERPT]
            logger.error(
                f"{self.provider_name} response is not valid JSON: {e}",
                extra={"extra_fields": {"source": self.provider_name, "raw_body": excerpt}},
            )
            return self._failure(
                ErrorKind.PARSE_ERROR,
                f"Failed to parse API response as JSON: {e}",
                False,
                raw_body=excerpt,
            )

    async def _get(self, url: str, params: dict[str, str]) -> Any | SearchFailure:
        try:
            response = await self._client().get(url, params=params, timeout=self.timeout_s)
        except httpx.HTTPError as e:
            return self._normalize_error(e)

        failure = self._classify_status(response)
        if failure is not None:
            return failure
        return self._decode_body(response)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def search(self, query: Query) -> SearchOutcome:
        """
        Run one search request against this source.

        Args:
            query: Validated query; its text must be non-empty

        Returns:
            SearchSuccess with normalized records, or a classified SearchFailure

        IMPORTANT: Never raises for provider errors and never retries
        """
        start_time = time.time()

        if not self.is_configured:
            return self._failure(ErrorKind.AUTH, "API key not configured", False)

        decoded = await self._get(self.search_url, self.build_search_params(query))
        latency_ms = int((time.time() - start_time) * 1000)

        if isinstance(decoded, SearchFailure):
            logger.warning(
                f"{self.provider_name} search failed: {decoded.kind.value}",
                extra={
                    "extra_fields": {
                        "source": self.provider_name,
                        "error_kind": decoded.kind.value,
                        "retriable": decoded.retriable,
                        "latency_ms": latency_ms,
                    }
                },
            )
            return decoded

        try:
            outcome = self.parse_search_payload(decoded, query)
        except (TypeError, AttributeError) as e:
            excerpt = json.dumps(decoded, ensure_ascii=False)[:RAW_BODY_EXCERPT]
            logger.error(
                f"{self.provider_name} response has an unexpected shape: {e}",
                extra={"extra_fields": {"source": self.provider_name, "raw_body": excerpt}},
            )
            return self._failure(
                ErrorKind.PARSE_ERROR, f"Unexpected response shape: {e}", False, raw_body=excerpt
            )

        logger.info(
            f"{self.provider_name} search successful",
            extra={
                "extra_fields": {
                    "source": self.provider_name,
                    "records": len(outcome.records),
                    "total_count": outcome.total_count,
                    "latency_ms": latency_ms,
                }
            },
        )
        return outcome

    async def get_detail(self, record_id: str) -> DetailOutcome:
        """
        Fetch the full document for one search hit.

        Args:
            record_id: The id from a ResultRecord of this source

        Returns:
            DocumentDetail, or a classified SearchFailure
        """
        if not self.is_configured:
            return self._failure(ErrorKind.AUTH, "API key not configured", False)
        if not record_id or not str(record_id).strip():
            return self._failure(ErrorKind.VALIDATION, "Document id cannot be empty", False)

        params = {
            "OC": self.api_key,
            "target": self.endpoint.target,
            "type": "JSON",
            self.detail_id_param: str(record_id).strip(),
        }
        decoded = await self._get(self.detail_url, params)
        if isinstance(decoded, SearchFailure):
            return decoded

        try:
            return self.parse_detail_payload(decoded, str(record_id))
        except (TypeError, AttributeError) as e:
            excerpt = json.dumps(decoded, ensure_ascii=False)[:RAW_BODY_EXCERPT]
            logger.error(
                f"{self.provider_name} detail has an unexpected shape: {e}",
                extra={"extra_fields": {"source": self.provider_name, "raw_body": excerpt}},
            )
            return self._failure(
                ErrorKind.PARSE_ERROR, f"Unexpected detail shape: {e}", False, raw_body=excerpt
            )
