"""Span sinks: the remote (or local) destinations of exported batches.

A sink implements `export(batch) -> bool`. Returning False or raising marks
the attempt as failed; retry and drop policy live in the exporter, so sinks
make a single attempt per call.
"""

import sys
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import IO, TYPE_CHECKING, Any, Mapping, Sequence
from urllib.parse import urlsplit, urlunsplit

import httpx
import orjson
from elasticsearch import Elasticsearch
from elasticsearch.helpers import BulkIndexError, bulk

from tracelink.export.otlp_json import encode_spans
from tracelink.telemetry import SINK_REQUEST_FAILED, get_logger
from tracelink.tracing.types import SinkConfigError

if TYPE_CHECKING:
    from tracelink.config.settings import TracingConfig
    from tracelink.tracing.span import Span

log = get_logger(__name__)

OTLP_TRACES_PATH = "/v1/traces"


class SpanSink(ABC):
    """Destination for batches of finished spans."""

    @abstractmethod
    def export(self, batch: Sequence["Span"]) -> bool:
        """Deliver one batch.

        Args:
            batch: Finished spans, oldest first.

        Returns:
            True if the destination accepted the batch.
        """

    def shutdown(self) -> None:
        """Release connections and other resources."""
        return None


class OtlpHttpSpanSink(SpanSink):
    """Sends batches to an OpenTelemetry collector as OTLP/JSON over HTTP.

    Args:
        endpoint: Collector base URL (`http://tempo:4318`) or full traces URL.
            A bare `host:port` is treated as plain HTTP.
        resource: Resource attributes attached to every request.
        scope_name: Instrumentation scope name (usually the service name).
        timeout_seconds: Per-request timeout.
        headers: Extra request headers (e.g. authentication).
        client: Pre-built httpx client (tests, custom transports).
    """

    def __init__(
        self,
        endpoint: str,
        resource: Mapping[str, Any],
        scope_name: str,
        timeout_seconds: float = 10.0,
        headers: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:  # noqa: D107
        self.url = self._traces_url(endpoint)
        self.resource = dict(resource)
        self.scope_name = scope_name
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._headers = {"Content-Type": "application/json", **(headers or {})}

    @staticmethod
    def _traces_url(endpoint: str) -> str:
        """Normalize an endpoint into the full `/v1/traces` URL."""
        if "://" not in endpoint:
            endpoint = f"http://{endpoint}"
        parts = urlsplit(endpoint)
        path = parts.path.rstrip("/")
        if not path.endswith(OTLP_TRACES_PATH):
            path = f"{path}{OTLP_TRACES_PATH}"
        return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))

    def export(self, batch: Sequence["Span"]) -> bool:
        """POST the batch; any 2xx response counts as delivered."""
        body = orjson.dumps(encode_spans(batch, self.resource, self.scope_name))
        try:
            response = self._client.post(self.url, content=body, headers=self._headers)
        except httpx.HTTPError as e:
            log.warning(SINK_REQUEST_FAILED, sink="otlp_http", url=self.url, error=str(e))
            return False
        if not response.is_success:
            log.warning(
                SINK_REQUEST_FAILED,
                sink="otlp_http",
                url=self.url,
                status_code=response.status_code,
                body=response.text[:200],
            )
            return False
        return True

    def shutdown(self) -> None:
        """Close the HTTP connection pool."""
        self._client.close()


class ElasticsearchSpanSink(SpanSink):
    """Bulk-indexes spans as documents into daily Elasticsearch indices.

    Usage:
        sink = ElasticsearchSpanSink("http://localhost:9200", resource)
        sink.export(batch)   # -> traces-2026.10.19
    """

    def __init__(
        self,
        es_url: str,
        resource: Mapping[str, Any],
        index_prefix: str = "traces",
        timeout_seconds: float = 10.0,
        client: Elasticsearch | None = None,
    ) -> None:  # noqa: D107
        self.es_url = es_url
        self.resource = dict(resource)
        self.index_prefix = index_prefix
        self.timeout_seconds = timeout_seconds
        self.client: Elasticsearch | None = client

    def _connect(self) -> Elasticsearch:
        """Create the client on first use."""
        if self.client is None:
            self.client = Elasticsearch(
                [self.es_url],
                request_timeout=self.timeout_seconds,
                # The exporter owns retries.
                max_retries=0,
                retry_on_timeout=False,
            )
        return self.client

    def _get_index_name(self) -> str:
        """Get index name with date suffix (daily rotation)."""
        date_str = datetime.now(timezone.utc).strftime("%Y.%m.%d")
        return f"{self.index_prefix}-{date_str}"

    def _document(self, span: "Span") -> dict[str, Any]:
        doc = span.to_dict()
        doc["@timestamp"] = datetime.fromtimestamp(
            span.start_time_ns / 1_000_000_000, tz=timezone.utc
        ).isoformat()
        doc["resource"] = self.resource
        return doc

    def export(self, batch: Sequence["Span"]) -> bool:
        """Index the batch with the bulk helper; partial failures count as failure."""
        index_name = self._get_index_name()
        actions = [
            {
                "_index": index_name,
                # Span ids are unique per trace; the pair makes re-sends idempotent.
                "_id": f"{span.context.trace_id_hex}-{span.context.span_id_hex}",
                "_source": self._document(span),
            }
            for span in batch
        ]
        try:
            success, _ = bulk(self._connect(), actions)
        except BulkIndexError as e:
            log.warning(
                SINK_REQUEST_FAILED,
                sink="elasticsearch",
                index=index_name,
                failed=len(e.errors),
            )
            return False
        except Exception as e:
            log.warning(SINK_REQUEST_FAILED, sink="elasticsearch", index=index_name, error=str(e))
            return False
        return success == len(actions)

    def shutdown(self) -> None:
        """Close Elasticsearch connection."""
        if self.client is not None:
            self.client.close()
            self.client = None


class ConsoleSpanSink(SpanSink):
    """Writes one JSON object per span to a stream (local debugging)."""

    def __init__(self, stream: IO[str] | None = None) -> None:  # noqa: D107
        self.stream = stream or sys.stdout

    def export(self, batch: Sequence["Span"]) -> bool:
        """Write the batch and flush the stream."""
        for span in batch:
            self.stream.write(orjson.dumps(span.to_dict()).decode("utf-8") + "\n")
        self.stream.flush()
        return True


class InMemorySpanSink(SpanSink):
    """Keeps exported batches in memory.

    Useful in tests and for the `memory` endpoint. Set `fail` to make every
    export attempt fail.
    """

    def __init__(self) -> None:  # noqa: D107
        self.batches: list[list["Span"]] = []
        self.fail = False
        self.attempts = 0
        self.is_shutdown = False
        self._lock = threading.Lock()

    def export(self, batch: Sequence["Span"]) -> bool:
        """Store the batch unless `fail` is set."""
        with self._lock:
            self.attempts += 1
            if self.fail:
                return False
            self.batches.append(list(batch))
            return True

    @property
    def spans(self) -> list["Span"]:
        """All exported spans, in export order."""
        with self._lock:
            return [span for batch in self.batches for span in batch]

    def shutdown(self) -> None:
        """Mark the sink as shut down."""
        self.is_shutdown = True


def create_sink(
    endpoint: str,
    resource: Mapping[str, Any],
    config: "TracingConfig | None" = None,
) -> SpanSink:
    """Build a sink from an endpoint string.

    Supported forms:
    - `http://host:port`, `https://...`, bare `host:port` → OTLP/JSON over HTTP
    - `elasticsearch://host:port`, `elasticsearch+https://host:port` → Elasticsearch
    - `console` → JSON lines on stdout
    - `memory` → in-memory sink

    Args:
        endpoint: Endpoint string.
        resource: Resource attributes (must include service.name).
        config: Settings providing timeouts and the Elasticsearch index prefix.

    Returns:
        A ready-to-use sink.

    Raises:
        SinkConfigError: If the endpoint is empty or uses an unknown scheme.
    """
    endpoint = endpoint.strip()
    if not endpoint:
        raise SinkConfigError("sink endpoint must not be empty")

    timeout = config.export_request_timeout_seconds if config else 10.0
    index_prefix = config.elasticsearch_index_prefix if config else "traces"
    scope_name = str(resource.get("service.name", "tracelink"))

    scheme = endpoint.split("://", 1)[0].lower() if "://" in endpoint else ""
    if endpoint.lower() in ("console", "console://"):
        return ConsoleSpanSink()
    if endpoint.lower() in ("memory", "memory://"):
        return InMemorySpanSink()
    if scheme in ("elasticsearch", "elasticsearch+http", "elasticsearch+https"):
        inner_scheme = "https" if scheme.endswith("https") else "http"
        es_url = f"{inner_scheme}://{endpoint.split('://', 1)[1]}"
        return ElasticsearchSpanSink(
            es_url, resource, index_prefix=index_prefix, timeout_seconds=timeout
        )
    if scheme in ("http", "https") or (scheme == "" and ":" in endpoint):
        return OtlpHttpSpanSink(endpoint, resource, scope_name, timeout_seconds=timeout)
    raise SinkConfigError(f"unsupported sink endpoint: {endpoint!r}")
