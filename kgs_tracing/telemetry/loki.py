"""
Log shipping to Grafana Loki.

Records are formatted as JSON lines, queued, and pushed in batches from a
background thread so that emitting a log statement never waits on the
network.
"""

import logging
import queue
import sys
import threading
from typing import Any, Dict, List, Optional, Tuple

import httpx
from opentelemetry import trace
from pythonjsonlogger import jsonlogger

PUSH_PATH = "/loki/api/v1/push"

# Loki level label values
_LEVEL_LABELS = {
    "TRACE": "trace",
    "DEBUG": "debug",
    "INFO": "info",
    "WARNING": "warn",
    "ERROR": "error",
    "CRITICAL": "error",
}

# Loggers of the HTTP client used for pushing; shipping them would feed back into the queue
_TRANSPORT_LOGGERS = ("httpx", "httpcore")

# (level label, timestamp in ns as string, line)
Entry = Tuple[str, str, str]


class _TransportLogFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.split(".", 1)[0] not in _TRANSPORT_LOGGERS


class LokiJsonFormatter(jsonlogger.JsonFormatter):
    """JSON line formatter that adds trace correlation and fixed fields.

    Output fields: message, logger, level, the handler's extra fields, any
    ``extra=`` passed to the log call, and trace_id / span_id when the
    record is emitted inside a recording span.
    """

    def __init__(self, extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__("%(message)s")
        self.extra_fields = dict(extra_fields or {})

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["logger"] = record.name
        log_record["level"] = record.levelname
        log_record.update(self.extra_fields)

        # Placeholders set on the shared record by the console filter
        log_record.pop("trace_id", None)
        log_record.pop("span_id", None)
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            log_record["trace_id"] = format(span_context.trace_id, "032x")
            log_record["span_id"] = format(span_context.span_id, "016x")


class LokiHandler(logging.Handler):
    """Logging handler that ships records to Loki's push API.

    Example:
        handler = LokiHandler("http://loki:3100", labels={"service_name": "orders"})
        handler.start()
        logging.getLogger().addHandler(handler)
    """

    def __init__(
        self,
        url: str,
        labels: Dict[str, str],
        extra_fields: Optional[Dict[str, Any]] = None,
        batch_size: int = 100,
        flush_interval: float = 1.0,
        max_queue_size: int = 10000,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the handler. No connection is made until the first push.

        Args:
            url: Loki base URL (e.g., "http://localhost:3100")
            labels: Stream labels attached to every entry
            extra_fields: Fields added to every JSON line
            batch_size: Maximum entries per push
            flush_interval: Seconds between background pushes
            max_queue_size: Entries buffered before new ones are dropped
            client: httpx client to push with, created when omitted
        """
        super().__init__()
        self.push_url = url.rstrip("/") + PUSH_PATH
        self.labels = dict(labels)
        self.extra_fields = dict(extra_fields or {})
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self.dropped = 0
        self.failed_batches = 0

        self._queue: "queue.Queue[Entry]" = queue.Queue(maxsize=max_queue_size)
        self._client = client or httpx.Client(timeout=5.0)
        self._owns_client = client is None
        self._flush_lock = threading.Lock()
        self._stop = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self.setFormatter(LokiJsonFormatter(self.extra_fields))
        self.addFilter(_TransportLogFilter())

    def start(self) -> None:
        """Start the background push worker."""
        if self._worker is not None:
            return
        self._worker = threading.Thread(target=self._run, name="loki-push", daemon=True)
        self._worker.start()

    def format_line(self, record: logging.LogRecord) -> str:
        """Render a record as the JSON line stored in Loki."""
        return self.format(record)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _LEVEL_LABELS.get(record.levelname, record.levelname.lower())
            timestamp = str(int(record.created * 1_000_000_000))
            self._queue.put_nowait((level, timestamp, self.format_line(record)))
        except queue.Full:
            self.dropped += 1
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        """Push everything queued so far on the calling thread.

        Draining and pushing happen under one lock, so batches reach Loki
        in the order their entries were queued whichever thread sends them.
        """
        with self._flush_lock:
            while True:
                batch = self._drain()
                if not batch:
                    return
                self._push(batch)

    def close(self) -> None:
        self._stop.set()
        if self._worker is not None:
            self._worker.join(timeout=self.flush_interval + 5.0)
            self._worker = None
        self.flush()
        if self._owns_client:
            self._client.close()
        super().close()

    def _run(self) -> None:
        while not self._stop.wait(self.flush_interval):
            self.flush()

    def _drain(self) -> List[Entry]:
        batch: List[Entry] = []
        try:
            while len(batch) < self.batch_size:
                batch.append(self._queue.get_nowait())
        except queue.Empty:
            pass
        return batch

    def _build_payload(self, batch: List[Entry]) -> Dict[str, Any]:
        streams: Dict[str, List[List[str]]] = {}
        for level, timestamp, line in batch:
            streams.setdefault(level, []).append([timestamp, line])
        return {
            "streams": [
                {"stream": {**self.labels, "level": level}, "values": values}
                for level, values in streams.items()
            ]
        }

    def _push(self, batch: List[Entry]) -> None:
        payload = self._build_payload(batch)
        try:
            response = self._client.post(self.push_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            # Must not go through logging: this handler is attached to the root logger
            self.failed_batches += 1
            sys.stderr.write(f"LokiHandler: failed to push {len(batch)} entries: {e}\n")
