# src/outboundiq/client/client.py
# This file implements the tracking client: the queue of observed calls and
# their delivery to the OutboundIQ collector
#
# How a call flows through the client:
# 1. An interceptor (or the application) calls track()
# 2. track() drops ignored URLs and the SDK's own traffic, then queues the call
# 3. When batch_size calls are queued, or every flush_interval, flush() drains
#    the whole queue into one batch
# 4. The batch is sent on a background worker, the caller never waits for it
# 5. If the send fails, the first few calls go back to the head of the queue
#
# The client must never break the host application: every failure inside it
# is logged and swallowed, nothing is raised back into the caller's code.

import dataclasses
import os
import sys
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, List, Mapping, Optional, Union

from outboundiq.config import TrackerConfig
from outboundiq.logger import get_logger, setup_logging
from outboundiq.metrics import (
    BATCHES_FAILED_TOTAL,
    BATCHES_SENT_TOTAL,
    CALLS_DROPPED_TOTAL,
    CALLS_IGNORED_TOTAL,
    CALLS_TRACKED_TOTAL,
    SEND_LATENCY_SECONDS,
)
from outboundiq.tracking.context import UserContextLike, resolve_user_context
from outboundiq.utils.helpers import (
    generate_id,
    get_timestamp,
    is_collector_url,
    should_ignore,
)

from .models import TrackedCall
from .transport import Transport, encode_batch, select_transport

logger = get_logger(__name__)

# Upper bound on the queue when a failed batch is put back; the surplus of that batch is dropped
MAX_QUEUE_SIZE = 100

# How many calls of a failed batch are put back at the head of the queue
# TODO: confirm with the collector team whether the rest of a failed batch
# should be retried too; today only this prefix survives a failed send
REQUEUE_LIMIT = 10

RUNTIME_SERVER = "server"
RUNTIME_EDGE = "edge"
RUNTIME_BROWSER = "browser"

# Environment variables that identify short-lived serverless execution contexts
_EDGE_ENV_MARKERS = (
    "AWS_LAMBDA_FUNCTION_NAME",
    "VERCEL",
    "FUNCTIONS_WORKER_RUNTIME",
    "FUNCTION_TARGET",
)


def detect_runtime() -> str:
    """
    Work out what kind of process we're running in.

    - "browser": a WebAssembly interpreter (Pyodide) without real sockets
    - "edge": a serverless function that may be frozen between invocations
    - "server": everything else
    """
    if sys.platform in ("emscripten", "wasi"):
        return RUNTIME_BROWSER
    if any(os.getenv(marker) for marker in _EDGE_ENV_MARKERS):
        return RUNTIME_EDGE
    return RUNTIME_SERVER


class OutboundIQClient:
    """
    Queues tracked calls and ships them to the collector in batches.

    Sends never block the caller: flush() hands the batch to a single
    background worker, so at most one send is in flight at a time.
    shutdown() is the one blocking operation, it waits for the final send.

    HOW TO USE:
    ===========

    client = OutboundIQClient(TrackerConfig(api_key="..."))
    client.track(TrackedCall(method="GET", url="https://api.stripe.com/v1/charges",
                             status_code=200, duration=120.5))
    ...
    client.shutdown()
    """

    def __init__(
        self,
        config: TrackerConfig,
        transport: Optional[Transport] = None,
        runtime: Optional[str] = None,
    ):
        config.validate()
        self._config = config
        self._runtime = runtime or detect_runtime()
        self._transport = transport or select_transport(self._runtime)

        # Queue and flush state, all guarded by _lock
        self._queue: List[TrackedCall] = []
        self._lock = threading.Lock()
        self._flushing = False
        self._in_flight: Optional[Future] = None
        self._disposed = False

        self._current_user_context: Optional[UserContextLike] = None

        # One worker: batches are sent one at a time, in order
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="outboundiq-sender")

        self._stop_timer = threading.Event()
        self._timer_thread: Optional[threading.Thread] = None

        setup_logging(debug=config.debug)
        self._start_flush_timer()

        logger.debug(
            f"Initialized with config: endpoint={config.endpoint}, "
            f"batch_size={config.batch_size}, runtime={self._runtime}, "
            f"transport={self._transport.name}"
        )

    # ------------------------------------------------------------------
    # Flush timer
    # ------------------------------------------------------------------

    def _start_flush_timer(self):
        if self._timer_thread is not None:
            return

        # Serverless contexts are frozen or torn down between invocations,
        # a recurring timer there only fires at random points (or never)
        if self._runtime == RUNTIME_EDGE:
            logger.debug("Edge runtime detected, periodic flushing disabled")
            return

        # daemon=True: the timer never keeps the process alive on its own
        self._timer_thread = threading.Thread(
            target=self._flush_loop, name="outboundiq-flush-timer", daemon=True
        )
        self._timer_thread.start()

    def _flush_loop(self):
        interval = self._config.flush_interval_seconds
        while not self._stop_timer.wait(interval):
            try:
                self.flush()
            except Exception as e:
                logger.error(f"Error in flush timer: {e}")

    def _stop_flush_timer(self):
        self._stop_timer.set()
        thread = self._timer_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._timer_thread = None

    # ------------------------------------------------------------------
    # User context
    # ------------------------------------------------------------------

    def set_user_context(self, context: Optional[UserContextLike]) -> None:
        """
        Set the client-wide user context for subsequent calls.

        Calls that carry their own user context, or that are made inside a
        user_context() scope, keep theirs.
        """
        self._current_user_context = context

    def get_user_context(self) -> Optional[UserContextLike]:
        return self._current_user_context

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track(self, call: Union[TrackedCall, Mapping[str, Any]]) -> bool:
        """
        Queue a call for delivery.

        Calls to ignored URLs and to the collector itself are dropped
        silently. When the queue reaches batch_size a flush starts.

        Args:
            call: The observed call (a TrackedCall or a dict of its fields)

        Returns:
            True if the call was queued, False if it was dropped
        """
        if not isinstance(call, TrackedCall):
            call = TrackedCall.from_mapping(call)

        if should_ignore(call.url, self._config.ignore_patterns):
            logger.debug(f"Ignoring URL: {call.url}")
            CALLS_IGNORED_TOTAL.labels(reason="pattern").inc()
            return False

        if is_collector_url(call.url, self._config.endpoint):
            CALLS_IGNORED_TOTAL.labels(reason="self_traffic").inc()
            return False

        user_context = call.user_context
        if user_context is None:
            user_context = resolve_user_context()
        if user_context is None:
            user_context = self._current_user_context

        record = dataclasses.replace(
            call,
            id=generate_id(),
            timestamp=get_timestamp(),
            user_context=user_context,
        )

        with self._lock:
            if self._disposed:
                CALLS_DROPPED_TOTAL.labels(reason="disposed").inc()
                return False
            self._queue.append(record)
            should_flush = len(self._queue) >= self._config.batch_size

        CALLS_TRACKED_TOTAL.inc()
        logger.debug(f"Tracked call: {record.method} {record.url} {record.status_code}")

        if should_flush:
            self.flush()
        return True

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def flush(self) -> Optional[Future]:
        """
        Send everything queued so far, in the background.

        Does nothing when the queue is empty or a send is already in flight.
        Calls tracked while a send is in flight stay queued for the next flush.

        Returns:
            A Future that resolves to True/False (sent/failed) once the
            batch has been handled, or None if nothing was started
        """
        with self._lock:
            if not self._queue or self._flushing or self._disposed:
                return None

            # Take the whole queue in one step; nothing can be added to this batch anymore
            batch = self._queue
            self._queue = []
            self._flushing = True

            logger.debug(f"Flushing {len(batch)} calls")
            future = self._executor.submit(self._deliver, batch)
            self._in_flight = future

        return future

    def _deliver(self, batch: List[TrackedCall]) -> bool:
        try:
            self._send_batch(batch)
            return True
        except Exception as e:
            logger.error(f"Failed to send batch of {len(batch)} calls: {e}")
            self._requeue(batch)
            return False
        finally:
            with self._lock:
                self._flushing = False
                self._in_flight = None

    def _requeue(self, batch: List[TrackedCall]) -> None:
        """Put the head of a failed batch back at the front of the queue, within the cap."""
        with self._lock:
            room = max(0, MAX_QUEUE_SIZE - len(self._queue))
            retry = batch[:min(REQUEUE_LIMIT, room)]
            self._queue[0:0] = retry

        dropped = len(batch) - len(retry)
        if dropped:
            CALLS_DROPPED_TOTAL.labels(reason="send_failed").inc(dropped)
            logger.warning(f"Re-queued {len(retry)} calls, dropped {dropped} after failed send")

    def _send_batch(self, batch: List[TrackedCall]) -> None:
        """Encode and send one batch synchronously. Raises on failure."""
        payload = encode_batch(batch)
        transport_name = self._transport.name

        start = time.perf_counter()
        try:
            self._transport.send(payload, self._config)
        except Exception:
            BATCHES_FAILED_TOTAL.labels(transport=transport_name).inc()
            raise
        finally:
            SEND_LATENCY_SECONDS.observe(time.perf_counter() - start)

        BATCHES_SENT_TOTAL.labels(transport=transport_name).inc()
        logger.debug(f"Batch of {len(batch)} calls sent successfully")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """
        Stop the timer and send whatever is still queued, waiting for it.

        A failed final send is logged and not retried. After shutdown the
        client drops every new call. Calling it twice is harmless.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            in_flight = self._in_flight

        self._stop_flush_timer()

        # A send already in flight may re-queue part of its batch, let it finish first
        if in_flight is not None:
            wait([in_flight], timeout=self._config.timeout_seconds * 2)

        with self._lock:
            batch = self._queue
            self._queue = []

        if batch:
            try:
                self._send_batch(batch)
            except Exception as e:
                logger.error(f"Final flush failed: {e}")

        self._executor.shutdown(wait=True)
        logger.debug("Client shutdown complete")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def config(self) -> TrackerConfig:
        # TrackerConfig is frozen, handing out the object itself is safe
        return self._config

    @property
    def runtime(self) -> str:
        return self._runtime

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def is_disposed(self) -> bool:
        return self._disposed


def configure(
    config: Optional[Union[TrackerConfig, Mapping[str, Any]]] = None,
    transport: Optional[Transport] = None,
    runtime: Optional[str] = None,
    **options,
) -> OutboundIQClient:
    """
    Create a client with defaults merged into the given options.

    Args:
        config: A TrackerConfig, or a mapping of options
        transport: Override the delivery transport (mostly for tests)
        runtime: Override runtime detection ("server", "edge", "browser")
        **options: Options as keyword arguments, these win over config

    Example:
        client = configure(api_key="sk_live_...", batch_size=20)
    """
    if isinstance(config, TrackerConfig):
        resolved = config.with_options(**options) if options else config
    else:
        resolved = TrackerConfig.from_options(config, **options)
    return OutboundIQClient(resolved, transport=transport, runtime=runtime)


# ----------------------------------------------------------------------
# Process-wide client slot
# ----------------------------------------------------------------------
# The interceptors report to whatever client sits in this slot. It is
# filled once by init() and emptied by shutdown_client().

_instance: Optional[OutboundIQClient] = None
_instance_lock = threading.Lock()


def init(config: Optional[Union[TrackerConfig, Mapping[str, Any]]] = None, **options) -> OutboundIQClient:
    """
    Create the process-wide client.

    If a client already exists it is returned unchanged (a warning is logged).
    """
    global _instance

    with _instance_lock:
        if _instance is not None:
            logger.warning("Client already initialized. Returning existing instance.")
            return _instance
        _instance = configure(config, **options)
        return _instance


def get_client() -> Optional[OutboundIQClient]:
    """Get the process-wide client, or None before init() / after shutdown."""
    return _instance


def shutdown_client() -> None:
    """Shut down the process-wide client and empty the slot."""
    global _instance

    with _instance_lock:
        client = _instance
        _instance = None

    if client is not None:
        client.shutdown()
