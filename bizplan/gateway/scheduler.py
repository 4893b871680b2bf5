"""Request Scheduler — single-flight dispatch of queued upstream requests.

Main entry point for callers:
  1. ``submit`` enqueues a PendingRequest and returns its completion future
  2. One worker task drains the queue in order
  3. Cache hits are answered without touching the rate window
  4. The rate window decides how long to wait before dispatch
  5. Rate-limited attempts back off and go back to the FRONT of the queue
  6. Everything else completes the future (payload or GatewayError)

Usage:
    scheduler = RequestScheduler(OpenRouterClient(api_key="sk-..."))

    payload = await scheduler.request([{"role": "user", "content": "..."}])

    # Or fire-and-collect
    futures = [scheduler.submit(messages) for messages in batch]
    payloads = await asyncio.gather(*futures, return_exceptions=True)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from bizplan.core.config import Settings
from bizplan.core.metrics import (
    GATEWAY_CACHE_HITS,
    GATEWAY_DISPATCHES,
    GATEWAY_QUEUE_DEPTH,
    GATEWAY_RETRIES,
    GATEWAY_THROTTLE_SECONDS,
)
from bizplan.gateway.cache import ResponseCache
from bizplan.gateway.errors import GatewayError, UpstreamUnknown
from bizplan.gateway.normalizer import extract_message_content
from bizplan.gateway.rate_limiter import RateWindowTracker
from bizplan.gateway.retry_policy import RetryPolicy
from bizplan.gateway.types import (
    ChatMessage,
    PendingRequest,
    SchedulerConfig,
    SchedulerEvent,
    SchedulerEventKind,
    coerce_messages,
)
from bizplan.gateway.upstream import BaseUpstreamClient, OpenRouterClient

logger = logging.getLogger(__name__)

Listener = Callable[[SchedulerEvent], None]


class RequestScheduler:
    """Owns the pending queue, the rate window and the response cache.

    Exactly one request is in flight against the upstream at any time.
    ``max_concurrent`` only decides whether a new submission starts the
    worker itself or leaves it to the worker that is already running.
    """

    def __init__(
        self,
        upstream: BaseUpstreamClient,
        config: SchedulerConfig | None = None,
        *,
        rate_tracker: RateWindowTracker | None = None,
        retry_policy: RetryPolicy | None = None,
        cache: ResponseCache | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.upstream = upstream
        self.config = config if config is not None else SchedulerConfig()
        # Tracker and cache define __len__, so an empty one is falsy
        if rate_tracker is None:
            rate_tracker = RateWindowTracker(
                capacity=self.config.rate_capacity,
                window_seconds=self.config.window_seconds,
                clock=clock,
            )
        if retry_policy is None:
            retry_policy = RetryPolicy(
                max_retries=self.config.max_retries,
                base_delay=self.config.base_retry_delay,
            )
        self.rate_tracker = rate_tracker
        self.retry_policy = retry_policy
        self.cache = cache if cache is not None else ResponseCache()

        self._clock = clock
        self._sleep = sleep
        self._pending: deque[PendingRequest] = deque()
        self._busy = False
        self._worker: asyncio.Task | None = None
        self._listeners: list[Listener] = []

    @classmethod
    def from_settings(cls, settings: Settings, upstream: BaseUpstreamClient | None = None) -> RequestScheduler:
        return cls(
            upstream or OpenRouterClient.from_settings(settings),
            SchedulerConfig.from_settings(settings),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._busy

    def queue_size(self) -> int:
        return len(self._pending)

    def submit(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        model: str | None = None,
    ) -> asyncio.Future:
        """Enqueue a request and return its completion future immediately.

        Must be called from inside a running event loop.
        """
        loop = asyncio.get_running_loop()
        request = PendingRequest(
            messages=coerce_messages(messages),
            model=model or self.config.default_model,
            future=loop.create_future(),
            submitted_at=self._clock(),
        )
        self._pending.append(request)
        GATEWAY_QUEUE_DEPTH.set(len(self._pending))

        logger.debug(
            "Enqueued request %s for %s",
            request.request_id,
            request.model,
            extra={"request_id": request.request_id},
        )
        self._emit(SchedulerEventKind.QUEUED, request)

        if len(self._pending) <= self.config.max_concurrent:
            self._start()
        return request.future

    async def request(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        model: str | None = None,
    ) -> dict[str, Any]:
        """Submit and wait for the raw upstream payload."""
        return await self.submit(messages, model)

    def invalidate(
        self,
        messages: Iterable[ChatMessage | Mapping[str, Any]],
        model: str | None = None,
    ) -> bool:
        """Forget the cached payload for a request whose content was rejected."""
        key = self.cache.key(coerce_messages(messages), model or self.config.default_model)
        removed = self.cache.discard(key)
        if removed:
            logger.info("Invalidated cached response for model %s", model or self.config.default_model)
        return removed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a progress listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_status(self) -> dict:
        return {
            "queue_size": len(self._pending),
            "busy": self._busy,
            "rate_window": self.rate_tracker.get_stats(),
            "cache": self.cache.get_stats(),
            "subscribers": len(self._listeners),
        }

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    def _start(self) -> None:
        if self._busy:
            return
        self._busy = True
        self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            while self._pending:
                request = self._pending.popleft()
                GATEWAY_QUEUE_DEPTH.set(len(self._pending))
                try:
                    await self._process(request)
                except Exception as e:
                    logger.exception(
                        "Unexpected error while dispatching request %s",
                        request.request_id,
                        extra={"request_id": request.request_id},
                    )
                    self._fail(request, UpstreamUnknown(str(e) or "Unexpected gateway error"))
        finally:
            self._busy = False
            self._worker = None

    async def _process(self, request: PendingRequest) -> None:
        key = self.cache.key(request.messages, request.model)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(
                "Returning cached response for request %s",
                request.request_id,
                extra={"request_id": request.request_id},
            )
            GATEWAY_CACHE_HITS.inc()
            self._emit(SchedulerEventKind.CACHE_HIT, request)
            self._resolve(request, cached, outcome="cache_hit")
            return

        delay = self.rate_tracker.delay_before_next_dispatch()
        if delay > 0:
            logger.info(
                "Rate limiting: waiting %.1fs before request %s",
                delay,
                request.request_id,
                extra={"request_id": request.request_id},
            )
            GATEWAY_THROTTLE_SECONDS.observe(delay)
            self._emit(SchedulerEventKind.THROTTLED, request, delay=delay)
            await self._sleep(delay)

        logger.info(
            "Dispatching request %s to %s (retry=%d, window=%d/%d)",
            request.request_id,
            request.model,
            request.retry_count,
            len(self.rate_tracker),
            self.rate_tracker.capacity,
            extra={"request_id": request.request_id},
        )
        self._emit(SchedulerEventKind.DISPATCHING, request)

        try:
            payload = await self.upstream.complete(
                request.messages,
                request.model,
                timeout=self.config.timeout_seconds,
            )
        except Exception as e:
            await self._handle_failure(request, e)
            return

        # Only structurally successful calls count against the window
        self.rate_tracker.record_dispatch()

        try:
            extract_message_content(payload)
        except GatewayError as e:
            self._fail(request, e)
            return

        self.cache.put(key, payload)
        self._resolve(request, payload)

    async def _handle_failure(self, request: PendingRequest, exc: Exception) -> None:
        logger.warning(
            "OpenRouter API error for request %s: %s",
            request.request_id,
            exc,
            extra={"request_id": request.request_id},
        )

        decision = self.retry_policy.decide(exc, request.retry_count)
        if not decision.retry:
            self._fail(request, decision.error)
            return

        GATEWAY_RETRIES.inc()
        self._emit(SchedulerEventKind.RETRY_SCHEDULED, request, delay=decision.delay)
        await self._sleep(decision.delay)

        request.retry_count += 1
        self._pending.appendleft(request)
        GATEWAY_QUEUE_DEPTH.set(len(self._pending))

    # ------------------------------------------------------------------
    # Completion helpers
    # ------------------------------------------------------------------

    def _resolve(self, request: PendingRequest, payload: dict[str, Any], outcome: str = "success") -> None:
        if request.done:
            logger.warning(
                "Request %s was already completed; dropping result",
                request.request_id,
                extra={"request_id": request.request_id},
            )
            return
        request.future.set_result(payload)
        GATEWAY_DISPATCHES.labels(outcome=outcome).inc()
        self._emit(SchedulerEventKind.COMPLETED, request)

    def _fail(self, request: PendingRequest, error: GatewayError) -> None:
        logger.error(
            "Request %s failed (%s): %s",
            request.request_id,
            error.kind.value,
            error.message,
            extra={"request_id": request.request_id},
        )
        if request.done:
            logger.warning(
                "Request %s was already completed; dropping error",
                request.request_id,
                extra={"request_id": request.request_id},
            )
            return
        request.future.set_exception(error)
        GATEWAY_DISPATCHES.labels(outcome=error.kind.value).inc()
        self._emit(SchedulerEventKind.FAILED, request, message=error.message)

    def _emit(
        self,
        kind: SchedulerEventKind,
        request: PendingRequest,
        delay: float = 0.0,
        message: str = "",
    ) -> None:
        event = SchedulerEvent(
            kind=kind,
            request_id=request.request_id,
            queue_size=len(self._pending),
            retry_count=request.retry_count,
            delay=delay,
            waited=self._clock() - request.submitted_at,
            message=message,
        )
        logger.debug("Scheduler event: %s", event.to_dict(), extra={"request_id": request.request_id})

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Scheduler listener failed on %s event", kind.value)
