import asyncio
import inspect
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from hookrelay.config import RetryPolicy
from hookrelay.errors import HandlerErrorKind, InvalidStateError, StoreConflictError
from hookrelay.events import Event
from hookrelay.models import CONSUMED_STATUSES, DeliveryStatus
from hookrelay.schemas.deliveries import Delivery, HandlerResult
from hookrelay.services.registry import (
    Handler,
    HandlerRegistration,
    HandlerRegistry,
    is_async_handler,
)
from hookrelay.stores.base import DeliveryStore

logger = structlog.get_logger(__name__)


class DispatchOutcome(Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    IN_PROGRESS = "in_progress"


@dataclass(frozen=True)
class DispatchResult:
    delivery_id: str
    outcome: DispatchOutcome
    handler_results: tuple[HandlerResult, ...] = ()

    @property
    def failures(self) -> list[HandlerResult]:
        return [result for result in self.handler_results if not result.ok]


class Dispatcher:
    """
    Route classified events to their registered handlers.

    The delivery store decides whether a delivery may run at all: consumed
    deliveries short-circuit as duplicates and the store's processing gate keeps
    two invocations of the same delivery id from overlapping.
    """

    def __init__(
        self,
        store: DeliveryStore,
        registry: HandlerRegistry,
        handler_timeout: float = 10.0,
        retry_policy: RetryPolicy = RetryPolicy.FAILED_ONLY,
        dedupe_by_payload_hash: bool = False,
    ):
        self.store = store
        self.registry = registry
        self.handler_timeout = handler_timeout
        self.retry_policy = retry_policy
        self.dedupe_by_payload_hash = dedupe_by_payload_hash
        self._running: set[asyncio.Task] = set()

    async def dispatch(self, delivery: Delivery, event: Event) -> DispatchResult:
        log = logger.bind(delivery_id=delivery.id, event=event.kind.value)

        current = await self.store.get(delivery.id)
        if current is None:
            raise StoreConflictError(delivery.id, "was never recorded")

        if current.status in CONSUMED_STATUSES:
            log.info("Duplicate delivery skipped", status=current.status.value)
            return DispatchResult(delivery.id, DispatchOutcome.DUPLICATE)

        if not await self.store.acquire(current.id):
            status = await self.store.get_status(current.id)
            if status in CONSUMED_STATUSES:
                log.info("Duplicate delivery skipped", status=status.value)
                return DispatchResult(delivery.id, DispatchOutcome.DUPLICATE)

            log.warning("Delivery already in progress")
            return DispatchResult(delivery.id, DispatchOutcome.IN_PROGRESS)

        started = False
        try:
            # status may have moved between the first read and the gate
            current = await self.store.get(current.id)

            if self.dedupe_by_payload_hash:
                original = await self.store.find_processed_by_hash(
                    current.raw_payload_hash, exclude_id=current.id
                )
                if original is not None:
                    await self.store.mark_duplicate(current.id, original.id)
                    log.info("Duplicate delivery skipped", duplicate_of=original.id)
                    return DispatchResult(delivery.id, DispatchOutcome.DUPLICATE)

            chain = self._start_chain(current, event, log)
            started = True
        finally:
            if not started:
                await self.store.release(current.id)

        return await asyncio.shield(chain)

    def _start_chain(
        self, current: Delivery, event: Event, log: Any
    ) -> asyncio.Future:
        registrations = self.registry.handlers_for(event.kind)
        carried: list[HandlerResult] = []
        if (
            current.status == DeliveryStatus.FAILED
            and self.retry_policy == RetryPolicy.FAILED_ONLY
        ):
            succeeded = set(current.succeeded_handlers)
            carried = [result for result in current.handler_results if result.ok]
            registrations = tuple(r for r in registrations if r.name not in succeeded)
            log.info(
                "Retrying failed handlers",
                skipped=sorted(succeeded),
                retrying=[r.name for r in registrations],
            )

        # once handlers start, cancelling the caller must not leave the record half-written
        chain = asyncio.ensure_future(
            self._run_chain(current.id, event, registrations, carried, log)
        )
        self._running.add(chain)
        chain.add_done_callback(self._running.discard)
        return chain

    async def _run_chain(
        self,
        delivery_id: str,
        event: Event,
        registrations: tuple[HandlerRegistration, ...],
        carried: list[HandlerResult],
        log: Any,
    ) -> DispatchResult:
        try:
            results = list(carried)
            for registration in registrations:
                results.append(await self._invoke(registration, event, log))

            failed = [result.handler for result in results if not result.ok]
            if failed:
                await self.store.mark_failed(delivery_id, results)
                log.warning(
                    "Delivery failed",
                    handlers=len(results),
                    failed_handlers=failed,
                )
                outcome = DispatchOutcome.FAILED
            else:
                await self.store.mark_processed(delivery_id, results)
                log.info("Delivery processed", handlers=len(results))
                outcome = DispatchOutcome.PROCESSED

            return DispatchResult(delivery_id, outcome, tuple(results))
        finally:
            await self.store.release(delivery_id)

    async def _invoke(
        self, registration: HandlerRegistration, event: Event, log: Any
    ) -> HandlerResult:
        start_time = time.monotonic()
        error_kind: HandlerErrorKind | None = None
        error: str | None = None

        try:
            await asyncio.wait_for(
                self._call(registration.handler, event),
                timeout=self.handler_timeout,
            )
        except asyncio.TimeoutError:
            error_kind = HandlerErrorKind.TIMEOUT
            error = f"Handler timed out after {self.handler_timeout}s"
        except InvalidStateError as e:
            error_kind = HandlerErrorKind.INVALID_STATE
            error = str(e)
        except Exception as e:
            error_kind = HandlerErrorKind.EXCEPTION
            error = f"{type(e).__name__}: {e}"

        duration = round((time.monotonic() - start_time) * 1000, 2)

        if error_kind is not None:
            log.error(
                "Handler failed",
                handler=registration.name,
                error_kind=error_kind.value,
                error=error,
                duration=duration,
            )
        else:
            log.debug("Handler succeeded", handler=registration.name, duration=duration)

        return HandlerResult(
            handler=registration.name,
            ok=error_kind is None,
            error_kind=error_kind,
            error=error,
            duration_ms=duration,
        )

    @staticmethod
    async def _call(handler: Handler, event: Event) -> None:
        if is_async_handler(handler):
            await handler(event)
            return

        result = await asyncio.to_thread(handler, event)
        if inspect.isawaitable(result):
            await result
