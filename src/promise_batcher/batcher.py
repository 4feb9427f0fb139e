"""
Batcher for combining individual requests into batches.

Collects requests, decides when to dispatch a batch based on batch size,
queuing thresholds and queuing delay, and routes every output of the batching
function back to the request it belongs to.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from promise_batcher.config import BatcherConfig
from promise_batcher.errors import BatchOutputError, ConfigError
from promise_batcher.telemetry import LogLevel, get_logger
from promise_batcher.types import BATCHER_RETRY_TOKEN, BatcherStats

if TYPE_CHECKING:
    from collections.abc import Coroutine

    from promise_batcher.types import BatchingFunction, DelayFunction

T = TypeVar("T")
R = TypeVar("R")

logger = get_logger(__name__)


class Batcher(Generic[T, R]):
    """Batches individually submitted requests.

    Each call to get_result() queues one request and returns a future for its
    own result. Queued requests are handed to the batching function in groups;
    its output list is matched back to the requests by position. An output can
    be a value, an Exception (rejects only that request) or BATCHER_RETRY_TOKEN
    (puts the request back at the head of the queue).

    Example:
        >>> async def load_users(ids):
        ...     rows = await db.fetch_users(ids)
        ...     return [rows.get(i, KeyError(i)) for i in ids]
        ...
        >>> batcher = Batcher(load_users, BatcherConfig(max_batch_size=100))
        >>> user = await batcher.get_result(42)
    """

    def __init__(
        self,
        batching_function: BatchingFunction,
        config: BatcherConfig | None = None,
        *,
        delay_function: DelayFunction | None = None,
        pass_batcher: bool = False,
        name: str = "promise_batcher",
        **overrides: Any,
    ) -> None:
        """Initialize batcher.

        Args:
            batching_function: Function receiving a list of inputs and returning
                (or resolving to) a list of outputs of the same length
            config: Batch configuration
            delay_function: Function returning an awaitable which gates each
                batch; returning None applies no delay
            pass_batcher: Pass this batcher to the batching function as second
                positional argument
            name: Name used in log records
            **overrides: BatcherConfig fields overriding values of config

        Raises:
            ConfigError: If the functions or the configuration are invalid
        """
        if not callable(batching_function):
            raise ConfigError(
                "batching_function must be callable",
                field="batching_function",
                value=batching_function,
            )
        if delay_function is not None and not callable(delay_function):
            raise ConfigError(
                "delay_function must be callable",
                field="delay_function",
                value=delay_function,
            )

        config = config or BatcherConfig.default()
        if overrides:
            config = dataclasses.replace(config, **overrides)

        self._config = config
        self._batching_function = batching_function
        self._delay_function = delay_function
        self._pass_batcher = pass_batcher
        self._name = name
        self._logger = logger.bind(batcher=name)

        self._input_queue: list[T] = []
        self._output_queue: list[asyncio.Future[R]] = []
        self._wait_handle: asyncio.TimerHandle | None = None
        self._waiting = False
        self._active_batch_count = 0
        self._immediate_count = 0
        self._triggering = False
        self._trigger_again = False
        self._idle_future: asyncio.Future[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()

        # Statistics
        self._peak_active_batches = 0
        self._batches_dispatched = 0
        self._requests_resolved = 0
        self._requests_rejected = 0
        self._requests_retried = 0

    def get_result(self, item: T) -> asyncio.Future[R]:
        """Queue a request.

        Must be called while the event loop is running.

        Args:
            item: Request input

        Returns:
            Future resolving to the output for this input, or raising the
            error returned or raised for it
        """
        future: asyncio.Future[R] = asyncio.get_running_loop().create_future()
        if self._logger.is_enabled_for(LogLevel.DEBUG):
            self._logger.debug("Queuing request", index=len(self._input_queue))
        self._input_queue.append(item)
        self._output_queue.append(future)
        self._trigger()
        return future

    def send(self) -> None:
        """Run a batch of the queued requests without waiting for the queuing delay.

        max_batch_size, queuing_thresholds and the delay function still apply.
        """
        self._logger.debug("Send triggered", queued=len(self._input_queue))
        self._immediate_count = len(self._input_queue)
        self._trigger()

    @property
    def idling(self) -> bool:
        """True when no request is queued and no batch is running."""
        return not self._input_queue and self._active_batch_count == 0

    async def idle_promise(self) -> None:
        """Wait until no request is queued and no batch is running."""
        if self.idling:
            return
        if self._idle_future is None:
            self._idle_future = asyncio.get_running_loop().create_future()
        await asyncio.shield(self._idle_future)

    def _trigger(self) -> None:
        """Start or schedule a batch if the queue allows it.

        Calls made while a trigger is being evaluated (a started batch asking
        for the next one) are folded into the running evaluation, so draining
        a backlog loops instead of recursing.
        """
        self._trigger_again = True
        if self._triggering:
            return
        self._triggering = True
        try:
            while self._trigger_again:
                self._trigger_again = False
                self._evaluate_trigger()
        finally:
            self._triggering = False

    def _evaluate_trigger(self) -> None:
        # A batch is already set to run without delay
        if self._waiting and self._wait_handle is None:
            return

        threshold_index = min(
            self._active_batch_count, len(self._config.queuing_thresholds) - 1
        )
        if len(self._input_queue) < self._config.queuing_thresholds[threshold_index]:
            if self.idling:
                self._resolve_idle()
            return

        max_batch_size = self._config.max_batch_size
        if (
            max_batch_size is not None and len(self._input_queue) >= max_batch_size
        ) or self._immediate_count:
            self._logger.debug("Running immediately")
            if self._wait_handle is not None:
                self._wait_handle.cancel()
                self._wait_handle = None
            self._waiting = True
            self._run()
            return

        if self._waiting:
            return

        self._waiting = True
        self._logger.debug(
            "Scheduling batch",
            delay_ms=self._config.queuing_delay_ms,
            threshold_index=threshold_index,
        )
        self._wait_handle = asyncio.get_running_loop().call_later(
            self._config.queuing_delay, self._on_wait_elapsed
        )

    def _on_wait_elapsed(self) -> None:
        self._wait_handle = None
        self._run()

    def _run(self) -> None:
        """Run the batch once the delay function allows it."""
        if self._delay_function is not None:
            try:
                delay = self._delay_function()
            except Exception as e:
                self._abort_queue(e)
                return
            if inspect.isawaitable(delay):
                self._spawn(self._run_after_delay(delay))
                return
            self._logger.debug("Bypassing batch delay")
        self._run_immediately()

    async def _run_after_delay(self, delay: Any) -> None:
        try:
            await delay
        except Exception as e:
            self._abort_queue(e)
            return
        self._run_immediately()

    def _abort_queue(self, error: Exception) -> None:
        """Reject every queued request with a delay function error."""
        self._logger.debug(
            "Delay function failed, rejecting queued requests",
            rejected=len(self._output_queue),
            error=repr(error),
        )
        self._input_queue.clear()
        futures = self._output_queue[:]
        self._output_queue.clear()
        self._immediate_count = 0
        self._waiting = False
        for future in futures:
            self._reject(future, error)
        self._trigger()

    def _run_immediately(self) -> None:
        """Take a batch off the front of the queue and start it."""
        size = self._config.max_batch_size or len(self._input_queue)
        inputs = self._input_queue[:size]
        futures = self._output_queue[:size]
        del self._input_queue[:size]
        del self._output_queue[:size]
        if self._immediate_count:
            self._immediate_count = max(0, self._immediate_count - len(inputs))

        self._waiting = False
        self._active_batch_count += 1
        self._peak_active_batches = max(
            self._peak_active_batches, self._active_batch_count
        )
        self._batches_dispatched += 1
        self._logger.debug("Running batch", size=len(inputs))

        outputs: Any = None
        error: Exception | None = None
        try:
            if self._pass_batcher:
                outputs = self._batching_function(list(inputs), self)
            else:
                outputs = self._batching_function(list(inputs))
        except Exception as e:
            error = e
        # The batch has started, another one may start alongside it
        self._trigger()
        self._spawn(self._settle_batch(inputs, futures, outputs, error))

    async def _settle_batch(
        self,
        inputs: list[T],
        futures: list[asyncio.Future[R]],
        outputs: Any,
        error: Exception | None,
    ) -> None:
        """Wait for the batching function and distribute its outputs."""
        try:
            if error is not None:
                raise error
            if inspect.isawaitable(outputs):
                outputs = await outputs
            self._distribute(inputs, futures, outputs)
        except asyncio.CancelledError:
            for future in futures:
                future.cancel()
            raise
        except Exception as e:
            self._logger.debug("Batch failed", size=len(futures), error=repr(e))
            for future in futures:
                self._reject(future, e)
        finally:
            self._active_batch_count -= 1
            # A lower queuing threshold may apply now
            self._trigger()

    def _distribute(
        self,
        inputs: list[T],
        futures: list[asyncio.Future[R]],
        outputs: Any,
    ) -> None:
        if not isinstance(outputs, Sequence) or isinstance(
            outputs, (str, bytes, bytearray)
        ):
            raise BatchOutputError(
                "batching_function must return a sequence",
                input_length=len(inputs),
            )
        if len(outputs) != len(futures):
            raise BatchOutputError(
                "batching_function output length does not equal the input length",
                input_length=len(inputs),
                output_length=len(outputs),
            )

        retry_inputs: list[T] = []
        retry_futures: list[asyncio.Future[R]] = []
        for item, future, output in zip(inputs, futures, outputs):
            if output is BATCHER_RETRY_TOKEN:
                retry_inputs.append(item)
                retry_futures.append(future)
            elif isinstance(output, Exception):
                self._reject(future, output)
            else:
                self._resolve(future, output)

        if retry_futures:
            self._logger.debug("Retry requested", count=len(retry_futures))
            self._requests_retried += len(retry_futures)
            if self._immediate_count:
                self._immediate_count += len(retry_futures)
            self._input_queue[:0] = retry_inputs
            self._output_queue[:0] = retry_futures

    def _resolve(self, future: asyncio.Future[R], value: R) -> None:
        if not future.done():
            future.set_result(value)
            self._requests_resolved += 1

    def _reject(self, future: asyncio.Future[R], error: Exception) -> None:
        if not future.done():
            future.set_exception(error)
            self._requests_rejected += 1

    def _resolve_idle(self) -> None:
        if self._idle_future is None:
            return
        self._logger.debug("Idle")
        future, self._idle_future = self._idle_future, None
        if not future.done():
            future.set_result(None)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def config(self) -> BatcherConfig:
        """Get batch configuration."""
        return self._config

    @property
    def name(self) -> str:
        """Get batcher name."""
        return self._name

    @property
    def queue_length(self) -> int:
        """Get number of queued requests."""
        return len(self._input_queue)

    @property
    def active_batch_count(self) -> int:
        """Get number of batches currently running."""
        return self._active_batch_count

    def get_stats(self) -> BatcherStats:
        """Get batcher statistics."""
        return BatcherStats(
            queued=len(self._input_queue),
            active_batches=self._active_batch_count,
            peak_active_batches=self._peak_active_batches,
            batches_dispatched=self._batches_dispatched,
            requests_resolved=self._requests_resolved,
            requests_rejected=self._requests_rejected,
            requests_retried=self._requests_retried,
        )

    def __repr__(self) -> str:
        return (
            f"Batcher(name={self._name!r}, queued={len(self._input_queue)}, "
            f"active_batches={self._active_batch_count})"
        )
