"""Summary: Throttled delivery of streamed generation output to the conversation.

Importance: Bridges a thread-driven fragment producer to a single event-loop consumer
without flooding the view with one update per fragment.
Alternatives: Push every fragment straight to the view from the producer thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable

from relaypilot.generation import GenerationSession


logger = logging.getLogger(__name__)

DEFAULT_FLUSH_INTERVAL_MS = 100


class StreamState(Enum):
    IDLE = "idle"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GenerationFailure(Exception):
    """Summary: Raised when a generation turn cannot finish."""


class StreamingBuffer:
    """Summary: Accumulates every fragment of the current generation turn.

    Importance: Flushes publish the whole text so far, which makes them idempotent.
    Alternatives: Publish deltas and let the view concatenate.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []

    def append(self, fragment: str) -> None:
        self._parts.append(fragment)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def reset(self) -> None:
        self._parts.clear()


@dataclass(frozen=True)
class StreamResult:
    """Summary: Final outcome of one generation turn."""

    state: StreamState
    text: str
    flushes: int
    error: str | None = None


@dataclass(frozen=True)
class _Fragment:
    text: str
    done: bool


@dataclass(frozen=True)
class _Failure:
    error: BaseException


_CANCELLED = object()


class StreamingPipeline:
    """Summary: Coalesces fragments and flushes them at a bounded cadence.

    Importance: A flush happens when the flush interval has elapsed since the previous one
    or when the producer reports completion. The session is closed exactly once, whether the
    turn completes, fails, or is cancelled. Callers guarantee one turn at a time.
    Alternatives: Flush every N fragments regardless of time.
    """

    def __init__(
        self,
        publish: Callable[[str], None],
        flush_interval_ms: int = DEFAULT_FLUSH_INTERVAL_MS,
        idle_timeout_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._publish = publish
        self._flush_interval_s = flush_interval_ms / 1000.0
        self._idle_timeout_s = idle_timeout_s
        self._clock = clock
        self._buffer = StreamingBuffer()
        self._state = StreamState.IDLE
        self._session: GenerationSession | None = None
        self._session_closed = True
        self._close_lock = threading.Lock()
        self._cancelled = False
        self._last_flush_at: float | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[object] | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def text(self) -> str:
        return self._buffer.text

    async def stream(
        self,
        open_session: Callable[[], GenerationSession],
        prompt: str,
        image: bytes | None = None,
    ) -> AsyncIterator[str]:
        """Summary: Run one generation turn and yield buffer snapshots as they are flushed.

        Importance: The producer callback only marshals events onto the owning loop;
        buffer mutation and flush decisions happen here, on that loop.
        Alternatives: Guard the buffer with a lock and mutate it from the producer thread.
        """

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[object] = asyncio.Queue()
        self._loop = loop
        self._queue = queue
        self._buffer.reset()
        self._cancelled = False
        self._last_flush_at = None
        self._state = StreamState.GENERATING

        def _post(event: object) -> None:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, event)
            except RuntimeError:
                logger.debug("Dropped generation event after the event loop closed.")

        def on_fragment(fragment: str, done: bool) -> None:
            _post(_Fragment(fragment, done))

        def on_error(error: BaseException) -> None:
            _post(_Failure(error))

        try:
            session = open_session()
            self._attach(session)
            session.add_query_chunk(prompt)
            if image is not None:
                session.add_image(image)
            session.generate_async(on_fragment, on_error)
            while True:
                event = await self._next_event(queue)
                if self._cancelled or event is _CANCELLED:
                    return
                if isinstance(event, _Failure):
                    raise GenerationFailure(str(event.error)) from event.error
                assert isinstance(event, _Fragment)
                self._buffer.append(event.text)
                if self._should_flush(event.done):
                    yield self._buffer.text
                if event.done:
                    if not self._cancelled:
                        self._state = StreamState.COMPLETED
                    return
        except asyncio.CancelledError:
            self._state = StreamState.CANCELLED
            raise
        except Exception:
            if not self._cancelled:
                self._state = StreamState.FAILED
            raise
        finally:
            self._close_session()

    async def run(
        self,
        open_session: Callable[[], GenerationSession],
        prompt: str,
        image: bytes | None = None,
    ) -> StreamResult:
        """Summary: Drive a turn to completion, publishing each flush.

        Importance: Converts every generation failure into an error message in place of the
        partial reply; nothing propagates to the conversation layer.
        Alternatives: Let callers iterate `stream` and handle errors themselves.
        """

        flushes = 0
        snapshots = self.stream(open_session, prompt, image)
        try:
            async for snapshot in snapshots:
                if self._cancelled:
                    break
                self._publish(snapshot)
                flushes += 1
        except Exception as exc:
            if self._cancelled:
                return StreamResult(StreamState.CANCELLED, self._buffer.text, flushes)
            logger.warning("Generation failed: %s", exc)
            message = f"❌ Error: {exc}"
            self._publish(message)
            return StreamResult(StreamState.FAILED, message, flushes, error=str(exc))
        finally:
            await snapshots.aclose()
        logger.info("Generation %s after %s flushes.", self._state.value, flushes)
        return StreamResult(self._state, self._buffer.text, flushes)

    def cancel(self) -> None:
        """Summary: Stop the current turn; later flushes are discarded.

        Importance: Closing the producer is the only way to stop a runaway generation.
        Alternatives: Let the generation finish and hide the output.
        """

        if self._state is not StreamState.GENERATING:
            return
        self._cancelled = True
        self._state = StreamState.CANCELLED
        self._close_session()
        if self._loop is not None and self._queue is not None:
            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, _CANCELLED)
            except RuntimeError:
                logger.debug("Event loop closed before cancellation was delivered.")
        logger.info("Generation cancelled.")

    async def _next_event(self, queue: asyncio.Queue[object]) -> object:
        if self._idle_timeout_s is None:
            return await queue.get()
        try:
            return await asyncio.wait_for(queue.get(), timeout=self._idle_timeout_s)
        except asyncio.TimeoutError as exc:
            raise GenerationFailure(
                f"No output from model within {self._idle_timeout_s:g} seconds"
            ) from exc

    def _should_flush(self, done: bool) -> bool:
        now = self._clock()
        due = self._last_flush_at is None or now - self._last_flush_at >= self._flush_interval_s
        if done or due:
            self._last_flush_at = now
            return True
        return False

    def _attach(self, session: GenerationSession) -> None:
        with self._close_lock:
            self._session = session
            self._session_closed = False

    def _close_session(self) -> None:
        with self._close_lock:
            if self._session_closed or self._session is None:
                return
            self._session_closed = True
            session = self._session
        try:
            session.close()
        except Exception:
            logger.exception("Failed to close generation session.")
