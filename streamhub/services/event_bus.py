"""Bounded publish/dispatch pipeline over Redis pub/sub.

- `EventPublisher`: non-blocking enqueue, single drain task publishing to a channel
- `MessageDispatcher`: fixed worker pool running typed handlers per message kind
- `RedisSubscriber`: decodes channel payloads once and feeds the dispatcher
"""

import asyncio
import contextlib
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence

from loguru import logger
from redis.asyncio import Redis

from streamhub.schemas.messages import Message, MessageKind, decode_message, encode_message
from streamhub.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

Handler = Callable[[Message], Awaitable[None] | None]

_STOP = object()


class EventPublisher:
    """Publishes messages to one Redis channel without blocking the caller.

    When the queue is full the message is dropped and counted, so a slow or
    unreachable Redis never stalls the ingest core.
    """

    DEFAULT_QUEUE_SIZE = 1000

    def __init__(self, redis_client: Redis, channel: str, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._redis = redis_client
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task | None = None
        self.published = 0
        self.dropped = 0
        self.failed = 0

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def publish_nowait(self, message: Message) -> bool:
        """Queue ``message`` for publishing; returns False when it was dropped."""
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Event queue full, dropping {} (dropped={})", message.kind, self.dropped
            )
            return False
        return True

    def start(self) -> None:
        if self.running:
            return
        logger.info("Starting event publisher on channel {}", self._channel)
        self._task = asyncio.create_task(self._drain(), name=f"event-publisher:{self._channel}")

    async def stop(self, timeout: float = 5.0) -> None:
        """Flush queued messages, then stop the drain task."""
        if self._task is None:
            return

        task, self._task = self._task, None
        try:
            self._queue.put_nowait(_STOP)
        except asyncio.QueueFull:
            logger.warning("Event queue full on shutdown, discarding {} event(s)", self._queue.qsize())
            task.cancel()

        done, _ = await asyncio.wait([task], timeout=timeout)
        if not done:
            logger.warning("Event publisher did not flush within {}s", timeout)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info(
            "Event publisher stopped (published={}, dropped={}, failed={})",
            self.published, self.dropped, self.failed,
        )

    async def _drain(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                if message is _STOP:
                    return
                await self._redis.publish(self._channel, encode_message(message))
                self.published += 1
            except Exception as exc:
                self.failed += 1
                logger.warning("Failed to publish {} to {}: {}", message.kind, self._channel, exc)
            finally:
                self._queue.task_done()


class MessageDispatcher:
    """Runs registered handlers on a fixed pool of workers.

    ``submit`` waits while the queue is full, so producers slow down instead of
    spawning unbounded work. A failing handler is logged and counted; the worker
    keeps going.
    """

    DEFAULT_WORKERS = 4
    DEFAULT_QUEUE_SIZE = 100

    def __init__(self, workers: int = DEFAULT_WORKERS, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        if workers < 1:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg=f"Dispatcher needs at least one worker, got {workers}",
                status_code=HttpStatusCode.BAD_REQUEST,
            )
        self._workers = workers
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._tasks: list[asyncio.Task] = []
        self.handled = 0
        self.failed = 0
        self.unhandled = 0

    def register(self, kind: MessageKind, handler: Handler) -> None:
        self._handlers[kind].append(handler)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"dispatch-worker:{i}")
            for i in range(self._workers)
        ]
        logger.info("Message dispatcher started with {} worker(s)", self._workers)

    async def submit(self, message: Message) -> None:
        await self._queue.put(message)

    async def join(self) -> None:
        """Wait until every submitted message has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Handle what is already queued, then stop the workers."""
        if not self._tasks:
            return
        for _ in self._tasks:
            await self._queue.put(_STOP)
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info(
            "Message dispatcher stopped (handled={}, failed={}, unhandled={})",
            self.handled, self.failed, self.unhandled,
        )

    async def _worker(self, index: int) -> None:
        while True:
            message = await self._queue.get()
            try:
                if message is _STOP:
                    return
                await self._dispatch(message)
            finally:
                self._queue.task_done()

    async def _dispatch(self, message: Message) -> None:
        handlers = self._handlers.get(message.kind)
        if not handlers:
            self.unhandled += 1
            logger.debug("No handler for message kind {}", message.kind)
            return

        for handler in handlers:
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
                self.handled += 1
            except Exception as exc:
                self.failed += 1
                logger.exception(f"Handler {getattr(handler, '__name__', handler)} failed for {message.kind}: {exc}")


class RedisSubscriber:
    """Feeds messages from Redis channels into a dispatcher.

    Reconnects after ``retry_delay`` seconds when the subscription fails.
    """

    DEFAULT_RETRY_DELAY = 5.0

    def __init__(
        self,
        redis_client: Redis,
        channels: Sequence[str],
        dispatcher: MessageDispatcher,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self._redis = redis_client
        self._channels = list(channels)
        self._dispatcher = dispatcher
        self._retry_delay = retry_delay
        self.received = 0
        self.invalid = 0

    async def run(self) -> None:
        """Subscribe and dispatch until cancelled."""
        while True:
            try:
                await self._consume()
            except asyncio.CancelledError:
                logger.info("Redis subscriber cancelled")
                raise
            except Exception as exc:
                logger.warning(
                    "Subscription to {} failed, retrying in {}s: {}",
                    self._channels, self._retry_delay, exc,
                )
                await asyncio.sleep(self._retry_delay)

    async def _consume(self) -> None:
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(*self._channels)
            logger.info("Subscribed to {}", self._channels)
            async for raw in pubsub.listen():
                if raw.get("type") != "message":
                    continue
                await self.handle_payload(raw["data"])
        finally:
            await pubsub.aclose()

    async def handle_payload(self, payload: bytes | str) -> bool:
        """Decode one payload and hand it to the dispatcher; invalid payloads are skipped."""
        self.received += 1
        try:
            message = decode_message(payload)
        except AppError as exc:
            self.invalid += 1
            logger.warning("{} {} {}", exc.errcode, exc.erresid, exc.errmesg)
            return False
        await self._dispatcher.submit(message)
        return True
