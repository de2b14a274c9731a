import asyncio
import contextlib
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from typing import get_args

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from streamhub.api.errors import app_error_handler
from streamhub.api.v1.routers import stream
from streamhub.app_config import AppEnvironConfig, get_app_environ_config
from streamhub.domain.ingest import IngestSupervisor
from streamhub.schemas.messages import Message, MessageKind
from streamhub.services.event_bus import EventPublisher, MessageDispatcher, RedisSubscriber
from streamhub.shared.api import health
from streamhub.shared.api.utils import api_failure, init_logger, validation_exception_handler
from streamhub.shared.config import config
from streamhub.shared.storage.redis import RedisManager
from streamhub.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000
            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(status_code=500, content=failure.model_dump())


def log_event(message: Message) -> None:
    logger.info("Event {}: {}", message.kind, message.model_dump(mode="json", exclude={"kind"}))


async def start_event_bus(server: FastAPI, settings: AppEnvironConfig) -> EventPublisher:
    server.state.redis_manager = RedisManager(config)
    redis_client = server.state.redis_manager.get_cache_client(settings.EVENTS_REDIS_LABEL)

    publisher = EventPublisher(redis_client, settings.EVENTS_CHANNEL, settings.EVENTS_QUEUE_SIZE)
    publisher.start()
    server.state.event_publisher = publisher

    if settings.EVENTS_SUBSCRIBE_CHANNELS:
        dispatcher = MessageDispatcher(workers=settings.EVENTS_DISPATCH_WORKERS)
        for kind in get_args(MessageKind):
            dispatcher.register(kind, log_event)
        dispatcher.start()
        subscriber = RedisSubscriber(redis_client, settings.EVENTS_SUBSCRIBE_CHANNELS, dispatcher)
        server.state.event_dispatcher = dispatcher
        server.state.event_subscriber_task = asyncio.create_task(subscriber.run())

    return publisher


async def stop_event_bus(server: FastAPI) -> None:
    subscriber_task = getattr(server.state, "event_subscriber_task", None)
    if subscriber_task is not None:
        subscriber_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await subscriber_task

    dispatcher = getattr(server.state, "event_dispatcher", None)
    if dispatcher is not None:
        await dispatcher.stop()

    publisher = getattr(server.state, "event_publisher", None)
    if publisher is not None:
        await publisher.stop()

    redis_manager = getattr(server.state, "redis_manager", None)
    if redis_manager is not None:
        await redis_manager.close_all()


@asynccontextmanager
async def lifespan(server: FastAPI):
    settings = get_app_environ_config()
    init_logger(settings.DEBUG)

    logger.info("Application startup...")

    event_sink = None
    if settings.EVENTS_ENABLE:
        publisher = await start_event_bus(server, settings)
        event_sink = publisher.publish_nowait

    supervisor = IngestSupervisor(settings.to_supervisor_config(), event_sink=event_sink)
    server.state.supervisor = supervisor
    try:
        await supervisor.start()
    except Exception:
        await stop_event_bus(server)
        raise

    yield

    logger.info("Application shutdown...")

    supervisor.stop()
    await supervisor.wait_closed()
    await stop_event_bus(server)


app = FastAPI(
    version="1.0",
    title="Streamhub Ingest API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)

app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore

app.include_router(health.router)
app.include_router(stream.router, prefix="/api/v1")


def build_granian_kwargs():
    settings = get_app_environ_config()
    kwargs = {
        "interface": "asgi",
        "address": settings.API_HOST,
        "port": settings.API_PORT,
        "workers": settings.API_WORKERS,
        "reload": settings.DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("streamhub.main:app", **granian_kwargs).serve()
