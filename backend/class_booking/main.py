from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import FastAPI, Request, Response

from .config import Settings, get_settings
from .container import build_services
from .domain.repositories import RecordStore
from .infrastructure.repositories import SqlAlchemyRecordStore
from .routers import bookings, classes, profile
from .utils.request_id import REQUEST_ID_HEADER, accept_request_id, set_request_id


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    store = app.state.services.store
    if isinstance(store, SqlAlchemyRecordStore):
        await store.init_schema()
    try:
        yield
    finally:
        if isinstance(store, SqlAlchemyRecordStore):
            await store.dispose()


def create_app(settings: Optional[Settings] = None, store: Optional[RecordStore] = None) -> FastAPI:
    app = FastAPI(title="Class Booking API", lifespan=lifespan)
    app.state.services = build_services(settings or get_settings(), store)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.middleware("http")(request_id_middleware)
    app.include_router(classes.router)
    app.include_router(bookings.router)
    app.include_router(profile.router)
    return app


app = create_app()
